"""
Write-back through stored procedures.

Write configuration is a two-phase exchange. A form without a target gets a
form descriptor listing the procedures it may choose from. A form naming a
target gets a shape whose properties mirror the procedure's IN parameters.
`prepare_write` freezes that shape into a `WriteContext`, and `write_stream`
calls the procedure once per incoming record, acknowledging every record.
Acks are buffered and flushed by batch size, by the commit SLA, and at end
of input.
"""
import json
import logging
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from plugin_oracle.adapters.type_mapping import decode_value
from plugin_oracle.exceptions import ConnectorError, QueryError, StreamError
from plugin_oracle.exceptions import ValidationError
from plugin_oracle.pub import ConfigurationFormRequest, ConfigurationFormResponse
from plugin_oracle.pub import ConfigureWriteRequest, ConfigureWriteResponse, Property
from plugin_oracle.pub import PrepareWriteRequest, Record, RecordAck, Schema, WriteChannel

if TYPE_CHECKING:
    from plugin_oracle.connection import ConnectionWrapper
    from plugin_oracle.options import Settings

logger = logging.getLogger(__name__)

PROCEDURE_DOES_NOT_EXIST = 'stored procedure does not exist'


@dataclass(frozen=True)
class NoTarget:
    """Write configuration form that names no procedure yet."""


@dataclass(frozen=True)
class CandidateTarget:
    """Write configuration form naming a procedure to resolve."""
    name: str


WriteTarget = NoTarget | CandidateTarget


def parse_write_form(form: ConfigurationFormRequest | None) -> WriteTarget:
    """Parse the configuration form into a tagged write target.

    Raises
        ValidationError: If the form data is not a JSON object
    """
    if form is None or not form.data_json.strip():
        return NoTarget()
    try:
        data = json.loads(form.data_json)
    except ValueError as exc:
        raise ValidationError(f'could not parse form data: {exc}') from exc
    if not isinstance(data, dict):
        raise ValidationError('form data must be a JSON object')
    name = str(data.get('storedProcedure') or '').strip()
    return CandidateTarget(name) if name else NoTarget()


def _form_response(procedures: list[str], form: ConfigurationFormRequest | None) -> ConfigurationFormResponse:
    procedure_field: dict[str, Any] = {'type': 'string', 'title': 'Stored Procedure'}
    if procedures:
        procedure_field['enum'] = procedures
    form_schema = {
        'type': 'object',
        'title': 'Write Configuration',
        'properties': {'storedProcedure': procedure_field},
        'required': ['storedProcedure'],
    }
    return ConfigurationFormResponse(
        schema_json=json.dumps(form_schema),
        ui_json=json.dumps({'ui:order': ['storedProcedure']}),
        data_json=form.data_json if form else '',
        state_json=form.state_json if form else '',
    )


def configure_write(cn: 'ConnectionWrapper', request: ConfigureWriteRequest) -> ConfigureWriteResponse:
    """Describe the write form, or resolve the procedure the form names.

    An unknown procedure is reported in the form errors alongside a
    best-effort shape; it never fails the call.
    """
    strategy = cn.strategy
    form = _form_response(strategy.list_procedures(cn), request.form)
    try:
        target = parse_write_form(request.form)
    except ValidationError as exc:
        form.errors.append(str(exc))
        return ConfigureWriteResponse(form=form)

    if isinstance(target, NoTarget):
        return ConfigureWriteResponse(form=form)

    schema = Schema(id=target.name, name=target.name, query=target.name)
    procedure = strategy.find_procedure(cn, target.name)
    if procedure is None:
        logger.warning(f'Write target {target.name!r} does not exist')
        form.errors.append(PROCEDURE_DOES_NOT_EXIST)
        return ConfigureWriteResponse(form=form, schema=schema)

    parameters = strategy.get_procedure_parameters(cn, procedure, bypass_cache=True)
    schema.properties = [p.to_property(strategy.dialect_name, quoted=False) for p in parameters]
    logger.info(f'Configured write to {procedure[0]}.{procedure[1]} with {len(parameters)} parameter(s)')
    return ConfigureWriteResponse(form=form, schema=schema)


@dataclass
class WriteContext:
    """A prepared write: the target procedure and its frozen parameter order.
    """
    target: str
    properties: list[Property] = field(default_factory=list)
    commit_sla_seconds: int = 0

    def decode(self, record: Record) -> list[Any]:
        """Decode a record's payload by parameter id, in declared parameter order.

        Raises
            ValidationError: If the payload is not a JSON object
            TypeConversionError: If a value does not fit its parameter type
        """
        try:
            data = record.data
        except ValueError as exc:
            raise ValidationError(f'could not parse record data: {exc}') from exc
        if not isinstance(data, dict):
            raise ValidationError('record data must be a JSON object')
        return [decode_value(p.type, data.get(p.id)) for p in self.properties]


def prepare_write(request: PrepareWriteRequest) -> WriteContext:
    """Freeze the negotiated shape into a write context.

    Raises
        ValidationError: If the shape carries no target
    """
    schema = request.schema
    if schema is None or not (schema.query or schema.id):
        raise ValidationError('write shape must name a target stored procedure')
    context = WriteContext(target=schema.query or schema.id,
                           properties=list(schema.properties),
                           commit_sla_seconds=max(0, int(request.commit_sla_seconds or 0)))
    logger.info(f'Prepared write to {context.target} (commit SLA {context.commit_sla_seconds}s)')
    return context


class AckBuffer:
    """Buffers acks and sends them on the channel.

    Acks are flushed when the buffer reaches `batch_size`, when `sla_seconds`
    have passed since the oldest buffered ack, and on `flush()`. With a zero
    SLA every ack is sent immediately. The timer thread and the caller share
    one lock, so the channel is never used by both at once. A send failure
    in the timer thread is raised on the caller's next `add` or `flush`.
    """

    def __init__(self, channel: WriteChannel, batch_size: int, sla_seconds: float) -> None:
        self._channel = channel
        self._batch_size = batch_size if sla_seconds > 0 else 1
        self._sla_seconds = sla_seconds
        self._lock = threading.Lock()
        self._acks: list[RecordAck] = []
        self._timer: threading.Timer | None = None
        self._error: StreamError | None = None
        self._closed = False

    def add(self, ack: RecordAck) -> None:
        with self._lock:
            self._raise_pending()
            self._acks.append(ack)
            if len(self._acks) >= self._batch_size:
                self._flush_locked()
            elif self._timer is None:
                self._timer = threading.Timer(self._sla_seconds, self._on_timer)
                self._timer.daemon = True
                self._timer.start()

    def flush(self) -> None:
        with self._lock:
            self._raise_pending()
            self._flush_locked()

    def close(self) -> None:
        with self._lock:
            self._closed = True
            self._cancel_timer()

    def _on_timer(self) -> None:
        with self._lock:
            self._timer = None
            if self._closed or not self._acks:
                return
            logger.debug(f'Commit SLA elapsed, flushing {len(self._acks)} ack(s)')
            try:
                self._flush_locked()
            except StreamError as exc:
                self._error = exc

    def _raise_pending(self) -> None:
        if self._error is not None:
            error, self._error = self._error, None
            raise error

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _flush_locked(self) -> None:
        self._cancel_timer()
        acks, self._acks = self._acks, []
        for ack in acks:
            try:
                self._channel.send(ack)
            except Exception as exc:
                raise StreamError(f'could not send ack: {exc}') from exc


def write_stream(cn: 'ConnectionWrapper', settings: 'Settings', context: WriteContext,
                 channel: WriteChannel) -> int:
    """Call the prepared procedure once per received record until end of input.

    Every record yields exactly one ack carrying its correlation id. A
    per-record failure is reported in that ack's ``error`` and the stream
    continues.

    Returns
        Number of records received

    Raises
        StreamError: If receiving a record or sending an ack fails
    """
    strategy = cn.strategy
    procedure = strategy.find_procedure(cn, context.target)
    acks = AckBuffer(channel, settings.write_batch_size, context.commit_sla_seconds)
    received = 0
    try:
        while True:
            try:
                record = channel.recv()
            except Exception as exc:
                raise StreamError(f'could not receive record: {exc}') from exc
            if record is None:
                break
            received += 1
            acks.add(RecordAck(correlation_id=record.correlation_id,
                               error=_write_record(cn, procedure, context, record)))
        acks.flush()
    except StreamError as exc:
        logger.error(f'Write stream to {context.target} aborted after {received} record(s): {exc}')
        raise
    finally:
        acks.close()
    logger.info(f'Wrote {received} record(s) to {context.target}')
    return received


def _write_record(cn: 'ConnectionWrapper', procedure: tuple[str, str] | None,
                  context: WriteContext, record: Record) -> str:
    """Write one record, returning the ack error ('' on success)."""
    try:
        if procedure is None:
            raise QueryError(f'{PROCEDURE_DOES_NOT_EXIST}: {context.target}')
        cn.strategy.call_procedure(cn, procedure, context.decode(record))
    except ConnectorError as exc:
        logger.warning(f'Record {record.correlation_id!r} failed: {exc}')
        return str(exc)
    return ''
