"""
Record streaming for publish.

Rows of a shape's row source are fetched one at a time, encoded into
records keyed by property id, and handed to the caller's sink. A sink
failure stops fetching at once and propagates.
"""
import json
import logging
from typing import TYPE_CHECKING

from plugin_oracle.adapters.type_mapping import resolve_type
from plugin_oracle.exceptions import PublishError, QueryError, ValidationError
from plugin_oracle.pub import Property, PublishFilter, Record, RecordSink, Schema
from plugin_oracle.sql import build_select, translate_filters

if TYPE_CHECKING:
    from plugin_oracle.connection import ConnectionWrapper
    from plugin_oracle.options import Settings

logger = logging.getLogger(__name__)


class RecordEncoder:
    """Encodes result rows of a shape into records.
    """

    def __init__(self, dialect: str, properties: list[Property]) -> None:
        self.ids = [p.id for p in properties]
        self.mappings = [resolve_type(dialect, p.type_at_source) for p in properties]

    def encode(self, row: tuple | list) -> Record:
        data = {pid: mapping.encode(value)
                for pid, mapping, value in zip(self.ids, self.mappings, row)}
        return Record(data_json=json.dumps(data))


def publish_stream(cn: 'ConnectionWrapper', settings: 'Settings', schema: Schema,
                   filters: list[PublishFilter], sink: RecordSink) -> int:
    """Stream a shape's rows to `sink`, returning the number of records sent.

    The pre-publish query runs first and a failure aborts the publish. The
    post-publish query runs afterwards even when streaming failed.

    Raises
        ValidationError: If the shape has no properties or a filter is invalid
        PublishError: If a pre- or post-publish query fails
    """
    if not schema.properties:
        raise ValidationError(f'shape {schema.id or schema.query!r} has no properties')

    strategy = cn.strategy
    if settings.pre_publish_query:
        try:
            strategy.execute(cn, settings.pre_publish_query)
        except QueryError as exc:
            raise PublishError(f'pre-publish query failed: {exc}') from exc

    try:
        sent = _stream_records(cn, schema, filters, sink)
    except Exception as exc:
        _run_post_publish(cn, settings, exc)
        raise
    _run_post_publish(cn, settings, None)
    return sent


def _stream_records(cn: 'ConnectionWrapper', schema: Schema,
                    filters: list[PublishFilter], sink: RecordSink) -> int:
    strategy = cn.strategy
    clause = translate_filters(strategy, schema.properties, filters)
    sql, params = build_select(strategy, schema, clause)
    encoder = RecordEncoder(strategy.dialect_name, schema.properties)

    sent = 0
    rows = strategy.iter_rows(cn, sql, params)
    try:
        for row in rows:
            sink.send(encoder.encode(row))
            sent += 1
    finally:
        rows.close()
    logger.info(f'Published {sent} record(s) from {schema.id or schema.name}')
    return sent


def _run_post_publish(cn: 'ConnectionWrapper', settings: 'Settings',
                      error: Exception | None) -> None:
    if not settings.post_publish_query:
        return
    try:
        cn.strategy.execute(cn, settings.post_publish_query)
    except QueryError as exc:
        if error is None:
            raise PublishError(f'post-publish query failed: {exc}') from exc
        raise PublishError(f'{error}; post-publish query failed: {exc}') from error


def sample_records(cn: 'ConnectionWrapper', schema: Schema, size: int) -> list[Record]:
    """Fetch up to `size` encoded records from a shape's row source.
    """
    if size <= 0:
        return []
    strategy = cn.strategy
    sql, params = build_select(strategy, schema)
    sql = strategy.limit_sql(sql, strategy.placeholder(len(params) + 1))
    encoder = RecordEncoder(strategy.dialect_name, schema.properties)
    return [encoder.encode(row) for row in strategy.iter_rows(cn, sql, [*params, size])]
