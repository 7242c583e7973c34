"""
Message types of the publisher plugin protocol.

The transport is owned by the host; this module only mirrors its message
shapes as dataclasses so the engine can be driven without a wire layer.
Streams are duck-typed:

- a record sink is any object with ``send(record)``
- a write stream is any object with ``recv()`` returning a ``Record`` or
  ``None`` at end of input, and ``send(ack)``
"""
import json
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Protocol


class PropertyType(Enum):
    """Abstract property types understood by the host."""
    STRING = 'STRING'
    BOOL = 'BOOL'
    INTEGER = 'INTEGER'
    FLOAT = 'FLOAT'
    DECIMAL = 'DECIMAL'
    DATE = 'DATE'
    TIME = 'TIME'
    DATETIME = 'DATETIME'
    TEXT = 'TEXT'
    BLOB = 'BLOB'
    JSON = 'JSON'
    XML = 'XML'


class CountKind(Enum):
    UNAVAILABLE = 'UNAVAILABLE'
    ESTIMATE = 'ESTIMATE'
    EXACT = 'EXACT'


class DiscoverMode(Enum):
    ALL = 'ALL'
    REFRESH = 'REFRESH'


class FilterKind(Enum):
    EQUALS = 'EQUALS'
    GREATER_THAN = 'GREATER_THAN'
    LESS_THAN = 'LESS_THAN'


@dataclass
class Property:
    id: str = ''
    name: str = ''
    type: PropertyType = PropertyType.STRING
    type_at_source: str = ''
    is_key: bool = False
    is_nullable: bool = False


@dataclass
class Count:
    kind: CountKind = CountKind.UNAVAILABLE
    value: int = 0


@dataclass
class Record:
    data_json: str = ''
    correlation_id: str = ''

    @property
    def data(self) -> dict[str, Any]:
        """Decoded record payload."""
        return json.loads(self.data_json) if self.data_json else {}


@dataclass
class Schema:
    """A shape: a typed tabular source backed by a native object or a query.
    """
    id: str = ''
    name: str = ''
    query: str = ''
    properties: list[Property] = field(default_factory=list)
    sample: list[Record] = field(default_factory=list)
    count: Count | None = None
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self, dict_factory=_enum_dict_factory)


@dataclass
class RecordAck:
    correlation_id: str = ''
    error: str = ''


@dataclass
class PublishFilter:
    kind: FilterKind = FilterKind.EQUALS
    property_id: str = ''
    value: str = ''


@dataclass
class ConnectRequest:
    settings_json: str = ''

    @classmethod
    def from_settings(cls, settings: Any) -> 'ConnectRequest':
        """Build a request from a ``Settings`` object or a plain dict."""
        if hasattr(settings, 'to_json'):
            return cls(settings_json=settings.to_json())
        return cls(settings_json=json.dumps(settings))


@dataclass
class ConnectResponse:
    settings_error: str = ''


@dataclass
class DiscoverSchemasRequest:
    mode: DiscoverMode = DiscoverMode.ALL
    to_refresh: list[Schema] = field(default_factory=list)
    sample_size: int = 0


@dataclass
class DiscoverSchemasResponse:
    schemas: list[Schema] = field(default_factory=list)


@dataclass
class ReadRequest:
    schema: Schema | None = None
    filters: list[PublishFilter] = field(default_factory=list)


@dataclass
class ConfigurationFormRequest:
    data_json: str = ''
    state_json: str = ''


@dataclass
class ConfigurationFormResponse:
    schema_json: str = ''
    ui_json: str = ''
    data_json: str = ''
    state_json: str = ''
    errors: list[str] = field(default_factory=list)


@dataclass
class ConfigureWriteRequest:
    form: ConfigurationFormRequest | None = None


@dataclass
class ConfigureWriteResponse:
    form: ConfigurationFormResponse | None = None
    schema: Schema | None = None


@dataclass
class PrepareWriteRequest:
    schema: Schema | None = None
    commit_sla_seconds: int = 0


@dataclass
class PrepareWriteResponse:
    pass


@dataclass
class DisconnectRequest:
    pass


@dataclass
class DisconnectResponse:
    pass


class RecordSink(Protocol):
    def send(self, record: Record) -> None: ...


class WriteChannel(Protocol):
    def recv(self) -> Record | None: ...

    def send(self, ack: RecordAck) -> None: ...


def _enum_dict_factory(items: list[tuple[str, Any]]) -> dict[str, Any]:
    return {k: v.value if isinstance(v, Enum) else v for k, v in items}
