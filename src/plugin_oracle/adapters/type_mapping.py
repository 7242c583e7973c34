"""
Type resolution and value encoding for native columns.

This module maps a native column or parameter type descriptor to:

1. The abstract property type exposed to the host
2. An encoder turning a fetched driver value into its JSON representation
3. A decoder turning a JSON value into a bind value for write-back
4. An optional select expression for types the driver cannot fetch faithfully

Resolution is table driven: each dialect registers an ordered list of type
handlers, and the first handler that recognises a descriptor wins. Adding a
native type means adding a handler; streaming and write-back code never
changes.
"""
import base64
import datetime
import decimal
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import dateutil.parser
from plugin_oracle.exceptions import TypeConversionError
from plugin_oracle.pub import PropertyType

logger = logging.getLogger(__name__)

# Character columns longer than this are exposed as TEXT
LONG_TEXT_THRESHOLD = 1024

_TEXTUAL = {PropertyType.STRING, PropertyType.TEXT}

_NUMERIC_TYPES = {'NUMBER', 'NUMERIC', 'DECIMAL', 'FLOAT', 'DEC'}

_INTERVAL_YM = re.compile(r'^INTERVAL YEAR(?:\((\d+)\))? TO MONTH$')
_INTERVAL_DS = re.compile(r'^INTERVAL DAY(?:\((\d+)\))? TO SECOND(?:\((\d+)\))?$')
_TIMESTAMP = re.compile(r'^TIMESTAMP(?:\(\d+\))?((?: WITH(?: LOCAL)? TIME ZONE)?)$')
_GENERIC = re.compile(r'^(?P<name>[A-Z][A-Z0-9_ ]*?)\s*(?:\((?P<args>[^)]*)\))?$')


@dataclass(frozen=True, slots=True)
class ColumnType:
    """Native type descriptor of a column or procedure parameter.

    ``name`` is the upper-case base type without size arguments
    (``VARCHAR2``, ``TIMESTAMP WITH TIME ZONE``, ``INTERVAL DAY TO SECOND``).
    For intervals ``precision`` is the leading field precision and ``scale``
    the fractional seconds precision.
    """
    name: str
    length: int | None = None
    precision: int | None = None
    scale: int | None = None

    def render(self) -> str:
        """Render the descriptor as a type-at-source string.
        """
        if self.name == 'INTERVAL YEAR TO MONTH':
            if self.precision is None:
                return self.name
            return f'INTERVAL YEAR({self.precision}) TO MONTH'
        if self.name == 'INTERVAL DAY TO SECOND':
            day = f'({self.precision})' if self.precision is not None else ''
            second = f'({self.scale})' if self.scale is not None else ''
            return f'INTERVAL DAY{day} TO SECOND{second}'
        if self.name in _NUMERIC_TYPES:
            if self.precision is None and self.scale is None:
                return self.name
            if self.scale is None:
                return f'{self.name}({self.precision})'
            precision = '*' if self.precision is None else self.precision
            return f'{self.name}({precision},{self.scale})'
        if self.length:
            return f'{self.name}({self.length})'
        return self.name

    @classmethod
    def parse(cls, text: str | None) -> 'ColumnType':
        """Parse a declared type or type-at-source string.

        Catalog spellings such as ``TIMESTAMP(6) WITH TIME ZONE`` or
        ``VARCHAR2(40 CHAR)`` are normalised; anything unrecognised is kept
        verbatim as the type name.
        """
        text = ' '.join((text or '').upper().split())
        if not text:
            return cls('')

        if m := _INTERVAL_YM.match(text):
            return cls('INTERVAL YEAR TO MONTH', precision=_int_or_none(m.group(1)))
        if m := _INTERVAL_DS.match(text):
            return cls('INTERVAL DAY TO SECOND', precision=_int_or_none(m.group(1)),
                       scale=_int_or_none(m.group(2)))
        if m := _TIMESTAMP.match(text):
            return cls(f'TIMESTAMP{m.group(1)}')

        m = _GENERIC.match(text)
        if not m:
            return cls(text)
        name, args = m.group('name'), m.group('args')
        if not args:
            return cls(name)
        parts = [p.strip() for p in args.split(',')]
        if name in _NUMERIC_TYPES:
            precision = _int_or_none(parts[0])
            scale = _int_or_none(parts[1]) if len(parts) > 1 else None
            return cls(name, precision=precision, scale=scale)
        return cls(name, length=_int_or_none(parts[0].split(' ')[0]))


def _int_or_none(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


#
# Encoders: driver value -> JSON value. None never reaches an encoder.
#

def _read_lob(value: Any) -> Any:
    if hasattr(value, 'read'):
        return value.read()
    return value


def encode_text(value: Any, column_type: ColumnType) -> str:
    value = _read_lob(value)
    if isinstance(value, bytes | bytearray | memoryview):
        return bytes(value).decode('utf-8')
    return str(value)


def encode_integer(value: Any, column_type: ColumnType) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise TypeConversionError(f'cannot encode {value!r} as integer') from exc


def encode_float(value: Any, column_type: ColumnType) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise TypeConversionError(f'cannot encode {value!r} as float') from exc


def encode_bool(value: Any, column_type: ColumnType) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {'1', 't', 'true', 'y', 'yes'}
    return bool(value)


def format_rfc3339(value: datetime.datetime | datetime.date) -> str:
    """Format a date or datetime as an RFC 3339 timestamp.

    Naive values are taken as UTC. Aware values keep their own offset.
    Fractional seconds are trimmed of trailing zeros.
    """
    if not isinstance(value, datetime.datetime):
        value = datetime.datetime(value.year, value.month, value.day)
    text = value.strftime('%Y-%m-%dT%H:%M:%S')
    if value.microsecond:
        text += f'.{value.microsecond:06d}'.rstrip('0')
    offset = value.utcoffset()
    if not offset:
        return text + 'Z'
    sign = '-' if offset < datetime.timedelta(0) else '+'
    minutes = abs(int(offset.total_seconds())) // 60
    return f'{text}{sign}{minutes // 60:02d}:{minutes % 60:02d}'


def encode_datetime(value: Any, column_type: ColumnType) -> str:
    if isinstance(value, str):
        try:
            value = dateutil.parser.isoparse(value.strip())
        except ValueError as exc:
            raise TypeConversionError(f'cannot encode {value!r} as timestamp') from exc
    if not isinstance(value, datetime.date):
        raise TypeConversionError(f'cannot encode {value!r} as timestamp')
    return format_rfc3339(value)


def format_interval_ym(months: int, year_precision: int = 2) -> str:
    """Format a year-to-month interval given in months, e.g. ``+02-04``."""
    sign = '-' if months < 0 else '+'
    years, months = divmod(abs(months), 12)
    return f'{sign}{years:0{year_precision}d}-{months:02d}'


def format_interval_ds(value: datetime.timedelta, day_precision: int = 2,
                       fraction_precision: int = 6) -> str:
    """Format a day-to-second interval, e.g. ``+0120 06:31:14.00``."""
    sign = '-' if value < datetime.timedelta(0) else '+'
    value = abs(value)
    hours, rest = divmod(value.seconds, 3600)
    minutes, seconds = divmod(rest, 60)
    text = f'{sign}{value.days:0{day_precision}d} {hours:02d}:{minutes:02d}:{seconds:02d}'
    if fraction_precision:
        text += '.' + f'{value.microseconds:06d}'.ljust(fraction_precision, '0')[:fraction_precision]
    return text


def encode_interval_ym(value: Any, column_type: ColumnType) -> str:
    if isinstance(value, str):
        return value
    if hasattr(value, 'years') and hasattr(value, 'months'):
        months = value.years * 12 + value.months
    else:
        months = int(value)
    precision = 2 if column_type.precision is None else column_type.precision
    return format_interval_ym(months, precision)


def encode_interval_ds(value: Any, column_type: ColumnType) -> str:
    if isinstance(value, str):
        return value
    if not isinstance(value, datetime.timedelta):
        raise TypeConversionError(f'cannot encode {value!r} as interval')
    day_precision = 2 if column_type.precision is None else column_type.precision
    fraction_precision = 6 if column_type.scale is None else column_type.scale
    return format_interval_ds(value, day_precision, fraction_precision)


def encode_binary(value: Any, column_type: ColumnType) -> str:
    value = _read_lob(value)
    if isinstance(value, str):
        value = value.encode('utf-8')
    return base64.b64encode(bytes(value)).decode('ascii')


def encode_dynamic(value: Any, column_type: ColumnType) -> str:
    """Encode a value of an undeclared type by its Python type."""
    value = _read_lob(value)
    if isinstance(value, bytes | bytearray | memoryview):
        return encode_binary(value, column_type)
    if isinstance(value, datetime.date):
        return format_rfc3339(value)
    if isinstance(value, datetime.timedelta):
        return format_interval_ds(value)
    return str(value)


#
# Decoders: JSON value -> bind value, keyed by abstract type
#

def _decode_integer(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f'{value} is not integral')
        return int(value)
    return int(value)


def _decode_float(value: Any) -> float:
    return float(value)


def _decode_datetime(value: Any) -> datetime.datetime:
    if isinstance(value, datetime.datetime):
        return value
    return dateutil.parser.isoparse(str(value))


def _decode_bool(value: Any) -> bool:
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {'1', 't', 'true', 'y', 'yes'}:
            return True
        if lowered in {'0', 'f', 'false', 'n', 'no'}:
            return False
        raise ValueError(f'{value!r} is not a boolean')
    return bool(value)


def _decode_text(value: Any) -> str:
    return value if isinstance(value, str) else str(value)


_DECODERS: dict[PropertyType, Callable[[Any], Any]] = {
    PropertyType.INTEGER: _decode_integer,
    PropertyType.FLOAT: _decode_float,
    PropertyType.DECIMAL: lambda v: decimal.Decimal(str(v)),
    PropertyType.DATETIME: _decode_datetime,
    PropertyType.DATE: lambda v: _decode_datetime(v).date(),
    PropertyType.BOOL: _decode_bool,
    PropertyType.STRING: _decode_text,
    PropertyType.TEXT: _decode_text,
}


def decode_value(property_type: PropertyType, value: Any) -> Any:
    """Decode a JSON value into a bind value for the given abstract type.

    Empty strings decode to None for non-textual types.
    """
    if value is None:
        return None
    if value == '' and property_type not in _TEXTUAL:
        return None
    decoder = _DECODERS.get(property_type)
    if decoder is None:
        return value
    try:
        return decoder(value)
    except (TypeError, ValueError, decimal.InvalidOperation) as exc:
        raise TypeConversionError(f'cannot decode {value!r} as {property_type.value}') from exc


#
# Handlers
#

class TypeHandler:
    """Base class for native type handlers.
    """

    def __init__(self, property_type: PropertyType,
                 encoder: Callable[[Any, ColumnType], Any] = encode_text,
                 select_expression: str | None = None) -> None:
        self.property_type = property_type
        self.encoder = encoder
        self.select_expression = select_expression

    def handles_type(self, column_type: ColumnType) -> bool:
        """Check if this handler can handle the given descriptor.
        """
        return False

    def property_type_for(self, column_type: ColumnType) -> PropertyType:
        return self.property_type


def create_simple_handler(name: str, property_type: PropertyType,
                          type_names: set[str] | None = None,
                          encoder: Callable[[Any, ColumnType], Any] = encode_text,
                          select_expression: str | None = None,
                          matcher: Callable[[str], bool] | None = None) -> TypeHandler:
    """Factory function for creating simple type handlers.

    Args:
        name: Handler name (used for the class name)
        property_type: Abstract type this handler returns
        type_names: Set of native type names this handler recognises
        encoder: Value encoder for fetched values
        select_expression: Optional template wrapping the column in selects
        matcher: Optional predicate on the type name, used instead of type_names

    Returns
        A TypeHandler instance
    """
    class SimpleHandler(TypeHandler):
        def __init__(self):
            super().__init__(property_type, encoder, select_expression)
            self.type_names = type_names or set()

        def handles_type(self, column_type: ColumnType) -> bool:
            if matcher is not None:
                return matcher(column_type.name)
            return column_type.name in self.type_names

    SimpleHandler.__name__ = f'{name}Handler'
    return SimpleHandler()


class CharacterHandler(TypeHandler):
    """Character columns: STRING up to the long text threshold, TEXT beyond.
    """

    def __init__(self, type_names: set[str] | None = None,
                 matcher: Callable[[str], bool] | None = None) -> None:
        super().__init__(PropertyType.STRING, encode_text)
        self.type_names = type_names or set()
        self.matcher = matcher

    def handles_type(self, column_type: ColumnType) -> bool:
        if self.matcher is not None:
            return self.matcher(column_type.name)
        return column_type.name in self.type_names

    def property_type_for(self, column_type: ColumnType) -> PropertyType:
        if column_type.length and column_type.length > LONG_TEXT_THRESHOLD:
            return PropertyType.TEXT
        return PropertyType.STRING


class NumericHandler(TypeHandler):
    """Exact numerics: INTEGER when the scale is zero, FLOAT otherwise.
    """

    def __init__(self, type_names: set[str] | None = None,
                 matcher: Callable[[str], bool] | None = None) -> None:
        super().__init__(PropertyType.FLOAT, encode_float)
        self.type_names = type_names or set()
        self.matcher = matcher

    def handles_type(self, column_type: ColumnType) -> bool:
        if self.matcher is not None:
            return self.matcher(column_type.name)
        return column_type.name in self.type_names

    def property_type_for(self, column_type: ColumnType) -> PropertyType:
        if column_type.scale == 0:
            return PropertyType.INTEGER
        return PropertyType.FLOAT


_FALLBACK_HANDLER = create_simple_handler('Fallback', PropertyType.STRING, encoder=encode_dynamic,
                                          matcher=lambda name: True)


@dataclass(frozen=True)
class TypeMapping:
    """Resolved mapping of one native descriptor.
    """
    column_type: ColumnType
    property_type: PropertyType
    handler: TypeHandler

    @property
    def select_expression(self) -> str | None:
        return self.handler.select_expression

    def encode(self, value: Any) -> Any:
        """Encode a fetched value; NULL is '' for textual types, None otherwise."""
        if value is None:
            return '' if self.property_type in _TEXTUAL else None
        if self.property_type is PropertyType.INTEGER:
            return encode_integer(value, self.column_type)
        return self.handler.encoder(value, self.column_type)

    def decode(self, value: Any) -> Any:
        return decode_value(self.property_type, value)


class TypeHandlerRegistry:
    """Registry for native type handlers

    Handlers are kept per dialect in registration order; the first handler
    recognising a descriptor wins.
    """

    _instance = None

    @classmethod
    def get_instance(cls) -> 'TypeHandlerRegistry':
        """Get singleton instance.
        """
        if cls._instance is None:
            cls._instance = cls()
            _register_default_handlers(cls._instance)
        return cls._instance

    def __init__(self) -> None:
        self._handlers: dict[str, list[TypeHandler]] = {}

    def register_handler(self, db_type: str, handler: TypeHandler) -> None:
        """Register a new type handler.
        """
        self._handlers.setdefault(db_type, []).append(handler)

    def get_handler(self, db_type: str, column_type: ColumnType) -> TypeHandler:
        for handler in self._handlers.get(db_type, []):
            if handler.handles_type(column_type):
                return handler
        logger.debug(f'No {db_type} handler for {column_type.name!r}, using fallback')
        return _FALLBACK_HANDLER


def _register_default_handlers(registry: TypeHandlerRegistry) -> None:
    oracle = [
        CharacterHandler({'CHAR', 'NCHAR', 'VARCHAR', 'VARCHAR2', 'NVARCHAR2', 'ROWID', 'UROWID'}),
        create_simple_handler('OracleLong', PropertyType.TEXT, {'LONG'}),
        create_simple_handler('OracleInteger', PropertyType.INTEGER,
                              {'INTEGER', 'INT', 'SMALLINT'}, encode_integer),
        NumericHandler({'NUMBER', 'NUMERIC', 'DECIMAL', 'DEC'}),
        create_simple_handler('OracleFloat', PropertyType.FLOAT,
                              {'FLOAT', 'BINARY_FLOAT', 'BINARY_DOUBLE', 'REAL', 'DOUBLE PRECISION'},
                              encode_float),
        create_simple_handler('OracleTimestampTz', PropertyType.DATETIME,
                              {'TIMESTAMP WITH TIME ZONE'}, encode_datetime,
                              select_expression="TO_CHAR({column}, 'YYYY-MM-DD\"T\"HH24:MI:SS.FF6TZH:TZM')"),
        create_simple_handler('OracleDateTime', PropertyType.DATETIME,
                              {'DATE', 'TIMESTAMP', 'TIMESTAMP WITH LOCAL TIME ZONE'}, encode_datetime),
        create_simple_handler('OracleIntervalYM', PropertyType.STRING,
                              {'INTERVAL YEAR TO MONTH'}, encode_interval_ym),
        create_simple_handler('OracleIntervalDS', PropertyType.STRING,
                              {'INTERVAL DAY TO SECOND'}, encode_interval_ds),
        create_simple_handler('OracleBinary', PropertyType.STRING,
                              {'BLOB', 'RAW', 'LONG RAW'}, encode_binary),
        create_simple_handler('OracleXml', PropertyType.STRING, {'XMLTYPE'}, encode_text,
                              select_expression='{column}.getClobVal()'),
        create_simple_handler('OracleLob', PropertyType.STRING, {'CLOB', 'NCLOB'}, encode_text),
        create_simple_handler('OracleBoolean', PropertyType.BOOL, {'BOOLEAN'}, encode_bool),
    ]
    for handler in oracle:
        registry.register_handler('oracle', handler)

    # SQLite declared types follow its column affinity rules
    sqlite = [
        create_simple_handler('SqliteBool', PropertyType.BOOL, encoder=encode_bool,
                              matcher=lambda n: 'BOOL' in n),
        create_simple_handler('SqliteDateTime', PropertyType.DATETIME, encoder=encode_datetime,
                              matcher=lambda n: 'DATE' in n or 'TIME' in n),
        create_simple_handler('SqliteInteger', PropertyType.INTEGER, encoder=encode_integer,
                              matcher=lambda n: 'INT' in n),
        CharacterHandler(matcher=lambda n: any(t in n for t in ('CHAR', 'CLOB', 'TEXT'))),
        create_simple_handler('SqliteBlob', PropertyType.STRING, encoder=encode_binary,
                              matcher=lambda n: 'BLOB' in n),
        create_simple_handler('SqliteReal', PropertyType.FLOAT, encoder=encode_float,
                              matcher=lambda n: any(t in n for t in ('REAL', 'FLOA', 'DOUB'))),
        NumericHandler(matcher=lambda n: n in {'NUMERIC', 'DECIMAL'}),
    ]
    for handler in sqlite:
        registry.register_handler('sqlite', handler)


def resolve_type(db_type: str, column_type: ColumnType | str) -> TypeMapping:
    """
    Central function for type resolution across the codebase.

    Args:
        db_type: Dialect name ('oracle', 'sqlite')
        column_type: Native descriptor, or a type-at-source string to parse

    Returns
        TypeMapping with the abstract type, encoder and decoder
    """
    if isinstance(column_type, str):
        column_type = ColumnType.parse(column_type)
    handler = TypeHandlerRegistry.get_instance().get_handler(db_type, column_type)
    return TypeMapping(column_type, handler.property_type_for(column_type), handler)
