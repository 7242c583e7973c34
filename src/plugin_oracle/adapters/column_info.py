"""
Column metadata extraction from catalogs and cursor descriptions.
"""
import logging
from dataclasses import dataclass, replace
from typing import Any

from plugin_oracle.adapters.type_mapping import ColumnType, resolve_type
from plugin_oracle.pub import Property
from plugin_oracle.sql import quote_identifier

logger = logging.getLogger(__name__)

# python-oracledb DbType names -> Oracle type names
_ORACLE_DB_TYPES = {
    'DB_TYPE_CHAR': 'CHAR',
    'DB_TYPE_NCHAR': 'NCHAR',
    'DB_TYPE_VARCHAR': 'VARCHAR2',
    'DB_TYPE_NVARCHAR': 'NVARCHAR2',
    'DB_TYPE_LONG': 'LONG',
    'DB_TYPE_LONG_NVARCHAR': 'LONG',
    'DB_TYPE_RAW': 'RAW',
    'DB_TYPE_LONG_RAW': 'LONG RAW',
    'DB_TYPE_NUMBER': 'NUMBER',
    'DB_TYPE_BINARY_INTEGER': 'INTEGER',
    'DB_TYPE_BINARY_FLOAT': 'BINARY_FLOAT',
    'DB_TYPE_BINARY_DOUBLE': 'BINARY_DOUBLE',
    'DB_TYPE_DATE': 'DATE',
    'DB_TYPE_TIMESTAMP': 'TIMESTAMP',
    'DB_TYPE_TIMESTAMP_TZ': 'TIMESTAMP WITH TIME ZONE',
    'DB_TYPE_TIMESTAMP_LTZ': 'TIMESTAMP WITH LOCAL TIME ZONE',
    'DB_TYPE_INTERVAL_YM': 'INTERVAL YEAR TO MONTH',
    'DB_TYPE_INTERVAL_DS': 'INTERVAL DAY TO SECOND',
    'DB_TYPE_CLOB': 'CLOB',
    'DB_TYPE_NCLOB': 'NCLOB',
    'DB_TYPE_BLOB': 'BLOB',
    'DB_TYPE_BOOLEAN': 'BOOLEAN',
    'DB_TYPE_ROWID': 'ROWID',
    'DB_TYPE_UROWID': 'UROWID',
    'DB_TYPE_XMLTYPE': 'XMLTYPE',
    'DB_TYPE_JSON': 'JSON',
}

_CHARACTER_TYPES = {'CHAR', 'NCHAR', 'VARCHAR', 'VARCHAR2', 'NVARCHAR2', 'RAW'}

# Oracle reports an unspecified NUMBER scale as -127
_UNSPECIFIED_SCALE = -127


@dataclass(frozen=True, slots=True)
class ColumnInfo:
    """Column (or procedure parameter) metadata with its native descriptor.
    """
    name: str
    column_type: ColumnType
    is_nullable: bool = True
    is_key: bool = False

    def to_property(self, dialect: str, quoted: bool = True) -> Property:
        """Build the protocol property for this column.

        Column ids are quoted names; procedure parameter ids are bare
        (``quoted=False``).
        """
        mapping = resolve_type(dialect, self.column_type)
        return Property(
            id=quote_identifier(self.name, dialect) if quoted else self.name,
            name=self.name,
            type=mapping.property_type,
            type_at_source=self.column_type.render(),
            is_key=self.is_key,
            is_nullable=self.is_nullable,
        )


def column_type_from_catalog(data_type: str, length: Any = None,
                             precision: Any = None, scale: Any = None) -> ColumnType:
    """Build a descriptor from catalog columns (``DATA_TYPE``, length, precision, scale).

    The catalog spelling wins for intervals and timestamps; explicit
    length, precision and scale fill in the rest.
    """
    column_type = ColumnType.parse(data_type)
    if column_type.name.startswith('INTERVAL'):
        return replace(column_type,
                       precision=_int_or(precision, column_type.precision),
                       scale=_int_or(scale, column_type.scale))
    if column_type.name in {'NUMBER', 'NUMERIC', 'DECIMAL', 'FLOAT'}:
        return replace(column_type,
                       precision=_int_or(precision, column_type.precision),
                       scale=_int_or(scale, column_type.scale))
    if column_type.name in _CHARACTER_TYPES:
        return replace(column_type, length=_int_or(length, column_type.length) or None)
    return column_type


def _int_or(value: Any, default: int | None) -> int | None:
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _oracle_description_type(type_code: Any, display_size: Any, internal_size: Any,
                             precision: Any, scale: Any) -> ColumnType:
    code_name = getattr(type_code, 'name', str(type_code))
    name = _ORACLE_DB_TYPES.get(code_name, code_name.removeprefix('DB_TYPE_'))
    if name == 'NUMBER':
        if scale == _UNSPECIFIED_SCALE:
            if precision:
                return ColumnType('FLOAT', precision=precision)
            return ColumnType('NUMBER')
        return ColumnType('NUMBER', precision=precision or None, scale=scale)
    if name in _CHARACTER_TYPES:
        return ColumnType(name, length=display_size or internal_size or None)
    if name.startswith('INTERVAL'):
        return ColumnType(name, precision=precision or None, scale=scale or None)
    return ColumnType(name)


def columns_from_description(description: Any, dialect: str) -> list[ColumnInfo]:
    """Extract column metadata from a DBAPI cursor description.

    SQLite cursors carry no type information, so its columns come back
    with an empty descriptor and are typed from their values.
    """
    if not description:
        return []

    columns = []
    for desc in description:
        name = desc[0]
        if dialect == 'oracle':
            column_type = _oracle_description_type(*desc[1:6])
            nullable = bool(desc[6]) if len(desc) > 6 else True
        else:
            column_type = ColumnType('')
            nullable = True
        columns.append(ColumnInfo(name, column_type, is_nullable=nullable))
    logger.debug(f'Described {len(columns)} column(s) from cursor')
    return columns
