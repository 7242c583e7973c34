"""
Oracle-specific strategy implementation.

This module implements the DatabaseStrategy interface for Oracle through the
python-oracledb driver. It handles Oracle's particulars such as:
- Catalog introspection through the ALL_* dictionary views
- Exclusion of Oracle-maintained schemas from discovery
- A UTC session time zone
- Numbered bind markers (:1, :2, ...)
- ROWNUM limiting for samples
- Stored procedure invocation through cursor.callproc
"""
import datetime
import decimal
import logging
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from plugin_oracle.adapters.column_info import ColumnInfo, column_type_from_catalog
from plugin_oracle.cache import cacheable_strategy
from plugin_oracle.exceptions import DriverError, QueryError, ValidationError
from plugin_oracle.pub import PropertyType
from plugin_oracle.sql import split_identifier
from plugin_oracle.strategy.base import DatabaseStrategy, ObjectName
from plugin_oracle.strategy.base import register_strategy

if TYPE_CHECKING:
    from plugin_oracle.connection import ConnectionWrapper
    from plugin_oracle.options import Settings

logger = logging.getLogger(__name__)

SESSION_TIME_ZONE_SQL = "ALTER SESSION SET TIME_ZONE = 'UTC'"


@register_strategy('oracle')
class OracleStrategy(DatabaseStrategy):
    """Oracle-specific operations.
    """

    folds_case = True

    @property
    def dialect_name(self) -> str:
        """Return the dialect identifier for Oracle."""
        return 'oracle'

    @classmethod
    def get_required_options(cls) -> list[str]:
        """Return required options for Oracle connections."""
        return ['hostname', 'port', 'service_name', 'username', 'password']

    def build_connection_url(self, options: 'Settings') -> sa.URL:
        """Build the SQLAlchemy connection URL for Oracle."""
        return sa.URL.create(
            drivername='oracle+oracledb',
            username=options.username,
            password=options.password,
            host=options.hostname,
            port=options.port,
            query={'service_name': options.service_name},
        )

    def get_engine_kwargs(self, options: 'Settings') -> dict[str, Any]:
        """Return SQLAlchemy create_engine kwargs for Oracle."""
        if options.timeout:
            return {'connect_args': {'tcp_connect_timeout': options.timeout}}
        return {}

    def configure_connection(self, conn: Any) -> None:
        """Configure connection settings for Oracle.

        Pins the session time zone to UTC: zone-less and local-time-zone
        datetime columns are read and compared as UTC.
        """
        raw_conn = conn
        if hasattr(conn, 'driver_connection'):
            raw_conn = conn.driver_connection
        raw_conn.autocommit = True
        with raw_conn.cursor() as cursor:
            cursor.execute(SESSION_TIME_ZONE_SQL)

    def current_schema(self, cn: 'ConnectionWrapper') -> str:
        return self.select_scalar(cn, "SELECT SYS_CONTEXT('USERENV', 'CURRENT_SCHEMA') FROM DUAL")

    def list_objects(self, cn: 'ConnectionWrapper') -> list[ObjectName]:
        """List user tables and views, skipping Oracle-maintained schemas.
        """
        sql = """
SELECT o.OWNER, o.OBJECT_NAME, o.OBJECT_TYPE
FROM ALL_OBJECTS o
JOIN ALL_USERS u ON u.USERNAME = o.OWNER
WHERE o.OBJECT_TYPE IN ('TABLE', 'VIEW')
  AND u.ORACLE_MAINTAINED = 'N'
  AND o.SECONDARY = 'N'
  AND o.OBJECT_NAME NOT LIKE 'BIN$%'
ORDER BY o.OWNER, o.OBJECT_NAME
"""
        return [ObjectName(r['OWNER'], r['OBJECT_NAME'], r['OBJECT_TYPE'])
                for r in self._select_raw(cn, sql)]

    def find_object(self, cn: 'ConnectionWrapper', owner: str, name: str) -> ObjectName | None:
        sql = """
SELECT OWNER, OBJECT_NAME, OBJECT_TYPE
FROM ALL_OBJECTS
WHERE OWNER = :1 AND OBJECT_NAME = :2 AND OBJECT_TYPE IN ('TABLE', 'VIEW')
"""
        rows = self._select_raw(cn, sql, (owner, name))
        if not rows:
            return None
        return ObjectName(rows[0]['OWNER'], rows[0]['OBJECT_NAME'], rows[0]['OBJECT_TYPE'])

    @cacheable_strategy('table_columns', ttl=300, maxsize=50)
    def get_columns(self, cn: 'ConnectionWrapper', obj: ObjectName,
                    bypass_cache: bool = False) -> list[ColumnInfo]:
        """Describe columns from ALL_TAB_COLUMNS.

        Oracle cannot report key-ness through this view, so ``is_key`` is
        always false.
        """
        sql = """
SELECT COLUMN_NAME, DATA_TYPE, CHAR_LENGTH, DATA_PRECISION, DATA_SCALE, NULLABLE
FROM ALL_TAB_COLUMNS
WHERE OWNER = :1 AND TABLE_NAME = :2
ORDER BY COLUMN_ID
"""
        return [
            ColumnInfo(
                name=r['COLUMN_NAME'],
                column_type=column_type_from_catalog(r['DATA_TYPE'], r['CHAR_LENGTH'],
                                                     r['DATA_PRECISION'], r['DATA_SCALE']),
                is_nullable=r['NULLABLE'] == 'Y',
            )
            for r in self._select_raw(cn, sql, (obj.owner, obj.name))
        ]

    def placeholder(self, index: int) -> str:
        return f':{index}'

    def bind_expression(self, index: int, property_type: PropertyType) -> str:
        """Bind DATETIME filter values as UTC timestamps.
        """
        if property_type in {PropertyType.DATETIME, PropertyType.DATE}:
            return f"FROM_TZ(CAST(:{index} AS TIMESTAMP), 'UTC')"
        return self.placeholder(index)

    def adapt_filter_value(self, property_type: PropertyType, value: Any) -> Any:
        """Floats bind as NUMBER so BINARY_FLOAT columns compare in their own precision.
        """
        if isinstance(value, float):
            return decimal.Decimal(repr(value))
        if isinstance(value, datetime.datetime) and value.tzinfo is not None:
            return value.astimezone(datetime.timezone.utc).replace(tzinfo=None)
        if isinstance(value, bool):
            return int(value)
        return value

    def limit_sql(self, sql: str, placeholder: str) -> str:
        return f'SELECT * FROM ({sql}) WHERE ROWNUM <= {placeholder}'

    def estimate_count(self, cn: 'ConnectionWrapper', obj: ObjectName) -> int | None:
        """Row count from optimizer statistics in ALL_TABLES.NUM_ROWS.
        """
        if obj.kind != 'TABLE':
            return None
        sql = 'SELECT NUM_ROWS FROM ALL_TABLES WHERE OWNER = :1 AND TABLE_NAME = :2'
        value = self.select_scalar(cn, sql, (obj.owner, obj.name))
        return None if value is None else int(value)

    def list_procedures(self, cn: 'ConnectionWrapper') -> list[str]:
        sql = """
SELECT o.OWNER, o.OBJECT_NAME
FROM ALL_OBJECTS o
JOIN ALL_USERS u ON u.USERNAME = o.OWNER
WHERE o.OBJECT_TYPE = 'PROCEDURE'
  AND u.ORACLE_MAINTAINED = 'N'
ORDER BY o.OWNER, o.OBJECT_NAME
"""
        return [f"{r['OWNER']}.{r['OBJECT_NAME']}" for r in self._select_raw(cn, sql)]

    def find_procedure(self, cn: 'ConnectionWrapper', name: str) -> tuple[str, str] | None:
        """Resolve ``OWNER.NAME`` or a bare name in the current schema.
        """
        try:
            parts = split_identifier(name, fold_case=True)
        except ValidationError:
            return None
        if len(parts) == 1:
            parts = [self.current_schema(cn), parts[0]]
        if len(parts) != 2:
            return None
        sql = """
SELECT OWNER, OBJECT_NAME
FROM ALL_OBJECTS
WHERE OWNER = :1 AND OBJECT_NAME = :2 AND OBJECT_TYPE = 'PROCEDURE'
"""
        rows = self._select_raw(cn, sql, parts)
        if not rows:
            return None
        return rows[0]['OWNER'], rows[0]['OBJECT_NAME']

    @cacheable_strategy('procedure_parameters', ttl=300, maxsize=50)
    def get_procedure_parameters(self, cn: 'ConnectionWrapper', procedure: tuple[str, str],
                                 bypass_cache: bool = False) -> list[ColumnInfo]:
        """Describe IN parameters from ALL_ARGUMENTS in position order.
        """
        sql = """
SELECT ARGUMENT_NAME, DATA_TYPE, DATA_LENGTH, DATA_PRECISION, DATA_SCALE
FROM ALL_ARGUMENTS
WHERE OWNER = :1 AND OBJECT_NAME = :2
  AND PACKAGE_NAME IS NULL
  AND IN_OUT = 'IN'
  AND DATA_LEVEL = 0
  AND ARGUMENT_NAME IS NOT NULL
ORDER BY POSITION
"""
        owner, name = procedure
        return [
            ColumnInfo(
                name=r['ARGUMENT_NAME'],
                column_type=column_type_from_catalog(r['DATA_TYPE'], r['DATA_LENGTH'],
                                                     r['DATA_PRECISION'], r['DATA_SCALE']),
            )
            for r in self._select_raw(cn, sql, (owner, name))
        ]

    def call_procedure(self, cn: 'ConnectionWrapper', procedure: tuple[str, str],
                       args: list[Any]) -> None:
        owner, name = procedure
        qualified = f'{self.quote_identifier(owner)}.{self.quote_identifier(name)}'
        logger.debug(f'Calling {qualified} with {len(args)} argument(s)')
        cursor = cn.dbapi_connection.cursor()
        try:
            cursor.callproc(qualified, args)
        except DriverError as exc:
            raise QueryError(str(exc)) from exc
        finally:
            cursor.close()
