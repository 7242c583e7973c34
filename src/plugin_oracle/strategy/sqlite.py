"""
SQLite-specific strategy implementation.

This module implements the DatabaseStrategy interface with SQLite-specific
operations. It handles SQLite's unique features and limitations such as:
- A single schema named ``main``
- Metadata retrieval using sqlite_master and PRAGMA table_info
- Primary keys reported by the catalog, so ``is_key`` is populated
- No stored procedures
"""
import datetime
import logging
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from plugin_oracle.adapters.column_info import ColumnInfo, column_type_from_catalog
from plugin_oracle.cache import cacheable_strategy
from plugin_oracle.exceptions import QueryError
from plugin_oracle.pub import PropertyType
from plugin_oracle.strategy.base import DatabaseStrategy, ObjectName
from plugin_oracle.strategy.base import register_strategy

if TYPE_CHECKING:
    from plugin_oracle.connection import ConnectionWrapper
    from plugin_oracle.options import Settings

logger = logging.getLogger(__name__)

MAIN_SCHEMA = 'main'


@register_strategy('sqlite')
class SQLiteStrategy(DatabaseStrategy):
    """SQLite-specific operations.
    """

    @property
    def dialect_name(self) -> str:
        """Return the dialect identifier for SQLite."""
        return 'sqlite'

    @classmethod
    def get_required_options(cls) -> list[str]:
        """Return required options for SQLite connections."""
        return ['database']

    def build_connection_url(self, options: 'Settings') -> sa.URL:
        """Build the SQLAlchemy connection URL for SQLite."""
        return sa.URL.create(drivername='sqlite', database=options.database)

    def get_engine_kwargs(self, options: 'Settings') -> dict[str, Any]:
        """Return SQLAlchemy create_engine kwargs for SQLite.

        Calls may arrive on any thread; the connection manager serializes them.
        """
        connect_args: dict[str, Any] = {'check_same_thread': False}
        if options.timeout:
            connect_args['timeout'] = options.timeout
        return {'connect_args': connect_args}

    def configure_connection(self, conn: Any) -> None:
        """Configure connection settings for SQLite.
        """
        sqlite_conn = conn
        if hasattr(conn, 'driver_connection'):
            sqlite_conn = conn.driver_connection
        sqlite_conn.execute('PRAGMA foreign_keys = ON')
        sqlite_conn.isolation_level = None

    def current_schema(self, cn: 'ConnectionWrapper') -> str:
        return MAIN_SCHEMA

    def list_objects(self, cn: 'ConnectionWrapper') -> list[ObjectName]:
        sql = """
SELECT name, type FROM sqlite_master
WHERE type IN ('table', 'view') AND name NOT LIKE 'sqlite_%'
ORDER BY name
"""
        return [ObjectName(MAIN_SCHEMA, r['name'], r['type'].upper())
                for r in self._select_raw(cn, sql)]

    def find_object(self, cn: 'ConnectionWrapper', owner: str, name: str) -> ObjectName | None:
        """Look up a table or view; SQLite names match case-insensitively.
        """
        if owner.lower() != MAIN_SCHEMA:
            return None
        sql = """
SELECT name, type FROM sqlite_master
WHERE type IN ('table', 'view') AND name = ? COLLATE NOCASE
"""
        rows = self._select_raw(cn, sql, (name,))
        if not rows:
            return None
        return ObjectName(MAIN_SCHEMA, rows[0]['name'], rows[0]['type'].upper())

    @cacheable_strategy('table_columns', ttl=300, maxsize=50)
    def get_columns(self, cn: 'ConnectionWrapper', obj: ObjectName,
                    bypass_cache: bool = False) -> list[ColumnInfo]:
        """Describe columns with PRAGMA table_info.
        """
        sql = 'SELECT name, type, "notnull", pk FROM pragma_table_info(?) ORDER BY cid'
        return [
            ColumnInfo(
                name=r['name'],
                column_type=column_type_from_catalog(r['type']),
                is_nullable=not r['notnull'],
                is_key=r['pk'] > 0,
            )
            for r in self._select_raw(cn, sql, (obj.name,))
        ]

    def placeholder(self, index: int) -> str:
        return '?'

    def adapt_filter_value(self, property_type: PropertyType, value: Any) -> Any:
        """Datetimes are stored as UTC text, e.g. ``1970-01-02 00:00:00``.
        """
        if isinstance(value, datetime.datetime):
            if value.tzinfo is not None:
                value = value.astimezone(datetime.timezone.utc).replace(tzinfo=None)
            return value.isoformat(sep=' ')
        if isinstance(value, bool):
            return int(value)
        return value

    def limit_sql(self, sql: str, placeholder: str) -> str:
        return f'SELECT * FROM ({sql}) LIMIT {placeholder}'

    def list_procedures(self, cn: 'ConnectionWrapper') -> list[str]:
        """SQLite has no stored procedures."""
        return []

    def find_procedure(self, cn: 'ConnectionWrapper', name: str) -> tuple[str, str] | None:
        return None

    def get_procedure_parameters(self, cn: 'ConnectionWrapper', procedure: tuple[str, str],
                                 bypass_cache: bool = False) -> list[ColumnInfo]:
        return []

    def call_procedure(self, cn: 'ConnectionWrapper', procedure: tuple[str, str],
                       args: list[Any]) -> None:
        raise QueryError('SQLite does not support stored procedures')
