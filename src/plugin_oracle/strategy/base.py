"""
Base strategy interface for database operations.

Defines the abstract base class that all dialect strategies must inherit
from. A strategy owns every piece of native SQL the connector issues:
catalog introspection, row-source limiting, placeholder and bind syntax, and
stored procedure invocation. Discovery, publishing and write-back code work
with any database through this interface.
"""
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from plugin_oracle.adapters.column_info import ColumnInfo, columns_from_description
from plugin_oracle.exceptions import DriverError, QueryError, SettingsError
from plugin_oracle.exceptions import ValidationError
from plugin_oracle.pub import PropertyType
from plugin_oracle.sql import quote_identifier as sql_quote_identifier
from plugin_oracle.sql import split_identifier, strip_statement

if TYPE_CHECKING:
    from plugin_oracle.connection import ConnectionWrapper
    from plugin_oracle.options import Settings

logger = logging.getLogger(__name__)

# Registry of dialect name -> strategy class
# Defined here to avoid circular imports (concrete strategies import from base)
_STRATEGY_REGISTRY: dict[str, type['DatabaseStrategy']] = {}


def register_strategy(dialect: str):
    """Decorator to register a strategy class for a dialect.

    Usage:
        @register_strategy('oracle')
        class OracleStrategy(DatabaseStrategy):
            ...
    """
    def decorator(cls: type['DatabaseStrategy']) -> type['DatabaseStrategy']:
        _STRATEGY_REGISTRY[dialect] = cls
        return cls
    return decorator


@dataclass(frozen=True, slots=True)
class ObjectName:
    """A native table or view.
    """
    owner: str
    name: str
    kind: str = 'TABLE'

    @property
    def shape_id(self) -> str:
        return f'{sql_quote_identifier(self.owner)}.{sql_quote_identifier(self.name)}'

    def __str__(self) -> str:
        return self.shape_id


class DatabaseStrategy(ABC):
    """Base class for dialect-specific operations.
    """

    # Unquoted identifiers are folded to upper case by the database
    folds_case = False

    @contextmanager
    def _cursor(self, cn: 'ConnectionWrapper', sql: str, params: tuple | list | None = None):
        """Context manager for cursor lifecycle.

        Handles cursor creation, SQL execution, timing and cleanup. Driver
        errors surface as QueryError with the driver exception chained.
        """
        start = time.time()
        cursor = cn.dbapi_connection.cursor()
        try:
            logger.debug(f'Executing SQL with {len(params or ())} parameter(s): {sql}')
            try:
                cursor.execute(sql, list(params or ()))
            except DriverError as exc:
                raise QueryError(str(exc)) from exc
            yield cursor
        finally:
            cursor.close()
            cn.addcall(time.time() - start)

    def _execute_raw(self, cn: 'ConnectionWrapper', sql: str,
                     params: tuple | list | None = None) -> int:
        """Execute SQL and return rowcount.
        """
        with self._cursor(cn, sql, params) as cursor:
            return cursor.rowcount

    def _select_raw(self, cn: 'ConnectionWrapper', sql: str,
                    params: tuple | list | None = None) -> list[dict]:
        """Execute SQL and return results as list of dicts.
        """
        with self._cursor(cn, sql, params) as cursor:
            if cursor.description is None:
                return []
            columns = [desc[0] for desc in cursor.description]
            return [dict(zip(columns, row)) for row in cursor.fetchall()]

    def _select_column_raw(self, cn: 'ConnectionWrapper', sql: str,
                           params: tuple | list | None = None) -> list:
        """Execute SQL and return first column as list.
        """
        with self._cursor(cn, sql, params) as cursor:
            return [row[0] for row in cursor.fetchall()]

    def execute(self, cn: 'ConnectionWrapper', sql: str) -> int:
        """Execute a caller-supplied statement such as a pre-publish query.
        """
        return self._execute_raw(cn, sql)

    def iter_rows(self, cn: 'ConnectionWrapper', sql: str,
                  params: tuple | list | None = None) -> Iterator[tuple]:
        """Yield result rows one at a time.

        Rows are fetched lazily; closing the generator closes the cursor and
        no further rows are read.
        """
        with self._cursor(cn, sql, params) as cursor:
            while True:
                try:
                    row = cursor.fetchone()
                except DriverError as exc:
                    raise QueryError(str(exc)) from exc
                if row is None:
                    return
                yield row

    def select_scalar(self, cn: 'ConnectionWrapper', sql: str,
                      params: tuple | list | None = None) -> Any:
        with self._cursor(cn, sql, params) as cursor:
            row = cursor.fetchone()
            return row[0] if row else None

    @property
    @abstractmethod
    def dialect_name(self) -> str:
        """Return the dialect identifier (e.g., 'oracle', 'sqlite')."""

    @classmethod
    @abstractmethod
    def get_required_options(cls) -> list[str]:
        """Return list of required option field names for this dialect.

        Returns
            List of field names that must have non-None/non-zero values
        """

    @classmethod
    def validate_options(cls, options: 'Settings') -> None:
        """Validate options for this dialect.

        Args:
            options: Settings to validate

        Raises
            SettingsError: If any required field is None or 0
        """
        for field in cls.get_required_options():
            if not getattr(options, field):
                raise SettingsError(f'field {field} cannot be None or 0')

    @abstractmethod
    def build_connection_url(self, options: 'Settings') -> sa.URL:
        """Build the SQLAlchemy connection URL for this dialect.
        """

    @abstractmethod
    def get_engine_kwargs(self, options: 'Settings') -> dict[str, Any]:
        """Return SQLAlchemy create_engine kwargs for this dialect.
        """

    @abstractmethod
    def configure_connection(self, conn: Any) -> None:
        """Configure a freshly opened DBAPI connection (autocommit and the like).
        """

    def quote_identifier(self, identifier: str) -> str:
        """Quote a database identifier.
        """
        return sql_quote_identifier(identifier, self.dialect_name)

    @abstractmethod
    def current_schema(self, cn: 'ConnectionWrapper') -> str:
        """Return the owner that bare object names resolve in.
        """

    @abstractmethod
    def list_objects(self, cn: 'ConnectionWrapper') -> list[ObjectName]:
        """List user tables and views visible to the session.
        """

    @abstractmethod
    def find_object(self, cn: 'ConnectionWrapper', owner: str, name: str) -> ObjectName | None:
        """Look up one table or view, or None if it does not exist.
        """

    def resolve_object(self, cn: 'ConnectionWrapper', identifier: str) -> ObjectName | None:
        """Resolve a shape id (``"OWNER"."NAME"``, ``OWNER.NAME`` or ``NAME``).
        """
        parts = split_identifier(identifier, fold_case=self.folds_case)
        if len(parts) == 1:
            return self.find_object(cn, self.current_schema(cn), parts[0])
        if len(parts) == 2:
            return self.find_object(cn, parts[0], parts[1])
        raise ValidationError(f'invalid object name: {identifier!r}')

    @abstractmethod
    def get_columns(self, cn: 'ConnectionWrapper', obj: ObjectName,
                    bypass_cache: bool = False) -> list[ColumnInfo]:
        """Describe the columns of a table or view in declared order.

        Args:
            cn: Database connection object
            obj: Table or view to describe
            bypass_cache: If True, bypass cache and query database directly

        Returns
            list: Column metadata in declared order
        """

    def describe_query(self, cn: 'ConnectionWrapper', query: str) -> list[ColumnInfo]:
        """Describe the result columns of an ad hoc query without fetching rows.
        """
        sql = f'SELECT * FROM ({strip_statement(query)}) t WHERE 1 = 0'
        with self._cursor(cn, sql) as cursor:
            return columns_from_description(cursor.description, self.dialect_name)

    @abstractmethod
    def placeholder(self, index: int) -> str:
        """Return the bind marker for the 1-based parameter `index`.
        """

    def bind_expression(self, index: int, property_type: PropertyType) -> str:
        """Return the SQL expression binding a filter value of the given type.
        """
        return self.placeholder(index)

    def adapt_filter_value(self, property_type: PropertyType, value: Any) -> Any:
        """Convert a parsed filter value into a driver bind value.
        """
        return value

    @abstractmethod
    def limit_sql(self, sql: str, placeholder: str) -> str:
        """Restrict `sql` to at most the number of rows bound at `placeholder`.
        """

    def estimate_count(self, cn: 'ConnectionWrapper', obj: ObjectName) -> int | None:
        """Row count from optimizer statistics, or None when unavailable.
        """
        return None

    @abstractmethod
    def list_procedures(self, cn: 'ConnectionWrapper') -> list[str]:
        """List stored procedures visible to the session as ``OWNER.NAME``.
        """

    @abstractmethod
    def find_procedure(self, cn: 'ConnectionWrapper', name: str) -> tuple[str, str] | None:
        """Resolve a procedure name to ``(owner, name)``, or None if it does not exist.
        """

    @abstractmethod
    def get_procedure_parameters(self, cn: 'ConnectionWrapper', procedure: tuple[str, str],
                                 bypass_cache: bool = False) -> list[ColumnInfo]:
        """Describe the IN parameters of a resolved procedure in position order.
        """

    @abstractmethod
    def call_procedure(self, cn: 'ConnectionWrapper', procedure: tuple[str, str],
                       args: list[Any]) -> None:
        """Invoke a resolved procedure with positional arguments.
        """
