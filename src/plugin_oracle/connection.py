"""
Database connection handling with SQLAlchemy.

This module provides:
1. The `connect()` function for opening a native session from settings
2. The `ConnectionWrapper` class that wraps a SQLAlchemy connection and
   tracks calls and execution time
3. The `ConnectionManager` that owns the connector's single session and
   gates every data-path operation on it
"""
import itertools
import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import fields
from typing import Any, Self

import sqlalchemy as sa
from plugin_oracle.cache import Cache
from plugin_oracle.exceptions import ConnectionFailure, DriverError, NotConnectedError
from plugin_oracle.options import Settings
from plugin_oracle.strategy import DatabaseStrategy, get_strategy
from sqlalchemy.engine import Engine
from sqlalchemy.pool import NullPool

from libb import load_options

__all__ = [
    'ConnectionWrapper',
    'ConnectionManager',
    'connect',
    'create_url_from_options',
    'get_engine_for_options',
]

logger = logging.getLogger(__name__)

_session_ids = itertools.count(1)


def create_url_from_options(options: Settings) -> sa.URL:
    """Convert Settings to SQLAlchemy URL.
    """
    return get_strategy(options.drivername).build_connection_url(options)


def get_engine_for_options(options: Settings,
                           engine_factory: Callable[..., Engine] = sa.create_engine,
                           **kwargs: Any) -> Engine:
    """Create a SQLAlchemy engine for the given options.

    Engines use NullPool: each connector holds exactly one session and the
    engine is disposed together with it.
    """
    strategy = get_strategy(options.drivername)
    engine_kwargs: dict[str, Any] = {'echo': False, 'poolclass': NullPool}
    engine_kwargs.update(strategy.get_engine_kwargs(options))
    engine_kwargs.update(kwargs)
    engine = engine_factory(create_url_from_options(options), **engine_kwargs)
    logger.debug(f'Created new engine for {options.drivername}')
    return engine


class ConnectionWrapper:
    """Wraps a SQLAlchemy connection object to track calls and execution time

    This class provides a thin wrapper around SQLAlchemy connection objects that:
    1. Tracks query execution counts and timing
    2. Owns the engine the connection came from
    3. Supports context manager protocol for explicit resource management
    4. Provides access to the underlying DBAPI connection
    5. Carries a process-unique `session_id` that keys catalog caches
    """

    def __init__(self, sa_connection: sa.engine.Connection,
                 options: Settings) -> None:
        """Initialize a connection wrapper
        """
        self.sa_connection = sa_connection
        self.engine = sa_connection.engine
        self.options = options
        self.dbapi_connection = sa_connection.connection
        self._dialect = options.drivername
        self.session_id = next(_session_ids)
        self.calls = 0
        self.time = 0

    def __enter__(self) -> Self:
        """Support for context manager protocol
        """
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        self.close()

    def addcall(self, elapsed: float) -> None:
        """Track execution statistics
        """
        self.time += elapsed
        self.calls += 1

    @property
    def dialect(self) -> str:
        """Return the dialect name ('oracle' or 'sqlite')."""
        return self._dialect

    @property
    def strategy(self) -> DatabaseStrategy:
        return get_strategy(self._dialect)

    @property
    def closed(self) -> bool:
        return self.sa_connection.closed

    def close(self) -> None:
        """Close the SQLAlchemy connection and dispose its engine
        """
        if not self.sa_connection.closed:
            self.sa_connection.close()
            self.engine.dispose()
            logger.debug(f'Connection closed: {self.calls} queries in {self.time:.2f}s (avg: {self.time/max(1,self.calls):.3f}s per query)')


def configure_connection(sa_connection: sa.engine.Connection, options: Settings) -> None:
    """Configure a SQLAlchemy connection with dialect-specific settings.
    """
    strategy = get_strategy(options.drivername)
    strategy.configure_connection(sa_connection.connection)


@load_options(cls=Settings)
def connect(options: Settings | dict[str, Any] | str,
            config: Any | None = None, **kw: Any) -> ConnectionWrapper:
    """Open a native session

    Args:
        options: Can be:
                - Settings object
                - String name of a configuration section
                - Dictionary of options
                - Options specified as keyword arguments
        config: Configuration object (for loading from config files)
        **kw: Additional keyword arguments to override options

    Returns
        ConnectionWrapper object for the session

    Raises
        ConnectionFailure: If the session cannot be established
    """
    if isinstance(options, Settings):
        for field in fields(options):
            kw.pop(field.name, None)
    else:
        options_func = load_options(cls=Settings)(lambda o, c: o)
        options = options_func(options, config, **kw)

    engine = get_engine_for_options(options)
    try:
        sa_connection = engine.connect()
        configure_connection(sa_connection, options)
    except (sa.exc.DBAPIError, *DriverError) as exc:
        engine.dispose()
        raise ConnectionFailure(f'could not connect to {options.drivername}: {exc}') from exc

    logger.info(f'Connected to {options.drivername} as {options.username or options.database}')
    return ConnectionWrapper(sa_connection, options)


class ConnectionManager:
    """Owns the connector's single native session.

    Transitions between disconnected and connected, and every data-path
    operation, serialize on one re-entrant lock. A failed connect leaves the
    previous state untouched.
    """

    def __init__(self, connector: Callable[[Settings], ConnectionWrapper] = connect) -> None:
        self._connector = connector
        self._lock = threading.RLock()
        self._cn: ConnectionWrapper | None = None
        self._settings: Settings | None = None

    @property
    def connected(self) -> bool:
        with self._lock:
            return self._cn is not None

    @property
    def settings(self) -> Settings | None:
        return self._settings

    def connect(self, settings_json: str) -> None:
        """Parse settings and open a session, replacing any prior one.

        Raises
            SettingsError: If the settings payload is malformed
            ConnectionFailure: If the session cannot be established
        """
        settings = Settings.from_json(settings_json)
        with self._lock:
            cn = self._connector(settings)
            previous, self._cn, self._settings = self._cn, cn, settings
            Cache.get_instance().clear_all()
        if previous is not None:
            self._close(previous)

    def disconnect(self) -> None:
        """Close the session, if any. Idempotent.
        """
        with self._lock:
            cn, self._cn, self._settings = self._cn, None, None
            Cache.get_instance().clear_all()
            if cn is not None:
                self._close(cn)
                logger.info('Disconnected')

    @contextmanager
    def session(self) -> Iterator[ConnectionWrapper]:
        """Hold the lock and yield the live session.

        Raises
            NotConnectedError: If no session is open
        """
        with self._lock:
            if self._cn is None:
                raise NotConnectedError()
            yield self._cn

    def _close(self, cn: ConnectionWrapper) -> None:
        try:
            cn.close()
        except (sa.exc.SQLAlchemyError, *DriverError) as exc:
            logger.warning(f'Error closing connection: {exc}')
