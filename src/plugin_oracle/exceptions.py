"""
Connector-specific exception classes.
"""
import sqlite3

import oracledb

NOT_CONNECTED = 'not connected'


class ConnectorError(Exception):
    """Base class for all connector errors.
    """


class SettingsError(ConnectorError):
    """Settings payload could not be parsed or validated.
    """


class ConnectionFailure(ConnectorError):
    """Error establishing the native database session.
    """


class NotConnectedError(ConnectorError):
    """A data-path operation was attempted without an open session.
    """

    def __init__(self, message: str = NOT_CONNECTED) -> None:
        super().__init__(message)


class QueryError(ConnectorError):
    """Error in query syntax or execution.
    """


class TypeConversionError(ConnectorError):
    """Error converting a value between the native and abstract type systems.
    """


class ValidationError(ConnectorError):
    """Error in request validation (filters, write preparation).
    """


class PublishError(ConnectorError):
    """Publishing failed, possibly combined with a post-publish query failure.
    """


class StreamError(ConnectorError):
    """Transport-level failure on a caller-managed stream.

    The original transport exception is chained as ``__cause__``.
    """


DriverError = (
    oracledb.Error,
    sqlite3.Error,
    )

DbConnectionError = (
    oracledb.OperationalError,
    oracledb.InterfaceError,
    sqlite3.OperationalError,
    sqlite3.InterfaceError,
    ConnectionFailure,
    )

ProgrammingError = (
    oracledb.ProgrammingError,
    oracledb.DatabaseError,
    sqlite3.ProgrammingError,
    sqlite3.DatabaseError,
    QueryError,
    )

OperationalError = (
    oracledb.OperationalError,
    sqlite3.OperationalError,
    )
