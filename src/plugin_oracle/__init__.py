"""
Oracle connector for the tabular publisher plugin protocol.
"""
from plugin_oracle.connection import ConnectionManager as ConnectionManager
from plugin_oracle.connection import ConnectionWrapper as ConnectionWrapper
from plugin_oracle.connection import connect as connect
from plugin_oracle.exceptions import ConnectionFailure as ConnectionFailure
from plugin_oracle.exceptions import ConnectorError as ConnectorError
from plugin_oracle.exceptions import NotConnectedError as NotConnectedError
from plugin_oracle.exceptions import PublishError as PublishError
from plugin_oracle.exceptions import QueryError as QueryError
from plugin_oracle.exceptions import SettingsError as SettingsError
from plugin_oracle.exceptions import StreamError as StreamError
from plugin_oracle.exceptions import TypeConversionError as TypeConversionError
from plugin_oracle.exceptions import ValidationError as ValidationError
from plugin_oracle.options import Settings as Settings
from plugin_oracle.server import Server as Server

__version__ = '1.0.0'
