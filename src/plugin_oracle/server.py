"""
Publisher plugin server.

`Server` implements the plugin protocol operations on top of one
`ConnectionManager`. Every data-path call runs inside
`ConnectionManager.session()`, so it fails with "not connected" without a
session and is serialized against connect and disconnect.
"""
import logging
from collections.abc import Callable

from plugin_oracle import discover, publish, write
from plugin_oracle.connection import ConnectionManager, ConnectionWrapper, connect
from plugin_oracle.exceptions import ValidationError
from plugin_oracle.options import Settings
from plugin_oracle.pub import ConfigureWriteRequest, ConfigureWriteResponse
from plugin_oracle.pub import ConnectRequest, ConnectResponse, DisconnectRequest
from plugin_oracle.pub import DisconnectResponse, DiscoverSchemasRequest
from plugin_oracle.pub import DiscoverSchemasResponse, PrepareWriteRequest
from plugin_oracle.pub import PrepareWriteResponse, ReadRequest, RecordSink, WriteChannel

logger = logging.getLogger(__name__)


class Server:
    """Oracle publisher plugin.
    """

    def __init__(self, connector: Callable[[Settings], ConnectionWrapper] = connect) -> None:
        self.manager = ConnectionManager(connector)
        self._write_context: write.WriteContext | None = None

    def connect(self, request: ConnectRequest) -> ConnectResponse:
        """Open a session from the settings payload.

        Raises
            SettingsError: If the settings payload is malformed
            ConnectionFailure: If the session cannot be established
        """
        self.manager.connect(request.settings_json)
        self._write_context = None
        return ConnectResponse()

    def discover_shapes(self, request: DiscoverSchemasRequest) -> DiscoverSchemasResponse:
        with self.manager.session() as cn:
            return DiscoverSchemasResponse(
                schemas=discover.discover_shapes(cn, self.manager.settings, request))

    def publish_stream(self, request: ReadRequest, sink: RecordSink) -> int:
        """Stream the requested shape's records to `sink`.

        A shape sent without properties is described first.
        """
        with self.manager.session() as cn:
            schema = request.schema
            if schema is None:
                raise ValidationError('read request carries no shape')
            if not schema.properties:
                schema, _ = discover.describe_shape(cn, schema, bypass_cache=True)
            return publish.publish_stream(cn, self.manager.settings, schema,
                                          request.filters, sink)

    def configure_write(self, request: ConfigureWriteRequest) -> ConfigureWriteResponse:
        with self.manager.session() as cn:
            return write.configure_write(cn, request)

    def prepare_write(self, request: PrepareWriteRequest) -> PrepareWriteResponse:
        with self.manager.session():
            self._write_context = write.prepare_write(request)
        return PrepareWriteResponse()

    def write_stream(self, channel: WriteChannel) -> int:
        """Write every record received on `channel` through the prepared procedure.

        Raises
            ValidationError: If no write has been prepared
            StreamError: If the channel fails
        """
        with self.manager.session() as cn:
            if self._write_context is None:
                raise ValidationError('write has not been prepared')
            return write.write_stream(cn, self.manager.settings, self._write_context, channel)

    def disconnect(self, request: DisconnectRequest | None = None) -> DisconnectResponse:
        self.manager.disconnect()
        self._write_context = None
        return DisconnectResponse()
