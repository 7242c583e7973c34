import json
import logging
from dataclasses import dataclass, fields
from typing import Any

from plugin_oracle.exceptions import SettingsError
from plugin_oracle.strategy import get_available_dialects, get_strategy_class
from plugin_oracle.strategy import is_supported_dialect

from libb import ConfigOptions

__all__ = ['Settings']

logger = logging.getLogger(__name__)

# Settings payload keys as sent by the host, mapped to dataclass fields
_JSON_FIELDS = {
    'drivername': 'drivername',
    'hostname': 'hostname',
    'port': 'port',
    'serviceName': 'service_name',
    'username': 'username',
    'password': 'password',
    'database': 'database',
    'timeout': 'timeout',
    'prePublishQuery': 'pre_publish_query',
    'postPublishQuery': 'post_publish_query',
    'estimateCounts': 'estimate_counts',
    'writeBatchSize': 'write_batch_size',
}


@dataclass
class Settings(ConfigOptions):
    """Connection settings

    supported driver names: `oracle`, `sqlite`

    Publishing options:
    - pre_publish_query: statement executed before a publish starts
    - post_publish_query: statement executed after a publish, even a failed one
    - estimate_counts: allow optimizer statistics in place of COUNT(*)

    Write-back options:
    - write_batch_size: number of acks buffered before a flush (default: 100)
    """
    drivername: str = 'oracle'
    hostname: str = None
    port: int = 1521
    service_name: str = None
    username: str = None
    password: str = None
    database: str = None
    timeout: int = 0
    pre_publish_query: str = None
    post_publish_query: str = None
    estimate_counts: bool = False
    write_batch_size: int = 100

    def __post_init__(self):
        if not isinstance(self.drivername, str) or not is_supported_dialect(self.drivername):
            available = get_available_dialects()
            raise SettingsError(f'drivername must be one of: {available}')
        try:
            self.port = int(self.port or 0)
            self.timeout = int(self.timeout or 0)
            self.write_batch_size = int(self.write_batch_size or 0)
        except (TypeError, ValueError) as exc:
            raise SettingsError(f'invalid numeric setting: {exc}') from exc
        if not isinstance(self.estimate_counts, bool):
            raise SettingsError(f'field estimate_counts must be true or false, got {self.estimate_counts!r}')
        if self.write_batch_size < 1:
            raise SettingsError('field write_batch_size must be at least 1')
        strategy_cls = get_strategy_class(self.drivername)
        strategy_cls.validate_options(self)

    def __repr__(self) -> str:
        shown = ', '.join(
            f"{f.name}={'***' if f.name == 'password' and self.password else repr(getattr(self, f.name))}"
            for f in fields(self))
        return f'Settings({shown})'

    @classmethod
    def from_json(cls, settings_json: str) -> 'Settings':
        """Parse the host's settings payload.

        Raises SettingsError on malformed JSON, unknown keys or missing
        required fields.
        """
        try:
            data = json.loads(settings_json)
        except (TypeError, ValueError) as exc:
            raise SettingsError(f'could not parse settings: {exc}') from exc
        if not isinstance(data, dict):
            raise SettingsError('settings must be a JSON object')

        unknown = sorted(set(data) - set(_JSON_FIELDS))
        if unknown:
            raise SettingsError(f'unknown settings: {unknown}')

        kwargs = {_JSON_FIELDS[k]: v for k, v in data.items() if v is not None}
        return cls(**kwargs)

    def to_json(self) -> str:
        """Render the settings as the host's camelCase payload."""
        data = {k: getattr(self, name) for k, name in _JSON_FIELDS.items()
                if getattr(self, name) is not None}
        return json.dumps(data)
