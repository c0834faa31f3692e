# traefik_fed/config.py
import json
import logging
import os
import re
import sys
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from traefik_fed.internal.domain.errors import ConfigInvalid
from traefik_fed.internal.domain.models import MergeDefaults, MergePolicy, SelectionCriteria, UpstreamSpec

CONFIG_FILE_NAME = 'config.yaml'
CONFIG_PATH_ENV = 'TRAEFIK_FED_CONFIG'

DEFAULT_POLL_INTERVAL = 10.0  # seconds
DEFAULT_FILE_INTERVAL = 30.0  # seconds
DEFAULT_HTTP_PATH = '/config'
DEFAULT_HTTP_HOST = '0.0.0.0'
DEFAULT_STATUS = 'enabled'
MAX_PORT = 65535

LOG_FORMAT_PLAIN = 'plain'
LOG_FORMAT_JSON = 'json'
PLAIN_LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_LEVELS = {
    'debug': logging.DEBUG,
    'info': logging.INFO,
    'warn': logging.WARNING,
    'warning': logging.WARNING,
    'error': logging.ERROR,
}

logger = logging.getLogger(__name__)

_DURATION_PART = re.compile(r'(\d+(?:\.\d+)?)(ns|us|µs|ms|s|m|h)')
_DURATION_UNITS = {'ns': 1e-9, 'us': 1e-6, 'µs': 1e-6, 'ms': 1e-3, 's': 1.0, 'm': 60.0, 'h': 3600.0}


def parse_duration(value: Any) -> float:
    """Parse a duration into seconds.

    Accepts plain numbers (seconds) and Go-style strings such as '500ms',
    '10s' or '1m30s'.
    """
    if value is None or value == '':
        return 0.0
    if isinstance(value, bool):
        raise ValueError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    try:
        return float(text)
    except ValueError:
        pass
    negative = text.startswith('-')
    if negative:
        text = text[1:]
    parts = _DURATION_PART.findall(text)
    if not parts or ''.join(number + unit for number, unit in parts) != text:
        raise ValueError(f"invalid duration: {value!r}")
    seconds = sum(float(number) * _DURATION_UNITS[unit] for number, unit in parts)
    return -seconds if negative else seconds


class HTTPOutputConfig(BaseModel):
    model_config = ConfigDict(extra='ignore')

    enabled: bool = False
    host: str = DEFAULT_HTTP_HOST
    port: int = 0
    path: str = DEFAULT_HTTP_PATH


class FileOutputConfig(BaseModel):
    model_config = ConfigDict(extra='ignore')

    enabled: bool = False
    path: str = ''
    interval: float = DEFAULT_FILE_INTERVAL

    @field_validator('interval', mode='before')
    @classmethod
    def _parse_interval(cls, value):
        return parse_duration(value) or DEFAULT_FILE_INTERVAL


class OutputConfig(BaseModel):
    model_config = ConfigDict(extra='ignore')

    http: HTTPOutputConfig = Field(default_factory=HTTPOutputConfig)
    file: FileOutputConfig = Field(default_factory=FileOutputConfig)

    @field_validator('http', 'file', mode='before')
    @classmethod
    def _null_section(cls, value):
        return {} if value is None else value


class ServerConfig(BaseModel):
    model_config = ConfigDict(extra='ignore')

    poll_interval: float = DEFAULT_POLL_INTERVAL

    @field_validator('poll_interval', mode='before')
    @classmethod
    def _parse_poll_interval(cls, value):
        return parse_duration(value) or DEFAULT_POLL_INTERVAL


class RoutersConfig(BaseModel):
    model_config = ConfigDict(extra='ignore')

    selector: SelectionCriteria = Field(default_factory=SelectionCriteria)
    defaults: MergeDefaults = Field(default_factory=MergeDefaults)
    merge_policy: MergePolicy = MergePolicy.REPLACE

    @field_validator('merge_policy', mode='before')
    @classmethod
    def _blank_policy(cls, value):
        return value or MergePolicy.REPLACE

    @field_validator('selector', 'defaults', mode='before')
    @classmethod
    def _null_section(cls, value):
        return {} if value is None else value


class LogConfig(BaseModel):
    model_config = ConfigDict(extra='ignore')

    level: str = 'info'
    format: str = LOG_FORMAT_PLAIN

    @field_validator('level', 'format', mode='before')
    @classmethod
    def _null_to_default(cls, value, info):
        if value is None or value == '':
            return 'info' if info.field_name == 'level' else LOG_FORMAT_PLAIN
        return value


class Settings(BaseModel):
    """Typed view of the YAML configuration file."""

    model_config = ConfigDict(extra='ignore')

    upstreams: List[UpstreamSpec] = Field(default_factory=list)
    routers: RoutersConfig = Field(default_factory=RoutersConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    log: LogConfig = Field(default_factory=LogConfig)

    @field_validator('upstreams', 'routers', 'output', 'server', 'log', mode='before')
    @classmethod
    def _null_section(cls, value, info):
        # An empty YAML section ("output:") parses as None.
        if value is None:
            return [] if info.field_name == 'upstreams' else {}
        return value


class JSONFormatter(logging.Formatter):
    """One JSON object per log line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            'time': self.formatTime(record),
            'level': record.levelname,
            'logger': record.name,
            'msg': record.getMessage(),
        }
        if record.exc_info:
            entry['error'] = self.formatException(record.exc_info)
        return json.dumps(entry)


class AppConfig:
    def __init__(self, config_path: Optional[str] = None):
        self._config_path = config_path or os.getenv(CONFIG_PATH_ENV, CONFIG_FILE_NAME)
        self._raw_config: Dict[str, Any] = self._load_config_from_file()
        try:
            self.settings = Settings.model_validate(self._raw_config)
        except ValidationError as e:
            raise ConfigInvalid(f"failed to parse config file {self._config_path}: {e}") from e
        self._apply_defaults()

    @classmethod
    def from_dict(cls, raw_config: Dict[str, Any]) -> 'AppConfig':
        """Build a config from an already parsed mapping (no file access)."""
        config = cls.__new__(cls)
        config._config_path = '<dict>'
        config._raw_config = raw_config or {}
        try:
            config.settings = Settings.model_validate(config._raw_config)
        except ValidationError as e:
            raise ConfigInvalid(f"failed to parse config: {e}") from e
        config._apply_defaults()
        return config

    def _load_config_from_file(self) -> Dict[str, Any]:
        try:
            with open(self._config_path, 'r') as f:
                config_data = yaml.safe_load(f)
        except OSError as e:
            raise ConfigInvalid(f"failed to read config file {self._config_path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigInvalid(f"failed to parse config file {self._config_path}: {e}") from e
        if config_data is None:
            return {}
        if not isinstance(config_data, dict):
            raise ConfigInvalid(f"config file {self._config_path} must contain a mapping at the top level")
        return config_data

    def _apply_defaults(self):
        routers = self.settings.routers
        if not routers.selector.status:
            routers.selector = routers.selector.model_copy(update={'status': DEFAULT_STATUS})
        if not self.settings.output.http.path:
            self.settings.output.http.path = DEFAULT_HTTP_PATH

    @property
    def config_path(self) -> str:
        return self._config_path

    @property
    def upstreams(self) -> List[UpstreamSpec]:
        return self.settings.upstreams

    @property
    def selector(self) -> SelectionCriteria:
        return self.settings.routers.selector

    @property
    def defaults(self) -> MergeDefaults:
        return self.settings.routers.defaults

    @property
    def merge_policy(self) -> MergePolicy:
        return self.settings.routers.merge_policy

    @property
    def http_output(self) -> HTTPOutputConfig:
        return self.settings.output.http

    @property
    def file_output(self) -> FileOutputConfig:
        return self.settings.output.file

    @property
    def poll_interval(self) -> float:
        return self.settings.server.poll_interval

    def get_log_level(self) -> str:
        return os.getenv('LOG_LEVEL', self.settings.log.level).lower()

    def get_log_format(self) -> str:
        return os.getenv('LOG_FORMAT', self.settings.log.format).lower()

    def validate(self) -> None:
        """Check the configuration is usable. Raises ConfigInvalid on the first problem."""
        if not self.upstreams:
            raise ConfigInvalid("at least one upstream must be configured")

        seen = set()
        for i, upstream in enumerate(self.upstreams):
            if not upstream.name:
                raise ConfigInvalid(f"upstream {i}: name is required")
            if not upstream.admin_url:
                raise ConfigInvalid(f"upstream {upstream.name}: admin_url is required")
            if not upstream.server_url:
                raise ConfigInvalid(f"upstream {upstream.name}: server_url is required")
            if upstream.name in seen:
                raise ConfigInvalid(f"upstream {upstream.name}: name must be unique")
            seen.add(upstream.name)

        http_output = self.http_output
        file_output = self.file_output
        if not http_output.enabled and not file_output.enabled:
            raise ConfigInvalid("at least one output method (HTTP or File) must be enabled")
        if http_output.enabled and http_output.port <= 0:
            raise ConfigInvalid("HTTP output port must be specified")
        if http_output.enabled and http_output.port > MAX_PORT:
            raise ConfigInvalid(f"HTTP output port must be between 1 and {MAX_PORT}")
        if http_output.enabled and not http_output.path.startswith('/'):
            raise ConfigInvalid("HTTP output path must start with '/'")
        if file_output.enabled and not file_output.path:
            raise ConfigInvalid("file output path must be specified")
        if file_output.enabled and file_output.interval <= 0:
            raise ConfigInvalid("file output interval must be positive")
        if self.poll_interval <= 0:
            raise ConfigInvalid("poll interval must be positive")

    def configure_logging(self):
        configure_logging(self.get_log_level(), self.get_log_format())


def configure_logging(level: str = 'info', log_format: str = LOG_FORMAT_PLAIN):
    """Log to stdout. Unknown levels fall back to info, unknown formats to plain."""
    level = level.lower()
    log_format = log_format.lower()
    numeric_level = LOG_LEVELS.get(level, logging.INFO)
    handler = logging.StreamHandler(sys.stdout)
    if log_format == LOG_FORMAT_JSON:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(PLAIN_LOG_FORMAT))
    logging.basicConfig(level=numeric_level, handlers=[handler], force=True)
    if level not in LOG_LEVELS:
        logger.warning(f"Unknown log level '{level}', using info")
    if log_format not in (LOG_FORMAT_PLAIN, LOG_FORMAT_JSON):
        logger.warning(f"Unknown log format '{log_format}', using {LOG_FORMAT_PLAIN}")
    logger.debug(f"Logging level set to {level}, format {log_format}")
