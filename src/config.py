"""Read the poller settings from the environment or from a config file

If FILE_POLL_CONFIG points at a file, that file is the only source. It holds
the same OPENWEATHER_* keys as the environment, one `KEY=value` per line.
"""
import os
import logging
from dataclasses import dataclass, field
from typing import Mapping, Optional, Union
from dotenv import dotenv_values
from errors import ConfigInvalid


FILE_VARIABLE = "FILE_POLL_CONFIG"

DEFAULT_DB_NAME = "test"
DEFAULT_POLL_TIMING = 3600  # seconds, OpenWeather refreshes pollution hourly
DEFAULT_MAX_RETRY = 3
DEFAULT_HTTP_TIMEOUT = 10  # seconds
LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


@dataclass(frozen=True)
class EnvSource:
    environ: Mapping[str, str]

    def values(self) -> Mapping[str, Optional[str]]:
        return self.environ


@dataclass(frozen=True)
class FileSource:
    path: str

    def values(self) -> Mapping[str, Optional[str]]:
        if not os.path.isfile(self.path):
            raise ConfigInvalid(f"Config file {self.path} not found")
        try:
            return dotenv_values(self.path)
        except (OSError, UnicodeDecodeError) as err:
            raise ConfigInvalid(f"Config file {self.path} unreadable: {err}") from err


Source = Union[EnvSource, FileSource]


def _text(values: Mapping[str, Optional[str]], key: str) -> Optional[str]:
    value = values.get(key)
    if value is None:
        return None
    value = value.strip()
    return value or None


def _required(values: Mapping[str, Optional[str]], key: str) -> str:
    value = _text(values, key)
    if value is None:
        raise ConfigInvalid(f"{key} is not set. Unable to proceed.")
    return value


def _positive_int(values: Mapping[str, Optional[str]], key: str, default):
    value = _text(values, key)
    if value is None:
        return default
    try:
        number = int(value)
    except ValueError:
        raise ConfigInvalid(f"{key} must be an integer, got {value!r}") from None
    if number <= 0:
        raise ConfigInvalid(f"{key} must be positive, got {number}")
    return number


@dataclass(frozen=True)
class Settings:
    api_key: str = field(repr=False)
    zipcode: str
    db_server: str
    country: Optional[str] = None
    db_name: str = DEFAULT_DB_NAME
    db_user: Optional[str] = None
    db_pass: Optional[str] = field(default=None, repr=False)
    db_token: Optional[str] = field(default=None, repr=False)
    db_org: str = "-"
    poll_timing: int = DEFAULT_POLL_TIMING
    max_retry: int = DEFAULT_MAX_RETRY
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    log_level: str = "INFO"

    def __post_init__(self):
        if (self.db_user is None) != (self.db_pass is None):
            raise ConfigInvalid(
                "OPENWEATHER_INFLUXDB_DBUSER and OPENWEATHER_INFLUXDB_DBPASS "
                "must be set together"
            )
        if self.http_timeout >= self.poll_timing:
            raise ConfigInvalid(
                f"OPENWEATHER_HTTP_TIMEOUT ({self.http_timeout}s) must be shorter "
                f"than OPENWEATHER_POLL_TIMING ({self.poll_timing}s)"
            )
        if self.log_level not in LOG_LEVELS:
            raise ConfigInvalid(
                f"OPENWEATHER_LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}"
            )

    @property
    def has_credentials(self) -> bool:
        return self.db_user is not None

    @classmethod
    def from_mapping(cls, values: Mapping[str, Optional[str]]) -> "Settings":
        """Validate raw OPENWEATHER_* values and build the settings record

        Args:
            values (Mapping): variable name to raw string value

        Raises:
            ConfigInvalid: on a missing required key or a malformed value

        Returns:
            Settings: immutable settings
        """
        poll_timing = _positive_int(values, "OPENWEATHER_POLL_TIMING", DEFAULT_POLL_TIMING)
        # short poll intervals get a proportionally short request timeout
        http_timeout = _positive_int(
            values,
            "OPENWEATHER_HTTP_TIMEOUT",
            min(DEFAULT_HTTP_TIMEOUT, poll_timing / 2),
        )
        return cls(
            api_key=_required(values, "OPENWEATHER_API_KEY"),
            zipcode=_required(values, "OPENWEATHER_POLL_ZIP"),
            db_server=_required(values, "OPENWEATHER_INFLUXDB_SERVER"),
            country=_text(values, "OPENWEATHER_POLL_COUNTRY"),
            db_name=_text(values, "OPENWEATHER_INFLUXDB_NAME") or DEFAULT_DB_NAME,
            db_user=_text(values, "OPENWEATHER_INFLUXDB_DBUSER"),
            db_pass=_text(values, "OPENWEATHER_INFLUXDB_DBPASS"),
            db_token=_text(values, "OPENWEATHER_INFLUXDB_TOKEN"),
            db_org=_text(values, "OPENWEATHER_INFLUXDB_ORG") or "-",
            poll_timing=poll_timing,
            max_retry=_positive_int(values, "OPENWEATHER_MAX_RETRY", DEFAULT_MAX_RETRY),
            http_timeout=http_timeout,
            log_level=(_text(values, "OPENWEATHER_LOG_LEVEL") or "INFO").upper(),
        )


def resolve_source(environ: Optional[Mapping[str, str]] = None) -> Source:
    environ = os.environ if environ is None else environ
    config_file = environ.get(FILE_VARIABLE)
    if config_file:
        return FileSource(config_file)
    return EnvSource(environ)


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Resolve the configuration source once and build the settings

    Args:
        environ (Mapping, optional): environment to read, `os.environ` if None

    Returns:
        Settings: immutable settings
    """
    source = resolve_source(environ)
    if isinstance(source, FileSource):
        logging.info("Reading configuration from %s", source.path)
    else:
        logging.info("Reading configuration from environment")
    return Settings.from_mapping(source.values())
