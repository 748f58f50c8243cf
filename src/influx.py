import re
import logging
from typing import Optional
from influxdb_client import InfluxDBClient, Point, WritePrecision
from influxdb_client.client.write_api import SYNCHRONOUS
from influxdb_client.rest import ApiException
from urllib3.exceptions import HTTPError
from errors import Failure, InvalidEndpoint, WriteError
from openweather import Reading


DEFAULT_PORT = 8086
MEASUREMENT = "pollution"

_SCHEME = re.compile(r"^([A-Za-z][A-Za-z0-9+.-]*)://")


def _has_port(authority: str) -> bool:
    hostport = authority.rsplit("@", 1)[-1]
    if hostport.startswith("["):
        # [v6addr] or [v6addr]:port
        end = hostport.find("]")
        if end == -1:
            raise InvalidEndpoint(f"Unterminated IPv6 address in {authority!r}")
        host, rest = hostport[1:end], hostport[end + 1:]
        if not rest:
            port = None
        elif rest.startswith(":"):
            port = rest[1:]
        else:
            raise InvalidEndpoint(f"Unexpected {rest!r} after IPv6 address")
    else:
        host, _, port = hostport.partition(":")
        port = port if ":" in hostport else None
    if not host:
        raise InvalidEndpoint(f"No host in {authority!r}")
    if port is None:
        return False
    if not port.isdigit():
        raise InvalidEndpoint(f"Port {port!r} is not a number")
    return True


def normalize_endpoint(raw: str) -> str:
    """Turn a user supplied InfluxDB host into a base URL

    `http://` is added when no scheme is given and `:8086` when no port is
    given. Path and query are left as they are.

    Args:
        raw (str): e.g. `localhost`, `https://db.example.com`, `localhost:8080`

    Raises:
        InvalidEndpoint: scheme other than http/https, no host, bad port

    Returns:
        str: e.g. `http://localhost:8086`
    """
    server = raw.strip()
    match = _SCHEME.match(server)
    if match:
        scheme = match.group(1).lower()
        if scheme not in ("http", "https"):
            raise InvalidEndpoint(
                f"Unsupported scheme {scheme!r} in {raw!r}, use http:// or https://"
            )
        rest = server[match.end():]
    else:
        scheme = "http"
        rest = server

    # authority ends at the first path, query or fragment delimiter
    split = re.search(r"[/?#]", rest)
    if split:
        authority, tail = rest[: split.start()], rest[split.start():]
    else:
        authority, tail = rest, ""

    if not _has_port(authority):
        authority = f"{authority}:{DEFAULT_PORT}"
    return f"{scheme}://{authority}{tail}"


def to_point(reading: Reading) -> Point:
    """Parse a reading into InfluxDB format

    Args:
        reading (Reading): one air quality reading

    Returns:
        Point: InfluxDB point tagged with the reading's location
    """
    point = Point(MEASUREMENT).tag("location", reading.location)
    for name, value in sorted(reading.pollutants.items()):
        point = point.field(name, float(value))
    if reading.aqi is not None:
        point = point.field("aqi", int(reading.aqi))
    return point.time(reading.timestamp, WritePrecision.S)


def _classify(err: ApiException) -> Failure:
    if err.status in (401, 403):
        return Failure.AUTH_REJECTED
    if err.status == 404:
        return Failure.DATABASE_NOT_FOUND
    return Failure.SERVER_ERROR


class InfluxWriter:
    """Write readings to one InfluxDB database

    Username and password authenticate with HTTP basic auth (InfluxDB 1.x),
    otherwise a token is used if given (InfluxDB 2.x), otherwise no auth.
    """

    def __init__(
        self,
        endpoint: str,
        database: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        token: Optional[str] = None,
        org: str = "-",
        timeout: int = 10,
    ):
        if (username is None) != (password is None):
            raise ValueError("username and password must be given together")
        self.endpoint = endpoint
        self.database = database
        self.org = org
        self.timeout_ms = int(timeout * 1000)
        self._username = username
        self._password = password
        self._token = token

    @property
    def auth_mode(self) -> str:
        if self._username is not None:
            return "basic"
        if self._token is not None:
            return "token"
        return "none"

    def connect(self) -> InfluxDBClient:
        kwargs = {"url": self.endpoint, "org": self.org, "timeout": self.timeout_ms}
        if self._username is not None:
            kwargs["token"] = f"{self._username}:{self._password}"
            kwargs["auth_basic"] = True
        elif self._token is not None:
            kwargs["token"] = self._token
        client = InfluxDBClient(**kwargs)

        logging.debug("Connected to InfluxDB %s (%s)", self.endpoint, self.database)
        return client

    def write(self, reading: Reading) -> None:
        """Write one reading to InfluxDB

        Args:
            reading (Reading): reading to store, discarded if the write fails

        Raises:
            WriteError: classified failure of the write
        """
        point = to_point(reading)

        client = self.connect()
        try:
            write_api = client.write_api(write_options=SYNCHRONOUS)
            write_api.write(bucket=self.database, record=point)
        except ApiException as err:
            kind = _classify(err)
            raise WriteError(
                kind, f"InfluxDB answered {err.status} {err.reason or ''}".strip()
            ) from err
        except HTTPError as err:
            raise WriteError(Failure.NETWORK, f"InfluxDB unreachable: {err}") from err
        finally:
            client.close()

        logging.info("Written %s to InfluxDB database %s", point.to_line_protocol(), self.database)
