import math
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional
import pytz
import requests
from errors import Failure, FetchError


GEO_URL = "https://api.openweathermap.org/geo/1.0/zip"
AIR_POLLUTION_URL = "https://api.openweathermap.org/data/2.5/air_pollution"

REQUIRED_COMPONENTS = [
    "pm2_5",  # μg/m3
    "pm10",  # μg/m3
    "o3",  # μg/m3
    "co",  # μg/m3
    "so2",  # μg/m3
    "no2",  # μg/m3
]
OPTIONAL_COMPONENTS = [
    "no",  # μg/m3
    "nh3",  # μg/m3
]

TZ = pytz.utc


@dataclass(frozen=True)
class Location:
    name: str
    lat: float
    lon: float


@dataclass(frozen=True)
class Reading:
    timestamp: datetime
    location: str
    pollutants: Dict[str, float]
    aqi: Optional[int] = None


def _number(value, key: str) -> float:
    # bool is an int subclass but never a concentration
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise FetchError(
            Failure.MALFORMED_RESPONSE, f"{key} is not numeric: {value!r}"
        )
    try:
        number = float(value)
    except OverflowError:
        number = math.inf
    if not math.isfinite(number):
        raise FetchError(
            Failure.MALFORMED_RESPONSE, f"{key} is not a finite number"
        )
    return number


def parse_reading(payload, location: str) -> Reading:
    """Parse an air pollution response into a reading

    Only the first entry of `list` is used. Components not listed in
    REQUIRED_COMPONENTS or OPTIONAL_COMPONENTS are ignored.

    Args:
        payload (dict): decoded JSON body of the air pollution API
        location (str): location identifier for the reading

    Raises:
        FetchError: MALFORMED_RESPONSE when a required value is absent or
            not numeric

    Returns:
        Reading: timestamped pollutant concentrations
    """
    if not isinstance(payload, dict):
        raise FetchError(Failure.MALFORMED_RESPONSE, "response is not an object")
    entries = payload.get("list")
    if not isinstance(entries, list) or len(entries) == 0:
        raise FetchError(Failure.MALFORMED_RESPONSE, "response has no measurements")
    entry = entries[0]
    if not isinstance(entry, dict):
        raise FetchError(Failure.MALFORMED_RESPONSE, "measurement is not an object")

    components = entry.get("components")
    if not isinstance(components, dict):
        raise FetchError(Failure.MALFORMED_RESPONSE, "measurement has no components")

    pollutants = {}
    for key in REQUIRED_COMPONENTS:
        if key not in components:
            raise FetchError(Failure.MALFORMED_RESPONSE, f"{key} is missing")
        pollutants[key] = _number(components[key], key)
    for key in OPTIONAL_COMPONENTS:
        if key in components:
            pollutants[key] = _number(components[key], key)

    if "dt" not in entry:
        raise FetchError(Failure.MALFORMED_RESPONSE, "dt is missing")
    dt = _number(entry["dt"], "dt")
    try:
        timestamp = datetime.fromtimestamp(int(dt), tz=TZ)
    except (ValueError, OverflowError, OSError) as err:
        raise FetchError(
            Failure.MALFORMED_RESPONSE, f"dt is out of range: {dt!r}"
        ) from err

    aqi = None
    main = entry.get("main")
    if isinstance(main, dict) and "aqi" in main:
        aqi = int(_number(main["aqi"], "aqi"))

    return Reading(timestamp=timestamp, location=location, pollutants=pollutants, aqi=aqi)


def _check_status(response: requests.Response, what: str) -> None:
    status = response.status_code
    if 200 <= status < 300:
        return
    if status in (401, 403):
        kind = Failure.AUTH_REJECTED
    elif status == 404:
        kind = Failure.LOCATION_NOT_FOUND
    elif status == 429:
        kind = Failure.RATE_LIMITED
    else:
        kind = Failure.NETWORK
    raise FetchError(kind, f"OpenWeather {what} answered {status}")


class AirQualityFetcher:
    """Fetch current air pollution for a postal code from OpenWeather

    The postal code is geocoded on the first fetch and the coordinates are
    kept for the lifetime of the fetcher.
    """

    def __init__(
        self,
        api_key: str,
        zipcode: str,
        country: Optional[str] = None,
        timeout: int = 10,
        session: Optional[requests.Session] = None,
    ):
        self.zipcode = zipcode
        self.country = country
        self.timeout = timeout
        self.location: Optional[Location] = None
        self._api_key = api_key
        self._session = session or requests.Session()

    def _get(self, url: str, params: dict, what: str):
        params = dict(params, appid=self._api_key)
        try:
            response = self._session.get(url, params=params, timeout=self.timeout)
        except requests.exceptions.Timeout as err:
            raise FetchError(Failure.NETWORK, f"OpenWeather {what} timed out") from err
        except requests.exceptions.RequestException as err:
            # str(err) may contain the request URL and with it the API key
            raise FetchError(
                Failure.NETWORK, f"OpenWeather {what} failed: {type(err).__name__}"
            ) from err
        _check_status(response, what)
        try:
            return response.json()
        except ValueError as err:
            raise FetchError(
                Failure.MALFORMED_RESPONSE, f"OpenWeather {what} returned invalid JSON"
            ) from err

    def resolve_location(self) -> Location:
        """Geocode the configured postal code, once

        Raises:
            FetchError: classified failure of the geocoding request

        Returns:
            Location: place name and coordinates
        """
        if self.location is not None:
            return self.location

        query = self.zipcode if not self.country else f"{self.zipcode},{self.country}"
        data = self._get(GEO_URL, {"zip": query}, "geocoding")
        if not isinstance(data, dict):
            raise FetchError(Failure.MALFORMED_RESPONSE, "geocoding response is not an object")
        try:
            location = Location(
                name=str(data.get("name") or query),
                lat=_number(data["lat"], "lat"),
                lon=_number(data["lon"], "lon"),
            )
        except KeyError as err:
            raise FetchError(
                Failure.MALFORMED_RESPONSE, f"geocoding response lacks {err}"
            ) from None

        logging.info(
            "Location added: %s (%s, lat %s, lon %s)",
            location.name,
            query,
            location.lat,
            location.lon,
        )
        self.location = location
        return location

    def fetch(self) -> Reading:
        """Read the current air pollution at the configured location

        Raises:
            FetchError: classified failure of the request or the response

        Returns:
            Reading: current pollutant concentrations
        """
        location = self.resolve_location()
        data = self._get(
            AIR_POLLUTION_URL, {"lat": location.lat, "lon": location.lon}, "air pollution"
        )
        reading = parse_reading(data, location.name)

        logging.info("Air Quality: %s", reading.aqi)
        logging.info(
            "  %s",
            ", ".join(f"{name}: {value} μg/m3" for name, value in reading.pollutants.items()),
        )
        return reading
