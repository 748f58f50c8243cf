"""Shared fixtures for the openweather2influx test suite."""

from datetime import datetime

import pytest
import pytz

from openweather import Reading


@pytest.fixture()
def pollution_payload():
    """Air pollution API body as OpenWeather returns it."""
    return {
        "coord": {"lon": -87.65, "lat": 41.85},
        "list": [
            {
                "main": {"aqi": 2},
                "components": {
                    "co": 201.94,
                    "no": 0.02,
                    "no2": 0.77,
                    "o3": 68.66,
                    "so2": 0.64,
                    "pm2_5": 0.5,
                    "pm10": 0.54,
                    "nh3": 0.12,
                },
                "dt": 1700000000,
            }
        ],
    }


@pytest.fixture()
def geo_payload():
    return {
        "zip": "60601",
        "name": "Chicago",
        "lat": 41.8858,
        "lon": -87.6181,
        "country": "US",
    }


@pytest.fixture()
def reading():
    return Reading(
        timestamp=datetime(2023, 11, 14, 22, 13, 20, tzinfo=pytz.utc),
        location="Chicago",
        pollutants={"pm2_5": 0.5, "pm10": 0.54, "o3": 68.66, "co": 201.94, "so2": 0.64, "no2": 0.77},
        aqi=2,
    )
