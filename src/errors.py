"""Exceptions raised while polling OpenWeather and writing to InfluxDB
"""
from enum import Enum


class Failure(Enum):
    NETWORK = "network"
    AUTH_REJECTED = "auth rejected"
    RATE_LIMITED = "rate limited"
    LOCATION_NOT_FOUND = "location not found"
    MALFORMED_RESPONSE = "malformed response"
    DATABASE_NOT_FOUND = "database not found"
    SERVER_ERROR = "server error"


FETCH_FAILURES = frozenset(
    [
        Failure.NETWORK,
        Failure.AUTH_REJECTED,
        Failure.RATE_LIMITED,
        Failure.LOCATION_NOT_FOUND,
        Failure.MALFORMED_RESPONSE,
    ]
)

WRITE_FAILURES = frozenset(
    [
        Failure.NETWORK,
        Failure.AUTH_REJECTED,
        Failure.DATABASE_NOT_FOUND,
        Failure.SERVER_ERROR,
    ]
)


class PollutionClientError(Exception):
    pass


class ConfigInvalid(PollutionClientError):
    pass


class InvalidEndpoint(PollutionClientError):
    pass


class CycleFailure(PollutionClientError):
    """Classified failure of one leg of a poll cycle

    Args:
        kind (Failure): cause, used for the log line only
        message (str): human readable detail
    """

    leg = "cycle"
    allowed = frozenset(Failure)

    def __init__(self, kind: Failure, message: str = ""):
        if kind not in self.allowed:
            raise ValueError(f"{kind} is not a valid {self.leg} failure")
        super().__init__(message or kind.value)
        self.kind = kind


class FetchError(CycleFailure):
    leg = "fetch"
    allowed = FETCH_FAILURES


class WriteError(CycleFailure):
    leg = "write"
    allowed = WRITE_FAILURES


class RetriesExhausted(PollutionClientError):
    def __init__(self, failures: int):
        super().__init__(f"{failures} consecutive failed cycles")
        self.failures = failures
