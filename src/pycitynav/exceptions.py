"""Custom exception hierarchy for pycitynav."""

from __future__ import annotations


class CityNavError(Exception):
    """Base exception for all pycitynav errors."""


class CityNavConfigError(CityNavError):
    """Invalid or missing configuration."""


class NetworkError(CityNavError):
    """Fetch failed at the transport level or returned a non-success status."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        url: str = "",
        body: str = "",
    ) -> None:
        self.status_code = status_code
        self.url = url
        self.body = body
        super().__init__(message)


class NoResultError(CityNavError):
    """Fetch succeeded but the result set was empty (e.g. zero routes)."""


class StorageError(CityNavError):
    """Durable read/write failure, including quota exhaustion."""


class DecodeError(CityNavError):
    """Payload is malformed: bad JSON, failed decompression, bad record."""


class UnsupportedCapabilityError(CityNavError):
    """A required platform capability is absent (e.g. no geolocation provider)."""


class LocationError(CityNavError):
    """The geolocation provider failed to produce a position.

    ``code`` follows the browser geolocation convention:
    ``1`` permission denied, ``2`` position unavailable, ``3`` timeout.
    """

    def __init__(self, message: str, *, code: int = 0) -> None:
        self.code = code
        super().__init__(message)


class RequestCancelledError(CityNavError):
    """A fetch was cancelled because a newer request superseded it.

    Raised only to callers that were awaiting the superseded fetch and
    have no cached value to fall back on.
    """
