"""Exception hierarchy for the Harbor analytics client.

Only ``ConfigurationError`` ever reaches the host application, and only while
a client is being constructed. Everything else is caught inside the library
and degrades functionality locally.
"""

from __future__ import annotations


class HarborError(Exception):
    """Base class for all Harbor analytics errors."""


class ConfigurationError(HarborError):
    """Required identity or credential settings are missing or invalid."""


class IdentityStorageUnavailable(HarborError):
    """Session-scoped storage could not be read or written."""


class TransportError(HarborError):
    """A delivery attempt failed (network error or non-success status)."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status
