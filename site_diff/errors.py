"""Exception hierarchy shared by every SiteDiff layer."""
from __future__ import annotations

from enum import Enum
from typing import Optional

__all__ = [
    "SiteDiffError",
    "ConfigurationError",
    "SanitizationError",
    "CacheError",
    "FetchErrorKind",
    "FetchError",
]


class SiteDiffError(Exception):
    """Base class for all SiteDiff errors."""


class ConfigurationError(SiteDiffError):
    """Missing or contradictory input. Fatal, raised before any fetch."""


class SanitizationError(SiteDiffError, ValueError):
    """A sanitization rule cannot be compiled."""


class CacheError(SiteDiffError):
    """The cache store could not be read or written."""


class FetchErrorKind(str, Enum):
    HTTP_STATUS = "http_status"
    TIMEOUT = "timeout"
    DNS = "dns"
    TLS = "tls"
    CONNECTION = "connection"
    INVALID_URL = "invalid_url"
    CANCELLED = "cancelled"


class FetchError(SiteDiffError):
    """A single page could not be retrieved."""

    def __init__(
        self,
        kind: FetchErrorKind,
        url: str,
        message: str,
        status: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.url = url
        self.status = status
        self.message = message

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message} ({self.url})"
