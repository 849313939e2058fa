"""Error taxonomy for source ingestion and the snapshot cache."""
from __future__ import annotations


class TrackerError(Exception):
    """Base class for all tracker failures."""


class NetworkError(TrackerError):
    """Raised when a source payload cannot be downloaded."""

    def __init__(self, url: str, reason: str, *, status_code: int | None = None) -> None:
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason
        self.status_code = status_code


class ParseError(TrackerError):
    """Raised when a payload cannot be read as a task sheet at all."""


class IngestionError(TrackerError):
    """Raised when no configured source produced a usable result."""


class CacheError(TrackerError):
    """Base class for data cache failures surfaced to callers."""


class CacheNotInitialized(CacheError):
    """Raised by read accessors before the first snapshot is available."""

    def __init__(self) -> None:
        super().__init__("Cache not initialized")


class CacheInitError(CacheError):
    """Raised when the first ingestion run fails."""


class CacheRefreshError(CacheError):
    """Raised when a refresh fails and there is no snapshot to fall back to."""


class RefreshTimeoutError(CacheError):
    """Raised when waiting on an in-flight refresh exceeds the bound with nothing cached."""


__all__ = [
    "CacheError",
    "CacheInitError",
    "CacheNotInitialized",
    "CacheRefreshError",
    "IngestionError",
    "NetworkError",
    "ParseError",
    "RefreshTimeoutError",
    "TrackerError",
]
