"""
Exception hierarchy for geosync.

Every exception carries an ErrorKind so callers (retry loop, scheduler, CLI)
dispatch on structure instead of parsing messages.
"""

from __future__ import annotations

from .models import ErrorKind


class GeoSyncError(Exception):
    kind: ErrorKind = ErrorKind.UNKNOWN


class ConfigError(GeoSyncError):
    """Raised when required settings (keys, sheet id, credentials) are missing."""
    pass


class InvalidInput(GeoSyncError):
    kind = ErrorKind.INVALID_INPUT


class InvalidCoordinates(GeoSyncError):
    kind = ErrorKind.INVALID_COORDINATES


class LocationNotFound(GeoSyncError):
    kind = ErrorKind.NOT_FOUND


class InvalidStatus(GeoSyncError):
    kind = ErrorKind.INVALID_STATUS


class RateLimited(GeoSyncError):
    """Quota / HTTP 429 from the record store. The only retryable class."""
    kind = ErrorKind.RATE_LIMITED


class TransportError(GeoSyncError):
    kind = ErrorKind.TRANSPORT


class SheetsError(GeoSyncError):
    """Store failure that is neither rate limiting nor a missing row."""
    pass
