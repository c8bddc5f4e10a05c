"""
Meridian Weather Lab - Error taxonomy
"""

from typing import Optional


class MeridianError(Exception):
    """Base error for the ingestion pipeline and its HTTP surface."""

    status_code = 500


class AuthError(MeridianError):
    """Shared secret missing or mismatched."""

    status_code = 403


class MethodError(MeridianError):
    """Endpoint called with the wrong HTTP verb."""

    status_code = 405


class ValidationError(MeridianError):
    """Malformed request parameter on a maintenance path."""

    status_code = 400

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.details = details


class UpstreamFatal(MeridianError):
    """The sensor fetch failed or returned an unusable payload. Aborts the cycle."""

    def __init__(self, source: str, reason: str):
        super().__init__(f"{source}: {reason}")
        self.source = source
        self.reason = reason


class UpstreamDegraded(MeridianError):
    """A forecast provider failed or its horizon value could not be located."""

    def __init__(self, source: str, reason: str):
        super().__init__(f"{source}: {reason}")
        self.source = source
        self.reason = reason


class StorageError(MeridianError):
    """The record store is unreachable or rejected an operation."""
