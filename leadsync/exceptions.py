"""
Exceptions - Error taxonomy for the sync and extraction pipeline

Provider errors abort a sync mode, per-message errors are isolated to one
message, and persistence conflicts are absorbed by lead deduplication.
"""

from typing import Optional


class LeadSyncError(Exception):
    """Base class for all pipeline errors."""


class ConfigError(LeadSyncError, ValueError):
    """Raised when config.yaml is missing a section or holds an invalid value."""


class ProviderError(LeadSyncError):
    """
    Raised when the mail provider rejects a request.

    Args:
        message: Human readable description
        status: HTTP status returned by the provider, if any
    """

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class TransientProviderError(ProviderError):
    """Rate limiting, expired credentials or provider outages. Aborts the current mode."""


class WatermarkRejectedError(ProviderError):
    """The provider no longer recognises the stored history id."""

    def __init__(self, token: str, status: Optional[int] = None):
        super().__init__(f"History id {token} rejected by provider", status=status)
        self.token = token


class PerMessageError(LeadSyncError):
    """A failure confined to a single message."""

    def __init__(self, message: str, message_id: Optional[str] = None):
        super().__init__(message)
        self.message_id = message_id


class MessageParseError(PerMessageError):
    """The provider payload could not be turned into a canonical message."""


class ExtractionError(PerMessageError):
    """The extraction provider failed or returned an unusable response."""


class PersistenceConflict(LeadSyncError):
    """A lead insert lost a race on the (user, normalized url) constraint."""
