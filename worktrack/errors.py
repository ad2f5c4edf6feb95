"""Domain error taxonomy.

Pure math never raises these. Reconciliation and bulk operations attach
them to result objects next to a ``success`` flag so loops can keep going;
only ``compute_entry`` raises ``ValidationError`` directly.
"""
from typing import Any, Dict, Optional


class WorkTrackError(Exception):
    """Base class for all domain errors."""

    def __init__(self, message: str, draft: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        # Attempted draft, kept intact so the caller can retry without re-deriving
        self.draft = draft


class ValidationError(WorkTrackError):
    """Missing required field or invalid numeric input. Nothing was persisted."""
    pass


class NotFoundError(WorkTrackError):
    """Target missing after both direct-key and legacy-id lookup.

    Not fatal: the caller decides whether "already gone" counts as success.
    """

    def __init__(self, key: str) -> None:
        super().__init__(f"Entry not found: {key}")
        self.key = key


class RemoteError(WorkTrackError):
    """Store failure during add/update/delete. Never retried automatically."""
    pass


class ConcurrencyRejection(WorkTrackError):
    """An identical bulk submission is already in progress."""

    def __init__(self, lock_key: str, retry_after: float) -> None:
        super().__init__(
            f"Bulk submission already in progress. "
            f"Please wait {retry_after:.0f} seconds before trying again."
        )
        self.lock_key = lock_key
        self.retry_after = retry_after
