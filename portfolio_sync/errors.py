"""Error taxonomy for the synchronization engine."""

from __future__ import annotations

from typing import Optional


class SyncError(Exception):
    """Base class for every failure raised while syncing a source."""

    def __init__(self, message: str, source: Optional[str] = None) -> None:
        super().__init__(message)
        self.source = source


class TransferFailure(SyncError):
    """Network error, timeout, undecodable body or non-2xx response."""

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message, source)
        self.status_code = status_code


class RateLimited(SyncError):
    """The platform refused the request until its rate-limit window resets.

    Carries the wait time so callers can log something actionable. The engine
    never sleeps on it; the next scheduled pass is the retry.
    """

    def __init__(self, retry_after_seconds: int, source: Optional[str] = None) -> None:
        super().__init__(
            f"rate limited, retry after {retry_after_seconds} seconds", source
        )
        self.retry_after_seconds = retry_after_seconds


class PersistenceFailure(SyncError):
    """Raised by the database gateway when an upsert or lookup fails."""
