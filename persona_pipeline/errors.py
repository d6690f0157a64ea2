"""
errors.py — failure taxonomy for the tracking pipeline.

  ValidationError       malformed ingestion batch      → HTTP 400, never retried
  StorageUnavailable    row store unreachable          → ingestion succeeds with zero effect
  ClassifierFailure     classifier timeout / bad reply → cached classification kept
  PartialRollupFailure  one session's rollup failed    → recorded, loop continues

Nothing here is fatal to the process: the worst outcome is stale personalization.
"""
from __future__ import annotations

from typing import Any, Optional


class TrackingError(Exception):
    """Base class for every pipeline error."""


class ValidationError(TrackingError, ValueError):
    """An ingestion batch failed structural validation."""

    def __init__(self, message: str, details: Optional[list[dict[str, Any]]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or []


class StorageUnavailable(TrackingError):
    """The row store could not be reached or refused the unit of work."""


class ClassifierFailure(TrackingError):
    """The external classifier timed out, errored, or returned an unusable reply."""


class PartialRollupFailure(TrackingError):
    """Rollup of a single session failed; other sessions are unaffected."""

    def __init__(self, session_id: str, cause: BaseException) -> None:
        super().__init__(f"rollup failed for session_id={session_id}: {cause!r}")
        self.session_id = session_id
        self.cause = cause
