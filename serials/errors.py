"""Error taxonomy for scans.

``ScanError`` subclasses are what callers of the orchestrator see.
``FetchError`` and ``StoreError`` are raised by the injected collaborators and
translated by the orchestrator.
"""

from __future__ import annotations

from typing import Optional


class SerialsError(Exception):
    """Base exception with a friendly message and optional hint."""

    def __init__(self, message: str, suggestion: Optional[str] = None) -> None:
        self.message = message
        self.suggestion = suggestion
        super().__init__(message)

    def __str__(self) -> str:
        if self.suggestion:
            return f"{self.message}\nSuggestion: {self.suggestion}"
        return self.message


class FetchError(SerialsError):
    """The remote listing could not be fetched or parsed."""


class StoreError(SerialsError):
    """The scan history store failed to read or write."""


class ScanError(SerialsError):
    """A scan attempt did not complete."""

    def __init__(
        self, source_id: str, message: str, suggestion: Optional[str] = None
    ) -> None:
        self.source_id = source_id
        super().__init__(message, suggestion)


class ScanAlreadyInProgress(ScanError):
    def __init__(self, source_id: str) -> None:
        super().__init__(
            source_id,
            f"A scan of source '{source_id}' is already running",
            "Wait for it to finish, then check the last scan.",
        )


class FetchFailed(ScanError):
    """Transient; the caller may retry."""

    def __init__(self, source_id: str, reason: str) -> None:
        self.reason = reason
        super().__init__(
            source_id,
            f"Fetching source '{source_id}' failed: {reason}",
            "Stored chapters were not touched. Retry the scan later.",
        )


class PersistFailed(ScanError):
    """Storage failed; stored chapters and last scan are unchanged."""

    def __init__(self, source_id: str, reason: str) -> None:
        self.reason = reason
        super().__init__(
            source_id,
            f"Saving scan of source '{source_id}' failed: {reason}",
        )


class SourceNotFound(ScanError):
    def __init__(self, source_id: str) -> None:
        super().__init__(
            source_id,
            f"Source '{source_id}' not found",
            "List sources with: serials sources",
        )


class SourceDisabled(ScanError):
    def __init__(self, source_id: str) -> None:
        super().__init__(source_id, f"Source '{source_id}' is disabled")


class StoreUnavailable(ScanError):
    """Stored state could not be read; nothing was fetched or written."""

    def __init__(self, source_id: str, reason: str) -> None:
        self.reason = reason
        super().__init__(
            source_id,
            f"Reading stored state of source '{source_id}' failed: {reason}",
            "Retry the scan once the database is reachable.",
        )
