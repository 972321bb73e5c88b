"""Exception taxonomy for the task-to-answer pipeline."""
from __future__ import annotations

from typing import Optional


class TaskFoundryError(Exception):
    """Base class for pipeline failures."""


class ExtractionError(TaskFoundryError):
    """Raised when no usable table (or column) can be produced from a source."""

    NO_TABLE_FOUND = "NoTableFound"
    NO_DATA_SOURCE = "NoDataSource"
    EMPTY_SOURCE = "EmptySource"
    FETCH_FAILED = "FetchFailed"
    QUERY_FAILED = "QueryFailed"
    MALFORMED_SOURCE = "MalformedSource"

    def __init__(self, reason: str, message: Optional[str] = None) -> None:
        self.reason = reason
        super().__init__(f"{reason}: {message}" if message else reason)


class InsufficientDataError(TaskFoundryError):
    """Raised when fewer than two usable points remain for a statistic or plot."""

    def __init__(self, needed: int, available: int, what: str = "points") -> None:
        self.needed = needed
        self.available = available
        super().__init__(f"need at least {needed} {what}, got {available}")


class RenderError(TaskFoundryError):
    """Raised when a chart could not be encoded at any resolution tier."""


class ClassificationError(TaskFoundryError):
    """Raised when the delegated classifier returns malformed structured output."""


class TaskTimeoutError(TaskFoundryError):
    """Raised when a whole task exceeds its end-to-end time limit."""

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(f"task exceeded {timeout:g}s")


__all__ = [
    "ClassificationError",
    "ExtractionError",
    "InsufficientDataError",
    "RenderError",
    "TaskFoundryError",
    "TaskTimeoutError",
]
