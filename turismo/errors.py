"""Exception taxonomy for the ingestion cycle."""

from __future__ import annotations

from typing import Optional


class IngestError(Exception):
    """Base class for failures that end a refresh cycle or skip a row."""


class FetchError(IngestError):
    """Network or HTTP failure while downloading the sheet export."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class ParseRowError(IngestError):
    """A single data row failed validation; the batch continues without it."""

    def __init__(self, row: int, issue: str, value: Optional[str] = None):
        super().__init__(f"row {row}: {issue}" + (f" ({value!r})" if value is not None else ""))
        self.row = row
        self.issue = issue
        self.value = value


class BatchParseError(IngestError):
    """Data rows were present but none of them produced a record."""

    def __init__(self, message: str, skipped: int = 0):
        super().__init__(message)
        self.skipped = skipped
