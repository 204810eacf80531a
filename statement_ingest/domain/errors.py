"""File-level failures surfaced to callers.

Row-level and value-level problems never raise; they are collected as
``RowRejection`` values or recorded as unparsed fields on the canonical
record. Only a file that cannot be read at all, or in which no sheet has a
recognizable layout, stops an ingestion run.
"""
from __future__ import annotations


class IngestionError(Exception):
    """Base class for fatal ingestion failures."""

    def __init__(self, message: str, filename: str | None = None) -> None:
        super().__init__(message)
        self.filename = filename

    def __str__(self) -> str:
        message = super().__str__()
        if self.filename:
            return f"{self.filename}: {message}"
        return message


class UnreadableFileError(IngestionError):
    """The container could not be opened or holds no sheets."""


class UnrecognizedLayoutError(IngestionError):
    """No sheet in the file matched any known layout."""
