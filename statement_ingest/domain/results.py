"""Domain-level results for classification, persistence and ingestion runs."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Sequence

from .models import RowRejection, SourceLayout


class Confidence(Enum):
    HIGH = "HIGH"
    LOW = "LOW"
    NONE = "NONE"


@dataclass(frozen=True)
class Classification:
    """Outcome of classifying one sheet.

    ``header_row`` is ``None`` when no row in the scan window looked like a
    header, in which case data starts at row 0. ``hinted`` records that a
    filename or sheet-name token decided the layout.
    """

    layout: SourceLayout
    confidence: Confidence
    header_row: int | None = None
    scores: Mapping[SourceLayout, int] = field(default_factory=dict)
    hinted: bool = False

    @property
    def is_guess(self) -> bool:
        return self.confidence is Confidence.LOW

    @property
    def is_unknown(self) -> bool:
        return self.layout is SourceLayout.UNKNOWN


@dataclass(frozen=True)
class WriteError:
    key: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"key": self.key, "message": self.message}


@dataclass(frozen=True)
class BulkWriteResult:
    matched: int = 0
    modified: int = 0
    upserted: int = 0
    errors: Sequence[WriteError] = field(default_factory=tuple)


@dataclass(frozen=True)
class ReconciliationResult:
    inserted: int = 0
    updated: int = 0
    duplicates: int = 0
    total: int = 0
    write_errors: Sequence[WriteError] = field(default_factory=tuple)

    def __add__(self, other: "ReconciliationResult") -> "ReconciliationResult":
        return ReconciliationResult(
            inserted=self.inserted + other.inserted,
            updated=self.updated + other.updated,
            duplicates=self.duplicates + other.duplicates,
            total=self.total + other.total,
            write_errors=tuple(self.write_errors) + tuple(other.write_errors),
        )


@dataclass(frozen=True)
class SheetResult:
    sheet_name: str
    layout: SourceLayout
    confidence: Confidence
    records: int = 0
    rejections: int = 0
    uncategorized: int = 0
    scheme_name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "sheet": self.sheet_name,
            "layout": self.layout.value,
            "confidence": self.confidence.value,
            "records": self.records,
            "rejections": self.rejections,
            "uncategorized": self.uncategorized,
            "schemeName": self.scheme_name,
        }


@dataclass(frozen=True)
class IngestionSummary:
    filename: str
    imported_count: int
    updated_count: int
    duplicate_count: int
    total_processed: int
    detected_layout: SourceLayout
    confidence: Confidence
    rejections: Sequence[RowRejection] = field(default_factory=tuple)
    write_errors: Sequence[WriteError] = field(default_factory=tuple)
    sheets: Sequence[SheetResult] = field(default_factory=tuple)

    def has_issues(self) -> bool:
        return any(
            [
                self.rejections,
                self.write_errors,
                self.confidence is not Confidence.HIGH,
            ]
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "fileName": self.filename,
            "importedCount": self.imported_count,
            "updatedCount": self.updated_count,
            "duplicateCount": self.duplicate_count,
            "totalProcessed": self.total_processed,
            "detectedLayout": self.detected_layout.value,
            "confidence": self.confidence.value,
            "perRowRejections": [rejection.to_dict() for rejection in self.rejections],
            "writeErrors": [error.to_dict() for error in self.write_errors],
            "sheets": [sheet.to_dict() for sheet in self.sheets],
        }
