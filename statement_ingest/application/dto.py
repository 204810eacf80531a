"""Application-level DTOs for statement ingestion."""
from __future__ import annotations

from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Any, Sequence

from statement_ingest.domain.models import (
    CanonicalHoldingRecord,
    CanonicalTradeRecord,
    MasterRatingRecord,
    RowRejection,
    SourceLayout,
)
from statement_ingest.domain.results import Confidence, SheetResult


@dataclass(slots=True, frozen=True)
class IngestionRequest:
    source: BytesIO | Path | bytes
    filename: str
    layout_override: SourceLayout | None = None


@dataclass(slots=True, frozen=True)
class PreviewResult:
    filename: str
    detected_layout: SourceLayout
    confidence: Confidence
    trades: Sequence[CanonicalTradeRecord]
    holdings: Sequence[CanonicalHoldingRecord]
    ratings: Sequence[MasterRatingRecord]
    rejections: Sequence[RowRejection]
    sheets: Sequence[SheetResult]

    @property
    def total_records(self) -> int:
        return len(self.trades) + len(self.holdings) + len(self.ratings)

    def to_dict(self) -> dict[str, Any]:
        return {
            "fileName": self.filename,
            "detectedLayout": self.detected_layout.value,
            "confidence": self.confidence.value,
            "trades": [dict(record.to_document(), transactionId=record.transaction_id) for record in self.trades],
            "holdings": [dict(record.to_document(), holdingId=record.holding_id) for record in self.holdings],
            "ratings": [record.to_document() for record in self.ratings],
            "perRowRejections": [rejection.to_dict() for rejection in self.rejections],
            "sheets": [sheet.to_dict() for sheet in self.sheets],
        }
