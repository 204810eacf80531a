"""Application services orchestrating the ingestion workflow."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date

from statement_ingest.config import SETTINGS, Settings
from statement_ingest.domain.models import CanonicalTradeRecord
from statement_ingest.domain.ratings import RatingLookupCache
from statement_ingest.domain.repositories import RecordStore
from statement_ingest.domain.results import IngestionSummary, ReconciliationResult
from statement_ingest.domain.services import IngestionReconciler
from statement_ingest.infrastructure.parsing.pipeline import ParsedStatement, parse_statement

from .dto import IngestionRequest, PreviewResult

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class IngestionContext:
    store: RecordStore
    ratings: RatingLookupCache
    settings: Settings = field(default=SETTINGS)

    @classmethod
    def for_store(cls, store: RecordStore, settings: Settings = SETTINGS) -> "IngestionContext":
        return cls(store=store, ratings=RatingLookupCache(store, settings.rating_cache_ttl), settings=settings)


def sort_for_preview(trades: list[CanonicalTradeRecord]) -> list[CanonicalTradeRecord]:
    """Newest trade date first, then exchange and ISIN."""
    ordered = sorted(trades, key=lambda record: (record.exchange, record.isin))
    return sorted(ordered, key=lambda record: record.trade_date or date.min, reverse=True)


class IngestFileUseCase:
    def __init__(self, context: IngestionContext) -> None:
        self._context = context
        self._reconciler = IngestionReconciler(context.store, context.ratings)

    def _parse(self, request: IngestionRequest) -> ParsedStatement:
        return parse_statement(
            request.source,
            request.filename,
            settings=self._context.settings,
            layout_override=request.layout_override,
        )

    def execute(self, request: IngestionRequest) -> IngestionSummary:
        statement = self._parse(request)
        result = ReconciliationResult()
        # Master rows first so trades in the same upload see the refreshed cache.
        if statement.ratings:
            result += self._reconciler.reconcile_master(statement.ratings)
        if statement.holdings:
            result += self._reconciler.reconcile_holdings(statement.holdings)
        if statement.trades:
            result += self._reconciler.reconcile_trades(statement.trades)

        classification = statement.classification
        summary = IngestionSummary(
            filename=request.filename,
            imported_count=result.inserted,
            updated_count=result.updated,
            duplicate_count=result.duplicates,
            total_processed=result.total,
            detected_layout=classification.layout,
            confidence=classification.confidence,
            rejections=tuple(statement.rejections),
            write_errors=tuple(result.write_errors),
            sheets=tuple(sheet.to_result() for sheet in statement.sheets),
        )
        logger.info(
            "%s: imported=%d updated=%d duplicates=%d rejected=%d",
            request.filename,
            summary.imported_count,
            summary.updated_count,
            summary.duplicate_count,
            len(summary.rejections),
        )
        return summary

    def preview(self, request: IngestionRequest) -> PreviewResult:
        """Parse and enrich without writing anything."""
        statement = self._parse(request)
        classification = statement.classification
        return PreviewResult(
            filename=request.filename,
            detected_layout=classification.layout,
            confidence=classification.confidence,
            trades=tuple(sort_for_preview(self._reconciler.enrich_trades(statement.trades))),
            holdings=tuple(statement.holdings),
            ratings=tuple(statement.ratings),
            rejections=tuple(statement.rejections),
            sheets=tuple(sheet.to_result() for sheet in statement.sheets),
        )
