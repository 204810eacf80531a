"""Decode, classify, map and build every sheet of one uploaded file."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from io import BytesIO
from pathlib import Path

from statement_ingest.config import SETTINGS, Settings
from statement_ingest.domain.errors import UnrecognizedLayoutError
from statement_ingest.domain.models import (
    NO_CATEGORY,
    CanonicalHoldingRecord,
    CanonicalTradeRecord,
    CellGrid,
    ColumnMap,
    MasterRatingRecord,
    RowRejection,
    SourceLayout,
)
from statement_ingest.domain.results import Classification, Confidence, SheetResult
from statement_ingest.infrastructure.decoding.cells import compute_file_hash, decode_workbook, ensure_bytes

from .builders import BuildContext, build_holding, build_master_rating, build_trade
from .classifier import classify_sheet
from .columns import map_columns
from .holdings import SchemeInfo, detect_scheme_info
from .sections import SectionParser

logger = logging.getLogger(__name__)


@dataclass
class ParsedSheet:
    sheet_name: str
    classification: Classification
    processed: bool = False
    column_map: ColumnMap | None = None
    scheme: SchemeInfo | None = None
    trades: list[CanonicalTradeRecord] = field(default_factory=list)
    holdings: list[CanonicalHoldingRecord] = field(default_factory=list)
    ratings: list[MasterRatingRecord] = field(default_factory=list)
    rejections: list[RowRejection] = field(default_factory=list)

    @property
    def layout(self) -> SourceLayout:
        return self.classification.layout

    @property
    def record_count(self) -> int:
        return len(self.trades) + len(self.holdings) + len(self.ratings)

    @property
    def uncategorized(self) -> int:
        return sum(1 for rejection in self.rejections if rejection.reason == NO_CATEGORY)

    def to_result(self) -> SheetResult:
        return SheetResult(
            sheet_name=self.sheet_name,
            layout=self.layout,
            confidence=self.classification.confidence,
            records=self.record_count,
            rejections=len(self.rejections),
            uncategorized=self.uncategorized,
            scheme_name=self.scheme.name if self.scheme else None,
        )


@dataclass
class ParsedStatement:
    filename: str
    file_hash: str
    sheets: list[ParsedSheet]

    @property
    def processed_sheets(self) -> list[ParsedSheet]:
        return [sheet for sheet in self.sheets if sheet.processed]

    @property
    def trades(self) -> list[CanonicalTradeRecord]:
        return [record for sheet in self.sheets for record in sheet.trades]

    @property
    def holdings(self) -> list[CanonicalHoldingRecord]:
        return [record for sheet in self.sheets for record in sheet.holdings]

    @property
    def ratings(self) -> list[MasterRatingRecord]:
        return [record for sheet in self.sheets for record in sheet.ratings]

    @property
    def rejections(self) -> list[RowRejection]:
        return [rejection for sheet in self.sheets for rejection in sheet.rejections]

    @property
    def classification(self) -> Classification:
        """The first processed sheet stands for the file."""
        processed = self.processed_sheets
        if processed:
            return processed[0].classification
        return Classification(SourceLayout.UNKNOWN, Confidence.NONE)


def _classify(
    grid: CellGrid,
    filename: str,
    settings: Settings,
    layout_override: SourceLayout | None,
) -> Classification:
    if layout_override is not None and layout_override is not SourceLayout.UNKNOWN:
        logger.info("Sheet %r layout forced to %s", grid.sheet_name, layout_override.value)
        return Classification(layout_override, Confidence.HIGH, hinted=True)
    return classify_sheet(grid, filename, settings)


def parse_sheet(grid: CellGrid, parsed: ParsedSheet, context: BuildContext, settings: Settings) -> None:
    layout = parsed.layout
    column_map = map_columns(grid, layout, parsed.classification.header_row, settings)
    if column_map is None:
        return
    parsed.processed = True
    parsed.column_map = column_map

    if layout is SourceLayout.HOLDINGS_STATEMENT:
        for section_row in SectionParser().walk(grid, column_map):
            outcome = build_holding(section_row, column_map, context)
            if isinstance(outcome, RowRejection):
                parsed.rejections.append(outcome)
            else:
                parsed.holdings.append(outcome)
        if parsed.uncategorized:
            logger.warning(
                "Sheet %r: %d valid-looking rows appeared before any category header and were dropped",
                grid.sheet_name,
                parsed.uncategorized,
            )
        return

    for index in range(column_map.data_start, len(grid)):
        if grid.is_blank_row(index):
            continue
        row = grid.row(index)
        if layout is SourceLayout.RATINGS_MASTER:
            outcome = build_master_rating(index + 1, row, column_map, context)
        else:
            outcome = build_trade(index + 1, row, column_map, context)
        if isinstance(outcome, RowRejection):
            logger.debug("Sheet %r row %d rejected: %s", grid.sheet_name, index + 1, outcome.reason)
            parsed.rejections.append(outcome)
        elif isinstance(outcome, MasterRatingRecord):
            parsed.ratings.append(outcome)
        else:
            parsed.trades.append(outcome)


def parse_statement(
    source: BytesIO | Path | bytes,
    filename: str,
    settings: Settings = SETTINGS,
    layout_override: SourceLayout | None = None,
) -> ParsedStatement:
    data = ensure_bytes(source)
    grids = decode_workbook(data, filename)
    file_hash = compute_file_hash(data)
    sheets: list[ParsedSheet] = []
    for grid in grids:
        classification = _classify(grid, filename, settings, layout_override)
        parsed = ParsedSheet(sheet_name=grid.sheet_name, classification=classification)
        sheets.append(parsed)
        if classification.is_unknown:
            continue
        if classification.is_guess and settings.reject_low_confidence:
            logger.warning("Sheet %r skipped: low-confidence guess rejected by configuration", grid.sheet_name)
            continue
        scheme = detect_scheme_info(grid) if classification.layout is SourceLayout.HOLDINGS_STATEMENT else None
        parsed.scheme = scheme
        context = BuildContext(
            layout=classification.layout,
            sheet_name=grid.sheet_name,
            source_file=filename,
            file_hash=file_hash,
            scheme_name=scheme.name if scheme else None,
            report_date=scheme.report_date if scheme else None,
            settings=settings,
        )
        parse_sheet(grid, parsed, context, settings)
        logger.info(
            "Sheet %r: %d records, %d rejections", grid.sheet_name, parsed.record_count, len(parsed.rejections)
        )

    statement = ParsedStatement(filename=filename, file_hash=file_hash, sheets=sheets)
    if not statement.processed_sheets:
        raise UnrecognizedLayoutError("no sheet matched a known layout", filename)
    return statement
