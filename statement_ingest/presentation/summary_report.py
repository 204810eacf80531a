"""Plain-text rendering of ingestion runs for the command line."""
from __future__ import annotations

from typing import Sequence

from statement_ingest.application.dto import PreviewResult
from statement_ingest.domain.models import RowRejection
from statement_ingest.domain.results import IngestionSummary, SheetResult


def rejections_to_rows(rejections: Sequence[RowRejection]) -> list[dict[str, str]]:
    return [
        {
            "sheet": rejection.sheet_name,
            "row": str(rejection.row_number),
            "reason": rejection.reason,
            "detail": rejection.detail,
        }
        for rejection in rejections
    ]


def _sheet_lines(sheets: Sequence[SheetResult]) -> list[str]:
    lines = []
    for sheet in sheets:
        line = (
            f"  {sheet.sheet_name}: {sheet.layout.value} ({sheet.confidence.value}), "
            f"{sheet.records} records, {sheet.rejections} rejected"
        )
        if sheet.uncategorized:
            line += f", {sheet.uncategorized} before any category"
        if sheet.scheme_name:
            line += f" [{sheet.scheme_name}]"
        lines.append(line)
    return lines


def _rejection_lines(rejections: Sequence[RowRejection], limit: int) -> list[str]:
    rows = rejections_to_rows(rejections)
    lines = [f"  - {row['sheet']} row {row['row']}: {row['reason']} {row['detail']}".rstrip() for row in rows[:limit]]
    if len(rows) > limit:
        lines.append(f"  ... {len(rows) - limit} more")
    return lines


def render_summary(summary: IngestionSummary, limit: int = 20) -> str:
    lines = [
        f"Ingestion Summary: {summary.filename}",
        "=" * (19 + len(summary.filename)),
        f"Detected layout: {summary.detected_layout.value} ({summary.confidence.value})",
        f"Imported: {summary.imported_count}",
        f"Updated: {summary.updated_count}",
        f"Duplicates: {summary.duplicate_count}",
        f"Total processed: {summary.total_processed}",
        "Sheets:",
        *_sheet_lines(summary.sheets),
    ]
    if summary.rejections:
        lines.append(f"Rejected rows ({len(summary.rejections)}):")
        lines.extend(_rejection_lines(summary.rejections, limit))
    if summary.write_errors:
        lines.append(f"Write errors ({len(summary.write_errors)}):")
        lines.extend(f"  - {error.key}: {error.message}" for error in summary.write_errors[:limit])
    return "\n".join(lines)


def render_preview(preview: PreviewResult, limit: int = 20) -> str:
    lines = [
        f"Preview: {preview.filename}",
        f"Detected layout: {preview.detected_layout.value} ({preview.confidence.value})",
        f"Records: {preview.total_records}",
        "Sheets:",
        *_sheet_lines(preview.sheets),
    ]
    for record in preview.trades[:limit]:
        lines.append(
            f"  {record.exchange} {record.isin} {record.trade_date or '-'} {record.trade_time or '-'} "
            f"{record.order_type} {record.amount} @ {record.price} {record.deal_type} {record.rating_group}"
        )
    for holding in preview.holdings[:limit]:
        lines.append(
            f"  {holding.category}: {holding.isin} {holding.instrument_name} "
            f"mv={holding.market_value} nav%={holding.nav_percent}"
        )
    if preview.rejections:
        lines.append(f"Rejected rows ({len(preview.rejections)}):")
        lines.extend(_rejection_lines(preview.rejections, limit))
    return "\n".join(lines)
