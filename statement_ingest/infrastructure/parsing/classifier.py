"""Sheet layout classification by header keyword scoring."""
from __future__ import annotations

import logging
import re
from typing import Mapping, Sequence

from statement_ingest.config import SETTINGS, Settings
from statement_ingest.domain.models import LAYOUT_PRIORITY, Cell, CellGrid, SourceLayout
from statement_ingest.domain.results import Classification, Confidence

from .normalize import normalize_header

logger = logging.getLogger(__name__)

LAYOUT_KEYWORDS: Mapping[SourceLayout, tuple[str, ...]] = {
    SourceLayout.EXCHANGE_A: (
        "seller deal type",
        "buyer deal type",
        "deal size",
        "settlement status",
        "settlement date",
        "description",
        "seller",
        "buyer",
    ),
    SourceLayout.EXCHANGE_B: (
        "sr no",
        "symbol",
        "scrip",
        "issuer name",
        "coupon",
        "deal date",
        "settlement type",
        "trade amount",
        "trade price",
        "traded yield",
        "order type",
        "maturity date",
    ),
    SourceLayout.RATINGS_MASTER: (
        "credit rating",
        "rating",
        "name of issuer",
        "issuer",
        "isin code",
        "rating agency",
        "rating date",
        "outlook",
    ),
    SourceLayout.HOLDINGS_STATEMENT: (
        "name of the instrument",
        "name of instrument",
        "instrument",
        "% to nav",
        "% to net assets",
        "market value",
        "fair value",
        "quantity",
        "industry",
        "yield",
        "rounded",
    ),
}

_HINTS = {
    "nse": SourceLayout.EXCHANGE_A,
    "bse": SourceLayout.EXCHANGE_B,
}
_HINT_TOKEN = re.compile(r"^(nse|bse)|(?<![a-z])(nse|bse)(?![a-z])")


def layout_hint(*names: str | None) -> SourceLayout | None:
    """Return the exchange named by a leading or delimited ``nse``/``bse`` token, if any."""
    for name in names:
        if not name:
            continue
        match = _HINT_TOKEN.search(name.lower())
        if match:
            return _HINTS[match.group(1) or match.group(2)]
    return None


def score_row(row: Sequence[Cell]) -> dict[SourceLayout, int]:
    headers = [normalize_header(cell.value) for cell in row if not cell.is_blank]
    return {
        layout: sum(1 for keyword in keywords if any(keyword in header for header in headers))
        for layout, keywords in LAYOUT_KEYWORDS.items()
    }


def _best(scores: Mapping[SourceLayout, int]) -> tuple[SourceLayout, int]:
    best_layout, best_score = LAYOUT_PRIORITY[0], -1
    for layout in LAYOUT_PRIORITY:
        if scores.get(layout, 0) > best_score:
            best_layout, best_score = layout, scores.get(layout, 0)
    return best_layout, best_score


def _candidate_rows(grid: CellGrid, window: int) -> list[int]:
    first = grid.first_non_empty_row()
    if first is None:
        return []
    return [index for index in range(first, min(len(grid), window)) if not grid.is_blank_row(index)]


def classify_sheet(
    grid: CellGrid,
    source_name: str | None = None,
    settings: Settings = SETTINGS,
) -> Classification:
    candidates = _candidate_rows(grid, settings.header_scan_rows)
    hint = layout_hint(source_name, grid.sheet_name)

    best_row: int | None = None
    best_scores: dict[SourceLayout, int] = {}
    best_total = 0
    for index in candidates:
        scores = score_row(grid.row(index))
        reached = [
            layout
            for layout in LAYOUT_PRIORITY
            if scores[layout] >= settings.classifier_min_hits.get(layout, 2)
        ]
        if hint is not None and scores[hint] > best_scores.get(hint, 0):
            best_row, best_scores = index, scores
        if hint is None and reached:
            layout, _ = _best({layout: scores[layout] for layout in reached})
            logger.info("Sheet %r classified as %s from header row %d", grid.sheet_name, layout.value, index)
            return Classification(layout, Confidence.HIGH, header_row=index, scores=scores)
        if hint is None and max(scores.values()) > best_total:
            best_row, best_scores, best_total = index, scores, max(scores.values())

    if hint is not None:
        logger.info("Sheet %r classified as %s from name hint", grid.sheet_name, hint.value)
        return Classification(hint, Confidence.HIGH, header_row=best_row, scores=best_scores, hinted=True)

    if best_total == 0:
        logger.info("Sheet %r matched no known layout", grid.sheet_name)
        return Classification(SourceLayout.UNKNOWN, Confidence.NONE)

    logger.warning(
        "Sheet %r: no layout reached its minimum (best scores %s); guessing %s",
        grid.sheet_name,
        {layout.value: score for layout, score in best_scores.items() if score},
        settings.default_layout.value,
    )
    return Classification(settings.default_layout, Confidence.LOW, header_row=best_row, scores=best_scores)
