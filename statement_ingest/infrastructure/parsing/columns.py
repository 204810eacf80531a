"""Header row detection and column mapping per layout."""
from __future__ import annotations

import logging
import re
from typing import Mapping, Sequence

from statement_ingest.config import SETTINGS, Settings
from statement_ingest.domain.models import Cell, CellGrid, ColumnMap, SourceLayout, is_valid_isin

from .normalize import normalize_header, normalize_number

logger = logging.getLogger(__name__)

FieldPatterns = Sequence[tuple[str, Sequence[re.Pattern[str]]]]


def _patterns(*expressions: str) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(expression) for expression in expressions)


HOLDINGS_FIELDS: FieldPatterns = (
    (
        "instrument_name",
        _patterns(
            r"name.*of.*the.*instrument",
            r"name.*of.*instrument",
            r"company.*issuer.*instrument.*name",
            r"name.*instrument",
            r"name.*issuer",
            r"instrument.*name",
            r"^instrument$",
            r"^security$",
            r"^name$",
            r"security.*name",
            r"^issuer$",
            r"^company$",
        ),
    ),
    ("isin", _patterns(r"isin")),
    (
        "rating",
        _patterns(
            r"rating\s*/\s*industry",
            r"industry\s*\+?\s*/\s*rating",
            r"industry\s*\+\s*rating",
            r"rating.*industry",
            r"industry.*rating",
            r"^rating$",
            r"^industry$",
            r"rating",
            r"grade",
        ),
    ),
    ("quantity", _patterns(r"quantity", r"qty", r"no\.?\s*of\s*units", r"units")),
    (
        "market_value",
        _patterns(
            r"market\s*/?\s*fair\s*value.*rs.*(lacs|lakh)",
            r"exposure.*market\s*value",
            r"market\s*value.*rs.*(lacs|lakh)",
            r"fair\s*value.*rs.*(lacs|lakh)",
            r"value.*rs.*(lacs|lakh)",
            r"market.*value",
            r"fair.*value",
            r"^value$",
            r"^exposure$",
            r"amount",
        ),
    ),
    (
        "nav_percent",
        _patterns(
            r"^%\s*to\s*nav\b",
            r"^%\s*to\s*aum\b",
            r"^%\s*to\s*net\s*assets?\b",
            r"%\s*to\s*nav\b",
            r"%\s*to\s*aum\b",
            r"%\s*to\s*net\s*assets?",
            r"%.*net.*asset",
            r"rounded.*%.*nav",
            r"rounded.*%",
            r"percent.*to.*(nav|aum)",
            r"percent.*net.*asset",
            r"weight",
        ),
    ),
    (
        "maturity_date",
        _patterns(r"^maturity\s*date$", r"^maturity$", r"date.*maturity", r"maturity.*date"),
    ),
    (
        "coupon",
        _patterns(
            r"^coupon\s*\(%\)$",
            r"^coupon\s*%$",
            r"^coupon\s*rate$",
            r"^coupon$",
            r"^rate\s*of\s*interest$",
            r"^interest\s*rate$",
        ),
    ),
    ("sector", _patterns(r"sector", r"industry")),
    ("issuer", _patterns(r"issuer", r"company")),
    (
        "ytm",
        _patterns(
            r"yield\s+of\s+(the\s+)?instrument",
            r"^ytm\s*(percent|%)?$",
            r"yield\s+to\s+maturity",
            r"^yield$",
            r"\bytm\b",
            r"\byield\b(?!.*call)",
        ),
    ),
    ("ytc", _patterns(r"^~?ytc", r"yield.*call")),
)

EXCHANGE_A_FIELDS: FieldPatterns = (
    ("trade_date", _patterns(r"^(trade|deal)\s*date", r"^date$", r"^date\b")),
    ("trade_time", _patterns(r"(trade|deal)\s*time", r"^time")),
    ("isin", _patterns(r"isin")),
    ("instrument_name", _patterns(r"^description", r"security", r"name")),
    ("maturity_date", _patterns(r"maturity")),
    ("amount", _patterns(r"deal\s*size", r"^size", r"quantity|qty", r"amount")),
    ("price", _patterns(r"price", r"^rate$")),
    ("yield_", _patterns(r"yield")),
    ("settlement_status", _patterns(r"settlement\s*status", r"^status$")),
    ("settlement_date", _patterns(r"settle(ment)?\s*date")),
    ("seller_deal_type", _patterns(r"seller.*deal", r"^seller")),
    ("buyer_deal_type", _patterns(r"buyer.*deal", r"^buyer")),
)

EXCHANGE_B_FIELDS: FieldPatterns = (
    ("serial_no", _patterns(r"^s(r|l)?\.?\s*no\b", r"^serial")),
    ("trade_date", _patterns(r"^(deal|trade)\s*date", r"^date$", r"^date\b")),
    ("trade_time", _patterns(r"(trade|deal)\s*time", r"^time")),
    ("isin", _patterns(r"isin")),
    ("symbol", _patterns(r"symbol", r"scrip")),
    ("instrument_name", _patterns(r"issuer\s*name", r"company", r"^name", r"security")),
    ("coupon", _patterns(r"coupon", r"interest\s*rate")),
    ("maturity_date", _patterns(r"maturity")),
    ("settlement_type", _patterns(r"settlement\s*type", r"settlement")),
    ("amount", _patterns(r"trade\s*amount", r"amount", r"value")),
    ("price", _patterns(r"trade\s*price", r"price")),
    ("yield_", _patterns(r"yield")),
    ("order_type", _patterns(r"order\s*type", r"order", r"buy\s*/\s*sell")),
)

RATINGS_MASTER_FIELDS: FieldPatterns = (
    ("isin", _patterns(r"isin")),
    ("issuer_name", _patterns(r"issuer", r"company", r"name")),
    ("rating", _patterns(r"credit\s*rating", r"^rating$", r"rating(?!\s*(date|agency))", r"grade")),
)

LAYOUT_FIELDS: Mapping[SourceLayout, FieldPatterns] = {
    SourceLayout.HOLDINGS_STATEMENT: HOLDINGS_FIELDS,
    SourceLayout.EXCHANGE_A: EXCHANGE_A_FIELDS,
    SourceLayout.EXCHANGE_B: EXCHANGE_B_FIELDS,
    SourceLayout.RATINGS_MASTER: RATINGS_MASTER_FIELDS,
}


def match_fields(row: Sequence[Cell], patterns: FieldPatterns) -> dict[str, int]:
    """First pattern (in declared order) that matches any cell wins the field."""
    headers = [(index, normalize_header(cell.value)) for index, cell in enumerate(row) if not cell.is_blank]
    fields: dict[str, int] = {}
    for field_name, expressions in patterns:
        for expression in expressions:
            hit = next((index for index, header in headers if expression.search(header)), None)
            if hit is not None:
                fields[field_name] = hit
                break
    return fields


def _looks_like_data(row: Sequence[Cell]) -> bool:
    for cell in row:
        if cell.is_blank:
            continue
        if is_valid_isin(cell.text) or normalize_number(cell.value) is not None:
            return True
    return False


def map_columns(
    grid: CellGrid,
    layout: SourceLayout,
    start_row: int | None = None,
    settings: Settings = SETTINGS,
) -> ColumnMap | None:
    patterns = LAYOUT_FIELDS.get(layout)
    if patterns is None:
        return None
    first = start_row or 0
    for index in range(first, min(len(grid), max(settings.header_scan_rows, first + 1))):
        fields = match_fields(grid.row(index), patterns)
        if len(fields) < 2:
            continue
        data_start = index + 1
        sub_labels = grid.row(index + 1)
        if sub_labels and not _looks_like_data(sub_labels):
            extra = {
                name: column
                for name, column in match_fields(sub_labels, patterns).items()
                if name not in fields
            }
            if extra:
                fields.update(extra)
                data_start = index + 2
        logger.info("Sheet %r header row %d mapped %s", grid.sheet_name, index, sorted(fields))
        return ColumnMap(fields=fields, header_row=index, data_start=data_start)
    logger.warning("Sheet %r: no header row with two recognizable columns", grid.sheet_name)
    return None
