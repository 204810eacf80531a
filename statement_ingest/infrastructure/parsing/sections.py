"""Category tracking for portfolio holdings statements.

Holdings sheets group instruments under section headers ("Equity & Equity
related", "Debt Instruments", ...) and interleave them with footnotes,
sub-totals and cash lines. The parser walks the mapped rows top to bottom,
remembering the most recent section header.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterator, Mapping, Sequence

from statement_ingest.domain.models import Cell, CategoryState, CellGrid, ColumnMap, is_valid_isin

from .normalize import normalize_text

logger = logging.getLogger(__name__)

DEBT = "Debt Instruments"
MONEY_MARKET = "Money Market Instruments"
EQUITY = "Equity Instruments"
REIT_INVIT = "REIT/InvIT Instruments"
TREASURY_BILLS = "Treasury Bills"
GOVERNMENT_SECURITIES = "Government Securities"
CORPORATE_BONDS = "Corporate Bonds"
MUTUAL_FUNDS = "Mutual Funds & AIFs"
DERIVATIVES = "Derivatives"


def _compile(*expressions: str) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(expression, re.IGNORECASE) for expression in expressions)


CATEGORY_PATTERNS: Sequence[tuple[str, tuple[re.Pattern[str], ...]]] = (
    (DEBT, _compile(r"debt\s*instruments?", r"^debt$")),
    (MONEY_MARKET, _compile(r"money\s*market\s*instruments?")),
    (EQUITY, _compile(r"equity\s*instruments?", r"equity.*related", r"equity\s*&\s*equity", r"^equity$")),
    (REIT_INVIT, _compile(r"reit\s*/\s*invit\s*instruments?", r"reit.*invit")),
    (TREASURY_BILLS, _compile(r"treasury\s*bills?", r"t-bills?")),
    (GOVERNMENT_SECURITIES, _compile(r"government\s*securities", r"govt\.?\s*securities")),
    (CORPORATE_BONDS, _compile(r"corporate\s*bonds?")),
    (MUTUAL_FUNDS, _compile(r"mutual\s*funds?", r"aif")),
    (DERIVATIVES, _compile(r"derivatives?", r"futures?", r"options?")),
)

IRRELEVANT_PATTERNS = _compile(
    # footnote markers and disclaimers
    r"^#",
    r"^\*\*",
    r"^\*[^*]",
    r"^-+$",
    r"investors\s*should",
    r"disclosure",
    r"^note(?!s)",
    r"^remarks?$",
    # listing sub-legends
    r"^\([a-z]\).*listed.*awaiting",
    r"^\([a-z]\).*privately.*placed",
    r"^\([a-z]\).*unlisted",
    r"^\([a-z]\).*foreign.*securities",
    r"listed.*awaiting.*listing",
    r"privately\s*placed",
    r"unlisted\s*security$",
    r"^unlisted$",
    r"thinly\s*traded",
    r"non\s*traded\s*security",
    r"foreign.*securities.*overseas",
    # totals
    r"^total$",
    r"^sub\s*-?\s*total",
    r"^grand\s*total",
    # sub-category labels on their own
    r"^commercial\s*paper$",
    r"^treasury\s*bill$",
    r"^certificate\s*of\s*deposit$",
    r"^non-convertible\s*debenture$",
    r"^government\s*securities$",
    r"^corporate\s*bonds?$",
    # portfolio statistics and cash lines
    r"portfolio\s*ytm",
    r"^as\s+on\s+",
    r"tier\s*\d+.*disclosure",
    r"^average\s*maturity",
    r"^residual\s*maturity",
    r"^macaulay\s*duration",
    r"^modified\s*duration",
    r"^scheme\s*name",
    r"^fund\s*name",
    r"^net\s*receivables?",
    r"^payables?$",
    r"^\(payables?\)",
    r"^cblo$",
    r"^treps$",
    r"^reverse\s*repo$",
    r"^repo$",
    r"^cash\s*&\s*cash\s*equivalent",
    r"^net\s*current\s*assets?",
    r"^other\s*current\s*assets?",
    r"^accrued\s*income",
)

_LONE_LEGEND = re.compile(r"^\([a-z]\)$", re.IGNORECASE)
_CASH_PLACEHOLDER = re.compile(r"cblo|reverse\s*repo", re.IGNORECASE)
_NUMERIC_TEXT = re.compile(r"^\d{1,3}(,\d{3})*(\.\d+)?$|^\d+(\.\d+)?$")
_REIT_NAME = re.compile(
    r"\b(reit|invit)s?\b|real\s+estate\s+investment\s+trust|infrastructure\s+investment\s+trust",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class SectionRow:
    row_number: int
    cells: Sequence[Cell]
    category: str | None


def _is_numeric(cell: Cell) -> bool:
    if isinstance(cell.value, bool):
        return False
    if isinstance(cell.value, (int, float)):
        return True
    return bool(_NUMERIC_TEXT.match(cell.text))


def match_category(cells: Mapping[str, Cell]) -> str | None:
    """Return the category a section-header row opens, or ``None`` for any other row."""
    isin_cell = cells.get("isin", Cell())
    text = normalize_text(cells.get("instrument_name", Cell()).value) or normalize_text(isin_cell.value)
    if not text or is_valid_isin(isin_cell.text):
        return None
    for category, patterns in CATEGORY_PATTERNS:
        if any(pattern.search(text) for pattern in patterns):
            return category
    return None


def is_irrelevant(cells: Mapping[str, Cell]) -> bool:
    """Footnotes, legends, totals, statistics and cash lines are not holdings."""
    values = [cell for cell in cells.values() if not cell.is_blank]
    if any(is_valid_isin(cell.text) for cell in values):
        return False
    non_empty = len(values)
    if sum(1 for cell in values if _is_numeric(cell)) >= 2 and non_empty >= 4:
        return False
    text = normalize_text(cells.get("instrument_name", Cell()).value).lower()
    if any(pattern.search(text) for pattern in IRRELEVANT_PATTERNS):
        return True
    if _LONE_LEGEND.match(text) and non_empty <= 2:
        return True
    if len(text) < 5 and non_empty <= 2:
        return True
    return bool(_CASH_PLACEHOLDER.search(text)) and non_empty <= 1


def reclassify(name: str, category: str | None) -> str | None:
    if category is not None and _REIT_NAME.search(name or ""):
        return REIT_INVIT
    return category


class SectionParser:
    def __init__(self) -> None:
        self.state = CategoryState()

    def walk(self, grid: CellGrid, column_map: ColumnMap) -> Iterator[SectionRow]:
        for index in range(column_map.data_start, len(grid)):
            row = grid.row(index)
            if grid.is_blank_row(index):
                continue
            cells = column_map.mapped_cells(row)
            category = match_category(cells)
            if category is not None:
                logger.debug("Sheet %r row %d opens %s", grid.sheet_name, index + 1, category)
                self.state.enter(category)
                continue
            if is_irrelevant(cells):
                logger.debug("Sheet %r row %d skipped: %r", grid.sheet_name, index + 1, cells.get("instrument_name"))
                continue
            yield SectionRow(row_number=index + 1, cells=row, category=self.state.current)
