"""Domain models for the statement ingestion pipeline.

These dataclasses capture the canonical schema for normalized trade, holding
and rating records, plus the intermediate shapes (cells, grids, column maps)
that the parsing stages hand to each other.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, Mapping, Sequence


class SourceLayout(Enum):
    """Known source file shapes."""

    EXCHANGE_A = "EXCHANGE_A"
    EXCHANGE_B = "EXCHANGE_B"
    RATINGS_MASTER = "RATINGS_MASTER"
    HOLDINGS_STATEMENT = "HOLDINGS_STATEMENT"
    UNKNOWN = "UNKNOWN"

    @property
    def exchange(self) -> str | None:
        return _EXCHANGE_NAMES.get(self)

    @property
    def is_trade(self) -> bool:
        return self in (SourceLayout.EXCHANGE_A, SourceLayout.EXCHANGE_B)

    @property
    def amount_in_whole_units(self) -> bool:
        """NSE reports deal size in rupees; everything else is already in lacs."""
        return self is SourceLayout.EXCHANGE_A


_EXCHANGE_NAMES = {
    SourceLayout.EXCHANGE_A: "NSE",
    SourceLayout.EXCHANGE_B: "BSE",
}

# Tie-break order when two layouts score the same.
LAYOUT_PRIORITY = (
    SourceLayout.EXCHANGE_A,
    SourceLayout.EXCHANGE_B,
    SourceLayout.RATINGS_MASTER,
    SourceLayout.HOLDINGS_STATEMENT,
)

ISIN_PATTERN = re.compile(r"^[A-Z]{2}[A-Z0-9]{9}[0-9]$")


def is_valid_isin(value: object) -> bool:
    if value is None:
        return False
    return bool(ISIN_PATTERN.match(str(value).strip().upper()))


# Row rejection reasons.
INVALID_ISIN = "invalid_isin"
MISSING_VALUES = "missing_values"
INVALID_NAME = "invalid_name"
NO_CATEGORY = "no_category"


@dataclass(frozen=True)
class Cell:
    """One decoded spreadsheet cell and its display-format hint."""

    value: Any = None
    number_format: str | None = None

    @property
    def is_blank(self) -> bool:
        if self.value is None:
            return True
        return isinstance(self.value, str) and not self.value.strip()

    @property
    def text(self) -> str:
        if self.value is None:
            return ""
        return str(self.value).strip()

    @property
    def is_percent_formatted(self) -> bool:
        return bool(self.number_format) and "%" in str(self.number_format)


BLANK_CELL = Cell()


@dataclass(frozen=True)
class CellGrid:
    """Rectangular grid of cells for a single sheet."""

    sheet_name: str
    rows: tuple[tuple[Cell, ...], ...]

    @classmethod
    def from_values(cls, sheet_name: str, rows: Iterable[Sequence[Any]]) -> "CellGrid":
        materialized = [
            [value if isinstance(value, Cell) else Cell(value) for value in row]
            for row in rows
        ]
        width = max((len(row) for row in materialized), default=0)
        padded = tuple(
            tuple(row) + (BLANK_CELL,) * (width - len(row)) for row in materialized
        )
        return cls(sheet_name=sheet_name, rows=padded)

    def __len__(self) -> int:
        return len(self.rows)

    @property
    def width(self) -> int:
        return len(self.rows[0]) if self.rows else 0

    def row(self, index: int) -> tuple[Cell, ...]:
        if 0 <= index < len(self.rows):
            return self.rows[index]
        return ()

    def is_blank_row(self, index: int) -> bool:
        return all(cell.is_blank for cell in self.row(index))

    def first_non_empty_row(self) -> int | None:
        for index in range(len(self.rows)):
            if not self.is_blank_row(index):
                return index
        return None


@dataclass(frozen=True)
class ColumnMap:
    """Canonical field name to zero-based column index for one grid."""

    fields: Mapping[str, int]
    header_row: int
    data_start: int

    def __contains__(self, field_name: object) -> bool:
        return field_name in self.fields

    def get(self, row: Sequence[Cell], field_name: str) -> Cell:
        index = self.fields.get(field_name)
        if index is None or index >= len(row):
            return BLANK_CELL
        return row[index]

    def mapped_cells(self, row: Sequence[Cell]) -> dict[str, Cell]:
        return {name: self.get(row, name) for name in self.fields}


class CategoryState:
    """Current holdings section while walking a sheet top to bottom."""

    def __init__(self) -> None:
        self.current: str | None = None

    def enter(self, category: str) -> None:
        self.current = category

    @property
    def is_set(self) -> bool:
        return self.current is not None


def decimal_text(value: Decimal | None) -> str:
    if value is None:
        return ""
    normalized = value.normalize()
    if normalized == 0:
        return "0"
    return format(normalized, "f")


def _date_text(value: date | None) -> str:
    return value.isoformat() if value else ""


@dataclass(frozen=True)
class TransactionIdentity:
    """Deterministic key shared by in-batch deduplication and storage upserts."""

    exchange: str
    instrument: str
    trade_date: date | None
    order_type: str
    amount: Decimal | None
    price: Decimal | None

    def key(self) -> tuple[str, str, str, str, str, str]:
        return (
            self.exchange,
            self.instrument,
            _date_text(self.trade_date),
            self.order_type,
            decimal_text(self.amount),
            decimal_text(self.price),
        )

    @property
    def transaction_id(self) -> str:
        exchange, instrument, trade_date, order_type, amount, price = self.key()
        return f"{exchange}-{instrument}_{trade_date}_{order_type}_{amount}_{price}"


@dataclass(frozen=True)
class HoldingIdentity:
    """A holding is unique per scheme, statement date, sheet and ISIN."""

    scheme_name: str
    report_date: date | None
    sheet_name: str
    isin: str

    def key(self) -> tuple[str, str, str, str]:
        return (self.scheme_name, _date_text(self.report_date), self.sheet_name, self.isin)

    @property
    def holding_id(self) -> str:
        return "|".join(self.key())


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return decimal_text(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Mapping):
        return {str(k): _jsonable(v) for k, v in value.items()}
    return value


@dataclass(frozen=True)
class CanonicalTradeRecord:
    """Normalized exchange trade; amounts in lacs."""

    identity: TransactionIdentity
    exchange: str
    isin: str
    trade_date: date | None
    trade_time: str | None
    amount: Decimal | None
    price: Decimal | None
    order_type: str
    deal_type: str = ""
    symbol: str = ""
    instrument_name: str = ""
    maturity_date: date | None = None
    settlement_date: date | None = None
    yield_: Decimal | None = None
    coupon: Decimal | None = None
    settlement_type: str = ""
    settlement_status: str = ""
    serial_no: str = ""
    rating: str = ""
    rating_group: str = "UNRATED"
    source_file: str = ""
    file_hash: str = ""
    sheet_name: str = ""
    row_number: int = 0
    unparsed: Mapping[str, str] = field(default_factory=dict)

    @property
    def transaction_id(self) -> str:
        return self.identity.transaction_id

    def with_rating(self, rating: str, rating_group: str, issuer_name: str = "") -> "CanonicalTradeRecord":
        return replace(
            self,
            rating=rating,
            rating_group=rating_group,
            instrument_name=self.instrument_name or issuer_name,
        )

    def to_document(self) -> dict[str, Any]:
        return _jsonable(
            {
                "exchange": self.exchange,
                "isin": self.isin,
                "symbol": self.symbol,
                "instrument_name": self.instrument_name,
                "trade_date": self.trade_date,
                "trade_time": self.trade_time,
                "maturity_date": self.maturity_date,
                "settlement_date": self.settlement_date,
                "amount": self.amount,
                "price": self.price,
                "yield": self.yield_,
                "coupon": self.coupon,
                "order_type": self.order_type,
                "deal_type": self.deal_type,
                "settlement_type": self.settlement_type,
                "settlement_status": self.settlement_status,
                "serial_no": self.serial_no,
                "rating": self.rating,
                "rating_group": self.rating_group,
                "unparsed": self.unparsed,
            }
        )

    def provenance(self) -> dict[str, Any]:
        return {
            "source_file": self.source_file,
            "file_hash": self.file_hash,
            "sheet_name": self.sheet_name,
            "row_number": self.row_number,
        }


@dataclass(frozen=True)
class CanonicalHoldingRecord:
    """Normalized portfolio-statement holding; market value in lacs."""

    identity: HoldingIdentity
    isin: str
    instrument_name: str
    category: str
    sheet_name: str
    scheme_name: str = ""
    report_date: date | None = None
    quantity: Decimal | None = None
    market_value: Decimal | None = None
    nav_percent: Decimal | None = None
    maturity_date: date | None = None
    coupon: Decimal | None = None
    rating: str = ""
    rating_group: str = "UNRATED"
    sector: str = ""
    issuer: str = ""
    ytm: Decimal | None = None
    ytc: Decimal | None = None
    source_file: str = ""
    file_hash: str = ""
    row_number: int = 0
    unparsed: Mapping[str, str] = field(default_factory=dict)

    @property
    def holding_id(self) -> str:
        return self.identity.holding_id

    def to_document(self) -> dict[str, Any]:
        return _jsonable(
            {
                "scheme_name": self.scheme_name,
                "report_date": self.report_date,
                "sheet_name": self.sheet_name,
                "isin": self.isin,
                "instrument_name": self.instrument_name,
                "category": self.category,
                "quantity": self.quantity,
                "market_value": self.market_value,
                "nav_percent": self.nav_percent,
                "maturity_date": self.maturity_date,
                "coupon": self.coupon,
                "rating": self.rating,
                "rating_group": self.rating_group,
                "sector": self.sector,
                "issuer": self.issuer,
                "ytm": self.ytm,
                "ytc": self.ytc,
                "unparsed": self.unparsed,
            }
        )

    def provenance(self) -> dict[str, Any]:
        return {
            "source_file": self.source_file,
            "file_hash": self.file_hash,
            "row_number": self.row_number,
        }


@dataclass(frozen=True)
class MasterRatingRecord:
    """One row of the securities/ratings master list."""

    isin: str
    rating: str
    rating_raw: str
    rating_group: str
    issuer_name: str = ""
    sheet_name: str = ""
    source_file: str = ""
    row_number: int = 0

    def to_document(self) -> dict[str, Any]:
        return {
            "isin": self.isin,
            "issuer_name": self.issuer_name,
            "rating_raw": self.rating_raw,
            "rating": self.rating,
            "rating_group": self.rating_group,
        }

    def provenance(self) -> dict[str, Any]:
        return {
            "source_file": self.source_file,
            "sheet_name": self.sheet_name,
            "row_number": self.row_number,
        }


@dataclass(frozen=True)
class RowRejection:
    """A row dropped by structural validation."""

    sheet_name: str
    row_number: int
    reason: str
    detail: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "sheet": self.sheet_name,
            "row": self.row_number,
            "reason": self.reason,
            "detail": self.detail,
        }
