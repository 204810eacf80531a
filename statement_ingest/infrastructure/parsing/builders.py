"""Turn mapped rows into validated canonical records."""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Sequence

from statement_ingest.config import SETTINGS, Settings
from statement_ingest.domain.models import (
    INVALID_ISIN,
    INVALID_NAME,
    MISSING_VALUES,
    NO_CATEGORY,
    CanonicalHoldingRecord,
    CanonicalTradeRecord,
    Cell,
    ColumnMap,
    HoldingIdentity,
    MasterRatingRecord,
    RowRejection,
    SourceLayout,
    TransactionIdentity,
    is_valid_isin,
)
from statement_ingest.domain.ratings import compute_rating_group, format_master_rating

from .normalize import (
    is_placeholder,
    normalize_date,
    normalize_isin,
    normalize_number,
    normalize_percentage,
    normalize_text,
    normalize_time,
    to_lacs,
)
from .sections import SectionRow, reclassify

UNKNOWN_SCHEME = "Unknown Scheme"

_CLOCK_TEXT = re.compile(r"^\d{2}:\d{2}:\d{2}$")
_MARKER_NAME = re.compile(r"^([#*].*|\(.*\)|\[.*\])$")
_COUPON_IN_NAME = re.compile(r"^(.+?)\s+\d+\.\d+%\s+\d{4}")


@dataclass(frozen=True)
class BuildContext:
    """Per-sheet provenance stamped on every record built from it."""

    layout: SourceLayout
    sheet_name: str
    source_file: str = ""
    file_hash: str = ""
    scheme_name: str | None = None
    report_date: date | None = None
    settings: Settings = SETTINGS


class _RowReader:
    """Reads mapped fields from one row and remembers values that failed to parse."""

    def __init__(self, row: Sequence[Cell], column_map: ColumnMap) -> None:
        self._row = row
        self._map = column_map
        self.unparsed: dict[str, str] = {}

    def cell(self, name: str) -> Cell:
        return self._map.get(self._row, name)

    def text(self, name: str) -> str:
        return normalize_text(self.cell(name).value)

    def _checked(self, name: str, parsed: Any) -> Any:
        cell = self.cell(name)
        if parsed is None and not is_placeholder(cell.value):
            self.unparsed[name] = cell.text
        return parsed

    def date(self, name: str) -> date | None:
        value = normalize_date(self.cell(name).value)
        if isinstance(value, str):
            self.unparsed[name] = value
            return None
        return value

    def time(self, name: str) -> str | None:
        value = normalize_time(self.cell(name).value)
        if value is not None and not _CLOCK_TEXT.match(value):
            self.unparsed[name] = value
            return None
        return value

    def number(self, name: str) -> Decimal | None:
        return self._checked(name, normalize_number(self.cell(name).value))

    def percentage(self, name: str) -> Decimal | None:
        cell = self.cell(name)
        return self._checked(name, normalize_percentage(cell.value, cell.is_percent_formatted))

    def amount(self, name: str, layout: SourceLayout, divisor: Decimal) -> Decimal | None:
        return self._checked(name, to_lacs(self.cell(name).value, layout, divisor))


def is_name_placeholder(name: str) -> bool:
    return is_placeholder(name) or bool(_MARKER_NAME.match(name))


def resolve_order_type(seller: str, buyer: str) -> str:
    if "BUY" in buyer or "SELL" in seller:
        return "BUY"
    if "BUY" in seller or "SELL" in buyer:
        return "SELL"
    return "BUY"


def resolve_deal_type(seller: str, buyer: str) -> str:
    sides = (seller, buyer)
    if any("BROKER" in side for side in sides):
        return "BROKERED"
    if all("DIRECT" in side for side in sides):
        return "DIRECT"
    if any("INTER" in side and "SCHEME" in side for side in sides):
        return "INTER SCHEME TRANSFER"
    return seller or buyer


def symbol_from_description(description: str) -> str:
    """Pick a ticker-like word out of an NSE description such as ``ABC LTD 7.25% 2025``."""
    match = _COUPON_IN_NAME.match(description or "")
    words = (match.group(1) if match else description or "").split()
    for word in words:
        if 3 <= len(word) <= 10 and not (match and ("LTD" in word or "CORP" in word)):
            return word
    return words[0] if words else ""


def _side(text: str) -> str:
    upper = text.upper()
    if "SELL" in upper:
        return "SELL"
    if "BUY" in upper:
        return "BUY"
    return upper


def build_trade(
    row_number: int,
    row: Sequence[Cell],
    column_map: ColumnMap,
    context: BuildContext,
) -> CanonicalTradeRecord | RowRejection:
    layout = context.layout
    reader = _RowReader(row, column_map)

    isin = normalize_isin(reader.cell("isin").value)
    if not is_valid_isin(isin):
        return RowRejection(context.sheet_name, row_number, INVALID_ISIN, isin or "missing ISIN")
    name = reader.text("instrument_name")
    if "instrument_name" in column_map and name and is_name_placeholder(name):
        return RowRejection(context.sheet_name, row_number, INVALID_NAME, name)

    if layout is SourceLayout.EXCHANGE_A:
        seller = reader.text("seller_deal_type").upper()
        buyer = reader.text("buyer_deal_type").upper()
        order_type = resolve_order_type(seller, buyer)
        deal_type = resolve_deal_type(seller, buyer)
        settlement_type = f"{seller}-{buyer}" if seller or buyer else ""
        symbol = symbol_from_description(name)
    else:
        raw_order = reader.text("order_type")
        order_type = _side(raw_order)
        upper_order = raw_order.upper()
        if "BROKER" in upper_order:
            deal_type = "BROKERED"
        elif "DIRECT" in upper_order:
            deal_type = "DIRECT"
        else:
            deal_type = upper_order
        settlement_type = reader.text("settlement_type")
        symbol = reader.text("symbol")

    trade_date = reader.date("trade_date")
    amount = reader.amount("amount", layout, context.settings.lacs_divisor)
    price = reader.number("price")
    exchange = layout.exchange or ""
    identity = TransactionIdentity(
        exchange=exchange,
        instrument=isin or symbol,
        trade_date=trade_date,
        order_type=order_type,
        amount=amount,
        price=price,
    )
    return CanonicalTradeRecord(
        identity=identity,
        exchange=exchange,
        isin=isin,
        trade_date=trade_date,
        trade_time=reader.time("trade_time"),
        amount=amount,
        price=price,
        order_type=order_type,
        deal_type=deal_type,
        symbol=symbol,
        instrument_name=name,
        maturity_date=reader.date("maturity_date"),
        settlement_date=reader.date("settlement_date"),
        yield_=reader.percentage("yield_"),
        coupon=reader.percentage("coupon"),
        settlement_type=settlement_type,
        settlement_status=reader.text("settlement_status"),
        serial_no=reader.text("serial_no") or str(row_number),
        source_file=context.source_file,
        file_hash=context.file_hash,
        sheet_name=context.sheet_name,
        row_number=row_number,
        unparsed=reader.unparsed,
    )


def build_holding(
    section_row: SectionRow,
    column_map: ColumnMap,
    context: BuildContext,
) -> CanonicalHoldingRecord | RowRejection:
    reader = _RowReader(section_row.cells, column_map)
    row_number = section_row.row_number

    isin = normalize_isin(reader.cell("isin").value)
    if not is_valid_isin(isin):
        return RowRejection(context.sheet_name, row_number, INVALID_ISIN, isin or "missing ISIN")
    quantity = reader.number("quantity")
    market_value = reader.amount("market_value", context.layout, context.settings.lacs_divisor)
    nav_percent = reader.percentage("nav_percent")
    if quantity is None and market_value is None and nav_percent is None:
        return RowRejection(context.sheet_name, row_number, MISSING_VALUES, isin)
    name = reader.text("instrument_name")
    if is_name_placeholder(name):
        return RowRejection(context.sheet_name, row_number, INVALID_NAME, name or isin)
    if section_row.category is None:
        return RowRejection(context.sheet_name, row_number, NO_CATEGORY, isin)

    scheme_name = context.scheme_name or UNKNOWN_SCHEME
    rating = reader.text("rating")
    return CanonicalHoldingRecord(
        identity=HoldingIdentity(scheme_name, context.report_date, context.sheet_name, isin),
        isin=isin,
        instrument_name=name,
        category=reclassify(name, section_row.category) or section_row.category,
        sheet_name=context.sheet_name,
        scheme_name=scheme_name,
        report_date=context.report_date,
        quantity=quantity,
        market_value=market_value,
        nav_percent=nav_percent,
        maturity_date=reader.date("maturity_date"),
        coupon=reader.percentage("coupon"),
        rating=rating,
        rating_group=compute_rating_group(rating),
        sector=reader.text("sector"),
        issuer=reader.text("issuer"),
        ytm=reader.percentage("ytm"),
        ytc=reader.percentage("ytc"),
        source_file=context.source_file,
        file_hash=context.file_hash,
        row_number=row_number,
        unparsed=reader.unparsed,
    )


def build_master_rating(
    row_number: int,
    row: Sequence[Cell],
    column_map: ColumnMap,
    context: BuildContext,
) -> MasterRatingRecord | RowRejection:
    reader = _RowReader(row, column_map)
    isin = normalize_isin(reader.cell("isin").value)
    if not is_valid_isin(isin):
        return RowRejection(context.sheet_name, row_number, INVALID_ISIN, isin or "missing ISIN")
    raw = reader.text("rating")
    rating = format_master_rating(raw)
    return MasterRatingRecord(
        isin=isin,
        rating=rating,
        rating_raw=raw,
        rating_group=compute_rating_group(rating or raw),
        issuer_name=reader.text("issuer_name"),
        sheet_name=context.sheet_name,
        source_file=context.source_file,
        row_number=row_number,
    )
