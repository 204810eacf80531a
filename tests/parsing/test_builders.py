from datetime import date
from decimal import Decimal

import pytest

from statement_ingest.domain.models import (
    INVALID_ISIN,
    INVALID_NAME,
    MISSING_VALUES,
    CanonicalTradeRecord,
    Cell,
    CellGrid,
    MasterRatingRecord,
    RowRejection,
    SourceLayout,
)
from statement_ingest.infrastructure.parsing.builders import (
    BuildContext,
    build_holding,
    build_master_rating,
    build_trade,
    resolve_deal_type,
    resolve_order_type,
    symbol_from_description,
)
from statement_ingest.infrastructure.parsing.columns import map_columns
from statement_ingest.infrastructure.parsing.sections import SectionRow

NSE_HEADER = [
    "Date",
    "Seller Deal Type",
    "Buyer Deal Type",
    "ISIN",
    "Description",
    "Price",
    "Deal size",
    "Settlement status",
    "Yield",
    "Trade Time",
    "Settlement Date",
    "Maturity Date",
]
BSE_HEADER = [
    "Sr No",
    "ISIN",
    "Symbol",
    "Issuer Name",
    "Coupon(%)",
    "Maturity Date",
    "Deal Date",
    "Settlement Type",
    "Trade Amount (Rs. in lacs)",
    "Trade Price (Rs.)",
    "Traded Yield (%)",
    "Trade Time (HH:MM:SS)",
    "Order Type",
]


def build(layout: SourceLayout, header: list, row: list) -> CanonicalTradeRecord | RowRejection:
    grid = CellGrid.from_values("Trades", [header, row])
    column_map = map_columns(grid, layout)
    context = BuildContext(layout=layout, sheet_name="Trades", source_file="trades.csv", file_hash="hash")
    return build_trade(2, grid.row(1), column_map, context)


def test_exchange_a_trade():
    record = build(
        SourceLayout.EXCHANGE_A,
        NSE_HEADER,
        [
            "15-Jan-2024",
            "BROKERED",
            "DIRECT",
            "ine467b01029",
            "TATA CAPITAL LTD 7.85% 2027",
            "101.25",
            "2,50,00,000",
            "Settled",
            Cell(0.0785, "0.00%"),
            "10:05:33",
            "16-Jan-2024",
            "20/10/2027",
        ],
    )

    assert isinstance(record, CanonicalTradeRecord)
    assert record.exchange == "NSE"
    assert record.isin == "INE467B01029"
    assert record.trade_date == date(2024, 1, 15)
    assert record.trade_time == "10:05:33"
    assert record.amount == Decimal("250")
    assert record.price == Decimal("101.25")
    assert record.yield_ == Decimal("7.85")
    assert record.deal_type == "BROKERED"
    assert record.order_type == "BUY"
    assert record.symbol == "TATA"
    assert record.settlement_type == "BROKERED-DIRECT"
    assert record.settlement_date == date(2024, 1, 16)
    assert record.maturity_date == date(2027, 10, 20)
    assert record.transaction_id == "NSE-INE467B01029_2024-01-15_BUY_250_101.25"
    assert record.unparsed == {}


def test_exchange_b_trade_keeps_amount_in_lacs():
    record = build(
        SourceLayout.EXCHANGE_B,
        BSE_HEADER,
        [
            "1",
            "INE001A07TQ2",
            "HDFC27",
            "Housing Development Finance Corp",
            "7.25",
            "12/05/2027",
            "15/01/2024",
            "T+1",
            "500",
            "99.8",
            "7.31",
            "11:15:00",
            "Sell",
        ],
    )

    assert record.exchange == "BSE"
    assert record.amount == Decimal("500")
    assert record.order_type == "SELL"
    assert record.symbol == "HDFC27"
    assert record.instrument_name == "Housing Development Finance Corp"
    assert record.coupon == Decimal("7.25")
    assert record.serial_no == "1"
    assert record.settlement_type == "T+1"


def test_unparseable_values_are_kept_as_raw_text():
    record = build(
        SourceLayout.EXCHANGE_A,
        ["ISIN", "Trade Date", "Trade Time", "Deal size", "Price", "Seller Deal Type", "Buyer Deal Type"],
        ["INE467B01029", "sometime", "later", "lots", "-", "DIRECT", "DIRECT"],
    )

    assert record.trade_date is None
    assert record.trade_time is None
    assert record.amount is None
    assert record.price is None
    assert record.unparsed == {"trade_date": "sometime", "trade_time": "later", "amount": "lots"}


@pytest.mark.parametrize("isin", ["", "-", "INE467B0102", "1NE467B01029", "INE467B0102X"])
def test_invalid_isin_rejected(isin: str):
    outcome = build(SourceLayout.EXCHANGE_A, ["ISIN", "Price", "Deal size"], [isin, "100", "1"])

    assert isinstance(outcome, RowRejection)
    assert outcome.reason == INVALID_ISIN
    assert outcome.row_number == 2


def test_placeholder_trade_name_rejected_only_when_mapped():
    rejected = build(SourceLayout.EXCHANGE_A, ["ISIN", "Description", "Price"], ["INE467B01029", "**", "100"])
    blank = build(SourceLayout.EXCHANGE_A, ["ISIN", "Description", "Price"], ["INE467B01029", None, "100"])

    assert isinstance(rejected, RowRejection)
    assert rejected.reason == INVALID_NAME
    assert isinstance(blank, CanonicalTradeRecord)


@pytest.mark.parametrize(
    "seller, buyer, order_type, deal_type",
    [
        ("DIRECT", "DIRECT", "BUY", "DIRECT"),
        ("BROKERED", "DIRECT", "BUY", "BROKERED"),
        ("SELL", "", "BUY", "SELL"),
        ("BUY", "", "SELL", "BUY"),
        ("", "SELL", "SELL", "SELL"),
        ("INTER SCHEME TRANSFER", "DIRECT", "BUY", "INTER SCHEME TRANSFER"),
        ("", "", "BUY", ""),
    ],
)
def test_exchange_a_sides(seller: str, buyer: str, order_type: str, deal_type: str):
    assert resolve_order_type(seller, buyer) == order_type
    assert resolve_deal_type(seller, buyer) == deal_type


def test_symbol_from_description():
    assert symbol_from_description("TATA CAPITAL LTD 7.85% 2027") == "TATA"
    assert symbol_from_description("LIC HOUSING FINANCE LTD 8.1% 2030") == "LIC"
    assert symbol_from_description("GS 2033") == "2033"
    assert symbol_from_description("") == ""


def holding_row(values: list) -> tuple:
    header = ["Name of the Instrument", "ISIN", "Rating", "Quantity", "Market Value", "% to NAV", "YTM"]
    grid = CellGrid.from_values("Debt", [header, values])
    column_map = map_columns(grid, SourceLayout.HOLDINGS_STATEMENT)
    return SectionRow(row_number=2, cells=grid.row(1), category="Debt Instruments"), column_map


def test_holding_values():
    row, column_map = holding_row(
        ["NABARD", "INE261F08DO2", "CRISIL AAA", "1,000", "1,012.34", Cell(0.0345, "0.00%"), Cell(0.0771, "0.00%")]
    )
    context = BuildContext(
        layout=SourceLayout.HOLDINGS_STATEMENT,
        sheet_name="Debt",
        scheme_name="ABC Bond Fund",
        report_date=date(2024, 1, 31),
    )

    holding = build_holding(row, column_map, context)

    assert holding.market_value == Decimal("1012.34")
    assert holding.nav_percent == Decimal("3.45")
    assert holding.ytm == Decimal("7.71")
    assert holding.rating_group == "AAA"
    assert holding.holding_id == "ABC Bond Fund|2024-01-31|Debt|INE261F08DO2"


def test_holding_without_scheme_uses_placeholder_name():
    row, column_map = holding_row(["NABARD", "INE261F08DO2", "", "10", None, None, None])
    holding = build_holding(row, column_map, BuildContext(layout=SourceLayout.HOLDINGS_STATEMENT, sheet_name="Debt"))

    assert holding.scheme_name == "Unknown Scheme"
    assert holding.report_date is None
    assert holding.rating_group == "UNRATED"


def test_holding_validation_order():
    context = BuildContext(layout=SourceLayout.HOLDINGS_STATEMENT, sheet_name="Debt")

    no_values = build_holding(*holding_row(["NABARD", "INE261F08DO2", "", "-", None, "NA", None]), context)
    bad_name = build_holding(*holding_row(["-", "INE261F08DO2", "", "10", None, None, None]), context)
    bad_isin = build_holding(*holding_row(["-", "N/A", "", None, None, None, None]), context)

    assert no_values.reason == MISSING_VALUES
    assert bad_name.reason == INVALID_NAME
    assert bad_isin.reason == INVALID_ISIN


def test_master_rating_formatting():
    grid = CellGrid.from_values(
        "Master",
        [["ISIN", "Issuer Name", "Rating"], ["INE002A08534", "Reliance Industries", "CRISIL AAA()ICRA AAA  (Stable)"]],
    )
    column_map = map_columns(grid, SourceLayout.RATINGS_MASTER)

    record = build_master_rating(
        2, grid.row(1), column_map, BuildContext(layout=SourceLayout.RATINGS_MASTER, sheet_name="Master")
    )

    assert isinstance(record, MasterRatingRecord)
    assert record.rating == "CRISIL AAA | ICRA AAA (Stable)"
    assert record.rating_group == "AAA"
    assert record.issuer_name == "Reliance Industries"


@pytest.mark.parametrize(
    "order, order_type, deal_type",
    [
        ("Buy - Brokered", "BUY", "BROKERED"),
        ("Sell Direct", "SELL", "DIRECT"),
        ("Sell", "SELL", "SELL"),
        ("", "", ""),
    ],
)
def test_exchange_b_deal_type_falls_back_to_order_text(order, order_type, deal_type):
    record = build(SourceLayout.EXCHANGE_B, ["ISIN", "Trade Price", "Order Type"], ["INE001A07TQ2", "99.8", order])

    assert record.order_type == order_type
    assert record.deal_type == deal_type
