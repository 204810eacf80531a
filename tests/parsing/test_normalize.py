from datetime import date, datetime, time, timedelta
from decimal import Decimal

import pytest

from statement_ingest.domain.models import SourceLayout
from statement_ingest.infrastructure.parsing.normalize import (
    normalize_date,
    normalize_header,
    normalize_isin,
    normalize_number,
    normalize_percentage,
    normalize_text,
    normalize_time,
    to_lacs,
)

SAMPLE_DATES = [
    date(1950, 1, 1),
    date(1969, 12, 31),
    date(1970, 1, 1),
    date(2000, 2, 29),
    date(2024, 1, 15),
    date(2099, 12, 31),
]


def to_serial(value: date) -> int:
    return (value - date(1899, 12, 30)).days


@pytest.mark.parametrize("day", SAMPLE_DATES)
def test_date_round_trip_for_every_encoding(day: date):
    assert normalize_date(to_serial(day)) == day
    assert normalize_date(float(to_serial(day))) == day
    assert normalize_date(str(to_serial(day))) == day
    assert normalize_date(day.strftime("%d/%m/%Y")) == day
    assert normalize_date(day.isoformat()) == day


def test_date_accepts_native_values_and_month_names():
    assert normalize_date(datetime(2024, 1, 15, 9, 30)) == date(2024, 1, 15)
    assert normalize_date("15-Jan-2024") == date(2024, 1, 15)
    assert normalize_date("15 Jan 2024") == date(2024, 1, 15)
    assert normalize_date("15.01.2024") == date(2024, 1, 15)
    assert normalize_date("15/01/2024 10:45:00") == date(2024, 1, 15)
    assert normalize_date("September 15, 2021") == date(2021, 9, 15)


def test_two_digit_years_pivot_at_seventy():
    assert normalize_date("01/02/69") == date(2069, 2, 1)
    assert normalize_date("01/02/70") == date(1970, 2, 1)


def test_date_blank_and_unparseable():
    assert normalize_date(None) is None
    assert normalize_date("   ") is None
    assert normalize_date("-") is None
    assert normalize_date("next tuesday") == "next tuesday"
    assert normalize_date("31/02/2024") == "31/02/2024"
    assert normalize_date(12) == "12"


def test_percentage_gating():
    assert normalize_percentage(0.5, percent_formatted=False) == Decimal("0.5")
    assert normalize_percentage(0.5, percent_formatted=True) == Decimal("50")
    assert normalize_percentage(7.25, percent_formatted=True) == Decimal("7.25")
    assert normalize_percentage(0, percent_formatted=True) == Decimal("0")
    assert normalize_percentage("7.25%") == Decimal("7.25")
    assert normalize_percentage("NA") is None


def test_amount_divided_only_for_whole_unit_layouts():
    divisor = Decimal("100000")
    assert to_lacs("500000", SourceLayout.EXCHANGE_A, divisor) == Decimal("5")
    assert to_lacs("500000", SourceLayout.EXCHANGE_B, divisor) == Decimal("500000")
    assert to_lacs("12.5", SourceLayout.HOLDINGS_STATEMENT, divisor) == Decimal("12.5")
    assert to_lacs("-", SourceLayout.EXCHANGE_A, divisor) is None


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("1,23,456.78", Decimal("123456.78")),
        ("(1,000)", Decimal("-1000")),
        ("Rs. 2,500", Decimal("2500")),
        ("₹ 10", Decimal("10")),
        (42, Decimal("42")),
        (1.5, Decimal("1.5")),
        ("—", None),
        ("N/A", None),
        ("nil", None),
        ("12abc", None),
        (True, None),
        (float("nan"), None),
    ],
)
def test_normalize_number(raw: object, expected: Decimal | None):
    assert normalize_number(raw) == expected


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("9:30", "09:30:00"),
        ("09:30:15", "09:30:15"),
        ("2:05 PM", "14:05:00"),
        ("15/01/2024 10:45:00", "10:45:00"),
        (0.5, "12:00:00"),
        (45306.25, "06:00:00"),
        ("0.75", "18:00:00"),
        (time(9, 5), "09:05:00"),
        (datetime(2024, 1, 15, 23, 59, 59), "23:59:59"),
        (None, None),
        ("", None),
        ("soon", "soon"),
        ("25:00", "25:00"),
    ],
)
def test_normalize_time(raw: object, expected: str | None):
    assert normalize_time(raw) == expected


def test_fraction_rounds_to_nearest_second():
    fraction = (timedelta(hours=9, minutes=30, seconds=1).total_seconds() + 0.4) / 86400
    assert normalize_time(fraction) == "09:30:01"


def test_text_helpers():
    assert normalize_text("  Name of\nthe   Instrument ") == "Name of the Instrument"
    assert normalize_text(1234.0) == "1234"
    assert normalize_isin(" ine467b01029 ") == "INE467B01029"
    assert normalize_header("% to\r\nNAV") == "% to nav"
