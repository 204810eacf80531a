"""Cell value normalization.

Every function here is total: it never raises on odd input. Values that cannot
be interpreted come back as ``None`` (numbers) or as the original text (dates
and times) so the caller can record what failed.
"""
from __future__ import annotations

import math
import re
from datetime import date, datetime, time, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any

from statement_ingest.domain.models import SourceLayout

SERIAL_EPOCH = date(1899, 12, 30)
SERIAL_MIN = 60
SERIAL_MAX = 2958464
SECONDS_PER_DAY = 86400

PLACEHOLDERS = frozenset({"-", "--", "—", "–", "−", "na", "n/a", "n.a.", "nil", "nan", "none", "null"})

_MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}

_NUMERIC_TEXT = re.compile(r"^\d+(?:\.\d+)?$")
_DMY = re.compile(r"^(\d{1,2})[/.\-](\d{1,2})[/.\-](\d{2,4})(?:[ T].*)?$")
_ISO = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})(?:[ T].*)?$")
_D_MON_Y = re.compile(r"^(\d{1,2})[\s/\-]+([A-Za-z]{3,9})\.?[\s/\-,]+(\d{2,4})(?:\s.*)?$")
_MON_D_Y = re.compile(r"^([A-Za-z]{3,9})\.?\s+(\d{1,2})(?:st|nd|rd|th)?,?\s+(\d{4})(?:\s.*)?$")
_CLOCK = re.compile(r"(\d{1,2}):(\d{2})(?::(\d{2}))?(?:\.\d+)?\s*([AaPp][Mm])?")
_CURRENCY = re.compile(r"(?i)\b(?:rs|inr)\b\.?|[₹$€£,\s]")


def is_placeholder(value: Any) -> bool:
    if value is None:
        return True
    text = str(value).strip()
    return not text or text.lower() in PLACEHOLDERS


def normalize_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float):
        if math.isnan(value):
            return ""
        if value.is_integer():
            return str(int(value))
    return re.sub(r"\s+", " ", str(value)).strip()


def normalize_isin(value: Any) -> str:
    return re.sub(r"\s+", "", normalize_text(value)).upper()


def normalize_header(value: Any) -> str:
    """Lowercase, turn line breaks into spaces and collapse runs of whitespace."""
    return re.sub(r"\s+", " ", normalize_text(value).lower()).strip()


def _to_decimal(value: Any) -> Decimal | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return None
        return Decimal(str(value))
    return None


def normalize_number(value: Any) -> Decimal | None:
    numeric = _to_decimal(value)
    if numeric is not None or not isinstance(value, str):
        return numeric
    text = value.strip()
    if is_placeholder(text):
        return None
    negative = False
    if text.startswith("(") and text.endswith(")"):
        negative = True
        text = text[1:-1]
    text = _CURRENCY.sub("", text).rstrip("%")
    if not text:
        return None
    try:
        result = Decimal(text)
    except InvalidOperation:
        return None
    if not result.is_finite():
        return None
    return -result if negative else result


def normalize_percentage(value: Any, percent_formatted: bool = False) -> Decimal | None:
    """Percent-formatted numeric cells hold fractions; scale them to percent points.

    Only values strictly between 0 and 1 are scaled, so a cell already stored
    as ``7.25`` under a percent format is left alone.
    """
    numeric = _to_decimal(value)
    if numeric is not None:
        if percent_formatted and 0 < numeric < 1:
            return numeric * 100
        return numeric
    return normalize_number(value)


def to_lacs(value: Any, layout: SourceLayout, divisor: Decimal) -> Decimal | None:
    amount = normalize_number(value)
    if amount is None:
        return None
    if layout.amount_in_whole_units:
        return amount / divisor
    return amount


def _serial_to_date(serial: Decimal) -> date | None:
    if SERIAL_MIN <= serial < SERIAL_MAX + 1:
        return SERIAL_EPOCH + timedelta(days=int(serial))
    return None


def _expand_year(text: str) -> int | None:
    year = int(text)
    if len(text) == 2:
        return (1900 if year >= 70 else 2000) + year
    if len(text) == 4:
        return year
    return None


def _build_date(year_text: str, month: int | None, day: int) -> date | None:
    year = _expand_year(year_text)
    if year is None or month is None:
        return None
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _parse_date_text(text: str) -> date | None:
    if _NUMERIC_TEXT.match(text):
        return _serial_to_date(Decimal(text))
    if match := _ISO.match(text):
        year, month, day = match.groups()
        return _build_date(year, int(month), int(day))
    if match := _DMY.match(text):
        day, month, year = match.groups()
        return _build_date(year, int(month), int(day))
    if match := _D_MON_Y.match(text):
        day, month, year = match.groups()
        return _build_date(year, _MONTHS.get(month[:3].lower()), int(day))
    if match := _MON_D_Y.match(text):
        month, day, year = match.groups()
        return _build_date(year, _MONTHS.get(month[:3].lower()), int(day))
    return None


def normalize_date(value: Any) -> date | str | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    numeric = _to_decimal(value)
    if numeric is not None:
        return _serial_to_date(numeric) or normalize_text(value)
    text = normalize_text(value)
    if is_placeholder(text):
        return None
    return _parse_date_text(text) or text


def _format_seconds(seconds: int) -> str:
    seconds %= SECONDS_PER_DAY
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def normalize_time(value: Any) -> str | None:
    """Return ``HH:MM:SS`` for a clock value, ``None`` when blank."""
    if value is None:
        return None
    if isinstance(value, (datetime, time)):
        return value.strftime("%H:%M:%S")
    if isinstance(value, date):
        return None
    numeric = _to_decimal(value)
    text = normalize_text(value)
    if numeric is None and _NUMERIC_TEXT.match(text):
        numeric = Decimal(text)
    if numeric is not None:
        if numeric < 0:
            return text
        fraction = numeric - int(numeric)
        return _format_seconds(round(float(fraction) * SECONDS_PER_DAY))
    if is_placeholder(text):
        return None
    match = _CLOCK.search(text)
    if match is None:
        return text
    hours, minutes = int(match.group(1)), int(match.group(2))
    seconds = int(match.group(3) or 0)
    meridiem = (match.group(4) or "").lower()
    if meridiem:
        if not 1 <= hours <= 12:
            return text
        hours = hours % 12 + (12 if meridiem == "pm" else 0)
    if hours > 23 or minutes > 59 or seconds > 59:
        return text
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"
