"""Scheme name and statement date from the title block of a holdings sheet."""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date

from statement_ingest.domain.models import CellGrid

from .normalize import normalize_date, normalize_text

TITLE_ROWS = 10
TITLE_COLUMNS = 10

_HOUSE_LINE = re.compile(r"^icici\s+prudential\s+mutual\s+fund$", re.IGNORECASE)
_SCHEME_PREFIX = re.compile(r"scheme\s*name\s*:", re.IGNORECASE)
_FUNDISH = re.compile(r"fund|scheme", re.IGNORECASE)
_HEADERISH = re.compile(r"^(sr\.?\s*no|name\s*of|isin|rating|quantity|market|portfolio\s*statement)", re.IGNORECASE)
_LONG_PAREN = re.compile(r"^([^(]+)\s*\([^)]{30,}\)")
_DESCRIPTION_SUFFIX = re.compile(r"\s*(-\s*(an\s+open\s+ended|a\s+close\s+ended)|\((an\s+open\s+ended|a\s+close\s+ended)).*$", re.IGNORECASE)
_STATEMENT_DATE = re.compile(r"portfolio\s*statement\s*as\s*on\s*:?", re.IGNORECASE)
_DATE_FRAGMENTS = (
    re.compile(r"\d{1,2}[/-]\d{1,2}[/-]\d{4}"),
    re.compile(r"\d{1,2}\s+[A-Za-z]{3,9}\s*,?\s*\d{4}"),
    re.compile(r"[A-Za-z]{3,9}\.?\s+\d{1,2}\s*,?\s*\d{4}"),
)


@dataclass(frozen=True)
class SchemeInfo:
    name: str | None = None
    report_date: date | None = None


def clean_scheme_name(value: str) -> str:
    """Drop long parenthetical descriptions and "an open ended ..." suffixes."""
    match = _LONG_PAREN.match(value)
    cleaned = match.group(1) if match else value
    return _DESCRIPTION_SUFFIX.sub("", cleaned).strip()


def _parse_report_date(text: str) -> date | None:
    for pattern in _DATE_FRAGMENTS:
        for fragment in pattern.findall(text):
            parsed = normalize_date(fragment.replace(",", " "))
            if isinstance(parsed, date):
                return parsed
    return None


def detect_scheme_info(grid: CellGrid) -> SchemeInfo:
    name: str | None = None
    report_date: date | None = None
    for r in range(min(TITLE_ROWS, len(grid))):
        for cell in grid.row(r)[:TITLE_COLUMNS]:
            if isinstance(cell.value, date) and report_date is None:
                report_date = normalize_date(cell.value)
                continue
            value = normalize_text(cell.value)
            if not value:
                continue
            if r == 0 and _HOUSE_LINE.match(value):
                continue
            if name is None and _SCHEME_PREFIX.search(value):
                name = _SCHEME_PREFIX.sub("", value, count=1).strip() or None
            elif name is None and r <= 2 and len(value) > 10 and _FUNDISH.search(value) and not _HEADERISH.match(value):
                name = clean_scheme_name(value)
            if report_date is None:
                if _STATEMENT_DATE.search(value):
                    report_date = _parse_report_date(_STATEMENT_DATE.sub("", value))
                if report_date is None:
                    report_date = _parse_report_date(value)
    return SchemeInfo(name=name, report_date=report_date)
