"""Decode uploaded spreadsheets into rectangular cell grids.

The container is detected from magic bytes first because exchange portals
and AMC websites regularly serve files under the wrong extension.
"""
from __future__ import annotations

import hashlib
import logging
import zipfile
from io import BytesIO, StringIO
from pathlib import Path
from typing import Any

import openpyxl
import pandas as pd
import xlrd
from openpyxl.utils.exceptions import InvalidFileException

from statement_ingest.domain.errors import UnreadableFileError
from statement_ingest.domain.models import Cell, CellGrid

logger = logging.getLogger(__name__)

ZIP_MAGIC = b"PK\x03\x04"
OLE2_MAGIC = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"

XLSX = "xlsx"
XLS = "xls"
CSV = "csv"
TSV = "tsv"

_EXTENSIONS = {
    ".xlsx": XLSX,
    ".xlsm": XLSX,
    ".xls": XLS,
    ".csv": CSV,
    ".txt": CSV,
    ".tsv": TSV,
}

_DECODE_ERRORS = (
    zipfile.BadZipFile,
    InvalidFileException,
    xlrd.XLRDError,
    pd.errors.ParserError,
    pd.errors.EmptyDataError,
    UnicodeDecodeError,
    KeyError,
    ValueError,
    EOFError,
    OSError,
)


def ensure_bytes(source: BytesIO | Path | bytes) -> bytes:
    if isinstance(source, bytes):
        return source
    if isinstance(source, BytesIO):
        return source.getvalue()
    if isinstance(source, Path):
        try:
            return source.read_bytes()
        except OSError as exc:
            raise UnreadableFileError(str(exc), source.name) from exc
    raise TypeError(f"Unsupported source type: {type(source)!r}")


def compute_file_hash(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def detect_container(data: bytes, filename: str) -> str:
    if data[:8] == OLE2_MAGIC:
        return XLS
    suffix = Path(filename).suffix.lower()
    if data[:4] == ZIP_MAGIC:
        return XLSX
    if suffix in _EXTENSIONS:
        return _EXTENSIONS[suffix]
    raise UnreadableFileError(f"unsupported file type {suffix or '(none)'}", filename)


def decode_workbook(source: BytesIO | Path | bytes, filename: str) -> list[CellGrid]:
    """Return one grid per sheet; delimited text yields a single grid."""
    data = ensure_bytes(source)
    if not data.strip():
        raise UnreadableFileError("file is empty", filename)
    container = detect_container(data, filename)
    try:
        if container == XLSX:
            grids = _decode_xlsx(data)
        elif container == XLS:
            grids = _decode_xls(data)
        else:
            grids = [_decode_delimited(data, "\t" if container == TSV else ",", Path(filename).stem)]
    except _DECODE_ERRORS as exc:
        raise UnreadableFileError(f"cannot open {container} content: {exc}", filename) from exc
    grids = [grid for grid in grids if grid.first_non_empty_row() is not None]
    if not grids:
        raise UnreadableFileError("no sheets with content", filename)
    logger.debug("Decoded %s as %s with %d sheet(s)", filename, container, len(grids))
    return grids


def _fill_merged(rows: list[list[Cell]], row_lo: int, row_hi: int, col_lo: int, col_hi: int) -> None:
    """Copy the top-left cell across a merged range (half-open bounds)."""
    if row_lo >= len(rows) or col_lo >= len(rows[row_lo]):
        return
    anchor = rows[row_lo][col_lo]
    for r in range(row_lo, min(row_hi, len(rows))):
        for c in range(col_lo, min(col_hi, len(rows[r]))):
            rows[r][c] = anchor


def _decode_xlsx(data: bytes) -> list[CellGrid]:
    workbook = openpyxl.load_workbook(BytesIO(data), data_only=True)
    grids: list[CellGrid] = []
    try:
        for sheet in workbook.worksheets:
            rows = [
                [
                    Cell(cell.value, getattr(cell, "number_format", None) if cell.value is not None else None)
                    for cell in row
                ]
                for row in sheet.iter_rows()
            ]
            for merged in sheet.merged_cells.ranges:
                min_col, min_row, max_col, max_row = merged.bounds
                _fill_merged(rows, min_row - 1, max_row, min_col - 1, max_col)
            grids.append(CellGrid.from_values(sheet.title, rows))
    finally:
        workbook.close()
    return grids


def _xls_format(book: xlrd.book.Book, xf_index: int | None) -> str | None:
    if xf_index is None or xf_index >= len(book.xf_list):
        return None
    fmt = book.format_map.get(book.xf_list[xf_index].format_key)
    return fmt.format_str if fmt else None


def _xls_value(book: xlrd.book.Book, cell: xlrd.sheet.Cell) -> Any:
    if cell.ctype in (xlrd.XL_CELL_EMPTY, xlrd.XL_CELL_BLANK, xlrd.XL_CELL_ERROR):
        return None
    if cell.ctype == xlrd.XL_CELL_DATE:
        try:
            return xlrd.xldate.xldate_as_datetime(cell.value, book.datemode)
        except xlrd.xldate.XLDateError:
            return cell.value
    if cell.ctype == xlrd.XL_CELL_BOOLEAN:
        return bool(cell.value)
    return cell.value


def _decode_xls(data: bytes) -> list[CellGrid]:
    book = xlrd.open_workbook(file_contents=data, formatting_info=True)
    grids: list[CellGrid] = []
    for sheet in book.sheets():
        rows: list[list[Cell]] = []
        for r in range(sheet.nrows):
            row: list[Cell] = []
            for c in range(sheet.ncols):
                cell = sheet.cell(r, c)
                value = _xls_value(book, cell)
                row.append(Cell(value, _xls_format(book, cell.xf_index) if value is not None else None))
            rows.append(row)
        for row_lo, row_hi, col_lo, col_hi in sheet.merged_cells:
            _fill_merged(rows, row_lo, row_hi, col_lo, col_hi)
        grids.append(CellGrid.from_values(sheet.name, rows))
    return grids


def _decode_text(data: bytes) -> str:
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        return data.decode("latin-1")


def _decode_delimited(data: bytes, separator: str, sheet_name: str) -> CellGrid:
    text = _decode_text(data)
    lines = text.splitlines()
    # Title rows above the header carry fewer fields than the table body.
    width = max((line.count(separator) for line in lines), default=0) + 1
    frame = pd.read_csv(
        StringIO(text),
        sep=separator,
        header=None,
        names=list(range(width)),
        dtype=str,
        keep_default_na=False,
        skip_blank_lines=False,
    )
    rows = [
        [Cell(value if isinstance(value, str) and value.strip() else None) for value in record]
        for record in frame.itertuples(index=False, name=None)
    ]
    return CellGrid.from_values(sheet_name, rows)
