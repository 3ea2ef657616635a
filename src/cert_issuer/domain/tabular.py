"""
Tabular decoding — uploaded CSV bytes → ordered list of raw rows.

Pure domain code — the whole file is decoded up front so validation and
issuance run as two separate phases. Any problem with the file itself is a
FORMAT_ERROR and no row is processed.

Uses the standard csv module (csv.reader handles quoted multiline fields).
"""

from __future__ import annotations

import csv
import io

import structlog

from cert_issuer.domain.models import RawRow
from cert_issuer.railway import ErrorCode, Result

log = structlog.get_logger()


def decode_csv(content: bytes, filename: str | None = None) -> Result[list[RawRow]]:
    """
    Decode a CSV upload into raw rows keyed by the header row.

    - A filename not ending in ``.csv`` is rejected before decoding.
    - UTF-8 with or without BOM.
    - Blank lines are skipped; short rows are padded with "", extra cells dropped.
    - A repeated header name keeps the cell under its first occurrence.
    """
    if filename is not None and not filename.lower().endswith(".csv"):
        return Result.failure(ErrorCode.FORMAT_ERROR, "File must be a CSV file")

    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        return Result.failure(ErrorCode.FORMAT_ERROR, "CSV file must be UTF-8 encoded", e)

    try:
        rows = _read_rows(text)
    except csv.Error as e:
        return Result.failure(ErrorCode.FORMAT_ERROR, f"CSV parsing failed: {e}", e)

    if rows is None:
        return Result.failure(ErrorCode.FORMAT_ERROR, "CSV file has no header row")

    log.info("csv.decoded", rows=len(rows), filename=filename)
    return Result.success(rows)


def _read_rows(text: str) -> list[RawRow] | None:
    """Rows keyed by trimmed header names, or None when there is no header."""
    reader = csv.reader(io.StringIO(text, newline=""), strict=True)
    header = next(reader, None)
    if header is None or not any(cell.strip() for cell in header):
        return None

    columns = [cell.strip() for cell in header]
    rows: list[RawRow] = []
    for cells in reader:
        if not any(cell.strip() for cell in cells):
            continue
        padded = cells[: len(columns)] + [""] * (len(columns) - len(cells))
        row: RawRow = {}
        for column, cell in zip(columns, padded, strict=True):
            row.setdefault(column, cell)
        rows.append(row)
    return rows
