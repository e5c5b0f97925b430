# VAT Review - Transaction import, verification & reporting for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Spreadsheet reading for VAT Review.

This module turns an uploaded file into an ordered list of raw rows
(``dict`` of column name -> primitive value). It knows nothing about the
canonical record shape: mapping column names is the job of
``normalizer.py``.

Supported formats
-----------------
- CSV  (``.csv``, ``.txt``): UTF-8, optional BOM, header on the first line.
  Every cell is kept as its source text; empty cells become "".
- XLSX (``.xlsx``, ``.xlsm``): only the first worksheet is read, its first
  row is the header. Empty cells become None. Date cells are returned as
  ``datetime`` values and rendered by the normalizer.

The format is taken from the filename extension when available. Without a
usable extension the content is sniffed: a ZIP signature means XLSX,
anything else is read as CSV.

Any failure to read the file raises ``ParseError``. Nothing is returned for
a partially readable file.
"""

from __future__ import annotations

import io
import os
from pathlib import Path
from typing import IO, Any, Union

import pandas as pd

from .errors import ParseError

SheetSource = Union[str, "os.PathLike[str]", bytes, IO[bytes]]

_CSV_SUFFIXES = {".csv", ".txt"}
_XLSX_SUFFIXES = {".xlsx", ".xlsm"}
_ZIP_SIGNATURE = b"PK\x03\x04"


def _read_bytes(source: SheetSource) -> bytes:
    if isinstance(source, (bytes, bytearray)):
        return bytes(source)
    if hasattr(source, "read"):
        return source.read()
    return Path(source).read_bytes()


def _detect_format(payload: bytes, filename: str | None) -> str:
    if filename:
        suffix = Path(filename).suffix.lower()
        if suffix in _CSV_SUFFIXES:
            return "csv"
        if suffix in _XLSX_SUFFIXES:
            return "xlsx"
        if suffix:
            raise ParseError(
                f"Unsupported file type {suffix!r}. Expected a CSV or XLSX file."
            )
    return "xlsx" if payload.startswith(_ZIP_SIGNATURE) else "csv"


def _frame_to_rows(df: pd.DataFrame) -> list[dict[str, Any]]:
    df.columns = [str(c).strip() for c in df.columns]
    # Blank cells: NaN/NaT -> None so that rows only carry plain values.
    df = df.astype(object).where(pd.notna(df), None)
    return df.to_dict(orient="records")


def read_sheet(source: SheetSource, filename: str | None = None) -> list[dict[str, Any]]:
    """
    Read the first sheet of a CSV or XLSX file into raw rows.

    Parameters
    ----------
    source:
        Path to the file, its raw bytes, or a binary file object.
    filename:
        Original file name, used to pick the format. Defaults to the name of
        ``source`` when it is a path.

    Returns
    -------
    list[dict]
        One mapping per data row, in source order. Keys are the header
        cells.

    Raises
    ------
    ParseError
        If the file cannot be read or is not a supported spreadsheet.
    """
    if filename is None and isinstance(source, (str, os.PathLike)):
        filename = os.fspath(source)

    try:
        payload = _read_bytes(source)
    except OSError as exc:
        raise ParseError(f"Unable to read file {filename or ''}: {exc}") from exc

    if not payload:
        raise ParseError("The uploaded file is empty.")

    fmt = _detect_format(payload, filename)

    try:
        if fmt == "xlsx":
            df = pd.read_excel(
                io.BytesIO(payload),
                sheet_name=0,
                engine="openpyxl",
                dtype=object,
            )
        else:
            df = pd.read_csv(
                io.BytesIO(payload),
                dtype=str,
                keep_default_na=False,
                encoding="utf-8-sig",
            )
    except Exception as exc:  # noqa: BLE001
        raise ParseError(f"Failed to parse {fmt.upper()} file: {exc}") from exc

    return _frame_to_rows(df)
