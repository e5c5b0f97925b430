# VAT Review - Transaction import, verification & reporting for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Reporting utilities for VAT Review.

This module turns a finite list of records into:

- report selections (``REPORT_OPTIONS``): full list, top N by amount,
  top N by VAT, verified/to-verify records,
- a dashboard summary (counts per status, amount and VAT totals),
- an Excel workbook (pandas + openpyxl), one sheet with the export columns,
- a PDF report (reportlab), landscape A4 table with status highlighting.

Exports serialize whatever records they are given. Filtering and validation
happen before, in the caller.
"""

from __future__ import annotations

import math
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import IO, Optional, Union
from xml.sax.saxutils import escape

import pandas as pd
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from .records import CanonicalRecord, VerificationStatus
from .views import records_to_dataframe

ExportTarget = Union[str, Path, IO[bytes]]

HEADER_FILL = colors.Color(33 / 255, 72 / 255, 102 / 255)
CLIENT_TO_VERIFY_FILL = colors.Color(1, 200 / 255, 200 / 255)
NOT_VAT_REGISTERED_FILL = colors.Color(1, 1, 200 / 255)

_ROWS_PER_PAGE = 25
_MONEY_COLUMNS = ("Amount", "VAT")
_WRAPPED_COLUMNS = ("Aname", "Description", "Notes")


# ---------------------------------------------------------------------------
# Report selections
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ReportOption:
    id: str
    title: str
    description: str
    select: Callable[[Sequence[CanonicalRecord], int], list[CanonicalRecord]]


def _select_full(records, top_n):
    return list(records)


def _select_top_amount(records, top_n):
    return sorted(records, key=lambda r: r.amount, reverse=True)[:top_n]


def _select_top_vat(records, top_n):
    return sorted(records, key=lambda r: r.vat, reverse=True)[:top_n]


def _select_verified(records, top_n):
    keep = {
        VerificationStatus.CLIENT_TO_VERIFY.value,
        VerificationStatus.VERIFIED.value,
    }
    return [r for r in records if r.verification_status in keep]


REPORT_OPTIONS: dict[str, ReportOption] = {
    option.id: option
    for option in (
        ReportOption(
            "full",
            "Full Report",
            "All records of the selection.",
            _select_full,
        ),
        ReportOption(
            "top100amount",
            "Top Transactions by Amount",
            "Largest transactions by amount.",
            _select_top_amount,
        ),
        ReportOption(
            "top100vat",
            "Top Transactions by VAT",
            "Largest transactions by VAT.",
            _select_top_vat,
        ),
        ReportOption(
            "verified",
            "Verification Report",
            "Verified records and records the client still has to verify.",
            _select_verified,
        ),
    )
}


def build_report(
    records: Sequence[CanonicalRecord],
    option_id: str,
    *,
    top_n: int = 100,
    source_filename: Optional[str] = None,
) -> tuple[str, list[CanonicalRecord]]:
    """
    Apply a report option and return ``(title, records)``.

    When the report is scoped to one import, the file name is appended to
    the title.
    """
    try:
        option = REPORT_OPTIONS[option_id]
    except KeyError as exc:
        choices = ", ".join(REPORT_OPTIONS)
        raise ValueError(f"Unknown report {option_id!r}. Expected one of: {choices}.") from exc

    selected = option.select(records, top_n)
    title = f"{option.title} - {source_filename}" if source_filename else option.title
    return title, selected


# ---------------------------------------------------------------------------
# Dashboard summary
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DashboardSummary:
    total_records: int
    verified: int
    client_to_verify: int
    not_vat_registered: int
    total_amount: float
    total_vat: float


def summarize(records: Sequence[CanonicalRecord]) -> DashboardSummary:
    def _count(code: VerificationStatus) -> int:
        return sum(1 for r in records if r.verification_status == code.value)

    return DashboardSummary(
        total_records=len(records),
        verified=_count(VerificationStatus.VERIFIED),
        client_to_verify=_count(VerificationStatus.CLIENT_TO_VERIFY),
        not_vat_registered=_count(VerificationStatus.NOT_VAT_REGISTERED),
        total_amount=round(sum(r.amount for r in records), 2),
        total_vat=round(sum(r.vat for r in records), 2),
    )


# ---------------------------------------------------------------------------
# File names & formatting
# ---------------------------------------------------------------------------


def slugify(title: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-") or "report"


def report_filename(title: str, extension: str, *, on: Optional[date] = None) -> str:
    """``<slug(title)>-<YYYY-MM-DD>.<extension>``"""
    day = (on or date.today()).isoformat()
    return f"{slugify(title)}-{day}.{extension}"


def format_currency(value: float, symbol: str = "R") -> str:
    sign = "-" if value < 0 else ""
    return f"{sign}{symbol} {abs(value):,.2f}"


# ---------------------------------------------------------------------------
# Excel
# ---------------------------------------------------------------------------


def export_excel(
    records: Sequence[CanonicalRecord],
    title: str,
    target: ExportTarget,
    *,
    sheet_name: str = "Data",
) -> int:
    """
    Write records to an XLSX workbook with a single sheet.

    ``title`` is stored in the workbook properties. Returns the number of
    rows written. Raises ValueError when there is nothing to export.
    """
    if not records:
        raise ValueError("No data available to export")

    df = records_to_dataframe(records)
    with pd.ExcelWriter(target, engine="openpyxl") as writer:
        df.to_excel(writer, sheet_name=sheet_name, index=False)
        writer.book.properties.title = title
        writer.sheets[sheet_name].freeze_panes = "A2"
    return len(df)


# ---------------------------------------------------------------------------
# PDF
# ---------------------------------------------------------------------------


def _row_fill(status_code: str):
    if status_code == VerificationStatus.CLIENT_TO_VERIFY.value:
        return CLIENT_TO_VERIFY_FILL
    if status_code == VerificationStatus.NOT_VAT_REGISTERED.value:
        return NOT_VAT_REGISTERED_FILL
    return None


def export_pdf(
    records: Sequence[CanonicalRecord],
    title: str,
    target: ExportTarget,
    *,
    generated_by: Optional[str] = None,
    currency_symbol: str = "R",
    on_progress: Optional[Callable[[int], None]] = None,
) -> int:
    """
    Render records as a landscape A4 PDF table.

    Rows still to be verified by the client are highlighted in red, rows of
    suppliers that are not VAT registered in yellow. Amount and VAT are
    currency-formatted. ``on_progress`` receives a percentage after each
    page is drawn and 100 at the end.

    Returns the number of rows written. Raises ValueError when there is
    nothing to export.
    """
    if not records:
        raise ValueError("No data available to export")

    if isinstance(target, Path):
        target = str(target)

    styles = getSampleStyleSheet()
    title_style = ParagraphStyle("ReportTitle", parent=styles["Title"], fontSize=16, alignment=TA_CENTER)
    meta_style = ParagraphStyle("ReportMeta", parent=styles["Normal"], fontSize=10)
    cell_style = ParagraphStyle("Cell", parent=styles["Normal"], fontSize=7, leading=8)

    df = records_to_dataframe(records)
    headers = list(df.columns)

    body = []
    for _, row in df.iterrows():
        cells = []
        for column in headers:
            value = row[column]
            if column in _MONEY_COLUMNS:
                cells.append(format_currency(float(value), currency_symbol))
            elif column in _WRAPPED_COLUMNS:
                cells.append(Paragraph(escape(str(value)), cell_style))
            else:
                cells.append("" if value is None else str(value))
        body.append(cells)

    table = Table([headers, *body], repeatRows=1)
    commands = [
        ("GRID", (0, 0), (-1, -1), 0.35, colors.grey),
        ("BACKGROUND", (0, 0), (-1, 0), HEADER_FILL),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, 0), 9),
        ("FONTSIZE", (0, 1), (-1, -1), 8),
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
    ]
    for column in _MONEY_COLUMNS:
        idx = headers.index(column)
        commands.append(("ALIGN", (idx, 1), (idx, -1), "RIGHT"))
    for i, record in enumerate(records, start=1):
        fill = _row_fill(record.verification_status)
        if fill is not None:
            commands.append(("BACKGROUND", (0, i), (-1, i), fill))
    table.setStyle(TableStyle(commands))

    story = [Paragraph(escape(title), title_style)]
    if generated_by:
        story.append(Paragraph(f"Generated by: {escape(generated_by)}", meta_style))
    story.append(Paragraph(f"Date: {datetime.now():%Y-%m-%d %H:%M}", meta_style))
    story.append(Spacer(1, 6 * mm))
    story.append(table)

    estimated_pages = max(1, math.ceil(len(records) / _ROWS_PER_PAGE))
    pages_drawn = 0

    def _on_page(canvas, doc):
        nonlocal pages_drawn
        pages_drawn += 1
        if on_progress is not None:
            on_progress(min(round(pages_drawn / estimated_pages * 100), 99))

    doc = SimpleDocTemplate(
        target,
        pagesize=landscape(A4),
        leftMargin=10 * mm,
        rightMargin=10 * mm,
        topMargin=10 * mm,
        bottomMargin=10 * mm,
        title=title,
    )
    doc.build(story, onFirstPage=_on_page, onLaterPages=_on_page)

    if on_progress is not None:
        on_progress(100)
    return len(records)
