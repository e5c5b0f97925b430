import io
from dataclasses import replace
from datetime import date

import pandas as pd
import pytest

from vat_review.records import CanonicalRecord
from vat_review.reports import (
    REPORT_OPTIONS,
    build_report,
    export_excel,
    export_pdf,
    format_currency,
    report_filename,
    summarize,
)


def _records() -> list[CanonicalRecord]:
    return [
        CanonicalRecord(
            id="a",
            date="2024-01-01",
            transaction_id="T-1",
            description="Rent & services <January>",
            amount=1150.0,
            vat=150.0,
            verification_status="0",
        ),
        CanonicalRecord(
            id="b",
            transaction_id="T-2",
            amount=230.0,
            vat=30.0,
            verification_status="1",
        ),
        CanonicalRecord(
            id="c",
            transaction_id="T-3",
            amount=5000.0,
            vat=0.0,
            verification_status="2",
            notes="supplier not registered",
        ),
    ]


def test_report_options():
    assert set(REPORT_OPTIONS) == {"full", "top100amount", "top100vat", "verified"}

    records = _records()
    _, full = build_report(records, "full")
    _, by_amount = build_report(records, "top100amount", top_n=2)
    _, by_vat = build_report(records, "top100vat")
    _, verified = build_report(records, "verified")

    assert [r.id for r in full] == ["a", "b", "c"]
    assert [r.id for r in by_amount] == ["c", "a"]
    assert [r.id for r in by_vat] == ["a", "b", "c"]
    assert [r.id for r in verified] == ["a", "b"]


def test_report_title_mentions_source_import():
    title, _ = build_report(_records(), "full", source_filename="january.csv")
    assert title == "Full Report - january.csv"

    with pytest.raises(ValueError, match="Unknown report"):
        build_report(_records(), "weekly")


def test_summarize_counts_statuses_and_totals():
    summary = summarize(_records())

    assert summary.total_records == 3
    assert summary.verified == 1
    assert summary.client_to_verify == 1
    assert summary.not_vat_registered == 1
    assert summary.total_amount == pytest.approx(6380.0)
    assert summary.total_vat == pytest.approx(180.0)


def test_report_filename_and_currency():
    assert (
        report_filename("Top Transactions by VAT - jan.csv", "pdf", on=date(2024, 3, 1))
        == "top-transactions-by-vat-jan-csv-2024-03-01.pdf"
    )
    assert format_currency(1234.5) == "R 1,234.50"
    assert format_currency(-12, "$") == "-$ 12.00"


def test_export_excel_round_trip(tmp_path):
    target = tmp_path / "export.xlsx"

    written = export_excel(_records(), "Full Report", target, sheet_name="Historical Data")

    assert written == 3
    df = pd.read_excel(target, sheet_name="Historical Data", engine="openpyxl")
    assert list(df["TransID"]) == ["T-1", "T-2", "T-3"]
    assert list(df["Status"]) == ["Client to Verify", "Verified", "Not VAT Registered"]
    assert "id" not in df.columns
    assert "import_id" not in df.columns


def test_export_pdf_writes_a_document_and_reports_progress():
    buffer = io.BytesIO()
    progress: list[int] = []
    records = [replace(r, id=f"{r.id}-{i}") for i, r in enumerate(_records() * 20)]

    written = export_pdf(
        records,
        "Full Report",
        buffer,
        generated_by="Jane Doe",
        on_progress=progress.append,
    )

    assert written == 60
    assert buffer.getvalue().startswith(b"%PDF")
    assert progress[-1] == 100
    assert progress == sorted(progress)


def test_exports_refuse_empty_input(tmp_path):
    with pytest.raises(ValueError, match="No data available"):
        export_pdf([], "Empty", tmp_path / "empty.pdf")
    with pytest.raises(ValueError, match="No data available"):
        export_excel([], "Empty", tmp_path / "empty.xlsx")
