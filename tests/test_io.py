import io
from datetime import datetime

import pandas as pd
import pytest

from vat_review.errors import ParseError
from vat_review.io import read_sheet

CSV_TEXT = (
    "Date,TransID,Account,Aname,Amount,VAT\n"
    "2024-01-05,T-1,4000,Sales,\"1,150.00\",150.00\n"
    "2024-01-06,T-2,5000,Rent,,0\n"
)


def _xlsx_bytes(df: pd.DataFrame) -> bytes:
    buffer = io.BytesIO()
    df.to_excel(buffer, index=False, engine="openpyxl")
    return buffer.getvalue()


def test_read_csv_keeps_source_text_and_order():
    rows = read_sheet(CSV_TEXT.encode("utf-8"), "january.csv")

    assert [r["TransID"] for r in rows] == ["T-1", "T-2"]
    assert rows[0]["Amount"] == "1,150.00"
    assert rows[0]["Account"] == "4000"
    assert rows[1]["Amount"] == ""


def test_read_csv_from_path_strips_bom_and_header_spaces(tmp_path):
    path = tmp_path / "export.csv"
    path.write_bytes("\ufeff Date , TransID\n2024-01-01,T-1\n".encode("utf-8"))

    rows = read_sheet(path)

    assert rows == [{"Date": "2024-01-01", "TransID": "T-1"}]


def test_read_xlsx_first_sheet():
    df = pd.DataFrame(
        {
            "Date": [datetime(2024, 2, 1), datetime(2024, 2, 2)],
            "TransID": ["T-10", "T-11"],
            "Amount": [100, 250.5],
            "Notes": ["ok", None],
        }
    )

    rows = read_sheet(_xlsx_bytes(df), "february.xlsx")

    assert len(rows) == 2
    assert rows[0]["TransID"] == "T-10"
    assert rows[0]["Date"] == datetime(2024, 2, 1)
    assert rows[1]["Amount"] == 250.5
    assert rows[1]["Notes"] is None


def test_xlsx_detected_from_content_without_filename():
    payload = _xlsx_bytes(pd.DataFrame({"TransID": ["T-1"]}))
    assert read_sheet(io.BytesIO(payload)) == [{"TransID": "T-1"}]


def test_header_only_sheet_has_no_rows():
    assert read_sheet(b"Date,TransID\n", "empty.csv") == []


def test_empty_file_is_a_parse_error():
    with pytest.raises(ParseError):
        read_sheet(b"", "empty.csv")


def test_unsupported_extension_is_a_parse_error():
    with pytest.raises(ParseError, match="Unsupported file type"):
        read_sheet(b"%PDF-1.4", "report.pdf")


def test_corrupt_xlsx_is_a_parse_error():
    with pytest.raises(ParseError):
        read_sheet(b"PK\x03\x04 definitely not a workbook", "broken.xlsx")


def test_missing_file_is_a_parse_error(tmp_path):
    with pytest.raises(ParseError):
        read_sheet(tmp_path / "missing.csv")
