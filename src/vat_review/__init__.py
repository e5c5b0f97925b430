# VAT Review - Transaction import, verification & reporting for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
VAT Review
----------

A Python application to review the VAT of business transactions. Users
import spreadsheet exports (CSV/XLSX) of their transaction lists, validate
and verify each line, store the result as an import and produce Excel/PDF
reports.

Main capabilities:
- CSV/XLSX import with tolerant header matching and amount parsing,
- field validation (required fields, amount and VAT consistency),
- per-record verification status ("Client to Verify", "Verified",
  "Not VAT Registered") and notes,
- batched persistence of imports in SQLite with import history and
  reconciliation of partially saved imports,
- search, sort and pagination of the current data,
- Excel exports and PDF reports with status highlighting.

Version: 0.1.0

Usage:
    python -m vat_review.cli --help
"""

__all__ = [
    "normalizer",
    "pipeline",
    "validation",
    "session",
    "gateway",
    "records_service",
    "reports",
    "views",
]

__version__ = "0.1.0"
