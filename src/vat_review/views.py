# VAT Review - Transaction import, verification & reporting for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
View utilities for VAT Review.

Helpers that turn a list of ``CanonicalRecord`` into what a grid or an
export displays:

- flagged filter: statuses "Client to Verify" and "Not VAT Registered",
- free-text search across text columns (case-insensitive),
- sorting on any display column,
- pagination with the grid page sizes (50, 100, 250, 500),
- conversion to a pandas DataFrame with human-readable columns.

None of these helpers mutate or reorder their input.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass

import pandas as pd

from .normalizer import DISPLAY_COLUMNS, to_display_row
from .records import CanonicalRecord

PAGE_SIZES = (50, 100, 250, 500)
DEFAULT_PAGE_SIZE = 50

_SEARCH_FIELDS = (
    "date",
    "transaction_id",
    "account",
    "account_name",
    "reference",
    "description",
    "flag",
    "notes",
)

_COLUMN_TO_FIELD = {column: name for name, column in DISPLAY_COLUMNS.items()}


@dataclass(frozen=True)
class Page:
    """One page of records plus pagination metadata (page is 1-based)."""

    records: list[CanonicalRecord]
    page: int
    page_size: int
    total_records: int

    @property
    def total_pages(self) -> int:
        return max(1, math.ceil(self.total_records / self.page_size))

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_previous(self) -> bool:
        return self.page > 1


def filter_flagged(records: Sequence[CanonicalRecord]) -> list[CanonicalRecord]:
    return [r for r in records if r.is_flagged]


def search_records(records: Sequence[CanonicalRecord], text: str) -> list[CanonicalRecord]:
    """Keep records where any text column contains ``text`` (case-insensitive)."""
    needle = text.strip().lower()
    if not needle:
        return list(records)
    return [
        r
        for r in records
        if any(needle in str(getattr(r, name)).lower() for name in _SEARCH_FIELDS)
        or needle in r.status_label.lower()
    ]


def sort_records(
    records: Sequence[CanonicalRecord],
    column: str,
    *,
    descending: bool = False,
) -> list[CanonicalRecord]:
    """
    Sort by a display column (``Amount``) or canonical field (``amount``).

    The sort is stable, so records with equal keys keep their order.
    """
    name = _COLUMN_TO_FIELD.get(column, column)
    if name not in DISPLAY_COLUMNS:
        raise ValueError(f"Unknown sort column: {column!r}")
    return sorted(records, key=lambda r: getattr(r, name), reverse=descending)


def paginate(
    records: Sequence[CanonicalRecord],
    *,
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> Page:
    """
    Return one page of records.

    Pages past the end are clamped to the last page.
    """
    if page_size not in PAGE_SIZES:
        allowed = ", ".join(str(s) for s in PAGE_SIZES)
        raise ValueError(f"Invalid page size {page_size}. Expected one of: {allowed}.")
    if page < 1:
        raise ValueError("Page numbers start at 1.")

    total = len(records)
    last_page = max(1, math.ceil(total / page_size))
    page = min(page, last_page)
    start = (page - 1) * page_size
    return Page(
        records=list(records[start : start + page_size]),
        page=page,
        page_size=page_size,
        total_records=total,
    )


def records_to_dataframe(
    records: Sequence[CanonicalRecord],
    *,
    include_id: bool = False,
) -> pd.DataFrame:
    """
    Build a DataFrame with the human-readable export columns.

    ``include_id`` prepends the record id column (used by the CLI so that
    records can be referenced in edit commands).
    """
    columns = list(DISPLAY_COLUMNS.values())
    rows = [to_display_row(r) for r in records]
    df = pd.DataFrame(rows, columns=columns)
    if include_id:
        df.insert(0, "id", [r.id for r in records])
    return df
