# VAT Review - Transaction import, verification & reporting for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Record normalizer for VAT Review.

Spreadsheet rows arrive with heterogeneous column names: exports of the
application itself use human-readable headers (``Date``, ``TransID``,
``Amount``...), while dumps of the store use the storage convention
(``date``, ``trans_id``, ``amount``...). This module maps any such row to a
``CanonicalRecord`` and back.

Key lookup
----------
Each canonical field has an explicit, ordered tuple of candidate keys in
``FIELD_KEYS``. The first candidate that is *present* in the row wins. A
value is present when it is not None, not NaN and not a blank string.

Defaults
--------
- text fields      -> ""
- amount / vat     -> 0.0 (also used when the value cannot be parsed)
- verification     -> "0" (Client to Verify)

Malformed numbers are not an error here: they become 0.0 and the validation
engine flags them afterwards.

All functions are pure.
"""

from __future__ import annotations

import json
import math
import re
import uuid
from collections.abc import Mapping
from datetime import date, datetime
from typing import Any

import pandas as pd

from .records import (
    DEFAULT_STATUS,
    TEXT_FIELDS,
    CanonicalRecord,
    ValidationResult,
)

FIELD_KEYS: dict[str, tuple[str, ...]] = {
    "date": ("Date", "date"),
    "transaction_id": ("TransID", "Transaction ID", "trans_id"),
    "account": ("Account", "account"),
    "account_name": ("Aname", "Account Name", "aname"),
    "reference": ("Reference", "reference"),
    "description": ("Description", "description"),
    "amount": ("Amount", "amount"),
    "vat": ("VAT", "vat"),
    "flag": ("Flag", "flag"),
    "verification_status": ("Verified", "verified"),
    "notes": ("Notes", "notes"),
}

# Human-readable headers used when exporting records (first candidate).
DISPLAY_COLUMNS: dict[str, str] = {
    "date": "Date",
    "transaction_id": "TransID",
    "account": "Account",
    "account_name": "Aname",
    "reference": "Reference",
    "description": "Description",
    "amount": "Amount",
    "vat": "VAT",
    "flag": "Flag",
    "verification_status": "Verified",
    "status_label": "Status",
    "notes": "Notes",
}

# Storage column for each canonical text field.
STORAGE_COLUMNS: dict[str, str] = {
    "date": "date",
    "transaction_id": "trans_id",
    "account": "account",
    "account_name": "aname",
    "reference": "reference",
    "description": "description",
    "flag": "flag",
    "verification_status": "verified",
    "notes": "notes",
}

_CURRENCY_PREFIX = re.compile(r"^[R$€£]\s*")


# ---------------------------------------------------------------------------
# Scalar helpers
# ---------------------------------------------------------------------------


def _is_present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ""
    try:
        return not bool(pd.isna(value))
    except (TypeError, ValueError):
        return True


def resolve(row: Mapping[str, Any], field_name: str) -> Any:
    """Return the first present value among the candidate keys, or None."""
    for key in FIELD_KEYS[field_name]:
        if key in row and _is_present(row[key]):
            return row[key]
    return None


def _to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        if value.hour == value.minute == value.second == value.microsecond == 0:
            return value.date().isoformat()
        return value.isoformat(sep=" ")
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        # Spreadsheet engines return whole numbers as floats (4000 -> 4000.0)
        return str(int(value))
    return str(value)


def parse_amount(value: Any) -> float:
    """
    Parse a monetary value using "." as the decimal separator.

    Accepted inputs include ``1234.5``, ``"1,234.50"``, ``" R 12.00 "`` and
    accounting negatives such as ``"(12.34)"``. Anything else returns 0.0.
    The result is rounded to 2 decimals.
    """
    if value is None or isinstance(value, bool):
        return 0.0

    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip().replace(",", "").replace(" ", "")
        negative = False
        if text.startswith("(") and text.endswith(")"):
            negative = True
            text = text[1:-1]
        text = _CURRENCY_PREFIX.sub("", text)
        try:
            number = float(text)
        except ValueError:
            return 0.0
        if negative:
            number = -number

    if math.isnan(number) or math.isinf(number):
        return 0.0
    return round(number, 2)


def parse_status(value: Any) -> str:
    """Return the status code as a string ("0" when absent)."""
    if not _is_present(value):
        return DEFAULT_STATUS
    return _to_text(value).strip()


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def normalize_row(
    row: Mapping[str, Any],
    *,
    record_id: str | None = None,
    import_id: str | None = None,
) -> CanonicalRecord:
    """
    Map one raw spreadsheet/store row to a ``CanonicalRecord``.

    Parameters
    ----------
    row:
        Mapping of column name to primitive value.
    record_id:
        Existing id to keep (rehydration). When None, a fresh UUID is
        generated (new import).
    import_id:
        Owning manifest id, only known for rows read back from the store.
    """
    values: dict[str, Any] = {
        name: _to_text(resolve(row, name)) for name in TEXT_FIELDS
    }

    return CanonicalRecord(
        id=record_id if record_id is not None else str(uuid.uuid4()),
        amount=parse_amount(resolve(row, "amount")),
        vat=parse_amount(resolve(row, "vat")),
        verification_status=parse_status(resolve(row, "verification_status")),
        import_id=import_id,
        **values,
    )


def to_display_row(record: CanonicalRecord) -> dict[str, Any]:
    """
    Return the record keyed by human-readable headers (export layout).

    Normalizing the returned mapping again yields a record equal to the
    input except for ``id`` and ``import_id``.
    """
    return {
        column: getattr(record, name) for name, column in DISPLAY_COLUMNS.items()
    }


def to_storage_row(
    record: CanonicalRecord,
    *,
    owner_id: str,
    import_id: str | None,
    created_at: str,
) -> dict[str, Any]:
    """
    Map a record to a row of the ``data`` table (snake_case, cents).

    A record read back from the store keeps its original ``created_at``
    (carried in ``extras``); ``created_at`` is used for new rows and as
    ``updated_at``.
    """
    row: dict[str, Any] = {"id": record.id}
    for name, column in STORAGE_COLUMNS.items():
        row[column] = getattr(record, name)
    row["amount_cents"] = int(round(record.amount * 100))
    row["vat_cents"] = int(round(record.vat * 100))
    row["status"] = record.status_label
    row["created_by"] = owner_id
    row["import_id"] = import_id
    row["created_at"] = record.extras.get("created_at") or created_at
    row["updated_at"] = created_at
    return row


def from_storage_row(row: Mapping[str, Any]) -> CanonicalRecord:
    """
    Rehydrate a ``data`` table row, keeping its persisted id and import id.

    The stored ``status`` label is ignored: it is re-derived from
    ``verified``.
    """
    values: dict[str, Any] = {
        name: _to_text(row.get(column)) if _is_present(row.get(column)) else ""
        for name, column in STORAGE_COLUMNS.items()
        if name != "verification_status"
    }
    amount_cents = row.get("amount_cents")
    vat_cents = row.get("vat_cents")

    return CanonicalRecord(
        id=str(row["id"]),
        amount=round(amount_cents / 100.0, 2) if amount_cents is not None else 0.0,
        vat=round(vat_cents / 100.0, 2) if vat_cents is not None else 0.0,
        verification_status=parse_status(row.get("verified")),
        import_id=row.get("import_id"),
        extras={"created_at": row["created_at"]} if row.get("created_at") else {},
        **values,
    )


def to_validation_row(
    record: CanonicalRecord,
    result: ValidationResult,
    *,
    validation_id: str,
    position: int,
    owner_id: str,
) -> dict[str, Any]:
    """Map a record and its validation outcome to a ``data_validation_records`` row."""
    row: dict[str, Any] = {
        "id": str(uuid.uuid4()),
        "validation_id": validation_id,
        "record_id": record.id,
        "position": position,
    }
    for name, column in STORAGE_COLUMNS.items():
        row[column] = getattr(record, name)
    row["amount_cents"] = int(round(record.amount * 100))
    row["vat_cents"] = int(round(record.vat * 100))
    row["has_error"] = int(result.has_error)
    row["error_fields"] = json.dumps(list(result.error_fields))
    row["created_by"] = owner_id
    return row


def from_validation_row(row: Mapping[str, Any]) -> tuple[CanonicalRecord, ValidationResult]:
    """Rehydrate a ``data_validation_records`` row as ``(record, result)``."""
    record = from_storage_row(
        {**row, "id": row["record_id"], "import_id": None, "created_at": None}
    )
    result = ValidationResult(
        record_id=record.id,
        error_fields=tuple(json.loads(row.get("error_fields") or "[]")),
    )
    return record, result
