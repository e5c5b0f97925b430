# VAT Review - Transaction import, verification & reporting for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Canonical data model for VAT Review.

This module defines the value objects shared by every layer of the
application:

- ``CanonicalRecord``: one imported transaction line, independent of the
  spreadsheet or storage naming conventions.
- ``ImportManifest``: metadata describing one saved import.
- ``ValidationResult``: per-record outcome of the validation rules.
- ``ValidationRun``: metadata describing one saved validation run.
- ``Scope``: owner / import pair used to filter store queries.

Verification status
-------------------
The verification status is stored as a short string code:

    "0" -> Client to Verify   (initial status of imported rows)
    "1" -> Verified
    "2" -> Not VAT Registered

The display label is always derived from the code through
``status_label()``. Unknown codes are kept as-is and map to
``UNKNOWN_STATUS_LABEL`` instead of raising.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class VerificationStatus(str, Enum):
    """Closed set of verification status codes."""

    CLIENT_TO_VERIFY = "0"
    VERIFIED = "1"
    NOT_VAT_REGISTERED = "2"


STATUS_LABELS: dict[str, str] = {
    VerificationStatus.CLIENT_TO_VERIFY.value: "Client to Verify",
    VerificationStatus.VERIFIED.value: "Verified",
    VerificationStatus.NOT_VAT_REGISTERED.value: "Not VAT Registered",
}

UNKNOWN_STATUS_LABEL = ""

# Statuses shown by the "show flagged only" view.
FLAGGED_STATUSES = frozenset(
    {
        VerificationStatus.CLIENT_TO_VERIFY.value,
        VerificationStatus.NOT_VAT_REGISTERED.value,
    }
)

DEFAULT_STATUS = VerificationStatus.CLIENT_TO_VERIFY.value


def status_label(code: str) -> str:
    """Return the display label for a status code (sentinel if unknown)."""
    return STATUS_LABELS.get(str(code), UNKNOWN_STATUS_LABEL)


def is_known_status(code: str) -> bool:
    return str(code) in STATUS_LABELS


@dataclass(frozen=True)
class CanonicalRecord:
    """
    Normalized representation of one transaction row.

    Attributes
    ----------
    id:
        Opaque identifier, unique within a working set. Generated at import
        time for new rows, kept from the store for rehydrated rows.
    date:
        Transaction date as found in the source file (format preserved).
    transaction_id, account, account_name, reference, description, flag, notes:
        Free text fields. Missing values are normalized to "".
    amount, vat:
        Signed amounts at currency scale (2 decimals). Missing or malformed
        values are normalized to 0.0.
    verification_status:
        Status code ("0", "1", "2"). Unknown codes are passed through.
    import_id:
        Id of the owning ImportManifest, set at persistence time only.
    extras:
        Display-layer annotations and store metadata (the stored
        ``created_at`` of rehydrated rows). Not part of equality.
    """

    id: str
    date: str = ""
    transaction_id: str = ""
    account: str = ""
    account_name: str = ""
    reference: str = ""
    description: str = ""
    amount: float = 0.0
    vat: float = 0.0
    flag: str = ""
    verification_status: str = DEFAULT_STATUS
    notes: str = ""
    import_id: str | None = None
    extras: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def status_label(self) -> str:
        return status_label(self.verification_status)

    @property
    def is_flagged(self) -> bool:
        return self.verification_status in FLAGGED_STATUSES


# Canonical fields that may be edited as free text in edit mode.
TEXT_FIELDS: tuple[str, ...] = (
    "date",
    "transaction_id",
    "account",
    "account_name",
    "reference",
    "description",
    "flag",
    "notes",
)

NUMERIC_FIELDS: tuple[str, ...] = ("amount", "vat")


@dataclass(frozen=True)
class ImportManifest:
    """
    Metadata about one saved working set.

    ``record_count`` is fixed when the manifest is created and is never
    updated afterwards, even if some rows fail to be inserted.
    """

    id: str
    filename: str
    imported_at: datetime
    record_count: int
    imported_by: str
    owner_id: str | None = None


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of the validation rules for one record."""

    record_id: str
    error_fields: tuple[str, ...] = ()

    @property
    def has_error(self) -> bool:
        return bool(self.error_fields)


@dataclass(frozen=True)
class ValidationRun:
    """
    Metadata about one saved validation run.

    The run keeps a copy of every validated record together with its
    ``ValidationResult``, so later edits of the data do not change it.
    """

    id: str
    filename: str
    created_at: datetime
    record_count: int
    error_count: int
    owner_id: str | None = None


@dataclass(frozen=True)
class Scope:
    """
    Owner / import filter for store queries.

    A scope without ``owner_id`` matches nothing: reads return empty results
    and writes are refused.
    """

    owner_id: str | None = None
    import_id: str | None = None
