# VAT Review - Transaction import, verification & reporting for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Validation engine for VAT Review.

Rules are evaluated independently for each record (there are no
cross-record checks) and produce a ``ValidationResult``:

1) Required fields: Date, TransID, Account, Amount and VAT must be present.
   Each missing field is reported by its column name.
2) ``Amount must be positive``  when amount <= 0.
3) ``VAT cannot be negative``   when vat < 0.
4) ``VAT cannot exceed Amount`` when |vat| > |amount|.

A failing record is not an error: the result is attached to the record and
the rest of the working set is still validated.

Running the engine again replaces all previous results; results never
accumulate across runs.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass

from .pipeline import DEFAULT_YIELD_EVERY
from .records import CanonicalRecord, ValidationResult
from .session import WorkingSetContext

REQUIRED_FIELDS: tuple[tuple[str, str], ...] = (
    ("date", "Date"),
    ("transaction_id", "TransID"),
    ("account", "Account"),
    ("amount", "Amount"),
    ("vat", "VAT"),
)

AMOUNT_NOT_POSITIVE = "Amount must be positive"
VAT_NEGATIVE = "VAT cannot be negative"
VAT_EXCEEDS_AMOUNT = "VAT cannot exceed Amount"


@dataclass(frozen=True)
class ValidationSummary:
    checked: int
    failed: int

    @property
    def passed(self) -> int:
        return self.checked - self.failed

    @property
    def has_errors(self) -> bool:
        return self.failed > 0


def _is_missing(value) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def validate_record(record: CanonicalRecord) -> ValidationResult:
    """Apply every rule to one record."""
    errors: list[str] = []

    for name, label in REQUIRED_FIELDS:
        if _is_missing(getattr(record, name)):
            errors.append(label)

    amount = record.amount
    vat = record.vat

    if amount is not None and amount <= 0:
        errors.append(AMOUNT_NOT_POSITIVE)
    if vat is not None and vat < 0:
        errors.append(VAT_NEGATIVE)
    if amount is not None and vat is not None and abs(vat) > abs(amount):
        errors.append(VAT_EXCEEDS_AMOUNT)

    return ValidationResult(record_id=record.id, error_fields=tuple(errors))


async def validate_records(
    records: Sequence[CanonicalRecord],
    *,
    yield_every: int = DEFAULT_YIELD_EVERY,
) -> list[ValidationResult]:
    """Validate records in order, yielding to the event loop periodically."""
    results: list[ValidationResult] = []
    for i, record in enumerate(records):
        results.append(validate_record(record))
        if i % yield_every == 0:
            await asyncio.sleep(0)
    return results


async def run_validation(
    context: WorkingSetContext,
    *,
    yield_every: int = DEFAULT_YIELD_EVERY,
) -> list[ValidationResult]:
    """Validate the whole working set and replace the context's results."""
    with context.operation("validate"):
        results = await validate_records(context.get(), yield_every=yield_every)
        context.set_validation_results(results)
    return results


def run_validation_sync(context: WorkingSetContext, **kwargs) -> list[ValidationResult]:
    return asyncio.run(run_validation(context, **kwargs))


def summarize_results(results: Sequence[ValidationResult]) -> ValidationSummary:
    return ValidationSummary(
        checked=len(results),
        failed=sum(1 for r in results if r.has_error),
    )
