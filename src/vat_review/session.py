# VAT Review - Transaction import, verification & reporting for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Working set and edit/verification state for VAT Review.

A ``WorkingSetContext`` holds the in-memory, ordered collection of
``CanonicalRecord`` objects that the user is importing, reviewing or
editing. One context is created per user session and passed explicitly to
every operation that reads or mutates it.

Editing model
-------------
- Records are immutable. Every edit replaces one record by value
  (``dataclasses.replace``) and leaves every other record untouched.
- Status and notes can always be edited. Other text fields can only be
  edited while ``edit_mode`` is on.
- Status transitions are free between the three known codes and only
  happen through an explicit call; nothing changes status automatically.
- ``show_flagged_only`` filters what ``visible_records()`` returns
  (statuses "0" and "2") without touching the working set or its order.

Operations
----------
Import, save and validate must not overlap. ``operation(kind)`` is a context
manager that marks the context busy and raises ``OperationInProgressError``
when another operation is still running.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import replace
from typing import Optional

from .errors import EditNotAllowedError, OperationInProgressError
from .records import (
    TEXT_FIELDS,
    CanonicalRecord,
    ValidationResult,
    VerificationStatus,
)


class WorkingSetContext:
    """Explicit holder of one session's working set and view state."""

    def __init__(self) -> None:
        self._records: list[CanonicalRecord] = []
        self._index: dict[str, int] = {}
        self.filename: str = ""
        self.edit_mode: bool = False
        self.show_flagged_only: bool = False
        self._validation: dict[str, ValidationResult] = {}
        self._running: Optional[str] = None

    # ------------------------------------------------------------------
    # get / set / clear
    # ------------------------------------------------------------------

    def get(self) -> list[CanonicalRecord]:
        """Return a copy of the working set, in order."""
        return list(self._records)

    def set(
        self,
        records: Iterable[CanonicalRecord],
        filename: Optional[str] = None,
    ) -> None:
        """
        Replace the whole working set.

        Raises
        ------
        ValueError
            If two records share the same id.
        """
        new_records = list(records)
        index: dict[str, int] = {}
        for position, record in enumerate(new_records):
            if record.id in index:
                raise ValueError(f"Duplicate record id in working set: {record.id}")
            index[record.id] = position

        self._records = new_records
        self._index = index
        self._validation = {}
        if filename is not None:
            self.filename = filename

    def adopt_saved(self, records: Iterable[CanonicalRecord]) -> None:
        """
        Swap the working set for its stored copies after a save.

        ``records`` must be the saved rows in working-set order. Ids and
        import ids are taken from them; validation results follow their
        record. The filename and view state are kept.

        Raises
        ------
        ValueError
            If the number of records differs from the working set.
        """
        saved = list(records)
        if len(saved) != len(self._records):
            raise ValueError(
                f"Expected {len(self._records)} saved record(s), got {len(saved)}."
            )
        results = {}
        for old, new in zip(self._records, saved):
            result = self._validation.get(old.id)
            if result is not None:
                results[new.id] = replace(result, record_id=new.id)
        self.set(saved)
        self._validation = results

    def clear(self) -> None:
        """Drop the working set and reset the view state."""
        self._records = []
        self._index = {}
        self._validation = {}
        self.filename = ""
        self.edit_mode = False
        self.show_flagged_only = False

    def __len__(self) -> int:
        return len(self._records)

    def find(self, record_id: str) -> CanonicalRecord:
        """Return the record with the given id (KeyError if missing)."""
        return self._records[self._index[record_id]]

    # ------------------------------------------------------------------
    # View state
    # ------------------------------------------------------------------

    def toggle_edit_mode(self) -> bool:
        self.edit_mode = not self.edit_mode
        return self.edit_mode

    def toggle_show_flagged(self) -> bool:
        self.show_flagged_only = not self.show_flagged_only
        return self.show_flagged_only

    def visible_records(self) -> list[CanonicalRecord]:
        """Records to display, honouring the "show flagged only" filter."""
        if not self.show_flagged_only:
            return self.get()
        return [r for r in self._records if r.is_flagged]

    # ------------------------------------------------------------------
    # Edits (copy-on-write per record)
    # ------------------------------------------------------------------

    def _replace(self, record_id: str, **changes) -> CanonicalRecord:
        position = self._index[record_id]
        updated = replace(self._records[position], **changes)
        records = list(self._records)
        records[position] = updated
        self._records = records
        # The previous result no longer describes this record.
        self._validation.pop(record_id, None)
        return updated

    def set_status(self, record_id: str, status: str) -> CanonicalRecord:
        """
        Change the verification status of one record.

        Raises
        ------
        ValueError
            If ``status`` is not one of the known codes.
        KeyError
            If no record has this id.
        """
        code = VerificationStatus(str(status)).value
        return self._replace(record_id, verification_status=code)

    def set_notes(self, record_id: str, notes: str) -> CanonicalRecord:
        return self._replace(record_id, notes=str(notes))

    def edit_field(self, record_id: str, field_name: str, value) -> CanonicalRecord:
        """
        Edit any text field of a record.

        ``notes`` and ``verification_status`` are accepted at any time;
        other fields require ``edit_mode``.
        """
        if field_name == "verification_status":
            return self.set_status(record_id, value)
        if field_name == "notes":
            return self.set_notes(record_id, value)
        if field_name not in TEXT_FIELDS:
            raise ValueError(f"Field {field_name!r} cannot be edited.")
        if not self.edit_mode:
            raise EditNotAllowedError(
                f"Field {field_name!r} can only be edited in edit mode."
            )
        return self._replace(record_id, **{field_name: str(value)})

    # ------------------------------------------------------------------
    # Validation results
    # ------------------------------------------------------------------

    @property
    def validation_results(self) -> dict[str, ValidationResult]:
        return dict(self._validation)

    def set_validation_results(self, results: Iterable[ValidationResult]) -> None:
        """Replace all validation results (no accumulation across runs)."""
        self._validation = {r.record_id: r for r in results}

    # ------------------------------------------------------------------
    # Operation guard
    # ------------------------------------------------------------------

    @property
    def is_busy(self) -> bool:
        return self._running is not None

    @contextmanager
    def operation(self, kind: str) -> Iterator[None]:
        if self._running is not None:
            raise OperationInProgressError(
                f"Cannot start {kind!r} while {self._running!r} is running."
            )
        self._running = kind
        try:
            yield
        finally:
            self._running = None
