# VAT Review - Transaction import, verification & reporting for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Batch persistence gateway for VAT Review.

The gateway commits working sets to the record store and reads them back as
``CanonicalRecord`` objects. It talks to any object implementing the store
contract of ``db.SqliteStore`` (``insert``, ``select``, ``delete``,
``count``).

Saving
------
``save`` first creates one ``ImportManifest`` (``data_imports`` row), then
inserts every record tagged with the manifest id in fixed-size batches
(100 rows by default), sequentially and in working-set order.

If a batch fails, the save fails as a whole but nothing is rolled back: the
manifest and the batches already inserted stay in the store, and the
manifest's ``record_count`` still reports the full working-set size. The
raised ``PersistenceError`` carries the manifest and the number of rows
committed, and ``reconcile`` detects the mismatch afterwards. Retrying the
save creates a second manifest.

Each save stores the rows under fresh record ids, so saving the same working
set twice never collides in the store.

``replace_all`` is the "save current data" path: it deletes every row of
the owner and re-inserts the working set in batches of 1000, keeping record
ids and import ids.

Validation runs
---------------
``save_validation_run`` stores a copy of the validated records with their
results (``data_validation`` + ``data_validation_records``), so a run can be
reviewed later even after the data was edited. Runs are listed and loaded
per owner.

Owners
------
Reads without an owner return empty results ("no user, no data"). Writes
without an owner raise ``PersistenceError``.
"""

from __future__ import annotations

import uuid
from collections.abc import Sequence
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Optional, Protocol

from .db import now_utc_iso
from .errors import PersistenceError
from .logging_setup import get_logger
from .normalizer import (
    from_storage_row,
    from_validation_row,
    to_storage_row,
    to_validation_row,
)
from .records import (
    CanonicalRecord,
    ImportManifest,
    Scope,
    ValidationResult,
    ValidationRun,
)

logger = get_logger(__name__)

DATA_TABLE = "data"
IMPORTS_TABLE = "data_imports"
VALIDATION_TABLE = "data_validation"
VALIDATION_RECORDS_TABLE = "data_validation_records"

DEFAULT_SAVE_BATCH_SIZE = 100
DEFAULT_REPLACE_BATCH_SIZE = 1000


class RecordStore(Protocol):
    def insert(self, table: str, rows: Sequence[dict[str, Any]]) -> int: ...

    def select(
        self,
        table: str,
        filters: Optional[dict[str, Any]] = None,
        *,
        order_by: Sequence[str] = (),
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]: ...

    def delete(self, table: str, filters: dict[str, Any]) -> int: ...

    def count(self, table: str, filters: Optional[dict[str, Any]] = None) -> int: ...


@dataclass(frozen=True)
class SaveMeta:
    """Who saves what: owner id, importer display name and source file name."""

    owner_id: Optional[str]
    imported_by: str
    filename: str = ""


@dataclass(frozen=True)
class Reconciliation:
    """Comparison between a manifest's record_count and the rows stored."""

    manifest_id: str
    expected: int
    actual: int

    @property
    def is_consistent(self) -> bool:
        return self.expected == self.actual

    @property
    def missing(self) -> int:
        return self.expected - self.actual


def _batches(items: Sequence, size: int):
    for start in range(0, len(items), size):
        yield items[start : start + size]


def _run_from_row(row: dict[str, Any]) -> ValidationRun:
    return ValidationRun(
        id=row["id"],
        filename=row["filename"],
        created_at=datetime.fromisoformat(row["created_at"]),
        record_count=int(row["record_count"]),
        error_count=int(row["error_count"]),
        owner_id=row["created_by"],
    )


def _manifest_from_row(row: dict[str, Any]) -> ImportManifest:
    return ImportManifest(
        id=row["id"],
        filename=row["filename"],
        imported_at=datetime.fromisoformat(row["imported_at"]),
        record_count=int(row["record_count"]),
        imported_by=row["imported_by"],
        owner_id=row["user_id"],
    )


class BatchPersistenceGateway:
    """Commit working sets to a record store and read them back."""

    def __init__(
        self,
        store: RecordStore,
        *,
        save_batch_size: int = DEFAULT_SAVE_BATCH_SIZE,
        replace_batch_size: int = DEFAULT_REPLACE_BATCH_SIZE,
    ) -> None:
        if save_batch_size <= 0 or replace_batch_size <= 0:
            raise ValueError("Batch sizes must be positive.")
        self.store = store
        self.save_batch_size = save_batch_size
        self.replace_batch_size = replace_batch_size

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def save(self, records: Sequence[CanonicalRecord], meta: SaveMeta) -> ImportManifest:
        """
        Persist a working set under a new import manifest.

        Returns
        -------
        ImportManifest
            The manifest created for this save.

        Raises
        ------
        PersistenceError
            If there is no owner, if the manifest cannot be created, or if a
            batch insert fails (``exc.manifest`` / ``exc.committed`` describe
            what was already stored).
        ValueError
            If ``records`` is empty.
        """
        if not meta.owner_id:
            raise PersistenceError("User not authenticated")
        if not records:
            raise ValueError("No data to save.")

        snapshot = list(records)
        imported_at = now_utc_iso()
        manifest = ImportManifest(
            id=str(uuid.uuid4()),
            filename=meta.filename or "Untitled Import",
            imported_at=datetime.fromisoformat(imported_at),
            record_count=len(snapshot),
            imported_by=meta.imported_by,
            owner_id=meta.owner_id,
        )

        self.store.insert(
            IMPORTS_TABLE,
            [
                {
                    "id": manifest.id,
                    "user_id": meta.owner_id,
                    "filename": manifest.filename,
                    "record_count": manifest.record_count,
                    "imported_by": manifest.imported_by,
                    "imported_at": imported_at,
                }
            ],
        )

        rows = [
            to_storage_row(
                replace(record, id=str(uuid.uuid4()), extras={}),
                owner_id=meta.owner_id,
                import_id=manifest.id,
                created_at=imported_at,
            )
            for record in snapshot
        ]

        committed = 0
        for number, batch in enumerate(_batches(rows, self.save_batch_size), start=1):
            try:
                self.store.insert(DATA_TABLE, batch)
            except PersistenceError as exc:
                raise PersistenceError(
                    f"Batch {number} failed after {committed} of "
                    f"{manifest.record_count} record(s) were saved: {exc}",
                    manifest=manifest,
                    committed=committed,
                ) from exc
            committed += len(batch)
            logger.debug(
                "Saved batch %d (%d row(s)) for import %s", number, len(batch), manifest.id
            )

        logger.info("Saved %d record(s) under import %s", committed, manifest.id)
        return manifest

    def replace_all(self, records: Sequence[CanonicalRecord], owner_id: Optional[str]) -> int:
        """
        Replace every stored row of the owner with the given working set.

        Returns the number of rows inserted. Like ``save``, a failing batch
        is not rolled back.
        """
        if not owner_id:
            raise PersistenceError("User not authenticated")

        self.store.delete(DATA_TABLE, {"created_by": owner_id})

        created_at = now_utc_iso()
        rows = [
            to_storage_row(
                record,
                owner_id=owner_id,
                import_id=record.import_id,
                created_at=created_at,
            )
            for record in records
        ]

        committed = 0
        for batch in _batches(rows, self.replace_batch_size):
            try:
                self.store.insert(DATA_TABLE, batch)
            except PersistenceError as exc:
                raise PersistenceError(
                    f"Replacing data failed after {committed} of {len(rows)} "
                    f"record(s) were saved: {exc}",
                    committed=committed,
                ) from exc
            committed += len(batch)

        return committed

    def clear(self, scope: Scope) -> int:
        """Delete every row of the scope. Irreversible."""
        if not scope.owner_id:
            raise PersistenceError("User not authenticated")
        filters: dict[str, Any] = {"created_by": scope.owner_id}
        if scope.import_id:
            filters["import_id"] = scope.import_id
        deleted = self.store.delete(DATA_TABLE, filters)
        logger.info("Cleared %d record(s) for owner %s", deleted, scope.owner_id)
        return deleted

    def delete_manifest(self, manifest_id: str, owner_id: Optional[str]) -> bool:
        """
        Delete one import manifest of the owner.

        Rows attached to the manifest are removed by the store's cascade.
        Returns False when no such manifest exists.
        """
        if not owner_id:
            raise PersistenceError("User not authenticated")
        deleted = self.store.delete(IMPORTS_TABLE, {"id": manifest_id, "user_id": owner_id})
        return deleted > 0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def load(self, scope: Scope, *, descending: bool = False) -> list[CanonicalRecord]:
        """
        Load the records of a scope, ordered by creation time.

        Previews of one import use ascending order; the "current data" view
        of an owner uses descending order.
        """
        if not scope.owner_id:
            return []
        filters: dict[str, Any] = {"created_by": scope.owner_id}
        if scope.import_id:
            filters["import_id"] = scope.import_id
        rows = self.store.select(
            DATA_TABLE, filters, order_by=("created_at",), descending=descending
        )
        return [from_storage_row(row) for row in rows]

    def list_manifests(self, owner_id: Optional[str]) -> list[ImportManifest]:
        """Import history of the owner, most recent first."""
        if not owner_id:
            return []
        rows = self.store.select(
            IMPORTS_TABLE, {"user_id": owner_id}, order_by=("imported_at",), descending=True
        )
        return [_manifest_from_row(row) for row in rows]

    def get_manifest(self, manifest_id: str, owner_id: Optional[str]) -> Optional[ImportManifest]:
        if not owner_id:
            return None
        rows = self.store.select(IMPORTS_TABLE, {"id": manifest_id, "user_id": owner_id})
        return _manifest_from_row(rows[0]) if rows else None

    def reconcile(self, manifest_id: str, owner_id: Optional[str]) -> Optional[Reconciliation]:
        """Compare a manifest's record_count with the rows actually stored."""
        manifest = self.get_manifest(manifest_id, owner_id)
        if manifest is None:
            return None
        actual = self.store.count(DATA_TABLE, {"import_id": manifest_id})
        return Reconciliation(
            manifest_id=manifest_id, expected=manifest.record_count, actual=actual
        )

    # ------------------------------------------------------------------
    # Validation runs
    # ------------------------------------------------------------------

    def save_validation_run(
        self,
        records: Sequence[CanonicalRecord],
        results: Sequence[ValidationResult],
        owner_id: Optional[str],
        filename: str = "",
    ) -> ValidationRun:
        """
        Store a copy of the validated records and their results.

        ``results`` must hold one result per record, in the same order. Rows
        are inserted in save-sized batches; as for ``save``, a failing batch
        is not rolled back and the raised ``PersistenceError`` carries the
        number of rows committed.
        """
        if not owner_id:
            raise PersistenceError("User not authenticated")
        if not records:
            raise ValueError("No data to save.")
        if len(results) != len(records):
            raise ValueError(
                f"Expected {len(records)} validation result(s), got {len(results)}."
            )
        for record, result in zip(records, results):
            if result.record_id != record.id:
                raise ValueError(f"No validation result for record {record.id}.")

        created_at = now_utc_iso()
        run = ValidationRun(
            id=str(uuid.uuid4()),
            filename=filename or "Untitled Import",
            created_at=datetime.fromisoformat(created_at),
            record_count=len(records),
            error_count=sum(1 for r in results if r.has_error),
            owner_id=owner_id,
        )
        self.store.insert(
            VALIDATION_TABLE,
            [
                {
                    "id": run.id,
                    "filename": run.filename,
                    "record_count": run.record_count,
                    "error_count": run.error_count,
                    "created_by": owner_id,
                    "created_at": created_at,
                }
            ],
        )

        rows = [
            to_validation_row(
                record, result, validation_id=run.id, position=position, owner_id=owner_id
            )
            for position, (record, result) in enumerate(zip(records, results))
        ]
        committed = 0
        for batch in _batches(rows, self.save_batch_size):
            try:
                self.store.insert(VALIDATION_RECORDS_TABLE, batch)
            except PersistenceError as exc:
                raise PersistenceError(
                    f"Saving validation run failed after {committed} of "
                    f"{run.record_count} record(s) were saved: {exc}",
                    committed=committed,
                ) from exc
            committed += len(batch)

        logger.info(
            "Saved validation run %s (%d record(s), %d with errors)",
            run.id,
            run.record_count,
            run.error_count,
        )
        return run

    def list_validation_runs(self, owner_id: Optional[str]) -> list[ValidationRun]:
        """Saved validation runs of the owner, most recent first."""
        if not owner_id:
            return []
        rows = self.store.select(
            VALIDATION_TABLE, {"created_by": owner_id}, order_by=("created_at",), descending=True
        )
        return [_run_from_row(row) for row in rows]

    def load_validation_run(
        self, run_id: Optional[str], owner_id: Optional[str]
    ) -> Optional[tuple[ValidationRun, list[tuple[CanonicalRecord, ValidationResult]]]]:
        """
        Load one saved validation run (the most recent when ``run_id`` is None).

        Returns ``(run, [(record, result), ...])`` in the validated order, or
        None when the owner has no such run.
        """
        if not owner_id:
            return None
        if run_id is None:
            rows = self.store.select(
                VALIDATION_TABLE,
                {"created_by": owner_id},
                order_by=("created_at",),
                descending=True,
                limit=1,
            )
        else:
            rows = self.store.select(VALIDATION_TABLE, {"id": run_id, "created_by": owner_id})
        if not rows:
            return None

        run = _run_from_row(rows[0])
        record_rows = self.store.select(
            VALIDATION_RECORDS_TABLE, {"validation_id": run.id}, order_by=("position",)
        )
        return run, [from_validation_row(row) for row in record_rows]
