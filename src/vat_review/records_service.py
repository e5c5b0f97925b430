# VAT Review - Transaction import, verification & reporting for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.


"""
High-level services for importing, reviewing and reporting transactions.

This module sits between:
- the pipeline, validation, gateway and report modules, and
- user-facing layers such as the CLI.

Every public operation returns a ``Notice`` instead of raising: failures of
the import pipeline, the store or the export writers are logged and turned
into a user-visible message. Nothing is retried.

Responsibilities
----------------
1) Working set
   - Import a CSV/XLSX file into the working set.
   - Validate the working set.
   - Change status, notes or (in edit mode) any text field of a record.

2) Persistence
   - Save the working set as a new import (manifest + batched rows).
   - Load the owner's current data into the working set.
   - Save the (edited) current data back, replacing the owner's rows.
   - Clear the owner's data.

3) Validation runs
   - Save the validated working set with its results, list saved runs and
     load one back into the working set.

4) Settings & legacy data
   - Read and store per-user report preferences.
   - Move the legacy per-user data document into the store as an import.

5) History
   - List imports, preview one, export it to Excel, delete it, and
     reconcile its manifest count with the rows actually stored.

6) Reports
   - Build a report option (full, top by amount, top by VAT, verified) and
     write it as PDF or Excel.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import date
from pathlib import Path
from typing import Any, Optional

from .config import AppConfig, ImportConfig, ReportsConfig
from .db import SqliteStore
from .errors import PersistenceError, VatReviewError
from .gateway import BatchPersistenceGateway, SaveMeta
from .io import SheetSource
from .logging_setup import get_logger
from .normalizer import normalize_row
from .pipeline import import_file_sync
from .records import Scope
from .reports import build_report, export_excel, export_pdf, report_filename
from .session import WorkingSetContext
from .user_data import (
    delete_user_data,
    get_user_data,
    get_user_settings,
    legacy_rows,
    save_user_settings,
)
from .validation import run_validation_sync, summarize_results

logger = get_logger(__name__)

# Errors turned into notices at this boundary.
_HANDLED_ERRORS = (VatReviewError, ValueError, KeyError, sqlite3.Error, OSError)

REPORT_FORMATS = ("pdf", "xlsx")

LEGACY_IMPORT_FILENAME = "Legacy data"


@dataclass(frozen=True)
class Notice:
    """
    Outcome of a user-facing operation.

    Attributes
    ----------
    ok:
        True when the operation succeeded.
    message:
        Human-readable message for the user.
    data:
        Operation payload (import result, manifest, records, file path...).
        None on failure, except for partial saves where it holds the
        manifest that was created.
    """

    ok: bool
    message: str
    data: Any = None


def _describe(exc: BaseException) -> str:
    # KeyError repr-quotes its argument.
    if isinstance(exc, KeyError) and exc.args:
        return f"Record not found: {exc.args[0]}"
    return str(exc)


def _failure(action: str, exc: BaseException, data: Any = None) -> Notice:
    logger.error("%s failed: %s", action, exc)
    return Notice(ok=False, message=f"{action} failed: {_describe(exc)}", data=data)


class RecordsService:
    """
    Operation boundary over one working set and one persistence gateway.

    The owner id and display name identify the current user. Reads without
    an owner return empty results; writes without an owner fail with a
    notice.
    """

    def __init__(
        self,
        context: WorkingSetContext,
        gateway: BatchPersistenceGateway,
        *,
        owner_id: Optional[str],
        display_name: str = "",
        import_options: Optional[ImportConfig] = None,
        reports: Optional[ReportsConfig] = None,
    ) -> None:
        self.context = context
        self.gateway = gateway
        self.owner_id = owner_id
        self.display_name = display_name or (owner_id or "")
        self.import_options = import_options or ImportConfig()
        self.reports = reports or ReportsConfig()

    # ------------------------------------------------------------------
    # Working set
    # ------------------------------------------------------------------

    def import_file(
        self,
        source: SheetSource,
        filename: Optional[str] = None,
        *,
        on_progress: Optional[Callable[[int], None]] = None,
    ) -> Notice:
        try:
            result = import_file_sync(
                self.context,
                source,
                filename,
                on_progress=on_progress,
                progress_every=self.import_options.progress_every,
                yield_every=self.import_options.yield_every,
            )
        except _HANDLED_ERRORS as exc:
            return _failure("Import", exc)
        return Notice(
            ok=True,
            message=f"Successfully imported {result.record_count} records from {result.filename}",
            data=result,
        )

    def validate(self) -> Notice:
        if not len(self.context):
            return Notice(ok=False, message="No data to validate.")
        try:
            results = run_validation_sync(
                self.context, yield_every=self.import_options.yield_every
            )
        except _HANDLED_ERRORS as exc:
            return _failure("Validation", exc)

        summary = summarize_results(results)
        if summary.has_errors:
            message = (
                f"Validation complete: {summary.failed} of {summary.checked} "
                "records have errors"
            )
        else:
            message = f"All {summary.checked} records passed validation"
        return Notice(ok=True, message=message, data=summary)

    def set_status(self, record_id: str, status: str) -> Notice:
        try:
            record = self.context.set_status(record_id, status)
        except _HANDLED_ERRORS as exc:
            return _failure("Status update", exc)
        return Notice(ok=True, message=f"Status set to {record.status_label}", data=record)

    def set_notes(self, record_id: str, notes: str) -> Notice:
        try:
            record = self.context.set_notes(record_id, notes)
        except _HANDLED_ERRORS as exc:
            return _failure("Notes update", exc)
        return Notice(ok=True, message="Notes updated", data=record)

    def edit_field(self, record_id: str, field_name: str, value: Any) -> Notice:
        try:
            record = self.context.edit_field(record_id, field_name, value)
        except _HANDLED_ERRORS as exc:
            return _failure("Edit", exc)
        return Notice(ok=True, message=f"{field_name} updated", data=record)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save_working_set(self) -> Notice:
        """
        Save the working set as a new import.

        On success the working set is replaced by the stored copies, so
        record ids and import ids match the store for later edits.
        """
        records = self.context.get()
        if not records:
            return Notice(ok=False, message="No data to save.")

        meta = SaveMeta(
            owner_id=self.owner_id,
            imported_by=self.display_name,
            filename=self.context.filename,
        )
        try:
            with self.context.operation("save"):
                manifest = self.gateway.save(records, meta)
                # The working set now mirrors the stored import.
                stored = self.gateway.load(
                    Scope(owner_id=self.owner_id, import_id=manifest.id)
                )
                self.context.adopt_saved(stored)
        except PersistenceError as exc:
            return _failure("Save", exc, data=exc.manifest)
        except _HANDLED_ERRORS as exc:
            return _failure("Save", exc)
        return Notice(
            ok=True,
            message=f"Successfully saved {manifest.record_count} records",
            data=manifest,
        )

    def load_current_data(self) -> Notice:
        """Replace the working set with the owner's stored rows, newest first."""
        try:
            with self.context.operation("load"):
                records = self.gateway.load(Scope(owner_id=self.owner_id), descending=True)
                self.context.set(records, filename="")
        except _HANDLED_ERRORS as exc:
            return _failure("Load", exc)
        return Notice(ok=True, message=f"Loaded {len(records)} records", data=records)

    def save_current_data(self) -> Notice:
        """Write the working set back over the owner's stored rows."""
        records = self.context.get()
        try:
            with self.context.operation("save"):
                count = self.gateway.replace_all(records, self.owner_id)
        except _HANDLED_ERRORS as exc:
            return _failure("Save", exc)
        return Notice(ok=True, message=f"Successfully saved {count} records", data=count)

    def clear_data(self, import_id: Optional[str] = None) -> Notice:
        """Delete the owner's rows (or one import's rows). Irreversible."""
        try:
            with self.context.operation("clear"):
                deleted = self.gateway.clear(
                    Scope(owner_id=self.owner_id, import_id=import_id)
                )
                if import_id is None:
                    self.context.clear()
        except _HANDLED_ERRORS as exc:
            return _failure("Clear", exc)
        return Notice(ok=True, message=f"Deleted {deleted} records", data=deleted)

    def migrate_legacy_data(self) -> Notice:
        """
        Move the rows of the legacy per-user data document into the store.

        The rows are saved as one import named ``LEGACY_IMPORT_FILENAME``.
        The legacy document is deleted only after every row was stored.
        """
        try:
            if not self.owner_id:
                raise PersistenceError("User not authenticated")
            rows = legacy_rows(get_user_data(self.gateway.store, self.owner_id))
            if not rows:
                return Notice(ok=False, message="No legacy data to migrate.")
            records = [normalize_row(row) for row in rows]
            meta = SaveMeta(
                owner_id=self.owner_id,
                imported_by=self.display_name,
                filename=LEGACY_IMPORT_FILENAME,
            )
            with self.context.operation("save"):
                manifest = self.gateway.save(records, meta)
            delete_user_data(self.gateway.store, self.owner_id)
        except PersistenceError as exc:
            return _failure("Migration", exc, data=exc.manifest)
        except _HANDLED_ERRORS as exc:
            return _failure("Migration", exc)
        return Notice(
            ok=True,
            message=f"Migrated {manifest.record_count} legacy records",
            data=manifest,
        )

    # ------------------------------------------------------------------
    # Validation runs
    # ------------------------------------------------------------------

    def save_validation(self) -> Notice:
        """Store the working set with its current validation results."""
        records = self.context.get()
        if not records:
            return Notice(ok=False, message="No data to save.")
        results = self.context.validation_results
        unchecked = sum(1 for r in records if r.id not in results)
        if unchecked:
            return Notice(
                ok=False,
                message=(
                    f"Validate the data before saving: {unchecked} record(s) "
                    "have no validation result."
                ),
            )
        try:
            with self.context.operation("save"):
                run = self.gateway.save_validation_run(
                    records,
                    [results[r.id] for r in records],
                    self.owner_id,
                    self.context.filename,
                )
        except _HANDLED_ERRORS as exc:
            return _failure("Saving validation", exc)
        return Notice(
            ok=True,
            message=(
                f"Saved validation of {run.record_count} records "
                f"({run.error_count} with errors)"
            ),
            data=run,
        )

    def list_validation_runs(self) -> Notice:
        try:
            runs = self.gateway.list_validation_runs(self.owner_id)
        except _HANDLED_ERRORS as exc:
            return _failure("Loading validation runs", exc)
        return Notice(ok=True, message=f"{len(runs)} validation runs", data=runs)

    def load_validation(self, run_id: Optional[str] = None) -> Notice:
        """
        Load a saved validation run into the working set.

        Without ``run_id`` the most recent run is loaded. The stored results
        become the context's validation results.
        """
        try:
            loaded = self.gateway.load_validation_run(run_id, self.owner_id)
            if loaded is None:
                if run_id is None:
                    return Notice(ok=False, message="No saved validation run.")
                return Notice(ok=False, message=f"Validation run not found: {run_id}")
            run, pairs = loaded
            with self.context.operation("load"):
                self.context.set([record for record, _ in pairs], filename=run.filename)
                self.context.set_validation_results([result for _, result in pairs])
        except _HANDLED_ERRORS as exc:
            return _failure("Loading validation", exc)
        return Notice(
            ok=True,
            message=f"Loaded validation of {run.record_count} records from {run.filename}",
            data=run,
        )

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def effective_reports(self) -> ReportsConfig:
        """Report configuration with the user's stored preferences applied."""
        if not self.owner_id:
            return self.reports
        try:
            stored = get_user_settings(self.gateway.store, self.owner_id)
        except _HANDLED_ERRORS as exc:
            logger.warning("Ignoring stored settings of %s: %s", self.owner_id, exc)
            return self.reports
        return replace(self.reports, **stored)

    def get_settings(self) -> Notice:
        reports = self.effective_reports()
        settings = {
            "currency_symbol": reports.currency_symbol,
            "top_n": reports.top_n,
            "page_size": reports.page_size,
        }
        return Notice(ok=True, message="Report settings", data=settings)

    def update_setting(self, key: str, value: Any) -> Notice:
        """Store one report preference for the current user."""
        try:
            if not self.owner_id:
                raise PersistenceError("User not authenticated")
            settings = get_user_settings(self.gateway.store, self.owner_id)
            settings[key] = value
            stored = save_user_settings(self.gateway.store, self.owner_id, settings)
        except _HANDLED_ERRORS as exc:
            return _failure("Settings update", exc)
        return Notice(ok=True, message=f"{key} set to {stored[key]}", data=stored)

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def list_history(self) -> Notice:
        try:
            manifests = self.gateway.list_manifests(self.owner_id)
        except _HANDLED_ERRORS as exc:
            return _failure("Loading history", exc)
        return Notice(ok=True, message=f"{len(manifests)} imports", data=manifests)

    def preview_import(self, manifest_id: str) -> Notice:
        try:
            manifest = self.gateway.get_manifest(manifest_id, self.owner_id)
            if manifest is None:
                return Notice(ok=False, message=f"Import not found: {manifest_id}")
            records = self.gateway.load(
                Scope(owner_id=self.owner_id, import_id=manifest_id)
            )
        except _HANDLED_ERRORS as exc:
            return _failure("Preview", exc)
        return Notice(
            ok=True,
            message=f"{len(records)} records in {manifest.filename}",
            data=records,
        )

    def export_import(self, manifest_id: str, output_dir: Optional[Path] = None) -> Notice:
        """Export one import to ``<filename>-<YYYY-MM-DD>.xlsx``."""
        try:
            manifest = self.gateway.get_manifest(manifest_id, self.owner_id)
            if manifest is None:
                return Notice(ok=False, message=f"Import not found: {manifest_id}")
            records = self.gateway.load(
                Scope(owner_id=self.owner_id, import_id=manifest_id)
            )
            directory = Path(output_dir or self.reports.output_dir)
            directory.mkdir(parents=True, exist_ok=True)
            stem = Path(manifest.filename).stem or "import"
            target = directory / f"{stem}-{date.today().isoformat()}.xlsx"
            export_excel(records, manifest.filename, target, sheet_name="Historical Data")
        except _HANDLED_ERRORS as exc:
            return _failure("Export", exc)
        logger.info("Exported import %s to %s", manifest_id, target)
        return Notice(ok=True, message=f"Exported {len(records)} records to {target}", data=target)

    def delete_import(self, manifest_id: str) -> Notice:
        try:
            deleted = self.gateway.delete_manifest(manifest_id, self.owner_id)
        except _HANDLED_ERRORS as exc:
            return _failure("Delete", exc)
        if not deleted:
            return Notice(ok=False, message=f"Import not found: {manifest_id}")
        return Notice(ok=True, message="Import deleted successfully", data=manifest_id)

    def reconcile_import(self, manifest_id: str) -> Notice:
        try:
            result = self.gateway.reconcile(manifest_id, self.owner_id)
        except _HANDLED_ERRORS as exc:
            return _failure("Reconcile", exc)
        if result is None:
            return Notice(ok=False, message=f"Import not found: {manifest_id}")
        if result.is_consistent:
            message = f"Import is complete: {result.actual} records stored"
        else:
            message = (
                f"Import is incomplete: {result.actual} of {result.expected} "
                f"records stored ({result.missing} missing)"
            )
            logger.warning("Import %s: %s", manifest_id, message)
        return Notice(ok=result.is_consistent, message=message, data=result)

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def export_report(
        self,
        option_id: str,
        *,
        fmt: str = "pdf",
        import_id: Optional[str] = None,
        output_dir: Optional[Path] = None,
        on_progress: Optional[Callable[[int], None]] = None,
    ) -> Notice:
        """
        Write a report of the working set, or of one stored import.

        The file is named ``<slug(title)>-<YYYY-MM-DD>.<fmt>``.
        """
        if fmt not in REPORT_FORMATS:
            return Notice(ok=False, message=f"Unsupported report format: {fmt}")
        try:
            reports = self.effective_reports()
            source_filename = None
            if import_id is not None:
                manifest = self.gateway.get_manifest(import_id, self.owner_id)
                if manifest is None:
                    return Notice(ok=False, message=f"Import not found: {import_id}")
                source_filename = manifest.filename
                records = self.gateway.load(
                    Scope(owner_id=self.owner_id, import_id=import_id)
                )
            else:
                records = self.context.get()

            title, selected = build_report(
                records,
                option_id,
                top_n=reports.top_n,
                source_filename=source_filename,
            )
            directory = Path(output_dir or reports.output_dir)
            directory.mkdir(parents=True, exist_ok=True)
            target = directory / report_filename(title, fmt)
            if fmt == "pdf":
                export_pdf(
                    selected,
                    title,
                    target,
                    generated_by=self.display_name or None,
                    currency_symbol=reports.currency_symbol,
                    on_progress=on_progress,
                )
            else:
                export_excel(selected, title, target)
        except _HANDLED_ERRORS as exc:
            return _failure("Report", exc)
        logger.info("Wrote %s report with %d records to %s", option_id, len(selected), target)
        return Notice(ok=True, message=f"Report saved to {target}", data=target)


def build_service(
    config: AppConfig,
    *,
    owner_id: Optional[str] = None,
    display_name: Optional[str] = None,
    context: Optional[WorkingSetContext] = None,
) -> RecordsService:
    """
    Wire a ``RecordsService`` from the application configuration.

    Explicit ``owner_id`` / ``display_name`` override the [user] section.
    """
    store = SqliteStore(config.database)
    gateway = BatchPersistenceGateway(
        store,
        save_batch_size=config.persistence.save_batch_size,
        replace_batch_size=config.persistence.replace_batch_size,
    )
    return RecordsService(
        context or WorkingSetContext(),
        gateway,
        owner_id=owner_id or config.user.owner_id,
        display_name=display_name or config.user.display_name,
        import_options=config.import_options,
        reports=config.reports,
    )
