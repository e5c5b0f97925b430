import pandas as pd
import pytest

from vat_review.config import ReportsConfig
from vat_review.db import DatabaseConfig, SqliteStore
from vat_review.errors import PersistenceError
from vat_review.gateway import BatchPersistenceGateway
from vat_review.records_service import RecordsService
from vat_review.session import WorkingSetContext
from vat_review.user_data import get_user_data, save_user_data

CSV = (
    "Date,TransID,Account,Aname,Description,Amount,VAT\n"
    "2024-01-01,T-1,4000,Sales,Invoice 1,115.00,15.00\n"
    "2024-01-02,T-2,5000,Rent,Office,0,0\n"
    "2024-01-03,T-3,6000,Fuel,Trip,230.00,30.00\n"
)


class FailingStore(SqliteStore):
    """Store whose second ``data`` insert fails."""

    def __init__(self, cfg):
        super().__init__(cfg)
        self.data_inserts = 0

    def insert(self, table, rows):
        if table == "data":
            self.data_inserts += 1
            if self.data_inserts == 2:
                raise PersistenceError("network error")
        return super().insert(table, rows)


def make_service(tmp_path, *, store_cls=SqliteStore, owner_id="owner", **gateway_kwargs):
    store = store_cls(DatabaseConfig(engine="sqlite", path=tmp_path / "service.sqlite"))
    return RecordsService(
        WorkingSetContext(),
        BatchPersistenceGateway(store, **gateway_kwargs),
        owner_id=owner_id,
        display_name="Jane Doe",
        reports=ReportsConfig(output_dir=tmp_path / "output"),
    )


def _import(service, text=CSV, name="january.csv"):
    notice = service.import_file(text.encode(), name)
    assert notice.ok, notice.message
    return notice


def test_import_and_validate_notices(tmp_path):
    service = make_service(tmp_path)

    imported = _import(service)
    validated = service.validate()

    assert imported.message == "Successfully imported 3 records from january.csv"
    assert imported.data.record_count == 3
    assert validated.ok
    assert validated.message == "Validation complete: 1 of 3 records have errors"
    assert validated.data.failed == 1


def test_import_failure_is_a_notice_and_keeps_working_set(tmp_path):
    service = make_service(tmp_path)
    _import(service)

    notice = service.import_file(b"", "broken.csv")

    assert not notice.ok
    assert notice.message.startswith("Import failed:")
    assert len(service.context) == 3


def test_validate_without_data(tmp_path):
    notice = make_service(tmp_path).validate()

    assert not notice.ok
    assert notice.message == "No data to validate."


def test_save_then_history_preview_and_reconcile(tmp_path):
    service = make_service(tmp_path)
    _import(service)

    saved = service.save_working_set()
    manifest = saved.data

    assert saved.ok
    assert saved.message == "Successfully saved 3 records"
    history = service.list_history().data
    assert [m.id for m in history] == [manifest.id]
    assert history[0].filename == "january.csv"
    assert history[0].imported_by == "Jane Doe"

    preview = service.preview_import(manifest.id)
    assert [r.transaction_id for r in preview.data] == ["T-1", "T-2", "T-3"]

    check = service.reconcile_import(manifest.id)
    assert check.ok
    assert check.message == "Import is complete: 3 records stored"


def test_partial_save_is_reported_and_detectable(tmp_path):
    service = make_service(tmp_path, store_cls=FailingStore, save_batch_size=2)
    _import(service)

    saved = service.save_working_set()

    assert not saved.ok
    assert saved.message.startswith("Save failed:")
    manifest = saved.data
    assert manifest.record_count == 3

    check = service.reconcile_import(manifest.id)
    assert not check.ok
    assert check.data.actual == 2
    assert "1 missing" in check.message


def test_save_without_owner_or_data(tmp_path):
    anonymous = make_service(tmp_path, owner_id=None)
    _import(anonymous)

    assert anonymous.save_working_set().message == "Save failed: User not authenticated"
    assert make_service(tmp_path).save_working_set().message == "No data to save."
    assert anonymous.list_history().data == []


def test_edit_status_and_save_current_data(tmp_path):
    service = make_service(tmp_path)
    _import(service)
    service.save_working_set()

    loaded = service.load_current_data()
    record_id = loaded.data[0].id
    assert service.set_status(record_id, "1").message == "Status set to Verified"
    assert service.set_notes(record_id, "checked").ok
    assert service.save_current_data().ok

    reloaded = make_service(tmp_path).load_current_data().data
    stored = next(r for r in reloaded if r.id == record_id)
    assert stored.status_label == "Verified"
    assert stored.notes == "checked"


def test_edit_failures_are_notices(tmp_path):
    service = make_service(tmp_path)
    _import(service)
    record_id = service.context.get()[0].id

    assert service.set_status("missing", "1").message == "Status update failed: Record not found: missing"
    assert not service.set_status(record_id, "5").ok
    assert not service.edit_field(record_id, "description", "x").ok

    service.context.toggle_edit_mode()
    assert service.edit_field(record_id, "description", "x").ok


def test_export_and_delete_import(tmp_path):
    service = make_service(tmp_path)
    _import(service)
    manifest = service.save_working_set().data

    exported = service.export_import(manifest.id)

    assert exported.ok
    assert exported.data.name.startswith("january-")
    df = pd.read_excel(exported.data, sheet_name="Historical Data", engine="openpyxl")
    assert len(df) == 3

    assert service.delete_import(manifest.id).ok
    assert service.list_history().data == []
    assert not service.delete_import(manifest.id).ok
    assert not service.export_import(manifest.id).ok


def test_clear_data(tmp_path):
    service = make_service(tmp_path)
    _import(service)
    service.save_working_set()

    notice = service.clear_data()

    assert notice.ok
    assert notice.data == 3
    assert len(service.context) == 0
    assert service.load_current_data().data == []


@pytest.mark.parametrize("fmt", ["pdf", "xlsx"])
def test_export_report_of_working_set(tmp_path, fmt):
    service = make_service(tmp_path)
    _import(service)

    notice = service.export_report("verified", fmt=fmt)

    assert notice.ok, notice.message
    assert notice.data.exists()
    assert notice.data.name.startswith("verification-report-")
    assert notice.data.suffix == f".{fmt}"


def test_export_report_of_one_import(tmp_path):
    service = make_service(tmp_path)
    _import(service)
    manifest = service.save_working_set().data
    service.context.clear()

    notice = service.export_report("full", import_id=manifest.id)

    assert notice.ok
    assert notice.data.name.startswith("full-report-january-csv-")


def test_export_report_failures(tmp_path):
    service = make_service(tmp_path)

    assert service.export_report("full").message == "Report failed: No data available to export"
    assert not service.export_report("full", fmt="docx").ok
    _import(service)
    assert not service.export_report("monthly").ok


def test_saved_working_set_mirrors_the_store(tmp_path):
    service = make_service(tmp_path)
    _import(service)
    service.validate()

    manifest = service.save_working_set().data

    working = service.context.get()
    stored = service.preview_import(manifest.id).data
    assert [r.id for r in working] == [r.id for r in stored]
    assert {r.import_id for r in working} == {manifest.id}
    assert service.context.filename == "january.csv"
    # Validation results follow the re-keyed records.
    assert set(service.context.validation_results) == {r.id for r in working}


def test_editing_after_save_keeps_the_import_complete(tmp_path):
    service = make_service(tmp_path)
    _import(service)
    manifest = service.save_working_set().data
    record_id = service.context.get()[0].id

    assert service.set_status(record_id, "1").ok
    assert service.save_current_data().ok

    check = service.reconcile_import(manifest.id)
    assert check.ok, check.message
    preview = service.preview_import(manifest.id).data
    assert [r.status_label for r in preview][0] == "Verified"


def test_save_and_load_validation_run(tmp_path):
    service = make_service(tmp_path)
    _import(service)
    service.validate()

    saved = service.save_validation()

    assert saved.ok, saved.message
    assert saved.message == "Saved validation of 3 records (1 with errors)"
    assert [r.id for r in service.list_validation_runs().data] == [saved.data.id]

    other = make_service(tmp_path)
    loaded = other.load_validation()

    assert loaded.ok
    assert loaded.message == "Loaded validation of 3 records from january.csv"
    records = other.context.get()
    assert [r.transaction_id for r in records] == ["T-1", "T-2", "T-3"]
    results = other.context.validation_results
    assert results[records[1].id].error_fields == ("Amount must be positive",)
    assert not results[records[0].id].has_error


def test_validation_run_requires_fresh_results(tmp_path):
    service = make_service(tmp_path)
    _import(service)

    assert service.save_validation().message.startswith("Validate the data before saving")

    service.validate()
    service.set_notes(service.context.get()[0].id, "edited")
    assert not service.save_validation().ok

    assert not service.load_validation().ok
    assert not service.load_validation("missing").ok


def test_report_settings_are_stored_per_user(tmp_path):
    service = make_service(tmp_path)

    assert service.get_settings().data["currency_symbol"] == "R"
    assert service.update_setting("currency_symbol", "$").ok
    assert service.update_setting("top_n", "2").ok
    assert not service.update_setting("theme", "dark").ok

    assert service.effective_reports().currency_symbol == "$"
    assert service.effective_reports().top_n == 2
    assert make_service(tmp_path, owner_id="someone-else").effective_reports().top_n == 100
    assert not make_service(tmp_path, owner_id=None).update_setting("top_n", 5).ok


def test_migrate_legacy_data(tmp_path):
    service = make_service(tmp_path)
    save_user_data(
        service.gateway.store,
        "owner",
        {
            "theme": "dark",
            "currentData": [
                {"date": "2024-01-01", "trans_id": "T-1", "amount": 115, "vat": 15},
                {"date": "2024-01-02", "trans_id": "T-2", "amount": 230, "vat": 30, "verified": "1"},
            ],
        },
    )

    migrated = service.migrate_legacy_data()

    assert migrated.ok, migrated.message
    assert migrated.message == "Migrated 2 legacy records"
    assert migrated.data.filename == "Legacy data"
    preview = service.preview_import(migrated.data.id).data
    assert [(r.transaction_id, r.amount, r.status_label) for r in preview] == [
        ("T-1", 115.0, "Client to Verify"),
        ("T-2", 230.0, "Verified"),
    ]
    assert get_user_data(service.gateway.store, "owner") is None
    assert service.migrate_legacy_data().message == "No legacy data to migrate."
