import pytest

from vat_review import __version__
from vat_review.cli import main
from vat_review.config import load_app_config
from vat_review.records_service import build_service

CSV = (
    "Date,TransID,Account,Amount,VAT\n"
    "2024-01-01,T-1,4000,115.00,15.00\n"
    "2024-01-02,T-2,5000,0,0\n"
)


@pytest.fixture()
def workspace(tmp_path):
    config_path = tmp_path / "vat_review_config.toml"
    config_path.write_text(
        """
[database]
path = "db/test.sqlite"

[user]
owner_id = "owner"
display_name = "Jane Doe"

[reports]
output_dir = "out"
""",
        encoding="utf-8",
    )
    sheet = tmp_path / "january.csv"
    sheet.write_text(CSV, encoding="utf-8")
    return tmp_path, str(config_path), str(sheet)


def _run(config_path, *args):
    main(["--config", config_path, *args])


def test_version(capsys):
    main(["--version"])
    assert capsys.readouterr().out.strip() == f"vat_review version {__version__}"


def test_import_validate_and_save(workspace, capsys):
    _, config_path, sheet = workspace

    _run(config_path, "import", sheet, "--validate", "--save")

    out = capsys.readouterr().out
    assert "Successfully imported 2 records from january.csv" in out
    assert "Validation complete: 1 of 2 records have errors" in out
    assert "Successfully saved 2 records" in out

    _run(config_path, "history", "list")
    assert "january.csv" in capsys.readouterr().out


def test_validate_lists_failing_records(workspace, capsys):
    _, config_path, sheet = workspace

    _run(config_path, "validate", sheet)

    assert "T-2: Amount must be positive" in capsys.readouterr().out


def test_failed_import_exits_with_status_1(workspace, capsys):
    tmp_path, config_path, _ = workspace
    empty = tmp_path / "empty.csv"
    empty.write_bytes(b"")

    with pytest.raises(SystemExit) as excinfo:
        _run(config_path, "import", str(empty))

    assert excinfo.value.code == 1
    assert "Import failed" in capsys.readouterr().out


def test_status_edit_persists(workspace, capsys):
    _, config_path, sheet = workspace
    _run(config_path, "import", sheet, "--save", "--rows", "0")

    service = build_service(load_app_config(config_path))
    record = service.load_current_data().data[0]

    _run(config_path, "data", "status", record.id, "1")
    _run(config_path, "data", "notes", record.id, "checked with client")
    capsys.readouterr()

    _run(config_path, "data", "list", "--flagged")
    out = capsys.readouterr().out
    assert record.id not in out
    assert "Total records: 1" in out

    _run(config_path, "summary")
    out = capsys.readouterr().out
    assert "Verified:            1" in out
    assert "Client to verify:    1" in out


def test_report_writes_file(workspace, capsys):
    tmp_path, config_path, sheet = workspace
    _run(config_path, "import", sheet, "--save", "--rows", "0")

    _run(config_path, "report", "full", "--format", "xlsx")

    assert "Report saved to" in capsys.readouterr().out
    assert list((tmp_path / "out").glob("full-report-*.xlsx"))


def test_clear_requires_confirmation(workspace):
    _, config_path, _ = workspace

    with pytest.raises(SystemExit):
        _run(config_path, "data", "clear")


def test_missing_config_is_a_usage_error(tmp_path):
    with pytest.raises(SystemExit) as excinfo:
        main(["--config", str(tmp_path / "missing.toml"), "summary"])

    assert excinfo.value.code == 2


@pytest.mark.parametrize("page", ["0", "-1"])
def test_invalid_page_is_a_clean_exit(workspace, page):
    _, config_path, sheet = workspace
    _run(config_path, "import", sheet, "--save", "--rows", "0")

    with pytest.raises(SystemExit) as excinfo:
        _run(config_path, "data", "list", "--page", page)

    assert "Page numbers start at 1" in str(excinfo.value.code)


def test_validate_save_and_show_run(workspace, capsys):
    _, config_path, sheet = workspace

    _run(config_path, "validate", sheet, "--save")
    assert "Saved validation of 2 records (1 with errors)" in capsys.readouterr().out

    _run(config_path, "validations", "list")
    assert "january.csv  2 records  1 with errors" in capsys.readouterr().out

    _run(config_path, "validations", "show")
    out = capsys.readouterr().out
    assert "Loaded validation of 2 records from january.csv" in out
    assert "T-2: Amount must be positive" in out


def test_settings_apply_to_summary(workspace, capsys):
    _, config_path, sheet = workspace
    _run(config_path, "import", sheet, "--save", "--rows", "0")

    _run(config_path, "settings", "set", "currency_symbol", "$")
    _run(config_path, "settings", "show")
    out = capsys.readouterr().out
    assert "currency_symbol set to $" in out
    assert ["top_n", "100"] in [line.split() for line in out.splitlines()]

    _run(config_path, "summary")
    assert "Total amount:        $ 115.00" in capsys.readouterr().out


def test_invalid_setting_exits_with_status_1(workspace, capsys):
    _, config_path, _ = workspace

    with pytest.raises(SystemExit) as excinfo:
        _run(config_path, "settings", "set", "page_size", "75")

    assert excinfo.value.code == 1
    assert "Settings update failed" in capsys.readouterr().out
