# VAT Review - Transaction import, verification & reporting for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Command-Line Interface (CLI) for VAT Review.

The CLI is intentionally thin: it parses arguments, loads the configuration,
wires a ``RecordsService`` and prints the notices and tables it returns. It
does not implement import, validation or persistence logic itself.

Each invocation starts with an empty working set. Commands that edit stored
data (``data status``, ``data notes``, ``data edit``) load the current data,
apply the change and save the current data back.

Commands
--------

    import FILE [--validate] [--save] [--rows N]
        Parse and normalize a CSV/XLSX file, optionally validate it and save
        it as a new import.

    validate FILE [--save]
        Import a file and list the records failing validation, optionally
        saving the records with their results as a validation run.

    validations list
    validations show [RUN_ID]

    data list [--flagged] [--search TEXT] [--sort COLUMN] [--desc]
              [--page N] [--page-size N]
    data status RECORD_ID {0,1,2}
    data notes RECORD_ID TEXT
    data edit RECORD_ID FIELD VALUE
    data clear [--import-id ID] --yes
    data migrate-legacy

    history list
    history show IMPORT_ID
    history export IMPORT_ID [--output-dir DIR]
    history delete IMPORT_ID
    history reconcile IMPORT_ID

    report {full,top100amount,top100vat,verified} [--format {pdf,xlsx}]
           [--import-id ID] [--output-dir DIR]

    summary [--import-id ID]

    settings show
    settings set {currency_symbol,top_n,page_size} VALUE

Configuration
-------------

By default the CLI reads ``vat_review_config.toml`` from the current working
directory (built-in defaults apply when it does not exist). Override with
``--config PATH``. The user identity comes from the [user] section and can be
overridden with ``--user`` / ``--user-name``.
"""

from __future__ import annotations

import argparse
import os
from pathlib import Path
from typing import Optional

from . import __version__
from .config import load_app_config
from .errors import VatReviewError
from .logging_setup import configure_logging, get_logger
from .records import TEXT_FIELDS, VerificationStatus
from .records_service import REPORT_FORMATS, Notice, RecordsService, build_service
from .reports import REPORT_OPTIONS, summarize
from .user_data import SETTING_KEYS
from .views import (
    PAGE_SIZES,
    filter_flagged,
    paginate,
    records_to_dataframe,
    search_records,
    sort_records,
)

logger = get_logger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser for the CLI."""
    ap = argparse.ArgumentParser(
        prog="python -m vat_review.cli",
        description=(
            "VAT Review - Transaction import, verification & reporting for SMBs. "
            "Imports CSV/XLSX transaction lists, validates and verifies them, "
            "stores them as imports and exports Excel/PDF reports."
        ),
    )
    ap.add_argument(
        "--version",
        action="store_true",
        help="Show the VAT Review version and exit.",
    )
    ap.add_argument(
        "--config",
        dest="config_path",
        help="Path to the TOML configuration file (default: vat_review_config.toml).",
    )
    ap.add_argument(
        "--user",
        dest="owner_id",
        help="Owner id of the current user. Overrides [user].owner_id.",
    )
    ap.add_argument(
        "--user-name",
        dest="display_name",
        help="Display name of the current user. Overrides [user].display_name.",
    )
    ap.add_argument(
        "--log-level",
        dest="log_level",
        help="Log level (DEBUG, INFO, WARNING, ...). Overrides [logging].level.",
    )

    subparsers = ap.add_subparsers(dest="command", metavar="command")

    # ------------------------------------------------------------------
    # import / validate
    # ------------------------------------------------------------------
    import_parser = subparsers.add_parser(
        "import", help="Import a CSV/XLSX file into the working set."
    )
    import_parser.add_argument("file", help="Path to the CSV or XLSX file.")
    import_parser.add_argument(
        "--validate", action="store_true", help="Validate the records after import."
    )
    import_parser.add_argument(
        "--save", action="store_true", help="Save the records as a new import."
    )
    import_parser.add_argument(
        "--rows",
        type=int,
        default=20,
        help="Number of imported rows to print (default: 20, 0 to disable).",
    )

    validate_parser = subparsers.add_parser(
        "validate", help="Import a file and list the records failing validation."
    )
    validate_parser.add_argument("file", help="Path to the CSV or XLSX file.")
    validate_parser.add_argument(
        "--save",
        action="store_true",
        help="Save the records and their validation results as a validation run.",
    )

    validations_parser = subparsers.add_parser(
        "validations", help="Browse saved validation runs."
    )
    validations_subparsers = validations_parser.add_subparsers(
        dest="validations_command", metavar="validations-command"
    )
    validations_subparsers.add_parser(
        "list", help="List validation runs, most recent first."
    )
    validations_show = validations_subparsers.add_parser(
        "show", help="Show the failing records of a validation run."
    )
    validations_show.add_argument(
        "run_id", nargs="?", help="Validation run id (default: most recent run)."
    )

    # ------------------------------------------------------------------
    # data
    # ------------------------------------------------------------------
    data_parser = subparsers.add_parser("data", help="View and edit the current data.")
    data_subparsers = data_parser.add_subparsers(
        dest="data_command", metavar="data-command"
    )

    data_list = data_subparsers.add_parser("list", help="List the current data.")
    data_list.add_argument(
        "--flagged",
        action="store_true",
        help="Only show 'Client to Verify' and 'Not VAT Registered' records.",
    )
    data_list.add_argument("--search", help="Case-insensitive text search.")
    data_list.add_argument("--sort", help="Column to sort by (e.g. Amount).")
    data_list.add_argument(
        "--desc", action="store_true", help="Sort in descending order."
    )
    data_list.add_argument("--page", type=int, default=1, help="Page number (1-based).")
    data_list.add_argument(
        "--page-size",
        dest="page_size",
        type=int,
        choices=PAGE_SIZES,
        help="Rows per page (default from [reports].page_size).",
    )

    data_status = data_subparsers.add_parser(
        "status", help="Set the verification status of a record."
    )
    data_status.add_argument("record_id")
    data_status.add_argument(
        "status",
        choices=[s.value for s in VerificationStatus],
        help="0 = Client to Verify, 1 = Verified, 2 = Not VAT Registered.",
    )

    data_notes = data_subparsers.add_parser("notes", help="Set the notes of a record.")
    data_notes.add_argument("record_id")
    data_notes.add_argument("text")

    data_edit = data_subparsers.add_parser("edit", help="Edit a text field of a record.")
    data_edit.add_argument("record_id")
    data_edit.add_argument("field", choices=TEXT_FIELDS)
    data_edit.add_argument("value")

    data_clear = data_subparsers.add_parser(
        "clear", help="Delete the current data (irreversible)."
    )
    data_clear.add_argument(
        "--import-id", dest="import_id", help="Only delete the records of one import."
    )
    data_clear.add_argument(
        "--yes", action="store_true", help="Confirm the deletion."
    )
    data_subparsers.add_parser(
        "migrate-legacy",
        help="Move the legacy per-user data document into the store as an import.",
    )

    # ------------------------------------------------------------------
    # history
    # ------------------------------------------------------------------
    history_parser = subparsers.add_parser("history", help="Browse saved imports.")
    history_subparsers = history_parser.add_subparsers(
        dest="history_command", metavar="history-command"
    )
    history_subparsers.add_parser("list", help="List imports, most recent first.")
    for name, help_text in (
        ("show", "Preview the records of an import."),
        ("delete", "Delete an import and its records."),
        ("reconcile", "Compare an import's record count with the stored rows."),
    ):
        sub = history_subparsers.add_parser(name, help=help_text)
        sub.add_argument("import_id")
    history_export = history_subparsers.add_parser(
        "export", help="Export an import to Excel."
    )
    history_export.add_argument("import_id")
    history_export.add_argument("--output-dir", dest="output_dir")

    # ------------------------------------------------------------------
    # report / summary
    # ------------------------------------------------------------------
    report_parser = subparsers.add_parser("report", help="Write a PDF or Excel report.")
    report_parser.add_argument("option", choices=list(REPORT_OPTIONS))
    report_parser.add_argument(
        "--format", dest="fmt", choices=REPORT_FORMATS, default="pdf"
    )
    report_parser.add_argument(
        "--import-id",
        dest="import_id",
        help="Report on one import instead of the current data.",
    )
    report_parser.add_argument("--output-dir", dest="output_dir")

    summary_parser = subparsers.add_parser(
        "summary", help="Show record counts per status and totals."
    )
    summary_parser.add_argument(
        "--import-id", dest="import_id", help="Summarize one import only."
    )

    # ------------------------------------------------------------------
    # settings
    # ------------------------------------------------------------------
    settings_parser = subparsers.add_parser(
        "settings", help="Show or change your report preferences."
    )
    settings_subparsers = settings_parser.add_subparsers(
        dest="settings_command", metavar="settings-command"
    )
    settings_subparsers.add_parser("show", help="Show the effective report settings.")
    settings_set = settings_subparsers.add_parser("set", help="Store a report setting.")
    settings_set.add_argument("key", choices=SETTING_KEYS)
    settings_set.add_argument("value")

    return ap


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _report(notice: Notice) -> Notice:
    """Print a notice and exit with status 1 when it reports a failure."""
    print(notice.message)
    if not notice.ok:
        raise SystemExit(1)
    return notice


def _print_records(records, *, limit: Optional[int] = None) -> None:
    if not records:
        print("No records.")
        return
    shown = records[:limit] if limit else records
    df = records_to_dataframe(shown, include_id=True)
    print()
    print(df.to_string(index=False))
    if limit and len(records) > limit:
        print(f"... {len(records) - limit} more record(s)")


def _load_records(service: RecordsService, import_id: Optional[str]):
    if import_id:
        return _report(service.preview_import(import_id)).data
    return _report(service.load_current_data()).data


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _handle_import(args: argparse.Namespace, service: RecordsService) -> None:
    def _progress(percent: int) -> None:
        logger.debug("Import progress: %d%%", percent)

    _report(service.import_file(Path(args.file), on_progress=_progress))
    if args.rows:
        _print_records(service.context.get(), limit=args.rows)
    if args.validate:
        print()
        _report(service.validate())
    if args.save:
        print()
        _report(service.save_working_set())


def _print_failing(service: RecordsService) -> None:
    results = service.context.validation_results
    failing = [r for r in service.context.get() if results[r.id].has_error]
    if not failing:
        return
    print()
    for record in failing:
        problems = "; ".join(results[record.id].error_fields)
        label = record.transaction_id or record.id
        print(f"{label}: {problems}")


def _handle_validate(args: argparse.Namespace, service: RecordsService) -> None:
    _report(service.import_file(Path(args.file)))
    _report(service.validate())
    _print_failing(service)
    if args.save:
        print()
        _report(service.save_validation())


def _handle_validations_command(args: argparse.Namespace, service: RecordsService) -> None:
    subcmd = getattr(args, "validations_command", None)

    if subcmd == "list":
        runs = _report(service.list_validation_runs()).data
        for run in runs:
            print(
                f"{run.id}  {run.created_at:%Y-%m-%d %H:%M}  {run.filename}  "
                f"{run.record_count} records  {run.error_count} with errors"
            )
    elif subcmd == "show":
        _report(service.load_validation(args.run_id))
        _print_failing(service)
    else:
        print(
            "No validations subcommand specified. "
            "Available subcommands are: 'list', 'show'."
        )


def _handle_settings_command(args: argparse.Namespace, service: RecordsService) -> None:
    subcmd = getattr(args, "settings_command", None)

    if subcmd == "show":
        settings = _report(service.get_settings()).data
        for key, value in settings.items():
            print(f"{key:<16} {value}")
    elif subcmd == "set":
        _report(service.update_setting(args.key, args.value))
    else:
        print(
            "No settings subcommand specified. "
            "Available subcommands are: 'show', 'set'."
        )


def _handle_data_list(args: argparse.Namespace, service: RecordsService) -> None:
    records = _report(service.load_current_data()).data
    if args.flagged:
        records = filter_flagged(records)
    if args.search:
        records = search_records(records, args.search)
    if args.sort:
        try:
            records = sort_records(records, args.sort, descending=args.desc)
        except ValueError as exc:
            raise SystemExit(str(exc)) from exc

    try:
        page = paginate(
            records,
            page=args.page,
            page_size=args.page_size or service.effective_reports().page_size,
        )
    except ValueError as exc:
        raise SystemExit(str(exc)) from exc
    _print_records(page.records)
    print()
    print(
        f"Page {page.page}/{page.total_pages} | "
        f"Total records: {page.total_records}"
    )


def _handle_data_edit(args: argparse.Namespace, service: RecordsService) -> None:
    _report(service.load_current_data())

    if args.data_command == "status":
        _report(service.set_status(args.record_id, args.status))
    elif args.data_command == "notes":
        _report(service.set_notes(args.record_id, args.text))
    else:
        service.context.toggle_edit_mode()
        _report(service.edit_field(args.record_id, args.field, args.value))

    _report(service.save_current_data())


def _handle_data_clear(args: argparse.Namespace, service: RecordsService) -> None:
    if not args.yes:
        raise SystemExit(
            "Refusing to delete data without --yes. This cannot be undone."
        )
    _report(service.clear_data(args.import_id))


def _handle_data_command(args: argparse.Namespace, service: RecordsService) -> None:
    subcmd = getattr(args, "data_command", None)

    if subcmd == "list":
        _handle_data_list(args, service)
    elif subcmd in ("status", "notes", "edit"):
        _handle_data_edit(args, service)
    elif subcmd == "clear":
        _handle_data_clear(args, service)
    elif subcmd == "migrate-legacy":
        _report(service.migrate_legacy_data())
    else:
        print(
            "No data subcommand specified. "
            "Available subcommands are: 'list', 'status', 'notes', 'edit', 'clear', "
            "'migrate-legacy'."
        )


def _handle_history_command(args: argparse.Namespace, service: RecordsService) -> None:
    subcmd = getattr(args, "history_command", None)

    if subcmd == "list":
        manifests = _report(service.list_history()).data
        for m in manifests:
            print(
                f"{m.id}  {m.imported_at:%Y-%m-%d %H:%M}  {m.filename}  "
                f"{m.record_count} records  by {m.imported_by}"
            )
    elif subcmd == "show":
        _print_records(_report(service.preview_import(args.import_id)).data)
    elif subcmd == "export":
        output_dir = Path(args.output_dir) if args.output_dir else None
        _report(service.export_import(args.import_id, output_dir))
    elif subcmd == "delete":
        _report(service.delete_import(args.import_id))
    elif subcmd == "reconcile":
        _report(service.reconcile_import(args.import_id))
    else:
        print(
            "No history subcommand specified. "
            "Available subcommands are: 'list', 'show', 'export', 'delete', "
            "'reconcile'."
        )


def _handle_report(args: argparse.Namespace, service: RecordsService) -> None:
    if not args.import_id:
        _report(service.load_current_data())
    output_dir = Path(args.output_dir) if args.output_dir else None
    _report(
        service.export_report(
            args.option,
            fmt=args.fmt,
            import_id=args.import_id,
            output_dir=output_dir,
        )
    )


def _handle_summary(args: argparse.Namespace, service: RecordsService) -> None:
    records = _load_records(service, args.import_id)
    summary = summarize(records)
    symbol = service.effective_reports().currency_symbol
    print()
    print(f"Total records:       {summary.total_records}")
    print(f"Verified:            {summary.verified}")
    print(f"Client to verify:    {summary.client_to_verify}")
    print(f"Not VAT registered:  {summary.not_vat_registered}")
    print(f"Total amount:        {symbol} {summary.total_amount:,.2f}")
    print(f"Total VAT:           {symbol} {summary.total_vat:,.2f}")


_HANDLERS = {
    "import": _handle_import,
    "validate": _handle_validate,
    "validations": _handle_validations_command,
    "data": _handle_data_command,
    "history": _handle_history_command,
    "report": _handle_report,
    "summary": _handle_summary,
    "settings": _handle_settings_command,
}


def main(argv: Optional[list[str]] = None) -> None:
    """Entry point for the VAT Review CLI.

    Parses command-line arguments, loads the configuration, configures
    logging, wires the records service and dispatches to the requested
    command. Failed operations print their notice and exit with status 1.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    # --version: short-circuit and exit early.
    if args.version:
        print(f"vat_review version {__version__}")
        return

    try:
        config = load_app_config(args.config_path)
    except (FileNotFoundError, ValueError) as exc:
        parser.error(str(exc))

    configure_logging(
        args.log_level or os.getenv("VAT_REVIEW_LOG_LEVEL") or config.log_level
    )

    handler = _HANDLERS.get(args.command)
    if handler is None:
        parser.print_help()
        return

    try:
        service = build_service(
            config, owner_id=args.owner_id, display_name=args.display_name
        )
    except VatReviewError as exc:
        parser.error(str(exc))
    handler(args, service)


if __name__ == "__main__":
    main()
