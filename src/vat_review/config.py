# VAT Review - Transaction import, verification & reporting for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Configuration helpers for VAT Review.

This module is responsible for:
- loading the application configuration from a TOML file,
- applying defaults when no configuration file exists,
- exposing typed dataclasses used by the rest of the application.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:  # pragma: no cover - fallback for older Python
    import tomli as tomllib  # type: ignore[import]

from .db import DatabaseConfig
from .views import PAGE_SIZES

DEFAULT_CONFIG_FILE = "vat_review_config.toml"
DEFAULT_DB_PATH = "data/db/vat_review.sqlite"
DEFAULT_OUTPUT_DIR = "data/output"


@dataclass(frozen=True)
class UserConfig:
    """Identity used when no --user / --user-name flag is given."""

    owner_id: Optional[str] = None
    display_name: str = ""


@dataclass(frozen=True)
class ImportConfig:
    progress_every: int = 100
    yield_every: int = 1000


@dataclass(frozen=True)
class PersistenceConfig:
    save_batch_size: int = 100
    replace_batch_size: int = 1000


@dataclass(frozen=True)
class ReportsConfig:
    currency_symbol: str = "R"
    top_n: int = 100
    output_dir: Path = Path(DEFAULT_OUTPUT_DIR)
    page_size: int = 50


@dataclass(frozen=True)
class AppConfig:
    """
    Application-wide configuration for VAT Review.

    This aggregates:
    - the database configuration (where records and imports are stored),
    - the default user identity,
    - import, persistence and report tuning,
    - the log level.
    """

    database: DatabaseConfig
    user: UserConfig = field(default_factory=UserConfig)
    import_options: ImportConfig = field(default_factory=ImportConfig)
    persistence: PersistenceConfig = field(default_factory=PersistenceConfig)
    reports: ReportsConfig = field(default_factory=ReportsConfig)
    log_level: str = "INFO"


def _load_toml(path: Path) -> dict[str, Any]:
    """
    Load a TOML file and return its content as a dictionary.

    Raises:
        FileNotFoundError: if the file does not exist.
        ValueError: if the TOML content cannot be parsed or is not a table.
    """
    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except Exception as exc:  # noqa: BLE001
        raise ValueError(f"Failed to parse TOML config file: {path}") from exc

    if not isinstance(data, dict):
        raise ValueError(f"Invalid TOML root type in {path}, expected a table.")

    return data


def _section(raw: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = raw.get(name) or {}
    if not isinstance(value, Mapping):
        raise ValueError(f"Config section [{name}] must be a table.")
    return value


def _positive_int(section: Mapping[str, Any], key: str, default: int, where: str) -> int:
    raw_value = section.get(key, default)
    try:
        value = int(raw_value)
    except (TypeError, ValueError) as exc:
        raise ValueError(
            f"Invalid value for '{where}.{key}' in the configuration. "
            "Expected an integer."
        ) from exc
    if value <= 0:
        raise ValueError(f"'{where}.{key}' must be a positive integer, got {value}.")
    return value


def load_app_config(config_path: Optional[str] = None) -> AppConfig:
    """
    Load the VAT Review application configuration from a TOML file.

    Expected top-level sections in the TOML file
    --------------------------------------------
    [database]
        Database engine (only "sqlite") and SQLite file path.

    [user]
        Default ``owner_id`` and ``display_name`` of the operator.

    [import]
        ``progress_every`` (rows between progress reports) and
        ``yield_every`` (rows between cooperative yields).

    [persistence]
        ``save_batch_size`` and ``replace_batch_size``.

    [reports]
        ``currency_symbol``, ``top_n``, ``output_dir`` and ``page_size``.

    [logging]
        ``level`` (DEBUG, INFO, WARNING, ...).

    Notes
    -----
    - Every section is optional.
    - When ``config_path`` is None and ``vat_review_config.toml`` does not
      exist in the current directory, the built-in defaults are used.
    - All file paths in the TOML are resolved relative to the directory of
      the TOML file itself.

    Parameters
    ----------
    config_path : str, optional
        Path to the TOML configuration file.

    Returns
    -------
    AppConfig
        Parsed and validated application configuration.
    """
    if config_path is None:
        config_file = Path(DEFAULT_CONFIG_FILE).resolve()
        raw = _load_toml(config_file) if config_file.is_file() else {}
    else:
        config_file = Path(config_path).resolve()
        raw = _load_toml(config_file)
    base_dir = config_file.parent

    # 1) Database section
    database_section = _section(raw, "database")
    db_engine = str(database_section.get("engine") or "sqlite")
    if db_engine.lower() != "sqlite":
        raise ValueError(
            f"Unsupported database engine: {db_engine!r}. Only 'sqlite' is supported."
        )
    db_path_raw = database_section.get("path") or DEFAULT_DB_PATH
    database_config = DatabaseConfig(
        engine=db_engine, path=(base_dir / str(db_path_raw)).resolve()
    )

    # 2) User section
    user_section = _section(raw, "user")
    owner_raw = user_section.get("owner_id")
    user = UserConfig(
        owner_id=str(owner_raw) if owner_raw else None,
        display_name=str(user_section.get("display_name") or ""),
    )

    # 3) Import / persistence tuning
    import_section = _section(raw, "import")
    import_options = ImportConfig(
        progress_every=_positive_int(import_section, "progress_every", 100, "import"),
        yield_every=_positive_int(import_section, "yield_every", 1000, "import"),
    )

    persistence_section = _section(raw, "persistence")
    persistence = PersistenceConfig(
        save_batch_size=_positive_int(
            persistence_section, "save_batch_size", 100, "persistence"
        ),
        replace_batch_size=_positive_int(
            persistence_section, "replace_batch_size", 1000, "persistence"
        ),
    )

    # 4) Reports
    reports_section = _section(raw, "reports")
    page_size = _positive_int(reports_section, "page_size", 50, "reports")
    if page_size not in PAGE_SIZES:
        allowed = ", ".join(str(s) for s in PAGE_SIZES)
        raise ValueError(f"'reports.page_size' must be one of: {allowed}.")
    output_dir_raw = reports_section.get("output_dir") or DEFAULT_OUTPUT_DIR
    reports = ReportsConfig(
        currency_symbol=str(reports_section.get("currency_symbol", "R")),
        top_n=_positive_int(reports_section, "top_n", 100, "reports"),
        output_dir=(base_dir / str(output_dir_raw)).resolve(),
        page_size=page_size,
    )

    # 5) Logging
    logging_section = _section(raw, "logging")
    log_level = str(logging_section.get("level") or "INFO").upper()

    return AppConfig(
        database=database_config,
        user=user,
        import_options=import_options,
        persistence=persistence,
        reports=reports,
        log_level=log_level,
    )
