# VAT Review - Transaction import, verification & reporting for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.


"""
Database layer for VAT Review.

This module provides the record store used by the persistence gateway. The
store exposes a small, table-oriented contract modelled on hosted
database-as-a-service clients:

- ``insert(table, rows)``
- ``select(table, filters, order_by, descending, limit)``
- ``delete(table, filters)``
- ``count(table, filters)``

Filters are equality matches combined with AND. Every failure is raised as
``PersistenceError``. Each call runs in its own transaction: an ``insert``
either stores all of its rows or none of them.

------------------------------------------------------------------------------
Schema Overview
------------------------------------------------------------------------------

1) data_imports
   One row per saved working set (import manifest).

   - id            TEXT    PRIMARY KEY   -- UUID
   - user_id       TEXT    NOT NULL      -- owner
   - filename      TEXT    NOT NULL
   - record_count  INTEGER NOT NULL      -- fixed at creation
   - imported_by   TEXT    NOT NULL      -- display name of the importer
   - imported_at   TEXT    NOT NULL      -- ISO datetime, UTC

2) data
   One row per transaction line.

   - id            TEXT    PRIMARY KEY   -- UUID
   - date, trans_id, account, aname, reference, description, flag, notes
                   TEXT    NOT NULL DEFAULT ''
   - amount_cents  INTEGER NOT NULL      -- signed amount in cents
   - vat_cents     INTEGER NOT NULL      -- VAT in cents
   - verified      TEXT    NOT NULL DEFAULT '0'
   - status        TEXT                  -- label at write time (informative)
   - import_id     TEXT                  -- data_imports.id, ON DELETE CASCADE
   - created_by    TEXT    NOT NULL      -- owner
   - created_at    TEXT    NOT NULL
   - updated_at    TEXT

3) data_validation
   One row per saved validation run.

   - id            TEXT    PRIMARY KEY   -- UUID
   - filename      TEXT    NOT NULL
   - record_count  INTEGER NOT NULL
   - error_count   INTEGER NOT NULL
   - created_by    TEXT    NOT NULL      -- owner
   - created_at    TEXT    NOT NULL

4) data_validation_records
   One row per validated record: a copy of the record fields plus the
   outcome of the rules.

   - id            TEXT    PRIMARY KEY   -- UUID
   - record_id     TEXT    NOT NULL      -- working-set record id
   - validation_id TEXT    NOT NULL      -- data_validation.id, ON DELETE CASCADE
   - position      INTEGER NOT NULL      -- order within the run
   - date, trans_id, account, aname, reference, description, flag, notes,
     verified, amount_cents, vat_cents   -- as in ``data``
   - has_error     INTEGER NOT NULL      -- 0 / 1
   - error_fields  TEXT    NOT NULL      -- JSON list of messages
   - created_by    TEXT    NOT NULL

5) user_data / user_settings
   Legacy per-user JSON documents (see ``user_data.py``).

   - user_id       TEXT PRIMARY KEY
   - data / settings TEXT NOT NULL      -- JSON document
   - updated_at    TEXT NOT NULL

------------------------------------------------------------------------------
SQLite Notes
------------------------------------------------------------------------------

- All timestamps are stored as ISO-8601 text (UTC).
- Foreign key enforcement is explicitly enabled, so deleting a manifest
  deletes the rows attached to it.
- Column names passed to the store are checked against the live schema
  before being used in SQL.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .errors import PersistenceError

# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseConfig:
    """
    Database configuration for VAT Review.

    Attributes
    ----------
    engine:
        Database engine identifier. Only "sqlite" is supported.
    path:
        Path to the SQLite database file.
    """

    engine: str
    path: Path


TABLES = (
    "data",
    "data_imports",
    "data_validation",
    "data_validation_records",
    "user_data",
    "user_settings",
)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _ensure_sqlite(cfg: DatabaseConfig) -> None:
    """Raise if the configuration does not refer to a supported engine."""
    if cfg.engine.lower() != "sqlite":
        msg = (
            f"Unsupported database engine: {cfg.engine!r}. "
            "Only 'sqlite' is supported for now."
        )
        raise ValueError(msg)


def _connect(cfg: DatabaseConfig) -> sqlite3.Connection:
    """
    Open a SQLite connection with foreign keys enabled.

    The caller is responsible for closing the connection.
    """
    _ensure_sqlite(cfg)
    conn = sqlite3.connect(cfg.path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


def _get_table_columns(conn: sqlite3.Connection, table: str) -> set[str]:
    """Return the set of column names for the given table."""
    cur = conn.execute(f"PRAGMA table_info({table});")
    return {row[1] for row in cur.fetchall()}


def _create_schema_if_needed(conn: sqlite3.Connection) -> None:
    """
    Create tables and indexes if they do not exist yet.

    This function is idempotent and can be called multiple times safely.
    """
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS data_imports (
            id            TEXT    PRIMARY KEY,
            user_id       TEXT    NOT NULL,
            filename      TEXT    NOT NULL,
            record_count  INTEGER NOT NULL,
            imported_by   TEXT    NOT NULL,
            imported_at   TEXT    NOT NULL
        );
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS data (
            id            TEXT    PRIMARY KEY,
            date          TEXT    NOT NULL DEFAULT '',
            trans_id      TEXT    NOT NULL DEFAULT '',
            account       TEXT    NOT NULL DEFAULT '',
            aname         TEXT    NOT NULL DEFAULT '',
            reference     TEXT    NOT NULL DEFAULT '',
            description   TEXT    NOT NULL DEFAULT '',
            amount_cents  INTEGER NOT NULL DEFAULT 0,
            vat_cents     INTEGER NOT NULL DEFAULT 0,
            flag          TEXT    NOT NULL DEFAULT '',
            verified      TEXT    NOT NULL DEFAULT '0',
            status        TEXT,
            notes         TEXT    NOT NULL DEFAULT '',
            import_id     TEXT,
            created_by    TEXT    NOT NULL,
            created_at    TEXT    NOT NULL,
            updated_at    TEXT,

            FOREIGN KEY (import_id) REFERENCES data_imports(id) ON DELETE CASCADE
        );
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS data_validation (
            id            TEXT    PRIMARY KEY,
            filename      TEXT    NOT NULL,
            record_count  INTEGER NOT NULL,
            error_count   INTEGER NOT NULL,
            created_by    TEXT    NOT NULL,
            created_at    TEXT    NOT NULL
        );
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS data_validation_records (
            id             TEXT    PRIMARY KEY,
            validation_id  TEXT    NOT NULL,
            record_id      TEXT    NOT NULL,
            position       INTEGER NOT NULL,
            date           TEXT    NOT NULL DEFAULT '',
            trans_id       TEXT    NOT NULL DEFAULT '',
            account        TEXT    NOT NULL DEFAULT '',
            aname          TEXT    NOT NULL DEFAULT '',
            reference      TEXT    NOT NULL DEFAULT '',
            description    TEXT    NOT NULL DEFAULT '',
            amount_cents   INTEGER NOT NULL DEFAULT 0,
            vat_cents      INTEGER NOT NULL DEFAULT 0,
            flag           TEXT    NOT NULL DEFAULT '',
            verified       TEXT    NOT NULL DEFAULT '0',
            notes          TEXT    NOT NULL DEFAULT '',
            has_error      INTEGER NOT NULL DEFAULT 0,
            error_fields   TEXT    NOT NULL DEFAULT '[]',
            created_by     TEXT    NOT NULL,

            FOREIGN KEY (validation_id) REFERENCES data_validation(id) ON DELETE CASCADE
        );
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS user_data (
            user_id     TEXT PRIMARY KEY,
            data        TEXT NOT NULL,
            updated_at  TEXT NOT NULL
        );
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS user_settings (
            user_id     TEXT PRIMARY KEY,
            settings    TEXT NOT NULL,
            updated_at  TEXT NOT NULL
        );
        """
    )

    # Indexes
    conn.execute("CREATE INDEX IF NOT EXISTS idx_data_owner ON data(created_by);")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_data_import ON data(import_id);")
    conn.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_data_imports_owner
            ON data_imports(user_id, imported_at);
        """
    )
    conn.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_data_validation_owner
            ON data_validation(created_by, created_at);
        """
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_validation_records_run "
        "ON data_validation_records(validation_id, position);"
    )

    conn.commit()


def _check_table(table: str) -> None:
    if table not in TABLES:
        raise ValueError(f"Unknown table: {table!r}")


def _check_columns(conn: sqlite3.Connection, table: str, columns) -> None:
    known = _get_table_columns(conn, table)
    unknown = [c for c in columns if c not in known]
    if unknown:
        cols = ", ".join(sorted(unknown))
        raise ValueError(f"Unknown column(s) for table {table!r}: {cols}")


def _where_clause(filters: Mapping[str, Any]) -> tuple[str, list[Any]]:
    if not filters:
        return "", []
    parts = []
    params: list[Any] = []
    for column, value in filters.items():
        if value is None:
            parts.append(f"{column} IS NULL")
        else:
            parts.append(f"{column} = ?")
            params.append(value)
    return " WHERE " + " AND ".join(parts), params


def now_utc_iso() -> str:
    """Return the current UTC datetime as ISO string."""
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def init_database(cfg: DatabaseConfig) -> None:
    """
    Initialize the database schema if needed.

    - Creates the SQLite file (and its parent directory) if missing.
    - Creates tables and indexes if they are missing.
    - Idempotent.

    Raises
    ------
    ValueError
        If cfg.engine is not supported.
    sqlite3.Error
        If schema creation fails.
    """
    cfg.path.parent.mkdir(parents=True, exist_ok=True)

    conn = _connect(cfg)
    try:
        _create_schema_if_needed(conn)
    finally:
        conn.close()


class SqliteStore:
    """
    Table-oriented record store backed by a SQLite file.

    The schema is created on construction.
    """

    def __init__(self, cfg: DatabaseConfig) -> None:
        self.cfg = cfg
        try:
            init_database(cfg)
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to initialize database: {exc}") from exc

    def insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> int:
        """
        Insert rows in a single transaction and return how many were stored.

        All rows must have the same keys.
        """
        _check_table(table)
        if not rows:
            return 0

        columns = list(rows[0].keys())
        for row in rows:
            if list(row.keys()) != columns:
                raise ValueError("All rows of an insert must have the same columns.")

        conn = _connect(self.cfg)
        try:
            _check_columns(conn, table, columns)
            placeholders = ", ".join("?" for _ in columns)
            sql = (
                f"INSERT INTO {table} ({', '.join(columns)}) "
                f"VALUES ({placeholders});"
            )
            conn.executemany(sql, [tuple(row[c] for c in columns) for row in rows])
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise PersistenceError(f"Insert into {table!r} failed: {exc}") from exc
        finally:
            conn.close()

        return len(rows)

    def select(
        self,
        table: str,
        filters: Mapping[str, Any] | None = None,
        *,
        order_by: Sequence[str] = (),
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """
        Return matching rows as dictionaries.

        ``order_by`` columns are applied in order with the same direction;
        ties keep insertion order (rowid ascending) in both directions.
        """
        _check_table(table)
        filters = dict(filters or {})

        conn = _connect(self.cfg)
        try:
            _check_columns(conn, table, [*filters.keys(), *order_by])
            where, params = _where_clause(filters)
            direction = "DESC" if descending else "ASC"
            order_terms = [f"{c} {direction}" for c in order_by]
            order_terms.append("rowid ASC")
            sql = f"SELECT * FROM {table}{where} ORDER BY {', '.join(order_terms)}"
            if limit is not None:
                sql += " LIMIT ?"
                params.append(int(limit))
            rows = conn.execute(sql + ";", params).fetchall()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Select from {table!r} failed: {exc}") from exc
        finally:
            conn.close()

        return [dict(row) for row in rows]

    def delete(self, table: str, filters: Mapping[str, Any]) -> int:
        """
        Delete matching rows and return how many were removed.

        An empty filter is refused so that a table is never wiped by mistake.
        """
        _check_table(table)
        if not filters:
            raise ValueError("delete() requires at least one filter.")

        conn = _connect(self.cfg)
        try:
            _check_columns(conn, table, filters.keys())
            where, params = _where_clause(filters)
            cur = conn.execute(f"DELETE FROM {table}{where};", params)
            conn.commit()
            return cur.rowcount
        except sqlite3.Error as exc:
            conn.rollback()
            raise PersistenceError(f"Delete from {table!r} failed: {exc}") from exc
        finally:
            conn.close()

    def count(self, table: str, filters: Mapping[str, Any] | None = None) -> int:
        _check_table(table)
        filters = dict(filters or {})

        conn = _connect(self.cfg)
        try:
            _check_columns(conn, table, filters.keys())
            where, params = _where_clause(filters)
            row = conn.execute(f"SELECT COUNT(*) FROM {table}{where};", params).fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Count on {table!r} failed: {exc}") from exc
        finally:
            conn.close()

        return int(row[0])

    def upsert(self, table: str, row: Mapping[str, Any], *, key: str) -> None:
        """Insert ``row`` or replace the existing row with the same ``key``."""
        _check_table(table)
        columns = list(row.keys())
        if key not in columns:
            raise ValueError(f"Upsert row must contain the key column {key!r}.")

        conn = _connect(self.cfg)
        try:
            _check_columns(conn, table, columns)
            updates = ", ".join(f"{c} = excluded.{c}" for c in columns if c != key)
            sql = (
                f"INSERT INTO {table} ({', '.join(columns)}) "
                f"VALUES ({', '.join('?' for _ in columns)}) "
                f"ON CONFLICT({key}) DO UPDATE SET {updates};"
            )
            conn.execute(sql, tuple(row[c] for c in columns))
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise PersistenceError(f"Upsert into {table!r} failed: {exc}") from exc
        finally:
            conn.close()
