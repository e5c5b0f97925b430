# VAT Review - Transaction import, verification & reporting for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Legacy per-user documents and per-user report preferences.

user_data
---------
Before import manifests existed, each user had one JSON document holding
their working data (``currentData``: a list of transaction rows). The
document can still be read, written and deleted here, and
``legacy_rows()`` extracts its rows so that the records service can move
them into the record store as a regular import.

user_settings
-------------
One JSON document per user holding report preferences
(``SETTING_KEYS``). Stored values override the application configuration
for that user; unknown keys are rejected.

Documents are stored whole: saving replaces the previous document.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any, Optional

from .db import SqliteStore, now_utc_iso
from .views import PAGE_SIZES

SETTING_KEYS = ("currency_symbol", "top_n", "page_size")


def _get_document(store: SqliteStore, table: str, column: str, user_id: str) -> Optional[dict]:
    rows = store.select(table, {"user_id": user_id})
    if not rows:
        return None
    try:
        value = json.loads(rows[0][column])
    except json.JSONDecodeError as exc:
        raise ValueError(f"Corrupt {table} document for user {user_id!r}.") from exc
    return value if isinstance(value, dict) else None


def get_user_data(store: SqliteStore, user_id: str) -> Optional[dict]:
    """Return the stored data document of a user, or None."""
    return _get_document(store, "user_data", "data", user_id)


def save_user_data(store: SqliteStore, user_id: str, data: dict) -> None:
    """Insert or replace the data document of a user."""
    store.upsert(
        "user_data",
        {"user_id": user_id, "data": json.dumps(data), "updated_at": now_utc_iso()},
        key="user_id",
    )


def delete_user_data(store: SqliteStore, user_id: str) -> bool:
    return store.delete("user_data", {"user_id": user_id}) > 0


def legacy_rows(document: Optional[Mapping[str, Any]]) -> list[dict[str, Any]]:
    """Transaction rows of a legacy data document (``currentData``)."""
    if not document:
        return []
    rows = document.get("currentData") or []
    if not isinstance(rows, list):
        raise ValueError("Legacy document field 'currentData' must be a list.")
    return [row for row in rows if isinstance(row, dict)]


def clean_setting(key: str, value: Any) -> Any:
    """
    Check and coerce one report preference.

    Raises
    ------
    ValueError
        If the key is unknown or the value is invalid for it.
    """
    if key not in SETTING_KEYS:
        raise ValueError(f"Unknown setting {key!r}. Expected one of: {', '.join(SETTING_KEYS)}.")
    if key == "currency_symbol":
        symbol = str(value).strip()
        if not symbol:
            raise ValueError("Setting 'currency_symbol' must not be empty.")
        return symbol

    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Setting {key!r} must be an integer.") from exc
    if number <= 0:
        raise ValueError(f"Setting {key!r} must be a positive integer.")
    if key == "page_size" and number not in PAGE_SIZES:
        allowed = ", ".join(str(s) for s in PAGE_SIZES)
        raise ValueError(f"Setting 'page_size' must be one of: {allowed}.")
    return number


def get_user_settings(store: SqliteStore, user_id: str) -> dict:
    """Return the report preferences stored for a user (may be empty)."""
    stored = _get_document(store, "user_settings", "settings", user_id) or {}
    return {key: stored[key] for key in SETTING_KEYS if key in stored}


def save_user_settings(store: SqliteStore, user_id: str, settings: Mapping[str, Any]) -> dict:
    """Check, then store the user's report preferences. Returns what was stored."""
    cleaned = {key: clean_setting(key, value) for key, value in settings.items()}
    store.upsert(
        "user_settings",
        {
            "user_id": user_id,
            "settings": json.dumps(cleaned),
            "updated_at": now_utc_iso(),
        },
        key="user_id",
    )
    return cleaned
