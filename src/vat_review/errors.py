# VAT Review - Transaction import, verification & reporting for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Exception types raised by VAT Review.

Per-record validation failures are not exceptions: they are reported as
``ValidationResult`` values (see ``records.py``). The exceptions below
describe failures that abort a whole operation.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .records import ImportManifest


class VatReviewError(Exception):
    """Base class for all errors raised by VAT Review."""


class ParseError(VatReviewError, ValueError):
    """The uploaded spreadsheet could not be read (corrupt or unsupported)."""


class PersistenceError(VatReviewError, RuntimeError):
    """
    A store operation failed (insert, select, delete).

    When raised by ``BatchPersistenceGateway.save``, ``manifest`` holds the
    manifest that was already created and ``committed`` the number of rows
    inserted before the failure. Those rows are not rolled back.
    """

    def __init__(
        self,
        message: str,
        *,
        manifest: ImportManifest | None = None,
        committed: int = 0,
    ) -> None:
        super().__init__(message)
        self.manifest = manifest
        self.committed = committed


class EditNotAllowedError(VatReviewError):
    """A field other than status/notes was edited outside of edit mode."""


class OperationInProgressError(VatReviewError):
    """Another import/save/validate operation is already running."""
