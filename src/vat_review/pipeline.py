# VAT Review - Transaction import, verification & reporting for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Import pipeline for VAT Review.

The pipeline reads an uploaded spreadsheet, normalizes every row into a
``CanonicalRecord`` and replaces the working set of the session.

Processing is strictly sequential and keeps the source row order. The loop
runs as a coroutine and hands control back to the event loop every
``yield_every`` rows (``await asyncio.sleep(0)``) so that a large import does
not block other tasks of the host application. This is a cooperative yield,
not parallelism.

Progress
--------
Progress is reported as an integer percentage ``round((i + 1) / total * 100)``
for row index ``i``, every ``progress_every`` rows and unconditionally on the
last row. Reported values never decrease and the last one is 100. An empty
sheet reports 100 once.

Failures
--------
A ``ParseError`` aborts the import before the working set is touched.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from .io import SheetSource, read_sheet
from .logging_setup import get_logger
from .normalizer import normalize_row
from .records import CanonicalRecord
from .session import WorkingSetContext

logger = get_logger(__name__)

ProgressCallback = Callable[[int], None]

DEFAULT_PROGRESS_EVERY = 100
DEFAULT_YIELD_EVERY = 1000


@dataclass(frozen=True)
class ImportResult:
    """Summary of a completed import."""

    filename: str
    record_count: int


async def normalize_rows(
    rows: Sequence[Mapping[str, Any]],
    *,
    on_progress: Optional[ProgressCallback] = None,
    progress_every: int = DEFAULT_PROGRESS_EVERY,
    yield_every: int = DEFAULT_YIELD_EVERY,
) -> list[CanonicalRecord]:
    """
    Normalize raw rows in order, reporting progress and yielding periodically.

    Each row receives a fresh record id and the default status.
    """
    if progress_every <= 0 or yield_every <= 0:
        raise ValueError("progress_every and yield_every must be positive.")

    total = len(rows)
    records: list[CanonicalRecord] = []

    if total == 0:
        if on_progress is not None:
            on_progress(100)
        return records

    for i, row in enumerate(rows):
        records.append(normalize_row(row))

        if on_progress is not None and (i % progress_every == 0 or i == total - 1):
            on_progress(round((i + 1) / total * 100))

        if i % yield_every == 0:
            await asyncio.sleep(0)

    return records


async def import_file(
    context: WorkingSetContext,
    source: SheetSource,
    filename: Optional[str] = None,
    *,
    on_progress: Optional[ProgressCallback] = None,
    progress_every: int = DEFAULT_PROGRESS_EVERY,
    yield_every: int = DEFAULT_YIELD_EVERY,
) -> ImportResult:
    """
    Import a CSV/XLSX file into the session's working set.

    Parameters
    ----------
    context:
        Working set to replace on success.
    source:
        Path, raw bytes or binary file object.
    filename:
        Name recorded as the working set's source file. Defaults to the
        name of ``source`` when it is a path.

    Raises
    ------
    ParseError
        If the file cannot be parsed. The working set is left untouched.
    OperationInProgressError
        If another operation is running on the context.
    """
    with context.operation("import"):
        rows = read_sheet(source, filename)
        if filename:
            name = filename
        elif isinstance(source, (str, os.PathLike)):
            name = Path(source).name
        else:
            name = "Untitled Import"
        logger.info("Parsed %d row(s) from %s", len(rows), name)

        records = await normalize_rows(
            rows,
            on_progress=on_progress,
            progress_every=progress_every,
            yield_every=yield_every,
        )

        context.set(records, filename=name)

    return ImportResult(filename=name, record_count=len(records))


def import_file_sync(
    context: WorkingSetContext,
    source: SheetSource,
    filename: Optional[str] = None,
    **kwargs,
) -> ImportResult:
    """Run ``import_file`` to completion from synchronous code (CLI)."""
    return asyncio.run(import_file(context, source, filename, **kwargs))
