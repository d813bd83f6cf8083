from __future__ import annotations

import csv
import io
from collections.abc import Iterable

from ..exceptions import PersistenceError, TakeoffImportError
from ..models.import_result import ImportErrorRecord, ImportResult

"""Error reporting.

Turns a stage failure into the user-facing failed ImportResult: every
ImportErrorRecord sorted by row, plus the same list as downloadable CSV
(Row,Column,Reason). Persistence failures never expose database detail; the
caller logs PersistenceError.detail server side.
"""

__all__ = [
    "PERSISTENCE_USER_MESSAGE",
    "CSV_HEADER",
    "sort_errors",
    "render_error_csv",
    "build_failure_result",
]

PERSISTENCE_USER_MESSAGE = "Import failed due to a database error. No changes were saved. Please retry."
CSV_HEADER = ("Row", "Column", "Reason")


def sort_errors(errors: Iterable[ImportErrorRecord]) -> list[ImportErrorRecord]:
    # 行番号順 (同一行内は検出順を維持)
    return sorted(errors, key=lambda e: e.row)


def render_error_csv(errors: Iterable[ImportErrorRecord]) -> str:
    """Render errors as CSV (RFC 4180 quoting, LF line ends) with a Row,Column,Reason header."""
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n", quoting=csv.QUOTE_MINIMAL)
    writer.writerow(CSV_HEADER)
    for e in errors:
        writer.writerow((e.row, e.column, e.reason))
    return buf.getvalue()


def build_failure_result(exc: TakeoffImportError, elapsed_seconds: float = 0.0) -> ImportResult:
    if isinstance(exc, PersistenceError):
        errors = [ImportErrorRecord(row=0, column="", reason=PERSISTENCE_USER_MESSAGE, kind="persistence")]
    else:
        errors = sort_errors(exc.errors)
        if not errors:
            errors = [ImportErrorRecord(row=0, column="", reason=str(exc), kind=exc.kind)]
    return ImportResult(
        success=False,
        errors=errors,
        error_csv=render_error_csv(errors),
        elapsed_seconds=elapsed_seconds,
    )
