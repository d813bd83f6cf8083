from __future__ import annotations

import pytest

from mto_import.models.import_result import ImportErrorRecord, ImportResult, ImportWarning
from mto_import.services.summary import format_seconds, render_summary_line


def test_render_success_line():
    result = ImportResult(
        success=True,
        components_created=120,
        rows_processed=40,
        rows_skipped=2,
        drawings_created=3,
        drawings_reused=1,
        warnings=[ImportWarning(row=4, column="QTY", message="Quantity is 0; row skipped")],
        elapsed_seconds=0.42,
        total_batches=1,
        avg_batch_seconds=0.05,
        p95_batch_seconds=0.05,
    )
    assert render_summary_line(result) == (
        "SUMMARY status=success components=120 rows=40 skipped=2 drawings_created=3 "
        "drawings_reused=1 warnings=1 errors=0 dry_run=false elapsed_sec=0.42 "
        "batches=1 avg_batch_sec=0.05 p95_batch_sec=0.05"
    )


def test_render_failure_line():
    result = ImportResult(
        success=False,
        errors=[ImportErrorRecord(row=12, column="QTY", reason="Invalid data type (expected number)")],
        elapsed_seconds=2.0,
    )
    line = render_summary_line(result)
    assert line.startswith("SUMMARY status=failed components=0 ")
    assert " errors=1 " in line
    assert " elapsed_sec=2 " in line


def test_render_dry_run_flag():
    assert "dry_run=true" in render_summary_line(ImportResult(success=True, dry_run=True))


@pytest.mark.parametrize(
    "value,expected",
    [(0, "0"), (2.0, "2"), (0.001234, "0.001234"), (1.5, "1.5"), (0.123456, "0.123"), (0.0000001, "0")],
)
def test_format_seconds(value, expected):
    assert format_seconds(value) == expected
