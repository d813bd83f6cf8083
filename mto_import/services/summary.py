from __future__ import annotations

from ..models.import_result import ImportResult

"""SUMMARY line rendering.

Format (one line per run, key=value pairs separated by single spaces):

    SUMMARY status=success components=120 rows=40 skipped=2 drawings_created=3
    drawings_reused=1 warnings=2 errors=0 dry_run=false elapsed_sec=0.42
    batches=1 avg_batch_sec=0.05 p95_batch_sec=0.05
"""

__all__ = [
    "format_seconds",
    "render_summary_line",
]


def format_seconds(value: float) -> str:
    """Render seconds without scientific notation; integers lose the '.0'."""
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    digits = 6 if value < 0.01 else 3
    return f"{value:.{digits}f}".rstrip("0").rstrip(".") or "0"


def render_summary_line(result: ImportResult) -> str:
    """Render the SUMMARY line for one import.

    Examples:
        >>> render_summary_line(ImportResult(success=True, components_created=3, rows_processed=2))
        'SUMMARY status=success components=3 rows=2 skipped=0 drawings_created=0 drawings_reused=0 warnings=0 errors=0 dry_run=false elapsed_sec=0 batches=0 avg_batch_sec=0 p95_batch_sec=0'
    """
    status = "success" if result.success else "failed"
    return (
        f"SUMMARY status={status} "
        f"components={result.components_created} "
        f"rows={result.rows_processed} "
        f"skipped={result.rows_skipped} "
        f"drawings_created={result.drawings_created} "
        f"drawings_reused={result.drawings_reused} "
        f"warnings={len(result.warnings)} "
        f"errors={len(result.errors)} "
        f"dry_run={'true' if result.dry_run else 'false'} "
        f"elapsed_sec={format_seconds(result.elapsed_seconds)} "
        f"batches={result.total_batches} "
        f"avg_batch_sec={format_seconds(result.avg_batch_seconds)} "
        f"p95_batch_sec={format_seconds(result.p95_batch_seconds)}"
    )
