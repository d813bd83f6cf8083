from __future__ import annotations

import statistics
from dataclasses import dataclass, field
from typing import Any

"""Import result models.

ImportErrorRecord is the normalized (row, column, reason) triple every failing
stage produces; ImportResult is what the pipeline hands back to the caller.
to_dict() renders the wire shape:

    success: {success, componentsCreated, rowsProcessed, rowsSkipped, ...}
    failure: {success: false, errors: [{row, column, reason}], errorCsv}
"""

__all__ = [
    "ImportErrorRecord",
    "ImportWarning",
    "ImportResult",
    "BatchStatsAccumulator",
]


@dataclass(frozen=True)
class ImportErrorRecord:
    """A single user-facing problem.

    Attributes:
        row: 1-based row number, header is row 1. 0 for file-level problems
        column: Canonical column name (e.g. "QTY") or "" when not column specific
        reason: Human-readable reason in user-fixable wording
        kind: structural / row / duplicate / persistence
    """
    row: int
    column: str
    reason: str
    kind: str = "row"

    def to_dict(self) -> dict[str, Any]:
        return {"row": self.row, "column": self.column, "reason": self.reason}


@dataclass(frozen=True)
class ImportWarning:
    row: int
    column: str
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"row": self.row, "column": self.column, "message": self.message}


@dataclass(frozen=True)
class ImportResult:
    """Outcome of one takeoff import."""
    success: bool
    components_created: int = 0
    rows_processed: int = 0
    rows_skipped: int = 0
    drawings_created: int = 0
    drawings_reused: int = 0
    metadata_created: dict[str, int] = field(default_factory=dict)  # area / system / test_package
    components_by_type: dict[str, int] = field(default_factory=dict)
    warnings: list[ImportWarning] = field(default_factory=list)
    errors: list[ImportErrorRecord] = field(default_factory=list)
    error_csv: str | None = None
    dry_run: bool = False
    elapsed_seconds: float = 0.0
    # バッチ統計 (成功時のみ意味あり)
    total_batches: int = 0
    avg_batch_seconds: float = 0.0
    p95_batch_seconds: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        if not self.success:
            return {
                "success": False,
                "errors": [e.to_dict() for e in self.errors],
                "errorCsv": self.error_csv or "",
            }
        return {
            "success": True,
            "componentsCreated": self.components_created,
            "rowsProcessed": self.rows_processed,
            "rowsSkipped": self.rows_skipped,
            "drawingsCreated": self.drawings_created,
            "drawingsReused": self.drawings_reused,
            "metadataCreated": {
                "areas": self.metadata_created.get("area", 0),
                "systems": self.metadata_created.get("system", 0),
                "testPackages": self.metadata_created.get("test_package", 0),
            },
            "componentsByType": dict(self.components_by_type),
            "warnings": [w.to_dict() for w in self.warnings],
            "dryRun": self.dry_run,
        }


class BatchStatsAccumulator:
    """Collects per-batch insert timings and summarizes them."""

    def __init__(self) -> None:
        self.batch_times: list[float] = []

    def add_batch_time(self, elapsed_seconds: float) -> None:
        self.batch_times.append(elapsed_seconds)

    def get_stats(self) -> tuple[int, float, float]:
        """Calculate batch statistics.

        Returns:
            tuple: (total_batches, avg_batch_seconds, p95_batch_seconds)
        """
        if not self.batch_times:
            return (0, 0.0, 0.0)

        total_batches = len(self.batch_times)
        avg_batch_seconds = statistics.mean(self.batch_times)

        if total_batches == 1:
            p95_batch_seconds = self.batch_times[0]
        else:
            p95_batch_seconds = statistics.quantiles(
                self.batch_times, n=20, method='inclusive'
            )[18]  # 95th percentile (19th out of 20 quantiles, 0-indexed)

        return (total_batches, avg_batch_seconds, p95_batch_seconds)
