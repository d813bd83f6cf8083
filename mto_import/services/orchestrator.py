from __future__ import annotations

import logging
import time
from collections import Counter
from collections.abc import Callable
from pathlib import Path

from ..db.batch_insert import BatchMetrics
from ..exceptions import PersistenceError, TakeoffImportError
from ..logging.error_log import ErrorLogBuffer
from ..models.config_models import ImportConfig
from ..models.error_record import ErrorRecord
from ..models.import_result import BatchStatsAccumulator, ImportResult
from .duplicates import ensure_unique_in_file
from .error_report import build_failure_result
from .expander import explode_rows
from .progress import BatchProgress
from .row_validator import validate_rows
from .structure import check_structure
from .transaction import PersistOutcome, TakeoffStore, persist_components

"""Pipeline orchestration for one takeoff import.

bytes -> structure check -> row validation (all rows) -> expansion ->
in-file duplicate check -> transaction (cross-persisted check, drawings,
components) -> ImportResult.

Every stage raises a TakeoffImportError subclass; this module is the only
place that converts them into a failed ImportResult. With ``store=None`` the
run stops after duplicate detection (dry run) and nothing is written.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "PermissionGate",
    "import_takeoff",
    "import_file",
]

# project_id を受け取り、拒否時は AccessDeniedError を送出する
PermissionGate = Callable[[str], None]

_BYTES_SOURCE = "<bytes>"


def _log_persistence_error(
    exc: PersistenceError, file_name: str, project_id: str, log_dir: str
) -> None:
    logger.error("persistence failed file=%s project=%s: %s", file_name, project_id, exc.detail)
    buffer = ErrorLogBuffer(log_dir)
    buffer.append(
        ErrorRecord.create(
            file=file_name,
            project_id=project_id,
            row=0,
            error_type="PERSISTENCE_ERROR",
            db_message=exc.detail,
        )
    )
    try:
        path = buffer.flush()
    except OSError as e:
        logger.warning("could not write error log: %s", e)
        return
    logger.info("error details written to %s", path)


def import_takeoff(
    data: bytes,
    project_id: str | None = None,
    config: ImportConfig | None = None,
    store: TakeoffStore | None = None,
    permission_gate: PermissionGate | None = None,
    file_name: str = _BYTES_SOURCE,
) -> ImportResult:
    """Import one takeoff file into a project.

    Args:
        data: Raw file bytes (UTF-8 delimited text or an .xlsx workbook)
        project_id: Target project. Falls back to config.project_id
        config: Import configuration (defaults when None)
        store: Database store. None = dry run (validate and expand only)
        permission_gate: Called with project_id before anything else runs
        file_name: Source name used in logs

    Returns:
        ImportResult (success or failure). Validation, duplicate and
        persistence failures never raise.

    Raises:
        AccessDeniedError: the permission gate rejected the caller
        ValueError: no project id is available for a non dry-run import
    """
    config = config or ImportConfig()
    project_id = project_id or config.project_id
    if store is not None and not project_id:
        raise ValueError("project_id is required when writing to the database")
    project_label = project_id or ""

    if permission_gate is not None:
        permission_gate(project_label)

    start = time.perf_counter()
    stats = BatchStatsAccumulator()
    logger.info("import start file=%s project=%s dry_run=%s", file_name, project_label, store is None)

    try:
        parsed = check_structure(data, config)
        outcome = validate_rows(parsed.rows, config.taxonomy)
        outcome.raise_for_errors()

        expansion = explode_rows(outcome.valid)
        ensure_unique_in_file(expansion.components)

        if store is None:
            persisted = PersistOutcome(components_inserted=len(expansion.components))
        else:
            with BatchProgress(len(expansion.components)) as progress:

                def _on_batch(metrics: BatchMetrics) -> None:
                    stats.add_batch_time(metrics.elapsed_seconds)
                    progress.on_batch(metrics)

                persisted = persist_components(
                    store,
                    project_label,
                    expansion.components,
                    statement_timeout_ms=config.database.statement_timeout_ms,
                    metrics_callback=_on_batch,
                )
    except PersistenceError as e:
        _log_persistence_error(e, file_name, project_label, config.error_log_dir)
        return build_failure_result(e, elapsed_seconds=time.perf_counter() - start)
    except TakeoffImportError as e:
        logger.warning("import rejected file=%s (%s): %s", file_name, e.kind, e)
        return build_failure_result(e, elapsed_seconds=time.perf_counter() - start)

    warnings = sorted([*outcome.skipped, *expansion.warnings], key=lambda w: w.row)
    for w in warnings:
        logger.warning("row %d %s: %s", w.row, w.column, w.message)

    by_type = Counter(c.component_type.name for c in expansion.components)
    total_batches, avg_batch, p95_batch = stats.get_stats()
    result = ImportResult(
        success=True,
        components_created=persisted.components_inserted,
        rows_processed=outcome.rows_seen,
        rows_skipped=len(outcome.skipped),
        drawings_created=persisted.drawings_created,
        drawings_reused=persisted.drawings_reused,
        metadata_created=dict(persisted.metadata_created),
        components_by_type=dict(by_type),
        warnings=warnings,
        dry_run=store is None,
        elapsed_seconds=time.perf_counter() - start,
        total_batches=total_batches,
        avg_batch_seconds=avg_batch,
        p95_batch_seconds=p95_batch,
    )
    logger.info(
        "import done file=%s components=%d rows=%d skipped=%d",
        file_name,
        result.components_created,
        result.rows_processed,
        result.rows_skipped,
    )
    return result


def import_file(
    path: Path | str,
    project_id: str | None = None,
    config: ImportConfig | None = None,
    store: TakeoffStore | None = None,
    permission_gate: PermissionGate | None = None,
) -> ImportResult:
    """Read ``path`` and delegate to import_takeoff().

    Raises:
        FileNotFoundError: path does not exist
    """
    path = Path(path)
    data = path.read_bytes()
    return import_takeoff(
        data,
        project_id=project_id,
        config=config,
        store=store,
        permission_gate=permission_gate,
        file_name=path.name,
    )
