from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from ..db.batch_insert import BatchMetrics, InsertResult
from ..exceptions import DuplicateKeyError, PersistenceError
from ..models.component import ExplodedComponent
from .duplicates import ensure_not_persisted

"""Transaction coordinator.

All writes for one import happen inside a single transaction:

    BEGIN
    SET LOCAL statement_timeout
    cross-persisted identity check (read)
    upsert drawings (ON CONFLICT project_id, drawing_no_norm)
    verify every expected normalized drawing came back
    upsert areas / systems / test packages named by the rows
    progress template lookup (read)
    batched component insert
    COMMIT

Any failure rolls back everything, drawing upserts included. Database errors
are wrapped in PersistenceError; identity collisions found in step 3 surface
as DuplicateKeyError so they are reported per row like in-file duplicates.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "TakeoffStore",
    "PersistOutcome",
    "persist_components",
]


class TakeoffStore(Protocol):
    def begin(self) -> None: ...
    def commit(self) -> None: ...
    def rollback(self) -> None: ...
    def set_statement_timeout(self, timeout_ms: int) -> None: ...
    def fetch_existing_identity_keys(self, project_id: str, keys: Sequence[str]) -> set[str]: ...
    def upsert_drawings(self, project_id: str, drawings_raw: Sequence[str]) -> tuple[dict[str, Any], int]: ...
    def upsert_metadata(self, project_id: str, kind: str, names: Sequence[str]) -> tuple[dict[str, Any], int]: ...
    def fetch_progress_templates(self, component_types: Sequence[str]) -> dict[str, Any]: ...
    def insert_components(
        self,
        project_id: str,
        components: Sequence[ExplodedComponent],
        drawing_ids: dict[str, Any],
        template_ids: dict[str, Any],
        metrics_callback: Callable[[BatchMetrics], None] | None = None,
        metadata_ids: dict[str, dict[str, Any]] | None = None,
    ) -> InsertResult: ...


@dataclass(frozen=True)
class PersistOutcome:
    components_inserted: int = 0
    drawings_created: int = 0
    drawings_reused: int = 0
    batches: int = 0
    # kind -> 新規作成数 (area / system / test_package)
    metadata_created: dict[str, int] = field(default_factory=dict)


def _distinct_drawings(components: Sequence[ExplodedComponent]) -> dict[str, str]:
    """normalized -> first raw spelling seen (file order)."""
    drawings: dict[str, str] = {}
    for c in components:
        drawings.setdefault(c.drawing_norm, c.drawing_raw)
    return drawings


def _distinct_metadata(components: Sequence[ExplodedComponent]) -> dict[str, list[str]]:
    """kind -> names in file order, each once."""
    names: dict[str, dict[str, None]] = {}
    for c in components:
        for kind, name in c.metadata.items():
            names.setdefault(kind, {})[name] = None
    return {kind: list(seen) for kind, seen in names.items()}


def _safe_rollback(store: TakeoffStore) -> None:
    try:
        store.rollback()
    except Exception:
        # 元の例外を優先する
        logger.exception("rollback failed")


def persist_components(
    store: TakeoffStore,
    project_id: str,
    components: Sequence[ExplodedComponent],
    statement_timeout_ms: int | None = None,
    metrics_callback: Callable[[BatchMetrics], None] | None = None,
) -> PersistOutcome:
    """Write drawings and components atomically.

    Raises:
        DuplicateKeyError: a candidate identity key is already stored for the project
        PersistenceError: any database failure (transaction rolled back)
    """
    if not components:
        return PersistOutcome()

    drawings = _distinct_drawings(components)
    try:
        store.begin()
    except Exception as e:
        raise PersistenceError("could not begin transaction", detail=str(e)) from e

    try:
        if statement_timeout_ms:
            store.set_statement_timeout(statement_timeout_ms)

        existing = store.fetch_existing_identity_keys(project_id, [c.identity_key for c in components])
        ensure_not_persisted(components, existing)

        drawing_ids, created = store.upsert_drawings(project_id, list(drawings.values()))
        missing = [norm for norm in drawings if norm not in drawing_ids]
        if missing:
            # DB 側の正規化結果が一致しない
            sample = ", ".join(repr(drawings[n]) for n in missing[:5])
            raise PersistenceError(
                "drawing normalization mismatch",
                detail=(
                    f"{len(missing)} drawing(s) not returned by normalized key after upsert: {sample}; "
                    f"store returned {sorted(drawing_ids)[:5]}"
                ),
            )

        metadata_ids: dict[str, dict[str, Any]] = {}
        metadata_created: dict[str, int] = {}
        for kind, names in _distinct_metadata(components).items():
            metadata_ids[kind], metadata_created[kind] = store.upsert_metadata(project_id, kind, names)

        type_values = sorted({c.component_type.db_value for c in components})
        templates = store.fetch_progress_templates(type_values)
        untemplated = [t for t in type_values if t not in templates]
        if untemplated:
            logger.debug("no progress template for types: %s", untemplated)

        result = store.insert_components(
            project_id,
            components,
            drawing_ids,
            templates,
            metrics_callback=metrics_callback,
            metadata_ids=metadata_ids,
        )
        store.commit()
    except DuplicateKeyError:
        _safe_rollback(store)
        raise
    except PersistenceError:
        _safe_rollback(store)
        raise
    except Exception as e:
        _safe_rollback(store)
        raise PersistenceError(f"import transaction failed: {type(e).__name__}", detail=str(e)) from e

    outcome = PersistOutcome(
        components_inserted=result.inserted_rows,
        drawings_created=created,
        drawings_reused=len(drawings) - created,
        batches=result.batches,
        metadata_created=metadata_created,
    )
    logger.debug(
        "committed project=%s components=%d drawings created=%d reused=%d",
        project_id,
        outcome.components_inserted,
        outcome.drawings_created,
        outcome.drawings_reused,
    )
    return outcome
