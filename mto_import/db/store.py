from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Any

from psycopg2.extras import Json, execute_values

from ..models.component import ExplodedComponent
from .batch_insert import BatchMetrics, InsertResult, batch_insert, rows_per_batch

"""PostgreSQL access for the takeoff import.

PostgresTakeoffStore wraps a psycopg2 cursor and issues every statement the
transaction coordinator needs. It never commits on its own: BEGIN / COMMIT /
ROLLBACK are explicit calls so the coordinator owns the transaction boundary.

Tables (see schema.sql):
    drawings(id, project_id, drawing_no_raw, drawing_no_norm, is_retired)
    components(id, project_id, drawing_id, component_type,
               progress_template_id, identity_key, attributes,
               area_id, system_id, test_package_id)
    progress_templates(id, component_type)
    areas / systems / test_packages(id, project_id, name)
"""

logger = logging.getLogger(__name__)

__all__ = [
    "COMPONENT_COLUMNS",
    "METADATA_TABLES",
    "KEY_LOOKUP_CHUNK",
    "PostgresTakeoffStore",
]

COMPONENT_COLUMNS = (
    "project_id",
    "drawing_id",
    "component_type",
    "progress_template_id",
    "identity_key",
    "attributes",
    "area_id",
    "system_id",
    "test_package_id",
)

# metadata kind -> 親テーブル
METADATA_TABLES = {
    "area": "areas",
    "system": "systems",
    "test_package": "test_packages",
}

# = ANY(%s) に渡す配列の最大長
KEY_LOOKUP_CHUNK = 5_000


def _chunks(items: Sequence[Any], size: int) -> Iterable[Sequence[Any]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


class PostgresTakeoffStore:
    """Statement layer over a psycopg2 cursor (autocommit off)."""

    def __init__(self, cursor: Any, max_parameters: int = 65_535) -> None:
        self.cursor = cursor
        self.max_parameters = max_parameters

    # --- transaction boundary -------------------------------------------------
    def begin(self) -> None:
        self.cursor.execute("BEGIN")

    def commit(self) -> None:
        self.cursor.execute("COMMIT")

    def rollback(self) -> None:
        self.cursor.execute("ROLLBACK")

    def set_statement_timeout(self, timeout_ms: int) -> None:
        # SET LOCAL はトランザクション終了で自動的に戻る
        self.cursor.execute(f"SET LOCAL statement_timeout = {int(timeout_ms)}")

    # --- reads ----------------------------------------------------------------
    def fetch_existing_identity_keys(self, project_id: str, keys: Sequence[str]) -> set[str]:
        """Return the subset of ``keys`` already stored for the project."""
        found: set[str] = set()
        unique = list(dict.fromkeys(keys))
        for chunk in _chunks(unique, KEY_LOOKUP_CHUNK):
            self.cursor.execute(
                "SELECT identity_key FROM components WHERE project_id = %s AND identity_key = ANY(%s)",
                (project_id, list(chunk)),
            )
            found.update(r[0] for r in self.cursor.fetchall())
        return found

    def fetch_progress_templates(self, component_types: Iterable[str]) -> dict[str, Any]:
        """Map lowercase component type -> progress template id (read only)."""
        wanted = sorted({t.lower() for t in component_types})
        if not wanted:
            return {}
        self.cursor.execute(
            "SELECT id, component_type FROM progress_templates WHERE lower(component_type) = ANY(%s)",
            (wanted,),
        )
        templates: dict[str, Any] = {}
        for template_id, component_type in self.cursor.fetchall():
            templates.setdefault(component_type.lower(), template_id)
        return templates

    # --- writes ---------------------------------------------------------------
    def upsert_drawings(self, project_id: str, drawings_raw: Sequence[str]) -> tuple[dict[str, Any], int]:
        """Insert or reuse drawings.

        drawing_no_norm is filled by the normalize_drawing_number trigger, so
        only the raw text is sent. Returns ({drawing_no_norm: id}, created)
        where ``created`` counts rows that did not exist before.
        """
        if not drawings_raw:
            return {}, 0
        sql = (
            "INSERT INTO drawings (project_id, drawing_no_raw, is_retired) VALUES %s "
            "ON CONFLICT (project_id, drawing_no_norm) DO UPDATE SET is_retired = drawings.is_retired "
            "RETURNING id, drawing_no_norm, (xmax = 0) AS inserted"
        )
        rows = [(project_id, raw, False) for raw in drawings_raw]
        page_size = rows_per_batch(3, self.max_parameters)
        returned = execute_values(self.cursor, sql, rows, page_size=page_size, fetch=True)
        mapping: dict[str, Any] = {}
        created = 0
        for drawing_id, norm, inserted in returned:
            mapping[norm] = drawing_id
            if inserted:
                created += 1
        return mapping, created

    def upsert_metadata(self, project_id: str, kind: str, names: Sequence[str]) -> tuple[dict[str, Any], int]:
        """Insert or reuse area / system / test package records by name.

        Returns ({name: id}, created).
        """
        if not names:
            return {}, 0
        table = METADATA_TABLES[kind]
        sql = (
            f"INSERT INTO {table} (project_id, name) VALUES %s "
            "ON CONFLICT (project_id, name) DO UPDATE SET name = EXCLUDED.name "
            "RETURNING id, name, (xmax = 0) AS inserted"
        )
        rows = [(project_id, name) for name in names]
        page_size = rows_per_batch(2, self.max_parameters)
        returned = execute_values(self.cursor, sql, rows, page_size=page_size, fetch=True)
        mapping: dict[str, Any] = {}
        created = 0
        for record_id, name, inserted in returned:
            mapping[name] = record_id
            if inserted:
                created += 1
        return mapping, created

    def insert_components(
        self,
        project_id: str,
        components: Sequence[ExplodedComponent],
        drawing_ids: Mapping[str, Any],
        template_ids: Mapping[str, Any],
        metrics_callback: Callable[[BatchMetrics], None] | None = None,
        metadata_ids: Mapping[str, Mapping[str, Any]] | None = None,
    ) -> InsertResult:
        """Batched component insert.

        metadata_ids maps kind -> {name: id}; components without a name for a
        kind get NULL in that column.
        """
        links = metadata_ids or {}

        def _link(c: ExplodedComponent, kind: str) -> Any:
            name = c.metadata.get(kind)
            return None if name is None else links.get(kind, {}).get(name)

        rows = [
            (
                project_id,
                drawing_ids[c.drawing_norm],
                c.component_type.db_value,
                template_ids.get(c.component_type.db_value),
                c.identity_key,
                Json(c.attributes),
                _link(c, "area"),
                _link(c, "system"),
                _link(c, "test_package"),
            )
            for c in components
        ]
        result = batch_insert(
            self.cursor,
            "components",
            COMPONENT_COLUMNS,
            rows,
            max_parameters=self.max_parameters,
            metrics_callback=metrics_callback,
        )
        logger.debug("components inserted=%d batches=%d", result.inserted_rows, result.batches)
        return result
