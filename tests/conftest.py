# Shared pytest fixtures
from __future__ import annotations

import json
import tempfile
from pathlib import Path
from typing import Any

import pytest

from mto_import.db.batch_insert import BatchMetrics, InsertResult

HEADER = "DRAWING,TYPE,QTY,CMDTY CODE,SPEC,DESCRIPTION,SIZE,COMMENTS"
FIXTURES = Path(__file__).parent / "fixtures"


def make_csv(*lines: str, header: str = HEADER) -> bytes:
    """Build UTF-8 takeoff bytes from a header and data lines."""
    return ("\n".join([header, *lines]) + "\n").encode("utf-8")


class FakeStore:
    """In-memory TakeoffStore.

    Records every call in ``calls``; ``fail_on`` names a method that raises
    RuntimeError when reached. ``existing_keys`` simulates persisted components.
    """

    def __init__(self, existing_keys: set[str] | None = None, fail_on: str | None = None) -> None:
        self.calls: list[str] = []
        self.existing_keys = set(existing_keys or ())
        self.fail_on = fail_on
        self.known_drawings: set[str] = set()
        self.templates = {"valve": "tpl-valve", "instrument": "tpl-instrument"}
        self.inserted: list[tuple[Any, ...]] = []
        # identity_key -> attributes / {kind: id}
        self.component_attributes: dict[str, dict[str, Any]] = {}
        self.component_links: dict[str, dict[str, Any]] = {}
        self.known_metadata: dict[str, set[str]] = {}
        self.committed = False
        self.rolled_back = False
        # 正規化不一致の再現用 (raw -> 返す norm)
        self.norm_override: dict[str, str] = {}

    def _enter(self, name: str) -> None:
        self.calls.append(name)
        if self.fail_on == name:
            raise RuntimeError(f"simulated failure in {name}")

    def begin(self) -> None:
        self._enter("begin")

    def commit(self) -> None:
        self._enter("commit")
        self.committed = True

    def rollback(self) -> None:
        self.calls.append("rollback")
        self.rolled_back = True
        self.inserted.clear()
        self.component_attributes.clear()
        self.component_links.clear()

    def set_statement_timeout(self, timeout_ms: int) -> None:
        self._enter("set_statement_timeout")

    def fetch_existing_identity_keys(self, project_id: str, keys) -> set[str]:
        self._enter("fetch_existing_identity_keys")
        return {k for k in keys if k in self.existing_keys}

    def upsert_drawings(self, project_id: str, drawings_raw) -> tuple[dict[str, Any], int]:
        self._enter("upsert_drawings")
        from mto_import.services.normalizer import normalize_drawing

        mapping: dict[str, Any] = {}
        created = 0
        for raw in drawings_raw:
            norm = self.norm_override.get(raw, normalize_drawing(raw))
            if norm not in self.known_drawings:
                created += 1
                self.known_drawings.add(norm)
            mapping[norm] = f"dwg-{norm}"
        return mapping, created

    def upsert_metadata(self, project_id: str, kind: str, names) -> tuple[dict[str, Any], int]:
        self._enter("upsert_metadata")
        known = self.known_metadata.setdefault(kind, set())
        mapping: dict[str, Any] = {}
        created = 0
        for name in names:
            if name not in known:
                created += 1
                known.add(name)
            mapping[name] = f"{kind}-{name}"
        return mapping, created

    def fetch_progress_templates(self, component_types) -> dict[str, Any]:
        self._enter("fetch_progress_templates")
        return {t: self.templates[t] for t in component_types if t in self.templates}

    def insert_components(self, project_id, components, drawing_ids, template_ids, metrics_callback=None,
                          metadata_ids=None):
        self._enter("insert_components")
        links = metadata_ids or {}
        for c in components:
            self.inserted.append(
                (project_id, drawing_ids[c.drawing_norm], c.component_type.db_value,
                 template_ids.get(c.component_type.db_value), c.identity_key)
            )
            self.component_attributes[c.identity_key] = dict(c.attributes)
            self.component_links[c.identity_key] = {
                kind: links.get(kind, {}).get(name) for kind, name in c.metadata.items()
            }
        if metrics_callback is not None and components:
            metrics_callback(
                BatchMetrics(batch_index=1, batch_size=len(components), elapsed_seconds=0.01,
                             start_time=0.0, end_time=0.01)
            )
        return InsertResult(inserted_rows=len(components), batches=1 if components else 0)


class FakeCursor:
    """psycopg2 cursor stand-in: records execute() calls, serves queued fetchall() results."""

    def __init__(self, results: list[list[tuple]] | None = None) -> None:
        self.executed: list[tuple[str, Any]] = []
        self.results = list(results or [])

    def execute(self, sql: str, params: Any = None) -> None:
        self.executed.append((sql, params))

    def fetchall(self) -> list[tuple]:
        return self.results.pop(0) if self.results else []


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture()
def sample_config_yaml() -> str:
    return """project_id: proj-1
limits:
  max_file_bytes: 5242880
  max_rows: 10000
csv:
  delimiter: ","
  ignored_columns: [ITEM]
component_types:
  Valve: bulk
  Instrument: tag
  Support: bulk
  Pipe: bulk
  Fitting: bulk
  Flange: bulk
  Spool: tag
database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: appdb
error_log_dir: ./logs
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "import.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def takeoff_file(temp_workdir: Path) -> Path:
    f = temp_workdir / "data" / "takeoff.csv"
    f.write_bytes(
        make_csv(
            "P-001,Valve,4,VBALU-001,ES-03,Ball valve,2,",
            "P-001,Instrument,1,ME-55402,,Pressure gauge,1/2,",
            "P-002,Support,0,SUP-9,,Pipe shoe,,not needed",
        )
    )
    return f


@pytest.fixture()
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture()
def drawing_cases() -> list[dict[str, str]]:
    return json.loads((FIXTURES / "drawing_normalization.json").read_text(encoding="utf-8"))


@pytest.fixture(autouse=True)
def _reset_logging():
    from mto_import.logging.init import reset_logging

    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def make_takeoff():
    return make_csv


@pytest.fixture()
def store_factory():
    return FakeStore


@pytest.fixture()
def cursor_factory():
    return FakeCursor
