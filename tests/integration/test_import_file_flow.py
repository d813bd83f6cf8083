from __future__ import annotations

import json
from pathlib import Path

from openpyxl import Workbook

from mto_import import import_file
from mto_import.config.loader import load_config
from mto_import.services.orchestrator import import_takeoff


def _write_xlsx(path: Path, rows: list[list[object]]) -> Path:
    wb = Workbook()
    ws = wb.active
    ws.title = "MTO"
    for row in rows:
        ws.append(row)
    wb.save(path)
    return path


def test_import_csv_file_with_config(write_config: Path, takeoff_file: Path, fake_store):
    cfg = load_config(write_config)
    result = import_file(takeoff_file, config=cfg, store=fake_store)
    assert result.success
    assert result.components_created == 5
    assert result.rows_processed == 3
    assert result.rows_skipped == 1
    assert {row[0] for row in fake_store.inserted} == {"proj-1"}
    assert fake_store.calls[0] == "begin"
    assert fake_store.calls[-1] == "commit"


def test_import_xlsx_file(temp_workdir: Path, fake_store):
    path = _write_xlsx(
        temp_workdir / "data" / "takeoff.xlsx",
        [
            ["DRAWING", "TYPE", "QTY", "CMDTY CODE", "SIZE"],
            ["P-10", "Flange", 2, "FL-300", "1/2"],
            ["P-10", "Instrument", 1, "PT-1", None],
        ],
    )
    result = import_file(path, project_id="proj-2", store=fake_store)
    assert result.success
    assert result.components_by_type == {"Flange": 2, "Instrument": 1}
    assert [row[4] for row in fake_store.inserted] == ["FL-300-001", "FL-300-002", "PT-1"]


def test_persistence_failure_writes_error_log(temp_workdir: Path, make_takeoff, store_factory):
    store = store_factory(fail_on="insert_components")
    result = import_takeoff(make_takeoff("P-1,Valve,2,V-1,,,,"), project_id="proj-1", store=store,
                            file_name="takeoff.csv")
    assert not result.success
    assert store.rolled_back
    logs = sorted((temp_workdir / "logs").glob("errors-*.log"))
    assert len(logs) == 1
    record = json.loads(logs[0].read_text(encoding="utf-8").splitlines()[0])
    assert record["file"] == "takeoff.csv"
    assert record["project_id"] == "proj-1"
    assert record["row"] == 0
    assert record["error_type"] == "PERSISTENCE_ERROR"
    assert "simulated failure in insert_components" in record["db_message"]


def test_validation_failure_writes_no_error_log(temp_workdir: Path, make_takeoff, fake_store):
    result = import_takeoff(make_takeoff("P-1,Valve,x,V-1,,,,"), project_id="proj-1", store=fake_store)
    assert not result.success
    assert list((temp_workdir / "logs").glob("errors-*.log")) == []


def test_two_imports_do_not_share_state(make_takeoff, store_factory):
    bad = import_takeoff(make_takeoff("P-1,Valve,x,V-1,,,,"), project_id="proj-1", store=store_factory())
    good = import_takeoff(make_takeoff("P-1,Valve,1,V-1,,,,"), project_id="proj-1", store=store_factory())
    assert not bad.success
    assert good.success
    assert good.errors == []
