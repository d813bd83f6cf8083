from __future__ import annotations

import pytest
from psycopg2.extras import Json

import mto_import.db.store as store_mod
from mto_import.db.store import COMPONENT_COLUMNS, PostgresTakeoffStore
from mto_import.models.component import ExplodedComponent
from mto_import.models.component_type import ComponentTaxonomy

TAXONOMY = ComponentTaxonomy.default()


def _component(
    key: str, type_name: str = "Valve", drawing_norm: str = "P-001", metadata: dict | None = None
) -> ExplodedComponent:
    return ExplodedComponent(
        identity_key=key,
        component_type=TAXONOMY.match(type_name),
        drawing_raw=drawing_norm,
        drawing_norm=drawing_norm,
        row_number=2,
        sequence=1,
        attributes={"seq": 1},
        metadata=metadata or {},
    )


def test_transaction_statements(cursor_factory):
    cur = cursor_factory()
    store = PostgresTakeoffStore(cur)
    store.begin()
    store.set_statement_timeout(1500)
    store.commit()
    store.rollback()
    assert [sql for sql, _ in cur.executed] == [
        "BEGIN",
        "SET LOCAL statement_timeout = 1500",
        "COMMIT",
        "ROLLBACK",
    ]


def test_existing_keys_lookup_is_chunked(cursor_factory, monkeypatch):
    monkeypatch.setattr(store_mod, "KEY_LOOKUP_CHUNK", 2)
    cur = cursor_factory(results=[[("A",)], [], [("E",)]])
    store = PostgresTakeoffStore(cur)
    found = store.fetch_existing_identity_keys("proj", ["A", "B", "C", "D", "E", "A"])
    assert found == {"A", "E"}
    # 重複キーは 1 回だけ問い合わせる
    assert [params[1] for _, params in cur.executed] == [["A", "B"], ["C", "D"], ["E"]]
    assert all(params[0] == "proj" for _, params in cur.executed)


def test_progress_templates_lowercased(cursor_factory):
    cur = cursor_factory(results=[[("t1", "Valve"), ("t2", "instrument"), ("t3", "valve")]])
    store = PostgresTakeoffStore(cur)
    templates = store.fetch_progress_templates(["valve", "Instrument"])
    assert templates == {"valve": "t1", "instrument": "t2"}
    assert cur.executed[0][1] == (["instrument", "valve"],)


def test_progress_templates_empty_request(cursor_factory):
    cur = cursor_factory()
    assert PostgresTakeoffStore(cur).fetch_progress_templates([]) == {}
    assert cur.executed == []


def test_upsert_drawings(cursor_factory, monkeypatch):
    captured = {}

    def fake_execute_values(cursor, sql, rows, template=None, page_size=100, fetch=False):
        captured.update(sql=sql, rows=rows, page_size=page_size, fetch=fetch)
        return [("id-1", "P-001", True), ("id-2", "P-002", False)]

    monkeypatch.setattr(store_mod, "execute_values", fake_execute_values)
    store = PostgresTakeoffStore(cursor_factory(), max_parameters=9)
    mapping, created = store.upsert_drawings("proj", [" p-001", "P-002"])
    assert mapping == {"P-001": "id-1", "P-002": "id-2"}
    assert created == 1
    assert "ON CONFLICT (project_id, drawing_no_norm)" in captured["sql"]
    assert "RETURNING id, drawing_no_norm" in captured["sql"]
    # drawing_no_norm はトリガが設定するので送らない
    assert captured["rows"] == [("proj", " p-001", False), ("proj", "P-002", False)]
    assert captured["page_size"] == 3
    assert captured["fetch"] is True


def test_upsert_drawings_empty(cursor_factory):
    assert PostgresTakeoffStore(cursor_factory()).upsert_drawings("proj", []) == ({}, 0)


def test_insert_components_rows(cursor_factory, monkeypatch):
    import mto_import.db.batch_insert as bi

    pages: list[list[tuple]] = []

    def fake_execute_values(cursor, sql, rows, template=None, page_size=100, fetch=False):
        pages.append(list(rows))

    monkeypatch.setattr(bi, "execute_values", fake_execute_values)
    store = PostgresTakeoffStore(cursor_factory(), max_parameters=len(COMPONENT_COLUMNS) * 2)
    components = [_component("V-001"), _component("V-002"), _component("ME-1", "Instrument", "P-002")]
    result = store.insert_components(
        "proj", components, {"P-001": "d1", "P-002": "d2"}, {"valve": "tpl-v"}
    )
    assert result.inserted_rows == 3
    assert [len(p) for p in pages] == [2, 1]
    first = pages[0][0]
    assert first[:5] == ("proj", "d1", "valve", "tpl-v", "V-001")
    assert isinstance(first[5], Json)
    assert first[6:] == (None, None, None)
    # テンプレート無しの型は NULL
    assert pages[1][0][3] is None


def test_insert_components_unknown_drawing(cursor_factory):
    store = PostgresTakeoffStore(cursor_factory())
    with pytest.raises(KeyError):
        store.insert_components("proj", [_component("V-001")], {}, {})


def test_upsert_metadata(cursor_factory, monkeypatch):
    captured = {}

    def fake_execute_values(cursor, sql, rows, template=None, page_size=100, fetch=False):
        captured.update(sql=sql, rows=rows, page_size=page_size, fetch=fetch)
        return [("a-1", "North", True), ("a-2", "South", False)]

    monkeypatch.setattr(store_mod, "execute_values", fake_execute_values)
    store = PostgresTakeoffStore(cursor_factory(), max_parameters=9)
    mapping, created = store.upsert_metadata("proj", "area", ["North", "South"])
    assert mapping == {"North": "a-1", "South": "a-2"}
    assert created == 1
    assert captured["sql"].startswith("INSERT INTO areas (project_id, name)")
    assert "ON CONFLICT (project_id, name)" in captured["sql"]
    assert captured["rows"] == [("proj", "North"), ("proj", "South")]
    assert captured["page_size"] == 4
    assert captured["fetch"] is True


def test_upsert_metadata_empty_and_unknown_kind(cursor_factory):
    store = PostgresTakeoffStore(cursor_factory())
    assert store.upsert_metadata("proj", "system", []) == ({}, 0)
    with pytest.raises(KeyError):
        store.upsert_metadata("proj", "zone", ["Z1"])


def test_insert_components_links_metadata(cursor_factory, monkeypatch):
    import mto_import.db.batch_insert as bi

    pages: list[list[tuple]] = []

    def fake_execute_values(cursor, sql, rows, template=None, page_size=100, fetch=False):
        pages.append(list(rows))

    monkeypatch.setattr(bi, "execute_values", fake_execute_values)
    store = PostgresTakeoffStore(cursor_factory())
    components = [
        _component("V-001", metadata={"area": "North", "test_package": "TP-1"}),
        _component("V-002"),
    ]
    store.insert_components(
        "proj",
        components,
        {"P-001": "d1"},
        {},
        metadata_ids={"area": {"North": "a-1"}, "test_package": {"TP-1": "tp-1"}},
    )
    rows = pages[0]
    assert rows[0][6:] == ("a-1", None, "tp-1")
    assert rows[1][6:] == (None, None, None)
