from __future__ import annotations

import json
import logging
import threading

import pytest

from keysync.protocol import ActionDescriptor, decode_catalog
from keysync.server.catalog import (
    ActionCatalog,
    ActionDefinition,
    ConfigError,
    JsonConfigStore,
    parse_definition,
)


def _record(**overrides):
    record = {"id": "open_menu", "label": "Open Menu", "default_key": 77, "command": "menu open", "permission": ""}
    record.update(overrides)
    return record


def test_parse_definition() -> None:
    definition = parse_definition(_record(command="/menu open", permission="menu.use"))

    assert definition == ActionDefinition(
        id="open_menu", label="Open Menu", default_trigger=77, command="menu open", permission="menu.use"
    )
    assert definition.requires_permission
    assert definition.descriptor() == ActionDescriptor("open_menu", "Open Menu", 77)


def test_parse_definition_defaults() -> None:
    definition = parse_definition({"id": "a", "label": "A", "command": "x"})
    assert definition.default_trigger == 0
    assert definition.permission == ""
    assert not definition.requires_permission


@pytest.mark.parametrize(
    "record",
    [
        "not a mapping",
        _record(id=""),
        _record(label=None),
        _record(command="  "),
        _record(default_key="M"),
        _record(default_key=True),
    ],
)
def test_parse_definition_rejects(record) -> None:
    with pytest.raises(ConfigError):
        parse_definition(record)


def test_load_skips_bad_entries_and_keeps_order(caplog) -> None:
    catalog = ActionCatalog()
    with caplog.at_level(logging.WARNING):
        loaded = catalog.load(
            [
                _record(id="b", label="B"),
                {"id": "broken"},
                42,
                _record(id="a", label="A"),
            ]
        )

    assert [d.id for d in loaded] == ["b", "a"]
    assert [d.id for d in catalog.all()] == ["b", "a"]
    assert catalog.lookup("broken") is None
    assert "Skipping catalog entry 1" in caplog.text
    assert "Skipping catalog entry 2" in caplog.text


def test_duplicate_catalog_ids_keep_last(caplog) -> None:
    catalog = ActionCatalog()
    catalog.load([_record(id="a", label="first"), _record(id="b"), _record(id="a", label="second")])

    assert catalog.lookup("a").label == "second"
    assert [d.id for d in catalog.all()] == ["b", "a"]
    assert "Duplicate action id" in caplog.text


def test_encode_sync_matches_wire_shape() -> None:
    catalog = ActionCatalog()
    assert catalog.encode_sync() is None

    catalog.load([_record()])

    raw = catalog.encode_sync()
    assert json.loads(raw) == [{"id": "open_menu", "label": "Open Menu", "default_key": 77}]
    assert decode_catalog(raw) == [ActionDescriptor("open_menu", "Open Menu", 77)]


def test_reload_replaces_catalog_wholesale(tmp_path) -> None:
    path = tmp_path / "keysync.json"
    path.write_text(json.dumps({"actions": [_record(id="a"), _record(id="b")]}))
    catalog = ActionCatalog(JsonConfigStore(path))
    catalog.reload()
    old_a = catalog.lookup("a")

    path.write_text(json.dumps({"actions": [_record(id="b", label="B2"), _record(id="c")]}))
    catalog.reload()

    assert catalog.lookup("a") is None
    assert catalog.lookup("b").label == "B2"
    assert "c" in catalog
    assert len(catalog) == 2
    assert old_a.id == "a"


def test_reload_without_source_fails() -> None:
    with pytest.raises(RuntimeError):
        ActionCatalog().reload()


def test_lookup_during_reload_sees_whole_catalog() -> None:
    old = [_record(id=f"old{i}") for i in range(200)]
    new = [_record(id=f"new{i}") for i in range(200)]
    catalog = ActionCatalog()
    catalog.load(old)
    observed: list[tuple[bool, bool]] = []
    stop = threading.Event()

    def reader() -> None:
        while not stop.is_set():
            snapshot = catalog.all()
            ids = {d.id for d in snapshot}
            observed.append((ids == {f"old{i}" for i in range(200)}, ids == {f"new{i}" for i in range(200)}))

    thread = threading.Thread(target=reader)
    thread.start()
    for _ in range(20):
        catalog.load(new)
        catalog.load(old)
    stop.set()
    thread.join()

    assert observed
    assert all(is_old or is_new for is_old, is_new in observed)
