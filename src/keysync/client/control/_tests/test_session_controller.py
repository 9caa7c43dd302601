from __future__ import annotations

import json
from typing import Callable

import pytest

from keysync.client.bindings import (
    BindingReconciler,
    CategoryOrderIndex,
    InMemoryBindingRegistry,
)
from keysync.client.control import SessionController, SessionState, category_tag
from keysync.protocol import ActionDescriptor, encode_catalog


class _MainLoopStub:
    """Collect tasks the way a host main loop would, run them on drain()."""

    def __init__(self) -> None:
        self.tasks: list[Callable[[], None]] = []
        self.delayed: list[tuple[int, Callable[[], None]]] = []

    def run_on_main_thread(self, task: Callable[[], None]) -> None:
        self.tasks.append(task)

    def run_after_delay(self, ticks: int, task: Callable[[], None]) -> None:
        self.delayed.append((ticks, task))

    def drain(self) -> int:
        ran = 0
        while self.tasks:
            self.tasks.pop(0)()
            ran += 1
        return ran


def _catalog(*ids: str) -> bytes:
    return encode_catalog(
        [ActionDescriptor(id=action_id, label=action_id.title(), default_trigger=65 + i) for i, action_id in enumerate(ids)]
    )


@pytest.fixture
def loop() -> _MainLoopStub:
    return _MainLoopStub()


@pytest.fixture
def registry() -> InMemoryBindingRegistry:
    return InMemoryBindingRegistry()


@pytest.fixture
def index() -> CategoryOrderIndex:
    return CategoryOrderIndex({"key.categories.misc": 7})


@pytest.fixture
def sent() -> list[bytes]:
    return []


@pytest.fixture
def controller(loop, registry, index, sent) -> SessionController:
    return SessionController(BindingReconciler(registry, index), loop, sent.append)


def test_category_tag_fallback() -> None:
    assert category_tag("Lobby") == "Server: Lobby"
    assert category_tag(None) == "Server: Remote server"
    assert category_tag("   ") == "Server: Remote server"


def test_connect_then_sync_transitions(controller, loop) -> None:
    assert controller.state is SessionState.DISCONNECTED

    controller.on_connected()
    loop.drain()
    assert controller.state is SessionState.CONNECTED_UNSYNCED

    controller.on_sync_message(_catalog("a", "b"), "Lobby")
    assert controller.active_bindings == {}  # nothing touched before the main loop runs
    loop.drain()

    assert controller.state is SessionState.SYNCED
    assert set(controller.active_bindings) == {"a", "b"}
    assert controller.category == "Server: Lobby"


def test_resync_keeps_synced_and_diffs(controller, loop) -> None:
    controller.on_connected()
    controller.on_sync_message(_catalog("a", "b"), "Lobby")
    loop.drain()
    handle_b = controller.active_bindings["b"]

    controller.on_sync_message(_catalog("b", "c"), "Lobby")
    loop.drain()

    assert controller.state is SessionState.SYNCED
    assert set(controller.active_bindings) == {"b", "c"}
    assert controller.active_bindings["b"] is handle_b
    assert controller.last_result.additions == {"c"}
    assert controller.last_result.removals == {"a"}


def test_malformed_sync_leaves_state_unchanged(controller, loop, caplog) -> None:
    controller.on_connected()
    controller.on_sync_message(_catalog("a"), "Lobby")
    loop.drain()
    before = controller.active_bindings

    controller.on_sync_message(b'[{"id":"a"}]', "Lobby")
    controller.on_sync_message(b"garbage", "Lobby")

    assert loop.tasks == []
    assert controller.active_bindings == before
    assert controller.state is SessionState.SYNCED
    assert "malformed sync message" in caplog.text


def test_empty_sync_makes_no_change(controller, loop) -> None:
    controller.on_connected()
    loop.drain()

    controller.on_sync_message(b"[]", "Lobby")
    loop.drain()

    assert controller.state is SessionState.CONNECTED_UNSYNCED
    assert controller.active_bindings == {}
    assert controller.category is None


def test_disconnect_teardown(controller, loop, registry, index) -> None:
    controller.on_connected()
    controller.on_sync_message(_catalog("a", "b", "c"), "Lobby")
    controller.on_sync_message(_catalog("a", "d"), "Lobby")
    loop.drain()

    controller.on_disconnected(ConnectionResetError("gone"))
    loop.drain()

    assert controller.state is SessionState.DISCONNECTED
    assert controller.active_bindings == {}
    assert controller.category is None
    assert "Server: Lobby" not in index
    assert registry.bindings == []

    controller.on_disconnected()
    loop.drain()
    assert controller.state is SessionState.DISCONNECTED


def test_trigger_drains_every_pending_event_in_order(controller, loop, sent) -> None:
    controller.on_connected()
    controller.on_sync_message(_catalog("a", "b"), "Lobby")
    loop.drain()
    bindings = controller.active_bindings
    bindings["a"].press(2)
    bindings["b"].press(1)

    assert controller.tick() == 3
    assert sent == []  # transmission is itself a main-loop task
    loop.drain()

    assert [json.loads(raw)["action_id"] for raw in sent] == ["a", "a", "b"]
    assert controller.notices_sent == 3
    assert controller.tick() == 0


def test_tick_ignored_until_synced(controller, loop, registry) -> None:
    controller.on_connected()
    loop.drain()
    stray = registry.create_binding("x", 1, "c")
    stray.press()

    assert controller.tick() == 0
    loop.drain()


def test_tick_respects_inactive_session(loop, registry, sent) -> None:
    active = {"value": False}
    controller = SessionController(
        BindingReconciler(registry),
        loop,
        sent.append,
        session_active=lambda: active["value"],
    )
    controller.on_sync_message(_catalog("a"), "Lobby")
    loop.drain()
    controller.active_bindings["a"].press()

    assert controller.tick() == 0
    active["value"] = True
    assert controller.tick() == 1
    loop.drain()
    assert sent == [b'{"action_id":"a"}']


def test_send_failure_is_logged_not_raised(loop, registry, caplog) -> None:
    def _broken(payload: bytes) -> None:
        raise ConnectionError("closed")

    controller = SessionController(BindingReconciler(registry), loop, _broken)
    controller.on_sync_message(_catalog("a"), "Lobby")
    loop.drain()
    controller.active_bindings["a"].press()

    controller.tick()
    loop.drain()

    assert controller.notices_sent == 0
    assert "Failed to send invocation notice" in caplog.text


class _DisposeFailsRegistry(InMemoryBindingRegistry):
    def dispose_binding(self, handle) -> None:
        if handle.label == "A":
            raise RuntimeError("host refused dispose")
        super().dispose_binding(handle)


def test_disconnect_is_unconditional_when_dispose_fails(loop, index, sent) -> None:
    registry = _DisposeFailsRegistry()
    controller = SessionController(BindingReconciler(registry, index), loop, sent.append)
    controller.on_connected()
    controller.on_sync_message(_catalog("a", "b"), "Lobby")
    loop.drain()
    handle_a = controller.active_bindings["a"]

    controller.on_disconnected(ConnectionResetError("peer gone"))
    loop.drain()
    handle_a.press()

    assert controller.state is SessionState.DISCONNECTED
    assert controller.active_bindings == {}
    assert controller.category is None
    assert controller.tick() == 0
    loop.drain()
    assert sent == []


def test_notice_dropped_by_transport_is_not_counted(loop, registry, caplog) -> None:
    controller = SessionController(BindingReconciler(registry), loop, lambda payload: False)
    controller.on_sync_message(_catalog("a"), "Lobby")
    loop.drain()
    controller.active_bindings["a"].press()

    assert controller.tick() == 1
    loop.drain()

    assert controller.notices_sent == 0
    assert "Invocation notice for 'a' dropped" in caplog.text
