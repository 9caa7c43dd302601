"""Server catalog -> client bindings -> trigger -> server command, in-process."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from typing import Callable

import pytest

pytest.importorskip("websockets")

from keysync.client.bindings import BindingReconciler, CategoryOrderIndex, InMemoryBindingRegistry
from keysync.client.control import SessionController, SessionState
from keysync.server.catalog import ActionCatalog
from keysync.server.config import ServerConfig
from keysync.server.control.channel_server import KeysyncServer
from keysync.server.control.principals import Principal


class _Loop:
    def __init__(self) -> None:
        self.tasks: list[Callable[[], None]] = []
        self.delayed: list[Callable[[], None]] = []

    def run_on_main_thread(self, task: Callable[[], None]) -> None:
        self.tasks.append(task)

    def run_after_delay(self, ticks: int, task: Callable[[], None]) -> None:
        self.delayed.append(task)

    def drain(self) -> None:
        while self.tasks or self.delayed:
            if self.delayed:
                self.delayed.pop(0)()
            else:
                self.tasks.pop(0)()


class _Pipe:
    """Stands in for the server side websocket; delivers straight to the client."""

    def __init__(self, controller: SessionController) -> None:
        self.request = SimpleNamespace(path="/keysync:main?principal=alex")
        self._controller = controller

    async def send(self, payload: bytes) -> None:
        self._controller.on_sync_message(payload, "Lobby")


def test_press_runs_command_as_principal() -> None:
    catalog = ActionCatalog()
    catalog.load([{"id": "open_menu", "label": "Open Menu", "default_key": 77, "command": "/menu open"}])
    server_loop, client_loop = _Loop(), _Loop()
    server = KeysyncServer(ServerConfig(), catalog, scheduler=server_loop)
    executed: list[tuple[str, list[str]]] = []
    server.commands.register_command("menu", lambda principal, args: executed.append((principal.name, list(args))))

    registry = InMemoryBindingRegistry()
    holder: dict = {}
    controller = SessionController(
        BindingReconciler(registry, CategoryOrderIndex()),
        client_loop,
        lambda payload: server.ingest_notice(holder["session"], payload),
    )

    async def runner() -> None:
        controller.on_connected()
        holder["session"] = server.open_session(Principal("alex"), _Pipe(controller))
        server_loop.drain()
        await asyncio.sleep(0)
        client_loop.drain()

        assert controller.state is SessionState.SYNCED
        assert controller.category == "Server: Lobby"
        [handle] = registry.by_trigger(77)
        assert handle.label == "Open Menu"

        handle.press()
        assert controller.tick() == 1
        client_loop.drain()
        server_loop.drain()

    asyncio.run(runner())

    assert executed == [("alex", ["open"])]
    assert controller.notices_sent == 1


def test_disconnect_clears_bindings_and_stops_notices() -> None:
    catalog = ActionCatalog()
    catalog.load([{"id": "open_menu", "label": "Open Menu", "default_key": 77, "command": "menu open"}])
    server_loop, client_loop = _Loop(), _Loop()
    server = KeysyncServer(ServerConfig(), catalog, scheduler=server_loop)
    registry = InMemoryBindingRegistry()
    sent: list[bytes] = []
    controller = SessionController(BindingReconciler(registry, CategoryOrderIndex()), client_loop, sent.append)

    async def runner() -> None:
        controller.on_connected()
        session = server.open_session(Principal("alex"), _Pipe(controller))
        server_loop.drain()
        await asyncio.sleep(0)
        client_loop.drain()
        [handle] = registry.by_trigger(77)

        controller.on_disconnected(ConnectionResetError("peer gone"))
        server.close_session(session)
        client_loop.drain()

        handle.press()
        assert controller.tick() == 0

    asyncio.run(runner())

    assert controller.state is SessionState.DISCONNECTED
    assert controller.active_bindings == {}
    assert registry.by_trigger(77) == []
    assert controller.category is None
    assert sent == []
