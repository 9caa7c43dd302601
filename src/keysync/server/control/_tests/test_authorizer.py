from __future__ import annotations

import logging
from typing import Callable

import pytest

from keysync.server.catalog import ActionCatalog
from keysync.server.control.authorizer import Accept, InvocationAuthorizer, Reject, RejectReason
from keysync.server.control.principals import Principal


class _ImmediateLoop:
    def __init__(self) -> None:
        self.submitted = 0

    def run_on_main_thread(self, task: Callable[[], None]) -> None:
        self.submitted += 1
        task()

    def run_after_delay(self, ticks: int, task: Callable[[], None]) -> None:
        task()


class _RecordingExecutor:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []

    def run_as_principal(self, principal: Principal, command: str) -> None:
        self.calls.append((principal.name, command))


@pytest.fixture
def catalog() -> ActionCatalog:
    catalog = ActionCatalog()
    catalog.load(
        [
            {"id": "open_menu", "label": "Open Menu", "default_key": 77, "command": "menu open", "permission": ""},
            {"id": "fly", "label": "Fly", "default_key": 70, "command": "fly", "permission": "essentials.fly"},
        ]
    )
    return catalog


@pytest.fixture
def executor() -> _RecordingExecutor:
    return _RecordingExecutor()


@pytest.fixture
def loop() -> _ImmediateLoop:
    return _ImmediateLoop()


@pytest.fixture
def authorizer(catalog, executor, loop) -> InvocationAuthorizer:
    return InvocationAuthorizer(catalog, executor, loop)


def test_unknown_action_rejected_and_logged(authorizer, caplog) -> None:
    with caplog.at_level(logging.WARNING):
        decision = authorizer.authorize("unknown-id", Principal("alex", frozenset({"*"})))

    assert decision == Reject(reason=RejectReason.UNKNOWN_ACTION, action_id="unknown-id")
    assert "Unknown action 'unknown-id'" in caplog.text


def test_unknown_action_for_empty_catalog(executor, loop) -> None:
    authorizer = InvocationAuthorizer(ActionCatalog(), executor, loop)
    decision = authorizer.dispatch("open_menu", Principal("alex"))

    assert isinstance(decision, Reject)
    assert decision.reason is RejectReason.UNKNOWN_ACTION
    assert executor.calls == []
    assert authorizer.stats.unknown == 1


def test_permission_denied_when_missing(authorizer, executor, caplog) -> None:
    with caplog.at_level(logging.INFO):
        decision = authorizer.dispatch("fly", Principal("alex"))

    assert decision == Reject(reason=RejectReason.PERMISSION_DENIED, action_id="fly", permission="essentials.fly")
    assert executor.calls == []
    assert authorizer.stats.denied == 1
    assert "lacks permission 'essentials.fly'" in caplog.text


@pytest.mark.parametrize(
    "permissions",
    [frozenset({"essentials.fly"}), frozenset({"*"})],
)
def test_permission_granted(authorizer, executor, permissions) -> None:
    decision = authorizer.dispatch("fly", Principal("alex", permissions))

    assert isinstance(decision, Accept)
    assert decision.definition.command == "fly"
    assert executor.calls == [("alex", "fly")]


def test_unrestricted_action_accepted_for_anyone(authorizer, executor, loop) -> None:
    decision = authorizer.dispatch("open_menu", Principal("guest"))

    assert isinstance(decision, Accept)
    assert executor.calls == [("guest", "menu open")]
    assert loop.submitted == 1
    assert authorizer.stats.accepted == 1


def test_authorize_does_not_execute(authorizer, executor) -> None:
    assert isinstance(authorizer.authorize("open_menu", Principal("guest")), Accept)
    assert executor.calls == []


def test_each_notice_executes_exactly_once(authorizer, executor) -> None:
    for _ in range(3):
        authorizer.dispatch("open_menu", Principal("guest"))

    assert executor.calls == [("guest", "menu open")] * 3
