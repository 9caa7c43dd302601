"""Client session state machine for keysync.

Transport callbacks arrive on the network thread; they decode and
forward. Everything that touches the active binding set, the category
tag or the outbound transport is marshalled onto the host main loop.
"""

from __future__ import annotations

import logging
from enum import Enum
from functools import partial
from typing import Any, Callable, Dict, Optional, Sequence

from keysync.client.bindings.reconciler import BindingReconciler, ReconcileResult
from keysync.protocol import (
    ActionDescriptor,
    MalformedMessage,
    decode_catalog,
    encode_invocation,
)
from keysync.shared.scheduling import MainThreadScheduler

logger = logging.getLogger(__name__)

CATEGORY_PREFIX = "Server: "
PLACEHOLDER_SERVER_NAME = "Remote server"


class SessionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTED_UNSYNCED = "connected-unsynced"
    SYNCED = "synced"


def category_tag(server_name: Optional[str]) -> str:
    name = (server_name or "").strip()
    return f"{CATEGORY_PREFIX}{name or PLACEHOLDER_SERVER_NAME}"


class SessionController:
    """Own the active binding set across connect, sync and disconnect."""

    def __init__(
        self,
        reconciler: BindingReconciler,
        scheduler: MainThreadScheduler,
        send: Callable[[bytes], Any],
        *,
        session_active: Optional[Callable[[], bool]] = None,
    ) -> None:
        self._reconciler = reconciler
        self._scheduler = scheduler
        self._send = send
        self._session_active = session_active or (lambda: True)
        self._state = SessionState.DISCONNECTED
        self._active: Dict[str, Any] = {}
        self._last_result: Optional[ReconcileResult] = None
        self.notices_sent = 0

    # Read-only views -------------------------------------------------------
    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def active_bindings(self) -> Dict[str, Any]:
        return dict(self._active)

    @property
    def category(self) -> Optional[str]:
        return self._reconciler.category

    @property
    def last_result(self) -> Optional[ReconcileResult]:
        return self._last_result

    # Transport events (network thread) -------------------------------------
    def on_connected(self) -> None:
        self._scheduler.run_on_main_thread(self._apply_connected)

    def on_sync_message(self, raw: bytes | bytearray | str, server_name: Optional[str] = None) -> None:
        size = len(raw)
        logger.info("Sync message received: %d bytes", size)
        try:
            descriptors = decode_catalog(raw)
        except MalformedMessage as exc:
            logger.warning("Dropping malformed sync message (%s)", exc)
            return
        if not descriptors:
            logger.warning("Server sent an empty action list; bindings left unchanged")
            return
        logger.info("Sync message decoded: %d actions", len(descriptors))
        tag = category_tag(server_name)
        self._scheduler.run_on_main_thread(partial(self._apply_sync, descriptors, tag))

    def on_disconnected(self, exc: Optional[BaseException] = None) -> None:
        if exc is not None:
            logger.info("Disconnected from server (%s); clearing bindings", exc)
        else:
            logger.info("Disconnected from server; clearing bindings")
        self._scheduler.run_on_main_thread(self.teardown)

    # Main-loop work ---------------------------------------------------------
    def _apply_connected(self) -> None:
        if self._state is SessionState.DISCONNECTED:
            self._state = SessionState.CONNECTED_UNSYNCED

    def _apply_sync(self, descriptors: Sequence[ActionDescriptor], tag: str) -> None:
        if self._state is SessionState.DISCONNECTED:
            logger.debug("Sync applied before connect event; treating as connected")
        self._last_result = self._reconciler.reconcile(self._active, descriptors, tag)
        self._state = SessionState.SYNCED

    def teardown(self) -> None:
        """Dispose every binding and forget the session; idempotent."""

        try:
            self._reconciler.teardown(self._active)
        finally:
            self._active.clear()
            self._last_result = None
            self._state = SessionState.DISCONNECTED

    def tick(self) -> int:
        """Turn pending trigger events into invocation notices.

        Called once per host tick on the main loop; returns the number of
        notices queued.
        """

        if self._state is not SessionState.SYNCED or not self._active:
            return 0
        if not self._session_active():
            return 0
        queued = 0
        for action_id, handle in list(self._active.items()):
            while handle.was_triggered():
                logger.debug("Binding triggered: %r", action_id)
                self._request_send(action_id)
                queued += 1
        return queued

    def _request_send(self, action_id: str) -> None:
        payload = encode_invocation(action_id)
        self._scheduler.run_on_main_thread(partial(self._transmit, action_id, payload))

    def _transmit(self, action_id: str, payload: bytes) -> None:
        logger.info("Sending invocation notice: %s", action_id)
        try:
            accepted = self._send(payload)
        except Exception:
            logger.error("Failed to send invocation notice for %r", action_id, exc_info=True)
            return
        if accepted is False:
            logger.warning("Invocation notice for %r dropped; channel not connected", action_id)
            return
        self.notices_sent += 1


__all__ = [
    "CATEGORY_PREFIX",
    "PLACEHOLDER_SERVER_NAME",
    "SessionController",
    "SessionState",
    "category_tag",
]
