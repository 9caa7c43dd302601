"""Websocket side of the keysync channel.

One websocket connection is one principal session. The server pushes the
catalog as a sync message shortly after connect (and again on reload) and
accepts invocation notices, which are authorized against the catalog and
executed on the server loop.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional
from urllib.parse import parse_qs, unquote, urlsplit

import websockets
from websockets.exceptions import ConnectionClosed

from keysync.protocol import CHANNEL_ID, MalformedMessage, decode_invocation
from keysync.server.catalog import ActionCatalog
from keysync.server.config import ServerConfig
from keysync.server.control.admin_command import ADMIN_COMMAND, AdminCommand
from keysync.server.control.authorizer import Decision, InvocationAuthorizer
from keysync.server.control.command_registry import CommandRegistry
from keysync.server.control.principals import Principal, PrincipalTable
from keysync.shared.scheduling import AsyncioScheduler, MainThreadScheduler

logger = logging.getLogger(__name__)

_POLICY_VIOLATION = 1008


@dataclass(eq=False)
class ClientSession:
    principal: Principal
    websocket: Any
    connected: bool = True
    syncs_sent: int = 0


class ChannelRejected(ValueError):
    """The connection request does not target the keysync channel."""


def parse_channel_request(path: str) -> str:
    """Return the principal name from a ``/keysync:main?principal=...`` path."""

    parts = urlsplit(path)
    channel = unquote(parts.path).lstrip("/")
    if channel != CHANNEL_ID:
        raise ChannelRejected(f"unknown channel {channel!r}")
    names = parse_qs(parts.query).get("principal") or []
    name = names[0].strip() if names else ""
    if not name:
        raise ChannelRejected("missing principal")
    return name


class KeysyncServer:
    def __init__(
        self,
        config: ServerConfig,
        catalog: ActionCatalog,
        *,
        commands: Optional[CommandRegistry] = None,
        principals: Optional[PrincipalTable] = None,
        scheduler: Optional[MainThreadScheduler] = None,
        on_reload: Optional[Callable[[], None]] = None,
    ) -> None:
        self._config = config
        self._policy = config.debug_policy
        self.catalog = catalog
        self.commands = commands or CommandRegistry()
        self.principals = principals or PrincipalTable()
        self._scheduler = scheduler
        self._authorizer: Optional[InvocationAuthorizer] = None
        self._sessions: Dict[int, ClientSession] = {}
        self._stop: Optional[asyncio.Event] = None
        self.admin = AdminCommand(
            catalog,
            self.broadcast_sync,
            admin_permission=config.admin_permission,
            on_reload=on_reload,
        )
        self.commands.register_command(ADMIN_COMMAND, self.admin, description="Reload the keysync catalog")

    # Accessors --------------------------------------------------------------
    @property
    def scheduler(self) -> MainThreadScheduler:
        if self._scheduler is None:
            raise RuntimeError("KeysyncServer loop is not running")
        return self._scheduler

    @property
    def authorizer(self) -> InvocationAuthorizer:
        if self._authorizer is None:
            self._authorizer = InvocationAuthorizer(
                self.catalog,
                self.commands,
                self.scheduler,
                log_invocations=self._policy.log_invocations,
            )
        return self._authorizer

    @property
    def sessions(self) -> list[ClientSession]:
        return list(self._sessions.values())

    # Lifecycle --------------------------------------------------------------
    async def serve(self) -> None:
        loop = asyncio.get_running_loop()
        if self._scheduler is None:
            self._scheduler = AsyncioScheduler(loop, tick_ms=self._config.tick_ms)
        self._stop = asyncio.Event()
        async with websockets.serve(self._handle_connection, self._config.host, self._config.port):
            logger.info(
                "keysync channel listening on ws://%s:%d/%s (%d actions)",
                self._config.host,
                self._config.port,
                CHANNEL_ID,
                len(self.catalog),
            )
            await self._stop.wait()
        logger.info("keysync channel stopped")

    def request_stop(self) -> None:
        if self._stop is not None:
            self._stop.set()

    async def _handle_connection(self, ws: Any) -> None:
        try:
            name = parse_channel_request(ws.request.path)
        except ChannelRejected as exc:
            logger.warning("Rejecting connection from %s: %s", getattr(ws, "remote_address", "?"), exc)
            await ws.close(code=_POLICY_VIOLATION, reason=str(exc))
            return
        session = self.open_session(self.principals.resolve(name), ws)
        try:
            async for msg in ws:
                self.ingest_notice(session, msg)
        except ConnectionClosed as exc:
            logger.debug("Session %s closed abnormally: %s", name, exc)
        finally:
            self.close_session(session)

    def open_session(self, principal: Principal, ws: Any) -> ClientSession:
        session = ClientSession(principal=principal, websocket=ws)
        self._sessions[id(session)] = session
        logger.info("%s connected (%d sessions)", principal.name, len(self._sessions))
        if self._policy.log_sessions:
            logger.debug(
                "initial sync for %s scheduled in %d ticks",
                principal.name,
                self._config.sync_delay_ticks,
            )
        self.scheduler.run_after_delay(self._config.sync_delay_ticks, lambda: self._initial_sync(session))
        return session

    def close_session(self, session: ClientSession) -> None:
        session.connected = False
        if self._sessions.pop(id(session), None) is not None:
            logger.info("%s disconnected (%d sessions)", session.principal.name, len(self._sessions))
            if self._policy.log_sessions:
                logger.debug("session %s closed after %d syncs", session.principal.name, session.syncs_sent)

    # Inbound ----------------------------------------------------------------
    def ingest_notice(self, session: ClientSession, raw: bytes | str) -> Optional[Decision]:
        try:
            action_id = decode_invocation(raw)
        except MalformedMessage as exc:
            logger.warning("Malformed notice from %s dropped (%s)", session.principal.name, exc)
            return None
        if self._policy.log_invocations:
            logger.debug("notice from %s: %r", session.principal.name, action_id)
        return self.authorizer.dispatch(action_id, session.principal)

    # Outbound ---------------------------------------------------------------
    def _initial_sync(self, session: ClientSession) -> None:
        if not session.connected:
            if self._policy.log_sessions:
                logger.debug("initial sync for %s skipped (disconnected)", session.principal.name)
            return
        payload = self.catalog.encode_sync()
        if payload is None:
            logger.warning("No actions configured; nothing sent to %s", session.principal.name)
            return
        if self.send_sync(session, payload):
            logger.info("Sync sent to %s (%d actions)", session.principal.name, len(self.catalog))

    def send_sync(self, session: ClientSession, payload: bytes) -> bool:
        if not session.connected:
            return False
        if self._policy.log_sync_payloads:
            logger.debug("sync -> %s: %s", session.principal.name, payload.decode("utf-8"))
        task = asyncio.ensure_future(session.websocket.send(payload))

        def _done(fut: "asyncio.Future[Any]") -> None:
            if fut.cancelled():
                return
            exc = fut.exception()
            if exc is not None:
                logger.info("Sync to %s failed: %s", session.principal.name, exc)

        task.add_done_callback(_done)
        session.syncs_sent += 1
        return True

    def broadcast_sync(self) -> int:
        """Push the current catalog to every connected principal."""

        payload = self.catalog.encode_sync()
        if payload is None:
            return 0
        return sum(1 for session in self.sessions if self.send_sync(session, payload))


__all__ = [
    "ChannelRejected",
    "ClientSession",
    "KeysyncServer",
    "parse_channel_request",
]
