from __future__ import annotations

import asyncio
import logging
import os
from contextlib import suppress
from dataclasses import dataclass
from typing import Any, Callable, Optional
from urllib.parse import quote

import websockets
from websockets.exceptions import InvalidHandshake

from keysync.protocol import CHANNEL_ID

logger = logging.getLogger(__name__)


def _maybe_enable_debug_logger() -> bool:
    flag = (os.getenv("KEYSYNC_CLIENT_DEBUG") or "").lower()
    if flag not in ("1", "true", "yes", "on", "dbg", "debug"):
        return False
    has_local = any(getattr(h, "_keysync_local", False) for h in logger.handlers)
    if not has_local:
        handler = logging.StreamHandler()
        fmt = "[%(asctime)s] %(name)s - %(levelname)s - %(message)s"
        handler.setFormatter(logging.Formatter(fmt))
        handler.setLevel(logging.DEBUG)
        setattr(handler, "_keysync_local", True)
        logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    return True


_CHANNEL_DEBUG = _maybe_enable_debug_logger()

_RETRY_DELAY_S = 5.0
_RETRY_MAX_S = 30.0
_RETRY_FACTOR = 1.5


@dataclass
class ChannelLoop:
    loop: asyncio.AbstractEventLoop | None = None
    websocket: Any = None
    outbox: asyncio.Queue[bytes] | None = None
    stop_requested: bool = False


def channel_url(host: str, port: int, principal: str) -> str:
    return f"ws://{host}:{int(port)}/{CHANNEL_ID}?principal={quote(principal, safe='')}"


class KeysyncChannel:
    """Websocket connection to a keysync server.

    Runs its own asyncio loop (call :meth:`run` on a dedicated thread),
    reconnects with backoff and forwards events to the callbacks. The
    callbacks fire on the network thread.
    """

    def __init__(
        self,
        host: str,
        port: int,
        principal: str,
        *,
        server_name: Optional[str] = None,
        handle_connected: Optional[Callable[[], None]] = None,
        handle_sync: Optional[Callable[[bytes, Optional[str]], None]] = None,
        handle_disconnect: Optional[Callable[[Optional[Exception]], None]] = None,
    ) -> None:
        self.host = host
        self.port = int(port)
        self.principal = principal
        self.server_name = server_name or f"{host}:{int(port)}"
        self.handle_connected = handle_connected
        self.handle_sync = handle_sync
        self.handle_disconnect = handle_disconnect
        self._loop_state = ChannelLoop()

    @property
    def url(self) -> str:
        return channel_url(self.host, self.port, self.principal)

    @property
    def connected(self) -> bool:
        return self._loop_state.websocket is not None

    def run(self) -> None:
        """Start the channel event loop and keep reconnecting until stopped."""

        loop_state = self._loop_state
        loop_state.stop_requested = False
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        loop_state.loop = loop
        try:
            loop.run_until_complete(self._run(loop_state))
        finally:
            loop_state.loop = None
            loop_state.websocket = None
            loop_state.outbox = None
            loop.close()

    async def _run(self, loop_state: ChannelLoop) -> None:
        logger.info("Connecting to keysync channel at %s", self.url)
        retry_delay = _RETRY_DELAY_S
        while not loop_state.stop_requested:
            try:
                async with websockets.connect(self.url) as ws:
                    logger.info("Connected to keysync channel")
                    retry_delay = _RETRY_DELAY_S
                    loop_state.websocket = ws
                    loop_state.outbox = asyncio.Queue()
                    self._notify_connected()
                    send_task = asyncio.create_task(self._sender(ws, loop_state.outbox))
                    try:
                        async for msg in ws:
                            self._dispatch(msg)
                    finally:
                        send_task.cancel()
                        with suppress(asyncio.CancelledError):
                            await send_task
                        loop_state.websocket = None
                        loop_state.outbox = None
                    self._notify_disconnect(None)
            except Exception as e:
                msg = str(e) or e.__class__.__name__
                if isinstance(e, (EOFError, ConnectionRefusedError)):
                    logger.info("Keysync channel unavailable (%s); retrying in %.0fs", msg, retry_delay)
                elif isinstance(e, InvalidHandshake):
                    logger.info("Keysync channel handshake failed (%s); retrying in %.0fs", msg, retry_delay)
                elif isinstance(e, OSError):
                    logger.info("Keysync channel socket error (%s); retrying in %.0fs", msg, retry_delay)
                else:
                    logger.exception("Keysync channel error")
                loop_state.websocket = None
                loop_state.outbox = None
                self._notify_disconnect(e)
            if loop_state.stop_requested:
                break
            await asyncio.sleep(retry_delay)
            retry_delay = min(_RETRY_MAX_S, retry_delay * _RETRY_FACTOR)
            logger.info("Reconnecting to keysync channel...")

    async def _sender(self, ws: Any, outbox: asyncio.Queue[bytes]) -> None:
        while True:
            payload = await outbox.get()
            if _CHANNEL_DEBUG:
                logger.debug("KeysyncChannel sender -> %r", payload)
            try:
                await ws.send(payload)
            except Exception:
                logger.debug("Keysync sender failed; stopping", exc_info=True)
                break

    def _dispatch(self, msg: bytes | str) -> None:
        raw = msg.encode("utf-8") if isinstance(msg, str) else bytes(msg)
        if _CHANNEL_DEBUG:
            logger.debug("KeysyncChannel received %d bytes", len(raw))
        if self.handle_sync is None:
            return
        try:
            self.handle_sync(raw, self.server_name)
        except Exception:
            logger.debug("handle_sync callback failed", exc_info=True)

    def _notify_connected(self) -> None:
        if self.handle_connected is None:
            return
        try:
            self.handle_connected()
        except Exception:
            logger.debug("handle_connected callback failed", exc_info=True)

    def _notify_disconnect(self, exc: Optional[Exception]) -> None:
        if self.handle_disconnect is None:
            return
        try:
            self.handle_disconnect(exc)
        except Exception:
            logger.debug("handle_disconnect callback failed", exc_info=True)

    def send(self, payload: bytes) -> bool:
        """Queue ``payload`` for transmission; callable from any thread."""

        loop_state = self._loop_state
        loop = loop_state.loop
        outbox = loop_state.outbox
        if loop is None or outbox is None:
            logger.debug("KeysyncChannel.send: not connected; dropping %d bytes", len(payload))
            return False
        try:
            loop.call_soon_threadsafe(outbox.put_nowait, bytes(payload))
        except RuntimeError:
            logger.debug("KeysyncChannel.send: loop closed", exc_info=True)
            return False
        return True

    def stop(self) -> None:
        """Request the channel loop to shut down."""

        loop_state = self._loop_state
        loop_state.stop_requested = True
        loop = loop_state.loop
        if loop is None:
            return

        async def _shutdown() -> None:
            ws = loop_state.websocket
            if ws is not None:
                with suppress(Exception):
                    await ws.close()

        def _schedule_shutdown() -> None:
            loop.create_task(_shutdown())

        try:
            loop.call_soon_threadsafe(_schedule_shutdown)
        except RuntimeError:
            logger.debug("KeysyncChannel.stop: loop notify failed", exc_info=True)


__all__ = ["ChannelLoop", "KeysyncChannel", "channel_url"]
