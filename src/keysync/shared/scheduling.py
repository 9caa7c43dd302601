"""Main-loop scheduling capability.

Collaborators that own single-threaded state (the host UI, the server's
command loop) are only touched from tasks submitted here. Tasks run in
submission order.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

Task = Callable[[], None]

DEFAULT_TICK_MS = 50


@runtime_checkable
class MainThreadScheduler(Protocol):
    def run_on_main_thread(self, task: Task) -> None: ...

    def run_after_delay(self, ticks: int, task: Task) -> None: ...


def _guarded(task: Task) -> Task:
    def _run() -> None:
        try:
            task()
        except Exception:
            logger.exception("scheduled task failed")

    return _run


class AsyncioScheduler:
    """Schedule onto an asyncio loop from any thread."""

    def __init__(self, loop: asyncio.AbstractEventLoop, *, tick_ms: int = DEFAULT_TICK_MS) -> None:
        self._loop = loop
        self._tick_s = max(0, int(tick_ms)) / 1000.0

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop

    def run_on_main_thread(self, task: Task) -> None:
        self._loop.call_soon_threadsafe(_guarded(task))

    def run_after_delay(self, ticks: int, task: Task) -> None:
        delay = max(0, int(ticks)) * self._tick_s

        def _arm() -> None:
            self._loop.call_later(delay, _guarded(task))

        self._loop.call_soon_threadsafe(_arm)


__all__ = ["DEFAULT_TICK_MS", "AsyncioScheduler", "MainThreadScheduler", "Task"]
