"""Cancellable one-shot timers, one pending timer per kind."""

from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable

logger = logging.getLogger(__name__)


class Scheduler(ABC):
    """Base scheduler.

    Scheduling a timer of a given kind supersedes any pending timer of the
    same kind: its handle is cancelled and its generation is retired, so a
    late callback from a stale timer is dropped even if the backend already
    dispatched it.
    """

    def __init__(self):
        self._generations: dict[str, int] = {}
        self._handles: dict[str, Any] = {}

    def schedule(self, kind: str, delay: float, callback: Callable[[], None]) -> int:
        self._cancel_handle(kind)
        generation = self._generations.get(kind, 0) + 1
        self._generations[kind] = generation

        def fire() -> None:
            if self._generations.get(kind) != generation:
                return
            self._handles.pop(kind, None)
            try:
                callback()
            except Exception:
                logger.exception("Error in %s timer callback", kind)

        self._handles[kind] = self._call_later(delay, fire)
        return generation

    def cancel(self, kind: str) -> None:
        self._cancel_handle(kind)
        self._generations[kind] = self._generations.get(kind, 0) + 1

    def cancel_all(self) -> None:
        for kind in list(self._handles):
            self.cancel(kind)

    def is_pending(self, kind: str) -> bool:
        return kind in self._handles

    def _cancel_handle(self, kind: str) -> None:
        handle = self._handles.pop(kind, None)
        if handle is not None:
            handle.cancel()

    @abstractmethod
    def _call_later(self, delay: float, fire: Callable[[], None]) -> Any:
        """Run fire after delay seconds and return a handle with cancel()."""


class AsyncioScheduler(Scheduler):
    """Timers on the asyncio event loop the web server runs on."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        super().__init__()
        self._loop = loop

    def set_event_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop

    def _call_later(self, delay: float, fire: Callable[[], None]) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(delay, fire)


class _ManualHandle:
    def __init__(self):
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler(Scheduler):
    """Deterministic scheduler driven by advance(); used by tests and replays."""

    def __init__(self):
        super().__init__()
        self.now = 0.0
        self._queue: list[tuple[float, int, _ManualHandle, Callable[[], None]]] = []
        self._seq = itertools.count()

    def _call_later(self, delay: float, fire: Callable[[], None]) -> _ManualHandle:
        handle = _ManualHandle()
        heapq.heappush(self._queue, (self.now + delay, next(self._seq), handle, fire))
        return handle

    def advance(self, seconds: float) -> int:
        """Move the clock forward, running due timers in order. Returns how many ran."""
        target = self.now + seconds
        ran = 0
        while self._queue and self._queue[0][0] <= target:
            due, _, handle, fire = heapq.heappop(self._queue)
            self.now = due
            if handle.cancelled:
                continue
            fire()
            ran += 1
        self.now = target
        return ran
