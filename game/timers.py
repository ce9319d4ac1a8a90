"""Cancellable timers owned by the session components."""
from __future__ import annotations

import asyncio
from typing import Any, Callable, Optional, Set


class Timer:
    """Handle for one scheduled callback."""

    def __init__(self, owner: "Scheduler", delay: float, callback: Callable[..., Any], args: tuple) -> None:
        self._owner = owner
        self.delay = delay
        self._callback = callback
        self._args = args
        self._handle: Optional[asyncio.TimerHandle] = None
        self.cancelled = False
        self.fired = False

    @property
    def active(self) -> bool:
        return not (self.cancelled or self.fired)

    def cancel(self) -> None:
        if not self.active:
            return
        self.cancelled = True
        if self._handle is not None:
            self._handle.cancel()
        self._owner._forget(self)

    def _fire(self) -> None:
        if not self.active:
            return
        self.fired = True
        self._owner._forget(self)
        self._callback(*self._args)


class Scheduler:
    """
    Thin wrapper around ``loop.call_later`` that remembers what it scheduled,
    so teardown can cancel every pending callback at once.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop
        self._pending: Set[Timer] = set()

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> Timer:
        timer = Timer(self, delay, callback, args)
        loop = self._loop or asyncio.get_running_loop()
        timer._handle = loop.call_later(max(0.0, delay), timer._fire)
        self._pending.add(timer)
        return timer

    def cancel_all(self) -> None:
        for timer in list(self._pending):
            timer.cancel()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def _forget(self, timer: Timer) -> None:
        self._pending.discard(timer)
