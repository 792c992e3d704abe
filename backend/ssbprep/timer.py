"""
One-tick-per-second countdowns bound to the active phase.

A ``Countdown`` runs as an asyncio task on the application loop. At zero it
stops itself and calls its timeout handler exactly once. ``TimerSlot`` owns
at most one countdown per session and cancels it whenever it is replaced or
closed, so a timer never outlives the stage it governs.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Union

logger = logging.getLogger(__name__)

Handler = Callable[[], Union[None, Awaitable[Any]]]
Sleep = Callable[[float], Awaitable[Any]]


class TimerError(Exception):
    """Raised on pause/resume of a countdown that does not allow it."""


async def _call(handler: Handler) -> None:
    result = handler()
    if inspect.isawaitable(result):
        await result


class Countdown:
    def __init__(
        self,
        seconds: int,
        on_timeout: Handler,
        *,
        pausable: bool = False,
        warnings: Optional[Dict[int, Handler]] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if seconds < 0:
            raise ValueError("seconds must be >= 0")
        self.total = seconds
        self.remaining = seconds
        self.pausable = pausable
        self.fired = False
        self.cancelled = False
        self._paused = False
        self._on_timeout = on_timeout
        # remaining-seconds mark -> handler, each fires once
        self._warnings: Dict[int, Handler] = dict(warnings or {})
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def paused(self) -> bool:
        return self._paused and not self.fired and not self.cancelled

    def start(self) -> None:
        if self.fired or self.cancelled or self.running:
            return
        self._paused = False
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        if self.remaining == 0:
            await self._expire()
            return
        while self.remaining > 0 and not self.cancelled:
            await self._sleep(1)
            if self.cancelled:
                return
            await self.tick()

    async def tick(self) -> None:
        """Advance by one second. No-op once expired or cancelled."""
        if self.fired or self.cancelled or self.remaining <= 0:
            return
        self.remaining -= 1
        warning = self._warnings.pop(self.remaining, None)
        if warning is not None:
            try:
                await _call(warning)
            except Exception:
                logger.exception("Countdown warning handler failed at %ss", self.remaining)
        if self.remaining == 0:
            await self._expire()

    async def _expire(self) -> None:
        if self.fired or self.cancelled:
            return
        self.fired = True
        await _call(self._on_timeout)

    def pause(self) -> None:
        if not self.pausable:
            raise TimerError("this countdown cannot be paused")
        if self.running:
            self._paused = True
        self._stop_task()

    def resume(self) -> None:
        if not self.pausable:
            raise TimerError("this countdown cannot be paused")
        self.start()

    def cancel(self) -> None:
        if self.cancelled:
            return
        self.cancelled = True
        self._stop_task()

    def _stop_task(self) -> None:
        task = self._task
        self._task = None
        if task is None or task.done():
            return
        # The timeout handler may cancel its own countdown; the loop exits on
        # its own in that case.
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        if task is not current:
            task.cancel()


class TimerSlot:
    """Holds the single live countdown of a session."""

    def __init__(self) -> None:
        self._current: Optional[Countdown] = None

    @property
    def current(self) -> Optional[Countdown]:
        return self._current

    def replace(self, countdown: Optional[Countdown]) -> Optional[Countdown]:
        if self._current is not None:
            self._current.cancel()
        self._current = countdown
        return countdown

    def clear(self) -> None:
        self.replace(None)

    close = clear

    def __enter__(self) -> "TimerSlot":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()
