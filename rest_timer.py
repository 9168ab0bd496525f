from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class RestTimer:
    """Countdown for one rest phase.

    ``run`` ticks once per ``tick`` seconds until the duration has elapsed or
    ``skip`` is called, then invokes ``on_complete`` or ``on_skip``.
    """

    def __init__(
        self,
        duration: int,
        on_complete: Callable[[], Awaitable[None] | None] | None = None,
        on_skip: Callable[[], Awaitable[None] | None] | None = None,
        tick: float = 1.0,
    ) -> None:
        if duration < 0:
            raise ValueError("duration must be non-negative")
        self.duration = duration
        self.remaining = duration
        self.on_complete = on_complete
        self.on_skip = on_skip
        self.tick = tick
        self._skipped = asyncio.Event()

    @property
    def skipped(self) -> bool:
        return self._skipped.is_set()

    def skip(self) -> None:
        self._skipped.set()

    async def run(self) -> bool:
        """Return True when the rest ran to completion, False when skipped."""
        while self.remaining > 0:
            try:
                await asyncio.wait_for(self._skipped.wait(), timeout=self.tick)
            except asyncio.TimeoutError:
                self.remaining -= 1
                continue
            logger.debug("Rest skipped with %s seconds left", self.remaining)
            await _call(self.on_skip)
            return False
        if self.skipped:
            await _call(self.on_skip)
            return False
        await _call(self.on_complete)
        return True


async def _call(callback) -> None:
    if callback is None:
        return
    result = callback()
    if asyncio.iscoroutine(result):
        await result
