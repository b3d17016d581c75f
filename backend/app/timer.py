from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class Countdown:
    """Calls ``on_tick`` every ``interval`` seconds until cancelled.

    Only one ticker runs at a time: ``start`` replaces any previous task.
    Cancelling from inside ``on_tick`` is allowed and stops further ticks
    without interrupting the tick that is running.
    """

    def __init__(self, on_tick: Callable[[], Awaitable[None]], interval: float = 1.0):
        self._on_tick = on_tick
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        self.cancel()
        self._task = asyncio.create_task(self._run())

    def cancel(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        if task is not asyncio.current_task():
            task.cancel()

    async def _run(self) -> None:
        me = asyncio.current_task()
        while self._task is me:
            await asyncio.sleep(self.interval)
            if self._task is not me:
                return
            try:
                await self._on_tick()
            except Exception:
                logger.exception("Countdown tick failed, stopping countdown")
                if self._task is me:
                    self._task = None
                return
