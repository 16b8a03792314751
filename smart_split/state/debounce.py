from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Optional

logger = logging.getLogger(__name__)


class CoalescingTask:
    """Run ``action`` once calls to :meth:`schedule` have been quiet for ``delay`` seconds.

    A new schedule replaces a run that is still waiting. A run that has already
    started is never cancelled; runs are serialized so a later one always starts
    after an earlier one finished. The action is expected to read the current
    state when it runs, so only the last scheduled state matters.
    """

    def __init__(self, action: Callable[[], Awaitable[None]], *, delay: float, name: str = "coalescing-task") -> None:
        self._action = action
        self._delay = delay
        self._name = name
        self._waiting: Optional[asyncio.Task] = None
        self._lock = asyncio.Lock()

    @property
    def pending(self) -> bool:
        return self._waiting is not None and not self._waiting.done()

    def schedule(self) -> None:
        self.cancel()
        self._waiting = asyncio.create_task(self._run_later(), name=self._name)

    def cancel(self) -> None:
        if self._waiting is not None and not self._waiting.done():
            self._waiting.cancel()
        self._waiting = None

    async def flush(self) -> bool:
        """Run a waiting action immediately. Returns False when nothing was pending."""
        if not self.pending:
            return False
        self.cancel()
        await self._run()
        return True

    async def _run_later(self) -> None:
        await asyncio.sleep(self._delay)
        self._waiting = None
        await self._run()

    async def _run(self) -> None:
        async with self._lock:
            try:
                await self._action()
            except Exception:
                logger.exception("%s crashed", self._name)
