"""
Location: python/ark_console/tasks.py

Summary:
    Cancellable repeating tasks on the asyncio event loop. A
    RepeatingTask owns one asyncio.Task; cancel() stops it immediately
    and no callback runs after cancellation.

Example:
    from ark_console.tasks import AutoSyncer

    syncer = AutoSyncer(wallet, interval=30)
    syncer.start()
    ...
    syncer.cancel()
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from .types import ActionResult


logger = logging.getLogger(__name__)


class RepeatingTask:
    """
    Calls `callback` every `interval` seconds until it returns True or
    the handle is cancelled.

    The first call happens after one interval.
    """

    def __init__(self, callback: Callable[[], Awaitable[Optional[bool]]], interval: float):
        self.callback = callback
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> "RepeatingTask":
        if self.active:
            raise RuntimeError("RepeatingTask already started")
        self._task = asyncio.get_running_loop().create_task(self._run())
        return self

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def wait(self) -> None:
        """Wait until the loop finishes on its own or is cancelled."""
        task = self._task
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            if not task.cancelled():
                raise

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            done = await self.callback()
            if done:
                return


class AutoSyncer:
    """Keeps the wallet synchronized in the background."""

    def __init__(self, wallet, interval: float = 30.0):
        self.wallet = wallet
        self._handle = RepeatingTask(self._tick, interval)

    def start(self) -> "AutoSyncer":
        self._handle.start()
        return self

    def cancel(self) -> None:
        self._handle.cancel()

    @property
    def active(self) -> bool:
        return self._handle.active

    async def _tick(self) -> bool:
        result: ActionResult = await self.wallet.sync_node()
        if not result.success:
            logger.warning("Background sync failed: %s", result.message)
        return False
