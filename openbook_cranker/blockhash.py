from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Awaitable, Callable, Optional

from .logging_utils import warn_once_per
from .models import BlockhashInfo

logger = logging.getLogger(__name__)

BlockhashFetcher = Callable[[], Awaitable[BlockhashInfo]]


class BlockhashCache:
    """Holds the latest :class:`BlockhashInfo` for the submission path.

    The value is an immutable object swapped by reference, so readers always
    see a complete blockhash/expiry pair without locking.
    """

    def __init__(self, fetch: BlockhashFetcher, *, interval: float = 1.0) -> None:
        self._fetch = fetch
        self.interval = interval
        self._current: Optional[BlockhashInfo] = None
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def current(self) -> BlockhashInfo:
        info = self._current
        if info is None:
            raise RuntimeError("blockhash cache has not been primed")
        return info

    @property
    def ready(self) -> bool:
        return self._current is not None

    async def refresh(self) -> BlockhashInfo:
        info = await self._fetch()
        self._current = info
        return info

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.refresh()
            except Exception as exc:
                warn_once_per(1.0, "blockhash-refresh", "Couldn't get blockhash: %s", exc, logger=logger)

    def start(self) -> asyncio.Task[None]:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run(), name="blockhash_refresh")
        return self._task

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
