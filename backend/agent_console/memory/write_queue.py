"""Single-writer queue that applies persistence writes in submission order."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

Write = Callable[[], Awaitable[None]]


class WriteQueue:
    """Serialize async writes through one worker task.

    ``submit`` returns once the write has run, re-raising its exception. A
    caller that is cancelled while waiting does not un-queue its write, so
    later writes never overtake it.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[tuple[Write, asyncio.Future[None]]] = asyncio.Queue()
        self._worker: asyncio.Task[None] | None = None

    async def submit(self, write: Write) -> None:
        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._queue.put_nowait((write, future))
        self._ensure_worker()
        await future

    def _ensure_worker(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._drain(), name="store-writer")

    async def _drain(self) -> None:
        while True:
            write, future = await self._queue.get()
            try:
                await write()
            except Exception as exc:
                logger.error("Store write failed: %s", exc)
                if not future.done():
                    future.set_exception(exc)
            else:
                if not future.done():
                    future.set_result(None)
            finally:
                self._queue.task_done()

    async def close(self) -> None:
        """Wait for queued writes, then stop the worker."""
        if self._worker is None:
            return
        await self._queue.join()
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
