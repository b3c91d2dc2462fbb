"""
Concurrency gate for render tasks.

Bounds how many renders run at once. Excess callers wait in FIFO order
on an asyncio.Semaphore instead of opening more browser pages.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

logger = logging.getLogger(__name__)


class ConcurrencyGate:
    """
    FIFO admission control around asyncio.Semaphore.

    Tracks active and waiting counts for health reporting. Use slot()
    so the reservation is released on every exit path.
    """

    def __init__(self, max_concurrency: int):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self.max_concurrency = max_concurrency
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._active = 0
        self._waiting = 0

    @property
    def active(self) -> int:
        """Number of slots currently held."""
        return self._active

    @property
    def waiting(self) -> int:
        """Number of callers queued for a slot."""
        return self._waiting

    async def acquire(self) -> None:
        """Wait for a slot. Cancellation while queued leaves no slot held."""
        self._waiting += 1
        try:
            await self._semaphore.acquire()
        finally:
            self._waiting -= 1
        self._active += 1

    def release(self) -> None:
        """Free a slot and wake the longest-waiting caller, if any."""
        if self._active <= 0:
            raise RuntimeError("ConcurrencyGate.release() called without a held slot")
        self._active -= 1
        self._semaphore.release()

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        """Hold one slot for the duration of the block."""
        await self.acquire()
        if self._waiting:
            logger.debug(f"Gate slot acquired ({self._active}/{self.max_concurrency}, {self._waiting} queued)")
        try:
            yield
        finally:
            self.release()
