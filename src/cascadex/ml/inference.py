"""Bounded worker pool for detection.

Requests pass an ``asyncio.Semaphore`` sized like the thread pool, so at most
``max_concurrent`` scans run at once. A request that cannot get a slot within
``SEMAPHORE_TIMEOUT_SECONDS`` fails with ``TimeoutError`` (mapped to 503).
"""

from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

    from cascadex.config import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

SEMAPHORE_TIMEOUT_SECONDS: float = 5.0


class InferencePool:
    """Runs synchronous detection work off the event loop, with admission control."""

    def __init__(self, settings: Settings) -> None:
        self._slots = asyncio.Semaphore(settings.max_concurrent)
        self._executor = ThreadPoolExecutor(
            max_workers=settings.max_concurrent,
            thread_name_prefix="cascade-scan",
        )
        self._lock = threading.Lock()
        self._waiting = 0
        self._running = 0
        self._rejected = 0

    @asynccontextmanager
    async def _slot(self) -> AsyncIterator[None]:
        with self._lock:
            self._waiting += 1
        try:
            await asyncio.wait_for(self._slots.acquire(), timeout=SEMAPHORE_TIMEOUT_SECONDS)
        except TimeoutError:
            with self._lock:
                self._rejected += 1
            logger.warning("No detection slot free after %.1fs, rejecting request", SEMAPHORE_TIMEOUT_SECONDS)
            raise
        finally:
            with self._lock:
                self._waiting -= 1

        with self._lock:
            self._running += 1
        try:
            yield
        finally:
            self._slots.release()
            with self._lock:
                self._running -= 1

    async def run(self, func: Callable[..., T], *args: object) -> T:
        """Run ``func(*args)`` on a worker thread once a slot is free.

        Raises:
            TimeoutError: If no slot frees up within the timeout.
        """
        async with self._slot():
            return await asyncio.get_running_loop().run_in_executor(self._executor, func, *args)

    @property
    def active_count(self) -> int:
        """Scans currently running."""
        with self._lock:
            return self._running

    @property
    def queue_depth(self) -> int:
        """Requests waiting for a slot."""
        with self._lock:
            return self._waiting

    @property
    def rejected_count(self) -> int:
        """Requests turned away because no slot freed up in time."""
        with self._lock:
            return self._rejected

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)
