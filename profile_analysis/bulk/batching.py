"""Window batching and bounded concurrency for bulk analysis."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Batcher:
    """Split identifiers into consecutive, non-overlapping windows in request order."""

    def __init__(self, batch_size: int):
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.batch_size = batch_size

    def split(self, identifiers: Sequence[str]) -> list[list[str]]:
        return [
            list(identifiers[i:i + self.batch_size])
            for i in range(0, len(identifiers), self.batch_size)
        ]


class ConcurrencyController:
    """Fixed-size worker pool: at most ``limit`` jobs in flight within a window.

    ``pause()`` is the inter-window delay that keeps external providers
    under their rate limits.
    """

    def __init__(
        self,
        limit: int,
        delay: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.limit = limit
        self.delay = delay
        self._sleep = sleep

    async def run_window(self, jobs: Sequence[Callable[[], Awaitable[T]]]) -> list[T]:
        """Run every job and wait until all of them have finished."""
        sem = asyncio.Semaphore(self.limit)

        async def bounded(job: Callable[[], Awaitable[T]]) -> T:
            async with sem:
                return await job()

        return list(await asyncio.gather(*(bounded(job) for job in jobs)))

    async def pause(self) -> None:
        if self.delay > 0:
            await self._sleep(self.delay)


async def run_in_windows(
    identifiers: Sequence[str],
    batcher: Batcher,
    controller: ConcurrencyController,
    worker: Callable[[str], Awaitable[T]],
    on_window_complete: Callable[[int, int, list[T]], None] | None = None,
) -> list[T]:
    """Process identifiers window by window; windows never overlap.

    Returns all worker results. Order within a window follows submission, but
    callers must not rely on it and should correlate by identifier.
    """
    windows = batcher.split(identifiers)
    logger.info(
        "Created %d window(s) of up to %d for %d profile(s)",
        len(windows), batcher.batch_size, len(identifiers),
    )

    results: list[T] = []
    for index, window in enumerate(windows):
        logger.info("Processing window %d/%d (%d profiles)", index + 1, len(windows), len(window))
        window_results = await controller.run_window(
            [lambda ident=ident: worker(ident) for ident in window]
        )
        results.extend(window_results)
        if on_window_complete is not None:
            on_window_complete(index, len(windows), window_results)

        if index < len(windows) - 1:
            await controller.pause()

    return results
