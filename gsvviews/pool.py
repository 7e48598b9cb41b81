"""
Bounded worker pool shared by scene-level and tile-level tasks.

A single `WorkerPool` caps how many tasks run at once. Scene tasks are
submitted in batches and each scene task submits its own tile tasks into
the same pool, holding its slot while it waits for them. Retry backoff
sleeps also happen inside a slot, so a burst of failing tiles throttles
itself instead of hammering the tile service.
"""
import asyncio
from typing import Any, Awaitable, Callable, Iterator, Sequence, TypeVar

T = TypeVar("T")

MIN_POOL_SIZE = 2


def pool_size(max_total_threads: int, tile_threads: int, pano_threads: int) -> int:
    """
    Size of the shared pool: ``min(max_total_threads, max(tile_threads, pano_threads))``.

    Never below 2, so a scene task waiting on its tiles leaves room for them.
    """
    return max(MIN_POOL_SIZE, min(max_total_threads, max(tile_threads, pano_threads)))


def batched(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    """Yield consecutive slices of `items` holding at most `size` elements."""
    if size < 1:
        raise ValueError(f"batch size must be >= 1, got {size}")
    for start in range(0, len(items), size):
        yield items[start:start + size]


class WorkerPool:
    """
    Fixed-size pool of asyncio task slots.

    `submit` returns a task handle right away; the coroutine starts running
    once a slot frees up and keeps that slot until it returns.

    >>> pool = WorkerPool(8)
    >>> handles = [pool.submit(fetch, x) for x in range(20)]
    >>> results = await pool.gather(handles)
    """

    def __init__(self, size: int):
        if size < 1:
            raise ValueError(f"pool size must be >= 1, got {size}")
        self.size = size
        self._slots = asyncio.Semaphore(size)
        self._pending: set[asyncio.Task] = set()
        self.active = 0
        self.peak = 0

    def __repr__(self) -> str:
        return f"WorkerPool(size={self.size}, active={self.active}, pending={self.pending})"

    async def _run(self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        try:
            async with self._slots:
                self.active += 1
                self.peak = max(self.peak, self.active)
                try:
                    return await fn(*args, **kwargs)
                finally:
                    self.active -= 1
        finally:
            # done callbacks run a loop turn late; leave before the result is visible
            self._pending.discard(asyncio.current_task())

    def submit(self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> "asyncio.Task[T]":
        """Schedule `fn(*args, **kwargs)` on the pool and return its task handle."""
        task = asyncio.ensure_future(self._run(fn, *args, **kwargs))
        self._pending.add(task)
        # tasks cancelled before they start never reach `_run`
        task.add_done_callback(self._pending.discard)
        return task

    @staticmethod
    async def gather(handles: Sequence["asyncio.Task[T]"]) -> list[T]:
        """Wait for `handles` and return their results in submission order."""
        return [await handle for handle in handles]

    @property
    def pending(self) -> int:
        """Submitted tasks that have not finished yet."""
        return len(self._pending)
