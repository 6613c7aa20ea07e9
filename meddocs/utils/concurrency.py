"""Shared concurrency primitives for the embedding and ingestion stages.

Two patterns are exposed:

1. **SharedInitializer** -- coalesces concurrent first-time callers onto a
   single in-flight initialization.  Local embedding models are expensive
   to load; two cold-start requests arriving together must await the same
   load instead of each starting one.

2. **paced_batches** -- runs an async callable over fixed-size slices of a
   list, sleeping between slices.  This is a plain throttle for remote
   embedding APIs, not a token-bucket rate limiter.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Generic, Sequence, TypeVar

import structlog

from meddocs.utils.logging import get_logger

_T = TypeVar("_T")
_R = TypeVar("_R")

_logger: structlog.BoundLogger = get_logger(__name__)


class SharedInitializer(Generic[_T]):
    """Build a value at most once, sharing one in-flight task among callers.

    The blocking *factory* runs in a worker thread via ``asyncio.to_thread``.
    Every caller awaits the same task through ``asyncio.shield`` so that a
    caller abandoning its request does not cancel the load for the others.
    If the factory raises, the task is cleared and the next caller retries.

    Parameters
    ----------
    factory:
        Zero-argument callable that builds the value (e.g. loads a model).
    name:
        Label used in log events.
    """

    def __init__(self, factory: Callable[[], _T], name: str) -> None:
        self._factory = factory
        self._name = name
        self._value: _T | None = None
        self._ready = False
        self._task: asyncio.Future[_T] | None = None
        self._load_count = 0

    @property
    def is_ready(self) -> bool:
        return self._ready

    @property
    def load_count(self) -> int:
        """Number of times the factory has been started."""
        return self._load_count

    async def get(self) -> _T:
        """Return the value, starting or joining the initialization."""
        if self._ready:
            return self._value  # type: ignore[return-value]

        if self._task is None:
            self._load_count += 1
            _logger.info("shared_init_started", resource=self._name)
            self._task = asyncio.ensure_future(asyncio.to_thread(self._factory))
            self._task.add_done_callback(self._on_done)

        return await asyncio.shield(self._task)

    def _on_done(self, task: asyncio.Future[_T]) -> None:
        if task.cancelled():
            self._task = None
            return
        exc = task.exception()
        if exc is not None:
            # Clear the task so a later call can retry the load.
            self._task = None
            _logger.warning("shared_init_failed", resource=self._name, error=str(exc))
            return
        self._value = task.result()
        self._ready = True
        _logger.info("shared_init_ready", resource=self._name)


async def paced_batches(
    items: Sequence[_T],
    batch_size: int,
    delay: float,
    fn: Callable[[list[_T]], Awaitable[list[_R]]],
) -> list[_R]:
    """Apply *fn* to consecutive slices of *items*, pausing between slices.

    Parameters
    ----------
    items:
        Inputs to process, in order.
    batch_size:
        Maximum slice length passed to *fn*.  Must be positive.
    delay:
        Seconds to sleep between slices.  No sleep follows the last slice.
    fn:
        Async callable returning one output per input of its slice.

    Returns
    -------
    list[_R]
        Outputs concatenated in input order.
    """
    if batch_size <= 0:
        raise ValueError(f"batch_size must be positive, got {batch_size}")

    results: list[_R] = []
    for start in range(0, len(items), batch_size):
        if start > 0 and delay > 0:
            await asyncio.sleep(delay)
        batch = list(items[start : start + batch_size])
        results.extend(await fn(batch))
    return results
