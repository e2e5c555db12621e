"""Leading-edge throttle for coroutine functions.

:class:`Throttle` lets the first call in a time window run and drops every
other call made inside that window. Dropped callers are not queued and are
not replayed once the window closes (there is no trailing call); instead
they await the task started by the call that did run and receive its
result.
"""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable, Generic, Optional, TypeVar

T = TypeVar("T")


class Throttle(Generic[T]):
    """Timestamp-gated guard around a zero-argument coroutine function.

    Args:
        func: The coroutine function to throttle.
        wait: Window length in seconds.
        clock: Monotonic time source, injectable for tests.

    Example::

        refresh_once = Throttle(lambda: client.update_token(10), wait=5.0)
        await asyncio.gather(*(refresh_once() for _ in range(20)))
        # update_token ran a single time
    """

    def __init__(
        self,
        func: Callable[[], Awaitable[T]],
        wait: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if wait < 0:
            raise ValueError("wait must not be negative")
        self._func = func
        self._wait = wait
        self._clock = clock
        self._last_call: Optional[float] = None
        self._last_task: Optional[asyncio.Future[T]] = None

    @property
    def wait(self) -> float:
        """The window length in seconds."""
        return self._wait

    async def __call__(self) -> T:
        now = self._clock()
        if self._should_invoke(now):
            self._last_call = now
            self._last_task = asyncio.ensure_future(self._func())
        assert self._last_task is not None
        # A dropped caller being cancelled must not cancel the shared call.
        return await asyncio.shield(self._last_task)

    def reset(self) -> None:
        """Forget the last call so the next one runs immediately."""
        self._last_call = None
        self._last_task = None

    def _should_invoke(self, now: float) -> bool:
        if self._last_call is None or self._last_task is None:
            return True
        if now - self._last_call >= self._wait:
            return True
        # A task left over from an event loop that has since been closed
        # cannot be awaited from this one.
        return self._last_task.get_loop() is not asyncio.get_running_loop()
