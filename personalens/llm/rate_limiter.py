"""Client-side admission control for one provider key.

Callers hand an operation to ``schedule``; operations are dispatched in
FIFO order by a single drain task, one at a time, only while the sliding
minute, hour and one-second burst windows all have room. When a window
is full the drain task sleeps until the oldest blocking entry leaves it.
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from .models import RateLimitConfig, RateLimitStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")

MINUTE = 60.0
HOUR = 3600.0
BURST_WINDOW = 1.0


@dataclass
class QueueItem:
    """A pending operation and the future its caller awaits."""

    operation: Callable[[], Awaitable[Any]]
    future: asyncio.Future
    enqueued_at: float


class RateLimiter:
    """FIFO queue with sliding-window admission.

    Args:
        config: Window limits.
        clock: Monotonic clock in seconds. Injectable for tests.
        sleep: Coroutine used for waits. Defaults to asyncio.sleep.
        dispatch_interval: Pause after every dispatch, in seconds.
        name: Label used in log records (usually the provider name).
    """

    DEFAULT_DISPATCH_INTERVAL = 0.1

    def __init__(
        self,
        config: RateLimitConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] | None = None,
        dispatch_interval: float = DEFAULT_DISPATCH_INTERVAL,
        name: str | None = None,
    ):
        self.config = config or RateLimitConfig()
        self.name = name
        self._clock = clock
        self._sleep = sleep
        self._dispatch_interval = dispatch_interval
        self._history: deque[float] = deque()
        self._queue: deque[QueueItem] = deque()
        self._processing = False
        self._drain_task: asyncio.Task | None = None

    @property
    def queue_length(self) -> int:
        return len(self._queue)

    async def schedule(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Enqueue ``operation`` and wait for its result.

        The operation's exception, if any, is raised to this caller only.
        """
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        self._queue.append(QueueItem(operation=operation, future=future, enqueued_at=self._clock()))

        if not self._processing:
            self._processing = True
            self._drain_task = loop.create_task(self._drain())

        return await future

    def get_status(self) -> RateLimitStatus:
        """Current window counts and when the next dispatch may happen."""
        now = self._clock()
        wait = self._wait_time(now)
        return RateLimitStatus(
            requests_in_last_minute=self._count_since(now - MINUTE),
            requests_in_last_hour=self._count_since(now - HOUR),
            can_make_request=wait <= 0,
            next_available_time=time.time() + wait if wait > 0 else None,
            queue_length=len(self._queue),
        )

    async def _drain(self) -> None:
        current: QueueItem | None = None
        try:
            while self._queue:
                head = self._queue[0]
                if head.future.done():
                    # caller went away before dispatch
                    self._queue.popleft()
                    continue

                wait = self._wait_time(self._clock())
                if wait > 0:
                    logger.debug(
                        "Rate limit reached, waiting %.2fs",
                        wait,
                        extra={"provider": self.name, "queue_length": len(self._queue)},
                    )
                    await self._pause(wait)
                    continue

                current = self._queue.popleft()
                self._history.append(self._clock())
                try:
                    result = await current.operation()
                except Exception as e:
                    if not current.future.done():
                        current.future.set_exception(e)
                else:
                    if not current.future.done():
                        current.future.set_result(result)
                current = None

                await self._pause(self._dispatch_interval)
        finally:
            self._processing = False
            # only non-empty when the drain task itself was cancelled
            if current is not None and not current.future.done():
                current.future.cancel()
            while self._queue:
                self._queue.popleft().future.cancel()

    async def _pause(self, seconds: float) -> None:
        if seconds > 0:
            await (self._sleep or asyncio.sleep)(seconds)

    def _prune(self, now: float) -> None:
        cutoff = now - HOUR
        while self._history and self._history[0] <= cutoff:
            self._history.popleft()

    def _count_since(self, cutoff: float) -> int:
        return sum(1 for t in self._history if t > cutoff)

    def _wait_time(self, now: float) -> float:
        """Seconds until every window admits one more request (0 if now)."""
        self._prune(now)
        wait = 0.0
        for window, limit in (
            (MINUTE, self.config.requests_per_minute),
            (HOUR, self.config.requests_per_hour),
            (BURST_WINDOW, self.config.burst_limit),
        ):
            in_window = [t for t in self._history if t > now - window]
            if len(in_window) >= limit:
                # the window has room again once this entry expires
                blocking = in_window[len(in_window) - limit]
                wait = max(wait, blocking + window - now)
        return wait
