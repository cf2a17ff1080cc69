"""Clock abstraction for the simulation timers.

Every periodic loop (tick source, watchdog, snapshots, suite phase timers)
sleeps on a Clock instead of calling asyncio.sleep directly, so the same code
runs in wall-clock time or in deterministic virtual time.

- SystemClock: wall-clock milliseconds, asyncio.sleep.
- VirtualClock: discrete-event time. Sleepers are kept in a heap ordered by
  (wake_at_ms, registration seq); `run(coro)` repeatedly lets the loop settle
  and then jumps time to the earliest sleeper. Two runs of the same program
  produce the same interleaving.
"""

from __future__ import annotations

import asyncio
import heapq
import time
from typing import TYPE_CHECKING, Any, Protocol, TypeVar

if TYPE_CHECKING:
    from collections.abc import Coroutine

T = TypeVar("T")


class Clock(Protocol):
    """Time source and sleeper used by all simulation timers."""

    def now_ms(self) -> int:
        """Current time in milliseconds."""
        ...

    async def sleep(self, ms: float) -> None:
        """Suspend the calling task for `ms` milliseconds."""
        ...


class SystemClock:
    """Wall-clock time."""

    def now_ms(self) -> int:
        return int(time.time() * 1000)

    async def sleep(self, ms: float) -> None:
        await asyncio.sleep(max(ms, 0) / 1000)


class VirtualClock:
    """Deterministic discrete-event clock.

    Time only advances inside `run()`, and only when every task is blocked on
    `sleep()`. Code under test must not wait on real I/O while a VirtualClock
    is driving it.
    """

    # Loop iterations granted to ready tasks before time is advanced
    SETTLE_ITERATIONS = 50

    def __init__(self, start_ms: int = 1_700_000_000_000) -> None:
        self._now = start_ms
        self._seq = 0
        self._sleepers: list[tuple[int, int, asyncio.Future[None]]] = []

    def now_ms(self) -> int:
        return self._now

    async def sleep(self, ms: float) -> None:
        loop = asyncio.get_running_loop()
        fut: asyncio.Future[None] = loop.create_future()
        wake_at = self._now + max(int(ms), 0)
        heapq.heappush(self._sleepers, (wake_at, self._seq, fut))
        self._seq += 1
        await fut

    def advance(self, ms: int) -> None:
        """Move time forward without waking anyone (for synchronous tests)."""
        self._now += ms

    @property
    def pending(self) -> int:
        """Number of live sleepers."""
        return sum(1 for _, _, fut in self._sleepers if not fut.done())

    async def _settle(self) -> None:
        for _ in range(self.SETTLE_ITERATIONS):
            await asyncio.sleep(0)

    def _wake_next(self) -> bool:
        while self._sleepers:
            wake_at, _, fut = heapq.heappop(self._sleepers)
            if fut.done():
                continue
            self._now = max(self._now, wake_at)
            fut.set_result(None)
            return True
        return False

    async def run(self, coro: Coroutine[Any, Any, T]) -> T:
        """Drive `coro` to completion in virtual time and return its result."""
        task = asyncio.ensure_future(coro)
        while not task.done():
            await self._settle()
            if task.done():
                break
            if not self._wake_next():
                await self._settle()
                if not task.done() and not self._sleepers:
                    task.cancel()
                    raise RuntimeError("VirtualClock deadlock: task blocked with no sleepers")
        return task.result()
