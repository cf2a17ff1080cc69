"""Market data sources.

A MarketDataSource pushes MarketTick objects to an `on_tick` callback and
reports failures to an `on_error` callback. Sources run as asyncio tasks
sleeping on an injected Clock.

- SimDataSource: seeded price path for a named scenario.
- ReplayDataSource: replays a fixed sequence of (bid, ask) books, restamped
  with the clock. Used for external-mode steps fed from recorded data.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable, Iterable
from decimal import Decimal
from typing import Protocol

from spotsim.clock import Clock, SystemClock
from spotsim.contracts import DataSourceKind, MarketTick, to_decimal
from spotsim.contracts.base import BPS
from spotsim.errors import TransientSourceError
from spotsim.market.price_engine import PricePath, Scenario

logger = logging.getLogger(__name__)

TickCallback = Callable[[MarketTick], None]
ErrorCallback = Callable[[Exception], None]


class MarketDataSource(Protocol):
    """Push-style tick delivery interface."""

    kind: DataSourceKind

    async def start(self, pair: str, on_tick: TickCallback, on_error: ErrorCallback) -> None:
        """Begin delivering ticks. Returns once the delivery task is running."""
        ...

    async def stop(self) -> None:
        """Stop delivering ticks. Idempotent."""
        ...

    @property
    def running(self) -> bool:
        """True while ticks are being delivered."""
        ...


class _LoopSource:
    """Shared task lifecycle for clock-driven sources."""

    kind: DataSourceKind

    def __init__(self, tick_ms: int, clock: Clock | None = None) -> None:
        if tick_ms <= 0:
            raise ValueError(f"tick_ms must be > 0, got {tick_ms}")
        self._tick_ms = tick_ms
        self._clock = clock or SystemClock()
        self._task: asyncio.Task[None] | None = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self, pair: str, on_tick: TickCallback, on_error: ErrorCallback) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop(pair, on_tick, on_error))
        logger.info(
            "Data source started",
            extra={"source": self.kind.value, "pair": pair, "tick_ms": self._tick_ms},
        )

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

    async def _loop(self, pair: str, on_tick: TickCallback, on_error: ErrorCallback) -> None:
        while self._running:
            await self._clock.sleep(self._tick_ms)
            if not self._running:
                break
            try:
                tick = self._next_tick(pair)
            except StopIteration:
                logger.info("Data source exhausted", extra={"source": self.kind.value})
                self._running = False
                break
            except Exception as exc:  # noqa: BLE001 - surfaced to the error callback
                on_error(exc)
                continue
            on_tick(tick)

    def _next_tick(self, pair: str) -> MarketTick:
        raise NotImplementedError


class SimDataSource(_LoopSource):
    """Seeded simulated market for one scenario.

    Path time advances by exactly `tick_ms` per tick, so the price sequence
    depends only on the seed and the tick count, never on timer jitter.
    """

    kind = DataSourceKind.SIM

    def __init__(self, scenario: Scenario, tick_ms: int, clock: Clock | None = None) -> None:
        super().__init__(tick_ms, clock)
        self.scenario = scenario
        self._path = PricePath(scenario)

    @property
    def path(self) -> PricePath:
        return self._path

    def _next_tick(self, pair: str) -> MarketTick:
        price = to_decimal(self._path.step(self._tick_ms))
        spread = price * to_decimal(self.scenario.base_spread_bps) / BPS
        half = spread / 2
        return MarketTick(
            ts=self._clock.now_ms(),
            bid=price - half,
            ask=price + half,
            mid=price,
            spread=spread,
            source=self.kind,
            pair=pair,
        )


class ReplayDataSource(_LoopSource):
    """Replays recorded (bid, ask) books at a fixed cadence.

    Each book is restamped with the clock's time when delivered. Once the
    sequence is exhausted the source stops delivering, which the engine's
    stall watchdog treats like a dead feed.
    """

    def __init__(
        self,
        books: Iterable[tuple[Decimal | str | float, Decimal | str | float]],
        tick_ms: int,
        clock: Clock | None = None,
        kind: DataSourceKind = DataSourceKind.REPLAY,
    ) -> None:
        super().__init__(tick_ms, clock)
        self.kind = kind
        self._books = iter(books)

    def _next_tick(self, pair: str) -> MarketTick:
        bid_raw, ask_raw = next(self._books)
        bid, ask = to_decimal(bid_raw), to_decimal(ask_raw)
        if bid <= 0 or ask <= 0 or ask < bid:
            raise TransientSourceError(f"invalid book bid={bid} ask={ask}", source=self.kind.value)
        return MarketTick(
            ts=self._clock.now_ms(),
            bid=bid,
            ask=ask,
            mid=(bid + ask) / 2,
            spread=ask - bid,
            source=self.kind,
            pair=pair,
        )
