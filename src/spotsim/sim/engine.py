"""Simulation engine: one MockExchange + Strategy pairing driven by a tick source.

Lifecycle is STOPPED -> RUNNING -> STOPPED. While running, three things sleep
on the injected Clock:

- the data source, delivering ticks to `_on_tick`
- the watchdog, every max(500, tick_ms): stops on max runtime, and stops with
  a `tick_stall` risk block once ticks stop arriving for 3 tick intervals
- the snapshot loop, persisting a SnapshotRow every `snapshot_every_ms`

Every callback checks the running flag before touching state, so a tick that
lands after stop() is dropped.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from decimal import Decimal
from typing import Any

from spotsim.clock import Clock, SystemClock
from spotsim.config import SimSettings
from spotsim.contracts import (
    BookTop,
    DataSourceKind,
    EventType,
    Fill,
    MarketTick,
    Side,
    SnapshotRow,
    to_decimal,
)
from spotsim.errors import ConfigurationError, RejectedOrderError, RiskBlockError
from spotsim.exchange import MockExchange
from spotsim.market import MarketDataSource, SimDataSource, get_scenario
from spotsim.sim.metrics import SimMetrics
from spotsim.sim.state import ExternalStep, SimRunState, SimStatus, SimStep
from spotsim.storage import Ledger
from spotsim.strategy import MomentumLiteStrategy, Strategy, StrategyContext

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")

MIN_WATCHDOG_MS = 500
STALL_TICK_MULTIPLE = 3
SNAPSHOT_LOG_EVERY_N = 6

# Book used before the first external tick arrives
EXTERNAL_BOOTSTRAP_MID = Decimal("2.5")
EXTERNAL_BOOTSTRAP_SPREAD_BPS = Decimal("10")

SourceFactory = Callable[[ExternalStep, int, Clock], MarketDataSource]
StrategyFactory = Callable[[], Strategy]


def _no_external_sources(step: ExternalStep, tick_ms: int, clock: Clock) -> MarketDataSource:
    raise ConfigurationError(f"No market data source configured for {step.source.value}")


class SimEngine:
    """Owns one simulation run at a time."""

    def __init__(
        self,
        ledger: Ledger,
        settings: SimSettings | None = None,
        clock: Clock | None = None,
        strategy_factory: StrategyFactory | None = None,
        source_factory: SourceFactory | None = None,
        metrics: SimMetrics | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            ledger: Event log and snapshot sink.
            settings: Tick, snapshot and runtime settings.
            clock: Time source for all loops (wall clock by default).
            strategy_factory: Builds a fresh strategy for each run.
            source_factory: Builds the tick source for external steps.
            metrics: Prometheus metrics (private registry by default).
        """
        self.ledger = ledger
        self.settings = settings or SimSettings()
        self.clock = clock or SystemClock()
        self._strategy_factory = strategy_factory or MomentumLiteStrategy
        self._source_factory = source_factory or _no_external_sources
        self.metrics = metrics or SimMetrics()

        self._state = SimRunState()
        self._kill_switch = self.settings.kill_switch
        self._tick_ms = self.settings.tick_ms
        self._exchange: MockExchange | None = None
        self._strategy: Strategy | None = None
        self._source: MarketDataSource | None = None
        self._tasks: list[asyncio.Task[None]] = []
        self._snapshot_count = 0

    # -- public API -------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._state.running

    @property
    def exchange(self) -> MockExchange | None:
        return self._exchange

    @property
    def kill_switch(self) -> bool:
        return self._kill_switch

    def set_kill_switch(self, on: bool) -> None:
        """Engage or release the kill switch. Takes effect on the next tick."""
        self._kill_switch = on
        self.log_event(EventType.KILL_SWITCH, {"on": on})
        logger.warning("Kill switch %s", "engaged" if on else "released")

    def status(self) -> SimStatus:
        s = self._state
        return SimStatus(
            running=s.running,
            scenario_name=s.scenario_name,
            source=s.source,
            started_ts=s.started_ts,
            ticks=s.ticks,
            last_tick_ts=s.last_tick_ts,
            last_price=s.last_price,
            last_top=s.last_top,
            position_qty=s.position_qty,
            avg_entry=s.avg_entry,
            realized_usd=s.realized_usd,
            unrealized_usd=s.unrealized_usd,
            equity_usd=s.equity_usd,
            start_equity_usd=s.start_equity_usd,
            peak_equity_usd=s.peak_equity_usd,
            drawdown_pct=s.drawdown_pct,
            max_drawdown_pct=s.max_drawdown_pct,
            error_count=s.error_count,
            fills=s.fills,
            kill_switch=self._kill_switch,
            risk_blocked=s.risk_blocked,
            stop_reason=s.stop_reason,
        )

    def log_event(self, event_type: EventType, data: dict[str, Any]) -> None:
        """Record an event stamped with the engine clock."""
        if event_type == EventType.RISK_BLOCK:
            self.metrics.record_risk_block(str(data.get("reason", "unknown")))
        self.ledger.log_event(event_type, data, ts=self.clock.now_ms())

    async def start(
        self,
        step: SimStep | ExternalStep | str | None = None,
        tick_ms: int | None = None,
    ) -> SimStatus:
        """Start a run. Returns the current status unchanged if already running.

        Args:
            step: Scenario step, external step, or a scenario name (default CHOP).
            tick_ms: Tick interval override.

        Raises:
            ConfigurationError: Unknown scenario or no source for an external step.
        """
        if self._state.running:
            return self.status()

        if step is None or isinstance(step, str):
            step = SimStep(scenario=step or "CHOP")
        tick = tick_ms or self.settings.tick_ms
        if tick <= 0:
            raise ConfigurationError(f"tick_ms must be > 0, got {tick}")
        pair = self.settings.pair

        if isinstance(step, SimStep):
            scenario = get_scenario(step.scenario)
            if step.seed is not None:
                scenario = scenario.model_copy(update={"seed": step.seed})
            exchange = self._new_exchange(to_decimal(scenario.slippage_factor))
            exchange.set_market(to_decimal(scenario.start_price), to_decimal(scenario.base_spread_bps))
            source: MarketDataSource = SimDataSource(scenario, tick, self.clock)
            scenario_name: str | None = scenario.name
            kind = DataSourceKind.SIM
        else:
            source = self._source_factory(step, tick, self.clock)
            exchange = self._new_exchange(None)
            exchange.set_market(EXTERNAL_BOOTSTRAP_MID, EXTERNAL_BOOTSTRAP_SPREAD_BPS)
            scenario_name = None
            kind = step.source

        now = self.clock.now_ms()
        equity = exchange.balances()[exchange.quote_ccy]
        self._state = SimRunState(
            scenario_name=scenario_name,
            source=kind,
            started_ts=now,
            last_price=exchange.get_top().mid,
            equity_usd=equity,
            start_equity_usd=equity,
            peak_equity_usd=equity,
        )
        self._exchange = exchange
        self._strategy = self._strategy_factory()
        self._strategy.reset()
        self._source = source
        self._tick_ms = tick
        self._snapshot_count = 0

        self.log_event(
            EventType.SIM_STARTED,
            {
                "scenario": scenario_name,
                "tick_ms": tick,
                "source": kind.value,
                "pair": pair,
                "max_runtime_sec": self.settings.max_runtime_sec,
            },
        )
        logger.info(
            "Simulation started",
            extra={"scenario": scenario_name, "source": kind.value, "tick_ms": tick},
        )

        self._state.running = True
        self.metrics.running.set(1)
        try:
            await source.start(pair, self._on_tick, self._on_source_error)
        except Exception as e:
            self._state.running = False
            self._state.stop_reason = "source_start_failed"
            self.metrics.running.set(0)
            self._source = None
            self.log_event(EventType.SIM_STOPPED, {"reason": "source_start_failed", "error": str(e), "ticks": 0})
            logger.warning("Data source failed to start", extra={"source": kind.value, "error": str(e)})
            raise
        self._tasks = [
            asyncio.create_task(self._watchdog_loop()),
            asyncio.create_task(self._snapshot_loop()),
        ]
        return self.status()

    async def stop(self, reason: str = "user") -> SimStatus:
        """Stop the run, cancel all loops and the source. Idempotent."""
        was_running = self._state.running
        self._state.running = False
        current = asyncio.current_task()
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            if task is not current:
                task.cancel()
        for task in tasks:
            if task is not current:
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        if self._source is not None:
            await self._source.stop()
            self._source = None

        if was_running:
            self._state.stop_reason = reason
            self.metrics.running.set(0)
            self.log_event(EventType.SIM_STOPPED, {"reason": reason, "ticks": self._state.ticks})
            logger.info(
                "Simulation stopped",
                extra={"reason": reason, "ticks": self._state.ticks, "fills": self._state.fills},
            )
        return self.status()

    # -- tick handling ------------------------------------------------------------

    def _new_exchange(self, slippage: Decimal | None) -> MockExchange:
        kwargs: dict[str, Any] = {}
        if slippage is not None:
            kwargs["slippage"] = slippage
        return MockExchange(
            pair=self.settings.pair,
            quote_balance=self.settings.initial_quote_balance,
            volume_30d_usd=self.settings.volume_30d_usd,
            time_fn=self.clock.now_ms,
            **kwargs,
        )

    def _on_tick(self, tick: MarketTick) -> None:
        state = self._state
        exchange = self._exchange
        if not state.running or exchange is None or self._strategy is None:
            return

        state.ticks += 1
        state.last_tick_ts = tick.ts
        state.last_price = tick.mid
        self.metrics.ticks.inc()

        exchange.set_market(tick.mid, tick.spread_bps)
        top = BookTop.from_mid(tick.mid, tick.spread_bps, tick.ts)
        state.last_top = top
        self._mark_to_market(top.mid)

        if state.ticks % self.settings.tick_log_every_n == 0:
            self.log_event(
                EventType.TICK,
                {
                    "ticks": state.ticks,
                    "mid": top.mid,
                    "spread_bps": top.spread_bps,
                    "ts": top.ts,
                    "source": tick.source.value,
                },
            )

        ctx = StrategyContext(
            now_ms=self.clock.now_ms(),
            top=top,
            pair=exchange.pair,
            position_qty=state.position_qty,
            avg_entry=state.avg_entry,
            kill_switch=self._kill_switch,
        )
        try:
            orders = self._strategy.on_tick(ctx, self)
        except RiskBlockError as e:
            self.log_event(EventType.RISK_BLOCK, {"reason": e.reason, "message": str(e)})
            orders = []
        except Exception as e:  # noqa: BLE001 - strategy bugs must not kill the run
            logger.exception("Strategy error")
            self.log_event(EventType.RISK_BLOCK, {"reason": "strategy_error", "message": str(e)})
            orders = []

        for order in orders:
            try:
                order_id = exchange.place_order(
                    exchange.pair, order.side, order.order_type, order.qty, order.limit_price
                )
            except (RejectedOrderError, ValueError) as e:
                self.log_event(EventType.RISK_BLOCK, {"reason": "place_failed", "message": str(e)})
                continue
            self.log_event(
                EventType.ORDER_PLACED,
                {
                    "order_id": order_id,
                    "side": order.side.value,
                    "type": order.order_type.value,
                    "qty": order.qty,
                    "pair": exchange.pair,
                    "reason": order.reason,
                },
            )

        exchange.try_fill_limit_orders(top)
        self._apply_fills(exchange.drain_fills())

    def _apply_fills(self, fills: list[Fill]) -> None:
        state = self._state
        for f in fills:
            self.log_event(
                EventType.ORDER_FILLED,
                {
                    "order_id": f.order_id,
                    "pair": f.pair,
                    "side": f.side.value,
                    "qty": f.qty,
                    "price": f.price,
                    "fee_usd": f.fee_usd,
                    "liquidity": f.liquidity.value,
                    "fee_rate_bps": f.fee_rate_bps,
                    "fee_tier_label": f.fee_tier_label,
                    "ts": f.ts,
                },
            )
            if f.side == Side.BUY:
                total = state.position_qty + f.qty
                state.avg_entry = (state.position_qty * state.avg_entry + f.qty * f.price) / total
                state.position_qty = total
                state.realized_usd -= f.fee_usd
            else:
                state.realized_usd += f.qty * (f.price - state.avg_entry) - f.fee_usd
                state.position_qty -= f.qty
                if state.position_qty <= 0:
                    state.position_qty = ZERO
                    state.avg_entry = ZERO
            state.fills += 1
            self.metrics.record_fill(f.liquidity, f.fee_usd)

        if fills:
            self._mark_to_market(state.last_price)
            self.log_event(
                EventType.POSITION,
                {
                    "qty": state.position_qty,
                    "avg_entry": state.avg_entry,
                    "realized_usd": state.realized_usd,
                    "unrealized_usd": state.unrealized_usd,
                    "equity_usd": state.equity_usd,
                },
            )

    def _mark_to_market(self, mark: Decimal) -> None:
        state = self._state
        exchange = self._exchange
        if exchange is None:
            return
        state.unrealized_usd = (
            state.position_qty * (mark - state.avg_entry) if state.position_qty > 0 else ZERO
        )
        state.equity_usd = exchange.balances()[exchange.quote_ccy] + state.position_qty * mark
        if state.equity_usd > state.peak_equity_usd:
            state.peak_equity_usd = state.equity_usd
        if state.peak_equity_usd > 0:
            state.drawdown_pct = (
                (state.peak_equity_usd - state.equity_usd) / state.peak_equity_usd * HUNDRED
            )
            state.max_drawdown_pct = max(state.max_drawdown_pct, state.drawdown_pct)
        self.metrics.set_marks(state.equity_usd, state.drawdown_pct)

    def _on_source_error(self, exc: Exception) -> None:
        if not self._state.running:
            return
        self._state.error_count += 1
        self.metrics.datasource_errors.inc()
        logger.warning("Data source error", extra={"error": str(exc)})
        self.log_event(EventType.RISK_BLOCK, {"reason": "datasource_error", "message": str(exc)})

    # -- loops --------------------------------------------------------------------

    async def _watchdog_loop(self) -> None:
        interval = max(MIN_WATCHDOG_MS, self._tick_ms)
        max_runtime_ms = self.settings.max_runtime_sec * 1000
        stall_ms = STALL_TICK_MULTIPLE * self._tick_ms
        while self._state.running:
            await self.clock.sleep(interval)
            if not self._state.running:
                return
            now = self.clock.now_ms()
            if now - self._state.started_ts >= max_runtime_ms:
                await self.stop("max_runtime")
                return
            since_tick = now - self._state.last_tick_ts
            if self._state.ticks > 0 and since_tick > stall_ms:
                self._state.risk_blocked = True
                self.log_event(EventType.RISK_BLOCK, {"reason": "tick_stall", "since_tick_ms": since_tick})
                logger.warning("Tick stall detected", extra={"since_tick_ms": since_tick})
                await self.stop("tick_stall")
                return

    async def _snapshot_loop(self) -> None:
        while self._state.running:
            await self.clock.sleep(self.settings.snapshot_every_ms)
            state = self._state
            if not state.running or state.last_top is None:
                continue
            top = state.last_top
            row = SnapshotRow(
                ts=self.clock.now_ms(),
                source=state.source.value,
                scenario=state.scenario_name,
                mid=top.mid,
                bid=top.bid,
                ask=top.ask,
                spread=top.spread,
                spread_bps=top.spread_bps,
                position_qty=state.position_qty,
                avg_entry=state.avg_entry,
                realized_usd=state.realized_usd,
                unrealized_usd=state.unrealized_usd,
                equity_usd=state.equity_usd,
                drawdown_pct=state.drawdown_pct,
                ticks=state.ticks,
            )
            self.ledger.insert_snapshot(row)
            self._snapshot_count += 1
            if self._snapshot_count % SNAPSHOT_LOG_EVERY_N == 0:
                self.log_event(
                    EventType.SNAPSHOT, {"n": self._snapshot_count, "equity_usd": row.equity_usd}
                )
