"""Suite runner: sequences plan steps through one SimEngine.

Steps run strictly one at a time. For each step the runner starts the engine,
waits for the step duration (or `cancel()`), stops the engine and folds the
step's results into the running totals. A step that fails to start is logged
as SUITE_STEP_FAILED, counted, and the suite moves on.

Every engine start begins from a fresh exchange and zeroed P&L, so suite P&L
is the sum of per-step deltas: equity (end - start) and realized P&L. Trade
and fee totals come from the ORDER_FILLED events recorded during the suite.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Sequence
from decimal import Decimal

from spotsim.contracts import EventType, Liquidity
from spotsim.sim.engine import SimEngine
from spotsim.sim.state import DEFAULT_PLAN, ExternalStep, SimStep, SuiteSummary, step_label

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class SuiteRunner:
    """Runs suite plans on a shared engine."""

    def __init__(self, engine: SimEngine) -> None:
        self.engine = engine
        self._cancel = asyncio.Event()
        self._running = False
        self._step_idx: int | None = None

    @property
    def running(self) -> bool:
        return self._running

    @property
    def step_index(self) -> int | None:
        """Index of the active step, None when idle."""
        return self._step_idx

    def cancel(self) -> None:
        """Stop after the current step; remaining steps are skipped."""
        self._cancel.set()

    async def _wait_step(self, duration_sec: float) -> bool:
        """Sleep for the step duration. Returns True if cancelled."""
        if self._cancel.is_set():
            return True
        sleeper = asyncio.create_task(self.engine.clock.sleep(duration_sec * 1000))
        cancelled = asyncio.create_task(self._cancel.wait())
        done, pending = await asyncio.wait({sleeper, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        return cancelled in done

    async def run(
        self,
        plan: Sequence[SimStep | ExternalStep] = DEFAULT_PLAN,
        tick_ms: int | None = None,
    ) -> SuiteSummary:
        """Run every step of `plan` in order and return the aggregate summary."""
        engine = self.engine
        await engine.stop("suite_start")

        self._cancel = asyncio.Event()
        self._running = True
        watermark = engine.ledger.last_event_id()
        engine.log_event(
            EventType.SUITE_STARTED,
            {"plan": [step.model_dump(mode="json") for step in plan], "tick_ms": tick_ms},
        )
        logger.info("Suite started", extra={"steps": len(plan), "tick_ms": tick_ms})

        start_equity: Decimal | None = None
        equity_delta = ZERO
        realized = ZERO
        unrealized = ZERO
        max_drawdown = ZERO
        steps_run = 0
        steps_failed = 0
        errors: list[str] = []
        was_cancelled = False

        try:
            for idx, step in enumerate(plan):
                if self._cancel.is_set():
                    was_cancelled = True
                    break
                self._step_idx = idx
                engine.log_event(
                    EventType.SUITE_STEP,
                    {"idx": idx, "step": step_label(step), "mode": step.mode, "duration_sec": step.duration_sec},
                )
                try:
                    started = await engine.start(step, tick_ms)
                except Exception as e:  # noqa: BLE001 - a failed step must not abort the suite
                    await engine.stop("suite_step_failed")
                    steps_failed += 1
                    errors.append(f"step {idx} ({step_label(step)}): {e}")
                    engine.log_event(
                        EventType.SUITE_STEP_FAILED,
                        {"idx": idx, "step": step_label(step), "error": str(e)},
                    )
                    logger.warning(
                        "Suite step failed",
                        extra={"idx": idx, "step": step_label(step), "error": str(e)},
                    )
                    continue

                if start_equity is None:
                    start_equity = started.start_equity_usd
                try:
                    was_cancelled = await self._wait_step(step.duration_sec)
                finally:
                    after = await engine.stop("suite_step_done")
                steps_run += 1
                equity_delta += after.equity_usd - after.start_equity_usd
                realized += after.realized_usd
                unrealized = after.unrealized_usd
                max_drawdown = max(max_drawdown, after.max_drawdown_pct)
                if was_cancelled:
                    break
        finally:
            self._running = False
            self._step_idx = None

        fills = engine.ledger.get_events(limit=None, types=[EventType.ORDER_FILLED], after_id=watermark)
        maker_trades = taker_trades = 0
        maker_fees = taker_fees = ZERO
        for ev in fills:
            fee = Decimal(str(ev.data.get("fee_usd", "0")))
            if ev.data.get("liquidity") == Liquidity.MAKER.value:
                maker_trades += 1
                maker_fees += fee
            else:
                taker_trades += 1
                taker_fees += fee

        start = start_equity if start_equity is not None else ZERO
        summary = SuiteSummary(
            start_equity_usd=start,
            end_equity_usd=start + equity_delta,
            pnl_usd=equity_delta,
            realized_pnl_usd=realized,
            unrealized_pnl_usd=unrealized,
            max_drawdown_pct=max_drawdown,
            trade_count=maker_trades + taker_trades,
            fees_total_usd=maker_fees + taker_fees,
            maker_trades=maker_trades,
            taker_trades=taker_trades,
            maker_fees_usd=maker_fees,
            taker_fees_usd=taker_fees,
            steps_run=steps_run,
            steps_failed=steps_failed,
            cancelled=was_cancelled,
            errors=tuple(errors),
        )
        engine.log_event(EventType.SUITE_DONE, {"summary": summary.model_dump(mode="json")})
        logger.info(
            "Suite finished",
            extra={
                "trade_count": summary.trade_count,
                "pnl_usd": summary.pnl_usd,
                "fees_total_usd": summary.fees_total_usd,
                "steps_failed": steps_failed,
            },
        )
        return summary
