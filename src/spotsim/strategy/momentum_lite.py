"""Momentum-lite strategy: short vs long moving average of the mid.

Entry when short SMA is at least `threshold_bps` above long SMA and the book
is flat; exit the whole position when it is `threshold_bps` below. No shorts.

Gates, checked in order, each blocking the tick with a RISK_BLOCK event:
1. data_age: top-of-book older than `max_data_age_ms`
2. spread_too_wide: spread above `spread_block_bps`
3. kill_switch
4. max_position: position notional at or above the cap (blocks buys only)

Mids are only sampled once the first three gates pass.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from decimal import Decimal

from spotsim.contracts import EventType, Side
from spotsim.contracts.base import BPS
from spotsim.strategy.base import EventSink, StrategyContext, StrategyOrder


@dataclass(frozen=True)
class MomentumLiteConfig:
    """Strategy parameters.

    Attributes:
        window: Number of mids retained.
        short_period: Short SMA length.
        long_period: Long SMA length.
        threshold_bps: Entry/exit signal threshold.
        max_position_notional_usd: Position cap for new buys.
        spread_block_bps: Maximum tradable spread.
        max_data_age_ms: Maximum top-of-book age.
        order_notional_usd: Entry size in quote currency.
        max_order_qty: Entry size cap in base currency.
    """

    window: int = 60
    short_period: int = 10
    long_period: int = 30
    threshold_bps: Decimal = Decimal("5")
    max_position_notional_usd: Decimal = Decimal("300")
    spread_block_bps: Decimal = Decimal("30")
    max_data_age_ms: int = 2000
    order_notional_usd: Decimal = Decimal("50")
    max_order_qty: Decimal = Decimal("1000")

    def __post_init__(self) -> None:
        """Validate periods."""
        if not 0 < self.short_period <= self.long_period <= self.window:
            raise ValueError(
                "require 0 < short_period <= long_period <= window, got "
                f"{self.short_period}/{self.long_period}/{self.window}"
            )
        if self.threshold_bps < 0:
            raise ValueError(f"threshold_bps must be >= 0, got {self.threshold_bps}")
        if self.order_notional_usd <= 0:
            raise ValueError(f"order_notional_usd must be > 0, got {self.order_notional_usd}")


class MomentumLiteStrategy:
    """SMA-crossover strategy with risk gates."""

    def __init__(self, config: MomentumLiteConfig | None = None) -> None:
        self.config = config or MomentumLiteConfig()
        self._mids: deque[Decimal] = deque(maxlen=self.config.window)

    def reset(self) -> None:
        self._mids.clear()

    @property
    def sample_count(self) -> int:
        return len(self._mids)

    def _sma(self, period: int) -> Decimal:
        if not self._mids:
            return Decimal("0")
        if len(self._mids) < period:
            return self._mids[-1]
        recent = list(self._mids)[-period:]
        return sum(recent, Decimal("0")) / period

    def signal_bps(self) -> Decimal:
        """(short - long) / long in bps over the current window."""
        short = self._sma(self.config.short_period)
        long = self._sma(self.config.long_period)
        if long == 0:
            return Decimal("0")
        return (short - long) / long * BPS

    def on_tick(self, ctx: StrategyContext, events: EventSink) -> list[StrategyOrder]:
        cfg = self.config
        top = ctx.top

        data_age = ctx.now_ms - top.ts
        if data_age > cfg.max_data_age_ms:
            events.log_event(EventType.RISK_BLOCK, {"reason": "data_age", "data_age_ms": data_age})
            return []
        if top.spread_bps > cfg.spread_block_bps:
            events.log_event(
                EventType.RISK_BLOCK,
                {"reason": "spread_too_wide", "spread_bps": top.spread_bps, "max_bps": cfg.spread_block_bps},
            )
            return []
        if ctx.kill_switch:
            events.log_event(EventType.RISK_BLOCK, {"reason": "kill_switch"})
            return []

        self._mids.append(top.mid)
        short = self._sma(cfg.short_period)
        long = self._sma(cfg.long_period)
        diff_bps = self.signal_bps()

        events.log_event(
            EventType.SIGNAL,
            {
                "short_ma": short,
                "long_ma": long,
                "diff_bps": diff_bps,
                "position_qty": ctx.position_qty,
                "spread_bps": top.spread_bps,
            },
        )

        if diff_bps >= cfg.threshold_bps:
            if ctx.position_notional >= cfg.max_position_notional_usd:
                events.log_event(
                    EventType.RISK_BLOCK,
                    {
                        "reason": "max_position",
                        "position_notional": ctx.position_notional,
                        "max": cfg.max_position_notional_usd,
                    },
                )
                return []
            if not ctx.is_flat or top.ask <= 0:
                return []
            qty = min(cfg.order_notional_usd / top.ask, cfg.max_order_qty)
            return [StrategyOrder(side=Side.BUY, qty=qty, reason="momentum_entry")]

        if diff_bps <= -cfg.threshold_bps and ctx.position_qty > 0:
            return [StrategyOrder(side=Side.SELL, qty=ctx.position_qty, reason="momentum_exit")]

        return []
