"""Strategy interface.

A strategy sees a read-only StrategyContext each tick and returns the orders
it wants placed. Risk blocks and signals go to an EventSink so every
evaluation leaves an audit trail.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Protocol

from spotsim.contracts import (  # noqa: TC001 - used at runtime in dataclass fields
    BookTop,
    EventType,
    OrderType,
    Side,
)


class EventSink(Protocol):
    """Anything that can record a domain event."""

    def log_event(self, event_type: EventType, data: dict[str, Any]) -> None: ...


@dataclass(frozen=True)
class StrategyOrder:
    """Order request emitted by a strategy."""

    side: Side
    qty: Decimal
    order_type: OrderType = OrderType.MARKET
    limit_price: Decimal | None = None
    reason: str = ""

    def __post_init__(self) -> None:
        """Validate order request."""
        if self.qty <= 0:
            raise ValueError(f"qty must be positive, got {self.qty}")
        if self.order_type == OrderType.LIMIT and (self.limit_price is None or self.limit_price <= 0):
            raise ValueError("limit orders require a positive limit_price")


@dataclass(frozen=True)
class StrategyContext:
    """Read-only state passed to the strategy on each tick."""

    now_ms: int
    top: BookTop
    pair: str
    position_qty: Decimal
    avg_entry: Decimal
    kill_switch: bool

    @property
    def is_flat(self) -> bool:
        return self.position_qty <= 0

    @property
    def position_notional(self) -> Decimal:
        return self.position_qty * self.top.mid


class Strategy(Protocol):
    """Per-run trading strategy. One instance per engine run."""

    def on_tick(self, ctx: StrategyContext, events: EventSink) -> list[StrategyOrder]:
        """Evaluate one tick.

        Args:
            ctx: Market and position state.
            events: Sink for SIGNAL and RISK_BLOCK records.

        Returns:
            Orders to place (may be empty).

        Raises:
            RiskBlockError: To block the whole tick; the engine records the reason.
        """
        ...

    def reset(self) -> None:
        """Drop all accumulated state. Called by the engine at the start of every run."""
        ...
