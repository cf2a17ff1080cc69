"""In-memory spot exchange used by the simulation engine.

Holds quote/base balances, a set of open limit orders and a queue of fills.
Top-of-book is derived from a mid and a spread set by the caller every tick.

Matching rules:
- Market buy fills at ask * slippage, market sell at bid / slippage (taker).
- Limit buy fills once ask <= limit at min(ask * slippage, limit); limit sell
  fills once bid >= limit at max(bid / slippage, limit). Liquidity is the
  classification made when the order arrived.
- Any order that would overdraw a balance is rejected (market) or skipped and
  kept open (limit). Balances are never touched before validation passes.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from decimal import Decimal

from spotsim.contracts import BookTop, Fill, Liquidity, Order, OrderType, Side
from spotsim.errors import RejectedOrderError
from spotsim.fees import DEFAULT_FEE_SCHEDULE, FeeSchedule, classify_limit

logger = logging.getLogger(__name__)

DEFAULT_PAIR = "XRP/USD"
DEFAULT_QUOTE_BALANCE = Decimal("1000")
DEFAULT_SLIPPAGE = Decimal("1.001")


def _default_time_fn() -> int:
    return int(time.time() * 1000)


class MockExchange:
    """Single-pair matching engine with tiered fees."""

    def __init__(
        self,
        pair: str = DEFAULT_PAIR,
        quote_balance: Decimal = DEFAULT_QUOTE_BALANCE,
        base_balance: Decimal = Decimal("0"),
        slippage: Decimal = DEFAULT_SLIPPAGE,
        volume_30d_usd: Decimal = Decimal("0"),
        fee_schedule: FeeSchedule | None = None,
        time_fn: Callable[[], int] | None = None,
    ) -> None:
        """Initialize the exchange.

        Args:
            pair: Trading pair as BASE/QUOTE.
            quote_balance: Starting quote currency balance.
            base_balance: Starting base currency balance.
            slippage: Multiplicative slippage for market and crossing fills (>= 1).
            volume_30d_usd: Trailing volume used for the first fee tier lookup.
            fee_schedule: Fee tiers. Defaults to the Kraken spot schedule.
            time_fn: Millisecond clock for order and fill timestamps.
        """
        if slippage < 1:
            raise ValueError(f"slippage must be >= 1, got {slippage}")
        base_ccy, _, quote_ccy = pair.partition("/")
        if not base_ccy or not quote_ccy:
            raise ValueError(f"pair must look like BASE/QUOTE, got {pair!r}")
        self.pair = pair
        self.base_ccy = base_ccy
        self.quote_ccy = quote_ccy
        self._balances: dict[str, Decimal] = {quote_ccy: quote_balance, base_ccy: base_balance}
        self._slippage = slippage
        self._volume_30d = volume_30d_usd
        self._fees = fee_schedule or DEFAULT_FEE_SCHEDULE
        self._time_fn = time_fn or _default_time_fn

        self._mid = Decimal("0")
        self._spread_bps = Decimal("0")
        self._open: dict[str, Order] = {}
        self._fills: list[Fill] = []
        self._seq = 0

    # -- market state ---------------------------------------------------------

    def set_market(self, mid: Decimal, spread_bps: Decimal) -> None:
        """Set the mid and spread used to derive the top-of-book."""
        if mid <= 0:
            raise ValueError(f"mid must be positive, got {mid}")
        if spread_bps < 0:
            raise ValueError(f"spread_bps must be >= 0, got {spread_bps}")
        self._mid = mid
        self._spread_bps = spread_bps

    def get_top(self, pair: str | None = None) -> BookTop:
        """Current top-of-book for the exchange's pair."""
        self._check_pair(pair)
        return BookTop.from_mid(self._mid, self._spread_bps, self._time_fn())

    @property
    def slippage(self) -> Decimal:
        return self._slippage

    @property
    def volume_30d_usd(self) -> Decimal:
        return self._volume_30d

    # -- accounts ---------------------------------------------------------------

    def balances(self) -> dict[str, Decimal]:
        """Copy of current balances."""
        return dict(self._balances)

    def open_orders(self) -> list[Order]:
        """Open limit orders in placement order."""
        return list(self._open.values())

    def drain_fills(self) -> list[Fill]:
        """Return and clear queued fills."""
        fills, self._fills = self._fills, []
        return fills

    # -- orders -----------------------------------------------------------------

    def place_order(
        self,
        pair: str,
        side: Side,
        order_type: OrderType,
        qty: Decimal,
        limit_price: Decimal | None = None,
    ) -> str:
        """Place an order and return its id.

        Market orders fill immediately against the current top. Limit orders
        are classified maker/taker and queued until crossed.

        Raises:
            RejectedOrderError: Market order would overdraw a balance.
            ValueError: Invalid pair, quantity or limit price.
        """
        self._check_pair(pair)
        now = self._time_fn()
        self._seq += 1
        order_id = f"mock-{self._seq}-{now}"

        if order_type == OrderType.MARKET:
            order = Order(
                order_id=order_id,
                pair=pair,
                side=side,
                order_type=order_type,
                qty=qty,
                created_ts=now,
            )
            top = BookTop.from_mid(self._mid, self._spread_bps, now)
            if top.mid <= 0:
                raise RejectedOrderError("no_market", "no market price set")
            price = self._market_price(side, top)
            reason = self._overdraw_reason(side, qty, price, is_maker=False)
            if reason:
                logger.info(
                    "Market order rejected",
                    extra={"order_id": order_id, "side": side.value, "qty": qty, "reason": reason},
                )
                raise RejectedOrderError(reason)
            self._execute(order, price, Liquidity.TAKER, now)
            return order_id

        if limit_price is None:
            raise ValueError("limit orders require limit_price")
        top = BookTop.from_mid(self._mid, self._spread_bps, now)
        order = Order(
            order_id=order_id,
            pair=pair,
            side=side,
            order_type=order_type,
            qty=qty,
            limit_price=limit_price,
            created_ts=now,
            liquidity=classify_limit(side, limit_price, top.bid, top.ask),
        )
        self._open[order_id] = order
        logger.debug(
            "Limit order queued",
            extra={"order_id": order_id, "side": side.value, "liquidity": order.liquidity.value},
        )
        return order_id

    def cancel_order(self, order_id: str) -> bool:
        """Remove an open order. Returns False if it was not open."""
        return self._open.pop(order_id, None) is not None

    def try_fill_limit_orders(self, top: BookTop | None = None) -> list[Fill]:
        """Fill every open limit order crossed by `top`.

        Orders that would overdraw are skipped and stay open.

        Returns:
            Fills produced by this call (also queued for drain_fills).
        """
        top = top or self.get_top()
        produced: list[Fill] = []
        for order_id, order in list(self._open.items()):
            limit = order.limit_price
            if limit is None:
                continue
            if order.side == Side.BUY:
                if top.ask > limit:
                    continue
                price = min(top.ask * self._slippage, limit)
            else:
                if top.bid < limit:
                    continue
                price = max(top.bid / self._slippage, limit)

            is_maker = order.liquidity == Liquidity.MAKER
            if self._overdraw_reason(order.side, order.qty, price, is_maker=is_maker):
                logger.debug("Limit fill skipped: insufficient balance", extra={"order_id": order_id})
                continue

            del self._open[order_id]
            produced.append(self._execute(order, price, order.liquidity, top.ts))
        return produced

    # -- internals --------------------------------------------------------------

    def _check_pair(self, pair: str | None) -> None:
        if pair is not None and pair != self.pair:
            raise ValueError(f"unknown pair {pair!r}, exchange trades {self.pair!r}")

    def _market_price(self, side: Side, top: BookTop) -> Decimal:
        if side == Side.BUY:
            return top.ask * self._slippage
        return top.bid / self._slippage

    def _overdraw_reason(self, side: Side, qty: Decimal, price: Decimal, *, is_maker: bool) -> str | None:
        notional = qty * price
        if side == Side.BUY:
            fee = self._fees.calc_fee(notional, is_maker, self._volume_30d).fee_usd
            if notional + fee > self._balances[self.quote_ccy]:
                return "insufficient_quote_balance"
        elif qty > self._balances[self.base_ccy]:
            return "insufficient_base_balance"
        return None

    def _execute(self, order: Order, price: Decimal, liquidity: Liquidity, ts: int) -> Fill:
        notional = order.qty * price
        fee = self._fees.calc_fee(notional, liquidity == Liquidity.MAKER, self._volume_30d)

        if order.side == Side.BUY:
            self._balances[self.quote_ccy] -= notional + fee.fee_usd
            self._balances[self.base_ccy] += order.qty
        else:
            self._balances[self.base_ccy] -= order.qty
            self._balances[self.quote_ccy] += notional - fee.fee_usd
        self._volume_30d += notional

        fill = Fill(
            order_id=order.order_id,
            pair=order.pair,
            side=order.side,
            qty=order.qty,
            price=price,
            fee_usd=fee.fee_usd,
            liquidity=liquidity,
            fee_rate_bps=fee.rate_bps,
            fee_tier_label=fee.tier.label,
            ts=ts,
        )
        self._fills.append(fill)
        logger.debug(
            "Order filled",
            extra={
                "order_id": order.order_id,
                "side": order.side.value,
                "qty": order.qty,
                "price": price,
                "fee_usd": fee.fee_usd,
                "liquidity": liquidity.value,
            },
        )
        return fill
