"""Maker/taker classification of limit orders against the current top-of-book."""

from __future__ import annotations

from decimal import Decimal  # noqa: TC003 - used at runtime

from spotsim.contracts import Liquidity, Side


def is_maker_limit(side: Side, limit_price: Decimal, bid: Decimal, ask: Decimal) -> bool:
    """True if a limit order would rest on the book instead of crossing.

    A buy is maker iff limit < ask; a sell is maker iff limit > bid.
    Touching the opposite side counts as taker.
    """
    if side == Side.BUY:
        return limit_price < ask
    return limit_price > bid


def classify_limit(side: Side, limit_price: Decimal, bid: Decimal, ask: Decimal) -> Liquidity:
    """Liquidity flag for a limit order arriving at the given top."""
    return Liquidity.MAKER if is_maker_limit(side, limit_price, bid, ask) else Liquidity.TAKER
