"""Market data contracts: ticks, top-of-book and quotes."""

from __future__ import annotations

from decimal import Decimal  # noqa: TC003 - used at runtime in validators

from pydantic import Field, field_validator, model_validator

from spotsim.contracts.base import BPS, ContractBase, parse_decimal
from spotsim.contracts.types import DataSourceKind  # noqa: TC001 - used at runtime


class BookTop(ContractBase):
    """Best bid/ask derived from a mid and a spread. Never persisted on its own."""

    bid: Decimal = Field(description="Best bid")
    ask: Decimal = Field(description="Best ask")
    mid: Decimal = Field(description="Mid price")
    spread: Decimal = Field(description="Ask minus bid")
    spread_bps: Decimal = Field(description="Spread in basis points of mid")
    ts: int = Field(description="Timestamp (ms)")

    @field_validator("bid", "ask", "mid", "spread", "spread_bps", mode="before")
    @classmethod
    def parse_decimal_fields(cls, v: object) -> Decimal:
        """Parse Decimal fields."""
        return parse_decimal(v)

    @classmethod
    def from_mid(cls, mid: Decimal, spread_bps: Decimal, ts: int) -> BookTop:
        """Build a symmetric top-of-book around `mid`."""
        spread = mid * spread_bps / BPS
        half = spread / 2
        return cls(
            bid=mid - half,
            ask=mid + half,
            mid=mid,
            spread=spread,
            spread_bps=spread_bps,
            ts=ts,
        )


class MarketTick(ContractBase):
    """One market-data update delivered by a MarketDataSource."""

    ts: int = Field(description="Tick timestamp (ms)")
    bid: Decimal = Field(description="Best bid")
    ask: Decimal = Field(description="Best ask")
    mid: Decimal = Field(description="Mid price")
    spread: Decimal = Field(description="Ask minus bid")
    source: DataSourceKind = Field(description="Tick origin")
    pair: str = Field(description="Trading pair, e.g. XRP/USD")

    @field_validator("bid", "ask", "mid", "spread", mode="before")
    @classmethod
    def parse_decimal_fields(cls, v: object) -> Decimal:
        """Parse Decimal fields."""
        return parse_decimal(v)

    @model_validator(mode="after")
    def check_book(self) -> MarketTick:
        """Reject crossed or non-positive books."""
        if self.bid <= 0 or self.ask <= 0:
            raise ValueError("bid and ask must be positive")
        if self.ask < self.bid:
            raise ValueError(f"crossed book: bid {self.bid} > ask {self.ask}")
        return self

    @property
    def spread_bps(self) -> Decimal:
        """Spread in basis points of mid."""
        if self.mid > 0:
            return self.spread / self.mid * BPS
        return Decimal("0")


class Quote(ContractBase):
    """Best bid/ask/last snapshot returned by a quote function."""

    bid: Decimal
    ask: Decimal
    last: Decimal
    ts: str = Field(description="ISO-8601 timestamp")

    @field_validator("bid", "ask", "last", mode="before")
    @classmethod
    def parse_decimal_fields(cls, v: object) -> Decimal:
        """Parse Decimal fields."""
        return parse_decimal(v)

    @property
    def mark(self) -> Decimal:
        """Mark price: last trade if positive, else mid."""
        if self.last > 0:
            return self.last
        return (self.bid + self.ask) / 2
