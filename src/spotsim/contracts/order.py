"""Order and Fill contracts.

A Fill is immutable once produced and is drained from the exchange's fill
queue exactly once.
"""

from __future__ import annotations

from decimal import Decimal  # noqa: TC003 - used at runtime in validators

from pydantic import Field, field_validator, model_validator

from spotsim.contracts.base import ContractBase, parse_decimal
from spotsim.contracts.types import (  # noqa: TC001 - used at runtime
    Liquidity,
    OrderType,
    Side,
)


class Order(ContractBase):
    """An order resting in (or passing through) the exchange's open-order set."""

    order_id: str = Field(description="Exchange-assigned order id")
    pair: str = Field(description="Trading pair")
    side: Side
    order_type: OrderType
    qty: Decimal = Field(description="Order quantity in base currency")
    limit_price: Decimal | None = Field(default=None, description="Limit price (limit only)")
    created_ts: int = Field(description="Placement timestamp (ms)")
    liquidity: Liquidity = Field(
        default=Liquidity.TAKER,
        description="Classification on arrival (limit orders may rest as maker)",
    )

    @field_validator("qty", "limit_price", mode="before")
    @classmethod
    def parse_decimal_fields(cls, v: object) -> Decimal | None:
        """Parse Decimal fields."""
        if v is None:
            return None
        return parse_decimal(v)

    @model_validator(mode="after")
    def check_order(self) -> Order:
        """Validate quantity and limit price presence."""
        if self.qty <= 0:
            raise ValueError(f"qty must be positive, got {self.qty}")
        if self.order_type == OrderType.LIMIT:
            if self.limit_price is None or self.limit_price <= 0:
                raise ValueError("limit orders require a positive limit_price")
        return self


class Fill(ContractBase):
    """Execution of an order (always a complete fill)."""

    order_id: str
    pair: str
    side: Side
    qty: Decimal = Field(description="Filled quantity")
    price: Decimal = Field(description="Fill price")
    fee_usd: Decimal = Field(description="Fee charged in quote currency")
    liquidity: Liquidity
    fee_rate_bps: Decimal = Field(description="Applied fee rate in bps")
    fee_tier_label: str = Field(description="Fee tier label at fill time")
    ts: int = Field(description="Fill timestamp (ms)")

    @field_validator("qty", "price", "fee_usd", "fee_rate_bps", mode="before")
    @classmethod
    def parse_decimal_fields(cls, v: object) -> Decimal:
        """Parse Decimal fields."""
        return parse_decimal(v)

    @model_validator(mode="after")
    def check_notional(self) -> Fill:
        """Every fill must carry a strictly positive notional."""
        if self.qty <= 0 or self.price <= 0:
            raise ValueError(f"fill notional must be positive: qty={self.qty} price={self.price}")
        if self.fee_usd < 0:
            raise ValueError(f"fee_usd must be non-negative, got {self.fee_usd}")
        return self

    @property
    def notional(self) -> Decimal:
        """Fill notional value."""
        return self.qty * self.price

    @property
    def is_maker(self) -> bool:
        """True if the fill added liquidity."""
        return self.liquidity == Liquidity.MAKER
