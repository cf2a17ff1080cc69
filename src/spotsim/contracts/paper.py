"""Paper-account contracts."""

from __future__ import annotations

from decimal import Decimal

from pydantic import Field, field_validator

from spotsim.contracts.base import ContractBase, parse_decimal
from spotsim.contracts.market import Quote  # noqa: TC001 - used at runtime
from spotsim.contracts.types import Liquidity, Side  # noqa: TC001 - used at runtime


class PaperFill(ContractBase):
    """Persisted fill of a paper market order."""

    id: str
    account_id: str
    ts: str = Field(description="ISO-8601 timestamp")
    side: Side
    qty: Decimal
    price: Decimal
    notional: Decimal
    fee_usd: Decimal
    liquidity: Liquidity
    realized_pnl_usd: Decimal

    @field_validator("qty", "price", "notional", "fee_usd", "realized_pnl_usd", mode="before")
    @classmethod
    def parse_decimal_fields(cls, v: object) -> Decimal:
        """Parse Decimal fields."""
        return parse_decimal(v)


class PaperPosition(ContractBase):
    """Long-only position of a paper account."""

    base_ccy: str
    qty: Decimal
    avg_entry: Decimal

    @field_validator("qty", "avg_entry", mode="before")
    @classmethod
    def parse_decimal_fields(cls, v: object) -> Decimal:
        """Parse Decimal fields."""
        return parse_decimal(v)


class PaperSnapshot(ContractBase):
    """Point-in-time view of a paper account."""

    account_id: str
    balances: dict[str, Decimal]
    position: PaperPosition | None
    stats: dict[str, Decimal]
    last_fills: list[PaperFill]
    market: Quote | None = None
    unrealized_pnl_usd: Decimal = Decimal("0")


class PaperOrderResult(ContractBase):
    """Result of a paper market order."""

    fill_id: str
    side: Side
    qty: Decimal
    price: Decimal
    notional_usd: Decimal
    fee_usd: Decimal
    liquidity: Liquidity
    realized_pnl_usd: Decimal
    snapshot: PaperSnapshot


class CloseoutResult(ContractBase):
    """Result of closing a paper position and sweeping realized P&L."""

    closed_qty: Decimal
    net_realized_pnl_usd: Decimal
    swept: Decimal
    sweep_run_id: str | None
    snapshot: PaperSnapshot
