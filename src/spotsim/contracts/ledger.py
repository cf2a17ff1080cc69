"""Ledger, event-log and snapshot records."""

from __future__ import annotations

from decimal import Decimal  # noqa: TC003 - used at runtime in validators
from typing import Any

from pydantic import Field, field_validator

from spotsim.contracts.base import ContractBase, parse_decimal
from spotsim.contracts.types import LedgerEntryType  # noqa: TC001 - used at runtime


class LedgerEntry(ContractBase):
    """Append-only ledger row. The USD balance is the running sum of deltas."""

    id: str
    run_id: str
    ts: str = Field(description="ISO-8601 timestamp")
    type: LedgerEntryType
    currency: str
    delta: Decimal
    note: str | None = None

    @field_validator("delta", mode="before")
    @classmethod
    def parse_decimal_fields(cls, v: object) -> Decimal:
        """Parse Decimal fields."""
        return parse_decimal(v)


class SweepResult(ContractBase):
    """Outcome of a sweep-to-USD attempt."""

    before: Decimal
    after: Decimal
    swept: Decimal

    @field_validator("before", "after", "swept", mode="before")
    @classmethod
    def parse_decimal_fields(cls, v: object) -> Decimal:
        """Parse Decimal fields."""
        return parse_decimal(v)


class EventRecord(ContractBase):
    """One row of the event log."""

    id: int
    ts: int
    type: str
    data: dict[str, Any] = Field(default_factory=dict)


class SnapshotRow(ContractBase):
    """Periodic simulation snapshot."""

    ts: int
    source: str
    scenario: str | None = None
    mid: Decimal
    bid: Decimal
    ask: Decimal
    spread: Decimal
    spread_bps: Decimal
    position_qty: Decimal
    avg_entry: Decimal
    realized_usd: Decimal
    unrealized_usd: Decimal
    equity_usd: Decimal
    drawdown_pct: Decimal
    ticks: int

    @field_validator(
        "mid",
        "bid",
        "ask",
        "spread",
        "spread_bps",
        "position_qty",
        "avg_entry",
        "realized_usd",
        "unrealized_usd",
        "equity_usd",
        "drawdown_pct",
        mode="before",
    )
    @classmethod
    def parse_decimal_fields(cls, v: object) -> Decimal:
        """Parse Decimal fields."""
        return parse_decimal(v)
