"""Suite steps, per-run engine state and the status/summary views."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Annotated, Literal

from pydantic import Field, TypeAdapter, field_validator

from spotsim.contracts import BookTop, ContractBase, DataSourceKind, parse_decimal

ZERO = Decimal("0")


class SimStep(ContractBase):
    """Run a seeded scenario for `duration_sec`."""

    mode: Literal["SIM"] = "SIM"
    scenario: str
    duration_sec: float = Field(default=900, gt=0)
    seed: int | None = Field(default=None, description="Overrides the scenario's seed")


class ExternalStep(ContractBase):
    """Run against an external tick source for `duration_sec`."""

    mode: Literal["EXTERNAL"] = "EXTERNAL"
    source: DataSourceKind
    duration_sec: float = Field(default=900, gt=0)

    @field_validator("source")
    @classmethod
    def check_external(cls, v: DataSourceKind) -> DataSourceKind:
        """SIM is not an external source."""
        if v == DataSourceKind.SIM:
            raise ValueError("ExternalStep source cannot be SIM; use SimStep")
        return v


SuiteStep = Annotated[SimStep | ExternalStep, Field(discriminator="mode")]
SUITE_PLAN_ADAPTER: TypeAdapter[list[SimStep | ExternalStep]] = TypeAdapter(list[SuiteStep])

DEFAULT_PLAN: tuple[SimStep | ExternalStep, ...] = (
    SimStep(scenario="CHOP", duration_sec=15 * 60),
    SimStep(scenario="TREND_UP", duration_sec=15 * 60),
    SimStep(scenario="PANIC_DOWN", duration_sec=15 * 60),
)


def step_label(step: SimStep | ExternalStep) -> str:
    """Short human label: scenario name or source kind."""
    if isinstance(step, SimStep):
        return step.scenario
    return step.source.value


@dataclass
class SimRunState:
    """Mutable state of one engine run. Reset on every start."""

    running: bool = False
    scenario_name: str | None = None
    source: DataSourceKind = DataSourceKind.SIM
    started_ts: int = 0
    ticks: int = 0
    last_tick_ts: int = 0
    last_price: Decimal = ZERO
    last_top: BookTop | None = None
    position_qty: Decimal = ZERO
    avg_entry: Decimal = ZERO
    realized_usd: Decimal = ZERO
    unrealized_usd: Decimal = ZERO
    equity_usd: Decimal = ZERO
    start_equity_usd: Decimal = ZERO
    peak_equity_usd: Decimal = ZERO
    drawdown_pct: Decimal = ZERO
    max_drawdown_pct: Decimal = ZERO
    error_count: int = 0
    risk_blocked: bool = False
    stop_reason: str | None = None
    fills: int = 0


@dataclass(frozen=True)
class SimStatus:
    """Read-only snapshot of SimRunState plus engine flags."""

    running: bool
    scenario_name: str | None
    source: DataSourceKind
    started_ts: int
    ticks: int
    last_tick_ts: int
    last_price: Decimal
    last_top: BookTop | None
    position_qty: Decimal
    avg_entry: Decimal
    realized_usd: Decimal
    unrealized_usd: Decimal
    equity_usd: Decimal
    start_equity_usd: Decimal
    peak_equity_usd: Decimal
    drawdown_pct: Decimal
    max_drawdown_pct: Decimal
    error_count: int
    fills: int
    kill_switch: bool
    risk_blocked: bool
    stop_reason: str | None


class SuiteSummary(ContractBase):
    """Aggregate result of a suite run."""

    start_equity_usd: Decimal = ZERO
    end_equity_usd: Decimal = ZERO
    pnl_usd: Decimal = ZERO
    realized_pnl_usd: Decimal = ZERO
    unrealized_pnl_usd: Decimal = ZERO
    max_drawdown_pct: Decimal = ZERO
    trade_count: int = 0
    fees_total_usd: Decimal = ZERO
    maker_trades: int = 0
    taker_trades: int = 0
    maker_fees_usd: Decimal = ZERO
    taker_fees_usd: Decimal = ZERO
    steps_run: int = 0
    steps_failed: int = 0
    cancelled: bool = False
    errors: tuple[str, ...] = ()

    @field_validator(
        "start_equity_usd",
        "end_equity_usd",
        "pnl_usd",
        "realized_pnl_usd",
        "unrealized_pnl_usd",
        "max_drawdown_pct",
        "fees_total_usd",
        "maker_fees_usd",
        "taker_fees_usd",
        mode="before",
    )
    @classmethod
    def parse_decimal_fields(cls, v: object) -> Decimal:
        """Parse Decimal fields."""
        return parse_decimal(v)
