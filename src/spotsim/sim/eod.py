"""End-of-day batch: run a suite, book fees and sweep, gate, write artifacts.

Pipeline:
1. insert an eod_runs row (status running)
2. run the suite plan (a crash yields error_count=1 and a zero summary)
3. record metrics, debit total fees to the ledger, sweep realized P&L
4. evaluate gates: error_count == 0, trade_count >= min_trades,
   min_pnl_usd <= realized_pnl_usd <= max_pnl_usd
5. persist PASS/FAIL and write <out_dir>/<run_id>/summary.json and trades.jsonl
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Sequence
from dataclasses import replace
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any

import orjson
from pydantic import Field, field_validator

from spotsim.contracts import ContractBase, EventType, RunStatus, parse_decimal
from spotsim.fees import pick_tier
from spotsim.sim.engine import SimEngine
from spotsim.sim.state import (
    DEFAULT_PLAN,
    SUITE_PLAN_ADAPTER,
    ExternalStep,
    SimStep,
    SuiteSummary,
)
from spotsim.sim.suite import SuiteRunner
from spotsim.storage.ledger import dumps_payload, json_default

logger = logging.getLogger(__name__)

SUMMARY_FILE = "summary.json"
TRADES_FILE = "trades.jsonl"


class EodGates(ContractBase):
    """Pass/fail thresholds for an EOD run."""

    min_trades: int = Field(default=1, ge=0)
    min_pnl_usd: Decimal = Decimal("0")
    max_pnl_usd: Decimal = Decimal("999999")

    @field_validator("min_pnl_usd", "max_pnl_usd", mode="before")
    @classmethod
    def parse_decimal_fields(cls, v: object) -> Decimal:
        """Parse Decimal fields."""
        return parse_decimal(v)

    @classmethod
    def load(cls, path: str | Path | None) -> EodGates:
        """Load gates from a JSON file; defaults when `path` is None or missing."""
        if path is None or not Path(path).exists():
            return cls()
        return cls.model_validate(orjson.loads(Path(path).read_bytes()))


class EodPlan(ContractBase):
    """Suite plan and tick interval for an EOD run, as loaded from JSON."""

    steps: tuple[SimStep | ExternalStep, ...] = DEFAULT_PLAN
    tick_ms: int | None = Field(default=None, gt=0)

    @field_validator("steps", mode="before")
    @classmethod
    def parse_steps(cls, v: Any) -> Any:
        """Steps are a tagged union on `mode`."""
        if isinstance(v, (list, tuple)):
            return tuple(SUITE_PLAN_ADAPTER.validate_python(list(v)))
        return v

    @classmethod
    def load(cls, path: str | Path) -> EodPlan:
        return cls.model_validate(orjson.loads(Path(path).read_bytes()))


class EodResult(ContractBase):
    """Outcome of one EOD run."""

    run_id: str
    status: RunStatus
    metrics: dict[str, Any]
    gates: dict[str, Any]
    summary_path: Path
    trades_path: Path


def new_run_id(now_ms: int) -> str:
    """`YYYYMMDDTHHMMSS-<8 hex>` from a millisecond timestamp."""
    stamp = datetime.fromtimestamp(now_ms / 1000, tz=UTC).strftime("%Y%m%dT%H%M%S")
    return f"{stamp}-{secrets.token_hex(4)}"


def evaluate_gates(
    gates: EodGates,
    *,
    error_count: int,
    trade_count: int,
    realized_pnl_usd: Decimal,
) -> dict[str, Any]:
    """Evaluate each gate; the `passed` key is their conjunction."""
    error_ok = error_count == 0
    trades_ok = trade_count >= gates.min_trades
    pnl_ok = gates.min_pnl_usd <= realized_pnl_usd <= gates.max_pnl_usd
    return {
        "error_count_ok": error_ok,
        "trade_count_ok": trades_ok,
        "pnl_ok": pnl_ok,
        "min_trades": gates.min_trades,
        "min_pnl_usd": gates.min_pnl_usd,
        "max_pnl_usd": gates.max_pnl_usd,
        "passed": error_ok and trades_ok and pnl_ok,
    }


async def run_eod(
    engine: SimEngine,
    out_dir: str | Path,
    plan: Sequence[SimStep | ExternalStep] = DEFAULT_PLAN,
    gates: EodGates | None = None,
    *,
    tick_ms: int | None = None,
    seed: int | None = None,
    volume_30d_usd: Decimal | None = None,
) -> EodResult:
    """Run the EOD pipeline on `engine` and its ledger.

    Args:
        engine: Simulation engine (its ledger receives fees, sweep and run rows).
        out_dir: Artifact root; files land in `<out_dir>/<run_id>/`.
        plan: Suite steps.
        gates: Pass/fail thresholds (defaults when None).
        tick_ms: Tick interval override for every step.
        seed: When set, overrides the seed of every scenario step without one.
        volume_30d_usd: Trailing volume for fee tier selection; defaults to
            the engine settings.

    Returns:
        EodResult with status, metrics, gate outcomes and artifact paths.
    """
    ledger = engine.ledger
    gates = gates or EodGates()
    if volume_30d_usd is not None:
        engine.settings = replace(engine.settings, volume_30d_usd=volume_30d_usd)
    if seed is not None:
        plan = [
            s.model_copy(update={"seed": seed}) if isinstance(s, SimStep) and s.seed is None else s
            for s in plan
        ]

    now_ms = engine.clock.now_ms()
    run_id = new_run_id(now_ms)
    started_at = datetime.fromtimestamp(now_ms / 1000, tz=UTC).isoformat()
    config = {"steps": [s.model_dump(mode="json") for s in plan], "tick_ms": tick_ms}
    ledger.insert_eod_run(run_id, started_at, seed, config)
    logger.info("EOD run started", extra={"run_id": run_id, "steps": len(plan)})

    volume_used = engine.settings.volume_30d_usd
    tier_label = pick_tier(volume_used).label

    watermark = ledger.last_event_id()
    error_count = 0
    try:
        summary = await SuiteRunner(engine).run(plan, tick_ms)
    except Exception:  # noqa: BLE001 - a crashed suite is reported as a failed run
        logger.exception("EOD suite crashed", extra={"run_id": run_id})
        error_count = 1
        summary = SuiteSummary()
    error_count += summary.steps_failed

    metrics: dict[str, Any] = {
        "trade_count": summary.trade_count,
        "realized_pnl_usd": summary.realized_pnl_usd,
        "fees_usd": summary.fees_total_usd,
        "maker_count": summary.maker_trades,
        "taker_count": summary.taker_trades,
        "volume_30d_usd_used": volume_used,
        "equity_delta_usd": summary.pnl_usd,
        "unrealized_pnl_usd": summary.unrealized_pnl_usd,
        "error_count": error_count,
    }

    ledger.add_fee(run_id, summary.fees_total_usd, f"Kraken fee {tier_label}")
    sweep = ledger.apply_sweep(run_id, summary.realized_pnl_usd)
    metrics["usd_balance_before"] = sweep.before
    metrics["usd_balance_after"] = sweep.after
    metrics["swept_to_usd"] = sweep.swept
    for key, value in metrics.items():
        ledger.insert_eod_metric(run_id, key, value)

    gate_result = evaluate_gates(
        gates,
        error_count=error_count,
        trade_count=summary.trade_count,
        realized_pnl_usd=summary.realized_pnl_usd,
    )
    status = RunStatus.PASS if gate_result["passed"] else RunStatus.FAIL
    ledger.update_eod_run_status(run_id, status)

    run_dir = Path(out_dir) / run_id
    run_dir.mkdir(parents=True, exist_ok=True)
    summary_path = run_dir / SUMMARY_FILE
    trades_path = run_dir / TRADES_FILE

    payload = {
        "run_id": run_id,
        "started_at": started_at,
        "seed": seed,
        "config": config,
        "metrics": {**metrics, "fee_tier_label_used": tier_label},
        "suite": summary.model_dump(mode="json"),
        "gates": gate_result,
        "status": status.value,
    }
    summary_path.write_bytes(
        orjson.dumps(
            payload,
            default=json_default,
            option=orjson.OPT_INDENT_2 | orjson.OPT_SORT_KEYS,
        )
    )

    fills = ledger.get_events(limit=None, types=[EventType.ORDER_FILLED], after_id=watermark)
    with trades_path.open("wb") as f:
        for ev in reversed(fills):
            f.write(dumps_payload({"event_id": ev.id, **ev.data}))
            f.write(b"\n")

    logger.info(
        "EOD run finished",
        extra={"run_id": run_id, "status": status.value, "trade_count": summary.trade_count},
    )
    return EodResult(
        run_id=run_id,
        status=status,
        metrics=metrics,
        gates=gate_result,
        summary_path=summary_path,
        trades_path=trades_path,
    )
