"""Tests for the end-of-day batch: gates, ledger effects and artifacts."""

from __future__ import annotations

import re
from decimal import Decimal
from pathlib import Path

import orjson
import pytest
from pydantic import ValidationError

from spotsim.clock import VirtualClock
from spotsim.config import SimSettings
from spotsim.contracts import LedgerEntryType, RunStatus
from spotsim.sim import (
    EodGates,
    EodPlan,
    EodResult,
    ExternalStep,
    SimEngine,
    SimStep,
    SuiteRunner,
    evaluate_gates,
    run_eod,
)
from spotsim.sim.eod import new_run_id
from spotsim.storage import Ledger, Store

SHORT_PLAN = (
    SimStep(scenario="CHOP", duration_sec=60),
    SimStep(scenario="TREND_UP", duration_sec=60),
)
LENIENT = EodGates(min_trades=0, min_pnl_usd=Decimal("-1000000"))


def make_engine(settings: SimSettings | None = None) -> tuple[SimEngine, VirtualClock]:
    clock = VirtualClock()
    ledger = Ledger(Store(), time_fn=clock.now_ms)
    return SimEngine(ledger, settings=settings or SimSettings(), clock=clock), clock


async def eod(tmp_path: Path, gates: EodGates | None = LENIENT, **kwargs: object) -> tuple[EodResult, SimEngine]:
    engine, clock = make_engine()
    plan = kwargs.pop("plan", SHORT_PLAN)
    result = await clock.run(run_eod(engine, tmp_path, plan, gates, **kwargs))  # type: ignore[arg-type]
    return result, engine


class TestEvaluateGates:
    """Each gate is reported separately; `passed` is their conjunction."""

    def test_all_pass(self) -> None:
        result = evaluate_gates(EodGates(), error_count=0, trade_count=3, realized_pnl_usd=Decimal("1.5"))
        assert result["passed"]
        assert result["error_count_ok"]
        assert result["trade_count_ok"]
        assert result["pnl_ok"]

    def test_errors_fail(self) -> None:
        result = evaluate_gates(EodGates(), error_count=1, trade_count=3, realized_pnl_usd=Decimal("1"))
        assert not result["passed"]
        assert not result["error_count_ok"]

    def test_too_few_trades(self) -> None:
        result = evaluate_gates(
            EodGates(min_trades=5), error_count=0, trade_count=4, realized_pnl_usd=Decimal("1")
        )
        assert not result["trade_count_ok"]
        assert not result["passed"]

    def test_pnl_bounds_inclusive(self) -> None:
        gates = EodGates(min_pnl_usd=Decimal("-10"), max_pnl_usd=Decimal("10"))
        for pnl, ok in [("-10", True), ("10", True), ("-10.01", False), ("10.01", False)]:
            result = evaluate_gates(gates, error_count=0, trade_count=1, realized_pnl_usd=Decimal(pnl))
            assert result["pnl_ok"] is ok, pnl

    def test_default_rejects_loss(self) -> None:
        result = evaluate_gates(EodGates(), error_count=0, trade_count=1, realized_pnl_usd=Decimal("-0.01"))
        assert not result["pnl_ok"]

    def test_thresholds_echoed(self) -> None:
        result = evaluate_gates(EodGates(), error_count=0, trade_count=1, realized_pnl_usd=Decimal("0"))
        assert result["min_trades"] == 1
        assert result["min_pnl_usd"] == Decimal("0")
        assert result["max_pnl_usd"] == Decimal("999999")


class TestGateAndPlanFiles:
    def test_gates_missing_file_defaults(self, tmp_path: Path) -> None:
        assert EodGates.load(tmp_path / "missing.json") == EodGates()
        assert EodGates.load(None) == EodGates()

    def test_gates_from_file(self, tmp_path: Path) -> None:
        path = tmp_path / "gates.json"
        path.write_bytes(orjson.dumps({"min_trades": 3, "min_pnl_usd": "-5", "max_pnl_usd": 100}))
        gates = EodGates.load(path)
        assert gates.min_trades == 3
        assert gates.min_pnl_usd == Decimal("-5")
        assert gates.max_pnl_usd == Decimal("100")

    def test_gates_unknown_key_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "gates.json"
        path.write_bytes(orjson.dumps({"min_trade": 3}))
        with pytest.raises(ValidationError):
            EodGates.load(path)

    def test_plan_from_file(self, tmp_path: Path) -> None:
        path = tmp_path / "plan.json"
        path.write_bytes(
            orjson.dumps(
                {
                    "steps": [
                        {"mode": "SIM", "scenario": "CHOP", "duration_sec": 30, "seed": 9},
                        {"mode": "EXTERNAL", "source": "REPLAY", "duration_sec": 10},
                    ],
                    "tick_ms": 500,
                }
            )
        )
        plan = EodPlan.load(path)
        assert plan.tick_ms == 500
        assert isinstance(plan.steps[0], SimStep)
        assert plan.steps[0].seed == 9
        assert isinstance(plan.steps[1], ExternalStep)

    def test_plan_default_steps(self) -> None:
        plan = EodPlan()
        assert [s.scenario for s in plan.steps if isinstance(s, SimStep)] == ["CHOP", "TREND_UP", "PANIC_DOWN"]
        assert all(s.duration_sec == 900 for s in plan.steps)

    def test_plan_bad_mode(self) -> None:
        with pytest.raises(ValidationError):
            EodPlan.model_validate({"steps": [{"mode": "LIVE", "scenario": "CHOP"}]})


class TestRunId:
    def test_format(self) -> None:
        run_id = new_run_id(1_700_000_000_000)
        assert re.fullmatch(r"20231114T221320-[0-9a-f]{8}", run_id)

    def test_unique(self) -> None:
        assert new_run_id(0) != new_run_id(0)


class TestRunEod:
    @pytest.mark.asyncio
    async def test_pass_writes_artifacts(self, tmp_path: Path) -> None:
        result, engine = await eod(tmp_path)
        assert result.status == RunStatus.PASS
        assert result.summary_path == tmp_path / result.run_id / "summary.json"
        assert result.summary_path.exists()
        assert result.trades_path.exists()
        assert engine.ledger.get_eod_run_status(result.run_id) == RunStatus.PASS

        summary = orjson.loads(result.summary_path.read_bytes())
        assert summary["run_id"] == result.run_id
        assert summary["status"] == "PASS"
        assert summary["gates"]["passed"] is True
        assert summary["suite"]["steps_run"] == 2
        assert summary["metrics"]["fee_tier_label_used"] == "Tier 0 ($0+)"
        assert [s["scenario"] for s in summary["config"]["steps"]] == ["CHOP", "TREND_UP"]

    @pytest.mark.asyncio
    async def test_trades_file_matches_count(self, tmp_path: Path) -> None:
        result, _ = await eod(tmp_path)
        lines = result.trades_path.read_bytes().splitlines()
        assert len(lines) == result.metrics["trade_count"]
        ids = [orjson.loads(line)["event_id"] for line in lines]
        assert ids == sorted(ids)
        for line in lines:
            assert {"side", "qty", "price", "fee_usd", "liquidity"} <= set(orjson.loads(line))

    @pytest.mark.asyncio
    async def test_fail_on_gates(self, tmp_path: Path) -> None:
        result, engine = await eod(tmp_path, EodGates(min_trades=1_000_000))
        assert result.status == RunStatus.FAIL
        assert not result.gates["trade_count_ok"]
        assert engine.ledger.get_eod_run_status(result.run_id) == RunStatus.FAIL
        assert orjson.loads(result.summary_path.read_bytes())["status"] == "FAIL"

    @pytest.mark.asyncio
    async def test_metrics_persisted(self, tmp_path: Path) -> None:
        result, engine = await eod(tmp_path)
        stored = engine.ledger.get_eod_metrics(result.run_id)
        for key in (
            "trade_count",
            "realized_pnl_usd",
            "fees_usd",
            "maker_count",
            "taker_count",
            "volume_30d_usd_used",
            "error_count",
            "usd_balance_before",
            "usd_balance_after",
            "swept_to_usd",
        ):
            assert key in stored, key
        assert stored["trade_count"] == result.metrics["trade_count"]
        assert stored["fees_usd"] == result.metrics["fees_usd"]

    @pytest.mark.asyncio
    async def test_fee_and_sweep_booked(self, tmp_path: Path) -> None:
        result, engine = await eod(tmp_path)
        metrics = result.metrics
        entries = engine.ledger.get_entries(run_id=result.run_id)
        fee_entries = [e for e in entries if e.type == LedgerEntryType.FEE_USD]
        if metrics["fees_usd"] > 0:
            assert len(fee_entries) == 1
            assert fee_entries[0].delta == -metrics["fees_usd"]
            assert fee_entries[0].note == "Kraken fee Tier 0 ($0+)"
        assert metrics["usd_balance_after"] == metrics["usd_balance_before"] + metrics["swept_to_usd"]
        assert metrics["swept_to_usd"] == max(metrics["realized_pnl_usd"], Decimal("0"))
        assert engine.ledger.get_balance() == metrics["usd_balance_after"]

    @pytest.mark.asyncio
    async def test_seed_override(self, tmp_path: Path) -> None:
        plan = (
            SimStep(scenario="CHOP", duration_sec=30),
            SimStep(scenario="TREND_UP", duration_sec=30, seed=5),
        )
        result, _ = await eod(tmp_path, plan=plan, seed=7)
        summary = orjson.loads(result.summary_path.read_bytes())
        assert summary["seed"] == 7
        assert [s["seed"] for s in summary["config"]["steps"]] == [7, 5]

    @pytest.mark.asyncio
    async def test_volume_override_picks_tier(self, tmp_path: Path) -> None:
        result, engine = await eod(tmp_path, volume_30d_usd=Decimal("100000"))
        assert result.metrics["volume_30d_usd_used"] == Decimal("100000")
        assert engine.settings.volume_30d_usd == Decimal("100000")
        summary = orjson.loads(result.summary_path.read_bytes())
        assert summary["metrics"]["fee_tier_label_used"] == "Tier 3 ($100k+)"

    @pytest.mark.asyncio
    async def test_failed_step_fails_run(self, tmp_path: Path) -> None:
        plan = (SimStep(scenario="NOPE", duration_sec=30), SimStep(scenario="CHOP", duration_sec=30))
        result, _ = await eod(tmp_path, plan=plan)
        assert result.metrics["error_count"] == 1
        assert result.status == RunStatus.FAIL
        assert not result.gates["error_count_ok"]

    @pytest.mark.asyncio
    async def test_suite_crash(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """A crashing suite still produces a FAIL run with artifacts."""

        async def boom(self: SuiteRunner, plan: object, tick_ms: int | None = None) -> None:
            raise RuntimeError("suite exploded")

        monkeypatch.setattr(SuiteRunner, "run", boom)
        result, engine = await eod(tmp_path)
        assert result.status == RunStatus.FAIL
        assert result.metrics["error_count"] == 1
        assert result.metrics["trade_count"] == 0
        assert result.summary_path.exists()
        assert result.trades_path.read_bytes() == b""
        assert engine.ledger.get_eod_run_status(result.run_id) == RunStatus.FAIL
