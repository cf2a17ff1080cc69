#!/usr/bin/env python3
"""Run the end-of-day batch: suite, fees, sweep, gates, artifacts.

Usage:
    python scripts/run_eod.py --out artifacts/eod --seed 42
    python scripts/run_eod.py --plan plan.json --gates gates.json --virtual

Settings (DB_PATH, VOLUME_30D_USD, SIM_TICK_MS, ...) come from the environment.

Outputs:
    <out>/<run_id>/summary.json - metrics, gate results and status
    <out>/<run_id>/trades.jsonl - one ORDER_FILLED event per line

Exit code is 0 on PASS, 2 on FAIL, 1 on bad input.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from decimal import Decimal, InvalidOperation
from pathlib import Path


def main() -> int:
    """Run EOD batch."""
    parser = argparse.ArgumentParser(description="Run the end-of-day simulation batch")
    parser.add_argument(
        "--plan",
        type=Path,
        default=None,
        help="Suite plan JSON (default: CHOP, TREND_UP, PANIC_DOWN x 15 min)",
    )
    parser.add_argument(
        "--gates",
        type=Path,
        default=None,
        help="Gates JSON (default: min_trades=1, 0 <= pnl <= 999999)",
    )
    parser.add_argument(
        "--out",
        type=Path,
        default=Path("artifacts/eod"),
        help="Artifact root directory (default: artifacts/eod)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Seed applied to every scenario step without its own seed",
    )
    parser.add_argument(
        "--volume-30d-usd",
        type=str,
        default=None,
        help="Trailing 30-day volume for fee tier selection (default: VOLUME_30D_USD)",
    )
    parser.add_argument(
        "--virtual",
        action="store_true",
        help="Run on a virtual clock (completes immediately, deterministic)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        help="Log level (default: INFO)",
    )

    args = parser.parse_args()

    if args.plan is not None and not args.plan.exists():
        print(f"ERROR: Plan file not found: {args.plan}")
        return 1
    volume = None
    if args.volume_30d_usd is not None:
        try:
            volume = Decimal(args.volume_30d_usd)
        except InvalidOperation:
            print(f"ERROR: --volume-30d-usd must be a number, got {args.volume_30d_usd!r}")
            return 1

    # Import after arg parsing to fail fast on bad args
    import orjson
    from pydantic import ValidationError

    from spotsim.clock import SystemClock, VirtualClock
    from spotsim.config import SimSettings
    from spotsim.contracts import RunStatus
    from spotsim.logging_config import setup_logging
    from spotsim.sim import EodGates, EodPlan, SimEngine, run_eod
    from spotsim.storage import Ledger, Store

    setup_logging(level=args.log_level)

    try:
        settings = SimSettings.from_env()
    except ValueError as e:
        print(f"ERROR: {e}")
        return 1
    try:
        plan = EodPlan.load(args.plan) if args.plan is not None else EodPlan()
        gates = EodGates.load(args.gates)
    except (ValidationError, orjson.JSONDecodeError) as e:
        print(f"ERROR: Invalid plan or gates file: {e}")
        return 1

    print(f"Opening store {settings.db_path}...")
    store = Store(settings.db_path)
    clock = VirtualClock() if args.virtual else SystemClock()
    ledger = Ledger(store, time_fn=clock.now_ms)
    engine = SimEngine(ledger, settings=settings, clock=clock)
    batch = run_eod(
        engine,
        args.out,
        plan.steps,
        gates,
        tick_ms=plan.tick_ms,
        seed=args.seed,
        volume_30d_usd=volume,
    )
    try:
        if isinstance(clock, VirtualClock):
            result = asyncio.run(clock.run(batch))
        else:
            result = asyncio.run(batch)
    finally:
        store.close()

    metrics = result.metrics
    print("\n=== EOD RESULTS ===")
    print(f"  Run ID: {result.run_id}")
    print(f"  Status: {result.status.value}")
    print(f"  Trades: {metrics['trade_count']} (maker {metrics['maker_count']}, taker {metrics['taker_count']})")
    print(f"  Realized PnL: ${metrics['realized_pnl_usd']}")
    print(f"  Fees: ${metrics['fees_usd']}")
    print(f"  Swept to USD: ${metrics['swept_to_usd']}")
    print(f"  USD balance: ${metrics['usd_balance_before']} -> ${metrics['usd_balance_after']}")
    print(f"  Errors: {metrics['error_count']}")
    print(f"  Summary: {result.summary_path}")
    print(f"  Trades file: {result.trades_path}")

    return 0 if result.status == RunStatus.PASS else 2


if __name__ == "__main__":
    sys.exit(main())
