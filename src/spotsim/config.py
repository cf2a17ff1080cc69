"""
Runtime settings for the simulation and paper engines.

SimSettings can be built directly or from environment variables:

    SIM_TICK_MS            tick interval (ms), default 250
    SIM_MAX_RUNTIME_SEC    hard ceiling for one engine run, default 21600
    SNAPSHOT_EVERY_MS      snapshot interval (ms), default 5000
    TICK_LOG_EVERY_N       log every Nth tick as a TICK event, default 8
    KILL_SWITCH            initial kill-switch state ("1"/"true"/"yes"/"on")
    DB_PATH                SQLite path, default data/ledger.sqlite
    LIVE_PAIR              pair traded by the engine, default XRP/USD
    VOLUME_30D_USD         trailing volume for the initial fee tier, default 0
    INITIAL_QUOTE_BALANCE  exchange quote balance at each start, default 1000
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

_TRUTHY = frozenset({"1", "true", "yes", "on"})


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _env_decimal(env: Mapping[str, str], name: str, default: Decimal) -> Decimal:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return Decimal(raw.strip())
    except InvalidOperation:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


@dataclass(frozen=True)
class SimSettings:
    """Engine and store settings."""

    tick_ms: int = 250
    max_runtime_sec: int = 21_600
    snapshot_every_ms: int = 5000
    tick_log_every_n: int = 8
    kill_switch: bool = False
    db_path: str = "data/ledger.sqlite"
    pair: str = "XRP/USD"
    volume_30d_usd: Decimal = Decimal("0")
    initial_quote_balance: Decimal = Decimal("1000")

    def __post_init__(self) -> None:
        if self.tick_ms <= 0:
            raise ValueError(f"tick_ms must be > 0, got {self.tick_ms}")
        if self.max_runtime_sec <= 0:
            raise ValueError(f"max_runtime_sec must be > 0, got {self.max_runtime_sec}")
        if self.snapshot_every_ms <= 0:
            raise ValueError(f"snapshot_every_ms must be > 0, got {self.snapshot_every_ms}")
        if self.tick_log_every_n < 1:
            raise ValueError(f"tick_log_every_n must be >= 1, got {self.tick_log_every_n}")
        if "/" not in self.pair:
            raise ValueError(f"pair must look like BASE/QUOTE, got {self.pair!r}")
        if not self.volume_30d_usd.is_finite() or self.volume_30d_usd < 0:
            raise ValueError(f"volume_30d_usd must be >= 0, got {self.volume_30d_usd}")
        if self.initial_quote_balance < 0:
            raise ValueError(
                f"initial_quote_balance must be >= 0, got {self.initial_quote_balance}"
            )

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> SimSettings:
        """Build settings from environment variables (or a supplied mapping)."""
        env = os.environ if env is None else env
        defaults = cls()
        return cls(
            tick_ms=_env_int(env, "SIM_TICK_MS", defaults.tick_ms),
            max_runtime_sec=_env_int(env, "SIM_MAX_RUNTIME_SEC", defaults.max_runtime_sec),
            snapshot_every_ms=_env_int(env, "SNAPSHOT_EVERY_MS", defaults.snapshot_every_ms),
            tick_log_every_n=_env_int(env, "TICK_LOG_EVERY_N", defaults.tick_log_every_n),
            kill_switch=env.get("KILL_SWITCH", "").strip().lower() in _TRUTHY,
            db_path=env.get("DB_PATH") or defaults.db_path,
            pair=env.get("LIVE_PAIR") or defaults.pair,
            volume_30d_usd=_env_decimal(env, "VOLUME_30D_USD", defaults.volume_30d_usd),
            initial_quote_balance=_env_decimal(
                env, "INITIAL_QUOTE_BALANCE", defaults.initial_quote_balance
            ),
        )
