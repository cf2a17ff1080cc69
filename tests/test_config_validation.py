"""Config validation tests for SimSettings.

Covers __post_init__ bounds and environment parsing in from_env.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from spotsim.config import SimSettings


class TestConfigValidation:
    """SimSettings.__post_init__ validation."""

    def test_default_config_valid(self) -> None:
        """Default config passes validation."""
        settings = SimSettings()
        assert settings.tick_ms == 250
        assert settings.max_runtime_sec == 21_600
        assert settings.pair == "XRP/USD"
        assert settings.initial_quote_balance == Decimal("1000")
        assert not settings.kill_switch

    @pytest.mark.parametrize(
        ("field", "value"),
        [
            ("tick_ms", 0),
            ("max_runtime_sec", -1),
            ("snapshot_every_ms", 0),
            ("tick_log_every_n", 0),
        ],
    )
    def test_non_positive_intervals(self, field: str, value: int) -> None:
        with pytest.raises(ValueError, match=field):
            SimSettings(**{field: value})

    def test_pair_needs_slash(self) -> None:
        with pytest.raises(ValueError, match="pair"):
            SimSettings(pair="XRPUSD")

    def test_negative_volume(self) -> None:
        with pytest.raises(ValueError, match="volume_30d_usd"):
            SimSettings(volume_30d_usd=Decimal("-1"))

    def test_non_finite_volume(self) -> None:
        with pytest.raises(ValueError, match="volume_30d_usd"):
            SimSettings(volume_30d_usd=Decimal("NaN"))

    def test_negative_quote_balance(self) -> None:
        with pytest.raises(ValueError, match="initial_quote_balance"):
            SimSettings(initial_quote_balance=Decimal("-0.01"))

    def test_zero_quote_balance_valid(self) -> None:
        assert SimSettings(initial_quote_balance=Decimal("0")).initial_quote_balance == 0


class TestFromEnv:
    """Environment parsing."""

    def test_empty_env_gives_defaults(self) -> None:
        assert SimSettings.from_env({}) == SimSettings()

    def test_reads_all_variables(self) -> None:
        env = {
            "SIM_TICK_MS": "500",
            "SIM_MAX_RUNTIME_SEC": "60",
            "SNAPSHOT_EVERY_MS": "1000",
            "TICK_LOG_EVERY_N": "2",
            "KILL_SWITCH": "yes",
            "DB_PATH": "/tmp/x.sqlite",
            "LIVE_PAIR": "BTC/USD",
            "VOLUME_30D_USD": "12500.5",
            "INITIAL_QUOTE_BALANCE": "250",
        }
        settings = SimSettings.from_env(env)
        assert settings.tick_ms == 500
        assert settings.max_runtime_sec == 60
        assert settings.snapshot_every_ms == 1000
        assert settings.tick_log_every_n == 2
        assert settings.kill_switch
        assert settings.db_path == "/tmp/x.sqlite"
        assert settings.pair == "BTC/USD"
        assert settings.volume_30d_usd == Decimal("12500.5")
        assert settings.initial_quote_balance == Decimal("250")

    @pytest.mark.parametrize("raw", ["1", "true", "TRUE", " on "])
    def test_kill_switch_truthy(self, raw: str) -> None:
        assert SimSettings.from_env({"KILL_SWITCH": raw}).kill_switch

    @pytest.mark.parametrize("raw", ["", "0", "false", "off", "maybe"])
    def test_kill_switch_falsy(self, raw: str) -> None:
        assert not SimSettings.from_env({"KILL_SWITCH": raw}).kill_switch

    def test_blank_values_use_defaults(self) -> None:
        settings = SimSettings.from_env({"SIM_TICK_MS": "  ", "VOLUME_30D_USD": ""})
        assert settings.tick_ms == 250
        assert settings.volume_30d_usd == 0

    def test_bad_integer(self) -> None:
        with pytest.raises(ValueError, match="SIM_TICK_MS"):
            SimSettings.from_env({"SIM_TICK_MS": "fast"})

    def test_bad_decimal(self) -> None:
        with pytest.raises(ValueError, match="VOLUME_30D_USD"):
            SimSettings.from_env({"VOLUME_30D_USD": "lots"})

    def test_env_values_still_validated(self) -> None:
        with pytest.raises(ValueError, match="tick_ms"):
            SimSettings.from_env({"SIM_TICK_MS": "-5"})
