"""Tests for the tiered maker/taker fee schedule."""

from __future__ import annotations

from decimal import Decimal

import pytest

from spotsim.fees import (
    DEFAULT_FEE_SCHEDULE,
    KRAKEN_SPOT_TIERS,
    FeeSchedule,
    FeeTier,
    calc_fee,
    pick_tier,
)


class TestTierLadder:
    """The default ladder has ten ascending tiers."""

    def test_ten_tiers(self) -> None:
        assert len(KRAKEN_SPOT_TIERS) == 10

    def test_ascending_thresholds(self) -> None:
        thresholds = [t.min_volume_usd for t in DEFAULT_FEE_SCHEDULE.tiers]
        assert thresholds == sorted(thresholds)
        assert thresholds[0] == Decimal("0")
        assert thresholds[-1] == Decimal("10000000")

    def test_rates_non_increasing(self) -> None:
        """Higher volume never pays more."""
        tiers = DEFAULT_FEE_SCHEDULE.tiers
        for lower, higher in zip(tiers, tiers[1:], strict=False):
            assert higher.maker_bps <= lower.maker_bps
            assert higher.taker_bps <= lower.taker_bps

    def test_empty_schedule_rejected(self) -> None:
        with pytest.raises(ValueError, match="at least one tier"):
            FeeSchedule(())

    def test_unsorted_tiers_sorted(self) -> None:
        high = FeeTier(Decimal("1000"), Decimal("1"), Decimal("2"), "high")
        low = FeeTier(Decimal("0"), Decimal("5"), Decimal("10"), "low")
        schedule = FeeSchedule((high, low))
        assert schedule.tiers == (low, high)


class TestPickTier:
    """Tier lookup by trailing volume."""

    def test_zero_volume_is_tier_0(self) -> None:
        assert pick_tier(0).label.startswith("Tier 0")

    @pytest.mark.parametrize("tier", KRAKEN_SPOT_TIERS)
    def test_boundary_inclusive(self, tier: FeeTier) -> None:
        """Volume exactly at a threshold selects that tier."""
        assert pick_tier(tier.min_volume_usd) == tier

    def test_just_below_boundary(self) -> None:
        assert pick_tier(Decimal("9999.99")) == KRAKEN_SPOT_TIERS[0]
        assert pick_tier(Decimal("99999.99")) == KRAKEN_SPOT_TIERS[2]

    def test_above_top_tier(self) -> None:
        assert pick_tier(10**9) == KRAKEN_SPOT_TIERS[-1]

    @pytest.mark.parametrize(
        "volume",
        [float("nan"), float("inf"), float("-inf"), -1, Decimal("-5"), Decimal("NaN"), Decimal("Infinity")],
    )
    def test_invalid_volume_is_lowest_tier(self, volume: float | int | Decimal) -> None:
        assert pick_tier(volume) == KRAKEN_SPOT_TIERS[0]

    def test_float_volume(self) -> None:
        assert pick_tier(50_000.0) == KRAKEN_SPOT_TIERS[2]


class TestCalcFee:
    """fee = notional * rate_bps / 10000 at the picked tier."""

    def test_tier0_taker_1000(self) -> None:
        """$1000 taker fill at zero volume costs $4.00 (40 bps)."""
        quote = calc_fee(Decimal("1000"), False, 0)
        assert quote.fee_usd == Decimal("4")
        assert quote.rate_bps == Decimal("40")
        assert quote.tier == KRAKEN_SPOT_TIERS[0]

    def test_tier3_taker_100k(self) -> None:
        """$100k taker fill at $100k volume is Tier 3 (22 bps) -> $220."""
        quote = calc_fee(Decimal("100000"), False, Decimal("100000"))
        assert quote.tier.label == "Tier 3 ($100k+)"
        assert quote.rate_bps == Decimal("22")
        assert quote.fee_usd == Decimal("220")

    @pytest.mark.parametrize("tier", KRAKEN_SPOT_TIERS)
    def test_every_tier_maker_and_taker(self, tier: FeeTier) -> None:
        notional = Decimal("1234.56")
        maker = calc_fee(notional, True, tier.min_volume_usd)
        taker = calc_fee(notional, False, tier.min_volume_usd)
        assert maker.fee_usd == notional * tier.maker_bps / Decimal("10000")
        assert taker.fee_usd == notional * tier.taker_bps / Decimal("10000")

    def test_top_tier_maker_is_free(self) -> None:
        assert calc_fee(Decimal("500"), True, 20_000_000).fee_usd == 0

    def test_custom_schedule(self) -> None:
        schedule = FeeSchedule((FeeTier(Decimal("0"), Decimal("0"), Decimal("0"), "free"),))
        quote = schedule.calc_fee(Decimal("100"), False, 0)
        assert quote.fee_usd == 0
        assert quote.tier.label == "free"
