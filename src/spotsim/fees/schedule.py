"""
Tiered maker/taker fee schedule.

Tiers follow the Kraken spot schedule keyed by trailing 30-day USD volume.
fee_usd = notional * rate_bps / 10000
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Decimal

from spotsim.contracts.base import BPS


@dataclass(frozen=True)
class FeeTier:
    """One volume tier.

    Attributes:
        min_volume_usd: Inclusive lower bound of trailing 30-day volume.
        maker_bps: Maker rate in basis points.
        taker_bps: Taker rate in basis points.
        label: Human-readable tier label.
    """

    min_volume_usd: Decimal
    maker_bps: Decimal
    taker_bps: Decimal
    label: str


@dataclass(frozen=True)
class FeeQuote:
    """Fee computed for one fill.

    Attributes:
        fee_usd: Fee in quote currency.
        tier: Tier the volume mapped to.
        rate_bps: Rate applied (maker or taker).
    """

    fee_usd: Decimal
    tier: FeeTier
    rate_bps: Decimal


def _tier(min_volume: int, maker: int, taker: int, label: str) -> FeeTier:
    return FeeTier(Decimal(min_volume), Decimal(maker), Decimal(taker), label)


KRAKEN_SPOT_TIERS: tuple[FeeTier, ...] = (
    _tier(0, 25, 40, "Tier 0 ($0+)"),
    _tier(10_000, 20, 35, "Tier 1 ($10k+)"),
    _tier(50_000, 14, 24, "Tier 2 ($50k+)"),
    _tier(100_000, 12, 22, "Tier 3 ($100k+)"),
    _tier(250_000, 10, 20, "Tier 4 ($250k+)"),
    _tier(500_000, 8, 18, "Tier 5 ($500k+)"),
    _tier(1_000_000, 6, 16, "Tier 6 ($1M+)"),
    _tier(2_500_000, 4, 14, "Tier 7 ($2.5M+)"),
    _tier(5_000_000, 2, 12, "Tier 8 ($5M+)"),
    _tier(10_000_000, 0, 10, "Tier 9 ($10M+)"),
)


class FeeSchedule:
    """Maps trailing volume to a tier and computes fees."""

    def __init__(self, tiers: tuple[FeeTier, ...] = KRAKEN_SPOT_TIERS) -> None:
        if not tiers:
            raise ValueError("fee schedule needs at least one tier")
        self._tiers = tuple(sorted(tiers, key=lambda t: t.min_volume_usd))

    @property
    def tiers(self) -> tuple[FeeTier, ...]:
        return self._tiers

    def pick_tier(self, volume_30d_usd: Decimal | float | int) -> FeeTier:
        """Highest tier whose threshold is <= volume.

        Non-finite or negative volume maps to the lowest tier.
        """
        if isinstance(volume_30d_usd, Decimal):
            if not volume_30d_usd.is_finite():
                return self._tiers[0]
            volume = volume_30d_usd
        else:
            if not math.isfinite(volume_30d_usd):
                return self._tiers[0]
            volume = Decimal(str(volume_30d_usd))
        if volume < 0:
            return self._tiers[0]

        picked = self._tiers[0]
        for tier in self._tiers:
            if tier.min_volume_usd <= volume:
                picked = tier
            else:
                break
        return picked

    def calc_fee(
        self,
        notional_usd: Decimal,
        is_maker: bool,
        volume_30d_usd: Decimal | float | int,
    ) -> FeeQuote:
        """Fee for a fill of `notional_usd` at the tier implied by trailing volume."""
        tier = self.pick_tier(volume_30d_usd)
        rate = tier.maker_bps if is_maker else tier.taker_bps
        return FeeQuote(fee_usd=notional_usd * rate / BPS, tier=tier, rate_bps=rate)


DEFAULT_FEE_SCHEDULE = FeeSchedule()


def pick_tier(volume_30d_usd: Decimal | float | int) -> FeeTier:
    """Tier lookup on the default schedule."""
    return DEFAULT_FEE_SCHEDULE.pick_tier(volume_30d_usd)


def calc_fee(notional_usd: Decimal, is_maker: bool, volume_30d_usd: Decimal | float | int) -> FeeQuote:
    """Fee computation on the default schedule."""
    return DEFAULT_FEE_SCHEDULE.calc_fee(notional_usd, is_maker, volume_30d_usd)
