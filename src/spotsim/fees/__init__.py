"""Fee schedule and maker/taker classification."""

from spotsim.fees.maker import classify_limit, is_maker_limit
from spotsim.fees.schedule import (
    DEFAULT_FEE_SCHEDULE,
    KRAKEN_SPOT_TIERS,
    FeeQuote,
    FeeSchedule,
    FeeTier,
    calc_fee,
    pick_tier,
)

__all__ = [
    "DEFAULT_FEE_SCHEDULE",
    "KRAKEN_SPOT_TIERS",
    "FeeQuote",
    "FeeSchedule",
    "FeeTier",
    "calc_fee",
    "classify_limit",
    "is_maker_limit",
    "pick_tier",
]
