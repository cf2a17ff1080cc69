"""Market simulation: price paths, scenarios, data sources and quotes."""

from spotsim.market.data_source import MarketDataSource, ReplayDataSource, SimDataSource
from spotsim.market.price_engine import (
    SCENARIOS,
    Mulberry32,
    PricePath,
    RandomSource,
    Scenario,
    Shock,
    get_scenario,
    list_scenarios,
    next_price,
)

__all__ = [
    "SCENARIOS",
    "MarketDataSource",
    "Mulberry32",
    "PricePath",
    "RandomSource",
    "ReplayDataSource",
    "Scenario",
    "Shock",
    "SimDataSource",
    "get_scenario",
    "list_scenarios",
    "next_price",
]
