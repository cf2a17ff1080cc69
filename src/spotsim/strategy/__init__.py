"""Trading strategies."""

from spotsim.strategy.base import EventSink, Strategy, StrategyContext, StrategyOrder
from spotsim.strategy.momentum_lite import MomentumLiteConfig, MomentumLiteStrategy

__all__ = [
    "EventSink",
    "MomentumLiteConfig",
    "MomentumLiteStrategy",
    "Strategy",
    "StrategyContext",
    "StrategyOrder",
]
