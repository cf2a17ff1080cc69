"""Simulated exchange."""

from spotsim.exchange.mock_exchange import MockExchange

__all__ = ["MockExchange"]
