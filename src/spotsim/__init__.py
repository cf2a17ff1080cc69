"""Spot trading simulator: scenarios, mock exchange, ledger and paper trading."""

__version__ = "0.1.0"
