"""Error taxonomy for the simulation and paper-trading core.

RiskBlockError: non-fatal, tick-level block (stale data, wide spread, kill switch,
    position cap). Logged and the tick continues.
RejectedOrderError: order refused at placement time (insufficient balance,
    oversell). The caller decides whether to retry or drop.
ConfigurationError: unknown scenario or invalid run parameters. Fatal to the call.
TransientSourceError: market-data or quote adapter failure.
AccountNotFoundError: paper account id does not exist.
"""

from __future__ import annotations


class SpotSimError(Exception):
    """Base class for all spotsim errors."""


class RiskBlockError(SpotSimError):
    """Raised when a risk gate blocks an action."""

    def __init__(self, reason: str, message: str | None = None) -> None:
        super().__init__(message or f"RISK_BLOCK: {reason}")
        self.reason = reason


class RejectedOrderError(SpotSimError):
    """Raised when an order is rejected before any balance is touched."""

    def __init__(self, reason: str, message: str | None = None) -> None:
        super().__init__(message or f"order rejected: {reason}")
        self.reason = reason


class ConfigurationError(SpotSimError):
    """Raised for unknown scenarios or invalid run configuration."""


class TransientSourceError(SpotSimError):
    """Raised when a market-data source or quote endpoint fails."""

    def __init__(self, message: str, source: str = "") -> None:
        super().__init__(message)
        self.source = source


class AccountNotFoundError(SpotSimError):
    """Raised when a paper account id is unknown."""

    def __init__(self, account_id: str) -> None:
        super().__init__(f"Paper account not found: {account_id}")
        self.account_id = account_id
