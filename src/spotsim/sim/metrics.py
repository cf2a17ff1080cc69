"""
Prometheus metrics for the simulation engine.

Low-cardinality only: liquidity and block reason are the only labels.
Each SimMetrics owns a private CollectorRegistry unless one is supplied, so
multiple engines (and tests) never collide on metric names.
"""

from __future__ import annotations

from decimal import Decimal  # noqa: TC003 - used at runtime

from prometheus_client import Counter, Gauge, generate_latest
from prometheus_client.registry import CollectorRegistry

from spotsim.contracts import Liquidity  # noqa: TC001 - used at runtime


class SimMetrics:
    """Counters and gauges updated by SimEngine.

    Metric names:
    - spotsim_ticks_total
    - spotsim_fills_total{liquidity}
    - spotsim_fees_usd_total{liquidity}
    - spotsim_risk_blocks_total{reason}
    - spotsim_datasource_errors_total
    - spotsim_equity_usd
    - spotsim_drawdown_pct
    - spotsim_running
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self._registry = registry or CollectorRegistry()

        self.ticks = Counter(
            "spotsim_ticks_total",
            "Ticks processed by the simulation engine",
            registry=self._registry,
        )
        self.fills = Counter(
            "spotsim_fills_total",
            "Fills applied to the simulated position",
            ["liquidity"],
            registry=self._registry,
        )
        self.fees = Counter(
            "spotsim_fees_usd_total",
            "Fees charged on simulated fills (USD)",
            ["liquidity"],
            registry=self._registry,
        )
        self.risk_blocks = Counter(
            "spotsim_risk_blocks_total",
            "Risk blocks raised by the engine or strategy",
            ["reason"],
            registry=self._registry,
        )
        self.datasource_errors = Counter(
            "spotsim_datasource_errors_total",
            "Errors reported by the market data source",
            registry=self._registry,
        )
        self.equity = Gauge(
            "spotsim_equity_usd",
            "Mark-to-market equity (USD)",
            registry=self._registry,
        )
        self.drawdown = Gauge(
            "spotsim_drawdown_pct",
            "Drawdown from peak equity (percent)",
            registry=self._registry,
        )
        self.running = Gauge(
            "spotsim_running",
            "1 while an engine run is active",
            registry=self._registry,
        )

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    def record_fill(self, liquidity: Liquidity, fee_usd: Decimal) -> None:
        self.fills.labels(liquidity=liquidity.value).inc()
        self.fees.labels(liquidity=liquidity.value).inc(float(fee_usd))

    def record_risk_block(self, reason: str) -> None:
        self.risk_blocks.labels(reason=reason).inc()

    def set_marks(self, equity: Decimal, drawdown_pct: Decimal) -> None:
        self.equity.set(float(equity))
        self.drawdown.set(float(drawdown_pct))

    def render(self) -> bytes:
        """Prometheus text exposition of this registry."""
        return generate_latest(self._registry)
