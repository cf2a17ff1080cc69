"""Simulation engine, suite runner and end-of-day batch."""

from spotsim.sim.engine import SimEngine, SourceFactory
from spotsim.sim.eod import EodGates, EodPlan, EodResult, evaluate_gates, run_eod
from spotsim.sim.metrics import SimMetrics
from spotsim.sim.state import (
    DEFAULT_PLAN,
    SUITE_PLAN_ADAPTER,
    ExternalStep,
    SimRunState,
    SimStatus,
    SimStep,
    SuiteSummary,
)
from spotsim.sim.suite import SuiteRunner

__all__ = [
    "DEFAULT_PLAN",
    "SUITE_PLAN_ADAPTER",
    "EodGates",
    "EodPlan",
    "EodResult",
    "ExternalStep",
    "SimEngine",
    "SimMetrics",
    "SimRunState",
    "SimStatus",
    "SimStep",
    "SourceFactory",
    "SuiteRunner",
    "SuiteSummary",
    "evaluate_gates",
    "run_eod",
]
