"""Contract enums.

Wire values are lowercase for sides, order types and liquidity, matching the
event log payloads.
"""

from enum import Enum


class Side(str, Enum):
    """Order side."""

    BUY = "buy"
    SELL = "sell"


class OrderType(str, Enum):
    """Order type."""

    MARKET = "market"
    LIMIT = "limit"


class Liquidity(str, Enum):
    """Which side of the book a fill took."""

    MAKER = "maker"
    TAKER = "taker"


class DataSourceKind(str, Enum):
    """Origin of market ticks."""

    SIM = "SIM"
    KRAKEN_PUBLIC = "KRAKEN_PUBLIC"
    COINBASE_PUBLIC = "COINBASE_PUBLIC"
    REPLAY = "REPLAY"


class LedgerEntryType(str, Enum):
    """Ledger entry type."""

    FEE_USD = "FEE_USD"
    SWEEP_TO_USD = "SWEEP_TO_USD"


class EventType(str, Enum):
    """Event log record types."""

    SIM_STARTED = "SIM_STARTED"
    SIM_STOPPED = "SIM_STOPPED"
    TICK = "TICK"
    SIGNAL = "SIGNAL"
    ORDER_PLACED = "ORDER_PLACED"
    ORDER_FILLED = "ORDER_FILLED"
    POSITION = "POSITION"
    RISK_BLOCK = "RISK_BLOCK"
    SNAPSHOT = "SNAPSHOT"
    KILL_SWITCH = "KILL_SWITCH"
    SUITE_STARTED = "SUITE_STARTED"
    SUITE_STEP = "SUITE_STEP"
    SUITE_STEP_FAILED = "SUITE_STEP_FAILED"
    SUITE_DONE = "SUITE_DONE"


class RunStatus(str, Enum):
    """EOD run status."""

    RUNNING = "running"
    PASS = "PASS"
    FAIL = "FAIL"
