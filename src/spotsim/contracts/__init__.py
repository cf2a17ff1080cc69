"""spotsim data contracts.

Pydantic models shared by the exchange, the simulation engine, the ledger
and the paper-trading engine.

All contracts follow these invariants:
- Money/price/qty fields use Decimal (not float)
- Strict enums for side/order type/liquidity
- No extra fields allowed (extra='forbid'), immutable once built
"""

from spotsim.contracts.base import ContractBase, parse_decimal, to_decimal
from spotsim.contracts.ledger import EventRecord, LedgerEntry, SnapshotRow, SweepResult
from spotsim.contracts.market import BookTop, MarketTick, Quote
from spotsim.contracts.order import Fill, Order
from spotsim.contracts.paper import (
    CloseoutResult,
    PaperFill,
    PaperOrderResult,
    PaperPosition,
    PaperSnapshot,
)
from spotsim.contracts.types import (
    DataSourceKind,
    EventType,
    LedgerEntryType,
    Liquidity,
    OrderType,
    RunStatus,
    Side,
)

__all__ = [
    "BookTop",
    "CloseoutResult",
    "ContractBase",
    "DataSourceKind",
    "EventRecord",
    "EventType",
    "Fill",
    "LedgerEntry",
    "LedgerEntryType",
    "Liquidity",
    "MarketTick",
    "Order",
    "OrderType",
    "PaperFill",
    "PaperOrderResult",
    "PaperPosition",
    "PaperSnapshot",
    "Quote",
    "RunStatus",
    "Side",
    "SnapshotRow",
    "SweepResult",
    "parse_decimal",
    "to_decimal",
]
