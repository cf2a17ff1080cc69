"""SQLite persistence: store, ledger, event log and snapshots."""

from spotsim.storage.ledger import Ledger, dumps_payload
from spotsim.storage.store import Store

__all__ = ["Ledger", "Store", "dumps_payload"]
