"""USD ledger, event log, snapshots and EOD bookkeeping on top of Store.

The USD balance is maintained incrementally: every ledger entry's delta is
applied to the `balances` row in the same transaction that appends the entry.
Sweeps are profit-only; a non-positive amount leaves everything untouched.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

import orjson

from spotsim.contracts import (
    EventRecord,
    EventType,
    LedgerEntry,
    LedgerEntryType,
    RunStatus,
    SnapshotRow,
    SweepResult,
)
from spotsim.storage.store import Store

logger = logging.getLogger(__name__)

USD = "USD"
DAY_MS = 86_400_000
MAX_SNAPSHOT_ROWS = 2000

_SNAPSHOT_COLUMNS = (
    "ts",
    "source",
    "scenario",
    "mid",
    "bid",
    "ask",
    "spread",
    "spread_bps",
    "position_qty",
    "avg_entry",
    "realized_usd",
    "unrealized_usd",
    "equity_usd",
    "drawdown_pct",
    "ticks",
)


def json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    raise TypeError(f"Type is not JSON serializable: {type(value).__name__}")


def dumps_payload(data: Any) -> bytes:
    """Serialize an event payload with sorted keys (Decimals as strings)."""
    return orjson.dumps(data, default=json_default, option=orjson.OPT_SORT_KEYS)


def _iso_from_ms(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000, tz=UTC).isoformat(timespec="milliseconds")


def _default_time_fn() -> int:
    return int(time.time() * 1000)


class Ledger:
    """Ledger and audit-log operations."""

    def __init__(self, store: Store, time_fn: Callable[[], int] | None = None) -> None:
        self.store = store
        self._time_fn = time_fn or _default_time_fn

    # -- balances -------------------------------------------------------------

    def ensure_balance(self, currency: str = USD) -> None:
        """Create a zero balance row if none exists."""
        self.store.execute(
            "INSERT OR IGNORE INTO balances (currency, amount) VALUES (?, ?)",
            (currency, "0"),
        )

    def get_balance(self, currency: str = USD) -> Decimal:
        row = self.store.fetchone("SELECT amount FROM balances WHERE currency = ?", (currency,))
        return Decimal(row["amount"]) if row else Decimal("0")

    def _append(
        self,
        run_id: str,
        entry_type: LedgerEntryType,
        currency: str,
        delta: Decimal,
        note: str | None,
    ) -> tuple[Decimal, Decimal]:
        """Append an entry and apply its delta. Caller owns the transaction."""
        self.ensure_balance(currency)
        before = self.get_balance(currency)
        after = before + delta
        now = self._time_fn()
        self.store.execute(
            "INSERT INTO ledger_entries (id, run_id, ts, ts_ms, type, currency, delta, note) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                uuid.uuid4().hex,
                run_id,
                _iso_from_ms(now),
                now,
                entry_type.value,
                currency,
                str(delta),
                note,
            ),
        )
        self.store.execute(
            "UPDATE balances SET amount = ? WHERE currency = ?",
            (str(after), currency),
        )
        return before, after

    def add_fee(self, run_id: str, fee_usd: Decimal, note: str | None = None) -> None:
        """Debit a fee as a negative FEE_USD entry. No-op for non-positive fees."""
        if fee_usd <= 0:
            return
        with self.store.transaction():
            self._append(run_id, LedgerEntryType.FEE_USD, USD, -fee_usd, note)
        logger.info("Fee recorded", extra={"run_id": run_id, "fee_usd": fee_usd})

    def apply_sweep(self, run_id: str, net_realized_usd: Decimal) -> SweepResult:
        """Credit positive net realized P&L to the USD balance.

        Returns:
            SweepResult with before/after balances and the swept amount
            (zero, with before == after, when there is nothing to sweep).
        """
        if net_realized_usd <= 0:
            self.ensure_balance(USD)
            balance = self.get_balance(USD)
            return SweepResult(before=balance, after=balance, swept=Decimal("0"))

        with self.store.transaction():
            before, after = self._append(
                run_id,
                LedgerEntryType.SWEEP_TO_USD,
                USD,
                net_realized_usd,
                "sweep realized P&L",
            )
        logger.info(
            "Realized P&L swept",
            extra={"run_id": run_id, "swept": net_realized_usd, "balance_after": after},
        )
        return SweepResult(before=before, after=after, swept=net_realized_usd)

    def get_entries(self, limit: int = 100, run_id: str | None = None) -> list[LedgerEntry]:
        """Most recent ledger entries, newest first."""
        sql = "SELECT id, run_id, ts, type, currency, delta, note FROM ledger_entries"
        params: tuple[Any, ...] = ()
        if run_id is not None:
            sql += " WHERE run_id = ?"
            params = (run_id,)
        sql += " ORDER BY seq DESC LIMIT ?"
        rows = self.store.fetchall(sql, (*params, limit))
        return [LedgerEntry(**dict(row)) for row in rows]

    def fees_since(self, since_ms: int) -> Decimal:
        """Total fees (positive number) debited at or after `since_ms`."""
        rows = self.store.fetchall(
            "SELECT delta FROM ledger_entries WHERE type = ? AND ts_ms >= ?",
            (LedgerEntryType.FEE_USD.value, since_ms),
        )
        return -sum((Decimal(r["delta"]) for r in rows), Decimal("0"))

    def fees_last_24h(self) -> Decimal:
        return self.fees_since(self._time_fn() - DAY_MS)

    # -- event log --------------------------------------------------------------

    def log_event(self, event_type: EventType | str, data: dict[str, Any], ts: int | None = None) -> int:
        """Append an event and return its id."""
        type_value = event_type.value if isinstance(event_type, EventType) else event_type
        cur = self.store.execute(
            "INSERT INTO events (ts, type, data) VALUES (?, ?, ?)",
            (ts if ts is not None else self._time_fn(), type_value, dumps_payload(data or {}).decode()),
        )
        return int(cur.lastrowid or 0)

    def last_event_id(self) -> int:
        row = self.store.fetchone("SELECT COALESCE(MAX(id), 0) AS max_id FROM events")
        return int(row["max_id"]) if row else 0

    def get_events(
        self,
        limit: int | None = 200,
        types: Iterable[EventType | str] | None = None,
        after_id: int | None = None,
    ) -> list[EventRecord]:
        """Events newest first, optionally filtered by type and id watermark."""
        sql = "SELECT id, ts, type, data FROM events"
        clauses: list[str] = []
        params: list[Any] = []
        if types is not None:
            type_values = [t.value if isinstance(t, EventType) else t for t in types]
            clauses.append(f"type IN ({', '.join('?' for _ in type_values)})")
            params.extend(type_values)
        if after_id is not None:
            clauses.append("id > ?")
            params.append(after_id)
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY id DESC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        rows = self.store.fetchall(sql, tuple(params))
        return [
            EventRecord(id=r["id"], ts=r["ts"], type=r["type"], data=orjson.loads(r["data"]))
            for r in rows
        ]

    # -- snapshots --------------------------------------------------------------

    def insert_snapshot(self, row: SnapshotRow) -> None:
        values = row.model_dump()
        self.store.execute(
            f"INSERT INTO snapshots ({', '.join(_SNAPSHOT_COLUMNS)}) "
            f"VALUES ({', '.join('?' for _ in _SNAPSHOT_COLUMNS)})",
            tuple(
                str(values[c]) if isinstance(values[c], Decimal) else values[c]
                for c in _SNAPSHOT_COLUMNS
            ),
        )

    def get_snapshots(self, limit: int = 500, since_ts: int | None = None) -> list[SnapshotRow]:
        """Most recent snapshots in ascending time order."""
        sql = f"SELECT {', '.join(_SNAPSHOT_COLUMNS)} FROM snapshots"
        params: list[Any] = []
        if since_ts is not None:
            sql += " WHERE ts >= ?"
            params.append(since_ts)
        sql += " ORDER BY ts DESC, id DESC LIMIT ?"
        params.append(min(limit, MAX_SNAPSHOT_ROWS))
        rows = self.store.fetchall(sql, tuple(params))
        return [SnapshotRow(**dict(r)) for r in reversed(rows)]

    # -- EOD bookkeeping ----------------------------------------------------------

    def insert_eod_run(
        self,
        run_id: str,
        started_at: str,
        seed: int | None,
        config: dict[str, Any],
        status: RunStatus = RunStatus.RUNNING,
    ) -> None:
        self.store.execute(
            "INSERT INTO eod_runs (id, started_at, seed, config_json, status) VALUES (?, ?, ?, ?, ?)",
            (run_id, started_at, seed, dumps_payload(config).decode(), status.value),
        )

    def update_eod_run_status(self, run_id: str, status: RunStatus) -> None:
        self.store.execute("UPDATE eod_runs SET status = ? WHERE id = ?", (status.value, run_id))

    def get_eod_run_status(self, run_id: str) -> RunStatus | None:
        row = self.store.fetchone("SELECT status FROM eod_runs WHERE id = ?", (run_id,))
        return RunStatus(row["status"]) if row else None

    def insert_eod_metric(self, run_id: str, key: str, value: Decimal | int) -> None:
        self.store.execute(
            "INSERT OR REPLACE INTO eod_metrics (run_id, key, value) VALUES (?, ?, ?)",
            (run_id, key, str(value)),
        )

    def get_eod_metrics(self, run_id: str) -> dict[str, Decimal]:
        rows = self.store.fetchall(
            "SELECT key, value FROM eod_metrics WHERE run_id = ? ORDER BY key", (run_id,)
        )
        return {r["key"]: Decimal(r["value"]) for r in rows}
