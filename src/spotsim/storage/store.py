"""SQLite store shared by the ledger, the event log and the paper engine.

Decimal amounts are stored as TEXT so they round-trip exactly. Multi-statement
updates go through `transaction()`, which commits on success and rolls back
on any exception.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    ts INTEGER NOT NULL,
    type TEXT NOT NULL,
    data TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_events_ts ON events(ts);
CREATE INDEX IF NOT EXISTS idx_events_type ON events(type);

CREATE TABLE IF NOT EXISTS snapshots (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    ts INTEGER NOT NULL,
    source TEXT NOT NULL,
    scenario TEXT,
    mid TEXT NOT NULL,
    bid TEXT NOT NULL,
    ask TEXT NOT NULL,
    spread TEXT NOT NULL,
    spread_bps TEXT NOT NULL,
    position_qty TEXT NOT NULL,
    avg_entry TEXT NOT NULL,
    realized_usd TEXT NOT NULL,
    unrealized_usd TEXT NOT NULL,
    equity_usd TEXT NOT NULL,
    drawdown_pct TEXT NOT NULL,
    ticks INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_snapshots_ts ON snapshots(ts);

CREATE TABLE IF NOT EXISTS balances (
    currency TEXT PRIMARY KEY,
    amount TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS ledger_entries (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL UNIQUE,
    run_id TEXT NOT NULL,
    ts TEXT NOT NULL,
    ts_ms INTEGER NOT NULL,
    type TEXT NOT NULL,
    currency TEXT NOT NULL,
    delta TEXT NOT NULL,
    note TEXT
);
CREATE INDEX IF NOT EXISTS idx_ledger_entries_run_id ON ledger_entries(run_id);

CREATE TABLE IF NOT EXISTS eod_runs (
    id TEXT PRIMARY KEY,
    started_at TEXT NOT NULL,
    seed INTEGER,
    config_json TEXT,
    status TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS eod_metrics (
    run_id TEXT NOT NULL,
    key TEXT NOT NULL,
    value TEXT NOT NULL,
    PRIMARY KEY (run_id, key)
);

CREATE TABLE IF NOT EXISTS paper_accounts (
    id TEXT PRIMARY KEY,
    created_at TEXT NOT NULL,
    quote_ccy TEXT NOT NULL,
    base_ccy TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS paper_balances (
    account_id TEXT NOT NULL,
    currency TEXT NOT NULL,
    amount TEXT NOT NULL,
    PRIMARY KEY (account_id, currency)
);

CREATE TABLE IF NOT EXISTS paper_positions (
    account_id TEXT NOT NULL,
    base_ccy TEXT NOT NULL,
    qty TEXT NOT NULL,
    avg_entry TEXT NOT NULL,
    PRIMARY KEY (account_id, base_ccy)
);

CREATE TABLE IF NOT EXISTS paper_stats (
    account_id TEXT NOT NULL,
    key TEXT NOT NULL,
    value TEXT NOT NULL,
    PRIMARY KEY (account_id, key)
);

CREATE TABLE IF NOT EXISTS paper_fills (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL UNIQUE,
    account_id TEXT NOT NULL,
    ts TEXT NOT NULL,
    ts_ms INTEGER NOT NULL,
    side TEXT NOT NULL,
    qty TEXT NOT NULL,
    price TEXT NOT NULL,
    notional TEXT NOT NULL,
    fee_usd TEXT NOT NULL,
    liquidity TEXT NOT NULL,
    realized_pnl_usd TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_paper_fills_account ON paper_fills(account_id, ts_ms);
"""


class Store:
    """Owns one SQLite connection and the schema."""

    def __init__(self, path: str | Path = ":memory:") -> None:
        self.path = str(path)
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        # Autocommit mode; multi-statement units use transaction()
        self._conn = sqlite3.connect(self.path, isolation_level=None, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(SCHEMA)
        self._depth = 0
        logger.debug("Store opened", extra={"path": self.path})

    @property
    def conn(self) -> sqlite3.Connection:
        return self._conn

    def execute(self, sql: str, params: tuple[Any, ...] | dict[str, Any] = ()) -> sqlite3.Cursor:
        return self._conn.execute(sql, params)

    def fetchone(self, sql: str, params: tuple[Any, ...] = ()) -> sqlite3.Row | None:
        row: sqlite3.Row | None = self._conn.execute(sql, params).fetchone()
        return row

    def fetchall(self, sql: str, params: tuple[Any, ...] = ()) -> list[sqlite3.Row]:
        return list(self._conn.execute(sql, params).fetchall())

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run the enclosed statements atomically.

        Nested use joins the outer transaction.
        """
        if self._depth > 0:
            self._depth += 1
            try:
                yield self._conn
            finally:
                self._depth -= 1
            return

        self._conn.execute("BEGIN IMMEDIATE")
        self._depth = 1
        try:
            yield self._conn
        except BaseException:
            self._conn.execute("ROLLBACK")
            raise
        else:
            self._conn.execute("COMMIT")
        finally:
            self._depth = 0

    def close(self) -> None:
        self._conn.close()
