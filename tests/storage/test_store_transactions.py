"""Tests for the SQLite store and its transaction helper."""

from __future__ import annotations

from pathlib import Path

import pytest

from spotsim.storage import Store


class TestStore:
    def test_memory_store_has_schema(self) -> None:
        store = Store()
        tables = {r["name"] for r in store.fetchall("SELECT name FROM sqlite_master WHERE type = 'table'")}
        assert {
            "events",
            "snapshots",
            "balances",
            "ledger_entries",
            "eod_runs",
            "eod_metrics",
            "paper_accounts",
            "paper_balances",
            "paper_positions",
            "paper_stats",
            "paper_fills",
        } <= tables
        store.close()

    def test_file_store_creates_parent_dir(self, tmp_path: Path) -> None:
        db = tmp_path / "nested" / "dir" / "ledger.sqlite"
        store = Store(db)
        store.execute("INSERT INTO balances (currency, amount) VALUES ('USD', '1')")
        store.close()
        assert db.exists()

        reopened = Store(db)
        row = reopened.fetchone("SELECT amount FROM balances WHERE currency = 'USD'")
        assert row is not None
        assert row["amount"] == "1"
        reopened.close()


class TestTransaction:
    """All-or-nothing units of work."""

    def test_commit(self) -> None:
        store = Store()
        with store.transaction():
            store.execute("INSERT INTO balances (currency, amount) VALUES ('USD', '10')")
            store.execute("INSERT INTO balances (currency, amount) VALUES ('BTC', '1')")
        assert len(store.fetchall("SELECT * FROM balances")) == 2

    def test_rollback_on_error(self) -> None:
        store = Store()
        with pytest.raises(RuntimeError), store.transaction():
            store.execute("INSERT INTO balances (currency, amount) VALUES ('USD', '10')")
            raise RuntimeError("boom")
        assert store.fetchall("SELECT * FROM balances") == []

    def test_nested_joins_outer(self) -> None:
        """An error in the outer block also undoes the inner block's writes."""
        store = Store()
        with pytest.raises(RuntimeError), store.transaction():
            with store.transaction():
                store.execute("INSERT INTO balances (currency, amount) VALUES ('USD', '10')")
            raise RuntimeError("boom")
        assert store.fetchall("SELECT * FROM balances") == []

    def test_usable_after_rollback(self) -> None:
        store = Store()
        with pytest.raises(ValueError), store.transaction():
            raise ValueError("first")
        with store.transaction():
            store.execute("INSERT INTO balances (currency, amount) VALUES ('USD', '5')")
        assert len(store.fetchall("SELECT * FROM balances")) == 1
