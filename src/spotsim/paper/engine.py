"""
Paper-trading engine: external quotes, simulated funds, profit-only sweep.

Each account holds USD and BTC balances, one long-only position, running
stats and an append-only fill history, all in the shared SQLite store.

place_market_order flow:
1. await the quote function (the only suspension point)
2. price = ask (buy) / bid (sell); fee is always taker at the tier implied by
   the account's trailing 30-day volume
3. one transaction: validate, move both balances, update the position,
   update stats, append the fill row

Orders on the same account are serialized by a per-account asyncio.Lock, so a
second order never prices off a balance the first one is about to change.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from decimal import Decimal
from types import TracebackType
from typing import TYPE_CHECKING

from spotsim.contracts import (
    CloseoutResult,
    Liquidity,
    PaperFill,
    PaperOrderResult,
    PaperPosition,
    PaperSnapshot,
    Quote,
    Side,
    parse_decimal,
)
from spotsim.errors import AccountNotFoundError, RejectedOrderError, TransientSourceError
from spotsim.fees import DEFAULT_FEE_SCHEDULE, FeeSchedule
from spotsim.storage import Ledger, Store

if TYPE_CHECKING:
    from spotsim.market.quotes import KrakenQuoteClient

logger = logging.getLogger(__name__)

QuoteFn = Callable[[], Awaitable[Quote]]

QUOTE_CCY = "USD"
BASE_CCY = "BTC"
DEFAULT_INITIAL_USD = Decimal("10000")
SNAPSHOT_FILLS_LIMIT = 20
VOLUME_WINDOW_MS = 30 * 86_400_000

STAT_FEES_PAID = "fees_paid_usd"
STAT_REALIZED_PNL = "realized_pnl_usd"
STAT_VOLUME_30D = "volume_30d_usd"
STAT_KEYS = (STAT_FEES_PAID, STAT_REALIZED_PNL, STAT_VOLUME_30D)

ZERO = Decimal("0")


def _default_time_fn() -> int:
    return int(time.time() * 1000)


def _iso_from_ms(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000, tz=UTC).isoformat(timespec="milliseconds")


class PaperEngine:
    """Paper accounts backed by the shared store and ledger."""

    def __init__(
        self,
        store: Store,
        ledger: Ledger,
        quote_fn: QuoteFn | None = None,
        fee_schedule: FeeSchedule | None = None,
        time_fn: Callable[[], int] | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            store: Shared SQLite store.
            ledger: Ledger receiving closeout sweeps.
            quote_fn: Default quote function. Falls back to the public Kraken
                ticker when neither this nor a per-call function is given.
            fee_schedule: Fee tiers (default Kraken spot).
            time_fn: Millisecond clock for fill timestamps and the volume window.
        """
        self.store = store
        self.ledger = ledger
        self._quote_fn = quote_fn
        self._fees = fee_schedule or DEFAULT_FEE_SCHEDULE
        self._time_fn = time_fn or _default_time_fn
        self._locks: dict[str, asyncio.Lock] = {}
        self._owned_client: KrakenQuoteClient | None = None

    def _lock(self, account_id: str) -> asyncio.Lock:
        lock = self._locks.get(account_id)
        if lock is None:
            lock = self._locks[account_id] = asyncio.Lock()
        return lock

    def _resolve_quote_fn(self, quote_fn: QuoteFn | None) -> QuoteFn:
        if quote_fn is not None:
            return quote_fn
        if self._quote_fn is None:
            from spotsim.market.quotes import KrakenQuoteClient

            self._owned_client = KrakenQuoteClient()
            self._quote_fn = self._owned_client
        return self._quote_fn

    async def close(self) -> None:
        """Close the Kraken quote client if this engine created it.

        A quote function passed in by the caller is left alone.
        """
        if self._owned_client is not None:
            await self._owned_client.close()
            self._owned_client = None
            self._quote_fn = None

    async def __aenter__(self) -> PaperEngine:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    # -- accounts -------------------------------------------------------------

    def ensure_account(
        self,
        account_id: str | None = None,
        initial_usd: Decimal | int | str = DEFAULT_INITIAL_USD,
    ) -> str:
        """Return an account id, creating the account if it does not exist.

        A blank or missing id creates a fresh account with a random id.
        """
        acc_id = account_id.strip() if account_id and account_id.strip() else str(uuid.uuid4())
        if self._account_exists(acc_id):
            return acc_id

        usd = parse_decimal(initial_usd)
        if not usd.is_finite() or usd < 0:
            raise ValueError(f"initial_usd must be a finite non-negative amount, got {initial_usd}")

        with self.store.transaction() as conn:
            conn.execute(
                "INSERT INTO paper_accounts (id, created_at, quote_ccy, base_ccy) VALUES (?, ?, ?, ?)",
                (acc_id, _iso_from_ms(self._time_fn()), QUOTE_CCY, BASE_CCY),
            )
            conn.executemany(
                "INSERT INTO paper_balances (account_id, currency, amount) VALUES (?, ?, ?)",
                [(acc_id, QUOTE_CCY, str(usd)), (acc_id, BASE_CCY, "0")],
            )
            conn.execute(
                "INSERT INTO paper_positions (account_id, base_ccy, qty, avg_entry) VALUES (?, ?, '0', '0')",
                (acc_id, BASE_CCY),
            )
            conn.executemany(
                "INSERT INTO paper_stats (account_id, key, value) VALUES (?, ?, '0')",
                [(acc_id, key) for key in STAT_KEYS],
            )
        logger.info("Paper account created", extra={"account_id": acc_id, "initial_usd": usd})
        return acc_id

    def _account_exists(self, account_id: str) -> bool:
        return self.store.fetchone("SELECT id FROM paper_accounts WHERE id = ?", (account_id,)) is not None

    def _require_account(self, account_id: str) -> None:
        if not self._account_exists(account_id):
            raise AccountNotFoundError(account_id)

    def _balance(self, account_id: str, currency: str) -> Decimal:
        row = self.store.fetchone(
            "SELECT amount FROM paper_balances WHERE account_id = ? AND currency = ?",
            (account_id, currency),
        )
        return Decimal(row["amount"]) if row else ZERO

    def _set_balance(self, account_id: str, currency: str, amount: Decimal) -> None:
        self.store.execute(
            "INSERT OR REPLACE INTO paper_balances (account_id, currency, amount) VALUES (?, ?, ?)",
            (account_id, currency, str(amount)),
        )

    def _position(self, account_id: str) -> tuple[Decimal, Decimal]:
        row = self.store.fetchone(
            "SELECT qty, avg_entry FROM paper_positions WHERE account_id = ?", (account_id,)
        )
        if row is None:
            return ZERO, ZERO
        return Decimal(row["qty"]), Decimal(row["avg_entry"])

    def _stat(self, account_id: str, key: str) -> Decimal:
        row = self.store.fetchone(
            "SELECT value FROM paper_stats WHERE account_id = ? AND key = ?", (account_id, key)
        )
        return Decimal(row["value"]) if row else ZERO

    def _set_stat(self, account_id: str, key: str, value: Decimal) -> None:
        self.store.execute(
            "INSERT OR REPLACE INTO paper_stats (account_id, key, value) VALUES (?, ?, ?)",
            (account_id, key, str(value)),
        )

    def trailing_volume(self, account_id: str) -> Decimal:
        """Sum of fill notionals within the last 30 days."""
        since = self._time_fn() - VOLUME_WINDOW_MS
        rows = self.store.fetchall(
            "SELECT notional FROM paper_fills WHERE account_id = ? AND ts_ms >= ?",
            (account_id, since),
        )
        return sum((Decimal(r["notional"]) for r in rows), ZERO)

    # -- orders -----------------------------------------------------------------

    async def place_market_order(
        self,
        account_id: str,
        side: Side,
        qty: Decimal | int | str,
        quote_fn: QuoteFn | None = None,
    ) -> PaperOrderResult:
        """Fill a market order against the current external quote.

        Raises:
            ValueError: Non-positive quantity or notional.
            AccountNotFoundError: Unknown account.
            RejectedOrderError: Insufficient USD for a buy, or a sell larger
                than the tracked position.
            TransientSourceError: Quote function failed.
        """
        qty_dec = parse_decimal(qty)
        if not qty_dec.is_finite() or qty_dec <= 0:
            raise ValueError(f"qty must be positive, got {qty}")
        self._require_account(account_id)

        async with self._lock(account_id):
            quote = await self._resolve_quote_fn(quote_fn)()
            return self._fill(account_id, Side(side), qty_dec, quote)

    def _fill(self, account_id: str, side: Side, qty: Decimal, quote: Quote) -> PaperOrderResult:
        price = quote.ask if side == Side.BUY else quote.bid
        notional = qty * price
        if notional <= 0:
            raise ValueError(f"invalid notional {notional} (qty={qty}, price={price})")

        fill_id = str(uuid.uuid4())
        now = self._time_fn()

        with self.store.transaction():
            volume = self.trailing_volume(account_id)
            fee = self._fees.calc_fee(notional, False, volume).fee_usd
            usd = self._balance(account_id, QUOTE_CCY)
            base = self._balance(account_id, BASE_CCY)
            pos_qty, pos_avg = self._position(account_id)

            if side == Side.BUY:
                if usd < notional + fee:
                    raise RejectedOrderError(
                        "insufficient_quote_balance",
                        f"Insufficient {QUOTE_CCY} for buy: need {notional + fee}, have {usd}",
                    )
                new_qty = pos_qty + qty
                new_avg = (pos_qty * pos_avg + qty * price) / new_qty
                realized = -fee
                self._set_balance(account_id, QUOTE_CCY, usd - notional - fee)
                self._set_balance(account_id, BASE_CCY, base + qty)
            else:
                if qty > pos_qty or qty > base:
                    raise RejectedOrderError(
                        "insufficient_position",
                        f"Sell of {qty} {BASE_CCY} exceeds position {pos_qty}",
                    )
                new_qty = pos_qty - qty
                new_avg = pos_avg if new_qty > 0 else ZERO
                realized = qty * (price - pos_avg) - fee
                self._set_balance(account_id, QUOTE_CCY, usd + notional - fee)
                self._set_balance(account_id, BASE_CCY, base - qty)

            self.store.execute(
                "UPDATE paper_positions SET qty = ?, avg_entry = ? WHERE account_id = ?",
                (str(new_qty), str(new_avg), account_id),
            )
            self._set_stat(account_id, STAT_FEES_PAID, self._stat(account_id, STAT_FEES_PAID) + fee)
            self._set_stat(
                account_id, STAT_REALIZED_PNL, self._stat(account_id, STAT_REALIZED_PNL) + realized
            )
            self._set_stat(account_id, STAT_VOLUME_30D, volume + notional)
            self.store.execute(
                "INSERT INTO paper_fills (id, account_id, ts, ts_ms, side, qty, price, notional, "
                "fee_usd, liquidity, realized_pnl_usd) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    fill_id,
                    account_id,
                    _iso_from_ms(now),
                    now,
                    side.value,
                    str(qty),
                    str(price),
                    str(notional),
                    str(fee),
                    Liquidity.TAKER.value,
                    str(realized),
                ),
            )

        logger.info(
            "Paper order filled",
            extra={
                "account_id": account_id,
                "fill_id": fill_id,
                "side": side.value,
                "qty": qty,
                "price": price,
                "fee_usd": fee,
                "realized_pnl_usd": realized,
            },
        )
        return PaperOrderResult(
            fill_id=fill_id,
            side=side,
            qty=qty,
            price=price,
            notional_usd=notional,
            fee_usd=fee,
            liquidity=Liquidity.TAKER,
            realized_pnl_usd=realized,
            snapshot=self.get_snapshot(account_id, quote),
        )

    async def closeout_to_usd(self, account_id: str, quote_fn: QuoteFn | None = None) -> CloseoutResult:
        """Sell the whole position, then sweep positive realized P&L to the ledger.

        The sweep and the realized-P&L reset commit together; the stat is reset
        to zero only when something was swept.
        """
        self._require_account(account_id)
        fn = self._resolve_quote_fn(quote_fn)

        closed_qty = ZERO
        quote: Quote | None = None
        async with self._lock(account_id):
            pos_qty, _ = self._position(account_id)
            if pos_qty > 0:
                quote = await fn()
                closed_qty = self._fill(account_id, Side.SELL, pos_qty, quote).qty

            net_realized = self._stat(account_id, STAT_REALIZED_PNL)
            run_id = f"paper-{self._time_fn()}"
            swept = ZERO
            if net_realized > 0:
                with self.store.transaction():
                    swept = self.ledger.apply_sweep(run_id, net_realized).swept
                    if swept > 0:
                        self._set_stat(account_id, STAT_REALIZED_PNL, ZERO)

        if quote is None:
            try:
                quote = await fn()
            except TransientSourceError as e:
                logger.warning("Closeout quote unavailable", extra={"account_id": account_id, "error": str(e)})

        logger.info(
            "Paper closeout",
            extra={
                "account_id": account_id,
                "closed_qty": closed_qty,
                "net_realized_pnl_usd": net_realized,
                "swept": swept,
            },
        )
        return CloseoutResult(
            closed_qty=closed_qty,
            net_realized_pnl_usd=net_realized,
            swept=swept,
            sweep_run_id=run_id if swept > 0 else None,
            snapshot=self.get_snapshot(account_id, quote),
        )

    # -- snapshot ---------------------------------------------------------------

    def get_snapshot(self, account_id: str, quote: Quote | None = None) -> PaperSnapshot:
        """Balances, position, stats and recent fills, marked at `quote` if given."""
        self._require_account(account_id)
        balances = {
            r["currency"]: Decimal(r["amount"])
            for r in self.store.fetchall(
                "SELECT currency, amount FROM paper_balances WHERE account_id = ? ORDER BY currency",
                (account_id,),
            )
        }
        stats = {
            r["key"]: Decimal(r["value"])
            for r in self.store.fetchall(
                "SELECT key, value FROM paper_stats WHERE account_id = ? ORDER BY key", (account_id,)
            )
        }
        fills = [
            PaperFill(**dict(r))
            for r in self.store.fetchall(
                "SELECT id, account_id, ts, side, qty, price, notional, fee_usd, liquidity, "
                "realized_pnl_usd FROM paper_fills WHERE account_id = ? ORDER BY seq DESC LIMIT ?",
                (account_id, SNAPSHOT_FILLS_LIMIT),
            )
        ]

        qty, avg = self._position(account_id)
        position = None
        if qty != 0 or avg != 0:
            position = PaperPosition(base_ccy=BASE_CCY, qty=qty, avg_entry=avg)

        unrealized = ZERO
        if quote is not None and qty > 0 and quote.mark > 0:
            unrealized = qty * (quote.mark - avg)

        return PaperSnapshot(
            account_id=account_id,
            balances=balances,
            position=position,
            stats=stats,
            last_fills=fills,
            market=quote,
            unrealized_pnl_usd=unrealized,
        )
