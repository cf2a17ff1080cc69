"""
Tests for spotsim data contracts.

Covers:
- Decimal parsing (strings, ints, floats; bools and garbage rejected)
- Book, order and fill validation
- Immutability and extra-field rejection
"""

from __future__ import annotations

from decimal import Decimal

import pytest
from pydantic import ValidationError

from spotsim.contracts import (
    BookTop,
    DataSourceKind,
    Fill,
    Liquidity,
    MarketTick,
    Order,
    OrderType,
    Quote,
    Side,
    parse_decimal,
)


@pytest.fixture
def sample_fill() -> Fill:
    """Taker buy of 10 at 2.5 with a 0.4% fee."""
    return Fill(
        order_id="mock-1",
        pair="XRP/USD",
        side=Side.BUY,
        qty="10",
        price="2.5",
        fee_usd="0.1",
        liquidity=Liquidity.TAKER,
        fee_rate_bps="40",
        fee_tier_label="Tier 0 ($0+)",
        ts=1_700_000_000_000,
    )


class TestParseDecimal:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("1.50", Decimal("1.50")), (3, Decimal("3")), (0.1, Decimal("0.1")), (Decimal("2"), Decimal("2"))],
    )
    def test_accepts(self, raw: object, expected: Decimal) -> None:
        assert parse_decimal(raw) == expected

    def test_float_keeps_short_repr(self) -> None:
        """0.1 parses as exactly 0.1, not its binary expansion."""
        assert str(parse_decimal(0.1)) == "0.1"

    @pytest.mark.parametrize("raw", [True, "abc", None, [1]])
    def test_rejects(self, raw: object) -> None:
        with pytest.raises(ValueError):
            parse_decimal(raw)


class TestBookTop:
    def test_from_mid_symmetric(self) -> None:
        top = BookTop.from_mid(Decimal("100"), Decimal("100"), ts=5)
        assert top.bid == Decimal("99.5")
        assert top.ask == Decimal("100.5")
        assert top.spread == Decimal("1")
        assert top.ts == 5

    def test_zero_spread(self) -> None:
        top = BookTop.from_mid(Decimal("2.5"), Decimal("0"), ts=0)
        assert top.bid == top.ask == top.mid


class TestMarketTick:
    def _tick(self, bid: str, ask: str) -> MarketTick:
        b, a = Decimal(bid), Decimal(ask)
        return MarketTick(
            ts=0, bid=b, ask=a, mid=(b + a) / 2, spread=a - b, source=DataSourceKind.SIM, pair="XRP/USD"
        )

    def test_spread_bps(self) -> None:
        assert self._tick("99.5", "100.5").spread_bps == Decimal("100")

    def test_crossed_book_rejected(self) -> None:
        with pytest.raises(ValidationError, match="crossed"):
            self._tick("1.01", "1.00")

    def test_non_positive_rejected(self) -> None:
        with pytest.raises(ValidationError, match="positive"):
            self._tick("0", "1")


class TestQuote:
    def test_mark_prefers_last(self) -> None:
        assert Quote(bid="1", ask="3", last="2.5", ts="t").mark == Decimal("2.5")

    def test_mark_falls_back_to_mid(self) -> None:
        assert Quote(bid="1", ask="3", last="0", ts="t").mark == Decimal("2")


class TestOrder:
    def test_market_order(self) -> None:
        order = Order(
            order_id="mock-1", pair="XRP/USD", side=Side.BUY, order_type=OrderType.MARKET, qty="5", created_ts=0
        )
        assert order.limit_price is None
        assert order.liquidity == Liquidity.TAKER

    def test_limit_requires_price(self) -> None:
        with pytest.raises(ValidationError, match="limit_price"):
            Order(order_id="x", pair="XRP/USD", side=Side.SELL, order_type=OrderType.LIMIT, qty="1", created_ts=0)

    def test_non_positive_qty(self) -> None:
        with pytest.raises(ValidationError, match="qty"):
            Order(order_id="x", pair="XRP/USD", side=Side.BUY, order_type=OrderType.MARKET, qty="0", created_ts=0)


class TestFill:
    def test_notional_and_maker(self, sample_fill: Fill) -> None:
        assert sample_fill.notional == Decimal("25.0")
        assert not sample_fill.is_maker

    def test_negative_fee_rejected(self, sample_fill: Fill) -> None:
        data = sample_fill.model_dump()
        data["fee_usd"] = "-0.01"
        with pytest.raises(ValidationError, match="fee_usd"):
            Fill.model_validate(data)

    def test_zero_price_rejected(self, sample_fill: Fill) -> None:
        data = sample_fill.model_dump()
        data["price"] = "0"
        with pytest.raises(ValidationError, match="notional"):
            Fill.model_validate(data)

    def test_frozen(self, sample_fill: Fill) -> None:
        with pytest.raises(ValidationError):
            sample_fill.qty = Decimal("1")  # type: ignore[misc]

    def test_extra_field_rejected(self, sample_fill: Fill) -> None:
        data = sample_fill.model_dump()
        data["venue"] = "kraken"
        with pytest.raises(ValidationError):
            Fill.model_validate(data)

    def test_json_roundtrip(self, sample_fill: Fill) -> None:
        restored = Fill.model_validate_json(sample_fill.model_dump_json())
        assert restored == sample_fill
        assert isinstance(restored.price, Decimal)
