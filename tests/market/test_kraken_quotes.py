"""Tests for the Kraken ticker parser and quote client."""

from __future__ import annotations

from decimal import Decimal
from typing import Any

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from spotsim.errors import TransientSourceError
from spotsim.market.quotes import KrakenQuoteClient, parse_kraken_ticker

TICKER = {
    "error": [],
    "result": {
        "XXBTZUSD": {
            "a": ["50010.0", "1", "1.000"],
            "b": ["50000.0", "2", "2.000"],
            "c": ["50005.5", "0.01"],
        }
    },
}


class TestParseKrakenTicker:
    def test_parses_bid_ask_last(self) -> None:
        quote = parse_kraken_ticker(TICKER)
        assert quote.bid == Decimal("50000.0")
        assert quote.ask == Decimal("50010.0")
        assert quote.last == Decimal("50005.5")
        assert quote.mark == Decimal("50005.5")

    def test_error_field(self) -> None:
        with pytest.raises(TransientSourceError, match="EQuery:Unknown asset pair"):
            parse_kraken_ticker({"error": ["EQuery:Unknown asset pair"], "result": {}})

    def test_empty_result(self) -> None:
        with pytest.raises(TransientSourceError, match="empty result"):
            parse_kraken_ticker({"error": [], "result": {}})

    def test_malformed_ticker(self) -> None:
        with pytest.raises(TransientSourceError, match="malformed"):
            parse_kraken_ticker({"error": [], "result": {"X": {"a": []}}})


def make_app(responses: list[tuple[int, dict[str, Any]]]) -> tuple[web.Application, list[str]]:
    """App answering the ticker path with the queued (status, body) pairs."""
    calls: list[str] = []

    async def ticker(request: web.Request) -> web.Response:
        calls.append(request.query.get("pair", ""))
        status, body = responses[min(len(calls), len(responses)) - 1]
        return web.json_response(body, status=status)

    app = web.Application()
    app.router.add_get("/0/public/Ticker", ticker)
    return app, calls


class TestKrakenQuoteClient:
    """Client against a local aiohttp server."""

    @pytest.mark.asyncio
    async def test_fetch_quote(self) -> None:
        app, calls = make_app([(200, TICKER)])
        async with TestServer(app) as server:
            client = KrakenQuoteClient(pair="XBTUSD", base_url=str(server.make_url("/0/public/Ticker")))
            try:
                quote = await client()
            finally:
                await client.close()
        assert quote.ask == Decimal("50010.0")
        assert calls == ["XBTUSD"]

    @pytest.mark.asyncio
    async def test_retries_once_then_succeeds(self) -> None:
        app, calls = make_app([(503, {}), (200, TICKER)])
        async with TestServer(app) as server:
            client = KrakenQuoteClient(base_url=str(server.make_url("/0/public/Ticker")), retries=1)
            try:
                quote = await client.fetch_quote()
            finally:
                await client.close()
        assert quote.bid == Decimal("50000.0")
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_retries(self) -> None:
        app, calls = make_app([(500, {})])
        async with TestServer(app) as server:
            client = KrakenQuoteClient(base_url=str(server.make_url("/0/public/Ticker")), retries=1)
            try:
                with pytest.raises(TransientSourceError, match="after 2 attempts"):
                    await client.fetch_quote()
            finally:
                await client.close()
        assert len(calls) == 2
