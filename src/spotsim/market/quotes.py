"""
Public REST quote client (Kraken Ticker endpoint).

Read-only and keyless. Used as the default quote function of the paper
engine: `await client.fetch_quote()` returns the current best bid/ask/last.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

import aiohttp

from spotsim.contracts import Quote
from spotsim.errors import TransientSourceError

logger = logging.getLogger(__name__)

KRAKEN_TICKER_URL = "https://api.kraken.com/0/public/Ticker"
DEFAULT_KRAKEN_PAIR = "XBTUSD"
DEFAULT_TIMEOUT_MS = 5000
DEFAULT_RETRIES = 1


def parse_kraken_ticker(payload: dict[str, Any]) -> Quote:
    """Parse a Kraken Ticker response into a Quote.

    Kraken answers `{"error": [...], "result": {"<pair>": {"a": [...], "b": [...],
    "c": [...]}}}` where the first element of a/b/c is ask/bid/last price.

    Raises:
        TransientSourceError: If the payload carries errors or is malformed.
    """
    errors = payload.get("error") or []
    if errors:
        raise TransientSourceError(f"kraken error: {', '.join(map(str, errors))}", source="kraken")
    result = payload.get("result") or {}
    if not result:
        raise TransientSourceError("kraken ticker: empty result", source="kraken")
    ticker = next(iter(result.values()))
    try:
        return Quote(
            bid=ticker["b"][0],
            ask=ticker["a"][0],
            last=ticker["c"][0],
            ts=datetime.now(UTC).isoformat(),
        )
    except (KeyError, IndexError, TypeError, ValueError) as e:
        raise TransientSourceError(f"kraken ticker: malformed payload ({e})", source="kraken") from e


class KrakenQuoteClient:
    """Async best bid/ask fetcher for one Kraken pair."""

    def __init__(
        self,
        pair: str = DEFAULT_KRAKEN_PAIR,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        retries: int = DEFAULT_RETRIES,
        base_url: str = KRAKEN_TICKER_URL,
    ) -> None:
        self._pair = pair
        self._timeout_ms = timeout_ms
        self._retries = retries
        self._base_url = base_url
        self._session: aiohttp.ClientSession | None = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self._timeout_ms / 1000)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def fetch_quote(self) -> Quote:
        """Fetch the current quote, retrying once on network errors.

        Raises:
            TransientSourceError: When every attempt failed.
        """
        last_error: Exception | None = None
        for attempt in range(self._retries + 1):
            try:
                session = await self._get_session()
                async with session.get(self._base_url, params={"pair": self._pair}) as response:
                    if response.status != 200:
                        raise TransientSourceError(
                            f"kraken ticker HTTP {response.status}", source="kraken"
                        )
                    payload = await response.json()
                return parse_kraken_ticker(payload)
            except (aiohttp.ClientError, TimeoutError, TransientSourceError) as e:
                last_error = e
                logger.warning(
                    "Quote fetch failed",
                    extra={"pair": self._pair, "attempt": attempt + 1, "error": str(e)},
                )
        raise TransientSourceError(
            f"quote fetch failed after {self._retries + 1} attempts: {last_error}",
            source="kraken",
        )

    async def __call__(self) -> Quote:
        return await self.fetch_quote()
