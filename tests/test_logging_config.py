"""Tests for logging configuration module.

Verifies that logging configuration:
1. Drops credential fields and masks credential-looking text
2. Renders Decimal amounts as strings
3. Produces one valid JSON object per line
"""

from __future__ import annotations

import io
import logging
import sys
from decimal import Decimal

import orjson
import pytest

from spotsim.logging_config import (
    CREDENTIAL_WORDS,
    MAX_SEQUENCE_ITEMS,
    ConsoleFormatter,
    JsonFormatter,
    clean_fields,
    mask_text,
    setup_logging,
)


def make_record(msg: str = "fill applied", level: int = logging.INFO, **extra: object) -> logging.LogRecord:
    record = logging.LogRecord("spotsim.test", level, "engine.py", 42, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestCredentialFields:
    """Credential fields never reach a log line."""

    def test_words_cover_exchange_credentials(self) -> None:
        assert {"api_key", "api_secret", "token", "password", "otp"} <= CREDENTIAL_WORDS

    def test_partial_matches_dropped(self) -> None:
        fields = {"kraken_api_key": "k", "session_token": "t", "order_id": "mock-1"}
        assert clean_fields(fields) == {"order_id": "mock-1"}

    def test_case_insensitive(self) -> None:
        assert clean_fields({"API_SECRET": "s", "pair": "XRP/USD"}) == {"pair": "XRP/USD"}

    def test_nested_mappings_cleaned(self) -> None:
        assert clean_fields({"auth": {"password": "p", "user": "u"}}) == {"auth": {"user": "u"}}

    def test_depth_capped(self) -> None:
        cleaned = clean_fields({"a": {"b": {"c": {"d": {"e": 1}}}}})
        assert cleaned["a"]["b"]["c"]["d"] == {"_truncated": "max depth exceeded"}


class TestValueNormalization:
    def test_decimal_as_string(self) -> None:
        assert clean_fields({"fee_usd": Decimal("0.20")}) == {"fee_usd": "0.20"}

    def test_decimals_in_short_sequences(self) -> None:
        assert clean_fields({"prices": (Decimal("1.5"), 2)}) == {"prices": ["1.5", 2]}

    def test_long_sequences_summarized(self) -> None:
        cleaned = clean_fields({"fills": list(range(MAX_SEQUENCE_ITEMS + 1))})
        assert cleaned["fills"] == f"[list:{MAX_SEQUENCE_ITEMS + 1} items]"

    def test_primitives_pass_through(self) -> None:
        fields = {"ok": True, "ticks": 3, "ratio": 0.5, "reason": None}
        assert clean_fields(fields) == fields

    def test_other_objects_stringified(self) -> None:
        assert clean_fields({"err": ValueError("bad")}) == {"err": "bad"}


class TestMaskText:
    @pytest.mark.parametrize(
        ("text", "mask", "secret"),
        [
            ("api_key=abc123", "[API_KEY]", "abc123"),
            ("private-key: 'xyz+/='", "[SECRET]", "xyz"),
            ("Bearer eyJhbGciOi.abc", "[TOKEN]", "eyJhbGciOi"),
        ],
    )
    def test_masks(self, text: str, mask: str, secret: str) -> None:
        result = mask_text(f"request failed {text}")
        assert mask in result
        assert secret not in result

    def test_plain_text_unchanged(self) -> None:
        text = "order rejected: insufficient_balance"
        assert mask_text(text) == text


class TestJsonFormatter:
    def test_valid_json_with_extras(self) -> None:
        line = JsonFormatter().format(make_record(order_id="mock-1", fee_usd=Decimal("0.2"), api_key="k"))
        data = orjson.loads(line)
        assert data["level"] == "INFO"
        assert data["logger"] == "spotsim.test"
        assert data["msg"] == "fill applied"
        assert data["order_id"] == "mock-1"
        assert data["fee_usd"] == "0.2"
        assert "api_key" not in data
        assert "file" not in data

    def test_warning_includes_location(self) -> None:
        data = orjson.loads(JsonFormatter().format(make_record(level=logging.WARNING)))
        assert data["file"] == "engine.py"
        assert data["line"] == 42

    def test_exception_included(self) -> None:
        record = make_record(level=logging.ERROR)
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record.exc_info = sys.exc_info()
        data = orjson.loads(JsonFormatter().format(record))
        assert "RuntimeError: boom" in data["exc"]


class TestConsoleFormatter:
    def test_extras_appended(self) -> None:
        line = ConsoleFormatter().format(make_record(ticks=5, token="t"))
        assert line == "INFO     spotsim.test: fill applied | ticks=5"

    def test_no_extras(self) -> None:
        assert ConsoleFormatter().format(make_record()) == "INFO     spotsim.test: fill applied"


class TestSetupLogging:
    def test_json_output(self) -> None:
        stream = io.StringIO()
        setup_logging(level="DEBUG", stream=stream)
        logging.getLogger("spotsim.sim").debug("tick", extra={"mid": Decimal("2.5")})
        data = orjson.loads(stream.getvalue().strip())
        assert data["msg"] == "tick"
        assert data["mid"] == "2.5"

    def test_console_output_and_level(self) -> None:
        stream = io.StringIO()
        setup_logging(level=logging.WARNING, json_format=False, stream=stream)
        log = logging.getLogger("spotsim.sim")
        log.info("hidden")
        log.warning("shown")
        assert stream.getvalue().strip() == "WARNING  spotsim.sim: shown"

    def test_single_handler(self) -> None:
        setup_logging(stream=io.StringIO())
        setup_logging(stream=io.StringIO())
        assert len(logging.getLogger().handlers) == 1
        assert logging.getLogger("aiohttp").level == logging.WARNING
