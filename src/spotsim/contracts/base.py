"""Base configuration for spotsim contracts.

All contracts inherit from ContractBase which enforces:
- Extra fields are forbidden
- Instances are immutable once produced
- Decimal fields accept str/int/float input and serialize as strings
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import BaseModel, ConfigDict

BPS = Decimal("10000")


class ContractBase(BaseModel):
    """Base class for all spotsim contracts."""

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
        str_strip_whitespace=True,
        validate_default=True,
    )


def parse_decimal(v: Any) -> Decimal:
    """Parse value to Decimal safely.

    Accepts:
    - Decimal (passthrough)
    - str (parsed to Decimal)
    - int (converted via string to avoid precision loss)
    - float (converted via string to keep its shortest repr)
    """
    if isinstance(v, Decimal):
        return v
    if isinstance(v, bool):
        raise ValueError("Cannot convert bool to Decimal")
    if isinstance(v, (str, int, float)):
        try:
            return Decimal(str(v))
        except InvalidOperation as exc:
            raise ValueError(f"Invalid decimal value: {v!r}") from exc
    raise ValueError(f"Cannot convert {type(v).__name__} to Decimal")


def to_decimal(v: float | int | str | Decimal) -> Decimal:
    """Convert a price produced in float arithmetic to Decimal."""
    return parse_decimal(v)
