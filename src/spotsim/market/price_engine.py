"""Seeded price-path generation and the scenario catalog.

The price path is a multiplicative random walk:

    price *= 1 + drift * dt + volatility * rng()

with dt = 0.001 per tick and rng() uniform on [-1, 1). Scheduled shocks add a
fixed delta once their activation window is reached. The default RandomSource
is a Mulberry32-style generator computed with explicit 32-bit masking, so a
given seed always yields the same path.
"""

from __future__ import annotations

from typing import Protocol

from pydantic import BaseModel, ConfigDict, Field

from spotsim.errors import ConfigurationError

DT = 0.001
SHOCK_WINDOW_MS = 500
MIN_PRICE = 0.01

_MASK32 = 0xFFFFFFFF


class RandomSource(Protocol):
    """Callable returning the next uniform sample on [-1, 1)."""

    def __call__(self) -> float: ...


def _imul(a: int, b: int) -> int:
    """32-bit integer multiply (C semantics), result as unsigned."""
    return (a * b) & _MASK32


class Mulberry32:
    """Mulberry32-style PRNG mapped to [-1, 1).

    State is a single 32-bit word; the generator is fully determined by the seed.
    The second mixing round xors in `t >> 12` and the output skips the final
    xor-shift, so values differ from textbook Mulberry32 for the same seed.
    """

    def __init__(self, seed: int) -> None:
        self._state = seed & _MASK32

    def next_uint32(self) -> int:
        self._state = (self._state + 0x6D2B79F5) & _MASK32
        t = self._state
        t = _imul(t ^ (t >> 15), t | 1)
        t ^= (t + _imul(t ^ (t >> 7), t ^ (t >> 12))) & _MASK32
        return t & _MASK32

    def __call__(self) -> float:
        return (self.next_uint32() / 4294967296) * 2 - 1


class Shock(BaseModel):
    """Scheduled price jump."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    offset_ms: int = Field(ge=0, description="Offset from path start (ms)")
    delta: float = Field(description="Price delta added once")


class Scenario(BaseModel):
    """Immutable market regime parameters."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str
    seed: int
    start_price: float = Field(gt=0)
    volatility: float = Field(ge=0)
    drift: float = 0.0
    base_spread_bps: float = Field(ge=0)
    liquidity: float = Field(gt=0, le=1)
    shocks: tuple[Shock, ...] = ()

    @property
    def slippage_factor(self) -> float:
        """Market-order slippage implied by liquidity (1.0 at full liquidity)."""
        return 1 + (1 - self.liquidity) * 0.002


SCENARIOS: dict[str, Scenario] = {
    s.name: s
    for s in (
        Scenario(
            name="CHOP",
            seed=42,
            start_price=2.5,
            volatility=0.002,
            drift=0.0,
            base_spread_bps=8,
            liquidity=1.0,
        ),
        Scenario(
            name="TREND_UP",
            seed=100,
            start_price=2.5,
            volatility=0.001,
            drift=0.00015,
            base_spread_bps=10,
            liquidity=1.0,
        ),
        Scenario(
            name="PANIC_DOWN",
            seed=200,
            start_price=2.5,
            volatility=0.008,
            drift=-0.0004,
            base_spread_bps=25,
            liquidity=0.5,
        ),
        Scenario(
            name="GAP_UP",
            seed=300,
            start_price=2.5,
            volatility=0.002,
            drift=0.0,
            base_spread_bps=15,
            liquidity=0.8,
            shocks=(Shock(offset_ms=5000, delta=0.15), Shock(offset_ms=30000, delta=0.08)),
        ),
        Scenario(
            name="LOW_LIQUIDITY",
            seed=400,
            start_price=2.5,
            volatility=0.003,
            drift=0.0,
            base_spread_bps=50,
            liquidity=0.2,
        ),
    )
}


def get_scenario(name: str) -> Scenario:
    """Look up a scenario by name.

    Raises:
        ConfigurationError: If the scenario is unknown.
    """
    try:
        return SCENARIOS[name]
    except KeyError:
        raise ConfigurationError(f"Unknown scenario: {name}") from None


def list_scenarios() -> list[Scenario]:
    """All catalog scenarios in definition order."""
    return list(SCENARIOS.values())


def next_price(
    scenario: Scenario,
    current_price: float,
    elapsed_ms: int,
    rng: RandomSource,
    fired: set[int] | None = None,
) -> float:
    """Advance the price path by one tick.

    Args:
        scenario: Regime parameters.
        current_price: Price at the previous tick.
        elapsed_ms: Time since path start, used for shock activation.
        rng: Uniform sampler on [-1, 1).
        fired: Indexes of shocks already applied on this path. Shocks listed
            here are skipped and a newly applied shock is recorded, so each
            shock lands once even when several ticks fall in its window.

    Returns:
        New price, floored at MIN_PRICE.
    """
    price = current_price * (1 + scenario.drift * DT + scenario.volatility * rng())
    for idx, shock in enumerate(scenario.shocks):
        if fired is not None and idx in fired:
            continue
        if shock.offset_ms <= elapsed_ms < shock.offset_ms + SHOCK_WINDOW_MS:
            price += shock.delta
            if fired is not None:
                fired.add(idx)
            break
    return max(MIN_PRICE, price)


class PricePath:
    """Mutable price-path state owned by one running data source."""

    def __init__(self, scenario: Scenario, rng: RandomSource | None = None) -> None:
        self.scenario = scenario
        self.current_price = scenario.start_price
        self.elapsed_ms = 0
        self._rng = rng or Mulberry32(scenario.seed)
        self._fired: set[int] = set()

    def step(self, dt_ms: int) -> float:
        """Advance by `dt_ms` of path time and return the new price."""
        self.elapsed_ms += dt_ms
        self.current_price = next_price(
            self.scenario, self.current_price, self.elapsed_ms, self._rng, self._fired
        )
        return self.current_price
