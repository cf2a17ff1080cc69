"""Paper trading against external quotes."""

from spotsim.paper.engine import DEFAULT_INITIAL_USD, PaperEngine, QuoteFn

__all__ = ["DEFAULT_INITIAL_USD", "PaperEngine", "QuoteFn"]
