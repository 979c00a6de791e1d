"""Strategy Selector - Maps a complexity score to an execution strategy.

DECISION TREE:
1. Valid caller override → that strategy
2. score < low → template-first (cheap deterministic path)
3. score < mid → progressive
4. score < high → hybrid-parallel
5. otherwise → direct-external (schema-aware QA first)
"""

import logging

from .models import ComplexityScore, Strategy

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLDS = (0.3, 0.6, 0.8)


class StrategySelector:
    """Selects a Strategy from fixed thresholds."""

    __slots__ = ("_low", "_mid", "_high")

    def __init__(self, thresholds: tuple[float, float, float] = DEFAULT_THRESHOLDS):
        """Initialize StrategySelector.

        Args:
            thresholds: Ascending upper bounds for template-first,
                progressive and hybrid-parallel.
        """
        self._low, self._mid, self._high = thresholds

    @property
    def thresholds(self) -> tuple[float, float, float]:
        return (self._low, self._mid, self._high)

    def select(self, complexity: ComplexityScore | float, override: str | None = None) -> Strategy:
        """Pick a strategy. A valid override always wins."""
        if override:
            forced = Strategy.parse(override)
            if forced is not None:
                return forced
            logger.warning(f"StrategySelector: ignoring unknown strategy override '{override}'")

        score = complexity.score if isinstance(complexity, ComplexityScore) else complexity

        if score < self._low:
            return Strategy.TEMPLATE_FIRST
        if score < self._mid:
            return Strategy.PROGRESSIVE
        if score < self._high:
            return Strategy.HYBRID_PARALLEL
        return Strategy.DIRECT_EXTERNAL


def select_strategy(
    complexity: ComplexityScore | float,
    override: str | None = None,
    thresholds: tuple[float, float, float] = DEFAULT_THRESHOLDS,
) -> Strategy:
    """Functional shortcut for StrategySelector(thresholds).select(...)."""
    return StrategySelector(thresholds).select(complexity, override)
