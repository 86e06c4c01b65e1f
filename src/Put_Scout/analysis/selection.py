"""Cross-strategy recommendation selection.

Every strategy emits its own candidates for a symbol; this module merges
them, applies the global confidence gate, and reduces them according to
the configured ``SelectionPolicy``. The output order is deterministic:
confidence descending, then symbol, then days to expiry, then strategy
name.
"""

import logging
from collections import defaultdict
from collections.abc import Iterable

from Put_Scout.models.enums import SelectionPolicy
from Put_Scout.models.recommendation import Recommendation

logger = logging.getLogger(__name__)


def ranking_key(rec: Recommendation) -> tuple[float, str, int, str]:
    """Sort key for the final report/persistence order."""
    return (-rec.confidence, rec.symbol, rec.days_to_expiry, rec.strategy_name)


def select_recommendations(
    recommendations: Iterable[Recommendation],
    *,
    policy: SelectionPolicy,
    min_confidence: float,
) -> list[Recommendation]:
    """Reduce per-strategy recommendations to the set that gets persisted.

    Args:
        recommendations: All candidates from all strategies for one scan.
        policy: ``BEST_PER_SYMBOL`` keeps one winner per symbol;
            ``KEEP_ALL_ABOVE_THRESHOLD`` keeps every candidate that clears
            the gate.
        min_confidence: Global confidence gate (inclusive).

    Returns:
        Selected recommendations in ranking order.
    """
    by_symbol: dict[str, list[Recommendation]] = defaultdict(list)
    rejected = 0
    for rec in recommendations:
        if rec.confidence >= min_confidence:
            by_symbol[rec.symbol].append(rec)
        else:
            rejected += 1

    selected: list[Recommendation] = []
    for candidates in by_symbol.values():
        if policy == SelectionPolicy.BEST_PER_SYMBOL:
            selected.append(min(candidates, key=ranking_key))
        else:
            selected.extend(candidates)

    selected.sort(key=ranking_key)
    logger.debug(
        "Selected %d recommendation(s) across %d symbol(s) (policy=%s, below gate=%d)",
        len(selected),
        len(by_symbol),
        policy.value,
        rejected,
    )
    return selected
