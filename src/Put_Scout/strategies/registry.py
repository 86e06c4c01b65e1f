"""Explicit registry of strategy instances.

Strategies are handed over as a plain list at composition time; there
is no discovery by reflection. Order of registration is the order of
:meth:`StrategyRegistry.load_all`, which keeps scan logs deterministic.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from Put_Scout.strategies.base import HealthGate, Strategy
from Put_Scout.strategies.dividend_momentum import DividendMomentumStrategy
from Put_Scout.strategies.short_term_put import ShortTermPutStrategy
from Put_Scout.strategies.volatility_crush import VolatilityCrushStrategy

if TYPE_CHECKING:
    from Put_Scout.config import StrategySettings

logger = logging.getLogger(__name__)


class StrategyRegistry:
    """Holds the strategies a scan runs, keyed by unique name."""

    def __init__(self, strategies: Iterable[Strategy] = ()) -> None:
        self._strategies: dict[str, Strategy] = {}
        for strategy in strategies:
            self.register(strategy)

    def register(self, strategy: Strategy) -> None:
        """Add *strategy*.

        Raises:
            ValueError: If the name is empty or already registered.
        """
        if not strategy.name:
            msg = f"{type(strategy).__name__} has no name"
            raise ValueError(msg)
        if strategy.name in self._strategies:
            msg = f"Strategy {strategy.name!r} is already registered"
            raise ValueError(msg)
        self._strategies[strategy.name] = strategy
        logger.debug("Registered strategy %s", strategy.name)

    def load_all(self) -> list[Strategy]:
        """Every registered strategy, in registration order. Empty is allowed."""
        return list(self._strategies.values())

    def __len__(self) -> int:
        return len(self._strategies)


def default_registry(settings: StrategySettings, health_gate: HealthGate) -> StrategyRegistry:
    """The three built-in variants sharing one expiry window and confidence floor."""
    options = {
        "min_expiry_days": settings.min_expiry_days,
        "max_expiry_days": settings.max_expiry_days,
        "min_confidence": settings.min_confidence,
    }
    return StrategyRegistry(
        [
            ShortTermPutStrategy(health_gate, **options),
            VolatilityCrushStrategy(health_gate, **options),
            DividendMomentumStrategy(health_gate, **options),
        ]
    )
