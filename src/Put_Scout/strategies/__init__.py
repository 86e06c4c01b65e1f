"""Put-selling strategies and their registry.

Re-exports:
    from Put_Scout.strategies import Strategy, StrategyRegistry, default_registry
"""

from Put_Scout.strategies.base import HealthGate, Strategy, clamp_confidence
from Put_Scout.strategies.dividend_momentum import DividendMomentumStrategy
from Put_Scout.strategies.registry import StrategyRegistry, default_registry
from Put_Scout.strategies.short_term_put import ShortTermPutStrategy
from Put_Scout.strategies.volatility_crush import VolatilityCrushStrategy

__all__ = [
    "DividendMomentumStrategy",
    "HealthGate",
    "ShortTermPutStrategy",
    "Strategy",
    "StrategyRegistry",
    "VolatilityCrushStrategy",
    "clamp_confidence",
    "default_registry",
]
