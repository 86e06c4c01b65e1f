"""Recommendation model: one cash-secured put candidate produced by a strategy."""

import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

CONFIDENCE_MIN: float = 0.0
CONFIDENCE_MAX: float = 1.0


class Recommendation(BaseModel):
    """A scored put-selling opportunity.

    Confidence must already be clamped to [0, 1] by the producing strategy;
    out-of-range values are rejected here rather than silently clipped.
    """

    model_config = ConfigDict(frozen=True)

    symbol: str
    strategy_name: str
    strike: Decimal
    expiration: datetime.date
    days_to_expiry: int
    premium: Decimal
    breakeven: Decimal
    current_price: Decimal
    confidence: float
    expected_growth_percent: float = 0.0
    safety_margin: float = 0.0
    annualized_return: float = 0.0
    f_score: int | None = None
    z_score: float | None = None
    scanned_at: datetime.datetime = Field(
        default_factory=lambda: datetime.datetime.now(datetime.UTC)
    )
    is_active: bool = True

    @field_validator("confidence")
    @classmethod
    def validate_confidence(cls, value: float) -> float:
        """Confidence must lie in [0, 1]."""
        if not CONFIDENCE_MIN <= value <= CONFIDENCE_MAX:
            msg = f"confidence must be between {CONFIDENCE_MIN} and {CONFIDENCE_MAX}, got {value}"
            raise ValueError(msg)
        return value

    @field_serializer("strike", "premium", "breakeven", "current_price")
    def serialize_decimal(self, value: Decimal) -> str:
        """Serialize Decimal fields as strings to preserve precision."""
        return str(value)
