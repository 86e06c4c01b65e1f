"""Options contract models with Greek validation.

OptionGreeks validates ranges at the boundary to reject bad feed data.
OptionContract is frozen with computed mid and DTE fields.
All Decimal fields have custom serializers for safe JSON roundtrips.
"""

import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, computed_field, field_serializer, field_validator

from Put_Scout.models.enums import OptionType

# --- Validation boundaries for Greeks ---
DELTA_MIN: float = -1.0
DELTA_MAX: float = 1.0
GAMMA_MIN: float = 0.0
VEGA_MIN: float = 0.0


class OptionGreeks(BaseModel):
    """Sensitivity measures for an option contract.

    Validates ranges on construction to reject garbage data from feeds:
    - delta must be in [-1.0, 1.0]
    - gamma must be >= 0
    - vega must be >= 0

    Theta is per share per calendar day.
    """

    model_config = ConfigDict(frozen=True)

    delta: float
    gamma: float = 0.0
    theta: float = 0.0
    vega: float = 0.0
    rho: float = 0.0

    @field_validator("delta")
    @classmethod
    def validate_delta(cls, value: float) -> float:
        """Delta must be between -1.0 and 1.0."""
        if not DELTA_MIN <= value <= DELTA_MAX:
            msg = f"delta must be between {DELTA_MIN} and {DELTA_MAX}, got {value}"
            raise ValueError(msg)
        return value

    @field_validator("gamma")
    @classmethod
    def validate_gamma(cls, value: float) -> float:
        """Gamma must be non-negative."""
        if value < GAMMA_MIN:
            msg = f"gamma must be >= {GAMMA_MIN}, got {value}"
            raise ValueError(msg)
        return value

    @field_validator("vega")
    @classmethod
    def validate_vega(cls, value: float) -> float:
        """Vega must be non-negative."""
        if value < VEGA_MIN:
            msg = f"vega must be >= {VEGA_MIN}, got {value}"
            raise ValueError(msg)
        return value


class OptionContract(BaseModel):
    """A single options contract with pricing and Greeks.

    Frozen because contract data is a point-in-time snapshot.
    """

    model_config = ConfigDict(frozen=True)

    symbol: str
    option_type: OptionType = OptionType.PUT
    strike: Decimal
    expiration: datetime.date
    bid: Decimal
    ask: Decimal
    last: Decimal = Decimal("0")
    volume: int = 0
    open_interest: int = 0
    implied_volatility: float = 0.0
    greeks: OptionGreeks | None = None

    @field_serializer("strike", "bid", "ask", "last")
    def serialize_decimal(self, value: Decimal) -> str:
        """Serialize Decimal fields as strings to preserve precision."""
        return str(value)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def mid(self) -> Decimal:
        """Mid price: (bid + ask) / 2, the premium estimate used for scoring."""
        return (self.bid + self.ask) / 2

    @computed_field  # type: ignore[prop-decorator]
    @property
    def dte(self) -> int:
        """Days to expiration from today."""
        return (self.expiration - datetime.date.today()).days

    @property
    def delta(self) -> float | None:
        """Delta if Greeks are attached."""
        return self.greeks.delta if self.greeks is not None else None

    @property
    def theta(self) -> float | None:
        """Per-day theta if Greeks are attached."""
        return self.greeks.theta if self.greeks is not None else None
