"""StrEnum types for the scan domain.

All enums use Python 3.13+ StrEnum. Values are lowercase strings.
Use enum members in business logic, never raw strings.
"""

from enum import StrEnum


class OptionType(StrEnum):
    """Type of option contract."""

    CALL = "call"
    PUT = "put"


class TrendDirection(StrEnum):
    """Direction of the short-term price trend."""

    UP = "up"
    DOWN = "down"
    SIDEWAYS = "sideways"


class ScanStatus(StrEnum):
    """Lifecycle status of a scan run.

    ``RUNNING`` is the only non-terminal state.
    """

    RUNNING = "running"
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    CANCELLED = "cancelled"
    FAILED = "failed"
    COMPLETED_NO_HEALTHY_SYMBOLS = "completed_no_healthy_symbols"


class SelectionPolicy(StrEnum):
    """How per-strategy recommendations are reduced before persistence."""

    BEST_PER_SYMBOL = "best_per_symbol"
    KEEP_ALL_ABOVE_THRESHOLD = "keep_all_above_threshold"
