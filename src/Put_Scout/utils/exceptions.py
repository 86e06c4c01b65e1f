"""Custom exception hierarchy for Put Scout.

Data retrieval failures inherit from DataFetchError, which carries
contextual information about what went wrong. Scan lifecycle failures
inherit from ScanError.
"""


class DataFetchError(Exception):
    """Base exception for all data-fetching failures.

    Attributes:
        ticker: The ticker symbol involved in the failure ("*" for bulk datasets).
        source: The data source that failed (e.g., "yfinance", "simfin").
        http_status: The HTTP status code, if the failure was HTTP-related.
    """

    def __init__(
        self,
        message: str,
        *,
        ticker: str,
        source: str,
        http_status: int | None = None,
    ) -> None:
        self.ticker = ticker
        self.source = source
        self.http_status = http_status
        super().__init__(message)


class TickerNotFoundError(DataFetchError):
    """Raised when a ticker symbol does not exist in the data source."""


class DataSourceUnavailableError(DataFetchError):
    """Raised when a data source is unreachable or returning errors."""


class InsufficientDataError(DataFetchError):
    """Raised when available data is too sparse for the requested operation."""


class RateLimitExceededError(DataFetchError):
    """Raised when the data source rate limit has been hit."""


class FundamentalsUnavailableError(DataFetchError):
    """Raised when the bulk fundamentals dataset cannot be obtained at all."""


class AuthenticationError(DataFetchError):
    """Raised when an access token cannot be obtained from a broker API."""


class ScanError(Exception):
    """Base exception for scan lifecycle failures."""


class NoStrategiesError(ScanError):
    """Raised when a scan starts with an empty strategy registry."""


class ScanStateError(ScanError):
    """Raised on an illegal scan-run state transition."""


class ScanInProgressError(ScanError):
    """Raised when a scan is requested while another one is still running."""
