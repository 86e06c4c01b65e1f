"""Scan models: scan-run tracking, progress updates, bulk refresh results."""

import datetime

from pydantic import BaseModel, ConfigDict, Field, computed_field

from Put_Scout.models.enums import ScanStatus
from Put_Scout.utils.exceptions import ScanStateError

# Error summaries are stored on the run row; keep them bounded.
MAX_ERROR_SUMMARY_CHARS: int = 2000


class ScanRun(BaseModel):
    """Metadata for a single scan execution.

    Frozen: state changes produce a new instance via :meth:`finish`.
    Once the status leaves ``RUNNING`` the run is terminal.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    started_at: datetime.datetime
    completed_at: datetime.datetime | None = None
    status: ScanStatus = ScanStatus.RUNNING
    symbols_scanned: int = 0
    recommendations_generated: int = 0
    error_summary: str | None = Field(default=None, max_length=MAX_ERROR_SUMMARY_CHARS)

    @property
    def is_terminal(self) -> bool:
        """True once the run has left the RUNNING state."""
        return self.status != ScanStatus.RUNNING

    def finish(
        self,
        status: ScanStatus,
        *,
        symbols_scanned: int | None = None,
        recommendations_generated: int | None = None,
        error_summary: str | None = None,
        completed_at: datetime.datetime | None = None,
    ) -> "ScanRun":
        """Move the run into a terminal state.

        Raises:
            ScanStateError: If the run is already terminal or *status* is RUNNING.
        """
        if self.is_terminal:
            msg = f"Scan run {self.id} is already {self.status}; cannot move to {status}"
            raise ScanStateError(msg)
        if status == ScanStatus.RUNNING:
            msg = f"Scan run {self.id} cannot finish in the {status} state"
            raise ScanStateError(msg)

        update: dict[str, object] = {
            "status": status,
            "completed_at": completed_at or datetime.datetime.now(datetime.UTC),
        }
        if symbols_scanned is not None:
            update["symbols_scanned"] = symbols_scanned
        if recommendations_generated is not None:
            update["recommendations_generated"] = recommendations_generated
        if error_summary is not None:
            update["error_summary"] = error_summary[:MAX_ERROR_SUMMARY_CHARS]
        return self.model_copy(update=update)


class ScanProgressUpdate(BaseModel):
    """Per-symbol progress event pushed to the progress notifier."""

    model_config = ConfigDict(frozen=True)

    run_id: str
    symbol: str
    current_index: int
    total_symbols: int
    status: str
    recommendations_count: int = 0
    error_message: str | None = None
    timestamp: datetime.datetime = Field(
        default_factory=lambda: datetime.datetime.now(datetime.UTC)
    )

    @computed_field  # type: ignore[prop-decorator]
    @property
    def progress_percent(self) -> float:
        """Completion percentage, 0 when the universe is empty."""
        if self.total_symbols <= 0:
            return 0.0
        return round(self.current_index / self.total_symbols * 100, 1)


class BulkRefreshResult(BaseModel):
    """Aggregate outcome of one bulk fundamentals refresh."""

    model_config = ConfigDict(frozen=True)

    total_processed: int = 0
    healthy: int = 0
    unhealthy: int = 0
    failed: int = 0
    elapsed_seconds: float = 0.0
