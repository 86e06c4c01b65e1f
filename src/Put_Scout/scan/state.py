"""In-process guard against overlapping scans."""

from __future__ import annotations

import logging

from Put_Scout.models.scan import ScanRun
from Put_Scout.utils.exceptions import ScanInProgressError

logger = logging.getLogger(__name__)


class ScanStateTracker:
    """Tracks the active scan run and the last one that finished.

    The orchestrator calls :meth:`begin` before doing any work and
    :meth:`finish` in its ``finally`` block, so a second scan started
    while the first is still running is rejected instead of interleaving.
    """

    def __init__(self) -> None:
        self._current_run_id: str | None = None
        self._last_completed: ScanRun | None = None

    @property
    def current_run_id(self) -> str | None:
        return self._current_run_id

    @property
    def is_running(self) -> bool:
        return self._current_run_id is not None

    @property
    def last_completed(self) -> ScanRun | None:
        return self._last_completed

    def begin(self, run_id: str) -> None:
        """Mark *run_id* as active.

        Raises:
            ScanInProgressError: If another run is still active.
        """
        if self._current_run_id is not None:
            msg = f"Scan {self._current_run_id} is still running; refusing to start {run_id}"
            raise ScanInProgressError(msg)
        self._current_run_id = run_id
        logger.debug("Scan %s started", run_id)

    def finish(self, run: ScanRun | None = None) -> None:
        """Clear the active run, remembering *run* if it reached a terminal state."""
        if run is not None and run.is_terminal:
            self._last_completed = run
        logger.debug("Scan %s released", self._current_run_id)
        self._current_run_id = None
