"""Scan progress notification.

The orchestrator always talks to a notifier; when nobody is listening
it gets :class:`NullProgressNotifier`. Notifications are fire-and-forget
and must never change the outcome of a scan.
"""

from __future__ import annotations

import logging
from typing import Protocol

from Put_Scout.models.scan import ScanProgressUpdate, ScanRun

logger = logging.getLogger(__name__)


class ScanProgressNotifier(Protocol):
    """Receiver of scan lifecycle and per-symbol progress events."""

    async def notify_scan_started(self, run_id: str, total_symbols: int) -> None: ...

    async def notify_symbol_scanning(self, update: ScanProgressUpdate) -> None: ...

    async def notify_symbol_completed(self, update: ScanProgressUpdate) -> None: ...

    async def notify_symbol_error(self, update: ScanProgressUpdate) -> None: ...

    async def notify_scan_completed(self, run: ScanRun) -> None: ...


class NullProgressNotifier:
    """Discards every event."""

    async def notify_scan_started(self, run_id: str, total_symbols: int) -> None:
        return None

    async def notify_symbol_scanning(self, update: ScanProgressUpdate) -> None:
        return None

    async def notify_symbol_completed(self, update: ScanProgressUpdate) -> None:
        return None

    async def notify_symbol_error(self, update: ScanProgressUpdate) -> None:
        return None

    async def notify_scan_completed(self, run: ScanRun) -> None:
        return None


class LoggingProgressNotifier:
    """Writes progress events to the ``Put_Scout.services.notifier`` logger."""

    async def notify_scan_started(self, run_id: str, total_symbols: int) -> None:
        logger.info("Scan %s started: %d symbol(s)", run_id, total_symbols)

    async def notify_symbol_scanning(self, update: ScanProgressUpdate) -> None:
        logger.info(
            "[%d/%d] Scanning %s",
            update.current_index,
            update.total_symbols,
            update.symbol,
        )

    async def notify_symbol_completed(self, update: ScanProgressUpdate) -> None:
        logger.info(
            "[%d/%d] %s done: %d recommendation(s) (%.1f%%)",
            update.current_index,
            update.total_symbols,
            update.symbol,
            update.recommendations_count,
            update.progress_percent,
        )

    async def notify_symbol_error(self, update: ScanProgressUpdate) -> None:
        logger.warning(
            "[%d/%d] %s failed: %s",
            update.current_index,
            update.total_symbols,
            update.symbol,
            update.error_message,
        )

    async def notify_scan_completed(self, run: ScanRun) -> None:
        logger.info(
            "Scan %s finished with status %s: %d symbol(s), %d recommendation(s)",
            run.id,
            run.status,
            run.symbols_scanned,
            run.recommendations_generated,
        )
