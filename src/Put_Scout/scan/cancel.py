"""Cooperative cancellation signal shared by the scan pipeline."""

from __future__ import annotations

import asyncio
import contextlib


class CancelFlag:
    """A one-way cancellation signal checked at well-defined points.

    Setting the flag never interrupts running work; the orchestrator
    checks it at the top of each symbol iteration, the bulk refresher
    at the top of each batch, and batch evaluation before each symbol.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def is_set(self) -> bool:
        return self._event.is_set()

    def set(self) -> None:
        self._event.set()

    def reset(self) -> None:
        self._event.clear()

    async def sleep(self, seconds: float) -> bool:
        """Sleep up to *seconds*, waking early on cancellation.

        Returns:
            True if the flag was set before or during the sleep.
        """
        if seconds <= 0 or self._event.is_set():
            return self._event.is_set()
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        return self._event.is_set()
