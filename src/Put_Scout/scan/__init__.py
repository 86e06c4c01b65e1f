"""Scan pipeline: orchestrator, cancellation, and overlapping-run guard.

Re-exports:
    from Put_Scout.scan import CancelFlag, ScanOrchestrator, ScanStateTracker
"""

from Put_Scout.scan.cancel import CancelFlag
from Put_Scout.scan.orchestrator import ScanOrchestrator
from Put_Scout.scan.state import ScanStateTracker

__all__ = [
    "CancelFlag",
    "ScanOrchestrator",
    "ScanStateTracker",
]
