"""
Operation tracking for long-running video jobs.

- store: in-memory registry of operation records
- tracker: state machine and per-operation background poller
- relay: create / status / stream / delete entry points
"""

from .relay import OperationStatusView, VideoRelay
from .store import OperationStore
from .tracker import OperationTracker, apply_poll_result, mark_timed_out

__all__ = [
    "OperationStatusView",
    "OperationStore",
    "OperationTracker",
    "VideoRelay",
    "apply_poll_result",
    "mark_timed_out",
]
