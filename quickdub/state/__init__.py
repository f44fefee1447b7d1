"""
State Module
============

Provides:
1. Job state machine (in-memory, one per request)
2. Event log (append-only audit trail beside the artifacts)
"""

from .fsm import Job, Stage, Status, STAGE_ORDER, InvalidTransition
from .events import JobEventLog, EventType

__all__ = [
    "Job",
    "Stage",
    "Status",
    "STAGE_ORDER",
    "InvalidTransition",
    "JobEventLog",
    "EventType",
]
