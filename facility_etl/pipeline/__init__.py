"""
Run orchestration: retry policy, deduplication, checkpoints and reporting.
"""

from .checkpoint import CheckpointStore
from .coordinator import RunCoordinator
from .deduplicator import Deduplicator
from .report import RunReport, RunStatus, UnitFailure, UnitOutcome
from .retry import BackoffPolicy

__all__ = [
    "BackoffPolicy",
    "CheckpointStore",
    "Deduplicator",
    "RunCoordinator",
    "RunReport",
    "RunStatus",
    "UnitFailure",
    "UnitOutcome",
]
