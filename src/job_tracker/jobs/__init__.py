"""Job records, match scoring and the application workflow."""

from .matcher import MatchScorer, MatchBreakdown, score_job
from .records import JobRecordManager, IngestResult
from .application import (
    ApplicationWorkflow,
    TERMINAL_STATUSES,
    DOWNSTREAM_STATUSES,
    validate_transition,
)

__all__ = [
    "MatchScorer",
    "MatchBreakdown",
    "score_job",
    "JobRecordManager",
    "IngestResult",
    "ApplicationWorkflow",
    "TERMINAL_STATUSES",
    "DOWNSTREAM_STATUSES",
    "validate_transition",
]
