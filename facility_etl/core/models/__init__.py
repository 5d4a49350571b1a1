"""
Core data models for the facility ingestion pipeline.

All models use Pydantic for runtime validation and type safety.
"""

from .candidate_facility import CandidateFacility
from .query_unit import QueryUnit
from .run_state import RunState
from .validation_result import Accepted, Rejected, ValidationIssue, ValidationResult

RawRecord = dict

__all__ = [
    "QueryUnit",
    "CandidateFacility",
    "ValidationIssue",
    "Accepted",
    "Rejected",
    "ValidationResult",
    "RunState",
    "RawRecord",
]
