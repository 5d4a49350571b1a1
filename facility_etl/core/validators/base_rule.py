"""
Base rule interface for facility validation.

Each rule group inspects one raw record (plus the query unit it came from)
and returns the issues it found. Rules never raise for bad data; an exception
escaping a rule is reported by FacilityValidator as a VALIDATION_ERROR.
"""

from abc import ABC, abstractmethod
from typing import Any

from facility_etl.core.models import QueryUnit, ValidationIssue


class BaseRule(ABC):
    """
    Abstract base class for all rule groups
    (required_fields, data_types, business, quality).
    """

    def __init__(self, parameters: dict[str, Any] | None = None):
        """
        Initialize rule.

        Args:
            parameters: Rule-specific parameters (e.g. max_name_length)
        """
        self.parameters = parameters or {}

    @abstractmethod
    def check(self, record: dict[str, Any], unit: QueryUnit) -> list[ValidationIssue]:
        """
        Check a raw record.

        Args:
            record: Canonicalized raw record
            unit: Query unit the record was fetched for

        Returns:
            Issues found, empty when the record passes
        """

    @property
    @abstractmethod
    def rule_type(self) -> str:
        """Return the rule group identifier."""

    @property
    def critical(self) -> bool:
        """Critical rule groups short-circuit the remaining groups."""
        return False

    @staticmethod
    def issue(issue_type: str, message: str, field: str, severity: str = "warning") -> ValidationIssue:
        return ValidationIssue(type=issue_type, message=message, field=field, severity=severity)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(params={self.parameters})"
