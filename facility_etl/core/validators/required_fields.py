"""
RequiredFieldRule - facility name, city and state must be resolvable.
"""

from typing import Any

from facility_etl.core.models import QueryUnit, ValidationIssue
from facility_etl.transform.sanitizers import normalize_state, sanitize_string

from .base_rule import BaseRule


class RequiredFieldRule(BaseRule):
    """
    Rejects records that cannot become a facility.

    Fails (critical) if:
    - name_facility is missing or blank after sanitization
    - city is blank and the query unit has no fallback city
    - state is blank and the query unit has no fallback state
    """

    def check(self, record: dict[str, Any], unit: QueryUnit) -> list[ValidationIssue]:
        issues = []

        if not sanitize_string(record.get("name_facility")):
            issues.append(self.issue(
                "MISSING_REQUIRED_FIELD",
                "Facility name is required",
                "name_facility",
                "critical",
            ))

        if not sanitize_string(record.get("city")) and not sanitize_string(unit.fallback_city):
            issues.append(self.issue(
                "MISSING_LOCATION_INFO",
                "City is missing and the query unit has no fallback city",
                "city",
                "critical",
            ))

        if not normalize_state(record.get("state")) and not normalize_state(unit.fallback_state):
            issues.append(self.issue(
                "MISSING_STATE_INFO",
                "State is missing and the query unit has no fallback state",
                "state",
                "critical",
            ))

        return issues

    @property
    def rule_type(self) -> str:
        return "required_fields"

    @property
    def critical(self) -> bool:
        return True
