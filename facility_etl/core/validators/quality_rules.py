"""
QualityIndicatorRule - flags records that are valid but thin.
"""

from typing import Any

from facility_etl.core.models import QueryUnit, ValidationIssue
from facility_etl.transform.facets import join_text
from facility_etl.transform.sanitizers import sanitize_string

from .base_rule import BaseRule


class QualityIndicatorRule(BaseRule):
    """Warns on missing contact, address or service information."""

    def check(self, record: dict[str, Any], unit: QueryUnit) -> list[ValidationIssue]:
        issues = []

        if not sanitize_string(record.get("phone")) and not sanitize_string(record.get("website")):
            issues.append(self.issue(
                "MISSING_CONTACT_INFO", "No phone number or website", "phone"
            ))

        if not sanitize_string(record.get("street1")) and not sanitize_string(record.get("zip")):
            issues.append(self.issue(
                "INCOMPLETE_ADDRESS", "No street address or ZIP code", "street1"
            ))

        service_text = join_text(record.get("type_facility"), record.get("service_codes"))
        if not sanitize_string(service_text):
            issues.append(self.issue(
                "MISSING_SERVICE_INFO", "No facility type or service information", "type_facility"
            ))

        return issues

    @property
    def rule_type(self) -> str:
        return "quality"
