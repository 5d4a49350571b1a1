"""
FacilityValidator - runs the rule groups on a raw record and, when no critical
issue is found, hands the record to the transformer.
"""

from typing import Any

from facility_etl.core.constants import MAX_DISTANCE_MILES, MAX_NAME_LENGTH
from facility_etl.core.models import Accepted, QueryUnit, Rejected, ValidationIssue
from facility_etl.transform.sanitizers import sanitize_string
from facility_etl.transform.transformer import FacilityTransformer

from .base_rule import BaseRule
from .business_rules import BusinessRule
from .data_type_rules import DataTypeRule
from .quality_rules import QualityIndicatorRule
from .required_fields import RequiredFieldRule


class FacilityValidator:
    """
    Orchestrates validation rule groups on raw facility records.

    Required-field rules run first and short-circuit: a record without a name
    or resolvable location is rejected without further checks. Data-type,
    business and quality rules only produce warnings.
    """

    RULE_REGISTRY = {
        "required_fields": RequiredFieldRule,
        "data_types": DataTypeRule,
        "business": BusinessRule,
        "quality": QualityIndicatorRule,
    }

    def __init__(
        self,
        transformer: FacilityTransformer | None = None,
        max_name_length: int = MAX_NAME_LENGTH,
        max_distance_miles: float = MAX_DISTANCE_MILES,
        rule_types: list[str] | None = None,
    ):
        """
        Initialize the validator.

        Args:
            transformer: Normalizer applied to accepted records
            max_name_length: Threshold for LONG_FACILITY_NAME
            max_distance_miles: Threshold for LOCATION_INCONSISTENCY
            rule_types: Rule groups to run, in order (default: all)
        """
        self.transformer = transformer or FacilityTransformer()
        parameters = {
            "max_name_length": max_name_length,
            "max_distance_miles": max_distance_miles,
        }
        self.rules: list[BaseRule] = []
        for rule_type in rule_types or list(self.RULE_REGISTRY):
            rule_class = self.RULE_REGISTRY.get(rule_type)
            if not rule_class:
                raise ValueError(f"Unknown rule type: {rule_type}")
            self.rules.append(rule_class(parameters))

    def validate(self, raw: dict[str, Any], unit: QueryUnit) -> Accepted | Rejected:
        """
        Validate one raw record.

        Args:
            raw: Canonicalized raw record
            unit: Query unit the record came from (fallback location, distance)

        Returns:
            Rejected with at least one critical issue, or Accepted with the
            normalized facility and any warnings
        """
        record_name = sanitize_string(raw.get("name_facility")) or None
        warnings: list[ValidationIssue] = []

        for rule in self.rules:
            try:
                issues = rule.check(raw, unit)
            except Exception as e:
                return Rejected(
                    errors=[self._crash_issue(rule.rule_type, e)],
                    warnings=warnings,
                    record_name=record_name,
                )

            errors = [i for i in issues if i.is_critical]
            if errors:
                return Rejected(errors=errors, warnings=warnings, record_name=record_name)
            warnings.extend(issues)

        try:
            facility = self.transformer.transform(raw, unit)
        except Exception as e:
            return Rejected(
                errors=[self._crash_issue("transform", e)],
                warnings=warnings,
                record_name=record_name,
            )

        return Accepted(facility=facility, warnings=warnings)

    def validate_batch(self, records: list[dict[str, Any]], unit: QueryUnit) -> list[Accepted | Rejected]:
        return [self.validate(record, unit) for record in records]

    def get_rule_summary(self) -> dict[str, Any]:
        return {
            "total_rules": len(self.rules),
            "rule_types": [rule.rule_type for rule in self.rules],
        }

    @staticmethod
    def _crash_issue(stage: str, error: Exception) -> ValidationIssue:
        return ValidationIssue(
            type="VALIDATION_ERROR",
            message=f"{stage} failed: {type(error).__name__}: {error}",
            field="record",
            severity="critical",
        )
