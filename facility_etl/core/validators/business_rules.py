"""
BusinessRule - domain heuristics (state codes, suspicious names, bad geocoding).
"""

from typing import Any

from facility_etl.core.constants import MAX_DISTANCE_MILES, MAX_NAME_LENGTH, US_STATES
from facility_etl.core.models import QueryUnit, ValidationIssue
from facility_etl.transform.geo import haversine_miles
from facility_etl.transform.sanitizers import normalize_state, parse_coordinate, sanitize_string

from .base_rule import BaseRule


class BusinessRule(BaseRule):
    """
    Non-fatal business-logic checks.

    Parameters:
        max_name_length: Names longer than this are flagged (default 200)
        max_distance_miles: Facilities further than this from the query
            point are flagged as likely bad geocoding (default 200)
    """

    def __init__(self, parameters: dict[str, Any] | None = None):
        super().__init__(parameters)
        self.max_name_length = int(self.parameters.get("max_name_length", MAX_NAME_LENGTH))
        self.max_distance_miles = float(
            self.parameters.get("max_distance_miles", MAX_DISTANCE_MILES)
        )

    def check(self, record: dict[str, Any], unit: QueryUnit) -> list[ValidationIssue]:
        issues = []

        state = normalize_state(record.get("state")) or normalize_state(unit.fallback_state)
        if state and state not in US_STATES:
            issues.append(self.issue(
                "INVALID_STATE_CODE", f"Invalid state code: {state}", "state"
            ))

        # Length is checked before the 255-character cap applied by sanitization
        name = sanitize_string(record.get("name_facility"), max_length=10_000)
        if len(name) > self.max_name_length:
            issues.append(self.issue(
                "LONG_FACILITY_NAME",
                f"Facility name exceeds {self.max_name_length} characters",
                "name_facility",
            ))
        if "test" in name.lower():
            issues.append(self.issue(
                "POSSIBLE_TEST_DATA", f"Facility name looks like test data: {name[:80]}", "name_facility"
            ))

        latitude = parse_coordinate(record.get("latitude"), -90.0, 90.0)
        longitude = parse_coordinate(record.get("longitude"), -180.0, 180.0)
        if latitude is not None and longitude is not None and unit.has_coordinates:
            distance = haversine_miles(latitude, longitude, unit.latitude, unit.longitude)
            if distance > self.max_distance_miles:
                issues.append(self.issue(
                    "LOCATION_INCONSISTENCY",
                    f"Facility is {distance:.0f} miles from {unit.name}",
                    "latitude",
                ))

        return issues

    @property
    def rule_type(self) -> str:
        return "business"
