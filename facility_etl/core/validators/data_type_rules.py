"""
DataTypeRule - format and range checks on individual fields (warnings only).
"""

import re
from typing import Any

from facility_etl.core.constants import PHONE_PATTERN, ZIP_PATTERN
from facility_etl.core.models import QueryUnit, ValidationIssue
from facility_etl.transform.sanitizers import (
    parse_coordinate,
    sanitize_string,
    sanitize_url,
)

from .base_rule import BaseRule

_PHONE = re.compile(PHONE_PATTERN)
_ZIP = re.compile(ZIP_PATTERN)


def _present(value: Any) -> bool:
    return value is not None and sanitize_string(value) != ""


class DataTypeRule(BaseRule):
    """
    Flags malformed values without rejecting the record.

    - latitude outside [-90, 90] or non-numeric
    - longitude outside [-180, 180] or non-numeric
    - phone not matching the loose phone pattern
    - website malformed even after prepending https://
    - zip not matching NNNNN or NNNNN-NNNN
    """

    def check(self, record: dict[str, Any], unit: QueryUnit) -> list[ValidationIssue]:
        issues = []

        latitude = record.get("latitude")
        if _present(latitude) and parse_coordinate(latitude, -90.0, 90.0) is None:
            issues.append(self.issue(
                "INVALID_LATITUDE", f"Invalid latitude value: {latitude}", "latitude"
            ))

        longitude = record.get("longitude")
        if _present(longitude) and parse_coordinate(longitude, -180.0, 180.0) is None:
            issues.append(self.issue(
                "INVALID_LONGITUDE", f"Invalid longitude value: {longitude}", "longitude"
            ))

        phone = sanitize_string(record.get("phone"))
        if phone and not _PHONE.match(phone):
            issues.append(self.issue(
                "INVALID_PHONE_FORMAT", f"Invalid phone format: {phone}", "phone"
            ))

        website = sanitize_string(record.get("website"))
        if website and not sanitize_url(record.get("website")):
            issues.append(self.issue(
                "INVALID_URL_FORMAT", f"Invalid URL format: {website}", "website"
            ))

        zip_code = sanitize_string(record.get("zip"))
        if zip_code and not _ZIP.match(zip_code):
            issues.append(self.issue(
                "INVALID_ZIP_FORMAT", f"Invalid ZIP code format: {zip_code}", "zip"
            ))

        return issues

    @property
    def rule_type(self) -> str:
        return "data_types"
