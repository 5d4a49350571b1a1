"""
ValidationResult models representing the outcome of validating a raw record (ephemeral).
"""

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

from .candidate_facility import CandidateFacility

Severity = Literal["critical", "warning"]


class ValidationIssue(BaseModel):
    """
    A single finding raised by a validation rule.

    Critical issues reject the record; warnings keep it and are counted.

    Attributes:
        type: Issue code, e.g. "MISSING_REQUIRED_FIELD"
        message: Human-readable explanation
        field: Raw field (or facet) the issue applies to
        severity: "critical" or "warning"
    """

    type: str = Field(..., min_length=1)
    message: str
    field: str
    severity: Severity = "warning"

    @property
    def is_critical(self) -> bool:
        return self.severity == "critical"

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "type": "INVALID_LATITUDE",
                "message": "Invalid latitude value: 123.4",
                "field": "latitude",
                "severity": "warning",
            }
        }


class Accepted(BaseModel):
    """Record passed required-field checks and was transformed."""

    status: Literal["accepted"] = "accepted"
    facility: CandidateFacility
    warnings: list[ValidationIssue] = Field(default_factory=list)

    @property
    def passed(self) -> bool:
        return True


class Rejected(BaseModel):
    """Record dropped because of at least one critical issue."""

    status: Literal["rejected"] = "rejected"
    errors: list[ValidationIssue] = Field(..., min_length=1)
    warnings: list[ValidationIssue] = Field(default_factory=list)
    record_name: str | None = None

    @property
    def passed(self) -> bool:
        return False


ValidationResult = Annotated[Union[Accepted, Rejected], Field(discriminator="status")]
