"""
CandidateFacility model representing a validated, normalized facility.
"""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field, field_validator

from facility_etl.core.constants import (
    DEFAULT_DATA_SOURCE,
    MAX_ID_LENGTH,
    MAX_STRING_LENGTH,
    SERVICE_VOCABULARY,
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CandidateFacility(BaseModel):
    """
    Validated facility ready for deduplication and loading (never mutated).

    Attributes:
        id: Stable primary key (state prefix + 8 hex chars)
        name: Sanitized facility name
        street: Street address
        city: City (falls back to the query unit)
        state: Upper-case state code
        zip: ZIP or ZIP+4, empty when malformed
        latitude: Latitude in [-90, 90]
        longitude: Longitude in [-180, 180]
        phone: Phone, "(NNN) NNN-NNNN" when 10 digits
        website: Well-formed URL or empty string
        services: Closed service vocabulary, never empty
        accepted_insurance: Closed insurance vocabulary
        programs: Closed program vocabulary
        description: Generated one-line description
        processing_flags: Completeness flags (missing_contact, ...)
        data_quality: Completeness score 0-100
        data_source: Origin of the record
        last_updated: When the record was transformed
        source_fingerprint: SHA-256 of name|street|city|state, dedup only
    """

    id: str = Field(..., min_length=1, max_length=MAX_ID_LENGTH)
    name: str = Field(..., min_length=1, max_length=MAX_STRING_LENGTH)
    street: str = ""
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    zip: str = ""
    latitude: float | None = Field(None, ge=-90.0, le=90.0)
    longitude: float | None = Field(None, ge=-180.0, le=180.0)
    phone: str = ""
    website: str = ""
    services: frozenset[str]
    accepted_insurance: frozenset[str] = Field(default_factory=frozenset)
    programs: frozenset[str] = Field(default_factory=frozenset)
    description: str = ""
    processing_flags: frozenset[str] = Field(default_factory=frozenset)
    data_quality: int = Field(..., ge=0, le=100)
    data_source: str = DEFAULT_DATA_SOURCE
    last_updated: datetime = Field(default_factory=utc_now)
    source_fingerprint: str = Field(..., min_length=64, max_length=64, repr=False)

    @field_validator("services")
    @classmethod
    def check_services(cls, v: frozenset[str]) -> frozenset[str]:
        """Services must be non-empty and drawn from the closed vocabulary."""
        if not v:
            raise ValueError("services must never be empty")
        unknown = v - SERVICE_VOCABULARY
        if unknown:
            raise ValueError(f"unknown services: {sorted(unknown)}")
        return v

    def to_row(self) -> dict[str, Any]:
        """Column values for the facilities table (facets as sorted lists)."""
        return {
            "id": self.id,
            "name": self.name,
            "street": self.street,
            "city": self.city,
            "state": self.state,
            "zip": self.zip,
            "phone": self.phone,
            "website": self.website,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "services": sorted(self.services),
            "accepted_insurance": sorted(self.accepted_insurance),
            "programs": sorted(self.programs),
            "description": self.description,
            "processing_flags": sorted(self.processing_flags),
            "data_quality": self.data_quality,
            "data_source": self.data_source,
            "source_fingerprint": self.source_fingerprint,
            "last_updated": self.last_updated,
        }

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "id": "ca-1f3a9c2e",
                "name": "Serenity House",
                "street": "100 Main St",
                "city": "San Francisco",
                "state": "CA",
                "zip": "94105",
                "latitude": 37.7749,
                "longitude": -122.4194,
                "phone": "(415) 555-0100",
                "website": "https://serenityhouse.org",
                "services": ["residential", "detox"],
                "accepted_insurance": ["Medicaid"],
                "programs": ["Women's"],
                "data_quality": 100,
                "data_source": "findtreatment.gov",
            }
        }
