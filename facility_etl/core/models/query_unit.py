"""
QueryUnit model representing one unit of extraction work.
"""

from pathlib import Path

from pydantic import BaseModel, Field, model_validator


class QueryUnit(BaseModel):
    """
    A geographic point or a file path to extract facilities from.

    Attributes:
        name: Display name ("San Francisco, CA" or a file name)
        latitude: Search latitude (geo units)
        longitude: Search longitude (geo units)
        state: Fallback 2-letter state for records without one
        city: Fallback city for records without one
        path: Input file (file units)
    """

    name: str = Field(..., min_length=1)
    latitude: float | None = Field(None, ge=-90.0, le=90.0)
    longitude: float | None = Field(None, ge=-180.0, le=180.0)
    state: str | None = None
    city: str | None = None
    path: str | None = None

    @model_validator(mode="after")
    def check_kind(self) -> "QueryUnit":
        """A unit is either a file or a point with both coordinates."""
        if self.path is None and (self.latitude is None or self.longitude is None):
            raise ValueError("geographic query unit requires latitude and longitude")
        return self

    @property
    def is_file(self) -> bool:
        return self.path is not None

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @property
    def fallback_city(self) -> str | None:
        """City for records without one ("San Francisco, CA" -> "San Francisco")."""
        if self.city:
            return self.city
        if self.is_file:
            return None
        return self.name.split(",")[0].strip() or None

    @property
    def fallback_state(self) -> str | None:
        if self.state:
            return self.state
        if self.is_file or "," not in self.name:
            return None
        suffix = self.name.rsplit(",", 1)[1].strip()
        return suffix.upper() if len(suffix) == 2 and suffix.isalpha() else None

    @property
    def source_kind(self) -> str:
        """Which source adapter handles this unit: api, csv or json."""
        if not self.is_file:
            return "api"
        suffix = Path(self.path).suffix.lower()
        if suffix in (".json", ".jsonl"):
            return "json"
        return "csv"

    @classmethod
    def from_file(cls, path: str | Path, state: str | None = None, city: str | None = None) -> "QueryUnit":
        return cls(name=Path(path).name, path=str(path), state=state, city=city)

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "name": "San Francisco, CA",
                "latitude": 37.7749,
                "longitude": -122.4194,
                "state": "CA",
            }
        }
