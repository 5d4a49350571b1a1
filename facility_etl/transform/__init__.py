"""
Normalization of raw facility records into CandidateFacility instances.
"""

from .facets import extract_insurance, extract_programs, extract_services
from .geo import haversine_miles
from .identity import compute_fingerprint, compute_stable_id
from .quality import compute_quality_score
from .sanitizers import (
    format_phone,
    normalize_state,
    normalize_zip,
    parse_coordinate,
    sanitize_string,
    sanitize_url,
)
from .transformer import FacilityTransformer

__all__ = [
    "FacilityTransformer",
    "compute_fingerprint",
    "compute_quality_score",
    "compute_stable_id",
    "extract_insurance",
    "extract_programs",
    "extract_services",
    "format_phone",
    "haversine_miles",
    "normalize_state",
    "normalize_zip",
    "parse_coordinate",
    "sanitize_string",
    "sanitize_url",
]
