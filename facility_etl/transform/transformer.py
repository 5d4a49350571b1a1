"""
FacilityTransformer - turns an accepted raw record into a CandidateFacility.
"""

from collections.abc import Callable
from datetime import datetime
from typing import Any

from facility_etl.core.constants import DEFAULT_DATA_SOURCE, FALLBACK_SERVICE
from facility_etl.core.models import CandidateFacility, QueryUnit
from facility_etl.core.models.candidate_facility import utc_now

from .facets import extract_insurance, extract_programs, join_text, match_services
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

DESCRIPTION_MAX_LENGTH = 1000


class FacilityTransformer:
    """
    Pure normalization of raw records.

    Only called on records that passed the required-field rules, so name,
    city and state are known to be resolvable.
    """

    def __init__(
        self,
        data_source: str = DEFAULT_DATA_SOURCE,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Args:
            data_source: Value stored in the data_source column
            clock: Returns the last_updated timestamp (injectable for tests)
        """
        self.data_source = data_source
        self.clock = clock

    def transform(self, raw: dict[str, Any], unit: QueryUnit) -> CandidateFacility:
        name = sanitize_string(raw.get("name_facility"))
        street = self._street(raw)
        city = sanitize_string(raw.get("city")) or sanitize_string(unit.fallback_city)
        state = normalize_state(raw.get("state")) or normalize_state(unit.fallback_state)
        zip_code = normalize_zip(raw.get("zip"))
        phone = format_phone(raw.get("phone"))
        website = sanitize_url(raw.get("website"))

        latitude = parse_coordinate(raw.get("latitude"), -90.0, 90.0)
        longitude = parse_coordinate(raw.get("longitude"), -180.0, 180.0)
        has_source_coordinates = latitude is not None and longitude is not None
        if not has_source_coordinates:
            latitude, longitude = unit.latitude, unit.longitude

        type_text = sanitize_string(raw.get("type_facility"))
        service_text = join_text(raw.get("type_facility"), raw.get("service_codes"))
        matched_services = match_services(service_text)
        services = matched_services or frozenset({FALLBACK_SERVICE})
        insurance = extract_insurance(join_text(raw.get("payment_types")))
        programs = extract_programs(
            join_text(raw.get("type_facility"), raw.get("special_programs"))
        )

        flags = set()
        if not phone and not website:
            flags.add("missing_contact")
        if not street and not zip_code:
            flags.add("missing_address")
        if not has_source_coordinates:
            flags.add("missing_coordinates")
        if not matched_services:
            flags.add("missing_services")

        quality = compute_quality_score(
            name=name,
            street=street,
            city=city,
            zip_code=zip_code,
            phone=phone,
            website=website,
            has_source_coordinates=has_source_coordinates,
            services_matched=bool(matched_services),
            has_service_text=bool(service_text.strip()),
            has_insurance=bool(insurance),
        )

        description = sanitize_string(
            f"{name} provides {type_text or 'treatment services'} in {city}, {state}.",
            max_length=DESCRIPTION_MAX_LENGTH,
        )

        return CandidateFacility(
            id=compute_stable_id(state, city, name),
            name=name,
            street=street,
            city=city,
            state=state,
            zip=zip_code,
            latitude=latitude,
            longitude=longitude,
            phone=phone,
            website=website,
            services=services,
            accepted_insurance=insurance,
            programs=programs,
            description=description,
            processing_flags=frozenset(flags),
            data_quality=quality,
            data_source=self.data_source,
            last_updated=self.clock(),
            source_fingerprint=compute_fingerprint(name, street, city, state),
        )

    @staticmethod
    def _street(raw: dict[str, Any]) -> str:
        street1 = sanitize_string(raw.get("street1"))
        street2 = sanitize_string(raw.get("street2"))
        if street1 and street2:
            return sanitize_string(f"{street1}, {street2}")
        return street1 or street2
