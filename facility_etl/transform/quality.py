"""
Data-quality scoring.

Weights (100 total):
    name 25 (12.5 when 5 characters or fewer)
    address 20: street 7, city 7, zip 6
    contact 20: phone 10, website 10
    coordinates from the source 15
    services 10 (5 when only raw type text exists)
    insurance 10
"""

NAME_WEIGHT = 25.0
SHORT_NAME_LENGTH = 5
STREET_WEIGHT = 7.0
CITY_WEIGHT = 7.0
ZIP_WEIGHT = 6.0
PHONE_WEIGHT = 10.0
WEBSITE_WEIGHT = 10.0
COORDINATE_WEIGHT = 15.0
SERVICE_WEIGHT = 10.0
RAW_SERVICE_TEXT_WEIGHT = 5.0
INSURANCE_WEIGHT = 10.0


def compute_quality_score(
    name: str,
    street: str = "",
    city: str = "",
    zip_code: str = "",
    phone: str = "",
    website: str = "",
    has_source_coordinates: bool = False,
    services_matched: bool = False,
    has_service_text: bool = False,
    has_insurance: bool = False,
) -> int:
    """
    Compute the 0-100 completeness score of a normalized facility.

    Fallback values (query-unit coordinates, the "treatment" service) earn
    nothing; callers pass only what the source actually provided.

    Returns:
        Integer score, rounded half-up and clamped to [0, 100]
    """
    score = 0.0

    if name:
        score += NAME_WEIGHT if len(name) > SHORT_NAME_LENGTH else NAME_WEIGHT / 2

    if street:
        score += STREET_WEIGHT
    if city:
        score += CITY_WEIGHT
    if zip_code:
        score += ZIP_WEIGHT

    if phone:
        score += PHONE_WEIGHT
    if website:
        score += WEBSITE_WEIGHT

    if has_source_coordinates:
        score += COORDINATE_WEIGHT

    if services_matched:
        score += SERVICE_WEIGHT
    elif has_service_text:
        score += RAW_SERVICE_TEXT_WEIGHT

    if has_insurance:
        score += INSURANCE_WEIGHT

    return max(0, min(100, int(score + 0.5)))
