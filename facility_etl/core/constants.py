"""Shared constants for facility ingestion."""

DEFAULT_DATA_SOURCE = "findtreatment.gov"
DEFAULT_API_BASE_URL = "https://findtreatment.gov/locator/exportsAsJson/v2"
USER_AGENT = "facility-etl/0.1 (+https://findtreatment.gov)"

MAX_ID_LENGTH = 50
MAX_STRING_LENGTH = 255
MAX_LOAD_BATCH_SIZE = 500

EARTH_RADIUS_MILES = 3959.0

# 50 states plus DC
US_STATES = frozenset({
    "AL", "AK", "AZ", "AR", "CA", "CO", "CT", "DE", "FL", "GA",
    "HI", "ID", "IL", "IN", "IA", "KS", "KY", "LA", "ME", "MD",
    "MA", "MI", "MN", "MS", "MO", "MT", "NE", "NV", "NH", "NJ",
    "NM", "NY", "NC", "ND", "OH", "OK", "OR", "PA", "RI", "SC",
    "SD", "TN", "TX", "UT", "VT", "VA", "WA", "WV", "WI", "WY", "DC",
})

FALLBACK_SERVICE = "treatment"

SERVICE_VOCABULARY = frozenset({
    "residential",
    "outpatient",
    "detox",
    "transitional",
    "medication_assisted",
    "co_occurring",
    FALLBACK_SERVICE,
})

INSURANCE_VOCABULARY = frozenset({
    "Medicare",
    "Medicaid",
    "Private Insurance",
    "Self-Pay",
    "Military Insurance",
    "State Insurance",
})

PROGRAM_VOCABULARY = frozenset({
    "Women's",
    "Men's",
    "Youth",
    "Veterans",
    "LGBTQ+",
    "Dual-Diagnosis",
})

PROCESSING_FLAGS = frozenset({
    "missing_contact",
    "missing_address",
    "missing_coordinates",
    "missing_services",
})

PHONE_PATTERN = r"^[+]?[1-9]?[\d\s\-()]{10,15}$"
URL_PATTERN = (
    r"^https?://(www\.)?[-a-zA-Z0-9@:%._+~#=]{1,256}\.[a-zA-Z0-9()]{1,6}\b"
    r"([-a-zA-Z0-9()@:%_+.~#?&/=]*)$"
)
ZIP_PATTERN = r"^\d{5}(-\d{4})?$"

MAX_NAME_LENGTH = 200
MAX_DISTANCE_MILES = 200.0
