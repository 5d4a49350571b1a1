"""
Keyword extraction of closed-vocabulary facets from free text.

Matching is case-insensitive and anchored on word boundaries. Two-letter
service codes (RT, OP, HH, DT, MM, CT) and "VA" only match as whole tokens,
so "private" never matches a military keyword and "women" never matches "men".
"""

import re
from collections.abc import Iterable
from typing import Any

from facility_etl.core.constants import FALLBACK_SERVICE


def _compile(mapping: dict[str, list[str]]) -> list[tuple[str, re.Pattern]]:
    return [
        (label, re.compile("|".join(f"(?:{p})" for p in patterns), re.IGNORECASE))
        for label, patterns in mapping.items()
    ]


SERVICE_KEYWORDS = {
    "residential": [r"\brt\b", r"\bres\b", r"\bresidential", r"\binpatient"],
    "outpatient": [r"\bop\b", r"\biop\b", r"\boutpatient", r"\bday treatment"],
    "detox": [r"\bdt\b", r"\bdetox", r"\bwithdrawal management"],
    "transitional": [
        r"\bhh\b",
        r"\btransitional",
        r"\bhalfway",
        r"\bsober living",
        r"\brecovery (?:home|residence)",
    ],
    "medication_assisted": [
        r"\bmm\b",
        r"\bmat\b",
        r"\botp\b",
        r"\bmedication[- ]assisted",
        r"\bmethadone",
        r"\bbuprenorphine",
        r"\bnaltrexone",
    ],
    "co_occurring": [r"\bct\b", r"\bco[- ]?occurring", r"\bdual diagnosis"],
}

INSURANCE_KEYWORDS = {
    "Medicare": [r"\bmedicare\b", r"\bmc\b"],
    "Medicaid": [r"\bmedicaid\b", r"\bmd\b"],
    "Private Insurance": [r"\bprivate(?!\s*pay)", r"\bcommercial", r"\bpi\b"],
    "Self-Pay": [r"\bcash\b", r"\bself[- ]?pay", r"\bprivate\s*pay", r"\bsf\b"],
    "Military Insurance": [r"\bmilitary", r"\btricare", r"\bva\b", r"\bmi\b", r"\bveterans?\b"],
    "State Insurance": [
        r"\bstate[- ]financed",
        r"\bstate[- ]funded",
        r"\bstate insurance",
        r"\bsi\b",
    ],
}

PROGRAM_KEYWORDS = {
    "Women's": [r"\bwomen", r"\bfemales?\b", r"\bpregnant", r"\bpostpartum"],
    "Men's": [r"\bmen\b", r"\bmen's", r"\bmales?\b"],
    "Youth": [r"\byouth", r"\badolescent", r"\bteens?\b", r"\bjuvenile", r"\byoung adult"],
    "Veterans": [r"\bveteran", r"\bmilitary"],
    "LGBTQ+": [r"\blgbt", r"\bgay\b", r"\blesbian", r"\btransgender"],
    "Dual-Diagnosis": [r"\bdual[- ]diagnosis", r"\bco[- ]?occurring"],
}

_SERVICE_PATTERNS = _compile(SERVICE_KEYWORDS)
_INSURANCE_PATTERNS = _compile(INSURANCE_KEYWORDS)
_PROGRAM_PATTERNS = _compile(PROGRAM_KEYWORDS)


def join_text(*values: Any) -> str:
    """
    Flatten raw field values (strings, numbers, lists) into one search text.

    Lists are joined with spaces so that ["RT", "OP"] matches both codes.
    """
    parts: list[str] = []
    for value in values:
        if value is None:
            continue
        if isinstance(value, str):
            parts.append(value)
        elif isinstance(value, Iterable) and not isinstance(value, (bytes, dict)):
            parts.extend(str(item) for item in value if item is not None)
        else:
            parts.append(str(value))
    return " ".join(parts)


def _match(text: str, patterns: list[tuple[str, re.Pattern]]) -> frozenset[str]:
    if not text:
        return frozenset()
    return frozenset(label for label, pattern in patterns if pattern.search(text))


def match_services(text: str) -> frozenset[str]:
    """Services named in the text, without the fallback."""
    return _match(text, _SERVICE_PATTERNS)


def extract_services(text: str) -> frozenset[str]:
    """Services named in the text; {"treatment"} when nothing matches."""
    return match_services(text) or frozenset({FALLBACK_SERVICE})


def extract_insurance(text: str) -> frozenset[str]:
    return _match(text, _INSURANCE_PATTERNS)


def extract_programs(text: str) -> frozenset[str]:
    return _match(text, _PROGRAM_PATTERNS)
