"""
Source adapter interface and the response shapes it understands.

Adapters are stateless and retry-free: each page fetch is a single attempt,
and the caller decides how to retry it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypeVar

from facility_etl.core.errors import ParseError
from facility_etl.core.models import QueryUnit

T = TypeVar("T")

DEFAULT_MAX_PAGES = 5

# Canonical field -> aliases used by the different API and export variants
FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "name_facility": ("name1", "facilityName", "name"),
    "street1": ("address1", "street"),
    "street2": ("address2",),
    "zip": ("zip5", "zipcode", "postalCode"),
    "phone": ("phoneNumber", "phone1"),
    "website": ("url",),
    "latitude": ("lat",),
    "longitude": ("lng", "lon"),
    "type_facility": ("typeLabel", "facilityType"),
    "service_codes": ("servicesCd", "services"),
    "payment_types": ("paymentTypes", "insurance"),
    "special_programs": ("specialPrograms", "specialties", "specialty"),
}


class ResponseShape(str, Enum):
    """Payload layouts returned by the facility locator."""

    LEGACY_ARRAY = "legacy_array"  # bare JSON array, single page
    PAGED = "paged"  # {"rows": [...], "totalPages": N}


@dataclass(frozen=True)
class PageResult:
    records: list[dict[str, Any]]
    shape: ResponseShape
    total_pages: int | None = None
    payload_size: int = 0

    def has_more(self, page: int) -> bool:
        if self.shape is ResponseShape.LEGACY_ARRAY or not self.records:
            return False
        return self.total_pages is not None and self.total_pages > page


@dataclass
class FetchResult:
    """All records fetched for one unit plus request accounting."""

    records: list[dict[str, Any]] = field(default_factory=list)
    pages: int = 0
    payload_bytes: int = 0


def canonicalize_record(raw: dict[str, Any]) -> dict[str, Any]:
    """
    Map alias field names onto canonical ones.

    Header whitespace is stripped. A canonical key that already holds a
    non-empty value always wins over its aliases.
    """
    record = {str(k).strip(): v for k, v in raw.items() if k is not None}
    for canonical, aliases in FIELD_ALIASES.items():
        if record.get(canonical) not in (None, ""):
            continue
        for alias in aliases:
            value = record.get(alias)
            if value not in (None, ""):
                record[canonical] = value
                break
    return record


def _records(items: Any, payload_size: int) -> list[dict[str, Any]]:
    if not isinstance(items, list):
        raise ParseError("Expected a list of records", payload_size=payload_size)
    records = []
    for item in items:
        if not isinstance(item, dict):
            raise ParseError(
                f"Expected record objects, got {type(item).__name__}",
                payload_size=payload_size,
            )
        records.append(canonicalize_record(item))
    return records


def resolve_shape(payload: Any, payload_size: int = 0) -> PageResult:
    """
    Classify a decoded payload and extract its records.

    Raises:
        ParseError: If the payload is neither a bare array nor {rows, totalPages}
    """
    if isinstance(payload, list):
        return PageResult(
            records=_records(payload, payload_size),
            shape=ResponseShape.LEGACY_ARRAY,
            payload_size=payload_size,
        )

    if isinstance(payload, dict) and "rows" in payload:
        total_pages = payload.get("totalPages")
        try:
            total_pages = int(total_pages) if total_pages is not None else None
        except (TypeError, ValueError) as e:
            raise ParseError(f"Invalid totalPages: {total_pages!r}", payload_size=payload_size) from e
        return PageResult(
            records=_records(payload["rows"], payload_size),
            shape=ResponseShape.PAGED,
            total_pages=total_pages,
            payload_size=payload_size,
        )

    raise ParseError(
        f"Unrecognized response shape: {type(payload).__name__}",
        payload_size=payload_size,
    )


def _direct(fn: Callable[[], T]) -> T:
    return fn()


class SourceAdapter(ABC):
    """
    Fetches raw facility records for a query unit.

    Subclasses implement fetch_page(); pagination and the page cap live here.
    """

    def __init__(self, max_pages: int = DEFAULT_MAX_PAGES):
        if max_pages < 1:
            raise ValueError("max_pages must be at least 1")
        self.max_pages = max_pages

    @abstractmethod
    def fetch_page(self, unit: QueryUnit, page: int, page_size: int) -> PageResult:
        """
        Fetch one page (1-based). A single attempt, never retried here.

        Raises:
            NetworkError: Connection failure, timeout or non-2xx response
            ParseError: Malformed payload
        """

    def fetch(
        self,
        unit: QueryUnit,
        page_size: int,
        call: Callable[[Callable[[], PageResult]], PageResult] = _direct,
    ) -> FetchResult:
        """
        Fetch every page for a unit, in order, up to max_pages.

        Args:
            unit: Query unit to fetch
            page_size: Records per page
            call: Wraps each page request (the coordinator passes its retry policy)

        Returns:
            FetchResult with the canonicalized records
        """
        result = FetchResult()
        page = 1
        while page <= self.max_pages:
            current = page
            page_result = call(lambda: self.fetch_page(unit, current, page_size))
            result.records.extend(page_result.records)
            result.pages += 1
            result.payload_bytes += page_result.payload_size
            if not page_result.has_more(current):
                break
            page += 1
        return result

    def close(self) -> None:
        """Release held resources (sessions, handles)."""

    def __enter__(self) -> "SourceAdapter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
