"""
HTTP source adapter for the findtreatment.gov facility locator.
"""

from __future__ import annotations

from typing import Any

import requests

from facility_etl.core.constants import DEFAULT_API_BASE_URL, USER_AGENT
from facility_etl.core.errors import NetworkError, ParseError
from facility_etl.core.models import QueryUnit

from .base import DEFAULT_MAX_PAGES, PageResult, SourceAdapter, resolve_shape

DEFAULT_TIMEOUT_SECONDS = 30.0


class ApiSource(SourceAdapter):
    """
    Paginated GET against the locator export endpoint.

    Query parameters: sType=sa, location=<lat>,<lon>, pageSize, page, sort=0.
    Handles both the legacy bare-array response and the paged {rows, totalPages}
    response.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_API_BASE_URL,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        max_pages: int = DEFAULT_MAX_PAGES,
        session: requests.Session | None = None,
    ) -> None:
        super().__init__(max_pages=max_pages)
        self.base_url = base_url
        self.timeout = timeout
        self.session = session or requests.Session()
        self._owns_session = session is None

    def close(self) -> None:
        if self._owns_session:
            self.session.close()

    def _headers(self) -> dict[str, str]:
        return {"User-Agent": USER_AGENT, "Accept": "application/json"}

    def build_params(self, unit: QueryUnit, page: int, page_size: int) -> dict[str, Any]:
        if not unit.has_coordinates:
            raise ParseError(f"Query unit {unit.name!r} has no coordinates for the API source")
        return {
            "sType": "sa",
            "location": f"{unit.latitude},{unit.longitude}",
            "pageSize": page_size,
            "page": page,
            "sort": 0,
        }

    def fetch_page(self, unit: QueryUnit, page: int, page_size: int) -> PageResult:
        params = self.build_params(unit, page, page_size)
        try:
            response = self.session.get(
                self.base_url,
                params=params,
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.Timeout as exc:
            raise NetworkError(f"Timeout after {self.timeout}s fetching {unit.name}") from exc
        except requests.RequestException as exc:
            raise NetworkError(f"Request failed for {unit.name}: {exc}") from exc

        status = response.status_code
        if not 200 <= status < 300:
            raise NetworkError(f"HTTP status {status} for {unit.name}", status_code=status)

        payload_size = len(response.content or b"")
        try:
            payload = response.json()
        except ValueError as exc:
            raise ParseError(
                f"Invalid JSON payload for {unit.name}", payload_size=payload_size
            ) from exc

        return resolve_shape(payload, payload_size)
