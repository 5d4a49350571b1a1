"""
In-run and cross-run duplicate filtering.

The fingerprint and stable-id sets are shared by all workers and guarded by
one lock; the check-and-add is atomic so two workers discovering the same
facility at the same time keep exactly one copy (first seen wins, nothing is
merged). A later candidate whose stable id is already claimed in this run is
dropped too, so the stored row is always the first one seen.
"""

import threading
from collections.abc import Callable, Iterable, Sequence

from facility_etl.core.models import CandidateFacility

ExistingIdsLookup = Callable[[Sequence[str]], set[str]]


class Deduplicator:
    """
    Filters CandidateFacility instances already seen in this run, and optionally
    those whose stable id is already stored.

    Both sets grow with the number of distinct facilities in the run.
    """

    def __init__(
        self,
        enabled: bool = True,
        existing_ids: ExistingIdsLookup | None = None,
    ):
        """
        Args:
            enabled: When False nothing is ever reported as a duplicate
            existing_ids: Returns which of the given ids are already persisted
                (cross-run skip); None disables the lookup
        """
        self.enabled = enabled
        self.existing_ids = existing_ids
        self._fingerprints: set[str] = set()
        self._claimed_ids: set[str] = set()
        self._lock = threading.Lock()

    def reset(self) -> None:
        """Forget every fingerprint and claimed id (run start)."""
        with self._lock:
            self._fingerprints.clear()
            self._claimed_ids.clear()

    @property
    def seen_count(self) -> int:
        with self._lock:
            return len(self._fingerprints)

    def is_duplicate(self, candidate: CandidateFacility) -> bool:
        """
        True when the fingerprint or the stable id was already seen in this run;
        records both otherwise.
        """
        if not self.enabled:
            return False
        with self._lock:
            if candidate.source_fingerprint in self._fingerprints or candidate.id in self._claimed_ids:
                return True
            self._fingerprints.add(candidate.source_fingerprint)
            self._claimed_ids.add(candidate.id)
            return False

    def filter(self, candidates: Iterable[CandidateFacility]) -> tuple[list[CandidateFacility], int]:
        """
        Drop duplicates, preserving discovery order.

        Returns:
            (kept candidates, number dropped)
        """
        kept = []
        dropped = 0
        for candidate in candidates:
            if self.is_duplicate(candidate):
                dropped += 1
            else:
                kept.append(candidate)

        if self.enabled and self.existing_ids is not None and kept:
            stored = self.existing_ids([c.id for c in kept])
            if stored:
                before = len(kept)
                kept = [c for c in kept if c.id not in stored]
                dropped += before - len(kept)

        return kept, dropped
