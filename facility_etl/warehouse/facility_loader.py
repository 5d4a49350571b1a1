"""
Idempotent, transactional upsert of CandidateFacility batches.

Every batch is a single INSERT ... ON CONFLICT (id) DO UPDATE inside one
transaction: either all rows of the batch are visible afterwards or none are.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from logging import Logger, getLogger

import psycopg
from psycopg import OperationalError
from psycopg.errors import TransactionRollback, UniqueViolation
from psycopg_pool import PoolTimeout

from facility_etl.core.constants import MAX_LOAD_BATCH_SIZE
from facility_etl.core.errors import StoreError, StoreUnavailableError
from facility_etl.core.models import CandidateFacility

from .connection import DatabaseConnectionPool

COLUMNS = (
    "id",
    "name",
    "street",
    "city",
    "state",
    "zip",
    "phone",
    "website",
    "latitude",
    "longitude",
    "services",
    "accepted_insurance",
    "programs",
    "description",
    "processing_flags",
    "data_quality",
    "data_source",
    "source_fingerprint",
    "last_updated",
)

ARRAY_COLUMNS = frozenset({"services", "accepted_insurance", "programs", "processing_flags"})

# Everything except the key; created_at is never touched on update
UPDATE_COLUMNS = tuple(c for c in COLUMNS if c != "id")

_PLACEHOLDER = "(" + ", ".join("%s::text[]" if c in ARRAY_COLUMNS else "%s" for c in COLUMNS) + ")"

_UPSERT_HEAD = f"INSERT INTO facilities ({', '.join(COLUMNS)}) VALUES "
_UPSERT_TAIL = (
    " ON CONFLICT (id) DO UPDATE SET "
    + ", ".join(f"{c} = EXCLUDED.{c}" for c in UPDATE_COLUMNS)
    + " RETURNING id, (xmax = 0) AS inserted"
)


def build_upsert_sql(row_count: int) -> str:
    """Multi-row upsert statement for row_count facilities."""
    return _UPSERT_HEAD + ", ".join([_PLACEHOLDER] * row_count) + _UPSERT_TAIL


@dataclass
class LoadResult:
    """Outcome of loading one or more batches."""

    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    failed_ids: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def loaded(self) -> int:
        return self.inserted + self.updated

    def merge(self, other: "LoadResult") -> "LoadResult":
        self.inserted += other.inserted
        self.updated += other.updated
        self.skipped += other.skipped
        self.failed_ids.extend(other.failed_ids)
        self.errors.extend(other.errors)
        return self


def collapse_repeated_ids(
    facilities: Sequence[CandidateFacility],
) -> tuple[list[CandidateFacility], int]:
    """
    Keep the first facility per id.

    Distinct fingerprints can share an id (same name, city and state at two
    street addresses); a single INSERT ... ON CONFLICT cannot touch a row twice.
    """
    seen: set[str] = set()
    unique = []
    for facility in facilities:
        if facility.id in seen:
            continue
        seen.add(facility.id)
        unique.append(facility)
    return unique, len(facilities) - len(unique)


class FacilityLoader:
    """
    Loads facilities into PostgreSQL.

    All writes use INSERT ... ON CONFLICT (id) DO UPDATE so re-running a load
    updates rows in place instead of duplicating them.
    """

    def __init__(
        self,
        pool: DatabaseConnectionPool,
        batch_size: int = MAX_LOAD_BATCH_SIZE,
        logger: Logger | None = None,
    ):
        """
        Args:
            pool: Database connection pool
            batch_size: Rows per transaction, capped at MAX_LOAD_BATCH_SIZE
            logger: Structured logger
        """
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.pool = pool
        self.batch_size = min(batch_size, MAX_LOAD_BATCH_SIZE)
        self.logger = logger or getLogger(__name__)

    def ping(self) -> None:
        """
        Raises:
            StoreUnavailableError: If the store cannot answer SELECT 1
        """
        try:
            self.pool.execute_query("SELECT 1 AS ok")
        except (OperationalError, PoolTimeout, RuntimeError) as e:
            raise StoreUnavailableError(f"Database unavailable: {e}") from e

    def load(self, facilities: Sequence[CandidateFacility]) -> LoadResult:
        """
        Load facilities in chunks of batch_size.

        A chunk that fails with StoreError is retried once as two halves;
        ids of a half that fails again are recorded in failed_ids.

        Raises:
            StoreUnavailableError: If the store is unreachable (run-level)
        """
        unique, repeated = collapse_repeated_ids(facilities)
        result = LoadResult(skipped=repeated)

        for start in range(0, len(unique), self.batch_size):
            chunk = unique[start:start + self.batch_size]
            try:
                result.merge(self.load_batch(chunk))
            except StoreError as e:
                self.logger.warning(
                    "Batch load failed, retrying as two smaller batches",
                    extra={"batch_size": len(chunk), "error_message": str(e)},
                )
                result.merge(self._retry_halves(chunk))

        return result

    def _retry_halves(self, chunk: list[CandidateFacility]) -> LoadResult:
        result = LoadResult()
        if len(chunk) == 1:
            halves = [chunk]
        else:
            middle = len(chunk) // 2
            halves = [chunk[:middle], chunk[middle:]]

        for half in halves:
            try:
                result.merge(self.load_batch(half))
            except StoreError as e:
                self.logger.error(
                    "Batch load failed after retry",
                    extra={"facility_ids": e.facility_ids, "error_message": str(e)},
                )
                result.failed_ids.extend(e.facility_ids)
                result.errors.append(str(e))
        return result

    def load_batch(self, facilities: Sequence[CandidateFacility]) -> LoadResult:
        """
        Upsert one batch inside a single transaction.

        Returns:
            LoadResult with inserted/updated/skipped counts

        Raises:
            StoreError: The batch was rolled back (carries the batch ids)
            StoreUnavailableError: The store is unreachable
        """
        unique, repeated = collapse_repeated_ids(facilities)
        if not unique:
            return LoadResult(skipped=repeated)
        if len(unique) > MAX_LOAD_BATCH_SIZE:
            raise ValueError(f"Batch of {len(unique)} exceeds {MAX_LOAD_BATCH_SIZE} rows")

        # Stable lock order across concurrent writers
        unique = sorted(unique, key=lambda f: f.id)
        ids = [f.id for f in unique]
        rows = [self._row_params(f) for f in unique]

        try:
            with self.pool.get_connection() as conn:
                try:
                    with conn.cursor() as cur:
                        cur.execute(build_upsert_sql(len(rows)), [v for row in rows for v in row])
                        returned = cur.fetchall()
                    conn.commit()
                    inserted = sum(1 for r in returned if r["inserted"])
                    return LoadResult(
                        inserted=inserted,
                        updated=len(returned) - inserted,
                        skipped=repeated,
                    )
                except UniqueViolation:
                    # Another writer inserted one of these ids concurrently
                    conn.rollback()
                    result = self._upsert_rowwise(conn, rows)
                    result.skipped += repeated
                    return result
        except TransactionRollback as e:
            raise StoreError(f"Batch rolled back: {e}", facility_ids=ids) from e
        except (OperationalError, PoolTimeout) as e:
            raise StoreUnavailableError(f"Database unavailable: {e}") from e
        except psycopg.Error as e:
            raise StoreError(f"Batch rolled back: {e}", facility_ids=ids) from e

    def _upsert_rowwise(self, conn: psycopg.Connection, rows: list[tuple]) -> LoadResult:
        """Replay a batch row by row in savepoints; unique violations are skipped."""
        result = LoadResult()
        single = build_upsert_sql(1)
        with conn.transaction():
            for row in rows:
                try:
                    with conn.transaction():
                        with conn.cursor() as cur:
                            cur.execute(single, row)
                            returned = cur.fetchone()
                except UniqueViolation:
                    result.skipped += 1
                    continue
                if returned and returned["inserted"]:
                    result.inserted += 1
                else:
                    result.updated += 1
        return result

    @staticmethod
    def _row_params(facility: CandidateFacility) -> tuple:
        row = facility.to_row()
        return tuple(row[c] for c in COLUMNS)

    def fetch_existing_ids(self, ids: Sequence[str]) -> set[str]:
        """Ids from the list that are already stored (cross-run dedup)."""
        if not ids:
            return set()
        try:
            rows = self.pool.execute_query(
                "SELECT id FROM facilities WHERE id = ANY(%s)", (list(ids),)
            )
        except (OperationalError, PoolTimeout) as e:
            raise StoreUnavailableError(f"Database unavailable: {e}") from e
        return {r["id"] for r in rows}

    def clear_source(self, data_source: str) -> int:
        """Delete every row loaded from data_source. Returns the number deleted."""
        try:
            return self.pool.execute_command(
                "DELETE FROM facilities WHERE data_source = %s", (data_source,)
            )
        except (OperationalError, PoolTimeout) as e:
            raise StoreUnavailableError(f"Database unavailable: {e}") from e

    def facility_stats(self, data_source: str | None = None) -> dict:
        """
        Table-level statistics for the run report.

        Returns:
            total_facilities, states_covered, average_quality, from_source
        """
        try:
            rows = self.pool.execute_query(
                """
                SELECT
                    COUNT(*) AS total_facilities,
                    COUNT(DISTINCT state) AS states_covered,
                    COALESCE(ROUND(AVG(data_quality)::numeric, 2), 0) AS average_quality,
                    COUNT(*) FILTER (WHERE data_source = %s) AS from_source
                FROM facilities
                """,
                (data_source,),
            )
        except (OperationalError, PoolTimeout) as e:
            raise StoreUnavailableError(f"Database unavailable: {e}") from e
        row = rows[0]
        return {
            "total_facilities": int(row["total_facilities"]),
            "states_covered": int(row["states_covered"]),
            "average_quality": float(row["average_quality"]),
            "from_source": int(row["from_source"]),
        }
