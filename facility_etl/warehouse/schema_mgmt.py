"""
Schema management for the facilities table.

Creates the table and indexes idempotently; used by the CLI before a run and
by the integration test fixtures.
"""

from .connection import DatabaseConnectionPool

FACILITIES_TABLE = "facilities"

FACILITIES_DDL = """
CREATE TABLE IF NOT EXISTS facilities (
    id                  VARCHAR(50) PRIMARY KEY,
    name                VARCHAR(255) NOT NULL,
    street              VARCHAR(255) NOT NULL DEFAULT '',
    city                VARCHAR(255) NOT NULL,
    state               VARCHAR(255) NOT NULL,
    zip                 VARCHAR(10) NOT NULL DEFAULT '',
    phone               VARCHAR(255) NOT NULL DEFAULT '',
    website             VARCHAR(255) NOT NULL DEFAULT '',
    latitude            DOUBLE PRECISION CHECK (latitude BETWEEN -90 AND 90),
    longitude           DOUBLE PRECISION CHECK (longitude BETWEEN -180 AND 180),
    services            TEXT[] NOT NULL DEFAULT '{}',
    accepted_insurance  TEXT[] NOT NULL DEFAULT '{}',
    programs            TEXT[] NOT NULL DEFAULT '{}',
    description         TEXT NOT NULL DEFAULT '',
    processing_flags    TEXT[] NOT NULL DEFAULT '{}',
    data_quality        INTEGER NOT NULL CHECK (data_quality BETWEEN 0 AND 100),
    data_source         VARCHAR(100) NOT NULL,
    source_fingerprint  CHAR(64) NOT NULL,
    last_updated        TIMESTAMPTZ NOT NULL,
    created_at          TIMESTAMPTZ NOT NULL DEFAULT NOW()
)
"""

FACILITIES_INDEXES = (
    "CREATE INDEX IF NOT EXISTS idx_facilities_state ON facilities (state)",
    "CREATE INDEX IF NOT EXISTS idx_facilities_data_source ON facilities (data_source)",
    "CREATE INDEX IF NOT EXISTS idx_facilities_fingerprint ON facilities (source_fingerprint)",
)


class SchemaManager:
    """
    Manages the facilities table DDL.

    Handles:
    - Creating the table and its indexes
    - Checking whether the table exists
    - Truncating it (tests, full reloads)
    """

    def __init__(self, pool: DatabaseConnectionPool):
        self.pool = pool

    def ensure_schema(self) -> None:
        """Create the facilities table and indexes if they are missing."""
        with self.pool.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(FACILITIES_DDL)
                for statement in FACILITIES_INDEXES:
                    cur.execute(statement)
            conn.commit()

    def table_exists(self) -> bool:
        rows = self.pool.execute_query(
            "SELECT to_regclass(%s) IS NOT NULL AS present", (FACILITIES_TABLE,)
        )
        return bool(rows and rows[0]["present"])

    def truncate(self) -> None:
        self.pool.execute_command(f"TRUNCATE TABLE {FACILITIES_TABLE}")
