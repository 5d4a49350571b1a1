"""
Liveness and readiness probes for ops tooling.
"""

import os
import time
from datetime import datetime, timezone

from facility_etl.warehouse.connection import DatabaseConnectionPool


class HealthChecker:
    """
    Reports process liveness and database readiness as plain dicts.

    Usage:
        checker = HealthChecker(pool)
        checker.readiness()  # {"status": "ready", "checks": {"database": "ok"}, ...}
    """

    def __init__(self, pool: DatabaseConnectionPool | None = None):
        self.pool = pool
        self.started = time.monotonic()

    def liveness(self) -> dict:
        return {
            "status": "alive",
            "pid": os.getpid(),
            "uptime_seconds": round(time.monotonic() - self.started, 3),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    def readiness(self) -> dict:
        """
        Check the database with SELECT 1.

        Returns:
            Dict with status "ready" or "not_ready" and per-check results
        """
        if self.pool is None:
            database = "not_configured"
        elif self.pool.health_check():
            database = "ok"
        else:
            database = "unavailable"

        return {
            "status": "ready" if database == "ok" else "not_ready",
            "checks": {"database": database},
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    def is_ready(self) -> bool:
        return self.readiness()["status"] == "ready"
