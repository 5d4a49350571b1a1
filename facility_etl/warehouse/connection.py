"""
PostgreSQL connection pool management using psycopg3

This module provides a connection pool for efficient database access
with automatic connection lifecycle management. The pool is an explicit
handle owned by the CLI, never a module-level singleton.
"""
import time
from contextlib import contextmanager

from psycopg import OperationalError
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool, PoolTimeout

from facility_etl.core.errors import ConfigError, StoreUnavailableError


class DatabaseConnectionPool:
    """
    PostgreSQL connection pool manager using psycopg3

    Rows are returned as dictionaries. Pool size should stay below the
    worker parallelism of the run (see PipelineSettings.pool_size).
    """

    def __init__(
        self,
        conninfo: str | None = None,
        host: str = "localhost",
        port: int = 5432,
        database: str = "facilities",
        user: str = "postgres",
        password: str | None = None,
        min_size: int = 1,
        max_size: int = 2,
        timeout: float = 30.0,
    ) -> None:
        """
        Initialize database connection pool

        Args:
            conninfo: Full connection string or URL (DATABASE_URL); wins over the parts
            host: Database host
            port: Database port
            database: Database name
            user: Database user
            password: Database password (required unless conninfo is given)
            min_size: Minimum pool size
            max_size: Maximum pool size
            timeout: Connection and checkout timeout in seconds
        """
        if not conninfo and not password:
            raise ConfigError(
                "Database password must be provided. "
                "Set DATABASE_URL or DB_PASSWORD."
            )

        self.min_size = min(min_size, max_size)
        self.max_size = max_size
        self.timeout = timeout

        if conninfo:
            self.conninfo = conninfo
        else:
            self.conninfo = (
                f"host={host} "
                f"port={port} "
                f"dbname={database} "
                f"user={user} "
                f"password={password} "
                f"connect_timeout={max(1, int(timeout))}"
            )

        self._pool: ConnectionPool | None = None

    @property
    def is_open(self) -> bool:
        return self._pool is not None

    def open(self, max_retries: int = 3, retry_delay: float = 2.0) -> None:
        """
        Open the connection pool with retry logic.

        Args:
            max_retries: Maximum number of connection attempts
            retry_delay: Delay between attempts in seconds

        Raises:
            StoreUnavailableError: If no connection can be made after all attempts
        """
        if self._pool is not None:
            return

        last_error: Exception | None = None
        for attempt in range(1, max_retries + 1):
            pool = ConnectionPool(
                conninfo=self.conninfo,
                min_size=self.min_size,
                max_size=self.max_size,
                timeout=self.timeout,
                kwargs={"row_factory": dict_row},
                open=False,
            )
            try:
                pool.open(wait=True, timeout=self.timeout)
                self._pool = pool
                return
            except (OperationalError, PoolTimeout) as e:
                last_error = e
                pool.close()
                if attempt < max_retries:
                    time.sleep(retry_delay)

        raise StoreUnavailableError(
            f"Failed to connect to database after {max_retries} attempts: {last_error}"
        ) from last_error

    def close(self) -> None:
        """Close the connection pool"""
        if self._pool is not None:
            self._pool.close()
            self._pool = None

    @contextmanager
    def get_connection(self):
        """
        Get a connection from the pool

        Yields:
            psycopg.Connection: Database connection (committed on clean exit,
            rolled back on error)

        Raises:
            RuntimeError: If pool is not open
        """
        if self._pool is None:
            raise RuntimeError("Connection pool is not open. Call open() first.")

        with self._pool.connection() as conn:
            yield conn

    @contextmanager
    def get_cursor(self):
        with self.get_connection() as conn:
            with conn.cursor() as cur:
                yield cur

    def execute_query(self, query: str, params: tuple | None = None) -> list[dict]:
        """
        Execute a SELECT query and return results

        Args:
            query: SQL SELECT query
            params: Query parameters (optional)

        Returns:
            List of dictionaries (one per row)
        """
        with self.get_cursor() as cur:
            cur.execute(query, params)
            return cur.fetchall()

    def execute_command(self, command: str, params: tuple | None = None) -> int:
        """
        Execute an INSERT/UPDATE/DELETE/DDL command

        Returns:
            Number of rows affected
        """
        with self.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(command, params)
                rowcount = cur.rowcount
            conn.commit()
            return rowcount

    def health_check(self) -> bool:
        """Return True when SELECT 1 succeeds."""
        try:
            rows = self.execute_query("SELECT 1 AS ok")
        except (OperationalError, PoolTimeout, RuntimeError):
            return False
        return bool(rows) and rows[0]["ok"] == 1

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
