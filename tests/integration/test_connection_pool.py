"""
Integration tests for database connection pool

Tests the PostgreSQL connection pool and health probes using testcontainers.
"""
import pytest

from facility_etl.core.errors import ConfigError, StoreUnavailableError
from facility_etl.observability import HealthChecker
from facility_etl.warehouse import DatabaseConnectionPool, FacilityLoader


def test_password_required():
    """Test that a pool without password or conninfo is a configuration error"""
    with pytest.raises(ConfigError):
        DatabaseConnectionPool(host="localhost", password=None)


def test_get_connection_requires_open_pool():
    """Test that using a closed pool raises RuntimeError"""
    pool = DatabaseConnectionPool(password="secret")
    assert not pool.is_open
    with pytest.raises(RuntimeError):
        with pool.get_connection():
            pass


@pytest.mark.integration
def test_connection_pool_initialization(db_settings):
    """Test that connection pool initializes correctly"""
    pool = DatabaseConnectionPool(**db_settings, min_size=1, max_size=3)

    pool.open()

    assert pool.is_open
    assert pool._pool.min_size == 1
    assert pool._pool.max_size == 3

    pool.close()
    assert not pool.is_open


@pytest.mark.integration
def test_execute_query(db_settings):
    """Test executing a query using the pool"""
    pool = DatabaseConnectionPool(**db_settings)

    pool.open()

    result = pool.execute_query("SELECT 42 as answer")
    assert len(result) == 1
    assert result[0]["answer"] == 42

    pool.close()


@pytest.mark.integration
def test_execute_command(clean_db, make_facility):
    """Test executing DELETE commands returns the affected row count"""
    FacilityLoader(clean_db).load([make_facility()])

    rowcount = clean_db.execute_command(
        "DELETE FROM facilities WHERE state = %s", ("CA",)
    )

    assert rowcount == 1


@pytest.mark.integration
def test_context_manager(db_settings):
    """Test using pool as context manager"""
    with DatabaseConnectionPool(**db_settings) as pool:
        result = pool.execute_query("SELECT 1 as test")
        assert result[0]["test"] == 1
        assert pool.health_check()

    # Pool should be closed after context
    with pytest.raises(RuntimeError):
        pool.execute_query("SELECT 1")


@pytest.mark.integration
def test_health_checker_ready(db_pool):
    """Test readiness reports the database as ok"""
    readiness = HealthChecker(db_pool).readiness()
    assert readiness["status"] == "ready"
    assert readiness["checks"]["database"] == "ok"


@pytest.mark.integration
def test_unreachable_database(db_settings):
    """Test opening a pool against a closed port raises StoreUnavailableError"""
    pool = DatabaseConnectionPool(
        **{**db_settings, "port": 1},
        timeout=2,
    )
    with pytest.raises(StoreUnavailableError):
        pool.open(max_retries=1, retry_delay=0)
    assert not pool.is_open
    assert not pool.health_check()
