"""
Pytest configuration and fixtures for facility-etl tests

This module provides shared fixtures for unit, integration, and E2E tests.
"""
import logging
from typing import Generator

import pytest
from testcontainers.postgres import PostgresContainer

from facility_etl.context import PipelineContext
from facility_etl.core.models import QueryUnit
from facility_etl.observability.metrics import PipelineMetrics
from facility_etl.transform import FacilityTransformer
from facility_etl.warehouse import DatabaseConnectionPool, SchemaManager


# =======================
# PYTEST CONFIGURATION
# =======================

def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "unit: Unit tests that don't require external services"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests that require Docker containers"
    )
    config.addinivalue_line(
        "markers", "e2e: End-to-end tests that test the full pipeline"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take more than 5 seconds to run"
    )


# =======================
# DOMAIN FIXTURES
# =======================

@pytest.fixture
def sf_unit() -> QueryUnit:
    return QueryUnit(
        name="San Francisco, CA",
        city="San Francisco",
        state="CA",
        latitude=37.7749,
        longitude=-122.4194,
    )


@pytest.fixture
def austin_unit() -> QueryUnit:
    return QueryUnit(name="Austin, TX", latitude=30.2672, longitude=-97.7431)


@pytest.fixture
def raw_record() -> dict:
    """A complete raw record as returned by the locator API (canonical keys)."""
    return {
        "name_facility": "Serenity House",
        "street1": "100 Main St",
        "street2": "Suite 2",
        "city": "San Francisco",
        "state": "CA",
        "zip": "94105",
        "phone": "415-555-0100",
        "website": "serenityhouse.org",
        "latitude": "37.7793",
        "longitude": "-122.4193",
        "type_facility": "Residential detox",
        "service_codes": ["RT", "DT"],
        "payment_types": "Medicaid, Private insurance",
        "special_programs": "Women",
    }


@pytest.fixture
def transformer() -> FacilityTransformer:
    return FacilityTransformer(data_source="test-source")


@pytest.fixture
def make_facility(transformer, raw_record, sf_unit):
    """
    Factory building CandidateFacility instances from raw_record overrides

    Usage:
        facility = make_facility(name_facility="Harbor Light", street1="1 Pier")
    """

    def _make(unit: QueryUnit | None = None, **overrides):
        record = {**raw_record, **overrides}
        return transformer.transform(record, unit or sf_unit)

    return _make


@pytest.fixture
def pipeline_context() -> PipelineContext:
    """Context with a quiet logger and a private metrics registry."""
    logger = logging.getLogger("facility-etl-test")
    logger.setLevel(logging.DEBUG)
    return PipelineContext(logger=logger, metrics=PipelineMetrics(data_source="test-source"))


# =======================
# DATABASE FIXTURES (Testcontainers)
# =======================

@pytest.fixture(scope="session")
def postgres_container() -> Generator[PostgresContainer, None, None]:
    """
    Start PostgreSQL container for integration tests

    Yields:
        PostgresContainer instance
    """
    with PostgresContainer(
        image="postgres:16.2-alpine",
        username="test_pipeline",
        password="test_password",
        dbname="test_datawarehouse"
    ) as postgres:
        # Wait for container to be ready
        postgres.get_connection_url()
        yield postgres


@pytest.fixture(scope="session")
def db_settings(postgres_container) -> dict:
    """Connection parameters for DatabaseConnectionPool"""
    return {
        "host": postgres_container.get_container_host_ip(),
        "port": int(postgres_container.get_exposed_port(5432)),
        "database": "test_datawarehouse",
        "user": "test_pipeline",
        "password": "test_password",
    }


@pytest.fixture(scope="session")
def db_pool(db_settings) -> Generator[DatabaseConnectionPool, None, None]:
    """
    Open pool against the container with the facilities schema in place

    Yields:
        DatabaseConnectionPool instance
    """
    pool = DatabaseConnectionPool(**db_settings, min_size=1, max_size=4)
    pool.open()
    SchemaManager(pool).ensure_schema()
    yield pool
    pool.close()


@pytest.fixture(scope="function")
def clean_db(db_pool) -> Generator[DatabaseConnectionPool, None, None]:
    """
    Provide a clean database by truncating the facilities table before each test

    Yields:
        DatabaseConnectionPool with an empty facilities table
    """
    SchemaManager(db_pool).truncate()
    yield db_pool
