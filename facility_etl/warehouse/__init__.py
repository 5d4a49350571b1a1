"""
PostgreSQL warehouse access: connection pool, schema and facility loader.
"""

from .connection import DatabaseConnectionPool
from .facility_loader import FacilityLoader, LoadResult
from .schema_mgmt import SchemaManager

__all__ = ["DatabaseConnectionPool", "FacilityLoader", "LoadResult", "SchemaManager"]
