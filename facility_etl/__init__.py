"""
Facility ingestion pipeline.

Extracts treatment facility records from findtreatment.gov (and flat files),
validates, normalizes and deduplicates them, and upserts them into PostgreSQL.
"""

__version__ = "0.1.0"
