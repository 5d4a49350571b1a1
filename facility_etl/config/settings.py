"""
Pipeline settings from the environment, and query units from YAML.

Settings are read once by the CLI (after python-dotenv loads an optional
.env file) and passed down explicitly; no component reads os.environ itself.
"""

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

from facility_etl.core.constants import (
    DEFAULT_API_BASE_URL,
    DEFAULT_DATA_SOURCE,
    MAX_DISTANCE_MILES,
    MAX_LOAD_BATCH_SIZE,
    MAX_NAME_LENGTH,
)
from facility_etl.core.errors import ConfigError
from facility_etl.core.models import QueryUnit

DEFAULT_LOCATIONS_FILE = "config/locations.yaml"

# Environment variable -> settings field
ENV_VARS = {
    "DATABASE_URL": "database_url",
    "DB_HOST": "db_host",
    "DB_PORT": "db_port",
    "DB_NAME": "db_name",
    "DB_USER": "db_user",
    "DB_PASSWORD": "db_password",
    "DB_POOL_SIZE": "db_pool_size",
    "ETL_API_BASE_URL": "api_base_url",
    "ETL_BATCH_SIZE": "batch_size",
    "ETL_PAGE_SIZE": "page_size",
    "ETL_MAX_PAGES": "max_pages",
    "ETL_DELAY_MS": "delay_ms",
    "ETL_MAX_RETRIES": "max_retries",
    "ETL_RETRY_DELAY_MS": "retry_delay_ms",
    "ETL_RETRY_MAX_DELAY_MS": "retry_max_delay_ms",
    "ETL_RETRY_JITTER_MS": "retry_jitter_ms",
    "ETL_TIMEOUT_MS": "timeout_ms",
    "ETL_PARALLEL_WORKERS": "parallel_workers",
    "ETL_PROGRESS_INTERVAL": "progress_interval",
    "ETL_ENABLE_DEDUP": "enable_dedup",
    "ETL_SKIP_EXISTING": "skip_existing",
    "ETL_CHECKPOINT_FILE": "checkpoint_file",
    "ETL_STATS_FILE": "stats_file",
    "ETL_DATA_SOURCE": "data_source",
    "ETL_LOCATIONS_FILE": "locations_file",
    "ETL_MAX_NAME_LENGTH": "max_name_length",
    "ETL_MAX_DISTANCE_MILES": "max_distance_miles",
    "ETL_MAX_REJECTIONS": "max_rejections",
    "LOG_LEVEL": "log_level",
    "LOG_FORMAT": "log_format",
    "METRICS_PORT": "metrics_port",
}


class PipelineSettings(BaseModel):
    """
    Validated pipeline configuration.

    Durations keep the millisecond units of their environment variables;
    use the *_seconds properties when calling into components.
    """

    database_url: str | None = None
    db_host: str = "localhost"
    db_port: int = Field(5432, ge=1, le=65535)
    db_name: str = "facilities"
    db_user: str = "postgres"
    db_password: str | None = Field(None, repr=False)
    db_pool_size: int | None = Field(None, ge=1)

    api_base_url: str = DEFAULT_API_BASE_URL
    batch_size: int = Field(MAX_LOAD_BATCH_SIZE, ge=1, le=MAX_LOAD_BATCH_SIZE)
    page_size: int = Field(500, ge=1, le=5000)
    max_pages: int = Field(5, ge=1, le=100)
    delay_ms: int = Field(2000, ge=0)
    max_retries: int = Field(3, ge=0, le=20)
    retry_delay_ms: int = Field(5000, ge=0)
    retry_max_delay_ms: int = Field(60000, ge=0)
    retry_jitter_ms: int = Field(1000, ge=0)
    timeout_ms: int = Field(30000, ge=1)
    parallel_workers: int = Field(3, ge=1, le=32)
    progress_interval: int = Field(10, ge=1)
    enable_dedup: bool = True
    skip_existing: bool = False

    checkpoint_file: str = "etl-progress.json"
    stats_file: str = "etl-stats.json"
    data_source: str = DEFAULT_DATA_SOURCE
    locations_file: str = DEFAULT_LOCATIONS_FILE

    max_name_length: int = Field(MAX_NAME_LENGTH, ge=1)
    max_distance_miles: float = Field(MAX_DISTANCE_MILES, gt=0)
    max_rejections: int = Field(1000, ge=0)

    log_level: str = "INFO"
    log_format: str = "json"
    metrics_port: int | None = Field(None, ge=1, le=65535)

    @field_validator("log_level")
    @classmethod
    def check_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log level: {v}")
        return level

    @field_validator("log_format")
    @classmethod
    def check_log_format(cls, v: str) -> str:
        fmt = v.lower()
        if fmt not in ("json", "text"):
            raise ValueError(f"Invalid log format: {v} (expected json or text)")
        return fmt

    @classmethod
    def from_env(
        cls,
        env: Mapping[str, str] | None = None,
        dotenv_path: str | Path | None = None,
        **overrides: Any,
    ) -> "PipelineSettings":
        """
        Build settings from environment variables.

        Args:
            env: Variables to read (defaults to os.environ after loading .env)
            dotenv_path: Explicit .env file; the default search is used when None
            **overrides: Field values that win over the environment (CLI flags)

        Raises:
            ConfigError: If a value is malformed or out of range
        """
        if env is None:
            load_dotenv(dotenv_path=dotenv_path, override=False)
            env = os.environ

        values: dict[str, Any] = {}
        for var, field_name in ENV_VARS.items():
            raw = env.get(var)
            if raw is None or raw.strip() == "":
                continue
            values[field_name] = raw.strip()

        values.update({k: v for k, v in overrides.items() if v is not None})

        try:
            return cls(**values)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            raise ConfigError(f"Invalid configuration: {problems}") from e

    @property
    def delay_seconds(self) -> float:
        return self.delay_ms / 1000.0

    @property
    def retry_delay_seconds(self) -> float:
        return self.retry_delay_ms / 1000.0

    @property
    def retry_max_delay_seconds(self) -> float:
        return self.retry_max_delay_ms / 1000.0

    @property
    def retry_jitter_seconds(self) -> float:
        return self.retry_jitter_ms / 1000.0

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000.0

    def pool_size(self, workers: int | None = None) -> int:
        """
        Connection pool size, kept below worker parallelism.

        max(1, workers - 1), or DB_POOL_SIZE when that is smaller.
        """
        cap = max(1, (workers or self.parallel_workers) - 1)
        if self.db_pool_size is not None:
            return min(self.db_pool_size, cap)
        return cap

    def require_database(self) -> None:
        if not self.database_url and not self.db_password:
            raise ConfigError("Database password must be provided. Set DATABASE_URL or DB_PASSWORD.")

    class Config:
        json_schema_extra = {
            "example": {
                "db_host": "localhost",
                "db_name": "facilities",
                "parallel_workers": 3,
                "batch_size": 500,
                "max_retries": 3,
            }
        }


class LocationConfigLoader:
    """
    Loads query units from a YAML file.

    Expected YAML format:
    ```yaml
    locations:
      - name: "San Francisco, CA"
        city: "San Francisco"
        state: "CA"
        latitude: 37.7749
        longitude: -122.4194
      - name: "Treatment export"
        path: "data/facilities.csv"
        state: "CA"
    ```
    """

    def __init__(self, config_path: str | Path):
        self.config_path = Path(config_path)
        if not self.config_path.exists():
            raise ConfigError(f"Locations file not found: {config_path}")

    def load_units(self) -> list[QueryUnit]:
        """
        Raises:
            ConfigError: If the YAML is invalid or an entry is malformed
        """
        try:
            with open(self.config_path, encoding="utf-8") as f:
                config = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Cannot read locations file {self.config_path}: {e}") from e

        if not isinstance(config, dict) or not isinstance(config.get("locations"), list):
            raise ConfigError("Locations file must contain a 'locations' list")

        units = []
        for idx, entry in enumerate(config["locations"]):
            if not isinstance(entry, dict):
                raise ConfigError(f"Location #{idx} must be a mapping")
            try:
                units.append(QueryUnit(**entry))
            except ValidationError as e:
                raise ConfigError(f"Invalid location #{idx} ({entry.get('name')}): {e}") from e

        if not units:
            raise ConfigError("Locations file defines no query units")
        return units


def load_query_units(
    locations_file: str | Path | None = None,
    input_files: list[str] | None = None,
    state: str | None = None,
) -> list[QueryUnit]:
    """
    Enumerate the query units for a run.

    Input files on the command line replace the locations file.
    """
    if input_files:
        return [QueryUnit.from_file(path, state=state) for path in input_files]
    return LocationConfigLoader(locations_file or DEFAULT_LOCATIONS_FILE).load_units()
