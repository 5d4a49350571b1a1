"""
Unit tests for environment settings and query unit loading.
"""

import os
from pathlib import Path

import pytest

from facility_etl.config import LocationConfigLoader, PipelineSettings, load_query_units
from facility_etl.core.errors import ConfigError

LOCATIONS_FILE = Path(__file__).resolve().parents[2] / "config" / "locations.yaml"


class TestPipelineSettings:
    """Tests for PipelineSettings.from_env"""

    def test_defaults(self):
        """Test defaults when the environment is empty"""
        settings = PipelineSettings.from_env(env={})
        assert settings.batch_size == 500
        assert settings.parallel_workers == 3
        assert settings.max_retries == 3
        assert settings.delay_seconds == 2.0
        assert settings.retry_delay_seconds == 5.0
        assert settings.timeout_seconds == 30.0
        assert settings.enable_dedup is True
        assert settings.skip_existing is False
        assert settings.checkpoint_file == "etl-progress.json"
        assert settings.stats_file == "etl-stats.json"

    def test_reads_environment(self):
        """Test environment variables override defaults"""
        settings = PipelineSettings.from_env(env={
            "DB_HOST": "db.internal",
            "DB_PORT": "6543",
            "DB_PASSWORD": "secret",
            "ETL_BATCH_SIZE": "250",
            "ETL_PARALLEL_WORKERS": "5",
            "ETL_ENABLE_DEDUP": "false",
            "LOG_LEVEL": "debug",
        })
        assert settings.db_host == "db.internal"
        assert settings.db_port == 6543
        assert settings.batch_size == 250
        assert settings.parallel_workers == 5
        assert settings.enable_dedup is False
        assert settings.log_level == "DEBUG"

    def test_overrides_win(self):
        """Test command-line overrides beat the environment; None is ignored"""
        settings = PipelineSettings.from_env(
            env={"ETL_PARALLEL_WORKERS": "5", "ETL_STATS_FILE": "env.json"},
            parallel_workers=2,
            stats_file=None,
        )
        assert settings.parallel_workers == 2
        assert settings.stats_file == "env.json"

    def test_blank_values_ignored(self):
        """Test empty variables fall back to defaults"""
        settings = PipelineSettings.from_env(env={"ETL_BATCH_SIZE": "  "})
        assert settings.batch_size == 500

    @pytest.mark.parametrize("env", [
        {"ETL_BATCH_SIZE": "0"},
        {"ETL_BATCH_SIZE": "501"},
        {"ETL_PARALLEL_WORKERS": "many"},
        {"DB_PORT": "70000"},
        {"LOG_LEVEL": "LOUD"},
        {"LOG_FORMAT": "xml"},
    ])
    def test_invalid_values(self, env):
        """Test malformed or out-of-range values raise ConfigError"""
        with pytest.raises(ConfigError):
            PipelineSettings.from_env(env=env)

    def test_dotenv_file(self, tmp_path, monkeypatch):
        """Test values are loaded from an explicit .env file"""
        monkeypatch.delenv("ETL_PAGE_SIZE", raising=False)
        env_file = tmp_path / ".env"
        env_file.write_text("ETL_PAGE_SIZE=123\n", encoding="utf-8")

        try:
            settings = PipelineSettings.from_env(dotenv_path=env_file)
        finally:
            os.environ.pop("ETL_PAGE_SIZE", None)
        assert settings.page_size == 123

    @pytest.mark.parametrize("workers,pool_size,expected", [
        (1, None, 1),
        (3, None, 2),
        (8, None, 7),
        (8, 4, 4),
        (3, 10, 2),
    ])
    def test_pool_size_below_parallelism(self, workers, pool_size, expected):
        """Test the pool never exceeds max(1, workers - 1)"""
        settings = PipelineSettings(db_pool_size=pool_size)
        assert settings.pool_size(workers) == expected

    def test_require_database(self):
        """Test a password or DATABASE_URL is required"""
        with pytest.raises(ConfigError):
            PipelineSettings().require_database()
        PipelineSettings(db_password="secret").require_database()
        PipelineSettings(database_url="postgresql://u:p@h/db").require_database()


class TestLocationConfigLoader:
    """Tests for YAML query unit loading"""

    def test_load_units(self, tmp_path):
        """Test geographic and file entries load in order"""
        path = tmp_path / "locations.yaml"
        path.write_text(
            """
locations:
  - name: "San Francisco, CA"
    city: "San Francisco"
    state: "CA"
    latitude: 37.7749
    longitude: -122.4194
  - name: "Export"
    path: "data/export.csv"
    state: "TX"
""",
            encoding="utf-8",
        )
        units = LocationConfigLoader(path).load_units()
        assert [u.name for u in units] == ["San Francisco, CA", "Export"]
        assert units[0].source_kind == "api"
        assert units[1].source_kind == "csv"

    def test_bundled_locations_file(self):
        """Test the shipped locations file parses into geographic units"""
        units = LocationConfigLoader(LOCATIONS_FILE).load_units()
        assert len(units) > 100
        assert all(u.has_coordinates and u.fallback_state for u in units)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            LocationConfigLoader(tmp_path / "missing.yaml")

    @pytest.mark.parametrize("content", [
        "locations: [",
        "units: []",
        "locations: []",
        "locations:\n  - just a string",
        "locations:\n  - name: Nowhere",
    ])
    def test_invalid_files(self, tmp_path, content):
        """Test malformed YAML and entries raise ConfigError"""
        path = tmp_path / "locations.yaml"
        path.write_text(content, encoding="utf-8")
        with pytest.raises(ConfigError):
            LocationConfigLoader(path).load_units()

    def test_input_files_replace_locations(self, tmp_path):
        """Test --input files become file units with the fallback state"""
        units = load_query_units(
            tmp_path / "missing.yaml",
            input_files=["a.csv", "b.json"],
            state="CA",
        )
        assert [u.source_kind for u in units] == ["csv", "json"]
        assert all(u.fallback_state == "CA" for u in units)
