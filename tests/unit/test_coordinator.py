"""
Unit tests for RunCoordinator.

Sources and the loader are in-memory fakes so runs are fast and deterministic;
the validator, deduplicator, retry policy and checkpoint store are real.
"""

import json
import threading
from collections import Counter

import pytest

from facility_etl.core.errors import ConfigError, NetworkError, ParseError, StoreUnavailableError
from facility_etl.core.models import QueryUnit, RunState
from facility_etl.core.validators import FacilityValidator
from facility_etl.pipeline import (
    BackoffPolicy,
    CheckpointStore,
    Deduplicator,
    RunCoordinator,
    RunStatus,
)
from facility_etl.sources.base import PageResult, ResponseShape, SourceAdapter
from facility_etl.transform import FacilityTransformer
from facility_etl.warehouse import LoadResult


class FakeSource(SourceAdapter):
    """Serves canned records (or raises canned errors) per unit name."""

    def __init__(self, responses, on_fetch=None):
        super().__init__(max_pages=1)
        self.responses = responses
        self.on_fetch = on_fetch
        self.calls = Counter()
        self._lock = threading.Lock()

    def fetch_page(self, unit, page, page_size):
        with self._lock:
            self.calls[unit.name] += 1
        if self.on_fetch is not None:
            self.on_fetch(unit)
        response = self.responses.get(unit.name, [])
        if isinstance(response, Exception):
            raise response
        return PageResult(records=[dict(r) for r in response], shape=ResponseShape.LEGACY_ARRAY)


class FakeLoader:
    """In-memory stand-in for FacilityLoader keyed by facility id."""

    def __init__(self, unavailable=False, fail_on_names=()):
        self.rows = {}
        self.unavailable = unavailable
        self.fail_on_names = set(fail_on_names)
        self.cleared = []
        self._lock = threading.Lock()

    def ping(self):
        if self.unavailable:
            raise StoreUnavailableError("Database unavailable: connection refused")

    def load(self, facilities):
        result = LoadResult()
        with self._lock:
            for facility in facilities:
                if facility.name in self.fail_on_names:
                    raise StoreUnavailableError("Database unavailable: server closed the connection")
                if facility.id in self.rows:
                    result.updated += 1
                else:
                    result.inserted += 1
                self.rows[facility.id] = facility
        return result

    def fetch_existing_ids(self, ids):
        return {i for i in ids if i in self.rows}

    def clear_source(self, data_source):
        self.cleared.append(data_source)
        deleted = len(self.rows)
        self.rows.clear()
        return deleted

    def facility_stats(self, data_source=None):
        return {
            "total_facilities": len(self.rows),
            "states_covered": len({f.state for f in self.rows.values()}),
            "average_quality": 0.0,
            "from_source": len(self.rows),
        }


def unit(name, lat=37.7749, lon=-122.4194):
    return QueryUnit(name=name, latitude=lat, longitude=lon)


def record(name, city="San Francisco", state="CA", street="100 Main St", phone="4155550100"):
    return {
        "name_facility": name,
        "street1": street,
        "city": city,
        "state": state,
        "zip": "94105",
        "phone": phone,
        "type_facility": "Outpatient",
    }


@pytest.fixture
def checkpoint_path(tmp_path):
    return tmp_path / "etl-progress.json"


@pytest.fixture
def make_coordinator(pipeline_context, tmp_path, checkpoint_path):
    def _make(units, source, loader, **kwargs):
        options = {
            "workers": 2,
            "batch_delay": 0,
            "checkpoint_interval": 10,
            "data_source": "test-source",
            "stats_file": tmp_path / "etl-stats.json",
        }
        options.update(kwargs)
        return RunCoordinator(
            units=units,
            sources={"api": source},
            validator=FacilityValidator(FacilityTransformer(data_source="test-source")),
            deduplicator=options.pop("deduplicator", Deduplicator()),
            loader=loader,
            retry_policy=BackoffPolicy(max_retries=2, jitter=0.0, sleep=lambda _: None),
            checkpoint_store=CheckpointStore(checkpoint_path),
            context=pipeline_context,
            **options,
        )

    return _make


class TestRunCoordinator:
    """Tests for RunCoordinator"""

    def test_duplicate_across_units_loaded_once(self, make_coordinator, checkpoint_path, tmp_path):
        """Test the same facility found from two query points is stored once"""
        shared = record("Serenity House")
        source = FakeSource({
            "San Francisco, CA": [shared],
            "Oakland, CA": [shared],
        })
        loader = FakeLoader()
        coordinator = make_coordinator(
            [unit("San Francisco, CA"), unit("Oakland, CA", 37.8044, -122.2712)],
            source,
            loader,
            workers=1,
        )

        report = coordinator.run()

        assert report.status is RunStatus.COMPLETED
        assert coordinator.status is RunStatus.COMPLETED
        assert len(loader.rows) == 1
        assert report.state.duplicates_skipped == 1
        assert report.state.processed == 1
        assert report.state.query_unit_index == 2
        assert not checkpoint_path.exists()

        stats = json.loads((tmp_path / "etl-stats.json").read_text(encoding="utf-8"))
        assert stats["status"] == "completed"
        assert stats["database_stats"]["total_facilities"] == 1

    def test_duplicate_within_unit_keeps_first_phone(self, make_coordinator):
        """Test one unit returning the same facility twice stores the first-seen phone"""
        source = FakeSource({
            "San Francisco, CA": [
                record("Serenity House", phone="415-555-0100"),
                record("Serenity House", phone="415-555-0199"),
            ],
        })
        loader = FakeLoader()

        report = make_coordinator([unit("San Francisco, CA")], source, loader).run()

        assert report.status is RunStatus.COMPLETED
        assert len(loader.rows) == 1
        (stored,) = loader.rows.values()
        assert stored.phone == "(415) 555-0100"
        assert report.state.duplicates_skipped == 1
        assert report.state.rows_inserted == 1

    def test_shared_stable_id_keeps_first_seen(self, make_coordinator):
        """Test a later unit cannot overwrite a row this run already loaded under the same id"""
        source = FakeSource({
            "San Francisco, CA": [record("Serenity House", street="100 Main St")],
            "Daly City, CA": [record("Serenity House", street="999 Other Ave")],
        })
        loader = FakeLoader()
        coordinator = make_coordinator(
            [unit("San Francisco, CA"), unit("Daly City, CA", 37.6879, -122.4702)],
            source,
            loader,
            workers=1,
        )

        report = coordinator.run()

        assert report.status is RunStatus.COMPLETED
        assert len(loader.rows) == 1
        (stored,) = loader.rows.values()
        assert stored.street == "100 Main St"
        assert report.state.duplicates_skipped == 1
        assert report.state.processed == 1
        assert report.state.rows_inserted == 1
        assert report.state.rows_updated == 0

    def test_parallel_run_processes_every_unit(self, make_coordinator):
        """Test units in concurrent batches are all fetched once"""
        names = [f"City {i}, CA" for i in range(5)]
        source = FakeSource({n: [record(f"Facility {i}")] for i, n in enumerate(names)})
        loader = FakeLoader()

        report = make_coordinator([unit(n) for n in names], source, loader, workers=3).run()

        assert report.status is RunStatus.COMPLETED
        assert set(source.calls) == set(names)
        assert all(count == 1 for count in source.calls.values())
        assert len(loader.rows) == 5
        assert [u.unit_index for u in report.units] == [0, 1, 2, 3, 4]

    def test_failed_unit_does_not_stop_run(self, make_coordinator):
        """Test a unit exhausting its retries is recorded and the run continues"""
        source = FakeSource({
            "Austin, TX": NetworkError("HTTP status 503", status_code=503),
            "Dallas, TX": [record("Hope Center", city="Dallas", state="TX")],
        })
        loader = FakeLoader()
        coordinator = make_coordinator(
            [unit("Austin, TX", 30.2672, -97.7431), unit("Dallas, TX", 32.7767, -96.797)],
            source,
            loader,
        )

        report = coordinator.run()

        assert report.status is RunStatus.COMPLETED
        assert source.calls["Austin, TX"] == 3
        assert report.state.failed == 1
        assert report.state.retry_attempts == 2
        assert report.unit_failures[0].unit_name == "Austin, TX"
        assert report.unit_failures[0].attempts == 3
        assert report.unit_failures[0].error_type == "NetworkError"
        assert len(loader.rows) == 1

    def test_parse_error_is_not_retried(self, make_coordinator):
        """Test a malformed payload fails the unit after one attempt"""
        source = FakeSource({"Austin, TX": ParseError("Invalid JSON payload", payload_size=17)})
        report = make_coordinator([unit("Austin, TX", 30.2672, -97.7431)], source, FakeLoader()).run()

        assert report.status is RunStatus.COMPLETED
        assert source.calls["Austin, TX"] == 1
        assert report.unit_failures[0].attempts == 1
        assert report.unit_failures[0].payload_size == 17

    def test_missing_source_kind_fails_unit(self, make_coordinator, tmp_path):
        """Test a file unit without a configured file source fails only that unit"""
        report = make_coordinator(
            [QueryUnit.from_file(tmp_path / "export.json", state="CA")],
            FakeSource({}),
            FakeLoader(),
        ).run()
        assert report.status is RunStatus.COMPLETED
        assert report.unit_failures[0].error_type == "ConfigError"

    def test_rejected_records_are_counted(self, make_coordinator):
        """Test records without a name are rejected and reported"""
        source = FakeSource({"San Francisco, CA": [record("Serenity House"), record("")]})
        report = make_coordinator([unit("San Francisco, CA")], source, FakeLoader()).run()

        assert report.state.validation_errors == 1
        assert report.state.records_accepted == 1
        assert report.issue_counts == {"MISSING_REQUIRED_FIELD": 1}
        assert report.success_rate == 50.0

    def test_store_unavailable_at_start(self, make_coordinator):
        """Test an unreachable store fails the run before any unit is fetched"""
        source = FakeSource({"San Francisco, CA": [record("Serenity House")]})
        report = make_coordinator(
            [unit("San Francisco, CA")], source, FakeLoader(unavailable=True)
        ).run()

        assert report.status is RunStatus.FAILED
        assert report.error_code == "STORE_UNAVAILABLE"
        assert not source.calls

    def test_store_unavailable_mid_run_checkpoints(self, make_coordinator, checkpoint_path):
        """Test losing the store mid-run fails the run with a resumable checkpoint"""
        source = FakeSource({
            "San Francisco, CA": [record("Serenity House")],
            "Oakland, CA": [record("Harbor Light", city="Oakland")],
            "Berkeley, CA": [record("Bayside", city="Berkeley")],
        })
        loader = FakeLoader(fail_on_names={"Harbor Light"})
        coordinator = make_coordinator(
            [unit("San Francisco, CA"), unit("Oakland, CA"), unit("Berkeley, CA")],
            source,
            loader,
            workers=1,
        )

        report = coordinator.run()

        assert report.status is RunStatus.FAILED
        assert report.error_code == "STORE_UNAVAILABLE"
        assert "Berkeley, CA" not in source.calls
        state = CheckpointStore(checkpoint_path).load()
        assert state.query_unit_index == 1
        assert state.processed == 1

    def test_resume_from_checkpoint(self, make_coordinator, checkpoint_path):
        """Test a resumed run starts at the checkpoint index"""
        CheckpointStore(checkpoint_path).save(
            RunState(query_unit_index=2, total_units=3, processed=40, failed=1)
        )
        source = FakeSource({
            "San Francisco, CA": [record("Serenity House")],
            "Oakland, CA": [record("Harbor Light", city="Oakland")],
            "Berkeley, CA": [record("Bayside", city="Berkeley")],
        })
        loader = FakeLoader()
        coordinator = make_coordinator(
            [unit("San Francisco, CA"), unit("Oakland, CA"), unit("Berkeley, CA")],
            source,
            loader,
            clear_existing=True,
        )

        report = coordinator.run(resume=True)

        assert report.status is RunStatus.COMPLETED
        assert report.resumed
        assert report.start_index == 2
        assert list(source.calls) == ["Berkeley, CA"]
        assert report.state.processed == 41
        assert report.state.failed == 1
        assert loader.cleared == []
        assert not checkpoint_path.exists()

    def test_resume_without_checkpoint_starts_fresh(self, make_coordinator):
        """Test --resume with no checkpoint processes every unit"""
        source = FakeSource({"San Francisco, CA": [record("Serenity House")]})
        report = make_coordinator([unit("San Francisco, CA")], source, FakeLoader()).run(resume=True)
        assert report.status is RunStatus.COMPLETED
        assert not report.resumed
        assert report.start_index == 0

    def test_checkpoint_for_other_unit_list(self, make_coordinator, checkpoint_path):
        """Test a checkpoint written for a different unit count is refused"""
        CheckpointStore(checkpoint_path).save(RunState(query_unit_index=1, total_units=9))
        report = make_coordinator([unit("San Francisco, CA")], FakeSource({}), FakeLoader()).run(resume=True)

        assert report.status is RunStatus.FAILED
        assert report.error_code == "CHECKPOINT_ERROR"
        assert checkpoint_path.exists()

    def test_clear_existing_on_fresh_run(self, make_coordinator):
        """Test --clear deletes the source's rows before a fresh run"""
        loader = FakeLoader()
        make_coordinator(
            [unit("San Francisco, CA")], FakeSource({}), loader, clear_existing=True
        ).run()
        assert loader.cleared == ["test-source"]

    def test_abort_before_start(self, make_coordinator, checkpoint_path):
        """Test a pre-set abort ends the run without fetching and keeps a checkpoint"""
        abort = threading.Event()
        abort.set()
        source = FakeSource({"San Francisco, CA": [record("Serenity House")]})

        report = make_coordinator([unit("San Francisco, CA")], source, FakeLoader(), abort_event=abort).run()

        assert report.status is RunStatus.ABORTED
        assert not source.calls
        assert CheckpointStore(checkpoint_path).load().query_unit_index == 0

    def test_abort_at_batch_boundary(self, make_coordinator, checkpoint_path):
        """Test an abort during a batch lets the batch finish, then stops"""
        units = [unit("San Francisco, CA"), unit("Oakland, CA"), unit("Berkeley, CA")]
        holder = {}

        def abort_on_first(fetched_unit):
            if fetched_unit.name == "San Francisco, CA":
                holder["coordinator"].request_abort()

        source = FakeSource(
            {u.name: [record(f"Facility {i}")] for i, u in enumerate(units)},
            on_fetch=abort_on_first,
        )
        loader = FakeLoader()
        coordinator = make_coordinator(units, source, loader, workers=1)
        holder["coordinator"] = coordinator

        report = coordinator.run()

        assert report.status is RunStatus.ABORTED
        assert list(source.calls) == ["San Francisco, CA"]
        assert len(loader.rows) == 1
        assert CheckpointStore(checkpoint_path).load().query_unit_index == 1

    def test_periodic_checkpoint(self, make_coordinator, checkpoint_path):
        """Test the checkpoint is written every checkpoint_interval units"""
        units = [unit(f"City {i}, CA") for i in range(4)]
        seen_indexes = []

        def read_checkpoint(fetched_unit):
            if fetched_unit.name == "City 3, CA":
                seen_indexes.append(CheckpointStore(checkpoint_path).load().query_unit_index)

        source = FakeSource({}, on_fetch=read_checkpoint)
        make_coordinator(units, source, FakeLoader(), workers=1, checkpoint_interval=2).run()

        assert seen_indexes == [2]
        assert not checkpoint_path.exists()

    def test_metrics_recorded(self, make_coordinator, pipeline_context):
        """Test unit and record counters reach the metrics registry"""
        source = FakeSource({
            "San Francisco, CA": [record("Serenity House")],
            "Austin, TX": NetworkError("down"),
        })
        make_coordinator(
            [unit("San Francisco, CA"), unit("Austin, TX", 30.2672, -97.7431)], source, FakeLoader()
        ).run()

        metrics = pipeline_context.metrics
        assert metrics.value("etl_query_units_total", source_id="test-source", status="completed") == 1
        assert metrics.value("etl_query_units_total", source_id="test-source", status="failed") == 1
        assert metrics.value("etl_records_total", source_id="test-source", status="accepted") == 1
        assert metrics.value("etl_rows_loaded_total", source_id="test-source", operation="insert") == 1
        assert metrics.value("etl_run_status", status="completed") == 1

    def test_invalid_worker_count(self, make_coordinator):
        """Test workers must be positive"""
        with pytest.raises(ConfigError):
            make_coordinator([unit("San Francisco, CA")], FakeSource({}), FakeLoader(), workers=0)
