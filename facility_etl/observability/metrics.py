"""
Prometheus metrics for facility-etl

Each PipelineMetrics instance owns its CollectorRegistry, so tests and
concurrent runs never share counters.
"""
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

RUN_STATUSES = ("initializing", "processing", "completed", "failed", "aborted")


class PipelineMetrics:
    """
    Counters, histograms and gauges for one pipeline process.

    Usage:
        metrics = PipelineMetrics(data_source="findtreatment.gov")
        metrics.record_unit("completed", duration_seconds=1.2)
        metrics.start_server(9108)
    """

    def __init__(self, data_source: str = "unknown", registry: CollectorRegistry | None = None):
        self.data_source = data_source
        self.registry = registry or CollectorRegistry()

        # =======================
        # EXTRACTION
        # =======================
        self.units_total = Counter(
            name="etl_query_units_total",
            documentation="Query units processed, by outcome",
            labelnames=["source_id", "status"],  # status: completed, failed
            registry=self.registry,
        )
        self.records_total = Counter(
            name="etl_records_total",
            documentation="Raw records seen, by outcome",
            labelnames=["source_id", "status"],  # status: fetched, accepted, rejected, duplicate
            registry=self.registry,
        )
        self.retries_total = Counter(
            name="etl_source_retries_total",
            documentation="Source request retries",
            labelnames=["source_id"],
            registry=self.registry,
        )
        self.fetch_duration_seconds = Histogram(
            name="etl_fetch_duration_seconds",
            documentation="Time spent fetching all pages of a query unit",
            labelnames=["source_id"],
            buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0],
            registry=self.registry,
        )

        # =======================
        # DATA QUALITY
        # =======================
        self.validation_issues_total = Counter(
            name="etl_validation_issues_total",
            documentation="Validation issues raised, by type and severity",
            labelnames=["source_id", "issue_type", "severity"],
            registry=self.registry,
        )
        self.quality_score = Histogram(
            name="etl_facility_quality_score",
            documentation="Data-quality score of accepted facilities",
            labelnames=["source_id"],
            buckets=[10, 20, 30, 40, 50, 60, 70, 80, 90, 100],
            registry=self.registry,
        )

        # =======================
        # WAREHOUSE
        # =======================
        self.rows_loaded_total = Counter(
            name="etl_rows_loaded_total",
            documentation="Rows written to the facilities table, by operation",
            labelnames=["source_id", "operation"],  # operation: insert, update, skip, fail
            registry=self.registry,
        )
        self.load_duration_seconds = Histogram(
            name="etl_load_duration_seconds",
            documentation="Time spent upserting one batch",
            labelnames=["source_id"],
            buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0],
            registry=self.registry,
        )

        # =======================
        # RUN
        # =======================
        self.run_status = Gauge(
            name="etl_run_status",
            documentation="1 for the current run status, 0 otherwise",
            labelnames=["status"],
            registry=self.registry,
        )
        self.units_completed = Gauge(
            name="etl_run_units_completed",
            documentation="Index of the next query unit to process",
            registry=self.registry,
        )

    def record_unit(self, status: str, duration_seconds: float = 0.0, retries: int = 0) -> None:
        self.units_total.labels(source_id=self.data_source, status=status).inc()
        if duration_seconds > 0:
            self.fetch_duration_seconds.labels(source_id=self.data_source).observe(duration_seconds)
        if retries:
            self.retries_total.labels(source_id=self.data_source).inc(retries)

    def record_records(self, status: str, count: int) -> None:
        if count > 0:
            self.records_total.labels(source_id=self.data_source, status=status).inc(count)

    def record_issue(self, issue_type: str, severity: str) -> None:
        self.validation_issues_total.labels(
            source_id=self.data_source, issue_type=issue_type, severity=severity
        ).inc()

    def record_quality(self, score: int) -> None:
        self.quality_score.labels(source_id=self.data_source).observe(score)

    def record_load(
        self,
        inserted: int = 0,
        updated: int = 0,
        skipped: int = 0,
        failed: int = 0,
        duration_seconds: float = 0.0,
    ) -> None:
        for operation, count in (
            ("insert", inserted),
            ("update", updated),
            ("skip", skipped),
            ("fail", failed),
        ):
            if count > 0:
                self.rows_loaded_total.labels(source_id=self.data_source, operation=operation).inc(count)
        if duration_seconds > 0:
            self.load_duration_seconds.labels(source_id=self.data_source).observe(duration_seconds)

    def set_status(self, status: str) -> None:
        for name in RUN_STATUSES:
            self.run_status.labels(status=name).set(1 if name == status else 0)

    def set_progress(self, next_unit_index: int) -> None:
        self.units_completed.set(next_unit_index)

    def value(self, name: str, **labels) -> float:
        """Current sample value (0.0 when never observed). Used by tests and reports."""
        sample = self.registry.get_sample_value(name, labels or None)
        return sample or 0.0

    def generate(self) -> bytes:
        """Metrics in Prometheus text format."""
        return generate_latest(self.registry)

    @staticmethod
    def content_type() -> str:
        return CONTENT_TYPE_LATEST

    def start_server(self, port: int) -> None:
        """Expose this registry over HTTP."""
        # Lazy import: the HTTP server is only needed when the endpoint is enabled
        from prometheus_client import start_http_server

        start_http_server(port, registry=self.registry)
