"""
Run coordinator: drives query units through fetch, validate, deduplicate and
load, with bounded parallelism, retry, checkpointing and a final report.

State machine:
    IDLE -> INITIALIZING -> PROCESSING <-> CHECKPOINTING -> COMPLETED
                                                         -> FAILED
                                                         -> ABORTED
"""

import threading
import time
from collections.abc import Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from facility_etl.context import PipelineContext
from facility_etl.core.constants import DEFAULT_DATA_SOURCE
from facility_etl.core.errors import (
    CheckpointError,
    ConfigError,
    NetworkError,
    ParseError,
    StoreUnavailableError,
)
from facility_etl.core.models import Accepted, QueryUnit, RunState
from facility_etl.core.models.candidate_facility import utc_now
from facility_etl.core.validators import FacilityValidator
from facility_etl.observability.logger import log_operation
from facility_etl.sources.base import SourceAdapter
from facility_etl.warehouse.facility_loader import FacilityLoader

from .checkpoint import CheckpointStore
from .deduplicator import Deduplicator
from .report import (
    DEFAULT_MAX_REJECTIONS,
    LoadFailure,
    RecordRejection,
    RunReport,
    RunStatus,
    UnitFailure,
    UnitOutcome,
)
from .retry import BackoffPolicy


class RunCoordinator:
    """
    Orchestrates one ingestion run over a list of query units.

    Units are processed in batches of `workers`; each batch is awaited fully
    before the next starts, with `batch_delay` seconds between batches. An
    abort request is honoured at the next batch boundary. Per-unit failures
    never end the run; only an unreachable store or bad configuration does.
    """

    def __init__(
        self,
        units: Sequence[QueryUnit],
        sources: Mapping[str, SourceAdapter],
        validator: FacilityValidator,
        deduplicator: Deduplicator,
        loader: FacilityLoader,
        retry_policy: BackoffPolicy,
        checkpoint_store: CheckpointStore,
        context: PipelineContext,
        *,
        workers: int = 3,
        page_size: int = 500,
        batch_delay: float = 2.0,
        checkpoint_interval: int = 10,
        data_source: str = DEFAULT_DATA_SOURCE,
        clear_existing: bool = False,
        stats_file: str | Path | None = None,
        max_rejections: int = DEFAULT_MAX_REJECTIONS,
        abort_event: threading.Event | None = None,
    ):
        """
        Args:
            units: Query units, in processing order
            sources: Source adapter per unit kind ("api", "csv", "json")
            validator: Validator (and transformer) for raw records
            deduplicator: Shared fingerprint filter
            loader: Facility loader
            retry_policy: Backoff applied to every source request
            checkpoint_store: Where RunState is persisted
            context: Logger and metrics
            workers: Units processed concurrently (1 = sequential)
            page_size: Records requested per page
            batch_delay: Seconds to wait between unit batches
            checkpoint_interval: Persist RunState every N units
            data_source: Source label for reports and --clear
            clear_existing: Delete this source's rows before a fresh run
            stats_file: JSON run report destination
            max_rejections: Cap on record rejections kept in the report
            abort_event: Set to request a graceful abort
        """
        if workers < 1:
            raise ConfigError("workers must be at least 1")
        if checkpoint_interval < 1:
            raise ConfigError("checkpoint_interval must be at least 1")

        self.units = list(units)
        self.sources = dict(sources)
        self.validator = validator
        self.deduplicator = deduplicator
        self.loader = loader
        self.retry_policy = retry_policy
        self.checkpoint_store = checkpoint_store
        self.logger = context.child("coordinator")
        self.metrics = context.metrics
        self.workers = workers
        self.page_size = page_size
        self.batch_delay = batch_delay
        self.checkpoint_interval = checkpoint_interval
        self.data_source = data_source
        self.clear_existing = clear_existing
        self.stats_file = Path(stats_file) if stats_file else None
        self.max_rejections = max_rejections
        self.abort_event = abort_event or threading.Event()
        self._status = RunStatus.IDLE

    @property
    def status(self) -> RunStatus:
        return self._status

    def request_abort(self) -> None:
        """Ask the run to stop at the next batch boundary."""
        if not self.abort_event.is_set():
            self.logger.warning("Abort requested; finishing in-flight units")
        self.abort_event.set()

    def _set_status(self, status: RunStatus) -> None:
        self._status = status
        if status is not RunStatus.CHECKPOINTING:
            self.metrics.set_status(status.value)

    # =======================
    # RUN
    # =======================

    def run(self, resume: bool = False) -> RunReport:
        """
        Execute the run to a terminal state.

        Args:
            resume: Continue from the checkpoint file when one exists

        Returns:
            RunReport with status COMPLETED, FAILED or ABORTED
        """
        report = RunReport(
            data_source=self.data_source,
            total_units=len(self.units),
            max_rejections=self.max_rejections,
        )

        with log_operation("Ingestion run", self.logger, units=len(self.units), workers=self.workers):
            self._set_status(RunStatus.INITIALIZING)
            try:
                report.state = self._initialize(resume, report)
            except (ConfigError, CheckpointError, StoreUnavailableError) as e:
                self.logger.error(
                    "Run initialization failed",
                    extra={"error_type": type(e).__name__, "error_code": e.error_code, "error_message": str(e)},
                )
                return self._finish(report, RunStatus.FAILED, str(e), e.error_code)

            self._set_status(RunStatus.PROCESSING)
            status, error, error_code = self._process(report)
            return self._finish(report, status, error, error_code)

    def _initialize(self, resume: bool, report: RunReport) -> RunState:
        state = None
        if resume:
            state = self.checkpoint_store.load()
            if state is None:
                self.logger.warning(
                    "No checkpoint found; starting from the first unit",
                    extra={"checkpoint_file": str(self.checkpoint_store.path)},
                )
            else:
                if state.total_units and state.total_units != len(self.units):
                    raise CheckpointError(
                        f"Checkpoint was written for {state.total_units} units, "
                        f"this run has {len(self.units)}"
                    )
                if state.query_unit_index > len(self.units):
                    raise CheckpointError(
                        f"Checkpoint index {state.query_unit_index} is beyond {len(self.units)} units"
                    )
                self.logger.info(
                    "Resuming from checkpoint",
                    extra={"unit_index": state.query_unit_index, "processed": state.processed},
                )

        resumed = state is not None
        if state is None:
            state = RunState(total_units=len(self.units))
        state.total_units = len(self.units)
        report.start_index = state.query_unit_index
        report.resumed = resumed

        self.loader.ping()

        if self.clear_existing and not resumed:
            deleted = self.loader.clear_source(self.data_source)
            self.logger.info(
                "Cleared existing facilities",
                extra={"data_source": self.data_source, "deleted": deleted},
            )

        self.logger.info("Validation rules loaded", extra=self.validator.get_rule_summary())
        self.deduplicator.reset()
        return state

    def _process(self, report: RunReport) -> tuple[RunStatus, str | None, str | None]:
        state = report.state
        total = len(self.units)
        index = state.query_unit_index
        since_checkpoint = 0
        self.metrics.set_progress(index)

        with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="etl-unit") as executor:
            while index < total:
                if self.abort_event.is_set():
                    self._checkpoint(state)
                    return RunStatus.ABORTED, f"Run aborted before unit {index}", None

                batch = list(enumerate(self.units[index:index + self.workers], start=index))
                futures = [executor.submit(self._process_unit, i, unit) for i, unit in batch]

                outcomes: list[UnitOutcome] = []
                unavailable: StoreUnavailableError | None = None
                for (i, unit), future in zip(batch, futures):
                    try:
                        outcomes.append(future.result())
                    except StoreUnavailableError as e:
                        unavailable = e
                    except Exception as e:
                        self.logger.exception(
                            "Unit crashed", extra={"unit": unit.name, "unit_index": i}
                        )
                        outcomes.append(self._failed_outcome(i, unit, e, attempts=1))

                if unavailable is not None:
                    # The whole batch is replayed on resume; upserts make that safe
                    self._checkpoint(state)
                    for outcome in outcomes:
                        report.record_unit(outcome)
                    self.logger.error(
                        "Store became unavailable",
                        extra={"unit_index": index, "error_message": str(unavailable)},
                    )
                    return RunStatus.FAILED, str(unavailable), unavailable.error_code

                for outcome in outcomes:
                    report.record_unit(outcome)
                    self._record_metrics(outcome)

                index += len(batch)
                state.query_unit_index = index
                since_checkpoint += len(batch)
                self.metrics.set_progress(index)

                if since_checkpoint >= self.checkpoint_interval and index < total:
                    self._set_status(RunStatus.CHECKPOINTING)
                    self._checkpoint(state)
                    since_checkpoint = 0
                    self._set_status(RunStatus.PROCESSING)

                self._log_progress(report, index)

                if index < total and self.batch_delay > 0:
                    self.abort_event.wait(self.batch_delay)

        return RunStatus.COMPLETED, None, None

    def _finish(
        self,
        report: RunReport,
        status: RunStatus,
        error: str | None,
        error_code: str | None = None,
    ) -> RunReport:
        if status is RunStatus.COMPLETED:
            try:
                self.checkpoint_store.clear()
            except CheckpointError as e:
                self.logger.warning("Could not delete checkpoint", extra={"error_message": str(e)})

        if status is not RunStatus.FAILED:
            try:
                report.database_stats = self.loader.facility_stats(self.data_source)
            except StoreUnavailableError as e:
                self.logger.warning("Could not collect database stats", extra={"error_message": str(e)})

        report.finish(status, error, error_code)
        self._set_status(status)

        if self.stats_file is not None:
            try:
                report.write(self.stats_file)
            except OSError as e:
                self.logger.error(
                    "Could not write stats file",
                    extra={"stats_file": str(self.stats_file), "error_message": str(e)},
                )

        summary = report.summary()
        if status is RunStatus.COMPLETED and report.unit_failures:
            self.logger.warning(
                "Run completed with failed units",
                extra={**summary, "failed_units": [f.unit_name for f in report.unit_failures]},
            )
        elif status is RunStatus.COMPLETED:
            self.logger.info("Run completed", extra=summary)
        else:
            self.logger.error(f"Run {status.value}", extra={**summary, "error_message": error})
        return report

    def _checkpoint(self, state: RunState) -> None:
        state.timestamp = utc_now()
        try:
            self.checkpoint_store.save(state)
        except CheckpointError as e:
            self.logger.error("Checkpoint write failed", extra={"error_message": str(e)})
            return
        self.logger.info(
            "Checkpoint saved",
            extra={"unit_index": state.query_unit_index, "processed": state.processed},
        )

    def _log_progress(self, report: RunReport, index: int) -> None:
        total = len(self.units)
        state = report.state
        self.logger.info(
            "Progress",
            extra={
                "unit_index": index,
                "total_units": total,
                "percent": round(index / total * 100, 1) if total else 100.0,
                "processed": state.processed,
                "failed_units": state.failed,
                "duplicates_skipped": state.duplicates_skipped,
                "validation_errors": state.validation_errors,
            },
        )

    def _record_metrics(self, outcome: UnitOutcome) -> None:
        metrics = self.metrics
        metrics.record_unit(outcome.status, outcome.duration_seconds, outcome.retries)
        metrics.record_records("fetched", outcome.records_fetched)
        metrics.record_records("accepted", outcome.records_accepted)
        metrics.record_records("rejected", outcome.records_rejected)
        metrics.record_records("duplicate", outcome.duplicates)
        for rejection in outcome.rejections:
            for issue in rejection.errors:
                metrics.record_issue(issue.type, issue.severity)
        for issue in outcome.warnings:
            metrics.record_issue(issue.type, issue.severity)
        for score in outcome.quality_scores:
            metrics.record_quality(score)

    # =======================
    # PER UNIT (worker threads)
    # =======================

    def _failed_outcome(
        self,
        index: int,
        unit: QueryUnit,
        error: Exception,
        attempts: int,
        outcome: UnitOutcome | None = None,
    ) -> UnitOutcome:
        outcome = outcome or UnitOutcome(unit_index=index, unit_name=unit.name)
        outcome.status = "failed"
        outcome.failure = UnitFailure(
            unit_index=index,
            unit_name=unit.name,
            error_type=type(error).__name__,
            message=str(error),
            attempts=attempts,
            payload_size=getattr(error, "payload_size", None),
        )
        return outcome

    def _process_unit(self, index: int, unit: QueryUnit) -> UnitOutcome:
        """
        Fetch, validate, deduplicate and load one unit.

        Raises:
            StoreUnavailableError: The store is unreachable (ends the run)
        """
        outcome = UnitOutcome(unit_index=index, unit_name=unit.name)
        started = time.monotonic()

        source = self.sources.get(unit.source_kind)
        if source is None:
            error = ConfigError(f"No source adapter configured for {unit.source_kind!r} units")
            return self._failed_outcome(index, unit, error, attempts=0, outcome=outcome)

        def on_retry(attempt: int, error: BaseException, delay: float) -> None:
            outcome.retries += 1
            outcome.failed_requests += 1
            self.logger.warning(
                "Retrying source request",
                extra={
                    "unit": unit.name,
                    "attempt": attempt,
                    "delay_seconds": round(delay, 3),
                    "error_message": str(error),
                },
            )

        try:
            fetched = source.fetch(
                unit,
                self.page_size,
                call=lambda fn: self.retry_policy.call(fn, on_retry=on_retry),
            )
        except NetworkError as e:
            outcome.failed_requests += 1
            outcome.duration_seconds = time.monotonic() - started
            self.logger.error(
                "Unit failed after retries",
                extra={"unit": unit.name, "attempts": self.retry_policy.max_attempts, "error_message": str(e)},
            )
            return self._failed_outcome(index, unit, e, self.retry_policy.max_attempts, outcome)
        except ParseError as e:
            outcome.failed_requests += 1
            outcome.duration_seconds = time.monotonic() - started
            self.logger.error(
                "Unit payload could not be parsed",
                extra={"unit": unit.name, "payload_size": e.payload_size, "error_message": str(e)},
            )
            return self._failed_outcome(index, unit, e, 1, outcome)

        outcome.pages = fetched.pages
        outcome.successful_requests = fetched.pages
        outcome.records_fetched = len(fetched.records)

        candidates = []
        for result in self.validator.validate_batch(fetched.records, unit):
            outcome.warnings.extend(result.warnings)
            if isinstance(result, Accepted):
                candidates.append(result.facility)
                outcome.quality_scores.append(result.facility.data_quality)
            else:
                outcome.rejections.append(RecordRejection(
                    unit_index=index,
                    unit_name=unit.name,
                    record_name=result.record_name,
                    errors=result.errors,
                ))
        outcome.records_accepted = len(candidates)
        outcome.records_rejected = len(outcome.rejections)

        kept, outcome.duplicates = self.deduplicator.filter(candidates)

        if kept:
            with log_operation("Loading facilities", self.logger, unit=unit.name, count=len(kept)) as op:
                result = self.loader.load(kept)
            self.metrics.record_load(
                inserted=result.inserted,
                updated=result.updated,
                skipped=result.skipped,
                failed=len(result.failed_ids),
                duration_seconds=op.duration,
            )
            outcome.inserted = result.inserted
            outcome.updated = result.updated
            outcome.skipped = result.skipped
            outcome.failed_ids = list(result.failed_ids)
            if result.failed_ids:
                outcome.load_failures.append(LoadFailure(
                    unit_index=index,
                    unit_name=unit.name,
                    facility_ids=list(result.failed_ids),
                    message="; ".join(result.errors),
                ))

        outcome.duration_seconds = time.monotonic() - started
        self.logger.info(
            "Unit processed",
            extra={
                "unit": unit.name,
                "records_fetched": outcome.records_fetched,
                "accepted": outcome.records_accepted,
                "rejected": outcome.records_rejected,
                "duplicates": outcome.duplicates,
                "inserted": outcome.inserted,
                "updated": outcome.updated,
            },
        )
        return outcome
