"""
Run status, per-unit outcomes and the final run report.
"""

import json
import os
import tempfile
from collections import Counter
from datetime import datetime
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field

from facility_etl.core.models import RunState, ValidationIssue
from facility_etl.core.models.candidate_facility import utc_now

DEFAULT_MAX_REJECTIONS = 1000


class RunStatus(str, Enum):
    IDLE = "idle"
    INITIALIZING = "initializing"
    PROCESSING = "processing"
    CHECKPOINTING = "checkpointing"
    COMPLETED = "completed"
    FAILED = "failed"
    ABORTED = "aborted"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.ABORTED)


class UnitFailure(BaseModel):
    """A query unit abandoned after a source error."""

    unit_index: int
    unit_name: str
    error_type: str
    message: str
    attempts: int = 1
    payload_size: int | None = None


class RecordRejection(BaseModel):
    """A raw record dropped by the validator."""

    unit_index: int
    unit_name: str
    record_name: str | None = None
    errors: list[ValidationIssue]


class LoadFailure(BaseModel):
    """Facility ids whose batch could not be written."""

    unit_index: int
    unit_name: str
    facility_ids: list[str]
    message: str


class UnitOutcome(BaseModel):
    """
    Everything that happened to one query unit.

    Built by a worker thread and aggregated by the coordinator, so workers
    never touch shared counters.
    """

    unit_index: int
    unit_name: str
    status: str = "completed"  # completed | failed
    pages: int = 0
    records_fetched: int = 0
    records_accepted: int = 0
    records_rejected: int = 0
    duplicates: int = 0
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    failed_ids: list[str] = Field(default_factory=list)
    retries: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    duration_seconds: float = 0.0
    quality_scores: list[int] = Field(default_factory=list, exclude=True)
    warnings: list[ValidationIssue] = Field(default_factory=list, exclude=True)
    rejections: list[RecordRejection] = Field(default_factory=list, exclude=True)
    failure: UnitFailure | None = None
    load_failures: list[LoadFailure] = Field(default_factory=list, exclude=True)

    @property
    def failed(self) -> bool:
        return self.status == "failed"


class RunReport(BaseModel):
    """Final report of a run, written as JSON to the stats file."""

    status: RunStatus = RunStatus.IDLE
    data_source: str = ""
    started_at: datetime = Field(default_factory=utc_now)
    finished_at: datetime | None = None
    duration_seconds: float = 0.0
    total_units: int = 0
    start_index: int = 0
    resumed: bool = False
    state: RunState = Field(default_factory=RunState)
    units: list[UnitOutcome] = Field(default_factory=list)
    unit_failures: list[UnitFailure] = Field(default_factory=list)
    rejections: list[RecordRejection] = Field(default_factory=list)
    rejections_truncated: int = 0
    load_failures: list[LoadFailure] = Field(default_factory=list)
    issue_counts: dict[str, int] = Field(default_factory=dict)
    warning_counts: dict[str, int] = Field(default_factory=dict)
    average_quality: float = 0.0
    success_rate: float = 0.0
    database_stats: dict | None = None
    error: str | None = None
    error_code: str | None = None
    max_rejections: int = Field(DEFAULT_MAX_REJECTIONS, exclude=True)
    quality_total: int = Field(0, exclude=True)
    quality_count: int = Field(0, exclude=True)

    def record_unit(self, outcome: UnitOutcome) -> None:
        """Fold one unit outcome into the report and the run state counters."""
        self.units.append(outcome)
        state = self.state

        if outcome.failure is not None:
            self.unit_failures.append(outcome.failure)
        if outcome.failed:
            state.failed += 1

        state.records_fetched += outcome.records_fetched
        state.records_accepted += outcome.records_accepted
        state.validation_errors += outcome.records_rejected
        state.validation_warnings += len(outcome.warnings)
        state.duplicates_skipped += outcome.duplicates
        state.retry_attempts += outcome.retries
        state.successful_requests += outcome.successful_requests
        state.failed_requests += outcome.failed_requests
        state.rows_inserted += outcome.inserted
        state.rows_updated += outcome.updated
        state.rows_skipped += outcome.skipped
        state.rows_failed += len(outcome.failed_ids)
        state.processed += outcome.inserted + outcome.updated

        errors = Counter(issue.type for r in outcome.rejections for issue in r.errors)
        for issue_type, count in errors.items():
            self.issue_counts[issue_type] = self.issue_counts.get(issue_type, 0) + count
        warnings = Counter(issue.type for issue in outcome.warnings)
        for issue_type, count in warnings.items():
            self.warning_counts[issue_type] = self.warning_counts.get(issue_type, 0) + count

        room = max(0, self.max_rejections - len(self.rejections))
        self.rejections.extend(outcome.rejections[:room])
        self.rejections_truncated += max(0, len(outcome.rejections) - room)
        self.load_failures.extend(outcome.load_failures)

        self.quality_total += sum(outcome.quality_scores)
        self.quality_count += len(outcome.quality_scores)

    def finish(self, status: RunStatus, error: str | None = None, error_code: str | None = None) -> None:
        self.status = status
        self.error = error
        self.error_code = error_code
        self.finished_at = utc_now()
        self.duration_seconds = round((self.finished_at - self.started_at).total_seconds(), 3)
        self.state.timestamp = self.finished_at
        if self.quality_count:
            self.average_quality = round(self.quality_total / self.quality_count, 2)
        validated = self.state.records_accepted + self.state.validation_errors
        if validated:
            self.success_rate = round(self.state.records_accepted / validated * 100, 2)

    def summary(self) -> dict:
        """Short summary for the final log line."""
        return {
            "status": self.status.value,
            "duration_seconds": self.duration_seconds,
            "units_total": self.total_units,
            "units_processed": len(self.units),
            "units_failed": self.state.failed,
            "facilities_loaded": self.state.processed,
            "inserted": self.state.rows_inserted,
            "updated": self.state.rows_updated,
            "duplicates_skipped": self.state.duplicates_skipped,
            "validation_errors": self.state.validation_errors,
            "validation_warnings": self.state.validation_warnings,
            "retry_attempts": self.state.retry_attempts,
            "average_quality": self.average_quality,
        }

    def write(self, path: str | Path) -> None:
        """Write the report as JSON (temp file + rename)."""
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(self.model_dump(mode="json"), handle, indent=2)
                handle.write("\n")
            os.replace(tmp_name, target)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
