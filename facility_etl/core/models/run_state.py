"""
RunState model persisted to the checkpoint file for resumable runs.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from .candidate_facility import utc_now


class RunState(BaseModel):
    """
    Progress snapshot of an ingestion run.

    Serialized with camelCase aliases so checkpoint files stay compatible
    with the progress files written by earlier tooling.

    Attributes:
        query_unit_index: Index of the next query unit to process
        total_units: Number of query units in the run
        processed: Facilities upserted
        failed: Query units abandoned
        duplicates_skipped: Candidates dropped as duplicates
        validation_errors: Raw records rejected
        retry_attempts: Source retries performed
    """

    query_unit_index: int = Field(0, ge=0, alias="currentLocationIndex")
    total_units: int = Field(0, ge=0, alias="totalLocations")
    processed: int = Field(0, ge=0, alias="processedCount")
    failed: int = Field(0, ge=0, alias="failedUnits")
    duplicates_skipped: int = Field(0, ge=0, alias="duplicatesSkipped")
    validation_errors: int = Field(0, ge=0, alias="validationErrors")
    validation_warnings: int = Field(0, ge=0, alias="validationWarnings")
    retry_attempts: int = Field(0, ge=0, alias="retryAttempts")
    successful_requests: int = Field(0, ge=0, alias="successfulRequests")
    failed_requests: int = Field(0, ge=0, alias="failedRequests")
    records_fetched: int = Field(0, ge=0, alias="recordsFetched")
    records_accepted: int = Field(0, ge=0, alias="recordsAccepted")
    rows_inserted: int = Field(0, ge=0, alias="rowsInserted")
    rows_updated: int = Field(0, ge=0, alias="rowsUpdated")
    rows_skipped: int = Field(0, ge=0, alias="rowsSkipped")
    rows_failed: int = Field(0, ge=0, alias="rowsFailed")
    timestamp: datetime = Field(default_factory=utc_now)

    def to_checkpoint(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "currentLocationIndex": 12,
                "totalLocations": 15,
                "processedCount": 4210,
                "failedUnits": 1,
                "duplicatesSkipped": 388,
                "validationErrors": 17,
                "retryAttempts": 3,
            }
        }
