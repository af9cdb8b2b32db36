from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field


class DependencyIn(BaseModel):
    part_number: str = Field(..., min_length=1)
    depends_on: str = Field(..., min_length=1)


class DependencyNode(BaseModel):
    part_number: str
    depth: int
    via: str


class DependencyTrace(BaseModel):
    part_number: str
    dependencies: list[DependencyNode]
    dependents: list[str]


class QuarantineOut(BaseModel):
    id: int
    record_key: str
    ship_id: str
    event_type: str
    reason: str
    detail: dict
    status: str
    created_at: datetime
    resolved_at: Optional[datetime] = None


class QuarantineResolveIn(BaseModel):
    action: Literal["discard", "split"]


class UploadIn(BaseModel):
    feed: str = Field(..., min_length=1, description="Feed name the records are attributed to")
    format: Literal["csv", "tsv", "psv", "xml", "json", "yaml"]
    body: str
    records_path: Optional[str] = None


class IngestResult(BaseModel):
    run_id: str
    records_total: int
    records_inserted: int
    records_duplicate: int
    records_accepted: int
    records_format_error: int
    records_schema_mismatch: int
    merge_events_created: int
    merge_events_updated: int
    merge_quarantined: int
    merge_conflicts: int
