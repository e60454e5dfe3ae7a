from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, UUID4


class ForceSyncRequest(BaseModel):
    since: Optional[date] = None
    until: Optional[date] = None


class SourceOutcome(BaseModel):
    source: str
    status: str
    records_processed: int = 0
    message: Optional[str] = None
    integration_id: Optional[str] = None


class SyncRunResult(BaseModel):
    company_id: str
    since: date
    until: date
    outcomes: List[SourceOutcome]


class SyncOutcomeRecord(BaseModel):
    id: UUID4
    company_id: UUID4
    integration_id: Optional[UUID4] = None
    source: str
    event_type: str
    status: str
    message: Optional[str] = None
    records_processed: Optional[int] = 0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_seconds: Optional[float] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
