from __future__ import annotations

import uuid

from sqlalchemy import Column, DateTime, Float, Integer, String, Text, Uuid
from sqlalchemy.sql import func

from app.db import Base


class SyncOutcome(Base):
    """Append-only audit row, one per source per sync run."""

    __tablename__ = "sync_outcomes"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    company_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    integration_id = Column(Uuid(as_uuid=True), nullable=True, index=True)
    source = Column(String, nullable=False)  # 'meta_ads' or 'pipefy'

    event_type = Column(String, nullable=False, default="full_sync")  # 'full_sync', 'webhook'
    status = Column(String, nullable=False)  # 'success' or 'error'
    message = Column(Text, nullable=True)

    records_processed = Column(Integer, default=0)

    # Timing
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    duration_seconds = Column(Float, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
