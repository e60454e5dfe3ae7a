from __future__ import annotations

import uuid

from sqlalchemy import (JSON, Column, Date, DateTime, Float, Integer, String,
                        UniqueConstraint, Uuid)
from sqlalchemy.sql import func

from app.db import Base

BUCKET_CONFLICT_TARGET = ("company_id", "date", "source", "label")


class MetricBucket(Base):
    """Aggregated metrics for one (company, day, source, label) combination."""

    __tablename__ = "metric_buckets"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    company_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    date = Column(Date, nullable=False)
    source = Column(String, nullable=False)  # 'meta_ads' or 'pipefy'
    label = Column(String, nullable=False)  # 'all' or a category id

    # CRM counts
    cards_created = Column(Integer, nullable=False, default=0)
    cards_qualified = Column(Integer, nullable=False, default=0)
    cards_converted = Column(Integer, nullable=False, default=0)
    cards_lost = Column(Integer, nullable=False, default=0)
    conversion_rate = Column(Float, nullable=False, default=0.0)
    cards_by_phase = Column(JSON, nullable=True)

    # Ads sums
    spend = Column(Float, nullable=False, default=0.0)
    impressions = Column(Integer, nullable=False, default=0)
    clicks = Column(Integer, nullable=False, default=0)
    leads = Column(Integer, nullable=False, default=0)
    reach = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint(*BUCKET_CONFLICT_TARGET, name="uq_metric_buckets_natural_key"),
    )
