from __future__ import annotations

import uuid

from sqlalchemy import (Column, Date, DateTime, Float, Integer, String,
                        UniqueConstraint, Uuid)
from sqlalchemy.sql import func

from app.db import Base

CAMPAIGN_DAY_CONFLICT_TARGET = ("company_id", "campaign_id", "date")


class CampaignDay(Base):
    __tablename__ = "campaign_days"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    company_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    campaign_id = Column(String, nullable=False)
    date = Column(Date, nullable=False)

    name = Column(String, nullable=True)
    channel = Column(String, nullable=False, default="meta_ads")
    spend = Column(Float, nullable=False, default=0.0)
    impressions = Column(Integer, nullable=False, default=0)
    clicks = Column(Integer, nullable=False, default=0)
    reach = Column(Integer, nullable=False, default=0)
    leads = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint(*CAMPAIGN_DAY_CONFLICT_TARGET, name="uq_campaign_days_natural_key"),
    )
