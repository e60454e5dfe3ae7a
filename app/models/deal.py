from __future__ import annotations

import uuid

from sqlalchemy import (JSON, Column, Date, DateTime, Float, Index, String,
                        UniqueConstraint, Uuid)
from sqlalchemy.sql import func

from app.db import Base

DEAL_CONFLICT_TARGET = ("company_id", "source_card_id")


class Deal(Base):
    """One classified pipeline card."""

    __tablename__ = "deals"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    company_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    source = Column(String, nullable=False, default="pipefy")
    source_card_id = Column(String, nullable=False)

    title = Column(String, nullable=True)
    status = Column(String, nullable=False)  # new, qualified, won, lost
    amount = Column(Float, nullable=True)  # null when the value field is unparsable
    product = Column(String, nullable=True)
    channel = Column(String, nullable=True)
    seller = Column(String, nullable=True)
    loss_reason = Column(String, nullable=True)

    phase_id = Column(String, nullable=True)
    phase_name = Column(String, nullable=True)
    labels = Column(JSON, nullable=True)
    categories = Column(JSON, nullable=True)

    created_at_source = Column(DateTime(timezone=True), nullable=True)
    created_date = Column(Date, nullable=True)  # creation day in the reporting timezone
    effective_date = Column(Date, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint(*DEAL_CONFLICT_TARGET, name="uq_deals_natural_key"),
        Index("ix_deals_company_status", "company_id", "status"),
    )
