from __future__ import annotations

import uuid

from sqlalchemy import JSON, Boolean, Column, DateTime, Index, String, Uuid
from sqlalchemy.sql import func

from app.db import Base

META_ADS = "meta_ads"
PIPEFY = "pipefy"


class Integration(Base):
    __tablename__ = "integrations"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    company_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    integration_type = Column(String, nullable=False)  # 'meta_ads' or 'pipefy'
    is_active = Column(Boolean, default=True)

    # Encrypted at rest; decrypted by credential_service right before a sync
    access_token = Column(String, nullable=True)

    # Source-specific identifiers
    ad_account_id = Column(String, nullable=True)
    pipe_id = Column(String, nullable=True, index=True)

    # Phase overrides, value/seller/loss-reason field names, categories
    settings = Column(JSON, nullable=True)

    # Sync tracking
    last_synced_at = Column(DateTime(timezone=True), nullable=True)
    last_sync_status = Column(String, nullable=True)  # 'success', 'error'
    sync_error_message = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("ux_integrations_company_type", "company_id", "integration_type", unique=True),
    )
