from __future__ import annotations

import datetime as dt
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Path, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db import get_db
from app.models.metric_bucket import MetricBucket
from app.schemas.metrics import MetricBucketRecord
from app.services.errors import CompanyNotFoundError
from app.services.storage_service import get_company

router = APIRouter(prefix="/api/metrics", tags=["Metrics"])


@router.get("/{company_id}", response_model=List[MetricBucketRecord])
async def get_metric_buckets(
    company_id: UUID = Path(..., description="Company ID"),
    source: Optional[str] = Query(None, description="meta_ads or pipefy"),
    label: Optional[str] = Query(None, description="'all' or a category id"),
    start: Optional[dt.date] = Query(None, description="First day, inclusive"),
    end: Optional[dt.date] = Query(None, description="Last day, inclusive"),
    session: AsyncSession = Depends(get_db),
):
    """Daily metric buckets for a company, oldest first."""
    try:
        await get_company(session, company_id)
    except CompanyNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    if start and end and start > end:
        raise HTTPException(status_code=400, detail="start must not be after end")

    stmt = select(MetricBucket).where(MetricBucket.company_id == company_id)
    if source:
        stmt = stmt.where(MetricBucket.source == source)
    if label:
        stmt = stmt.where(MetricBucket.label == label)
    if start:
        stmt = stmt.where(MetricBucket.date >= start)
    if end:
        stmt = stmt.where(MetricBucket.date <= end)
    stmt = stmt.order_by(MetricBucket.date, MetricBucket.source, MetricBucket.label)

    result = await session.execute(stmt)
    return list(result.scalars().all())
