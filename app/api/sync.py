from __future__ import annotations

from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, HTTPException, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.db import get_db
from app.schemas.sync import ForceSyncRequest, SyncOutcomeRecord, SyncRunResult
from app.services.errors import CompanyNotFoundError
from app.services.scheduler_service import SchedulerService, scheduler_service
from app.services.storage_service import get_company, get_recent_outcomes

router = APIRouter(prefix="/api/sync", tags=["Sync"])


def get_scheduler() -> SchedulerService:
    return scheduler_service


@router.get("/status")
async def get_sync_status(
    company_id: Optional[UUID] = Query(None, description="Filter by company ID"),
    scheduler: SchedulerService = Depends(get_scheduler),
) -> Dict[str, Any]:
    """Get current sync status for all integrations or a specific company."""
    return await scheduler.get_sync_status(company_id)


@router.post("/{company_id}/force", response_model=SyncRunResult)
async def force_sync(
    company_id: UUID = Path(..., description="Company ID"),
    request: Optional[ForceSyncRequest] = Body(None),
    scheduler: SchedulerService = Depends(get_scheduler),
) -> Dict[str, Any]:
    """Run a full sync for one company and return one outcome per source."""
    request = request or ForceSyncRequest()
    try:
        return await scheduler.force_sync(company_id, since=request.since, until=request.until)
    except CompanyNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/{company_id}/logs", response_model=List[SyncOutcomeRecord])
async def get_sync_logs(
    company_id: UUID = Path(..., description="Company ID"),
    limit: int = Query(50, ge=1, le=500, description="Number of outcomes to return"),
    session: AsyncSession = Depends(get_db),
):
    """Most recent sync outcomes for a company, newest first."""
    try:
        await get_company(session, company_id)
    except CompanyNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return await get_recent_outcomes(session, company_id, limit)
