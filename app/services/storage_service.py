from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import and_, delete, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import func

from app.models.company import Company
from app.models.deal import Deal
from app.models.integration import Integration
from app.models.metric_bucket import MetricBucket
from app.models.sync_outcome import SyncOutcome
from app.services.errors import CompanyNotFoundError

logger = logging.getLogger(__name__)

_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


async def upsert_rows(
    session: AsyncSession,
    model,
    rows: List[Dict[str, Any]],
    conflict_columns: Sequence[str],
    update_columns: Sequence[str],
) -> int:
    """INSERT ... ON CONFLICT (conflict_columns) DO UPDATE for one batch of rows."""
    if not rows:
        return 0

    dialect = session.get_bind().dialect.name
    insert = _INSERT_BY_DIALECT.get(dialect)
    if insert is None:
        raise ValueError(f"Upsert is not supported for dialect '{dialect}'")

    stmt = insert(model).values(rows)
    set_ = {column: stmt.excluded[column] for column in update_columns}
    if "updated_at" in model.__table__.c:
        set_["updated_at"] = func.now()
    stmt = stmt.on_conflict_do_update(index_elements=list(conflict_columns), set_=set_)

    await session.execute(stmt)
    return len(rows)


async def get_company(session: AsyncSession, company_id: UUID) -> Company:
    company = await session.get(Company, company_id)
    if company is None:
        raise CompanyNotFoundError(f"Company {company_id} not found")
    return company


async def get_bucket_keys(
    session: AsyncSession, company_id: UUID, source: str
) -> List[Tuple[dt.date, str]]:
    """Every stored (date, label) bucket key of one source for a company."""
    stmt = select(MetricBucket.date, MetricBucket.label).where(
        and_(MetricBucket.company_id == company_id, MetricBucket.source == source)
    )
    result = await session.execute(stmt)
    return [(row.date, row.label) for row in result.all()]


async def delete_deals(
    session: AsyncSession, company_id: UUID, source_card_ids: Sequence[str], chunk_size: int = 500
) -> None:
    """Drop the stored deal rows of cards that no longer count; the caller commits."""
    ids = [str(card_id) for card_id in source_card_ids]
    for start in range(0, len(ids), chunk_size):
        await session.execute(
            delete(Deal).where(
                and_(
                    Deal.company_id == company_id,
                    Deal.source_card_id.in_(ids[start : start + chunk_size]),
                )
            )
        )


async def get_active_integrations(session: AsyncSession, company_id: UUID) -> List[Integration]:
    stmt = (
        select(Integration)
        .where(
            and_(
                Integration.company_id == company_id,
                Integration.is_active == True,
            )
        )
        .order_by(Integration.integration_type)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_integration_by_pipe_id(
    session: AsyncSession, pipe_id: str
) -> Optional[Integration]:
    stmt = select(Integration).where(
        and_(
            Integration.pipe_id == str(pipe_id),
            Integration.is_active == True,
        )
    )
    result = await session.execute(stmt)
    return result.scalars().first()


async def get_companies_with_active_integrations(session: AsyncSession) -> List[UUID]:
    stmt = (
        select(Integration.company_id)
        .where(Integration.is_active == True)
        .distinct()
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def record_outcome(
    session: AsyncSession,
    company_id: UUID,
    source: str,
    status: str,
    started_at: dt.datetime,
    integration_id: Optional[UUID] = None,
    message: Optional[str] = None,
    records_processed: int = 0,
    event_type: str = "full_sync",
) -> SyncOutcome:
    """Append one SyncOutcome row and commit it."""
    completed_at = dt.datetime.now(dt.timezone.utc)
    outcome = SyncOutcome(
        company_id=company_id,
        integration_id=integration_id,
        source=source,
        event_type=event_type,
        status=status,
        message=message,
        records_processed=records_processed,
        started_at=started_at,
        completed_at=completed_at,
        duration_seconds=round((completed_at - started_at).total_seconds(), 3),
    )
    session.add(outcome)
    await session.commit()
    return outcome


async def get_recent_outcomes(
    session: AsyncSession, company_id: UUID, limit: int = 50
) -> List[SyncOutcome]:
    stmt = (
        select(SyncOutcome)
        .where(SyncOutcome.company_id == company_id)
        .order_by(SyncOutcome.created_at.desc(), SyncOutcome.started_at.desc())
        .limit(limit)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())
