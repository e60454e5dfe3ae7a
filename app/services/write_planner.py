"""
Turns aggregated buckets and classified deals into natural-key upserts.

Natural keys are the only deduplication mechanism:

    metric_buckets  (company_id, date, source, label)
    deals           (company_id, source_card_id)
    campaign_days   (company_id, campaign_id, date)

Every operation is an INSERT ... ON CONFLICT DO UPDATE, so re-running a sync
rewrites rows in place. Batches are committed as they complete; a failing
batch stops the remaining ones and earlier batches stay written.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Sequence, Tuple
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.campaign_day import CAMPAIGN_DAY_CONFLICT_TARGET, CampaignDay
from app.models.deal import DEAL_CONFLICT_TARGET, Deal
from app.models.integration import META_ADS, PIPEFY
from app.models.metric_bucket import BUCKET_CONFLICT_TARGET, MetricBucket
from app.services.daily_aggregator import Bucket
from app.services.deal_classifier import ClassifiedDeal
from app.services.errors import WriteBatchError
from app.services.meta_ads_service import AdInsightRow
from app.services.storage_service import upsert_rows

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 500


@dataclass
class UpsertOperation:
    model: Any
    rows: List[Dict[str, Any]]
    conflict_columns: Tuple[str, ...]
    update_columns: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def table(self) -> str:
        return self.model.__tablename__

    def batches(self, size: int) -> Iterable[List[Dict[str, Any]]]:
        for start in range(0, len(self.rows), size):
            yield self.rows[start : start + size]


def _dedupe(rows: Sequence[Dict[str, Any]], key: Sequence[str]) -> List[Dict[str, Any]]:
    """Keep the last row per natural key; one statement may not touch a key twice."""
    by_key: Dict[Tuple, Dict[str, Any]] = {}
    for row in rows:
        by_key[tuple(row[k] for k in key)] = row
    return list(by_key.values())


def _operation(model, rows: Sequence[Dict[str, Any]], key: Sequence[str]) -> UpsertOperation:
    rows = _dedupe(rows, key)
    for row in rows:
        row.setdefault("id", uuid.uuid4())
    columns = rows[0].keys() if rows else ()
    update_columns = tuple(c for c in columns if c not in key and c != "id")
    return UpsertOperation(
        model=model, rows=rows, conflict_columns=tuple(key), update_columns=update_columns
    )


class WritePlanner:
    """Plans and executes the upserts for one company's sync run."""

    def __init__(self, company_id: UUID, batch_size: int = DEFAULT_BATCH_SIZE) -> None:
        self.company_id = company_id
        self.batch_size = batch_size

    def plan_buckets(self, buckets: Iterable[Bucket], include_snapshot: bool = True) -> UpsertOperation:
        """Bucket upserts; without ``include_snapshot`` stored cards_by_phase is left untouched."""
        rows = [bucket.as_row(self.company_id) for bucket in buckets]
        if not include_snapshot:
            for row in rows:
                row.pop("cards_by_phase", None)
        return _operation(MetricBucket, rows, BUCKET_CONFLICT_TARGET)

    def plan_deals(self, deals: Iterable[ClassifiedDeal], source: str = PIPEFY) -> UpsertOperation:
        rows = [
            {
                "company_id": self.company_id,
                "source": source,
                "source_card_id": deal.card_id,
                "title": deal.title,
                "status": deal.status,
                "amount": deal.amount,
                "product": deal.product,
                "channel": deal.channel,
                "seller": deal.seller,
                "loss_reason": deal.loss_reason,
                "phase_id": deal.phase_id,
                "phase_name": deal.phase_name,
                "labels": deal.labels,
                "categories": deal.categories,
                "created_at_source": deal.created_at,
                "created_date": deal.created_date,
                "effective_date": deal.effective_date,
            }
            for deal in deals
        ]
        return _operation(Deal, rows, DEAL_CONFLICT_TARGET)

    def plan_campaign_days(self, rows: Iterable[AdInsightRow]) -> UpsertOperation:
        planned = [
            {
                "company_id": self.company_id,
                "campaign_id": row.campaign_id,
                "date": row.date,
                "name": row.campaign_name,
                "channel": META_ADS,
                "spend": row.spend,
                "impressions": row.impressions,
                "clicks": row.clicks,
                "reach": row.reach,
                "leads": row.leads,
            }
            for row in rows
        ]
        return _operation(CampaignDay, planned, CAMPAIGN_DAY_CONFLICT_TARGET)

    async def execute(self, session: AsyncSession, operations: Sequence[UpsertOperation]) -> int:
        """Run every operation in fixed-size batches; returns the number of rows written."""
        written = 0
        batches_written = 0
        for operation in operations:
            for batch in operation.batches(self.batch_size):
                try:
                    written += await upsert_rows(
                        session,
                        operation.model,
                        batch,
                        operation.conflict_columns,
                        operation.update_columns,
                    )
                    await session.commit()
                except SQLAlchemyError as e:
                    await session.rollback()
                    logger.error(
                        f"Upsert batch {batches_written + 1} into {operation.table} failed "
                        f"for company {self.company_id}: {e}"
                    )
                    raise WriteBatchError(
                        f"Write to {operation.table} failed after {batches_written} batches: {e}",
                        batches_written=batches_written,
                    ) from e
                batches_written += 1

        logger.info(
            f"Wrote {written} rows in {batches_written} batches for company {self.company_id}"
        )
        return written
