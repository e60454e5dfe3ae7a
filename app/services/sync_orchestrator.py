"""
Per-company sync across the ads and CRM sources.

Each active integration runs its own pipeline (fetch -> tag/classify ->
aggregate -> write) concurrently with the other, in its own database
session and under its own timeout. A failure in one pipeline is recorded
and never stops the other. Every pipeline run appends exactly one
SyncOutcome. Nothing is retried here; the scheduler re-runs the whole sync
on its next tick.
"""
from __future__ import annotations

import asyncio
import datetime as dt
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import SYNC_LOOKBACK_DAYS, SYNC_SOURCE_TIMEOUT_SECONDS
from app.db import AsyncSessionLocal
from app.models.deal import Deal
from app.models.integration import META_ADS, PIPEFY, Integration
from app.services.credential_service import CredentialService, create_credential_service
from app.services.daily_aggregator import Bucket, aggregate_ad_rows, aggregate_deals
from app.services.deal_classifier import ClassifiedDeal, DealClassifier
from app.services.errors import SyncError
from app.services.meta_ads_service import MetaAdsService, create_meta_ads_service
from app.services.pipefy_service import PipefyCard, PipefyService, create_pipefy_service, parse_card
from app.services.storage_service import (
    delete_deals,
    get_active_integrations,
    get_bucket_keys,
    get_companies_with_active_integrations,
    get_company,
    get_integration_by_pipe_id,
    record_outcome,
)
from app.services.tag_extractor import ALL_LABEL, CardTags, TagExtractor, channel_summary
from app.services.write_planner import DEFAULT_BATCH_SIZE, WritePlanner
from app.utils.dates import local_today

logger = logging.getLogger(__name__)

SUCCESS = "success"
ERROR = "error"


@dataclass
class SourceResult:
    source: str
    status: str
    records_processed: int = 0
    message: Optional[str] = None
    integration_id: Optional[UUID] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "status": self.status,
            "records_processed": self.records_processed,
            "message": self.message,
            "integration_id": str(self.integration_id) if self.integration_id else None,
        }


def webhook_pipe_id(payload: Dict[str, Any]) -> Optional[str]:
    """Pipe id of a webhook event, from the card or the event envelope."""
    data = payload.get("data") or {}
    card = data.get("card") or {}
    pipe_id = (card.get("pipe") or {}).get("id") or (data.get("pipe") or {}).get("id")
    return str(pipe_id) if pipe_id else None


def counts_card(tags: CardTags, settings: Optional[Dict[str, Any]] = None) -> bool:
    """False for organic cards when the integration keeps paid-media cards only."""
    return bool((settings or {}).get("includeAllCards", True) or tags.is_paid)


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class SyncOrchestrator:
    """Runs the ads and CRM pipelines for a company; fetchers are injected."""

    def __init__(
        self,
        session_factory=AsyncSessionLocal,
        ads_fetcher: Optional[MetaAdsService] = None,
        crm_fetcher: Optional[PipefyService] = None,
        credentials: Optional[CredentialService] = None,
        source_timeout: float = SYNC_SOURCE_TIMEOUT_SECONDS,
        lookback_days: int = SYNC_LOOKBACK_DAYS,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        self.session_factory = session_factory
        self._owns_ads = ads_fetcher is None
        self._owns_crm = crm_fetcher is None
        self.ads_fetcher = ads_fetcher or create_meta_ads_service()
        self.crm_fetcher = crm_fetcher or create_pipefy_service()
        self.credentials = credentials or create_credential_service()
        self.source_timeout = source_timeout
        self.lookback_days = lookback_days
        self.batch_size = batch_size

    # ------------------------------------------------------------------
    # Full sync
    # ------------------------------------------------------------------

    async def sync_company(
        self,
        company_id: UUID,
        since: Optional[dt.date] = None,
        until: Optional[dt.date] = None,
    ) -> Dict[str, Any]:
        """Sync every active integration of a company; raises CompanyNotFoundError."""
        async with self.session_factory() as session:
            await get_company(session, company_id)
            integrations = await get_active_integrations(session, company_id)

        until = until or local_today()
        since = since or until - dt.timedelta(days=self.lookback_days)
        if since > until:
            raise ValueError(f"Sync window start {since} is after its end {until}")

        runnable = []
        for integration in integrations:
            if integration.integration_type in (META_ADS, PIPEFY):
                runnable.append(integration)
            else:
                logger.warning(
                    f"Skipping integration {integration.id}: unknown type {integration.integration_type}"
                )

        logger.info(
            f"Starting sync for company {company_id} ({since} -> {until}), "
            f"sources: {[i.integration_type for i in runnable]}"
        )
        results = await asyncio.gather(
            *(self._run_source(company_id, integration, since, until) for integration in runnable)
        )

        failed = [r.source for r in results if r.status == ERROR]
        if failed:
            logger.warning(f"Sync for company {company_id} finished with errors in {failed}")
        else:
            logger.info(f"Sync for company {company_id} finished successfully")

        return {
            "company_id": str(company_id),
            "since": since.isoformat(),
            "until": until.isoformat(),
            "outcomes": [r.to_dict() for r in results],
        }

    async def _run_source(
        self,
        company_id: UUID,
        integration: Integration,
        since: dt.date,
        until: dt.date,
    ) -> SourceResult:
        source = integration.integration_type
        started_at = _utcnow()
        result = SourceResult(source=source, status=SUCCESS, integration_id=integration.id)

        try:
            async with self.session_factory() as session:
                if source == META_ADS:
                    pipeline = self._sync_ads(session, company_id, integration, since, until)
                else:
                    pipeline = self._sync_pipefy(session, company_id, integration)
                result.records_processed = await asyncio.wait_for(
                    pipeline, timeout=self.source_timeout
                )
        except asyncio.TimeoutError:
            result.status = ERROR
            result.message = f"{source} sync timed out after {self.source_timeout:.0f}s"
            logger.error(f"{result.message} for company {company_id}")
        except SyncError as e:
            result.status = ERROR
            result.message = str(e)
            logger.error(f"{source} sync failed for company {company_id}: {e}")
        except Exception as e:
            result.status = ERROR
            result.message = f"Unexpected error: {e}"
            logger.exception(f"Unexpected error in {source} sync for company {company_id}")

        await self._finish(company_id, integration.id, source, result, started_at)
        return result

    async def _finish(
        self,
        company_id: UUID,
        integration_id: Optional[UUID],
        source: str,
        result: SourceResult,
        started_at: dt.datetime,
        event_type: str = "full_sync",
    ) -> None:
        """Update the integration's sync fields and append the outcome row."""
        try:
            async with self.session_factory() as session:
                if integration_id is not None:
                    integration = await session.get(Integration, integration_id)
                    if integration is not None:
                        integration.last_sync_status = result.status
                        integration.sync_error_message = result.message
                        if result.status == SUCCESS:
                            integration.last_synced_at = _utcnow()
                await record_outcome(
                    session,
                    company_id=company_id,
                    source=source,
                    status=result.status,
                    started_at=started_at,
                    integration_id=integration_id,
                    message=result.message,
                    records_processed=result.records_processed,
                    event_type=event_type,
                )
        except Exception:
            logger.exception(f"Could not record {source} sync outcome for company {company_id}")

    async def _sync_ads(
        self,
        session: AsyncSession,
        company_id: UUID,
        integration: Integration,
        since: dt.date,
        until: dt.date,
    ) -> int:
        if not integration.ad_account_id:
            raise SyncError(f"Meta Ads integration {integration.id} has no ad account configured")
        token = self.credentials.access_token_for(integration)

        rows = await self.ads_fetcher.get_daily_insights(
            integration.ad_account_id, token, since, until
        )

        extractor = TagExtractor.from_settings(integration.settings)
        active = extractor.active_categories(campaign_names=(row.campaign_name for row in rows))
        buckets = aggregate_ad_rows(rows, active, extractor)

        planner = WritePlanner(company_id, self.batch_size)
        await planner.execute(
            session, [planner.plan_campaign_days(rows), planner.plan_buckets(buckets)]
        )
        logger.info(
            f"Meta Ads sync for company {company_id}: {len(rows)} rows, "
            f"{len(buckets)} buckets, active categories {active}"
        )
        return len(rows)

    async def _sync_pipefy(
        self, session: AsyncSession, company_id: UUID, integration: Integration
    ) -> int:
        if not integration.pipe_id:
            raise SyncError(f"Pipefy integration {integration.id} has no pipe configured")
        token = self.credentials.access_token_for(integration)

        snapshot = await self.crm_fetcher.get_pipe_cards(integration.pipe_id, token)

        settings = integration.settings or {}
        extractor = TagExtractor.from_settings(settings)
        deals = self.classify_cards(snapshot.cards, extractor, DealClassifier(settings), settings)

        active = extractor.active_categories(card_categories=(d.categories for d in deals))
        run_date = local_today()
        buckets = aggregate_deals(deals, active, run_date=run_date, snapshot=snapshot)

        # A full pull is the whole truth: stored days this run produced nothing for go to zero
        stale: List[Bucket] = []
        if snapshot.truncated:
            logger.warning(
                f"Pipe {integration.pipe_id} was truncated; stored Pipefy buckets without "
                f"events in this run are left as they are"
            )
        else:
            produced = {bucket.key for bucket in buckets}
            stale = [
                Bucket(date=day, source=PIPEFY, label=label)
                for day, label in await get_bucket_keys(session, company_id, PIPEFY)
                if (day, PIPEFY, label) not in produced
            ]

        kept_ids = {deal.card_id for deal in deals}
        dropped_ids = [card.id for card in snapshot.cards if card.id not in kept_ids]
        if dropped_ids:
            await delete_deals(session, company_id, dropped_ids)
            await session.commit()

        # Only the run-date buckets carry a fresh phase snapshot; older snapshots are kept
        planner = WritePlanner(company_id, self.batch_size)
        await planner.execute(
            session,
            [
                planner.plan_deals(deals),
                planner.plan_buckets([b for b in buckets if b.date == run_date]),
                planner.plan_buckets(
                    [b for b in buckets if b.date != run_date] + stale, include_snapshot=False
                ),
            ],
        )
        logger.info(
            f"Pipefy sync for company {company_id}: {len(snapshot.cards)} cards, "
            f"{len(deals)} deals, {len(buckets)} buckets, {len(stale)} zeroed, "
            f"active categories {active}"
        )
        return len(snapshot.cards)

    @staticmethod
    def classify_cards(
        cards: Iterable[PipefyCard],
        extractor: TagExtractor,
        classifier: DealClassifier,
        settings: Optional[Dict[str, Any]] = None,
    ) -> List[ClassifiedDeal]:
        """Tag and classify cards; ``includeAllCards: false`` keeps paid-media cards only."""
        deals = []
        tags_seen = []
        for card in cards:
            tags = extractor.extract(card)
            tags_seen.append(tags)
            if not counts_card(tags, settings):
                continue
            deals.append(classifier.classify(card, tags))
        logger.debug(f"Cards per channel: {channel_summary(tags_seen)}")
        return deals

    # ------------------------------------------------------------------
    # Webhook path
    # ------------------------------------------------------------------

    async def process_webhook_card(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Single-card variant of the CRM pipeline.

        The deal row is upserted, then every bucket of the days the card
        touches (old and new creation/effective days) is recounted from the
        stored deal rows, so a single-card event never leaves partial counts.
        """
        pipe_id = webhook_pipe_id(payload)
        if not pipe_id:
            raise ValueError("Webhook payload has no pipe id")

        async with self.session_factory() as session:
            integration = await get_integration_by_pipe_id(session, pipe_id)
        if integration is None:
            logger.info(f"Ignoring Pipefy webhook for unknown pipe {pipe_id}")
            return {"status": "ignored", "reason": f"No active integration for pipe {pipe_id}"}

        company_id = integration.company_id
        action = payload.get("action")
        started_at = _utcnow()
        result = SourceResult(source=PIPEFY, status=SUCCESS, integration_id=integration.id)
        response: Dict[str, Any] = {"status": "processed", "action": action}

        try:
            async with self.session_factory() as session:
                deal, counted = await asyncio.wait_for(
                    self._apply_webhook_card(session, company_id, integration, payload),
                    timeout=self.source_timeout,
                )
            result.records_processed = 1 if counted else 0
            response.update(
                {"card_id": deal.card_id, "deal_status": deal.status, "counted": counted}
            )
        except asyncio.TimeoutError:
            result.status = ERROR
            result.message = f"Webhook processing timed out after {self.source_timeout:.0f}s"
            logger.error(f"{result.message} for pipe {pipe_id}")
        except SyncError as e:
            result.status = ERROR
            result.message = str(e)
            logger.error(f"Pipefy webhook failed for pipe {pipe_id}: {e}")
        except Exception as e:
            result.status = ERROR
            result.message = f"Unexpected error: {e}"
            logger.exception(f"Unexpected error processing Pipefy webhook for pipe {pipe_id}")

        await self._finish(
            company_id, integration.id, PIPEFY, result, started_at, event_type="webhook"
        )
        if result.status == ERROR:
            response.update({"status": "error", "message": result.message})
        return response

    async def _webhook_card(self, integration: Integration, payload: Dict[str, Any]) -> PipefyCard:
        node = (payload.get("data") or {}).get("card") or {}
        if not node.get("id"):
            raise SyncError("Webhook payload has no card id")
        if node.get("current_phase") and node.get("fields") is not None:
            return parse_card(node)
        # Event payloads may carry only the card id; read the full card
        token = self.credentials.access_token_for(integration)
        return await self.crm_fetcher.get_card(str(node["id"]), token)

    async def _apply_webhook_card(
        self,
        session: AsyncSession,
        company_id: UUID,
        integration: Integration,
        payload: Dict[str, Any],
    ) -> Tuple[ClassifiedDeal, bool]:
        card = await self._webhook_card(integration, payload)
        settings = integration.settings or {}
        extractor = TagExtractor.from_settings(settings)
        tags = extractor.extract(card)
        deal = DealClassifier(settings).classify(card, tags)
        counted = counts_card(tags, settings)

        days: Set[dt.date] = set()
        if counted:
            days.update(d for d in (deal.created_date, deal.effective_date) if d)
        previous = await session.execute(
            select(Deal).where(Deal.company_id == company_id, Deal.source_card_id == deal.card_id)
        )
        previous_row = previous.scalars().first()
        if previous_row is not None:
            days.update(d for d in (previous_row.created_date, previous_row.effective_date) if d)

        planner = WritePlanner(company_id, self.batch_size)
        if counted:
            await planner.execute(session, [planner.plan_deals([deal])])
        elif previous_row is not None:
            # Same filter as the full sync: a card that stopped counting leaves the deal rows
            await delete_deals(session, company_id, [deal.card_id])
            await session.commit()
        else:
            logger.info(f"Pipefy webhook card {deal.card_id} is not a paid-media card, skipped")
            return deal, counted

        stored = await session.execute(
            select(Deal).where(Deal.company_id == company_id, Deal.source == PIPEFY)
        )
        deals = [ClassifiedDeal.from_row(row) for row in stored.scalars().all()]
        active = extractor.active_categories(card_categories=(d.categories for d in deals))

        buckets = self._recount_days(deals, active, days)
        await planner.execute(session, [planner.plan_buckets(buckets, include_snapshot=False)])
        logger.info(
            f"Pipefy webhook for company {company_id}: card {deal.card_id} is {deal.status}, "
            f"recounted {len(days)} days"
        )
        return deal, counted

    @staticmethod
    def _recount_days(
        deals: List[ClassifiedDeal], active: List[str], days: Set[dt.date]
    ) -> List[Bucket]:
        """Buckets for ``days`` and every label, zero-filled so stale counts are overwritten."""
        counted = {b.key: b for b in aggregate_deals(deals, active) if b.date in days}
        buckets = []
        for day in sorted(days):
            for label in [ALL_LABEL] + list(active):
                key = (day, PIPEFY, label)
                buckets.append(counted.get(key) or Bucket(date=day, source=PIPEFY, label=label))
        return buckets

    # ------------------------------------------------------------------
    # All companies
    # ------------------------------------------------------------------

    async def sync_all_active_companies(self) -> List[Dict[str, Any]]:
        """Sync every company that has at least one active integration, one at a time."""
        async with self.session_factory() as session:
            company_ids = await get_companies_with_active_integrations(session)

        logger.info(f"Syncing {len(company_ids)} companies with active integrations")
        results = []
        for company_id in company_ids:
            try:
                results.append(await self.sync_company(company_id))
            except SyncError as e:
                logger.error(f"Sync for company {company_id} failed: {e}")
                results.append({"company_id": str(company_id), "error": str(e), "outcomes": []})
        return results

    async def close(self):
        """Clean up resources."""
        if self._owns_ads:
            await self.ads_fetcher.close()
        if self._owns_crm:
            await self.crm_fetcher.close()


def create_sync_orchestrator(**kwargs) -> SyncOrchestrator:
    return SyncOrchestrator(**kwargs)
