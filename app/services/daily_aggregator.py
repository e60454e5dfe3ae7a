from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
from uuid import UUID

from app.models.integration import META_ADS, PIPEFY
from app.services.deal_classifier import LOST, QUALIFIED, WON, ClassifiedDeal
from app.services.meta_ads_service import AdInsightRow
from app.services.pipefy_service import PipeSnapshot
from app.services.tag_extractor import ALL_LABEL, TagExtractor


@dataclass
class Bucket:
    """In-memory metric bucket for one (date, source, label)."""

    date: dt.date
    source: str
    label: str
    cards_created: int = 0
    cards_qualified: int = 0
    cards_converted: int = 0
    cards_lost: int = 0
    cards_by_phase: Optional[Dict[str, int]] = None
    spend: float = 0.0
    impressions: int = 0
    clicks: int = 0
    leads: int = 0
    reach: int = 0

    @property
    def conversion_rate(self) -> float:
        if self.cards_created <= 0:
            return 0.0
        return round(self.cards_converted / self.cards_created * 100, 2)

    @property
    def key(self) -> Tuple[dt.date, str, str]:
        return (self.date, self.source, self.label)

    def as_row(self, company_id: UUID) -> Dict[str, Any]:
        return {
            "company_id": company_id,
            "date": self.date,
            "source": self.source,
            "label": self.label,
            "cards_created": self.cards_created,
            "cards_qualified": self.cards_qualified,
            "cards_converted": self.cards_converted,
            "cards_lost": self.cards_lost,
            "conversion_rate": self.conversion_rate,
            "cards_by_phase": self.cards_by_phase,
            "spend": round(self.spend, 2),
            "impressions": self.impressions,
            "clicks": self.clicks,
            "leads": self.leads,
            "reach": self.reach,
        }


@dataclass
class _BucketSet:
    source: str
    labels: List[str]
    buckets: Dict[Tuple[dt.date, str], Bucket] = field(default_factory=dict)

    def get(self, day: dt.date, label: str) -> Bucket:
        bucket = self.buckets.get((day, label))
        if bucket is None:
            bucket = Bucket(date=day, source=self.source, label=label)
            self.buckets[(day, label)] = bucket
        return bucket

    def ordered(self) -> List[Bucket]:
        order = {label: i for i, label in enumerate(self.labels)}
        return sorted(
            self.buckets.values(), key=lambda b: (b.date, order.get(b.label, len(order)))
        )


def _labels_for(categories: Iterable[str], active: Sequence[str]) -> List[str]:
    return [ALL_LABEL] + [c for c in active if c in set(categories)]


def aggregate_deals(
    deals: Iterable[ClassifiedDeal],
    active_categories: Sequence[str],
    run_date: Optional[dt.date] = None,
    snapshot: Optional[PipeSnapshot] = None,
    source: str = PIPEFY,
) -> List[Bucket]:
    """
    Count CRM events per (day, label).

    ``cards_created`` lands on the card's creation day; qualified/won/lost
    land on the card's effective date for that status. Every card counts
    toward "all" plus each active category it matches. When ``run_date``
    and a pipe snapshot are given, the current cards-per-phase view is
    attached to the run-date bucket of every label.
    """
    deals = list(deals)
    buckets = _BucketSet(source=source, labels=[ALL_LABEL] + list(active_categories))

    for deal in deals:
        labels = _labels_for(deal.categories, active_categories)

        if deal.created_date is not None:
            for label in labels:
                buckets.get(deal.created_date, label).cards_created += 1

        if deal.effective_date is None:
            continue
        for label in labels:
            bucket = buckets.get(deal.effective_date, label)
            if deal.status == QUALIFIED:
                bucket.cards_qualified += 1
            elif deal.status == WON:
                bucket.cards_converted += 1
            elif deal.status == LOST:
                bucket.cards_lost += 1

    if run_date is not None and snapshot is not None:
        buckets.get(run_date, ALL_LABEL).cards_by_phase = {
            phase.name: phase.cards_count for phase in snapshot.phases
        }
        for category in active_categories:
            per_phase = {phase.name: 0 for phase in snapshot.phases}
            for deal in deals:
                if category in deal.categories and deal.phase_name:
                    per_phase[deal.phase_name] = per_phase.get(deal.phase_name, 0) + 1
            buckets.get(run_date, category).cards_by_phase = per_phase

    return buckets.ordered()


def aggregate_ad_rows(
    rows: Iterable[AdInsightRow],
    active_categories: Sequence[str],
    extractor: TagExtractor,
    source: str = META_ADS,
) -> List[Bucket]:
    """Sum ads metrics per (day, label); "all" takes every row, categories only matching campaigns."""
    buckets = _BucketSet(source=source, labels=[ALL_LABEL] + list(active_categories))

    for row in rows:
        labels = _labels_for(extractor.campaign_categories(row.campaign_name), active_categories)
        for label in labels:
            bucket = buckets.get(row.date, label)
            bucket.spend += row.spend
            bucket.impressions += row.impressions
            bucket.clicks += row.clicks
            bucket.leads += row.leads
            bucket.reach += row.reach

    return buckets.ordered()
