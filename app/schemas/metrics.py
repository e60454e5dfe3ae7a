from __future__ import annotations

import datetime as dt
from typing import Dict, Optional

from pydantic import BaseModel, UUID4


class MetricBucketRecord(BaseModel):
    company_id: UUID4
    date: dt.date
    source: str
    label: str
    cards_created: int = 0
    cards_qualified: int = 0
    cards_converted: int = 0
    cards_lost: int = 0
    conversion_rate: float = 0.0
    cards_by_phase: Optional[Dict[str, int]] = None
    spend: float = 0.0
    impressions: int = 0
    clicks: int = 0
    leads: int = 0
    reach: int = 0

    class Config:
        from_attributes = True
