from __future__ import annotations

import datetime as dt
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence

import httpx

from app.config import HTTP_RETRY_ATTEMPTS, HTTP_TIMEOUT_SECONDS, META_API_BASE
from app.services.errors import MetaAdsAPIError
from app.utils.retry import call_with_retry

logger = logging.getLogger(__name__)

INSIGHT_FIELDS = [
    "campaign_id",
    "campaign_name",
    "spend",
    "impressions",
    "clicks",
    "reach",
    "actions",
    "date_start",
    "date_stop",
]

# Every effective status, so paused/archived/deleted campaigns with spend in the window still show up
ALL_EFFECTIVE_STATUSES = [
    "ACTIVE",
    "PAUSED",
    "ARCHIVED",
    "DELETED",
    "IN_PROCESS",
    "WITH_ISSUES",
    "CAMPAIGN_PAUSED",
    "ADSET_PAUSED",
]

# Checked in this order; the first action type present wins
LEAD_ACTION_PRIORITY = (
    "lead",
    "onsite_conversion.lead_grouped",
    "leadgen_grouped",
)

# Contain "lead" in the name but count other events
NON_LEAD_AGGREGATES = frozenset(
    {
        "offsite_complete_registration_add_meta_leads",
        "offsite_content_view_add_meta_leads",
        "offsite_search_add_meta_leads",
    }
)

DEFAULT_MAX_PAGES = 50
DEFAULT_PAGE_LIMIT = 500


@dataclass(frozen=True)
class AdInsightRow:
    """One campaign's metrics for one calendar day."""

    campaign_id: str
    campaign_name: str
    date: dt.date
    spend: float
    impressions: int
    clicks: int
    reach: int
    leads: int


def _to_int(value: Any) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


def _to_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def extract_lead_count(actions: Optional[Iterable[Dict[str, Any]]]) -> int:
    """Lead count for one insight row.

    Uses the first of LEAD_ACTION_PRIORITY present in the row. Otherwise takes
    the maximum (never the sum) over the remaining lead-like action types,
    since nested aggregates would be counted twice.
    """
    values: Dict[str, int] = {}
    for action in actions or []:
        action_type = action.get("action_type")
        if action_type:
            values[action_type] = _to_int(action.get("value"))

    for action_type in LEAD_ACTION_PRIORITY:
        if action_type in values:
            return values[action_type]

    fallback = [
        value
        for action_type, value in values.items()
        if "lead" in action_type.lower() and action_type not in NON_LEAD_AGGREGATES
    ]
    return max(fallback) if fallback else 0


def normalize_insight_row(raw: Dict[str, Any]) -> AdInsightRow:
    """Map a raw Graph API insight row to an AdInsightRow."""
    return AdInsightRow(
        campaign_id=str(raw.get("campaign_id") or ""),
        campaign_name=raw.get("campaign_name") or "Unknown",
        date=dt.date.fromisoformat(raw["date_start"]),
        spend=_to_float(raw.get("spend")),
        impressions=_to_int(raw.get("impressions")),
        clicks=_to_int(raw.get("clicks")),
        reach=_to_int(raw.get("reach")),
        leads=extract_lead_count(raw.get("actions")),
    )


def build_filtering(
    statuses: Optional[Sequence[str]] = None, name_contains: Optional[str] = None
) -> Optional[str]:
    """JSON-encoded ``filtering`` parameter, or None when there is nothing to filter on."""
    filters = []
    if statuses:
        filters.append(
            {"field": "campaign.effective_status", "operator": "IN", "value": list(statuses)}
        )
    if name_contains:
        filters.append({"field": "campaign.name", "operator": "CONTAIN", "value": name_contains})
    return json.dumps(filters) if filters else None


class MetaAdsService:
    """Reads daily campaign insights from the Meta Marketing API."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        base_url: str = META_API_BASE,
        max_pages: int = DEFAULT_MAX_PAGES,
        page_limit: int = DEFAULT_PAGE_LIMIT,
        retry_attempts: int = HTTP_RETRY_ATTEMPTS,
        retry_base_delay: float = 1.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.max_pages = max_pages
        self.page_limit = page_limit
        self.retry_attempts = retry_attempts
        self.retry_base_delay = retry_base_delay
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS)
        return self._client

    async def _get_json_once(self, url: str, params: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        response = await self._get_client().get(url, params=params)
        if response.status_code >= 400:
            message = response.text
            try:
                message = response.json().get("error", {}).get("message") or message
            except ValueError:
                pass
            raise MetaAdsAPIError(
                f"Meta Ads API error {response.status_code}: {message}",
                status_code=response.status_code,
            )
        return response.json()

    async def _get_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        try:
            return await call_with_retry(
                self._get_json_once,
                url,
                params,
                max_attempts=self.retry_attempts,
                base_delay=self.retry_base_delay,
            )
        except httpx.TransportError as e:
            raise MetaAdsAPIError(f"Meta Ads request failed: {e}") from e

    async def get_daily_insights(
        self,
        ad_account_id: str,
        access_token: str,
        since: dt.date,
        until: dt.date,
        statuses: Optional[Sequence[str]] = ALL_EFFECTIVE_STATUSES,
        name_contains: Optional[str] = None,
    ) -> List[AdInsightRow]:
        """Fetch one row per (campaign, day) for the inclusive window ``since``..``until``."""
        account = ad_account_id if ad_account_id.startswith("act_") else f"act_{ad_account_id}"
        params: Dict[str, Any] = {
            "access_token": access_token,
            "time_range": json.dumps({"since": since.isoformat(), "until": until.isoformat()}),
            "fields": ",".join(INSIGHT_FIELDS),
            "level": "campaign",
            "time_increment": 1,
            "limit": self.page_limit,
        }
        filtering = build_filtering(statuses, name_contains)
        if filtering:
            params["filtering"] = filtering

        rows: List[AdInsightRow] = []
        url: Optional[str] = f"{self.base_url}/{account}/insights"
        pages = 0

        while url and pages < self.max_pages:
            # The "next" cursor URL already carries every query parameter
            payload = await self._get_json(url, params if pages == 0 else None)
            pages += 1
            for raw in payload.get("data", []):
                rows.append(normalize_insight_row(raw))
            url = (payload.get("paging") or {}).get("next")

        if url:
            logger.warning(
                f"Meta Ads pagination cap of {self.max_pages} pages reached for {account}; "
                f"{len(rows)} rows read, remaining pages were not fetched"
            )

        logger.info(f"Fetched {len(rows)} Meta Ads insight rows for {account} ({since} -> {until})")
        return rows

    async def validate_token(self, access_token: str) -> Dict[str, Any]:
        try:
            user = await self._get_json(f"{self.base_url}/me", {"access_token": access_token})
            return {"valid": True, "user": user}
        except MetaAdsAPIError as e:
            return {"valid": False, "error": str(e)}

    async def get_ad_accounts(self, access_token: str) -> List[Dict[str, Any]]:
        payload = await self._get_json(
            f"{self.base_url}/me/adaccounts",
            {"access_token": access_token, "fields": "id,name,account_status,currency"},
        )
        return payload.get("data", [])

    async def test_connection(self, access_token: str) -> Dict[str, Any]:
        """Check the token and list the ad accounts it can read."""
        validation = await self.validate_token(access_token)
        if not validation["valid"]:
            return {"connected": False, "error": validation["error"]}

        accounts = await self.get_ad_accounts(access_token)
        return {
            "connected": True,
            "user": validation["user"],
            "accounts_count": len(accounts),
            "accounts": [
                {"id": a.get("id"), "name": a.get("name"), "status": a.get("account_status")}
                for a in accounts
            ],
        }

    async def close(self):
        """Clean up resources."""
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None


def create_meta_ads_service(**kwargs) -> MetaAdsService:
    return MetaAdsService(**kwargs)
