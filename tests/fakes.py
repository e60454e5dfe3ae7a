"""Fake Meta Ads and Pipefy upstreams served through httpx.MockTransport."""
from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Optional

import httpx

from app.services.meta_ads_service import MetaAdsService
from app.services.pipefy_service import PipefyService

META_BASE_URL = "https://graph.test/v18.0"
PIPEFY_URL = "https://pipefy.test/graphql"
PIPE_ID = "301"
AD_ACCOUNT_ID = "12345"


def insight_row(
    campaign_name: str,
    date: str,
    spend: str = "0",
    leads: Optional[int] = None,
    campaign_id: str = "c1",
    impressions: str = "100",
    clicks: str = "10",
    reach: str = "80",
) -> Dict[str, Any]:
    row = {
        "campaign_id": campaign_id,
        "campaign_name": campaign_name,
        "spend": spend,
        "impressions": impressions,
        "clicks": clicks,
        "reach": reach,
        "date_start": date,
        "date_stop": date,
    }
    if leads is not None:
        row["actions"] = [{"action_type": "lead", "value": str(leads)}]
    return row


def meta_pages_handler(pages: List[List[Dict[str, Any]]], calls: Optional[List[httpx.Request]] = None):
    """MockTransport handler serving ``pages`` through ``paging.next`` cursors."""

    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(request)
        index = int(request.url.params.get("after", "0"))
        body: Dict[str, Any] = {"data": pages[index] if index < len(pages) else []}
        if index + 1 < len(pages):
            body["paging"] = {"next": f"{META_BASE_URL}/act_{AD_ACCOUNT_ID}/insights?after={index + 1}"}
        return httpx.Response(200, json=body)

    return handler


def pipefy_card(
    card_id: str,
    phase_name: str,
    created_at: str,
    updated_at: Optional[str] = None,
    finished_at: Optional[str] = None,
    labels: Optional[List[str]] = None,
    fields: Optional[List[Dict[str, Any]]] = None,
    phase_id: Optional[str] = None,
) -> Dict[str, Any]:
    return {
        "id": card_id,
        "title": f"Card {card_id}",
        "current_phase": {"id": phase_id or f"ph-{phase_name}", "name": phase_name},
        "labels": [{"name": name} for name in labels or []],
        "assignees": [],
        "createdBy": {"name": "Ana"},
        "pipe": {"id": PIPE_ID},
        "created_at": created_at,
        "updated_at": updated_at or created_at,
        "finished_at": finished_at,
        "fields": fields or [],
    }


def pipefy_pages_handler(
    pages: List[List[Dict[str, Any]]],
    phases: Optional[List[Dict[str, Any]]] = None,
    calls: Optional[List[Dict[str, Any]]] = None,
):
    """MockTransport handler serving ``pages`` newest-first through ``before`` cursors."""

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        if calls is not None:
            calls.append(body)
        cursor = body["variables"].get("cursor")
        index = int(cursor) if cursor else 0
        nodes = pages[index] if index < len(pages) else []
        has_previous = index + 1 < len(pages)
        return httpx.Response(
            200,
            json={
                "data": {
                    "pipe": {
                        "id": PIPE_ID,
                        "name": "Vendas",
                        "phases": phases or [],
                        "labels": [],
                    },
                    "allCards": {
                        "edges": [{"node": node} for node in nodes],
                        "pageInfo": {
                            "hasPreviousPage": has_previous,
                            "startCursor": str(index + 1) if has_previous else None,
                        },
                    },
                }
            },
        )

    return handler


def make_meta_service(handler: Callable, **kwargs) -> MetaAdsService:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    kwargs.setdefault("retry_base_delay", 0)
    return MetaAdsService(client=client, base_url=META_BASE_URL, **kwargs)


def make_pipefy_service(handler: Callable, **kwargs) -> PipefyService:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    kwargs.setdefault("retry_base_delay", 0)
    return PipefyService(client=client, api_url=PIPEFY_URL, **kwargs)

