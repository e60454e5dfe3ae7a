from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from app.config import HTTP_RETRY_ATTEMPTS, HTTP_TIMEOUT_SECONDS, PIPEFY_API_URL
from app.services.errors import PipefyAPIError
from app.utils.dates import parse_timestamp
from app.utils.retry import call_with_retry

logger = logging.getLogger(__name__)

DEFAULT_MAX_PAGES = 200  # 200 x 50 = 10,000 cards
PAGE_SIZE = 50

CARD_FIELDS = """
    id
    title
    current_phase { id name }
    labels { name }
    assignees { name }
    createdBy { name }
    pipe { id }
    created_at
    updated_at
    finished_at
    fields { name value }
"""

# Walks backwards from the newest card so a capped run always keeps the most recent cards
PIPE_CARDS_QUERY = (
    """
query($pipeId: ID!, $cursor: String, $pageSize: Int!) {
  pipe(id: $pipeId) {
    id
    name
    phases { id name cards_count }
    labels { id name }
  }
  allCards(pipeId: $pipeId, last: $pageSize, before: $cursor) {
    edges { node { %s } }
    pageInfo { hasPreviousPage startCursor }
  }
}
"""
    % CARD_FIELDS
)

CARD_QUERY = (
    """
query($cardId: ID!) {
  card(id: $cardId) { %s }
}
"""
    % CARD_FIELDS
)

ME_QUERY = "query { me { id name email } }"


@dataclass(frozen=True)
class CardField:
    name: str
    value: Optional[str]


@dataclass
class PipefyCard:
    id: str
    title: str
    phase_id: str = ""
    phase_name: str = ""
    labels: List[str] = field(default_factory=list)
    fields: List[CardField] = field(default_factory=list)
    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None
    finished_at: Optional[dt.datetime] = None
    assignees: List[str] = field(default_factory=list)
    created_by: Optional[str] = None
    pipe_id: Optional[str] = None


@dataclass(frozen=True)
class PipePhase:
    id: str
    name: str
    cards_count: int = 0


@dataclass
class PipeSnapshot:
    pipe_id: str
    name: str
    phases: List[PipePhase] = field(default_factory=list)
    labels: List[str] = field(default_factory=list)
    cards: List[PipefyCard] = field(default_factory=list)
    truncated: bool = False


def _names(items: Optional[List[Any]]) -> List[str]:
    names = []
    for item in items or []:
        name = item.get("name") if isinstance(item, dict) else item
        if name:
            names.append(str(name))
    return names


def parse_card(node: Dict[str, Any]) -> PipefyCard:
    """Build a PipefyCard from a GraphQL node or a webhook card payload."""
    phase = node.get("current_phase") or {}
    created_by = node.get("createdBy") or node.get("created_by") or {}
    raw_fields = node.get("fields") or []
    return PipefyCard(
        id=str(node["id"]),
        title=node.get("title") or "",
        phase_id=str(phase.get("id") or ""),
        phase_name=phase.get("name") or "",
        labels=_names(node.get("labels")),
        fields=[
            CardField(name=f.get("name") or "", value=f.get("value"))
            for f in raw_fields
            if isinstance(f, dict)
        ],
        created_at=parse_timestamp(node.get("created_at")),
        updated_at=parse_timestamp(node.get("updated_at")),
        finished_at=parse_timestamp(node.get("finished_at")),
        assignees=_names(node.get("assignees")),
        created_by=created_by.get("name") if isinstance(created_by, dict) else None,
        pipe_id=str((node.get("pipe") or {}).get("id") or "") or None,
    )


class PipefyService:
    """Reads pipe metadata and cards from the Pipefy GraphQL API."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        api_url: str = PIPEFY_API_URL,
        max_pages: int = DEFAULT_MAX_PAGES,
        retry_attempts: int = HTTP_RETRY_ATTEMPTS,
        retry_base_delay: float = 1.0,
    ) -> None:
        self.api_url = api_url
        self.max_pages = max_pages
        self.retry_attempts = retry_attempts
        self.retry_base_delay = retry_base_delay
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS)
        return self._client

    async def _post_once(self, query: str, variables: Dict[str, Any], token: str) -> Dict[str, Any]:
        response = await self._get_client().post(
            self.api_url,
            json={"query": query, "variables": variables},
            headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
        )
        if response.status_code >= 400:
            message = response.text
            try:
                errors = response.json().get("errors") or []
                if errors:
                    message = errors[0].get("message") or message
            except ValueError:
                pass
            raise PipefyAPIError(
                f"Pipefy API error {response.status_code}: {message}",
                status_code=response.status_code,
            )

        payload = response.json()
        # A page with GraphQL errors is never used, even if partial data came back
        if payload.get("errors"):
            raise PipefyAPIError(f"Pipefy API error: {payload['errors'][0].get('message')}")
        return payload.get("data") or {}

    async def make_request(self, query: str, variables: Dict[str, Any], token: str) -> Dict[str, Any]:
        """Run a GraphQL request and return its ``data`` object."""
        try:
            return await call_with_retry(
                self._post_once,
                query,
                variables,
                token,
                max_attempts=self.retry_attempts,
                base_delay=self.retry_base_delay,
            )
        except httpx.TransportError as e:
            raise PipefyAPIError(f"Pipefy request failed: {e}") from e

    async def get_pipe_cards(self, pipe_id: str, token: str) -> PipeSnapshot:
        """Fetch pipe phases, labels and every card (newest first) up to ``max_pages`` pages."""
        snapshot: Optional[PipeSnapshot] = None
        cards: List[PipefyCard] = []
        cursor: Optional[str] = None
        has_previous = True
        pages = 0

        while has_previous and pages < self.max_pages:
            data = await self.make_request(
                PIPE_CARDS_QUERY,
                {"pipeId": str(pipe_id), "cursor": cursor, "pageSize": PAGE_SIZE},
                token,
            )
            pages += 1

            if snapshot is None:
                pipe = data.get("pipe") or {}
                snapshot = PipeSnapshot(
                    pipe_id=str(pipe.get("id") or pipe_id),
                    name=pipe.get("name") or "",
                    phases=[
                        PipePhase(
                            id=str(p.get("id")),
                            name=p.get("name") or "",
                            cards_count=int(p.get("cards_count") or 0),
                        )
                        for p in pipe.get("phases") or []
                    ],
                    labels=_names(pipe.get("labels")),
                )

            connection = data.get("allCards") or {}
            for edge in connection.get("edges") or []:
                cards.append(parse_card(edge["node"]))

            page_info = connection.get("pageInfo") or {}
            has_previous = bool(page_info.get("hasPreviousPage"))
            cursor = page_info.get("startCursor")

        if snapshot is None:
            snapshot = PipeSnapshot(pipe_id=str(pipe_id), name="")

        if has_previous:
            snapshot.truncated = True
            logger.warning(
                f"Pipefy pagination cap of {self.max_pages} pages reached for pipe {pipe_id}; "
                f"kept the {len(cards)} most recent cards, older cards were not fetched"
            )

        snapshot.cards = cards
        logger.info(f"Fetched {len(cards)} Pipefy cards from pipe {pipe_id} in {pages} pages")
        return snapshot

    async def get_card(self, card_id: str, token: str) -> PipefyCard:
        data = await self.make_request(CARD_QUERY, {"cardId": str(card_id)}, token)
        node = data.get("card")
        if not node:
            raise PipefyAPIError(f"Pipefy card {card_id} not found")
        return parse_card(node)

    async def test_connection(self, token: str) -> Dict[str, Any]:
        try:
            data = await self.make_request(ME_QUERY, {}, token)
            return {"connected": True, "user": data.get("me")}
        except PipefyAPIError as e:
            return {"connected": False, "error": str(e)}

    async def close(self):
        """Clean up resources."""
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None


def create_pipefy_service(**kwargs) -> PipefyService:
    return PipefyService(**kwargs)
