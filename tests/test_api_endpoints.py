from __future__ import annotations

import uuid
from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.sync import get_scheduler
from app.api.webhooks import get_orchestrator
from app.db import get_db
from app.main import app
from app.services.scheduler_service import SchedulerService
from tests.fakes import (
    insight_row,
    meta_pages_handler,
    pipefy_card,
    pipefy_pages_handler,
)


@pytest_asyncio.fixture
async def client(session_factory, make_orchestrator) -> AsyncGenerator[httpx.AsyncClient, None]:
    """API client wired to the test database and fake upstreams."""
    orchestrator = make_orchestrator(
        meta_pages_handler(
            [[{**insight_row("CONDOMINIAL Jan", "2026-01-01", spend="100.00"),
               "actions": [{"action_type": "lead", "value": "2"}]}]]
        ),
        pipefy_pages_handler([[pipefy_card("A", "Ganho", "2026-01-01T12:00:00Z")]]),
    )
    scheduler = SchedulerService(orchestrator=orchestrator, session_factory=session_factory)

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_scheduler] = lambda: scheduler
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as test_client:
        yield test_client
    app.dependency_overrides.clear()


class TestHealthEndpoints:
    @pytest.mark.asyncio
    async def test_health_check(self, client: httpx.AsyncClient):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_database_health(self, client: httpx.AsyncClient):
        response = await client.get("/health/database")
        assert response.status_code == 200
        assert response.json()["database"] == "connected"


class TestSyncEndpoints:
    @pytest.mark.asyncio
    async def test_force_sync(self, client: httpx.AsyncClient, company, integrations):
        response = await client.post(
            f"/api/sync/{company.id}/force",
            json={"since": "2026-01-01", "until": "2026-01-02"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["since"] == "2026-01-01"
        assert {o["source"]: o["status"] for o in data["outcomes"]} == {
            "meta_ads": "success",
            "pipefy": "success",
        }

    @pytest.mark.asyncio
    async def test_force_sync_unknown_company(self, client: httpx.AsyncClient):
        response = await client.post(f"/api/sync/{uuid.uuid4()}/force")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_force_sync_rejects_inverted_window(
        self, client: httpx.AsyncClient, company, integrations
    ):
        response = await client.post(
            f"/api/sync/{company.id}/force",
            json={"since": "2026-01-05", "until": "2026-01-01"},
        )
        assert response.status_code == 400

        logs = await client.get(f"/api/sync/{company.id}/logs")
        assert logs.json() == []

    @pytest.mark.asyncio
    async def test_invalid_company_id(self, client: httpx.AsyncClient):
        response = await client.post("/api/sync/not-a-uuid/force")
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_logs_after_sync(self, client: httpx.AsyncClient, company, integrations):
        await client.post(
            f"/api/sync/{company.id}/force",
            json={"since": "2026-01-01", "until": "2026-01-02"},
        )

        response = await client.get(f"/api/sync/{company.id}/logs", params={"limit": 10})

        assert response.status_code == 200
        logs = response.json()
        assert len(logs) == 2
        assert {log["source"] for log in logs} == {"meta_ads", "pipefy"}
        assert all(log["event_type"] == "full_sync" for log in logs)

    @pytest.mark.asyncio
    async def test_status(self, client: httpx.AsyncClient, company, integrations):
        response = await client.get("/api/sync/status", params={"company_id": str(company.id)})

        assert response.status_code == 200
        data = response.json()
        assert data["scheduler_running"] is False
        assert {i["type"] for i in data["integrations"]} == {"meta_ads", "pipefy"}
        assert all(i["task_status"] == "idle" for i in data["integrations"])


class TestMetricsEndpoint:
    @pytest.mark.asyncio
    async def test_filtered_buckets(self, client: httpx.AsyncClient, company, integrations):
        await client.post(
            f"/api/sync/{company.id}/force",
            json={"since": "2026-01-01", "until": "2026-01-02"},
        )

        response = await client.get(
            f"/api/metrics/{company.id}",
            params={"source": "meta_ads", "start": "2026-01-01", "end": "2026-01-01"},
        )

        assert response.status_code == 200
        buckets = {b["label"]: b for b in response.json()}
        assert set(buckets) == {"all", "condominial"}
        assert buckets["condominial"]["spend"] == 100.0
        assert buckets["condominial"]["leads"] == 2

    @pytest.mark.asyncio
    async def test_bad_range(self, client: httpx.AsyncClient, company):
        response = await client.get(
            f"/api/metrics/{company.id}", params={"start": "2026-01-05", "end": "2026-01-01"}
        )
        assert response.status_code == 400


class TestPipefyWebhook:
    @pytest.mark.asyncio
    async def test_card_event(self, client: httpx.AsyncClient, company, integrations):
        card = pipefy_card("A", "Ganho", "2026-01-01T12:00:00Z", updated_at="2026-01-03T12:00:00Z")

        response = await client.post(
            "/api/webhooks/pipefy", json={"action": "card.move", "data": {"card": card}}
        )

        assert response.status_code == 200
        assert response.json()["status"] == "processed"
        assert response.json()["deal_status"] == "won"

    @pytest.mark.asyncio
    async def test_unknown_pipe(self, client: httpx.AsyncClient, company, integrations):
        card = pipefy_card("A", "Ganho", "2026-01-01T12:00:00Z")
        card["pipe"] = {"id": "404"}

        response = await client.post(
            "/api/webhooks/pipefy", json={"action": "card.move", "data": {"card": card}}
        )

        assert response.status_code == 200
        assert response.json()["status"] == "ignored"

    @pytest.mark.asyncio
    async def test_missing_pipe_id(self, client: httpx.AsyncClient):
        response = await client.post(
            "/api/webhooks/pipefy", json={"action": "card.move", "data": {"card": {"id": "1"}}}
        )
        assert response.status_code == 400
