from __future__ import annotations

import datetime as dt
import uuid
from typing import AsyncGenerator, Callable, Dict

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from app.db import Base
from app.models.campaign_day import CampaignDay  # noqa: F401
from app.models.company import Company
from app.models.deal import Deal  # noqa: F401
from app.models.integration import META_ADS, PIPEFY, Integration
from app.models.metric_bucket import MetricBucket  # noqa: F401
from app.models.sync_outcome import SyncOutcome  # noqa: F401
from app.services.credential_service import CredentialService
from app.services.sync_orchestrator import SyncOrchestrator
from tests.fakes import AD_ACCOUNT_ID, PIPE_ID, make_meta_service, make_pipefy_service


@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """A fresh SQLite database file per test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return sessionmaker(test_engine, expire_on_commit=False, class_=AsyncSession)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for each test."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def company(db_session: AsyncSession) -> Company:
    company = Company(id=uuid.uuid4(), name="Corretora Teste")
    db_session.add(company)
    await db_session.commit()
    return company


@pytest_asyncio.fixture
async def integrations(db_session: AsyncSession, company: Company) -> Dict[str, Integration]:
    """An active Meta Ads and an active Pipefy integration with plain-text tokens."""
    meta = Integration(
        id=uuid.uuid4(),
        company_id=company.id,
        integration_type=META_ADS,
        is_active=True,
        access_token="meta-token",
        ad_account_id=AD_ACCOUNT_ID,
        settings={},
    )
    pipefy = Integration(
        id=uuid.uuid4(),
        company_id=company.id,
        integration_type=PIPEFY,
        is_active=True,
        access_token="pipefy-token",
        pipe_id=PIPE_ID,
        settings={},
    )
    db_session.add_all([meta, pipefy])
    await db_session.commit()
    return {META_ADS: meta, PIPEFY: pipefy}


@pytest.fixture
def make_orchestrator(session_factory):
    """Build an orchestrator wired to the test database and the given fake upstreams."""

    def _make(meta_handler: Callable, pipefy_handler: Callable, **kwargs) -> SyncOrchestrator:
        return SyncOrchestrator(
            session_factory=session_factory,
            ads_fetcher=make_meta_service(meta_handler),
            crm_fetcher=make_pipefy_service(pipefy_handler),
            credentials=CredentialService(key=""),
            **kwargs,
        )

    return _make


@pytest.fixture
def sync_window() -> Dict[str, dt.date]:
    return {"since": dt.date(2026, 1, 1), "until": dt.date(2026, 1, 2)}
