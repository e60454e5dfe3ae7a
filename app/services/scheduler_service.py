from __future__ import annotations

import asyncio
import datetime as dt
import logging
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy import select

from app.config import SYNC_INTERVAL_SECONDS
from app.db import AsyncSessionLocal
from app.models.integration import Integration
from app.services.errors import SyncError
from app.services.sync_orchestrator import SyncOrchestrator, create_sync_orchestrator

logger = logging.getLogger(__name__)


class SchedulerService:
    """Service for running the periodic all-company sync and manual syncs."""

    def __init__(
        self,
        orchestrator: Optional[SyncOrchestrator] = None,
        session_factory=AsyncSessionLocal,
        sync_interval: int = SYNC_INTERVAL_SECONDS,
    ):
        self.running = False
        self.session_factory = session_factory
        self.sync_interval = sync_interval
        self._orchestrator = orchestrator
        self._loop_task: Optional[asyncio.Task] = None
        self.sync_tasks: Dict[UUID, asyncio.Task] = {}
        self.last_run_at: Optional[dt.datetime] = None

    @property
    def orchestrator(self) -> SyncOrchestrator:
        if self._orchestrator is None:
            self._orchestrator = create_sync_orchestrator(session_factory=self.session_factory)
        return self._orchestrator

    async def start(self) -> None:
        """Start the scheduler service."""
        if self.running:
            return

        self.running = True
        logger.info(f"Starting scheduler service (interval {self.sync_interval}s)")

        # Start background task
        self._loop_task = asyncio.create_task(self._run_scheduler(), name="sync_scheduler")

    async def stop(self) -> None:
        """Stop the scheduler service."""
        self.running = False

        if self._loop_task and not self._loop_task.done():
            self._loop_task.cancel()

        # Cancel all running sync tasks
        for task in self.sync_tasks.values():
            if not task.done():
                task.cancel()

        if self._orchestrator is not None:
            await self._orchestrator.close()

        logger.info("Stopped scheduler service")

    async def _run_scheduler(self) -> None:
        """Main scheduler loop."""
        while self.running:
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Scheduler error: {e}")
            await asyncio.sleep(self.sync_interval)

    async def run_once(self) -> None:
        """One pass over every company with an active integration."""
        self.last_run_at = dt.datetime.now(dt.timezone.utc)
        results = await self.orchestrator.sync_all_active_companies()
        logger.info(f"Scheduled sync finished for {len(results)} companies")

    async def force_sync(
        self,
        company_id: UUID,
        since: Optional[dt.date] = None,
        until: Optional[dt.date] = None,
    ) -> Dict[str, Any]:
        """Run a sync for one company now; CompanyNotFoundError propagates to the caller."""
        # Another waiter may have started a new sync while this one was waiting
        task = self.sync_tasks.get(company_id)
        while task and not task.done():
            logger.info(f"Sync already running for company {company_id}, waiting for it")
            await asyncio.wait({task})
            task = self.sync_tasks.get(company_id)

        task = asyncio.create_task(
            self.orchestrator.sync_company(company_id, since=since, until=until),
            name=f"sync_{company_id}",
        )
        self.sync_tasks[company_id] = task
        try:
            return await task
        finally:
            if self.sync_tasks.get(company_id) is task:
                del self.sync_tasks[company_id]

    async def trigger_manual_sync(self, company_id: UUID) -> Dict[str, Any]:
        """Manual sync that reports failures in the result instead of raising."""
        try:
            result = await self.force_sync(company_id)
            return {"success": True, "result": result}
        except SyncError as e:
            return {"success": False, "error": str(e)}

    async def get_sync_status(self, company_id: Optional[UUID] = None) -> Dict[str, Any]:
        """Get current sync status for all integrations or a specific company."""
        async with self.session_factory() as session:
            stmt = select(Integration)
            if company_id:
                stmt = stmt.where(Integration.company_id == company_id)

            result = await session.execute(stmt)
            integrations = result.scalars().all()

        status = {
            "scheduler_running": self.running,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "running_tasks": sum(1 for t in self.sync_tasks.values() if not t.done()),
            "integrations": [],
        }

        for integration in integrations:
            task = self.sync_tasks.get(integration.company_id)
            task_status = "running" if task and not task.done() else "idle"

            status["integrations"].append(
                {
                    "id": str(integration.id),
                    "company_id": str(integration.company_id),
                    "type": integration.integration_type,
                    "active": integration.is_active,
                    "last_synced_at": (
                        integration.last_synced_at.isoformat()
                        if integration.last_synced_at
                        else None
                    ),
                    "last_sync_status": integration.last_sync_status,
                    "task_status": task_status,
                    "error_message": integration.sync_error_message,
                }
            )

        return status


# Global scheduler instance
scheduler_service = SchedulerService()
