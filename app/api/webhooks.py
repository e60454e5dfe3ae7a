from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException

from app.schemas.webhook import PipefyWebhookPayload
from app.services.scheduler_service import scheduler_service
from app.services.sync_orchestrator import SyncOrchestrator, webhook_pipe_id

router = APIRouter(prefix="/api/webhooks", tags=["Webhooks"])


def get_orchestrator() -> SyncOrchestrator:
    return scheduler_service.orchestrator


@router.post("/pipefy")
async def pipefy_webhook(
    payload: PipefyWebhookPayload,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    """Handle a Pipefy card event (card.create, card.move, card.field_update, ...)."""
    data = payload.model_dump()
    if not webhook_pipe_id(data):
        raise HTTPException(status_code=400, detail="Webhook payload is missing the pipe id")

    # Always answer 200 once the pipe is known so Pipefy does not keep retrying the event
    return await orchestrator.process_webhook_card(data)
