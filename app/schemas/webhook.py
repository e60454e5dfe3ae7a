from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel


class PipefyWebhookData(BaseModel):
    card: Dict[str, Any] = {}
    pipe: Optional[Dict[str, Any]] = None

    class Config:
        extra = "allow"


class PipefyWebhookPayload(BaseModel):
    """Pipefy card event: ``{"action": ..., "data": {"card": {...}}}``."""

    action: Optional[str] = None
    data: PipefyWebhookData = PipefyWebhookData()

    class Config:
        extra = "allow"
