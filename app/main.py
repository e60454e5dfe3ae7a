from __future__ import annotations

import logging

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.db import engine

# Load environment variables early
load_dotenv()

from app.api import health, metrics, sync, webhooks  # noqa: E402
from app.config import FRONTEND_ORIGIN, LOG_LEVEL, SCHEDULER_ENABLED  # noqa: E402
from app.services.scheduler_service import scheduler_service  # noqa: E402

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Pipeline Metrics Sync API")

# CORS setup
origins = [FRONTEND_ORIGIN]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Startup / shutdown hooks
# ---------------------------------------------------------------------------


@app.on_event("startup")
async def startup_event():
    """Startup event handler."""
    logger.info("Using Alembic for database migrations")
    if SCHEDULER_ENABLED:
        await scheduler_service.start()
    else:
        logger.info("Scheduler disabled (SCHEDULER_ENABLED=false)")


@app.on_event("shutdown")
async def shutdown_event():
    """Shutdown event handler."""
    await scheduler_service.stop()
    await engine.dispose()
    logger.info("Shutdown complete")


# Include API routers
app.include_router(health.router)
app.include_router(sync.router)
app.include_router(webhooks.router)
app.include_router(metrics.router)
