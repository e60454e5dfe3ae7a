#!/usr/bin/env python3
"""Sync every company that has an active integration (the scheduled job, run once)."""

from __future__ import annotations

import asyncio
import logging
import os
import sys

from dotenv import load_dotenv

# Add the app directory to the path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from app.config import LOG_LEVEL
from app.db import engine
from app.services.sync_orchestrator import create_sync_orchestrator

load_dotenv()


async def sync_all() -> int:
    orchestrator = create_sync_orchestrator()
    try:
        results = await orchestrator.sync_all_active_companies()
    finally:
        await orchestrator.close()
        await engine.dispose()

    print(f"🔄 Synced {len(results)} companies")
    errors = 0
    for result in results:
        outcomes = result.get("outcomes", [])
        failed = [o["source"] for o in outcomes if o["status"] != "success"]
        if result.get("error") or failed:
            errors += 1
            print(f"❌ {result['company_id']}: {result.get('error') or ', '.join(failed)}")
        else:
            print(f"✅ {result['company_id']}: {len(outcomes)} sources")
    return 1 if errors else 0


if __name__ == "__main__":
    logging.basicConfig(level=getattr(logging, LOG_LEVEL.upper(), logging.INFO))
    sys.exit(asyncio.run(sync_all()))
