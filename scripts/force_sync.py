#!/usr/bin/env python3
"""
Force Sync Script

Runs the full ads + CRM sync for one company right now and prints one
outcome per source.

Usage:
    python3 scripts/force_sync.py <company_id> [--since YYYY-MM-DD] [--until YYYY-MM-DD]
"""

from __future__ import annotations

import argparse
import asyncio
import datetime as dt
import logging
import os
import sys
from uuid import UUID

from dotenv import load_dotenv

# Add the app directory to the path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from app.config import LOG_LEVEL
from app.db import engine
from app.services.errors import CompanyNotFoundError
from app.services.sync_orchestrator import create_sync_orchestrator

load_dotenv()


async def force_sync(company_id: UUID, since: dt.date | None, until: dt.date | None) -> int:
    orchestrator = create_sync_orchestrator()
    try:
        result = await orchestrator.sync_company(company_id, since=since, until=until)
    except (CompanyNotFoundError, ValueError) as e:
        print(f"❌ {e}")
        return 1
    finally:
        await orchestrator.close()
        await engine.dispose()

    print(f"🔄 Sync for company {result['company_id']} ({result['since']} -> {result['until']})")
    print("=" * 50)
    failed = 0
    for outcome in result["outcomes"]:
        icon = "✅" if outcome["status"] == "success" else "❌"
        print(f"{icon} {outcome['source']}: {outcome['records_processed']} records")
        if outcome["message"]:
            print(f"   {outcome['message']}")
        if outcome["status"] != "success":
            failed += 1
    if not result["outcomes"]:
        print("⚠️  No active integrations for this company")
    return 1 if failed else 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Force a sync for one company")
    parser.add_argument("company_id", type=UUID)
    parser.add_argument("--since", type=dt.date.fromisoformat, default=None)
    parser.add_argument("--until", type=dt.date.fromisoformat, default=None)
    args = parser.parse_args()

    logging.basicConfig(level=getattr(logging, LOG_LEVEL.upper(), logging.INFO))
    sys.exit(asyncio.run(force_sync(args.company_id, args.since, args.until)))


if __name__ == "__main__":
    main()
