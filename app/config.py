from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()

# Async SQLAlchemy URL; production points this at Postgres through asyncpg
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./metrics_sync.db")
DATABASE_ECHO = os.getenv("DATABASE_ECHO", "false").lower() in ("1", "true", "yes")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
FRONTEND_ORIGIN = os.getenv("FRONTEND_ORIGIN", "http://localhost:3000")

# Credentials are stored Fernet-encrypted; without a key tokens are read as plain text
ENCRYPTION_KEY = os.getenv("ENCRYPTION_KEY", "")

# Upstream APIs
META_API_VERSION = os.getenv("META_API_VERSION", "v18.0")
META_API_BASE = f"https://graph.facebook.com/{META_API_VERSION}"
PIPEFY_API_URL = os.getenv("PIPEFY_API_URL", "https://api.pipefy.com/graphql")

# Sync behaviour
SYNC_LOOKBACK_DAYS = int(os.getenv("SYNC_LOOKBACK_DAYS", "30"))
SYNC_SOURCE_TIMEOUT_SECONDS = float(os.getenv("SYNC_SOURCE_TIMEOUT_SECONDS", "600"))
SYNC_INTERVAL_SECONDS = int(os.getenv("SYNC_INTERVAL_SECONDS", "86400"))
SYNC_TIMEZONE = os.getenv("SYNC_TIMEZONE", "America/Sao_Paulo")
HTTP_RETRY_ATTEMPTS = int(os.getenv("HTTP_RETRY_ATTEMPTS", "3"))
HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", "30"))
SCHEDULER_ENABLED = os.getenv("SCHEDULER_ENABLED", "true").lower() in ("1", "true", "yes")
