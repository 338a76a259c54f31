# app/config.py
import os

DATABASE_URL = os.getenv("DATABASE_URL") or "sqlite:///./vcard.db"

# Create tables on startup (SQLite dev setups); production runs `alembic upgrade head` instead.
DB_AUTO_CREATE = os.getenv("DB_AUTO_CREATE", "true").lower() == "true"

# Response cache configuration:
#   CACHE_BACKEND: "memory" | "none"
#   CACHE_TTL_SECONDS: default per-entry TTL; 0 means no expiration
#   CACHE_CHECK_PERIOD_SECONDS: background sweep interval; 0 disables the sweeper
#   CACHE_MAX_ENTRIES: hard cap on stored entries (new keys are dropped when full)
CACHE_BACKEND = os.getenv("CACHE_BACKEND", "memory").lower()
CACHE_TTL_SECONDS = int(os.getenv("CACHE_TTL_SECONDS", "60"))
CACHE_CHECK_PERIOD_SECONDS = int(os.getenv("CACHE_CHECK_PERIOD_SECONDS", "120"))
CACHE_MAX_ENTRIES = int(os.getenv("CACHE_MAX_ENTRIES", "1000"))

# Header carrying the opaque caller identity set by the upstream auth layer.
CALLER_ID_HEADER = os.getenv("CALLER_ID_HEADER", "X-User-Id")
