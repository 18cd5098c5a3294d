"""Configuration loading from environment variables and defaults."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
load_dotenv(_PROJECT_ROOT / ".env")


def _env(key: str, default: str = "") -> str:
    return os.environ.get(key, default)


def _env_bool(key: str, default: str = "false") -> bool:
    return _env(key, default).lower() in ("true", "1", "yes")


# Database
DB_PATH = Path(_env("ENRICH_DB_PATH", "") or str(_PROJECT_ROOT / "data" / "enrichflow.db"))

# Optional JSON file with extra plans (name -> {fields, maxCostCents, tiers})
PLANS_FILE = Path(_env("ENRICH_PLANS_FILE")) if _env("ENRICH_PLANS_FILE") else None

# Storage model used when a tenant has no explicit storage_mode setting
STORAGE_MODES = ("entity", "cell")
_storage_mode = _env("ENRICH_STORAGE_MODE", "entity").lower()
if _storage_mode not in STORAGE_MODES:
    logging.getLogger(__name__).warning(
        "Invalid ENRICH_STORAGE_MODE %r, falling back to 'entity'", _storage_mode,
    )
    _storage_mode = "entity"
DEFAULT_STORAGE_MODE = _storage_mode

# Tenant used when an entity is created without one
DEFAULT_TENANT = _env("ENRICH_DEFAULT_TENANT", "default")

# Providers
PROVIDER_TIMEOUT_SECONDS = float(_env("ENRICH_PROVIDER_TIMEOUT", "30"))
USE_MOCK_PROVIDERS = _env_bool("ENRICH_USE_MOCK_PROVIDERS")

# Rate limiting (requests per second)
SCRAPER_RATE_LIMIT = float(_env("ENRICH_SCRAPER_RATE_LIMIT", "2"))

# Logging
LOG_LEVEL = _env("ENRICH_LOG_LEVEL", "INFO").upper()
