"""Per-tenant settings with default cascade."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from . import config
from .database import get_connection

# Settings a tenant may override
STORAGE_MODE = "storage_mode"
PROVIDER_TIMEOUT = "provider_timeout"

# Hardcoded fallback defaults (last resort)
_HARDCODED_DEFAULTS = {
    STORAGE_MODE: "entity",
    PROVIDER_TIMEOUT: "30",
}


def _fallback(name: str) -> str | None:
    # Environment config wins over the hardcoded table
    if name == STORAGE_MODE:
        return config.DEFAULT_STORAGE_MODE
    if name == PROVIDER_TIMEOUT:
        return str(config.PROVIDER_TIMEOUT_SECONDS)
    return _HARDCODED_DEFAULTS.get(name)


def get_setting(tenant_id: str, name: str, *, db_path=None) -> str | None:
    """Resolve a setting value using the cascade:

    1. Tenant's setting value
    2. Setting default (from setting_default column)
    3. Environment config / hardcoded fallback
    """
    with get_connection(db_path) as conn:
        row = conn.execute(
            "SELECT setting_value, setting_default FROM settings "
            "WHERE tenant_id = ? AND setting_name = ?",
            (tenant_id, name),
        ).fetchone()
    if row:
        if row["setting_value"] is not None:
            return row["setting_value"]
        if row["setting_default"] is not None:
            return row["setting_default"]
    return _fallback(name)


def set_setting(
    tenant_id: str,
    name: str,
    value: str | None,
    *,
    description: str | None = None,
    default: str | None = None,
    db_path=None,
) -> dict:
    """Set a setting value. Creates the row if it doesn't exist (upsert)."""
    if name == STORAGE_MODE and value is not None and value not in config.STORAGE_MODES:
        raise ValueError(
            f"Invalid storage mode {value!r}; expected one of {', '.join(config.STORAGE_MODES)}."
        )
    now = datetime.now(timezone.utc).isoformat()

    with get_connection(db_path) as conn:
        existing = conn.execute(
            "SELECT id FROM settings WHERE tenant_id = ? AND setting_name = ?",
            (tenant_id, name),
        ).fetchone()

        if existing:
            setting_id = existing["id"]
            conn.execute(
                "UPDATE settings SET setting_value = ?, updated_at = ? WHERE id = ?",
                (value, now, setting_id),
            )
        else:
            setting_id = str(uuid.uuid4())
            conn.execute(
                "INSERT INTO settings "
                "(id, tenant_id, setting_name, setting_value, "
                "setting_description, setting_default, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (setting_id, tenant_id, name, value, description, default, now, now),
            )

    return {
        "id": setting_id,
        "tenant_id": tenant_id,
        "setting_name": name,
        "setting_value": value,
    }


def list_settings(tenant_id: str, *, db_path=None) -> list[dict]:
    with get_connection(db_path) as conn:
        rows = conn.execute(
            "SELECT * FROM settings WHERE tenant_id = ? ORDER BY setting_name",
            (tenant_id,),
        ).fetchall()
    return [dict(r) for r in rows]


def get_storage_mode(tenant_id: str, *, db_path=None) -> str:
    """The tenant's storage model, 'entity' or 'cell'."""
    mode = (get_setting(tenant_id, STORAGE_MODE, db_path=db_path) or "").lower()
    if mode not in config.STORAGE_MODES:
        return config.DEFAULT_STORAGE_MODE
    return mode


def get_provider_timeout(tenant_id: str, *, db_path=None) -> float:
    raw = get_setting(tenant_id, PROVIDER_TIMEOUT, db_path=db_path)
    try:
        return float(raw)
    except (TypeError, ValueError):
        return config.PROVIDER_TIMEOUT_SECONDS


def seed_default_settings(tenant_id: str, *, db_path=None) -> int:
    """Seed the tenant's settings rows with current defaults. Returns count."""
    defaults = [
        (STORAGE_MODE, config.DEFAULT_STORAGE_MODE, "Field storage model: entity or cell"),
        (PROVIDER_TIMEOUT, str(config.PROVIDER_TIMEOUT_SECONDS),
         "Seconds a provider call may take before it counts as failed"),
    ]
    for name, default, desc in defaults:
        set_setting(tenant_id, name, default,
                    description=desc, default=default, db_path=db_path)
    return len(defaults)
