"""Data access for the entities that plans are applied to."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from . import config, settings
from .database import get_connection
from .domain_resolver import company_domain
from .entity_store import adapter_for_tenant, store_for_mode
from .errors import EntityNotFound
from .models import EntityContext

ENTITY_TYPES = ("company", "contact")


def create_entity(
    entity_type: str,
    name: str,
    *,
    tenant_id: str | None = None,
    fields: dict | None = None,
    db_path=None,
) -> dict:
    """Create an entity with optional initial field values.

    Values go to the tenant's storage model in the same transaction as the
    entity row.  Raises ValueError on an unknown type or a duplicate name.
    """
    if entity_type not in ENTITY_TYPES:
        raise ValueError(f"Unknown entity type {entity_type!r}.")
    if not name or not name.strip():
        raise ValueError("Entity name is required.")
    tenant_id = tenant_id or config.DEFAULT_TENANT
    store = store_for_mode(settings.get_storage_mode(tenant_id, db_path=db_path))
    now = datetime.now(timezone.utc).isoformat()
    row = {
        "id": str(uuid.uuid4()),
        "entity_type": entity_type,
        "tenant_id": tenant_id,
        "name": name.strip(),
        "status": "active",
        "created_at": now,
        "updated_at": now,
    }

    with get_connection(db_path) as conn:
        dup = conn.execute(
            "SELECT id FROM entities WHERE tenant_id = ? AND entity_type = ? AND name = ?",
            (tenant_id, entity_type, row["name"]),
        ).fetchone()
        if dup:
            raise ValueError(f"{entity_type.capitalize()} '{row['name']}' already exists.")

        conn.execute(
            "INSERT INTO entities (id, entity_type, tenant_id, name, status, "
            "created_at, updated_at) "
            "VALUES (:id, :entity_type, :tenant_id, :name, :status, "
            ":created_at, :updated_at)",
            row,
        )
        if fields:
            store.write(conn, row["id"], fields, now)

    return row


def get_entity(entity_id: str, *, db_path=None) -> dict | None:
    with get_connection(db_path) as conn:
        row = conn.execute(
            "SELECT * FROM entities WHERE id = ?", (entity_id,)
        ).fetchone()
    return dict(row) if row else None


def list_entities(
    *,
    tenant_id: str | None = None,
    entity_type: str | None = None,
    db_path=None,
) -> list[dict]:
    """Active entities, optionally filtered, ordered by name."""
    query = "SELECT * FROM entities WHERE status = 'active'"
    params: list = []
    if tenant_id:
        query += " AND tenant_id = ?"
        params.append(tenant_id)
    if entity_type:
        query += " AND entity_type = ?"
        params.append(entity_type)
    query += " ORDER BY name"
    with get_connection(db_path) as conn:
        rows = conn.execute(query, params).fetchall()
    return [dict(r) for r in rows]


def get_entity_fields(entity_id: str, *, db_path=None) -> dict:
    """Field values of an entity, active storage model first."""
    entity = get_entity(entity_id, db_path=db_path)
    if not entity:
        raise EntityNotFound(entity_id)
    return adapter_for_tenant(entity["tenant_id"], db_path=db_path).read_fields(entity_id)


def build_context(
    entity: dict,
    fields: dict | None = None,
    *,
    timeout: float | None = None,
) -> EntityContext:
    """Identity handed to providers.

    ``domain`` comes from an explicit domain field, else the website URL,
    else a non-public email address.
    """
    fields = dict(fields or {})
    email = str(fields.get("email") or "")
    domain = str(fields.get("domain") or "") or company_domain(
        website=str(fields.get("website") or ""), email=email,
    ) or ""
    return EntityContext(
        entity_id=entity["id"],
        entity_type=entity["entity_type"],
        tenant_id=entity["tenant_id"],
        name=entity["name"],
        domain=domain,
        email=email,
        fields=fields,
        timeout=timeout if timeout is not None else config.PROVIDER_TIMEOUT_SECONDS,
    )
