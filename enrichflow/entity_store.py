"""Field storage for entities behind one read/write interface.

Two storage models exist side by side:

* ``entity`` -- one JSON document per entity in ``entity_records``.
* ``cell``   -- the legacy layout, one row per field in ``entity_cells``.

Which one an entity uses is a per-tenant setting.  Callers only see
:class:`EntityCellAdapter`, which writes to the active store and reads the
active store merged over the other one, so values written before a tenant
switched models stay visible.
"""

from __future__ import annotations

import json
import logging
import re
import sqlite3
from datetime import datetime, timezone
from typing import Protocol

from . import settings
from .database import get_connection
from .errors import EntityNotFound, EntityWriteError
from .ledger import is_empty_value

log = logging.getLogger(__name__)

_FIELD_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _encode(field_name: str, value) -> str:
    if not _FIELD_NAME_RE.match(field_name or ""):
        raise ValueError(f"Invalid field name {field_name!r}")
    return json.dumps(value, allow_nan=False)


class FieldStore(Protocol):
    """One storage model. Methods run inside the caller's connection."""

    mode: str

    def read(self, conn: sqlite3.Connection, entity_id: str) -> dict: ...

    def write(self, conn: sqlite3.Connection, entity_id: str, values: dict, now: str) -> None: ...


class EntityRecordStore:
    """JSON document per entity; fields are patched in place with json_set."""

    mode = "entity"

    def read(self, conn, entity_id):
        row = conn.execute(
            "SELECT data FROM entity_records WHERE entity_id = ?", (entity_id,),
        ).fetchone()
        if not row:
            return {}
        return json.loads(row["data"] or "{}")

    def write(self, conn, entity_id, values, now):
        conn.execute(
            "INSERT OR IGNORE INTO entity_records (entity_id, data, updated_at) "
            "VALUES (?, '{}', ?)",
            (entity_id, now),
        )
        for name, value in values.items():
            encoded = _encode(name, value)
            # name is validated above, so it is safe inside the JSON path
            conn.execute(
                "UPDATE entity_records "
                f"SET data = json_set(data, '$.\"{name}\"', json(?)), updated_at = ? "
                "WHERE entity_id = ?",
                (encoded, now, entity_id),
            )


class CellRecordStore:
    """Legacy row-per-field layout."""

    mode = "cell"

    def read(self, conn, entity_id):
        rows = conn.execute(
            "SELECT field_name, value FROM entity_cells WHERE entity_id = ? "
            "ORDER BY field_name",
            (entity_id,),
        ).fetchall()
        return {
            r["field_name"]: json.loads(r["value"]) if r["value"] is not None else None
            for r in rows
        }

    def write(self, conn, entity_id, values, now):
        for name, value in values.items():
            encoded = _encode(name, value)
            conn.execute(
                "INSERT INTO entity_cells (entity_id, field_name, value, updated_at) "
                "VALUES (?, ?, ?, ?) "
                "ON CONFLICT(entity_id, field_name) DO UPDATE SET "
                "value = excluded.value, updated_at = excluded.updated_at",
                (entity_id, name, encoded, now),
            )


STORE_TYPES = (EntityRecordStore, CellRecordStore)


def store_for_mode(mode: str) -> FieldStore:
    for store_type in STORE_TYPES:
        if store_type.mode == mode:
            return store_type()
    raise ValueError(f"Unknown storage mode {mode!r}")


def other_stores(mode: str) -> list[FieldStore]:
    """Stores for every model except *mode*."""
    return [store_type() for store_type in STORE_TYPES if store_type.mode != mode]


class EntityCellAdapter:
    """Read and write entity fields regardless of storage model."""

    def __init__(
        self,
        store: FieldStore,
        *,
        fallbacks: list[FieldStore] | tuple = (),
        db_path=None,
    ) -> None:
        self.store = store
        self.fallbacks = list(fallbacks)
        self.db_path = db_path

    @property
    def mode(self) -> str:
        return self.store.mode

    def read_fields(self, entity_id: str, names=None) -> dict:
        """Current values, optionally limited to *names*.

        A non-empty value in the active store wins; fields it lacks (or holds
        empty) are taken from the fallback stores in order.
        """
        with get_connection(self.db_path) as conn:
            data = self.store.read(conn, entity_id)
            for fallback in self.fallbacks:
                for name, value in fallback.read(conn, entity_id).items():
                    if is_empty_value(data.get(name)) and not is_empty_value(value):
                        data[name] = value
        if names is None:
            return data
        return {n: data[n] for n in names if n in data}

    def write_field(self, entity_id: str, name: str, value) -> None:
        self.write_fields(entity_id, {name: value})

    def write_fields(self, entity_id: str, values: dict) -> None:
        """Write all *values* in one transaction.

        Either every field is stored or none is; any failure is raised
        as EntityWriteError.
        """
        if not values:
            return
        now = datetime.now(timezone.utc).isoformat()
        try:
            with get_connection(self.db_path) as conn:
                self.store.write(conn, entity_id, values, now)
                conn.execute(
                    "UPDATE entities SET updated_at = ? WHERE id = ?", (now, entity_id),
                )
        except (sqlite3.Error, TypeError, ValueError) as exc:
            raise EntityWriteError(entity_id, str(exc)) from exc
        log.debug("Wrote %d field(s) to %s (%s)", len(values), entity_id, self.mode)


def adapter_for_tenant(tenant_id: str, *, db_path=None) -> EntityCellAdapter:
    """Adapter writing to *tenant_id*'s configured storage model.

    Reads fall back to the other model.
    """
    mode = settings.get_storage_mode(tenant_id, db_path=db_path)
    return EntityCellAdapter(
        store_for_mode(mode), fallbacks=other_stores(mode), db_path=db_path,
    )


def adapter_for_entity(entity_id: str, *, db_path=None) -> EntityCellAdapter:
    """Adapter for an existing entity's tenant. Raises EntityNotFound."""
    with get_connection(db_path) as conn:
        row = conn.execute(
            "SELECT tenant_id FROM entities WHERE id = ?", (entity_id,),
        ).fetchone()
    if not row:
        raise EntityNotFound(entity_id)
    return adapter_for_tenant(row["tenant_id"], db_path=db_path)
