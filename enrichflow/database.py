"""SQLite connection management, schema initialization, and helpers."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from . import config

log = logging.getLogger(__name__)

_SCHEMA_SQL = """\
-- Business entities (companies and contacts); field values live in one of
-- the two storage models below, chosen per tenant.
CREATE TABLE IF NOT EXISTS entities (
    id          TEXT PRIMARY KEY,
    entity_type TEXT NOT NULL,
    tenant_id   TEXT NOT NULL,
    name        TEXT NOT NULL,
    status      TEXT DEFAULT 'active',
    created_at  TEXT NOT NULL,
    updated_at  TEXT NOT NULL,
    CHECK (entity_type IN ('company', 'contact'))
);

-- Optimized model: one JSON document per entity
CREATE TABLE IF NOT EXISTS entity_records (
    entity_id  TEXT PRIMARY KEY REFERENCES entities(id) ON DELETE CASCADE,
    data       TEXT NOT NULL DEFAULT '{}',
    updated_at TEXT NOT NULL
);

-- Legacy model: one row per (entity, field) cell
CREATE TABLE IF NOT EXISTS entity_cells (
    entity_id  TEXT NOT NULL REFERENCES entities(id) ON DELETE CASCADE,
    field_name TEXT NOT NULL,
    value      TEXT,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (entity_id, field_name)
);

-- Per-tenant settings
CREATE TABLE IF NOT EXISTS settings (
    id                  TEXT PRIMARY KEY,
    tenant_id           TEXT NOT NULL,
    setting_name        TEXT NOT NULL,
    setting_value       TEXT,
    setting_description TEXT,
    setting_default     TEXT,
    created_at          TEXT NOT NULL,
    updated_at          TEXT NOT NULL,
    UNIQUE(tenant_id, setting_name)
);

-- One row per finished (plan, entity) run
CREATE TABLE IF NOT EXISTS enrichment_runs (
    id               TEXT PRIMARY KEY,
    entity_id        TEXT NOT NULL,
    plan_name        TEXT NOT NULL,
    status           TEXT NOT NULL,
    cost_cents       INTEGER NOT NULL DEFAULT 0,
    max_cost_cents   INTEGER NOT NULL DEFAULT 0,
    fields_requested TEXT NOT NULL DEFAULT '[]',
    fields_resolved  TEXT NOT NULL DEFAULT '{}',
    fields_missing   TEXT NOT NULL DEFAULT '[]',
    provenance       TEXT NOT NULL DEFAULT '[]',
    cancelled        INTEGER DEFAULT 0,
    started_at       TEXT,
    completed_at     TEXT,
    created_at       TEXT NOT NULL,
    CHECK (status IN ('completed', 'partial-budget-exhausted',
                      'partial-no-provider', 'failed'))
);

-- Ordered attempt log of a run
CREATE TABLE IF NOT EXISTS enrichment_attempts (
    id            TEXT PRIMARY KEY,
    run_id        TEXT NOT NULL REFERENCES enrichment_runs(id) ON DELETE CASCADE,
    seq           INTEGER NOT NULL,
    provider      TEXT NOT NULL,
    tier          TEXT NOT NULL,
    fields        TEXT NOT NULL DEFAULT '[]',
    outcome       TEXT NOT NULL,
    cost_cents    INTEGER NOT NULL DEFAULT 0,
    error_message TEXT,
    duration_ms   INTEGER,
    created_at    TEXT NOT NULL,
    UNIQUE(run_id, seq),
    CHECK (outcome IN ('success', 'empty', 'failed'))
);
"""

_INDEX_SQL = """\
CREATE INDEX IF NOT EXISTS idx_entities_tenant   ON entities(tenant_id);
CREATE INDEX IF NOT EXISTS idx_entities_type     ON entities(entity_type);
CREATE INDEX IF NOT EXISTS idx_cells_field       ON entity_cells(field_name);
CREATE INDEX IF NOT EXISTS idx_er_entity         ON enrichment_runs(entity_id);
CREATE INDEX IF NOT EXISTS idx_er_plan           ON enrichment_runs(plan_name);
CREATE INDEX IF NOT EXISTS idx_er_status         ON enrichment_runs(status);
CREATE INDEX IF NOT EXISTS idx_ea_run            ON enrichment_attempts(run_id);
"""


def _db_path() -> Path:
    return config.DB_PATH


def init_db(db_path: Path | None = None) -> None:
    """Create the database file and initialize all tables and indexes."""
    path = db_path or _db_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(str(path))
    try:
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA foreign_keys=ON;")
        conn.executescript(_SCHEMA_SQL)
        conn.executescript(_INDEX_SQL)
        conn.commit()
        log.info("Database initialized at %s", path)
    finally:
        conn.close()


@contextmanager
def get_connection(db_path: Path | None = None) -> Iterator[sqlite3.Connection]:
    """Context manager yielding a SQLite connection with WAL and FK enforcement.

    Commits on clean exit, rolls back on exception.
    """
    path = db_path or _db_path()
    conn = sqlite3.connect(str(path), timeout=30)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA foreign_keys=ON;")
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()
