"""Persist finished runs and their attempt logs; read them back."""

from __future__ import annotations

import logging
import sqlite3

from .database import get_connection
from .errors import PersistenceError
from .models import EnrichmentRun

log = logging.getLogger(__name__)

_RUN_COLUMNS = (
    "id", "entity_id", "plan_name", "status", "cost_cents", "max_cost_cents",
    "fields_requested", "fields_resolved", "fields_missing", "provenance", "cancelled",
    "started_at", "completed_at", "created_at",
)
_ATTEMPT_COLUMNS = (
    "id", "run_id", "seq", "provider", "tier", "fields", "outcome",
    "cost_cents", "error_message", "duration_ms", "created_at",
)


def _insert_sql(table: str, columns: tuple[str, ...]) -> str:
    return (
        f"INSERT INTO {table} ({', '.join(columns)}) "
        f"VALUES ({', '.join(':' + c for c in columns)})"
    )


_INSERT_RUN = _insert_sql("enrichment_runs", _RUN_COLUMNS) + " ON CONFLICT(id) DO NOTHING"
_INSERT_ATTEMPT = _insert_sql("enrichment_attempts", _ATTEMPT_COLUMNS)


class RunRecorder:
    """Run audit store. Recording is idempotent by run id."""

    def __init__(self, *, db_path=None) -> None:
        self.db_path = db_path

    def record(self, run: EnrichmentRun) -> bool:
        """Store *run* and its attempts in one transaction.

        Returns False, writing nothing, when the run id is already stored.
        Raises ValueError for an unfinished run and PersistenceError when
        the store fails.
        """
        if not run.is_finished:
            raise ValueError(f"Run {run.id} has no terminal status; cannot record it.")
        try:
            with get_connection(self.db_path) as conn:
                cursor = conn.execute(_INSERT_RUN, run.to_row())
                if cursor.rowcount == 0:
                    log.info("Run %s already recorded; skipping", run.id)
                    return False
                for seq, attempt in enumerate(run.attempts):
                    conn.execute(_INSERT_ATTEMPT, attempt.to_row(run_id=run.id, seq=seq))
        except sqlite3.Error as exc:
            log.exception("Recording run %s failed", run.id)
            raise PersistenceError(run.id, str(exc)) from exc
        return True

    def has_run(self, run_id: str) -> bool:
        with get_connection(self.db_path) as conn:
            row = conn.execute(
                "SELECT 1 FROM enrichment_runs WHERE id = ?", (run_id,)
            ).fetchone()
        return row is not None

    def get_run_attempts(self, run_id: str) -> list[dict]:
        """Attempt rows of a run in call order."""
        with get_connection(self.db_path) as conn:
            rows = conn.execute(
                "SELECT * FROM enrichment_attempts WHERE run_id = ? ORDER BY seq",
                (run_id,),
            ).fetchall()
        return [dict(r) for r in rows]

    def get_run(self, run_id: str) -> EnrichmentRun | None:
        """Fetch a single run, attempts included."""
        with get_connection(self.db_path) as conn:
            row = conn.execute(
                "SELECT * FROM enrichment_runs WHERE id = ?", (run_id,)
            ).fetchone()
        if not row:
            return None
        return EnrichmentRun.from_row(row, attempts=self.get_run_attempts(run_id))

    def get_runs(
        self,
        entity_id: str | None = None,
        plan_name: str | None = None,
        status: str | None = None,
    ) -> list[EnrichmentRun]:
        """List runs, newest first, optionally filtered."""
        clauses, params = [], []
        if entity_id:
            clauses.append("entity_id = ?")
            params.append(entity_id)
        if plan_name:
            clauses.append("plan_name = ?")
            params.append(plan_name)
        if status:
            clauses.append("status = ?")
            params.append(status)
        sql = "SELECT * FROM enrichment_runs"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY created_at DESC"

        with get_connection(self.db_path) as conn:
            rows = conn.execute(sql, params).fetchall()
            attempts: dict[str, list] = {}
            if rows:
                marks = ", ".join("?" for _ in rows)
                for a in conn.execute(
                    f"SELECT * FROM enrichment_attempts WHERE run_id IN ({marks}) "
                    "ORDER BY run_id, seq",
                    [r["id"] for r in rows],
                ).fetchall():
                    attempts.setdefault(a["run_id"], []).append(a)
        return [EnrichmentRun.from_row(r, attempts=attempts.get(r["id"], [])) for r in rows]
