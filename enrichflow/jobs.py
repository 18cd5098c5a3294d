"""Job entry point called by the workflow runtime for each (plan, entity)."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Iterator

from .bootstrap import default_orchestrator
from .errors import InvalidJobPayload, PersistenceError
from .models import AttemptOutcome, EnrichmentRun, RunStatus
from .orchestrator import Orchestrator

log = logging.getLogger(__name__)


def _pick(payload: dict, *keys: str) -> str | None:
    for key in keys:
        value = payload.get(key)
        if value not in (None, ""):
            return str(value)
    return None


def parse_payload(payload) -> tuple[str, str, str | None]:
    """(plan_name, entity_id, run_id) from a trigger payload.

    Accepts ``planName``/``entityId``/``runId`` or their snake_case forms.
    """
    if not isinstance(payload, dict):
        raise InvalidJobPayload("Enrichment job payload must be an object")
    plan_name = _pick(payload, "planName", "plan_name")
    entity_id = _pick(payload, "entityId", "entity_id")
    missing = [k for k, v in (("planName", plan_name), ("entityId", entity_id)) if not v]
    if missing:
        raise InvalidJobPayload(f"Missing required key(s): {', '.join(missing)}")
    return plan_name, entity_id, _pick(payload, "runId", "run_id")


def _result(run: EnrichmentRun, *, replayed: bool) -> dict:
    result = run.summary()
    result["replayed"] = replayed
    result["error"] = None
    if run.status == RunStatus.FAILED:
        errors = [a.error for a in run.attempts
                  if a.outcome == AttemptOutcome.FAILED and a.error]
        result["error"] = "; ".join(errors) or "All provider attempts failed"
    return result


class _RunClaims:
    """Per-run-id locks so jobs sharing a run id execute one at a time."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, list] = {}

    @contextmanager
    def hold(self, run_id: str) -> Iterator[None]:
        with self._guard:
            entry = self._locks.setdefault(run_id, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if not entry[1]:
                    del self._locks[run_id]


_claims = _RunClaims()


def handle_enrichment_job(
    payload: dict,
    *,
    orchestrator: Orchestrator | None = None,
    cancel_event: threading.Event | None = None,
) -> dict:
    """Run one enrichment job and return its summary.

    A run id that is already recorded is not executed again; its stored
    outcome is returned with ``replayed=True``.  Jobs in this process that
    share a run id wait for each other; if another process records the id
    first, the stored outcome is returned the same way.  Configuration
    errors and PersistenceError propagate to the runtime.
    """
    plan_name, entity_id, run_id = parse_payload(payload)
    if orchestrator is None:
        orchestrator = default_orchestrator()

    recorder = orchestrator.recorder
    if not run_id or recorder is None:
        run = _execute(orchestrator, plan_name, entity_id, run_id, cancel_event)
        return _result(run, replayed=False)

    with _claims.hold(run_id):
        previous = recorder.get_run(run_id)
        if previous is not None:
            log.info("Run %s already recorded; replaying stored outcome", run_id)
            return _result(previous, replayed=True)

        run = _execute(orchestrator, plan_name, entity_id, run_id, cancel_event)
        if not run.recorded:
            stored = recorder.get_run(run_id)
            if stored is not None:
                log.info("Run %s was recorded by another job; returning stored outcome",
                         run_id)
                return _result(stored, replayed=True)
    return _result(run, replayed=False)


def _execute(orchestrator, plan_name, entity_id, run_id, cancel_event) -> EnrichmentRun:
    try:
        return orchestrator.run(plan_name, entity_id, run_id=run_id, cancel_event=cancel_event)
    except PersistenceError:
        log.exception("Run for %s/%s finished but could not be recorded", plan_name, entity_id)
        raise
