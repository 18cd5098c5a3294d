"""Apply a plan to one entity: walk tiers and providers within budget."""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Iterator

from . import settings
from .entities import build_context, get_entity
from .entity_store import adapter_for_tenant
from .enrichment_provider import EnrichmentProvider, FieldValue, TierCatalog
from .errors import EntityNotFound, EntityWriteError
from .ledger import FieldLedger, is_empty_value
from .models import Attempt, AttemptOutcome, EnrichmentRun, RunStatus
from .plan_registry import PlanRegistry
from .run_recorder import RunRecorder

log = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _unwrap(value) -> tuple:
    """(value, confidence, source_url) for a plain value or a FieldValue."""
    if isinstance(value, FieldValue):
        return value.field_value, value.confidence, value.source_url
    return value, None, ""


class Orchestrator:
    """Drives provider calls for (plan, entity) runs.

    Holds only read-only collaborators, so one instance can serve
    concurrent runs; each run gets its own ledger.
    """

    def __init__(
        self,
        registry: PlanRegistry,
        catalog: TierCatalog,
        *,
        recorder: RunRecorder | None = None,
        db_path=None,
    ) -> None:
        self.registry = registry
        self.catalog = catalog
        self.recorder = recorder
        self.db_path = db_path

    def _candidates(self, tiers) -> Iterator[tuple[str, EnrichmentProvider]]:
        """(tier, provider) pairs in plan tier order, then catalog priority."""
        for tier in tiers:
            for provider in self.catalog.providers_for_tier(tier):
                yield tier, provider

    def run(
        self,
        plan_name: str,
        entity_id: str,
        *,
        run_id: str | None = None,
        cancel_event: threading.Event | None = None,
    ) -> EnrichmentRun:
        """Execute *plan_name* against *entity_id* and return the finished run.

        Raises PlanNotFound, UnknownTier or EntityNotFound before anything
        is written.  PersistenceError from the recorder propagates after
        entity writes have been applied.
        """
        plan = self.registry.resolve(plan_name)
        self.catalog.validate_plan(plan)
        entity = get_entity(entity_id, db_path=self.db_path)
        if not entity:
            raise EntityNotFound(entity_id)

        tenant_id = entity["tenant_id"]
        adapter = adapter_for_tenant(tenant_id, db_path=self.db_path)
        timeout = settings.get_provider_timeout(tenant_id, db_path=self.db_path)
        known = adapter.read_fields(entity_id)
        ledger = FieldLedger(plan.fields, known, plan.max_cost_cents)

        run = EnrichmentRun(
            entity_id=entity_id,
            plan_name=plan.name,
            max_cost_cents=plan.max_cost_cents,
            fields_requested=list(plan.fields),
            started_at=_now_iso(),
        )
        if run_id:
            run.id = run_id
        log.info("Run %s: plan %s on %s %s (%d outstanding, %d already filled, budget %d)",
                 run.id, plan.name, entity["entity_type"], entity_id,
                 len(ledger.outstanding), len(ledger.prefilled), plan.max_cost_cents)

        context = build_context(entity, known, timeout=timeout)
        budget_blocked: set[str] = set()

        for tier, provider in self._candidates(plan.tiers):
            if cancel_event is not None and cancel_event.is_set():
                run.cancelled = True
                log.info("Run %s: cancelled", run.id)
                break
            if ledger.is_complete:
                break
            if not provider.supports(entity["entity_type"]):
                continue

            requested = ledger.outstanding_for(provider.capable_fields)
            if not requested:
                log.debug("Run %s: skip %s (no outstanding fields)", run.id, provider.name)
                continue
            if not ledger.can_afford(provider.cost_cents):
                budget_blocked.update(requested)
                log.debug("Run %s: skip %s (cost %d, remaining %d)",
                          run.id, provider.name, provider.cost_cents, ledger.remaining_cents)
                continue

            attempt, values, sources = self._attempt(
                provider, tier, context, requested, entity_id, adapter)
            run.attempts.append(attempt)
            if attempt.outcome != AttemptOutcome.SUCCESS:
                continue

            # First field carries the call's cost
            charge = provider.cost_cents
            for name in values:
                confidence, source_url = sources[name]
                ledger.mark_resolved(name, provider.name, charge,
                                     confidence=confidence, source_url=source_url)
                charge = 0
            ledger.debit(provider.cost_cents)
            known.update(values)
            context = build_context(entity, known, timeout=timeout)

        run.status = self._final_status(ledger, run, budget_blocked)
        run.fields_resolved = ledger.resolved_by_provider()
        run.provenance = ledger.provenance()
        run.fields_missing = list(ledger.outstanding)
        run.cost_cents = ledger.spent_cents
        run.completed_at = _now_iso()
        log.info("Run %s: %s, %d resolved, %d missing, cost %d",
                 run.id, run.status.value, len(run.fields_resolved),
                 len(run.fields_missing), run.cost_cents)

        if self.recorder is not None:
            run.recorded = self.recorder.record(run)
            if not run.recorded:
                log.warning("Run %s: a run with this id was already recorded", run.id)
        return run

    def _attempt(self, provider, tier, context, requested, entity_id, adapter):
        """Call one provider and persist what it returns.

        Returns ``(attempt, usable_values, sources)`` where *sources* maps
        each usable field to ``(confidence, source_url)``.  Never raises for
        provider or write failures; those become failed attempts.
        """
        start = time.monotonic()

        def finish(outcome, fields=(), cost=0, error=None):
            return Attempt(
                provider=provider.name,
                tier=tier,
                fields=list(fields) or list(requested),
                outcome=outcome,
                cost_cents=cost,
                error=error,
                duration_ms=int((time.monotonic() - start) * 1000),
            )

        try:
            values = provider.attempt(context, list(requested))
        except Exception as exc:
            log.warning("Provider %s failed for %s: %s", provider.name, entity_id, exc)
            return finish(AttemptOutcome.FAILED, error=str(exc) or type(exc).__name__), {}, {}

        if values is None:
            values = {}
        if not isinstance(values, dict):
            log.warning("Provider %s returned %s instead of a mapping",
                        provider.name, type(values).__name__)
            return finish(AttemptOutcome.FAILED,
                          error=f"unexpected result type {type(values).__name__}"), {}, {}

        usable = {}
        sources = {}
        for name in requested:
            if name not in values:
                continue
            value, confidence, source_url = _unwrap(values[name])
            if is_empty_value(value):
                continue
            usable[name] = value
            sources[name] = (confidence, source_url)
        if not usable:
            log.debug("Provider %s found nothing for %s", provider.name, entity_id)
            return finish(AttemptOutcome.EMPTY), {}, {}

        try:
            adapter.write_fields(entity_id, usable)
        except EntityWriteError as exc:
            log.exception("Writing %s results to %s failed", provider.name, entity_id)
            return finish(AttemptOutcome.FAILED, usable, error=exc.message), {}, {}

        return finish(AttemptOutcome.SUCCESS, usable, cost=provider.cost_cents), usable, sources

    @staticmethod
    def _final_status(ledger: FieldLedger, run: EnrichmentRun, budget_blocked: set) -> RunStatus:
        if ledger.is_complete:
            return RunStatus.COMPLETED
        if (
            run.attempts
            and not ledger.resolved_by_provider()
            and all(a.outcome == AttemptOutcome.FAILED for a in run.attempts)
        ):
            return RunStatus.FAILED
        if budget_blocked.intersection(ledger.outstanding):
            return RunStatus.PARTIAL_BUDGET_EXHAUSTED
        return RunStatus.PARTIAL_NO_PROVIDER
