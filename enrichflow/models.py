"""Data models for plans, runs, attempts, and entity context."""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class RunStatus(Enum):
    COMPLETED = "completed"
    PARTIAL_BUDGET_EXHAUSTED = "partial-budget-exhausted"
    PARTIAL_NO_PROVIDER = "partial-no-provider"
    FAILED = "failed"

    @property
    def is_partial(self) -> bool:
        return self in (RunStatus.PARTIAL_BUDGET_EXHAUSTED, RunStatus.PARTIAL_NO_PROVIDER)


class AttemptOutcome(Enum):
    SUCCESS = "success"
    EMPTY = "empty"
    FAILED = "failed"


@dataclass(frozen=True)
class Plan:
    """A named enrichment plan: target fields, cost ceiling, tier order."""

    name: str
    fields: tuple[str, ...]
    max_cost_cents: int = 0
    tiers: tuple[str, ...] = ()
    description: str = ""

    def __post_init__(self) -> None:
        # Accept lists from config and store tuples
        object.__setattr__(self, "fields", tuple(self.fields))
        object.__setattr__(self, "tiers", tuple(self.tiers))
        if not self.name:
            raise ValueError("Plan name is required.")
        if self.max_cost_cents < 0:
            raise ValueError(
                f"Plan '{self.name}': max_cost_cents must be >= 0, got {self.max_cost_cents}."
            )
        if len(set(self.fields)) != len(self.fields):
            raise ValueError(f"Plan '{self.name}': duplicate field names.")
        if self.max_cost_cents > 0 and not self.tiers:
            raise ValueError(
                f"Plan '{self.name}': a plan with a cost ceiling needs at least one tier."
            )


@dataclass(frozen=True)
class EntityContext:
    """Identity and known field values handed to providers."""

    entity_id: str
    entity_type: str
    tenant_id: str
    name: str = ""
    domain: str = ""
    email: str = ""
    fields: dict = field(default_factory=dict)
    timeout: float = 30.0

    def get(self, key: str, default=None):
        """Look up a known value, falling back to the identity attributes."""
        value = self.fields.get(key)
        if value not in (None, ""):
            return value
        return getattr(self, key, default) or default


@dataclass
class Attempt:
    """One provider call within a run."""

    provider: str
    tier: str
    fields: list[str]
    outcome: AttemptOutcome
    cost_cents: int = 0
    error: str | None = None
    duration_ms: int = 0

    def to_row(self, *, run_id: str, seq: int) -> dict:
        return {
            "id": str(uuid.uuid4()),
            "run_id": run_id,
            "seq": seq,
            "provider": self.provider,
            "tier": self.tier,
            "fields": json.dumps(self.fields),
            "outcome": self.outcome.value,
            "cost_cents": self.cost_cents,
            "error_message": self.error,
            "duration_ms": self.duration_ms,
            "created_at": _now_iso(),
        }

    @classmethod
    def from_row(cls, row) -> Attempt:
        r = dict(row)
        return cls(
            provider=r["provider"],
            tier=r["tier"],
            fields=json.loads(r["fields"] or "[]"),
            outcome=AttemptOutcome(r["outcome"]),
            cost_cents=r["cost_cents"] or 0,
            error=r.get("error_message"),
            duration_ms=r.get("duration_ms") or 0,
        )


@dataclass(frozen=True)
class LedgerEntry:
    """Resolution of one field within a run."""

    field_name: str
    provider: str
    cost_cents: int
    confidence: float | None = None
    source_url: str = ""


@dataclass
class EnrichmentRun:
    """One execution of a plan against one entity."""

    entity_id: str
    plan_name: str
    max_cost_cents: int = 0
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: RunStatus | None = None
    fields_requested: list[str] = field(default_factory=list)
    fields_resolved: dict[str, str] = field(default_factory=dict)
    fields_missing: list[str] = field(default_factory=list)
    # {field, provider, confidence, source_url} per field resolved by the run
    provenance: list[dict] = field(default_factory=list)
    cost_cents: int = 0
    attempts: list[Attempt] = field(default_factory=list)
    cancelled: bool = False
    started_at: str | None = None
    completed_at: str | None = None
    # False when another run with the same id was stored first
    recorded: bool = False

    @property
    def is_finished(self) -> bool:
        return self.status is not None

    @property
    def providers_used(self) -> list[str]:
        """Providers with at least one successful attempt, in call order."""
        return list(dict.fromkeys(
            a.provider for a in self.attempts if a.outcome == AttemptOutcome.SUCCESS
        ))

    def to_row(self) -> dict:
        """Serialize to a dict suitable for INSERT into enrichment_runs."""
        return {
            "id": self.id,
            "entity_id": self.entity_id,
            "plan_name": self.plan_name,
            "status": self.status.value if self.status else None,
            "cost_cents": self.cost_cents,
            "max_cost_cents": self.max_cost_cents,
            "fields_requested": json.dumps(self.fields_requested),
            "fields_resolved": json.dumps(self.fields_resolved),
            "fields_missing": json.dumps(self.fields_missing),
            "provenance": json.dumps(self.provenance),
            "cancelled": 1 if self.cancelled else 0,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "created_at": _now_iso(),
        }

    @classmethod
    def from_row(cls, row, *, attempts: list | None = None) -> EnrichmentRun:
        """Construct from a sqlite3.Row or dict, optionally with attempt rows."""
        r = dict(row)
        return cls(
            id=r["id"],
            entity_id=r["entity_id"],
            plan_name=r["plan_name"],
            max_cost_cents=r["max_cost_cents"] or 0,
            status=RunStatus(r["status"]),
            fields_requested=json.loads(r["fields_requested"] or "[]"),
            fields_resolved=json.loads(r["fields_resolved"] or "{}"),
            fields_missing=json.loads(r["fields_missing"] or "[]"),
            provenance=json.loads(r.get("provenance") or "[]"),
            cost_cents=r["cost_cents"] or 0,
            attempts=[Attempt.from_row(a) for a in attempts or []],
            cancelled=bool(r.get("cancelled")),
            started_at=r.get("started_at"),
            completed_at=r.get("completed_at"),
            recorded=True,
        )

    def summary(self) -> dict:
        """Plain-dict outcome for job callers."""
        return {
            "run_id": self.id,
            "entity_id": self.entity_id,
            "plan": self.plan_name,
            "status": self.status.value if self.status else None,
            "cost_cents": self.cost_cents,
            "fields_resolved": dict(self.fields_resolved),
            "fields_missing": list(self.fields_missing),
            "provenance": list(self.provenance),
            "providers_used": self.providers_used,
            "attempts": len(self.attempts),
            "cancelled": self.cancelled,
        }
