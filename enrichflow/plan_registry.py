"""Named enrichment plans: defaults, loading from config, and lookup."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from .errors import PlanNotFound, RegistryFrozen
from .models import Plan

log = logging.getLogger(__name__)

# Standard plans; a plans file can override or extend them by name.
DEFAULT_PLANS: dict[str, dict] = {
    "basic": {
        "description": "Basic free enrichment using public sources",
        "fields": ["company", "domain", "website"],
        "maxCostCents": 0,
        "tiers": ["free"],
    },
    "standard": {
        "description": "Standard enrichment with cheap providers",
        "fields": ["company", "domain", "website", "email", "phone"],
        "maxCostCents": 50,
        "tiers": ["free", "cheap"],
    },
    "premium": {
        "description": "Premium enrichment with all providers",
        "fields": ["company", "domain", "website", "email", "phone", "linkedin_url", "bio"],
        "maxCostCents": 200,
        "tiers": ["free", "cheap", "premium"],
    },
}


def plan_from_dict(name: str, entry: dict) -> Plan:
    """Build a Plan from one plan-source entry.

    Accepts ``maxCostCents`` or ``max_cost_cents``.  Raises ValueError on
    missing or malformed entries.
    """
    if not isinstance(entry, dict):
        raise ValueError(f"Plan '{name}': expected a mapping, got {type(entry).__name__}.")
    if "fields" not in entry:
        raise ValueError(f"Plan '{name}': 'fields' is required.")
    cost = entry.get("maxCostCents", entry.get("max_cost_cents", 0))
    if isinstance(cost, bool) or not isinstance(cost, int):
        raise ValueError(f"Plan '{name}': maxCostCents must be an integer.")
    return Plan(
        name=name,
        description=entry.get("description", ""),
        fields=tuple(entry["fields"]),
        max_cost_cents=cost,
        tiers=tuple(entry.get("tiers", ())),
    )


def load_plans(mapping: dict[str, dict]) -> list[Plan]:
    """Build plans from a ``name -> entry`` mapping, in mapping order."""
    return [plan_from_dict(name, entry) for name, entry in mapping.items()]


def read_plans_file(path: Path) -> dict[str, dict]:
    """Read a JSON plans file. Returns the raw mapping."""
    data = json.loads(Path(path).read_text())
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a JSON object of plans.")
    return data


class PlanRegistry:
    """Plans by name. Last registration of a name wins."""

    def __init__(self, plans: list[Plan] | None = None) -> None:
        self._plans: dict[str, Plan] = {}
        self._frozen = False
        for plan in plans or []:
            self.register(plan)

    def register(self, plan: Plan) -> None:
        if self._frozen:
            raise RegistryFrozen("Plan registry")
        if plan.name in self._plans:
            log.info("Plan %r re-registered; replacing previous definition", plan.name)
        self._plans[plan.name] = plan

    def load(self, mapping: dict[str, dict]) -> int:
        """Register every plan in a plan-source mapping. Returns the count."""
        plans = load_plans(mapping)
        for plan in plans:
            self.register(plan)
        return len(plans)

    def resolve(self, name: str) -> Plan:
        """Return the plan called *name*. Raises PlanNotFound."""
        plan = self._plans.get(name)
        if plan is None:
            raise PlanNotFound(name)
        return plan

    def list_plans(self) -> list[Plan]:
        return list(self._plans.values())

    def __contains__(self, name: str) -> bool:
        return name in self._plans

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen
