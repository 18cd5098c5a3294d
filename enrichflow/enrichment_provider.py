"""Enrichment provider interface, data types, and the tier catalog."""

from __future__ import annotations

import enum
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

from .errors import RegistryFrozen, UnknownTier
from .models import EntityContext, Plan

log = logging.getLogger(__name__)

# Minimum confidence for a scraped/inferred value to be handed back
AUTO_ACCEPT_THRESHOLD = 0.7


class ProviderTier(str, enum.Enum):
    """Cost tiers, cheapest first."""
    FREE = "free"
    CHEAP = "cheap"
    PREMIUM = "premium"


@dataclass
class FieldValue:
    """A single candidate value discovered by a provider."""
    field_name: str
    field_value: str
    confidence: float = 0.0
    source_url: str = ""


def best_candidates(
    field_values: list[FieldValue],
    threshold: float = AUTO_ACCEPT_THRESHOLD,
) -> dict[str, FieldValue]:
    """Collapse candidates to one per field (highest confidence wins).

    Candidates below *threshold* are dropped.  Ties keep the first seen.
    """
    best: dict[str, FieldValue] = {}
    for fv in field_values:
        if fv.confidence < threshold or not fv.field_value:
            continue
        current = best.get(fv.field_name)
        if current is None or fv.confidence > current.confidence:
            best[fv.field_name] = fv
    return best


def best_values(
    field_values: list[FieldValue],
    threshold: float = AUTO_ACCEPT_THRESHOLD,
) -> dict[str, str]:
    """Like best_candidates, but only the values."""
    return {
        name: fv.field_value
        for name, fv in best_candidates(field_values, threshold).items()
    }


class EnrichmentProvider(ABC):
    """Base class for enrichment providers."""

    @property
    @abstractmethod
    def name(self) -> str: ...

    @property
    @abstractmethod
    def tier(self) -> str: ...

    @property
    @abstractmethod
    def capable_fields(self) -> frozenset[str]: ...

    @property
    def cost_cents(self) -> int:
        """Charged once per successful call."""
        return 0

    @property
    def entity_types(self) -> tuple[str, ...]:
        return ("company", "contact")

    def supports(self, entity_type: str) -> bool:
        return entity_type in self.entity_types

    @abstractmethod
    def attempt(self, context: EntityContext, requested_fields: list[str]) -> dict:
        """Look up *requested_fields* for the entity.

        Returns a mapping of field name to value for whatever was found
        (possibly empty).  A value may be a FieldValue to report its
        confidence and source.  Raises on failure, including timeouts.
        """
        ...


def _tier_name(tier) -> str:
    return tier.value if isinstance(tier, enum.Enum) else str(tier)


# ---------------------------------------------------------------------------
# Tier catalog
# ---------------------------------------------------------------------------

class TierCatalog:
    """Ordered providers per tier name.

    Registration order is priority order within a tier.  The catalog is
    filled at startup and frozen before jobs are dispatched.
    """

    def __init__(self, tiers=tuple(ProviderTier)) -> None:
        self._tiers: dict[str, list[EnrichmentProvider]] = {
            _tier_name(t): [] for t in tiers
        }
        self._frozen = False

    def add_tier(self, tier: str) -> None:
        if self._frozen:
            raise RegistryFrozen("Tier catalog")
        self._tiers.setdefault(_tier_name(tier), [])

    def register(self, provider: EnrichmentProvider) -> None:
        """Register a provider under its tier.

        A provider whose name is already registered is replaced in place,
        keeping its priority slot.
        """
        if self._frozen:
            raise RegistryFrozen("Tier catalog")
        if provider.cost_cents < 0:
            raise ValueError(f"Provider '{provider.name}' has a negative cost.")
        tier = _tier_name(provider.tier)
        for providers in self._tiers.values():
            for i, existing in enumerate(providers):
                if existing.name == provider.name:
                    if _tier_name(existing.tier) == tier:
                        providers[i] = provider
                        return
                    del providers[i]
                    break
        self._tiers.setdefault(tier, []).append(provider)
        log.debug("Registered provider %s (tier=%s, cost=%d)",
                  provider.name, tier, provider.cost_cents)

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def tiers(self) -> list[str]:
        return list(self._tiers)

    def providers_for_tier(self, tier: str) -> tuple[EnrichmentProvider, ...]:
        """Providers of *tier* in priority order. Raises UnknownTier."""
        name = _tier_name(tier)
        if name not in self._tiers:
            raise UnknownTier(name)
        return tuple(self._tiers[name])

    def validate_plan(self, plan: Plan) -> None:
        """Raise UnknownTier for the first tier of *plan* the catalog lacks."""
        for tier in plan.tiers:
            if tier not in self._tiers:
                raise UnknownTier(tier)

    def get_provider(self, name: str) -> EnrichmentProvider | None:
        for provider in self.list_providers():
            if provider.name == name:
                return provider
        return None

    def list_providers(self) -> list[EnrichmentProvider]:
        """All providers, tier order then priority."""
        return [p for providers in self._tiers.values() for p in providers]

    def providers_for_field(
        self, field_name: str, tiers: tuple[str, ...] | None = None,
    ) -> list[EnrichmentProvider]:
        """Providers able to supply *field_name*, optionally limited to *tiers*."""
        names = tiers if tiers is not None else tuple(self._tiers)
        result = []
        for tier in names:
            result.extend(
                p for p in self.providers_for_tier(tier) if field_name in p.capable_fields
            )
        return result
