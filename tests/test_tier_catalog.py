"""Tests for the provider interface and the tier catalog."""

from __future__ import annotations

import pytest

from enrichflow.enrichment_provider import (
    AUTO_ACCEPT_THRESHOLD,
    EnrichmentProvider,
    FieldValue,
    ProviderTier,
    TierCatalog,
    best_values,
)
from enrichflow.errors import RegistryFrozen, UnknownTier
from enrichflow.models import Plan


class StubProvider(EnrichmentProvider):
    def __init__(self, name, tier="free", fields=(), cost=0):
        self._name = name
        self._tier = tier
        self._fields = frozenset(fields)
        self._cost = cost

    @property
    def name(self) -> str:
        return self._name

    @property
    def tier(self) -> str:
        return self._tier

    @property
    def capable_fields(self) -> frozenset[str]:
        return self._fields

    @property
    def cost_cents(self) -> int:
        return self._cost

    def attempt(self, context, requested_fields):
        return {}


class TestFieldValues:
    def test_field_value_defaults(self):
        fv = FieldValue(field_name="industry", field_value="Tech")
        assert fv.confidence == 0.0
        assert fv.source_url == ""

    def test_best_values_highest_confidence_wins(self):
        values = best_values([
            FieldValue("phone", "111", 0.7),
            FieldValue("phone", "222", 0.9),
            FieldValue("email", "a@acme.com", 0.8),
        ])
        assert values == {"phone": "222", "email": "a@acme.com"}

    def test_best_values_drops_low_confidence(self):
        assert best_values([FieldValue("phone", "111", AUTO_ACCEPT_THRESHOLD - 0.1)]) == {}

    def test_supports_default_entity_types(self):
        p = StubProvider("p", fields=["email"])
        assert p.supports("company")
        assert p.supports("contact")
        assert not p.supports("deal")


class TestTierCatalog:
    def test_known_tiers_registered_empty(self):
        catalog = TierCatalog()
        assert catalog.tiers() == ["free", "cheap", "premium"]
        assert catalog.providers_for_tier("premium") == ()

    def test_registration_order_is_priority(self):
        catalog = TierCatalog()
        a = StubProvider("a", "cheap", ["email"], 5)
        b = StubProvider("b", "cheap", ["email"], 1)
        catalog.register(a)
        catalog.register(b)
        assert catalog.providers_for_tier("cheap") == (a, b)

    def test_enum_tier_accepted(self):
        catalog = TierCatalog()
        p = StubProvider("p", ProviderTier.PREMIUM, ["bio"], 10)
        catalog.register(p)
        assert catalog.providers_for_tier("premium") == (p,)
        assert catalog.providers_for_tier(ProviderTier.PREMIUM) == (p,)

    def test_reregister_keeps_slot(self):
        catalog = TierCatalog()
        catalog.register(StubProvider("a", "free", ["company"]))
        catalog.register(StubProvider("b", "free", ["company"]))
        replacement = StubProvider("a", "free", ["company", "domain"])
        catalog.register(replacement)
        providers = catalog.providers_for_tier("free")
        assert [p.name for p in providers] == ["a", "b"]
        assert providers[0] is replacement

    def test_reregister_in_other_tier_moves(self):
        catalog = TierCatalog()
        catalog.register(StubProvider("a", "free", ["company"]))
        catalog.register(StubProvider("a", "cheap", ["company"], 2))
        assert catalog.providers_for_tier("free") == ()
        assert [p.name for p in catalog.providers_for_tier("cheap")] == ["a"]

    def test_unknown_tier(self):
        with pytest.raises(UnknownTier) as exc_info:
            TierCatalog().providers_for_tier("platinum")
        assert exc_info.value.tier == "platinum"

    def test_validate_plan(self):
        catalog = TierCatalog()
        catalog.validate_plan(Plan(name="ok", fields=("email",), max_cost_cents=5,
                                   tiers=("free", "cheap")))
        with pytest.raises(UnknownTier):
            catalog.validate_plan(Plan(name="bad", fields=("email",), max_cost_cents=5,
                                       tiers=("free", "platinum")))

    def test_custom_tier(self):
        catalog = TierCatalog()
        catalog.add_tier("internal")
        p = StubProvider("crm", "internal", ["email"])
        catalog.register(p)
        assert catalog.providers_for_tier("internal") == (p,)

    def test_negative_cost_rejected(self):
        with pytest.raises(ValueError):
            TierCatalog().register(StubProvider("x", "cheap", ["email"], -1))

    def test_providers_for_field(self):
        catalog = TierCatalog()
        catalog.register(StubProvider("li", "premium", ["bio", "email"], 10))
        catalog.register(StubProvider("scrape", "free", ["email"]))
        catalog.register(StubProvider("search", "cheap", ["phone"], 3))
        assert [p.name for p in catalog.providers_for_field("email")] == ["scrape", "li"]
        assert [p.name for p in catalog.providers_for_field("email", ("premium",))] == ["li"]

    def test_list_and_get(self):
        catalog = TierCatalog()
        catalog.register(StubProvider("li", "premium", ["bio"], 10))
        catalog.register(StubProvider("scrape", "free", ["email"]))
        assert [p.name for p in catalog.list_providers()] == ["scrape", "li"]
        assert catalog.get_provider("li").cost_cents == 10
        assert catalog.get_provider("nope") is None

    def test_frozen_catalog(self):
        catalog = TierCatalog()
        catalog.freeze()
        with pytest.raises(RegistryFrozen):
            catalog.register(StubProvider("a", "free", ["email"]))
        with pytest.raises(RegistryFrozen):
            catalog.add_tier("internal")
