"""Deterministic stand-in providers for local development and demos.

Values are derived from a stable hash of (field, entity id), so repeated
runs against the same entity return the same data.  Enabled with
``ENRICH_USE_MOCK_PROVIDERS=true``.
"""

from __future__ import annotations

from .enrichment_provider import EnrichmentProvider, FieldValue, ProviderTier, best_candidates
from .models import EntityContext

COMPANY_NAMES = [
    "TechVenture Inc", "DataFlow Systems", "CloudScale Solutions",
    "InnovateLab Corp", "NextGen Analytics", "Quantum Computing Ltd",
    "AI Dynamics", "BlockChain Ventures", "CyberSec Pro", "DevOps Hub",
]

INDUSTRIES = [
    "Technology", "Software", "SaaS", "FinTech", "HealthTech",
    "E-commerce", "AI/ML", "Cloud Computing", "Cybersecurity", "Data Analytics",
]

LOCATIONS = [
    "San Francisco, CA", "New York, NY", "Austin, TX", "Seattle, WA",
    "Boston, MA", "Denver, CO", "Chicago, IL", "Los Angeles, CA",
    "Miami, FL", "Portland, OR",
]

TITLES = [
    "CEO", "CTO", "VP of Engineering", "Head of Product", "Director of Sales",
    "Chief Data Officer", "VP of Marketing", "Engineering Manager",
    "Senior Software Engineer", "Product Manager",
]

# Every field some mock provider can produce
KNOWN_FIELDS = frozenset({
    "company", "domain", "website", "email", "phone", "linkedin_url", "bio",
    "description", "industry", "location", "title", "employee_count",
    "revenue", "funding", "founded_year",
})


def stable_hash(text: str) -> int:
    """31-multiplier string hash folded to a signed 32-bit int, absolute."""
    h = 0
    for ch in text:
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    if h & 0x80000000:
        h -= 1 << 32
    return abs(h)


def mock_value(field_name: str, entity_id: str):
    """Plausible value for *field_name*, stable for a given entity."""
    h = stable_hash(field_name + entity_id)
    key = field_name.lower()
    short = entity_id.replace("-", "")[:6]

    if key == "company" or ("company" in key and "name" in key):
        return COMPANY_NAMES[h % len(COMPANY_NAMES)]
    if "industry" in key:
        return INDUSTRIES[h % len(INDUSTRIES)]
    if "location" in key or "city" in key or "hq" in key:
        return LOCATIONS[h % len(LOCATIONS)]
    if "title" in key or "position" in key:
        return TITLES[h % len(TITLES)]
    if "employee" in key or "size" in key:
        return 50 + h % 5000
    if "revenue" in key or "funding" in key:
        return f"${1 + h % 100}M"
    if "email" in key:
        return f"contact-{short}@example.com"
    if "phone" in key:
        return f"+1-555-{h % 10000:04d}"
    if "linkedin" in key:
        return f"https://linkedin.com/company/mock-{short}"
    if key == "domain":
        return f"mock-{short}.example.com"
    if "website" in key or "url" in key:
        return f"https://mock-{short}.example.com"
    if "founded" in key or "year" in key:
        return 2010 + h % 15
    if "description" in key or "bio" in key:
        return f"Mock {field_name} for {entity_id[:8]}. Sample enriched data for testing."
    return f"Enriched: {field_name} ({entity_id[:8]})"


def mock_confidence(low: float, high: float, seed: str) -> float:
    return low + (stable_hash(seed) % 100) / 100 * (high - low)


class MockProvider(EnrichmentProvider):
    """Base for the hash-driven providers; subclasses set the class attributes."""

    provider_name = ""
    provider_tier = ProviderTier.FREE
    price_cents = 0
    fields: frozenset[str] = frozenset()
    confidence_range = (0.75, 0.9)

    @property
    def name(self) -> str:
        return self.provider_name

    @property
    def tier(self) -> ProviderTier:
        return self.provider_tier

    @property
    def capable_fields(self) -> frozenset[str]:
        return self.fields

    @property
    def cost_cents(self) -> int:
        return self.price_cents

    def attempt(self, context: EntityContext, requested_fields: list[str]) -> dict:
        low, high = self.confidence_range
        candidates = [
            FieldValue(
                field_name=f,
                field_value=mock_value(f, context.entity_id),
                confidence=mock_confidence(low, high, f + context.entity_id),
                source_url=f"mock://{self.provider_name}",
            )
            for f in requested_fields
            if f in self.fields
        ]
        return best_candidates(candidates)


class MockWebsiteScraper(MockProvider):
    provider_name = "website_scrape"
    provider_tier = ProviderTier.FREE
    price_cents = 0
    fields = frozenset({"company", "website", "domain", "description", "industry"})
    confidence_range = (0.75, 0.9)


class MockSearchProvider(MockProvider):
    provider_name = "search_result"
    provider_tier = ProviderTier.CHEAP
    price_cents = 3
    fields = frozenset({"company", "funding", "revenue", "employee_count"})
    confidence_range = (0.8, 0.92)


class MockAIAgentProvider(MockProvider):
    """Can attempt any known field."""
    provider_name = "ai_agent"
    provider_tier = ProviderTier.CHEAP
    price_cents = 2
    fields = KNOWN_FIELDS
    confidence_range = (0.75, 0.88)


class MockLinkedInProvider(MockProvider):
    provider_name = "linkedin_api"
    provider_tier = ProviderTier.PREMIUM
    price_cents = 10
    fields = frozenset({"title", "linkedin_url", "company", "employee_count", "bio"})
    confidence_range = (0.88, 0.98)


def mock_provider_set() -> list[EnrichmentProvider]:
    """Mock providers in catalog priority order."""
    return [
        MockWebsiteScraper(),
        MockSearchProvider(),
        MockAIAgentProvider(),
        MockLinkedInProvider(),
    ]
