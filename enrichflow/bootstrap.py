"""Process-wide registries, built once at startup and then frozen."""

from __future__ import annotations

import logging
import threading

from . import config
from .enrichment_provider import TierCatalog
from .mock_providers import mock_provider_set
from .orchestrator import Orchestrator
from .plan_registry import DEFAULT_PLANS, PlanRegistry, read_plans_file
from .run_recorder import RunRecorder
from .website_scraper import WebsiteScraperProvider

log = logging.getLogger(__name__)

_lock = threading.Lock()
_orchestrator: Orchestrator | None = None


def build_default_catalog(*, use_mocks: bool | None = None) -> TierCatalog:
    """Catalog with the bundled providers, frozen."""
    if use_mocks is None:
        use_mocks = config.USE_MOCK_PROVIDERS
    catalog = TierCatalog()
    providers = mock_provider_set() if use_mocks else [WebsiteScraperProvider()]
    for provider in providers:
        catalog.register(provider)
    catalog.freeze()
    log.debug("Provider catalog ready: %s",
              ", ".join(p.name for p in catalog.list_providers()))
    return catalog


def build_default_registry(plans_file=None) -> PlanRegistry:
    """Default plans plus any from the plans file, frozen."""
    registry = PlanRegistry()
    registry.load(DEFAULT_PLANS)
    path = plans_file or config.PLANS_FILE
    if path:
        count = registry.load(read_plans_file(path))
        log.info("Loaded %d plan(s) from %s", count, path)
    registry.freeze()
    return registry


def default_orchestrator() -> Orchestrator:
    """Shared orchestrator for this process, created on first use."""
    global _orchestrator
    with _lock:
        if _orchestrator is None:
            _orchestrator = Orchestrator(
                build_default_registry(),
                build_default_catalog(),
                recorder=RunRecorder(),
            )
        return _orchestrator


def reset() -> None:
    """Drop the shared orchestrator so the next call rebuilds it."""
    global _orchestrator
    with _lock:
        _orchestrator = None
