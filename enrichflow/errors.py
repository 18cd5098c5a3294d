"""Exception taxonomy for plan resolution, provider calls, and persistence."""

from __future__ import annotations


class EnrichmentError(Exception):
    """Base class for enrichment errors"""

    def __init__(self, message: str, error_code: str = "ENRICHMENT_ERROR"):
        self.message = message
        self.error_code = error_code
        super().__init__(message)


# -- Configuration errors: raised before a run has any side effect ----------

class PlanNotFound(EnrichmentError):
    """Raised when a plan name is not registered"""

    def __init__(self, plan_name: str):
        self.plan_name = plan_name
        super().__init__(f"Plan '{plan_name}' not found", "PLAN_NOT_FOUND")


class UnknownTier(EnrichmentError):
    """Raised when a plan references a tier the catalog doesn't know"""

    def __init__(self, tier: str):
        self.tier = tier
        super().__init__(f"Unknown provider tier '{tier}'", "UNKNOWN_TIER")


class EntityNotFound(EnrichmentError):
    """Raised when the target entity does not exist"""

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"Entity '{entity_id}' not found", "ENTITY_NOT_FOUND")


class InvalidJobPayload(EnrichmentError):
    """Raised when a job trigger payload is missing required keys"""

    def __init__(self, message: str = "Invalid enrichment job payload"):
        super().__init__(message, "INVALID_JOB_PAYLOAD")


class RegistryFrozen(EnrichmentError):
    """Raised on registration after a registry has been frozen"""

    def __init__(self, registry: str):
        super().__init__(f"{registry} is frozen; register before dispatching jobs",
                         "REGISTRY_FROZEN")


# -- Runtime errors ---------------------------------------------------------

class ProviderAttemptFailed(EnrichmentError):
    """Raised by a provider when a lookup fails; absorbed into the attempt log"""

    def __init__(self, provider: str, message: str = "Provider attempt failed"):
        self.provider = provider
        super().__init__(f"{provider}: {message}", "PROVIDER_ATTEMPT_FAILED")


class EntityWriteError(EnrichmentError):
    """Raised when the entity store rejects a (batch) write; nothing was stored"""

    def __init__(self, entity_id: str, message: str = "Entity write rejected"):
        self.entity_id = entity_id
        super().__init__(f"{entity_id}: {message}", "ENTITY_WRITE_ERROR")


class PersistenceError(EnrichmentError):
    """Raised when a run record cannot be persisted"""

    def __init__(self, run_id: str, message: str = "Run store unreachable"):
        self.run_id = run_id
        super().__init__(f"Run {run_id}: {message}", "PERSISTENCE_ERROR")
