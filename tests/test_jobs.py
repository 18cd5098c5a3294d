"""Tests for the job trigger entry point."""

from __future__ import annotations

import threading
from unittest.mock import MagicMock

import pytest

from enrichflow import bootstrap
from enrichflow.database import init_db
from enrichflow.enrichment_provider import EnrichmentProvider, TierCatalog
from enrichflow.entities import create_entity
from enrichflow.errors import (
    EntityNotFound,
    InvalidJobPayload,
    PersistenceError,
    PlanNotFound,
)
from enrichflow.jobs import handle_enrichment_job, parse_payload
from enrichflow.orchestrator import Orchestrator
from enrichflow.plan_registry import DEFAULT_PLANS, PlanRegistry, load_plans
from enrichflow.run_recorder import RunRecorder


@pytest.fixture()
def tmp_db(tmp_path, monkeypatch):
    """Create a temporary database and point config at it."""
    db_file = tmp_path / "test.db"
    monkeypatch.setattr("enrichflow.config.DB_PATH", db_file)
    init_db(db_file)
    return db_file


@pytest.fixture()
def company(tmp_db):
    return create_entity("company", "Acme Corp", tenant_id="t1")


class CountingProvider(EnrichmentProvider):
    def __init__(self, fields=("company", "domain"), error=None):
        self._fields = frozenset(fields)
        self._error = error
        self.calls = 0

    @property
    def name(self) -> str:
        return "counting"

    @property
    def tier(self) -> str:
        return "free"

    @property
    def capable_fields(self) -> frozenset[str]:
        return self._fields

    def attempt(self, context, requested_fields):
        self.calls += 1
        if self._error:
            raise self._error
        return {f: f"value-{f}" for f in requested_fields}


def _orchestrator(provider, recorder=None):
    catalog = TierCatalog()
    catalog.register(provider)
    registry = PlanRegistry(load_plans(DEFAULT_PLANS))
    return Orchestrator(registry, catalog,
                        recorder=recorder if recorder is not None else RunRecorder())


class TestParsePayload:
    def test_camel_case(self):
        assert parse_payload({"planName": "basic", "entityId": "e1", "runId": "r1"}) == (
            "basic", "e1", "r1",
        )

    def test_snake_case(self):
        assert parse_payload({"plan_name": "basic", "entity_id": "e1"}) == ("basic", "e1", None)

    def test_missing_keys(self):
        with pytest.raises(InvalidJobPayload, match="entityId"):
            parse_payload({"planName": "basic"})
        with pytest.raises(InvalidJobPayload, match="planName"):
            parse_payload({"entityId": "e1", "planName": ""})

    def test_not_a_mapping(self):
        with pytest.raises(InvalidJobPayload):
            parse_payload("basic")


class TestHandleJob:
    def test_summary(self, company):
        provider = CountingProvider()
        result = handle_enrichment_job(
            {"planName": "basic", "entityId": company["id"], "runId": "job-1"},
            orchestrator=_orchestrator(provider),
        )
        assert result["run_id"] == "job-1"
        assert result["entity_id"] == company["id"]
        assert result["plan"] == "basic"
        assert result["status"] == "partial-no-provider"
        assert result["cost_cents"] == 0
        assert result["fields_resolved"] == {"company": "counting", "domain": "counting"}
        assert result["fields_missing"] == ["website"]
        assert result["attempts"] == 1
        assert result["replayed"] is False
        assert result["error"] is None

    def test_same_run_id_replays(self, company):
        provider = CountingProvider()
        orch = _orchestrator(provider)
        payload = {"planName": "basic", "entityId": company["id"], "runId": "job-1"}

        first = handle_enrichment_job(payload, orchestrator=orch)
        second = handle_enrichment_job(payload, orchestrator=orch)

        assert provider.calls == 1
        assert second["replayed"] is True
        assert second["status"] == first["status"]
        assert second["fields_resolved"] == first["fields_resolved"]
        assert len(RunRecorder().get_runs(entity_id=company["id"])) == 1

    def test_concurrent_jobs_with_same_run_id(self, company):
        entered = threading.Event()
        release = threading.Event()

        class SlowProvider(CountingProvider):
            def attempt(self, context, requested_fields):
                entered.set()
                release.wait(5)
                return super().attempt(context, requested_fields)

        provider = SlowProvider()
        orch = _orchestrator(provider)
        payload = {"planName": "basic", "entityId": company["id"], "runId": "job-2"}
        results = []

        def job():
            results.append(handle_enrichment_job(payload, orchestrator=orch))

        first = threading.Thread(target=job)
        first.start()
        assert entered.wait(5)
        second = threading.Thread(target=job)
        second.start()
        release.set()
        first.join(5)
        second.join(5)

        assert provider.calls == 1
        assert sorted(r["replayed"] for r in results) == [False, True]
        assert results[0]["fields_resolved"] == results[1]["fields_resolved"]
        assert len(RunRecorder().get_runs(entity_id=company["id"])) == 1

    def test_run_recorded_elsewhere_while_running(self, company):
        _orchestrator(CountingProvider(fields=("company",))).run(
            "basic", company["id"], run_id="job-3")

        class LateRecorder(RunRecorder):
            """Misses the stored run on the first lookup."""

            def __init__(self):
                super().__init__()
                self.lookups = 0

            def get_run(self, run_id):
                self.lookups += 1
                if self.lookups == 1:
                    return None
                return super().get_run(run_id)

        result = handle_enrichment_job(
            {"planName": "basic", "entityId": company["id"], "runId": "job-3"},
            orchestrator=_orchestrator(CountingProvider(), recorder=LateRecorder()),
        )
        assert result["replayed"] is True
        assert result["fields_resolved"] == {"company": "counting"}
        assert len(RunRecorder().get_runs(entity_id=company["id"])) == 1

    def test_failed_run_reports_error(self, company):
        provider = CountingProvider(error=RuntimeError("site down"))
        result = handle_enrichment_job(
            {"planName": "basic", "entityId": company["id"]},
            orchestrator=_orchestrator(provider),
        )
        assert result["status"] == "failed"
        assert result["error"] == "site down"

    def test_configuration_errors_propagate(self, company):
        orch = _orchestrator(CountingProvider())
        with pytest.raises(PlanNotFound):
            handle_enrichment_job({"planName": "gold", "entityId": company["id"]},
                                  orchestrator=orch)
        with pytest.raises(EntityNotFound):
            handle_enrichment_job({"planName": "basic", "entityId": "missing"},
                                  orchestrator=orch)

    def test_persistence_error_reraised(self, company):
        recorder = MagicMock()
        recorder.get_run.return_value = None
        recorder.record.side_effect = PersistenceError("job-1")
        with pytest.raises(PersistenceError):
            handle_enrichment_job(
                {"planName": "basic", "entityId": company["id"], "runId": "job-1"},
                orchestrator=_orchestrator(CountingProvider(), recorder=recorder),
            )


class TestDefaultOrchestrator:
    @pytest.fixture(autouse=True)
    def mock_mode(self, monkeypatch):
        monkeypatch.setattr("enrichflow.config.USE_MOCK_PROVIDERS", True)
        monkeypatch.setattr("enrichflow.config.PLANS_FILE", None)
        bootstrap.reset()
        yield
        bootstrap.reset()

    def test_basic_plan_with_mock_providers(self, company):
        result = handle_enrichment_job({"planName": "basic", "entityId": company["id"]})
        assert result["status"] == "completed"
        assert result["cost_cents"] == 0
        assert set(result["fields_resolved"].values()) == {"website_scrape"}

    def test_premium_plan_with_mock_providers(self, company):
        result = handle_enrichment_job({"planName": "premium", "entityId": company["id"]})
        assert result["status"] == "completed"
        assert result["fields_resolved"]["email"] == "ai_agent"
        assert result["cost_cents"] == 2
        assert result["cost_cents"] <= 200

    def test_shared_instance(self, tmp_db):
        assert bootstrap.default_orchestrator() is bootstrap.default_orchestrator()
        assert bootstrap.default_orchestrator().catalog.frozen
