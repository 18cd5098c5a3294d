"""Tests for the command-line interface."""

from __future__ import annotations

import pytest

from enrichflow import bootstrap
from enrichflow.__main__ import _parse_fields, build_parser, main
from enrichflow.database import init_db
from enrichflow.entities import create_entity, get_entity_fields, list_entities
from enrichflow.run_recorder import RunRecorder
from enrichflow.settings import get_storage_mode


@pytest.fixture()
def tmp_db(tmp_path, monkeypatch):
    """Create a temporary database and point config at it."""
    db_file = tmp_path / "test.db"
    monkeypatch.setattr("enrichflow.config.DB_PATH", db_file)
    init_db(db_file)
    return db_file


@pytest.fixture(autouse=True)
def wide_console(monkeypatch):
    # Keep table cells on one line so output assertions are stable
    monkeypatch.setattr("enrichflow.display.console.width", 200)


@pytest.fixture()
def mock_providers(monkeypatch):
    monkeypatch.setattr("enrichflow.config.USE_MOCK_PROVIDERS", True)
    monkeypatch.setattr("enrichflow.config.PLANS_FILE", None)
    bootstrap.reset()
    yield
    bootstrap.reset()


class TestParser:
    def test_parse_fields(self):
        assert _parse_fields(["website=acme.com", " email = a@acme.com "]) == {
            "website": "acme.com", "email": "a@acme.com",
        }
        assert _parse_fields(None) == {}

    def test_parse_fields_malformed(self):
        with pytest.raises(ValueError):
            _parse_fields(["website"])

    def test_enrich_requires_plan(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["enrich", "e1"])

    def test_storage_mode_choices(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["set-storage-mode", "t1", "columnar"])


class TestCommands:
    def test_init_db(self, tmp_path, monkeypatch, capsys):
        db_file = tmp_path / "fresh" / "cli.db"
        monkeypatch.setattr("enrichflow.config.DB_PATH", db_file)
        main(["init-db"])
        assert db_file.exists()
        assert "Database ready" in capsys.readouterr().out

    def test_create_and_list_entities(self, tmp_db, capsys):
        main(["create-entity", "company", "Acme", "--field", "website=acme.com",
              "--tenant", "t1"])
        (entity,) = list_entities()
        assert entity["tenant_id"] == "t1"
        assert get_entity_fields(entity["id"]) == {"website": "acme.com"}

        main(["list-entities"])
        assert "Acme" in capsys.readouterr().out

    def test_create_entity_bad_field(self, tmp_db, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["create-entity", "company", "Acme", "--field", "oops"])
        assert exc_info.value.code == 1
        assert "Error" in capsys.readouterr().out
        assert list_entities() == []

    def test_show_entity(self, tmp_db, capsys):
        row = create_entity("company", "Acme", fields={"email": "hi@acme.com"})
        main(["show-entity", row["id"]])
        out = capsys.readouterr().out
        assert "Acme" in out
        assert "hi@acme.com" in out

    def test_show_missing_entity(self, tmp_db):
        with pytest.raises(SystemExit):
            main(["show-entity", "missing"])

    def test_list_plans(self, tmp_db, mock_providers, capsys):
        main(["list-plans"])
        out = capsys.readouterr().out
        assert "basic" in out
        assert "premium" in out

    def test_list_providers(self, tmp_db, mock_providers, capsys):
        main(["list-providers"])
        out = capsys.readouterr().out
        assert "website_scrape" in out
        assert "linkedin_api" in out

    def test_enrich(self, tmp_db, mock_providers, capsys):
        row = create_entity("company", "Acme")
        main(["enrich", row["id"], "--plan", "basic", "--run-id", "cli-run"])
        assert "completed" in capsys.readouterr().out

        run = RunRecorder().get_run("cli-run")
        assert run.status.value == "completed"
        assert set(get_entity_fields(row["id"])) == {"company", "domain", "website"}

    def test_enrich_replay(self, tmp_db, mock_providers, capsys):
        row = create_entity("company", "Acme")
        main(["enrich", row["id"], "--plan", "basic", "--run-id", "cli-run"])
        main(["enrich", row["id"], "--plan", "basic", "--run-id", "cli-run"])
        assert "already recorded" in capsys.readouterr().out
        assert len(RunRecorder().get_runs(entity_id=row["id"])) == 1

    def test_enrich_unknown_plan(self, tmp_db, mock_providers, capsys):
        row = create_entity("company", "Acme")
        with pytest.raises(SystemExit) as exc_info:
            main(["enrich", row["id"], "--plan", "gold"])
        assert exc_info.value.code == 1
        assert "not found" in capsys.readouterr().out

    def test_show_runs_and_run(self, tmp_db, mock_providers, capsys):
        row = create_entity("company", "Acme")
        main(["enrich", row["id"], "--plan", "standard", "--run-id", "r-1"])
        capsys.readouterr()

        main(["show-runs", "--plan", "standard"])
        assert "standard" in capsys.readouterr().out

        main(["show-run", "r-1"])
        out = capsys.readouterr().out
        assert "Attempts" in out
        assert "Provenance" in out
        assert "website_scrape" in out

    def test_show_missing_run(self, tmp_db):
        with pytest.raises(SystemExit):
            main(["show-run", "nope"])

    def test_set_storage_mode(self, tmp_db):
        main(["set-storage-mode", "t1", "cell"])
        assert get_storage_mode("t1") == "cell"

    def test_no_command_prints_help(self, tmp_db, capsys):
        main([])
        assert "usage" in capsys.readouterr().out.lower()
