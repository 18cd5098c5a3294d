"""CLI entry point for local enrichment runs.

Usage:
    python -m enrichflow init-db
    python -m enrichflow create-entity company "Acme" --field website=acme.com
    python -m enrichflow list-entities [--tenant T] [--type company]
    python -m enrichflow show-entity ENTITY_ID
    python -m enrichflow list-plans
    python -m enrichflow list-providers
    python -m enrichflow enrich ENTITY_ID --plan standard [--run-id ID]
    python -m enrichflow show-runs [--entity ID] [--plan P] [--status S]
    python -m enrichflow show-run RUN_ID
    python -m enrichflow set-storage-mode TENANT entity|cell
"""

from __future__ import annotations

import argparse
import logging
import sys

from rich.logging import RichHandler

from . import config
from .database import init_db
from .display import (
    console,
    display_entities,
    display_entity,
    display_plans,
    display_providers,
    display_run,
    display_runs,
)
from .errors import EnrichmentError


def _parse_fields(pairs: list[str] | None) -> dict:
    """``k=v`` pairs to a dict. Raises ValueError on a malformed pair."""
    fields = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"Expected FIELD=VALUE, got {pair!r}")
        fields[key.strip()] = value.strip()
    return fields


def _fail(message) -> None:
    console.print(f"\n[red]Error:[/red] {message}")
    sys.exit(1)


# ---------------------------------------------------------------------------
# Subcommands
# ---------------------------------------------------------------------------

def cmd_init_db(args: argparse.Namespace) -> None:
    init_db()
    console.print(f"[green]Database ready at {config.DB_PATH}[/green]")


def cmd_create_entity(args: argparse.Namespace) -> None:
    """Create a company or contact with optional initial fields."""
    from .entities import create_entity

    init_db()
    try:
        row = create_entity(
            args.entity_type, args.name,
            tenant_id=args.tenant, fields=_parse_fields(args.field),
        )
    except (ValueError, EnrichmentError) as exc:
        _fail(exc)

    console.print(f"\n[bold green]{row['entity_type'].capitalize()} created:[/bold green] "
                  f"{row['name']}")
    console.print(f"  ID: {row['id']}")


def cmd_list_entities(args: argparse.Namespace) -> None:
    from .entities import list_entities

    init_db()
    display_entities(list_entities(tenant_id=args.tenant, entity_type=args.entity_type))


def cmd_show_entity(args: argparse.Namespace) -> None:
    from .entities import get_entity, get_entity_fields
    from .settings import get_storage_mode

    init_db()
    entity = get_entity(args.entity_id)
    if not entity:
        _fail(f"Entity not found: {args.entity_id}")
    display_entity(entity, get_entity_fields(args.entity_id),
                   get_storage_mode(entity["tenant_id"]))


def cmd_list_plans(args: argparse.Namespace) -> None:
    from .bootstrap import build_default_registry

    display_plans(build_default_registry().list_plans())


def cmd_list_providers(args: argparse.Namespace) -> None:
    from .bootstrap import build_default_catalog

    display_providers(build_default_catalog().list_providers())


def cmd_enrich(args: argparse.Namespace) -> None:
    """Run a plan against one entity, the way a runtime job would."""
    from .jobs import handle_enrichment_job
    from .run_recorder import RunRecorder

    init_db()
    payload = {"planName": args.plan, "entityId": args.entity_id}
    if args.run_id:
        payload["runId"] = args.run_id
    try:
        result = handle_enrichment_job(payload)
    except EnrichmentError as exc:
        _fail(exc.message)

    if result["replayed"]:
        console.print(f"\n[yellow]Run {result['run_id']} was already recorded; "
                      f"showing stored outcome.[/yellow]")
    run = RunRecorder().get_run(result["run_id"])
    if run:
        display_run(run)


def cmd_show_runs(args: argparse.Namespace) -> None:
    from .run_recorder import RunRecorder

    init_db()
    display_runs(RunRecorder().get_runs(
        entity_id=args.entity, plan_name=args.plan, status=args.status,
    ))


def cmd_show_run(args: argparse.Namespace) -> None:
    from .run_recorder import RunRecorder

    init_db()
    run = RunRecorder().get_run(args.run_id)
    if not run:
        _fail(f"Run not found: {args.run_id}")
    display_run(run)


def cmd_set_storage_mode(args: argparse.Namespace) -> None:
    from .settings import STORAGE_MODE, set_setting

    init_db()
    set_setting(args.tenant, STORAGE_MODE, args.mode)
    console.print(f"[green]Tenant {args.tenant} now uses {args.mode} storage.[/green]")


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m enrichflow",
        description="Plan-driven entity enrichment",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("init-db", help="Create the database and tables")

    ce = sub.add_parser("create-entity", help="Create a company or contact")
    ce.add_argument("entity_type", choices=["company", "contact"])
    ce.add_argument("name")
    ce.add_argument("--field", action="append", metavar="FIELD=VALUE",
                    help="Initial field value (repeatable)")
    ce.add_argument("--tenant", default=None,
                    help=f"Tenant id (default: {config.DEFAULT_TENANT})")

    le = sub.add_parser("list-entities", help="List entities")
    le.add_argument("--tenant", default=None)
    le.add_argument("--type", dest="entity_type", choices=["company", "contact"])

    se = sub.add_parser("show-entity", help="Show an entity and its field values")
    se.add_argument("entity_id")

    sub.add_parser("list-plans", help="List enrichment plans")
    sub.add_parser("list-providers", help="List registered providers")

    en = sub.add_parser("enrich", help="Apply a plan to an entity")
    en.add_argument("entity_id")
    en.add_argument("--plan", required=True)
    en.add_argument("--run-id", default=None, help="Idempotency key for the run")

    sr = sub.add_parser("show-runs", help="List enrichment runs")
    sr.add_argument("--entity", default=None)
    sr.add_argument("--plan", default=None)
    sr.add_argument("--status", default=None,
                    choices=["completed", "partial-budget-exhausted",
                             "partial-no-provider", "failed"])

    sh = sub.add_parser("show-run", help="Show one run with its attempts")
    sh.add_argument("run_id")

    sm = sub.add_parser("set-storage-mode", help="Choose a tenant's storage model")
    sm.add_argument("tenant")
    sm.add_argument("mode", choices=list(config.STORAGE_MODES))

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else config.LOG_LEVEL,
        format="%(message)s",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
    )

    commands = {
        "init-db": cmd_init_db,
        "create-entity": cmd_create_entity,
        "list-entities": cmd_list_entities,
        "show-entity": cmd_show_entity,
        "list-plans": cmd_list_plans,
        "list-providers": cmd_list_providers,
        "enrich": cmd_enrich,
        "show-runs": cmd_show_runs,
        "show-run": cmd_show_run,
        "set-storage-mode": cmd_set_storage_mode,
    }

    if not args.command:
        parser.print_help()
        return
    commands[args.command](args)


if __name__ == "__main__":
    main()
