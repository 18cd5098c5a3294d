"""Rich terminal output for entities, plans, providers, and runs."""

from __future__ import annotations

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .enrichment_provider import EnrichmentProvider
from .models import AttemptOutcome, EnrichmentRun, Plan, RunStatus

console = Console()

_STATUS_STYLE = {
    RunStatus.COMPLETED: "[green]completed[/green]",
    RunStatus.PARTIAL_BUDGET_EXHAUSTED: "[yellow]partial-budget-exhausted[/yellow]",
    RunStatus.PARTIAL_NO_PROVIDER: "[yellow]partial-no-provider[/yellow]",
    RunStatus.FAILED: "[red]failed[/red]",
}

_OUTCOME_STYLE = {
    AttemptOutcome.SUCCESS: "[green]success[/green]",
    AttemptOutcome.EMPTY: "[dim]empty[/dim]",
    AttemptOutcome.FAILED: "[red]failed[/red]",
}


def _cents(value: int) -> str:
    return f"${value / 100:.2f}"


def _ts(value: str | None) -> str:
    return value[:19].replace("T", " ") if value else ""


def _status(run: EnrichmentRun) -> str:
    text = _STATUS_STYLE.get(run.status, str(run.status))
    return text + (" [dim](cancelled)[/dim]" if run.cancelled else "")


def display_entities(entities: list[dict]) -> None:
    if not entities:
        console.print("\n[yellow]No entities found.[/yellow]")
        return

    table = Table(title="Entities")
    table.add_column("ID", style="dim")
    table.add_column("Type")
    table.add_column("Name", style="bold")
    table.add_column("Tenant")
    table.add_column("Updated")
    for e in entities:
        table.add_row(e["id"], e["entity_type"], e["name"], e["tenant_id"], _ts(e["updated_at"]))

    console.print()
    console.print(table)
    console.print()


def display_entity(entity: dict, fields: dict, storage_mode: str) -> None:
    """Entity header plus its current field values."""
    console.print()
    console.print(Panel(
        f"[bold]{entity['name']}[/bold]  [dim]{entity['entity_type']} · "
        f"tenant {entity['tenant_id']} · {storage_mode} storage[/dim]\n{entity['id']}",
        expand=False,
    ))
    if not fields:
        console.print("[dim]  No field values.[/dim]\n")
        return
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold")
    table.add_column()
    for name in sorted(fields):
        value = fields[name]
        table.add_row(name, "[dim]-[/dim]" if value is None else str(value))
    console.print(table)
    console.print()


def display_plans(plans: list[Plan]) -> None:
    table = Table(title="Enrichment Plans")
    table.add_column("Plan", style="bold")
    table.add_column("Fields")
    table.add_column("Budget", justify="right")
    table.add_column("Tiers")
    table.add_column("Description", style="dim")
    for plan in plans:
        table.add_row(
            plan.name,
            ", ".join(plan.fields),
            _cents(plan.max_cost_cents),
            " → ".join(plan.tiers) or "-",
            plan.description,
        )
    console.print()
    console.print(table)
    console.print()


def display_providers(providers: list[EnrichmentProvider]) -> None:
    if not providers:
        console.print("\n[yellow]No providers registered.[/yellow]")
        return
    table = Table(title="Providers (priority order)")
    table.add_column("Provider", style="bold")
    table.add_column("Tier")
    table.add_column("Cost", justify="right")
    table.add_column("Entity types")
    table.add_column("Fields")
    for p in providers:
        tier = getattr(p.tier, "value", p.tier)
        table.add_row(
            p.name, str(tier), _cents(p.cost_cents),
            ", ".join(p.entity_types), ", ".join(sorted(p.capable_fields)),
        )
    console.print()
    console.print(table)
    console.print()


def display_runs(runs: list[EnrichmentRun]) -> None:
    if not runs:
        console.print("\n[yellow]No enrichment runs found.[/yellow]")
        return
    table = Table(title="Enrichment Runs")
    table.add_column("Run", style="dim")
    table.add_column("Entity", style="dim")
    table.add_column("Plan", style="bold")
    table.add_column("Status")
    table.add_column("Cost", justify="right")
    table.add_column("Resolved", justify="right")
    table.add_column("Missing", justify="right")
    table.add_column("Completed")
    for run in runs:
        table.add_row(
            run.id, run.entity_id, run.plan_name, _status(run),
            f"{_cents(run.cost_cents)} / {_cents(run.max_cost_cents)}",
            str(len(run.fields_resolved)), str(len(run.fields_missing)),
            _ts(run.completed_at),
        )
    console.print()
    console.print(table)
    console.print()


def display_run(run: EnrichmentRun) -> None:
    """One run with its resolved fields and attempt log."""
    console.print()
    console.rule(f"[bold]Run {run.id}[/bold]")
    summary = Table(show_header=False, box=None, padding=(0, 2))
    summary.add_column(style="bold")
    summary.add_column()
    summary.add_row("Entity:", run.entity_id)
    summary.add_row("Plan:", run.plan_name)
    summary.add_row("Status:", _status(run))
    summary.add_row("Cost:", f"{_cents(run.cost_cents)} of {_cents(run.max_cost_cents)}")
    summary.add_row("Resolved:", ", ".join(
        f"{f} ({p})" for f, p in run.fields_resolved.items()) or "[dim]none[/dim]")
    summary.add_row("Missing:", ", ".join(run.fields_missing) or "[dim]none[/dim]")
    console.print(summary)

    if run.attempts:
        table = Table(title="Attempts")
        table.add_column("#", justify="right")
        table.add_column("Provider", style="bold")
        table.add_column("Tier")
        table.add_column("Fields")
        table.add_column("Outcome")
        table.add_column("Cost", justify="right")
        table.add_column("ms", justify="right")
        table.add_column("Error", style="red")
        for i, a in enumerate(run.attempts, 1):
            table.add_row(
                str(i), a.provider, a.tier, ", ".join(a.fields),
                _OUTCOME_STYLE.get(a.outcome, a.outcome.value),
                _cents(a.cost_cents), str(a.duration_ms), a.error or "",
            )
        console.print(table)

    if any(p.get("confidence") is not None or p.get("source_url") for p in run.provenance):
        table = Table(title="Provenance")
        table.add_column("Field", style="bold")
        table.add_column("Provider")
        table.add_column("Confidence", justify="right")
        table.add_column("Source")
        for p in run.provenance:
            confidence = p.get("confidence")
            table.add_row(
                p["field"], p["provider"],
                f"{confidence:.2f}" if confidence is not None else "",
                p.get("source_url") or "",
            )
        console.print(table)
    console.print()
