"""palmtrace CLI: palm oil chain-of-custody, mass balance and lineage.

Commands:
  init-db         create the database tables
  demo            seed a sample supply chain and custody history
  validate-chain  mass balance check for one custody chain
  trace           forward/backward/full lineage of an entity
  report          generate and store a lineage report
  anomalies       statistical outliers among mass balance events
  efficiency      conversion efficiency for a chain or facility
"""
from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from palmtrace.config import settings
from palmtrace.errors import CustodyError, PersistenceError

app = typer.Typer(
    name="palmtrace",
    help="Chain-of-custody, mass balance and lineage tracing for palm oil supply chains.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
console = Console()


@app.callback()
def main(
    log_level: str = typer.Option(settings.LOG_LEVEL, "--log-level", help="Logging level"),
) -> None:
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command("init-db")
def init_database() -> None:
    """Create all tables."""
    from palmtrace.database import init_db

    with console.status("[bold]Creating database..."):
        init_db()
    console.print("[green]Database ready.[/green]")


@app.command("demo")
def demo() -> None:
    """Seed a sample plot → mill → port supply chain with a custody history."""
    from palmtrace.database import SessionLocal, init_db

    init_db()
    db = SessionLocal()
    try:
        with console.status("[bold]Seeding demo supply chain..."):
            from scripts.seed_demo import seed_demo
            ids = seed_demo(db)
        console.print("[green]Demo data loaded.[/green]")
        for name, value in ids.items():
            console.print(f"  {name}: [cyan]{value}[/cyan]")
        console.print("\n[bold]Try:[/bold]")
        console.print(f"  [cyan]palmtrace trace custody_chain {ids['origin_chain_id']}[/cyan]")
        console.print(f"  [cyan]palmtrace trace shipment {ids['shipment_id']} --direction backward[/cyan]")
        console.print(f"  [cyan]palmtrace validate-chain {ids['split_chain_ids'][0]}[/cyan]")
    except CustodyError as e:
        console.print(f"[red]Demo seeding failed: {e}[/red]")
        raise typer.Exit(code=1)
    except PersistenceError as e:
        console.print(f"[red]Storage error while seeding: {e}[/red]")
        raise typer.Exit(code=1)
    finally:
        db.close()


@app.command("validate-chain")
def validate_chain_cmd(chain_id: str = typer.Argument(..., help="Custody chain id")) -> None:
    """Check that input balances output plus waste for a chain."""
    from palmtrace.database import SessionLocal
    from palmtrace.modules.mass_balance import validate_chain

    db = SessionLocal()
    try:
        result = validate_chain(db, chain_id)
    except CustodyError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)
    except PersistenceError as e:
        console.print(f"[red]Storage error: {e}[/red]")
        raise typer.Exit(code=1)
    finally:
        db.close()

    status = "[green]valid[/green]" if result.is_valid else "[red]INVALID[/red]"
    console.print(f"Chain [cyan]{chain_id}[/cyan]: {status}")
    console.print(
        f"  input {result.total_input}  output {result.total_output}  waste {result.total_waste}  "
        f"efficiency {_fmt_pct(result.efficiency)}"
    )
    if result.discrepancies:
        table = Table(title="Discrepancies")
        table.add_column("Type", style="yellow")
        table.add_column("Expected")
        table.add_column("Actual")
        table.add_column("Variance")
        table.add_column("Event")
        for d in result.discrepancies:
            table.add_row(d.type, str(d.expected), str(d.actual), str(d.variance),
                          str(d.event_id) if d.event_id is not None else "")
        console.print(table)
        raise typer.Exit(code=2)


@app.command("trace")
def trace(
    entity_type: str = typer.Argument(..., help="plot, facility, custody_chain, production_lot, shipment, supplier, delivery"),
    entity_id: str = typer.Argument(..., help="Entity id"),
    direction: str = typer.Option("forward", "--direction", "-d", help="forward, backward or full"),
    max_depth: Optional[int] = typer.Option(None, "--max-depth", help="Stop expanding below this level"),
    as_json: bool = typer.Option(False, "--json", help="Print the trace as JSON"),
) -> None:
    """Trace an entity's lineage through the supply chain."""
    from palmtrace.database import SessionLocal
    from palmtrace.modules.lineage import get_full_lineage, trace_backward, trace_forward

    tracers = {"forward": trace_forward, "backward": trace_backward, "full": get_full_lineage}
    if direction not in tracers:
        console.print(f"[red]Unknown direction '{direction}'. Use forward, backward or full.[/red]")
        raise typer.Exit(code=1)

    db = SessionLocal()
    try:
        result = tracers[direction](db, entity_id, entity_type, max_depth=max_depth)
    except CustodyError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)
    except PersistenceError as e:
        console.print(f"[red]Storage error: {e}[/red]")
        raise typer.Exit(code=1)
    finally:
        db.close()

    if as_json:
        typer.echo(json.dumps(result.model_dump(mode="json"), indent=2))
        return

    table = Table(title=f"{direction.title()} lineage of {entity_type} {entity_id}")
    table.add_column("Level", justify="right")
    table.add_column("Type", style="cyan")
    table.add_column("Id")
    table.add_column("Name")
    table.add_column("Risk")
    for node in sorted(result.nodes, key=lambda n: (n.level, n.key)):
        table.add_row(str(node.level), node.type, node.id, node.name, _risk_markup(node.risk_level))
    console.print(table)

    risk = result.risk_assessment
    console.print(
        f"{result.total_nodes} nodes, {len(result.edges)} edges, depth {result.depth}"
        + (" [yellow](truncated)[/yellow]" if result.truncated else "")
    )
    console.print(f"Overall risk: {_risk_markup(risk.overall_risk)}")
    console.print(
        f"EUDR compliant: {_yes_no(risk.compliance.eudr_compliant)}  "
        f"RSPO: {_yes_no(risk.compliance.rspo_compliant)}"
    )
    for issue in risk.compliance.issues:
        console.print(f"  [yellow]- {issue}[/yellow]")


@app.command("report")
def report(
    report_type: str = typer.Argument(..., help="forward_trace, backward_trace or full_lineage"),
    entity_type: str = typer.Argument(..., help="Entity type"),
    entity_id: str = typer.Argument(..., help="Entity id"),
    generated_by: Optional[str] = typer.Option(None, "--by", help="Recorded as the report author"),
) -> None:
    """Generate and store a lineage report snapshot."""
    from palmtrace.database import SessionLocal
    from palmtrace.modules.lineage import generate_report

    db = SessionLocal()
    try:
        result = generate_report(db, {
            "report_type": report_type,
            "target_entity_id": entity_id,
            "target_entity_type": entity_type,
            "generated_by": generated_by,
        })
    except CustodyError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)
    except PersistenceError as e:
        console.print(f"[red]Storage error: {e}[/red]")
        raise typer.Exit(code=1)
    finally:
        db.close()

    console.print(f"[green]Report {result.report_id} generated[/green] ({result.total_nodes} nodes)")
    console.print(f"  Export: {result.export_url}")


@app.command("anomalies")
def anomalies(
    facility_id: Optional[int] = typer.Option(None, "--facility", help="Limit to one processing facility"),
    since: Optional[datetime] = typer.Option(None, "--since", help="Window start"),
    until: Optional[datetime] = typer.Option(None, "--until", help="Window end"),
) -> None:
    """List statistical outliers among recorded mass balance events."""
    from palmtrace.database import SessionLocal
    from palmtrace.modules.mass_balance import detect_anomalies

    time_range = None
    if since or until:
        time_range = {"start": since or datetime.min, "end": until or datetime.max}

    db = SessionLocal()
    try:
        found = detect_anomalies(db, facility_id=facility_id, time_range=time_range)
    finally:
        db.close()

    if not found:
        console.print("[green]No anomalies detected.[/green]")
        return

    table = Table(title=f"Mass balance anomalies ({len(found)})")
    table.add_column("Event", style="cyan")
    table.add_column("Type")
    table.add_column("Severity")
    table.add_column("Value")
    table.add_column("Description")
    for a in found:
        table.add_row(str(a.event_id), a.type, _risk_markup(a.severity), str(a.value), a.description)
    console.print(table)


@app.command("efficiency")
def efficiency(
    chain_id: Optional[str] = typer.Option(None, "--chain", help="Custody chain id"),
    facility_id: Optional[int] = typer.Option(None, "--facility", help="Processing facility id"),
) -> None:
    """Show conversion efficiency for a chain or a facility."""
    from palmtrace.database import SessionLocal
    from palmtrace.modules.mass_balance import get_chain_efficiency, get_facility_efficiency

    if (chain_id is None) == (facility_id is None):
        console.print("[red]Pass exactly one of --chain or --facility.[/red]")
        raise typer.Exit(code=1)

    db = SessionLocal()
    try:
        if chain_id is not None:
            result = get_chain_efficiency(db, chain_id)
            console.print(f"Chain [cyan]{chain_id}[/cyan]: {result.event_count} events")
        else:
            result = get_facility_efficiency(db, facility_id)
            console.print(f"Facility [cyan]{facility_id}[/cyan]: {result.total_events} events")
            for event_type, count in sorted(result.events_by_type.items()):
                console.print(f"  {event_type}: {count}")
    finally:
        db.close()

    console.print(
        f"  input {result.total_input}  output {result.total_output}  waste {result.total_waste}  "
        f"average efficiency {_fmt_pct(result.average_efficiency)}"
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _fmt_pct(value) -> str:
    return "n/a" if value is None else f"{value:.2f}%"


def _yes_no(flag: bool) -> str:
    return "[green]yes[/green]" if flag else "[red]no[/red]"


def _risk_markup(level: str) -> str:
    colour = {"low": "green", "medium": "yellow", "high": "red", "critical": "bold red"}.get(level)
    return f"[{colour}]{level}[/{colour}]" if colour else level
