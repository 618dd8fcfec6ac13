"""
Command-Line Interface for finevents.

Purpose
-------
Runs the event pipeline on JSON plan files without writing Python code:
validate events, inspect their monthly expansion, and simulate with the
local reference engine.

Commands
--------
- validate: Validate a plan's events and print the report
- expand: Print or export the canonical monthly events
- simulate: Run the full pipeline and print the outcome
- template: Write a starter plan file

Example Usage
-------------
    $ finevents template plan.json
    $ finevents validate plan.json --tax-year 2025
    $ finevents expand plan.json --output events.csv
    $ finevents simulate plan.json -n 2000 --seed 7 --json
    $ finevents --version
"""

from __future__ import annotations

import json
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

import click

from .config import AppSettings
from .utils import configure_logging, format_currency


def _get_console():
    """Lazy import Rich for better startup time."""
    from rich.console import Console
    return Console()


# Version
__version__ = "0.1.0"


def _load(plan_path: Path):
    from .serialization import load_plan

    try:
        return load_plan(plan_path)
    except (OSError, ValueError) as e:
        click.echo(f"Error loading plan: {e}", err=True)
        sys.exit(1)


def _print_report(console, report) -> None:
    from rich.table import Table

    status = "[bold green]valid[/bold green]" if report.valid else "[bold red]invalid[/bold red]"
    s = report.stats
    console.print(
        f"Plan is {status}: {s.total_events} events, {s.valid_events} valid, "
        f"{len(report.errors)} errors, {len(report.warnings)} warnings, "
        f"{s.fixed_mappings} legacy mappings"
    )
    issues = report.errors + report.warnings
    if not issues:
        return
    table = Table(title="Validation Issues", show_header=True)
    table.add_column("Event", style="cyan")
    table.add_column("Severity")
    table.add_column("Message")
    table.add_column("Fix", style="dim")
    for issue in issues:
        style = "red" if issue.fatal else "yellow"
        table.add_row(issue.event_name, f"[{style}]{issue.severity.value}[/{style}]", issue.message, issue.fix or "")
    console.print(table)


@click.group()
@click.version_option(version=__version__, prog_name="finevents")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.pass_context
def main(ctx: click.Context, quiet: bool) -> None:
    """
    finevents - financial event normalization and simulation pipeline.

    Validates user-authored financial events, expands them into monthly
    cash flows, and summarizes simulated outcomes against a goal.

    Use 'finevents COMMAND --help' for command-specific help.
    """
    settings = AppSettings()
    configure_logging(settings)
    ctx.ensure_object(dict)
    ctx.obj["quiet"] = quiet
    ctx.obj["settings"] = settings
    ctx.obj["console"] = _get_console()


@main.command()
@click.argument("plan_file", type=click.Path(exists=True, path_type=Path))
@click.option("--tax-year", type=int, default=None, help="Tax year for contribution limits (default: plan's)")
@click.option("--json", "as_json", is_flag=True, help="Print the report as JSON")
@click.pass_context
def validate(ctx: click.Context, plan_file: Path, tax_year: Optional[int], as_json: bool) -> None:
    """
    Validate the events of a plan file.

    Exits with status 1 when the plan has fatal errors.

    Example:
        finevents validate plan.json --tax-year 2024
    """
    from .serialization import report_to_dict
    from .validation import validate as validate_events

    plan = _load(plan_file)
    report = validate_events(
        plan.events,
        tax_year=tax_year or plan.tax_year,
        horizon_months=plan.simulation.horizon_months,
    )
    if as_json:
        click.echo(json.dumps(report_to_dict(report), indent=2))
    elif not (ctx.obj["quiet"] and report.valid):
        _print_report(ctx.obj["console"], report)
    if not report.valid:
        sys.exit(1)


@main.command()
@click.argument("plan_file", type=click.Path(exists=True, path_type=Path))
@click.option("--horizon", "-T", type=click.IntRange(1, 1200), default=None, help="Horizon in months (default: plan's)")
@click.option("--start", type=click.DateTime(formats=["%Y-%m"]), default=None, help="Calendar month of month 0 (YYYY-MM)")
@click.option("--output", "-o", type=click.Path(path_type=Path), default=None, help="Write all records to CSV")
@click.pass_context
def expand(
    ctx: click.Context,
    plan_file: Path,
    horizon: Optional[int],
    start: Optional[datetime],
    output: Optional[Path],
) -> None:
    """
    Expand a plan's events into canonical monthly records.

    Example:
        finevents expand plan.json --start 2026-01 -o events.csv
    """
    from rich.table import Table

    from .exceptions import ValidationFailedError
    from .normalizer import events_frame
    from .pipeline import prepare_events

    console = ctx.obj["console"]
    quiet = ctx.obj["quiet"]
    plan = _load(plan_file)
    horizon = horizon or plan.simulation.horizon_months

    try:
        _, records = prepare_events(plan.events, horizon, tax_year=plan.tax_year)
    except ValidationFailedError as e:
        _print_report(console, e.report)
        sys.exit(1)

    frame = events_frame(records, start=start.date() if start else None)
    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        frame.to_csv(output, index=False)
        if not quiet:
            click.echo(f"Wrote {len(frame)} records to {output}")

    if quiet:
        return
    table = Table(title=f"Expanded Events ({horizon} month horizon)", show_header=True)
    table.add_column("Event", style="cyan")
    table.add_column("Kind")
    table.add_column("Account")
    table.add_column("Months", justify="right")
    table.add_column("First", justify="right")
    table.add_column("Last", justify="right")
    table.add_column("Total", style="green", justify="right")
    if len(frame):
        grouped = frame.groupby("event_id", sort=False).agg(
            kind=("kind", "first"),
            account=("target_account", "first"),
            months=("month", "size"),
            first=("month", "min"),
            last=("month", "max"),
            total=("amount", "sum"),
        )
        for event_id, row in grouped.iterrows():
            table.add_row(
                str(event_id), row["kind"], row["account"], f"{row['months']:,}",
                str(row["first"]), str(row["last"]), format_currency(row["total"]),
            )
    console.print(table)
    console.print(f"{len(frame):,} canonical monthly events")


@main.command()
@click.argument("plan_file", type=click.Path(exists=True, path_type=Path))
@click.option("--paths", "-n", type=click.IntRange(1, 100_000), default=None, help="Number of Monte Carlo paths (default: plan's)")
@click.option("--seed", "-s", type=int, default=None, help="Random seed (default: plan's)")
@click.option("--horizon", "-T", type=click.IntRange(1, 1200), default=None, help="Horizon in months (default: plan's)")
@click.option("--json", "as_json", is_flag=True, help="Print results as JSON")
@click.pass_context
def simulate(
    ctx: click.Context,
    plan_file: Path,
    paths: Optional[int],
    seed: Optional[int],
    horizon: Optional[int],
    as_json: bool,
) -> None:
    """
    Validate, expand and simulate a plan with the local engine.

    Example:
        finevents simulate plan.json -n 5000 --seed 42
    """
    from rich.table import Table

    from .engine import LocalEngine
    from .exceptions import EngineError, ValidationFailedError
    from .pipeline import PlanPipeline
    from .serialization import outcome_to_dict, report_to_dict, summary_to_dict

    console = ctx.obj["console"]
    quiet = ctx.obj["quiet"]
    settings: AppSettings = ctx.obj["settings"]
    plan = _load(plan_file)

    overrides = {k: v for k, v in {"path_count": paths, "seed": seed, "horizon_months": horizon}.items() if v is not None}
    if overrides:
        try:
            simulation = plan.simulation.model_validate({**plan.simulation.model_dump(), **overrides})
        except ValueError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)
        plan = plan.model_copy(update={"simulation": simulation})

    if not quiet and not as_json:
        console.print(
            f"[bold]Running {plan.simulation.path_count:,} paths over "
            f"{plan.simulation.horizon_months} months...[/bold]"
        )

    pipeline = PlanPipeline.from_settings(LocalEngine(), settings)
    try:
        result = pipeline.run_sync(plan)
    except ValidationFailedError as e:
        if as_json:
            click.echo(json.dumps(report_to_dict(e.report), indent=2))
        else:
            _print_report(console, e.report)
        sys.exit(1)
    except EngineError as e:
        click.echo(f"Simulation failed: {e.user_message}", err=True)
        sys.exit(1)

    if as_json:
        data = {
            "report": report_to_dict(result.report),
            "summary": summary_to_dict(result.summary),
            "eventCount": len(result.events),
        }
        if result.outcome is not None:
            data["goal"] = outcome_to_dict(result.outcome)
        click.echo(json.dumps(data, indent=2))
        return

    if result.report.warnings and not quiet:
        _print_report(console, result.report)

    summary = result.summary
    table = Table(title="Simulation Results", show_header=True)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green", justify="right")
    table.add_row("Horizon", f"{plan.simulation.horizon_months} months")
    table.add_row("Paths", f"{summary.path_count:,}" if summary.path_count is not None else "not reported")
    table.add_row("Monthly events", f"{len(result.events):,}")
    table.add_row("", "")
    for key, value in summary.percentiles.as_dict().items():
        table.add_row(f"Final net worth {key.upper()}", format_currency(value))
    table.add_row("Success rate", f"{summary.success_rate:.1%}")
    if summary.ever_breach_probability is not None:
        table.add_row("Ever-breach probability", f"{summary.ever_breach_probability:.1%}")
    console.print(table)

    outcome = result.outcome
    if outcome is not None:
        console.print(
            f"[bold]{plan.goal.name}[/bold] ({format_currency(outcome.target)}): "
            f"{outcome.status.value.replace('_', ' ')}, target {outcome.target_band.value.replace('_', ' ')}"
        )
        console.print(outcome.guidance)


@main.command()
@click.argument("output_file", type=click.Path(path_type=Path))
@click.option("--force", is_flag=True, help="Overwrite an existing file")
@click.pass_context
def template(ctx: click.Context, output_file: Path, force: bool) -> None:
    """
    Write a starter plan file.

    Example:
        finevents template my_plan.json
    """
    from .config import GoalConfig, InitialStateConfig, PlanConfig, SimulationConfig
    from .serialization import save_plan

    if output_file.exists() and not force:
        click.echo(f"Error: {output_file} exists (use --force to overwrite)", err=True)
        sys.exit(1)

    plan = PlanConfig(
        events=[
            {"id": "salary", "type": "INCOME", "name": "Salary", "amount": 8500,
             "startDateOffset": 0, "endDateOffset": 359, "annualGrowthRate": 0.03},
            {"id": "living", "type": "RECURRING_EXPENSE", "name": "Living expenses", "amount": 5200,
             "startDateOffset": 0, "annualGrowthRate": 0.025},
            {"id": "401k", "type": "SCHEDULED_CONTRIBUTION", "name": "401(k)", "amount": 23500,
             "frequency": "annually", "startDateOffset": 0, "endDateOffset": 359,
             "targetAccountType": "tax_deferred"},
        ],
        initial_state=InitialStateConfig(balances={"cash": 20_000, "tax_deferred": 85_000}),
        simulation=SimulationConfig(path_count=1000, horizon_months=360),
        goal=GoalConfig(name="Retirement", target_amount=1_500_000, current_progress=105_000),
    )
    save_plan(plan, output_file)
    if not ctx.obj["quiet"]:
        click.echo(f"Plan template written to {output_file}")


if __name__ == "__main__":
    main()
