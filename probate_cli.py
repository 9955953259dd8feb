#!/usr/bin/env python3
"""
Probate Scraper CLI
===================

Command-line interface for the NY Surrogate's Court probate scraper.

Usage:
    probate-scraper search --county 15 --from 01/01/2026 --to 02/15/2026 --output stubs.json
    probate-scraper process stubs.json --min-value 100000 --csv results.csv
    probate-scraper run --county 15 --from 01/01/2026 --to 01/31/2026
    probate-scraper check
    probate-scraper courts
"""

import asyncio
import json
import logging
import signal
import sys
from pathlib import Path
from typing import List, Optional

import click
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from browser_session import connect_session
from error_log import ErrorLog
from errors import ScraperError
from export import export_csv
from gate_bypass import bypass_gate
from pipeline import process_in_batches, search_filings
from portal_locators import SEARCH_FORM_ROLES, find_control
from probate_config import COURTS, LIST_TYPES, ScraperSettings, load_settings
from schemas import BatchReport, FilingStub, OutcomeStatus, ProbateQuery, SearchReport

console = Console()

STATUS_STYLES = {
    OutcomeStatus.INCLUDED: "green",
    OutcomeStatus.SKIPPED: "yellow",
    OutcomeStatus.ERROR: "red",
}


def _setup_logging(verbose: bool):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _fail(message: str):
    console.print(f"\n[bold red]❌ {message}[/bold red]")
    sys.exit(1)


def _settings(ctx) -> ScraperSettings:
    try:
        return load_settings(**ctx.obj["overrides"])
    except ScraperError as e:
        _fail(str(e))


def _query(county, proceeding, date_from, date_to, min_value) -> ProbateQuery:
    try:
        return ProbateQuery(
            county=county,
            proceeding=proceeding,
            from_date=date_from,
            to_date=date_to,
            min_estate_value=min_value,
        )
    except ValidationError as e:
        _fail(f"Invalid search: {'; '.join(err['msg'] for err in e.errors())}")


def _load_stubs(path: str) -> List[FilingStub]:
    """Stubs from a saved search (a list, or a report with a 'files' key)"""
    try:
        with open(path) as f:
            payload = json.load(f)
    except json.JSONDecodeError as e:
        _fail(f"{path} is not valid JSON: {e}")
    rows = payload.get("files", []) if isinstance(payload, dict) else payload
    try:
        return [FilingStub(**row) for row in rows]
    except (TypeError, ValidationError) as e:
        _fail(f"Invalid filing in {path}: {e}")


def _run_cancellable(coro_factory):
    """
    Run the coroutine built by ``coro_factory(cancel_event)``; Ctrl-C sets the
    event so the current filing finishes and the partial report comes back.
    """
    async def _main():
        cancel_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, cancel_event.set)
        except NotImplementedError:
            # Windows event loops have no signal handlers; Ctrl-C aborts instead
            pass
        try:
            return await coro_factory(cancel_event)
        finally:
            try:
                loop.remove_signal_handler(signal.SIGINT)
            except NotImplementedError:
                pass

    return asyncio.run(_main())

# ─────────────────────────────────────────────────────────────────────────────
# OUTPUT
# ─────────────────────────────────────────────────────────────────────────────

def _print_search(report: SearchReport):
    table = Table(title=f"Filings found ({report.total_count})")
    table.add_column("File Number", style="cyan")
    table.add_column("File Date")
    table.add_column("Name")
    table.add_column("Proceeding")
    table.add_column("Date of Death")
    for stub in report.files:
        table.add_row(stub.file_number, stub.file_date, stub.file_name, stub.proceeding, stub.date_of_death)
    console.print(table)
    console.print(f"Searched {len(report.date_chunks)} month chunk(s): "
                  + ", ".join(chunk.label() for chunk in report.date_chunks))


def _print_outcomes(report: BatchReport):
    table = Table(title="Processing results")
    table.add_column("File Number", style="cyan")
    table.add_column("Status")
    table.add_column("Decedent")
    table.add_column("Executor")
    table.add_column("Estate Value")
    table.add_column("Reason")
    for outcome in report.results:
        data = outcome.data
        value = ""
        if data is not None and data.estate_value_upper is not None:
            value = f"${data.estate_value_lower or 0:,.0f}-${data.estate_value_upper:,.0f}"
        style = STATUS_STYLES[outcome.status]
        table.add_row(
            outcome.file_number,
            f"[{style}]{outcome.status.value}[/{style}]",
            (data.decedent_name or "") if data else "",
            (data.executor_name or "") if data else "",
            value,
            outcome.reason or "",
        )
    console.print(table)

    stats = report.batch_stats
    console.print(
        f"\n[bold]📊 Included:[/bold] [green]{stats.included}[/green]  "
        f"[bold]Skipped:[/bold] [yellow]{stats.skipped}[/yellow]  "
        f"[bold]Errors:[/bold] [red]{stats.errors}[/red]"
    )
    if report.cancelled:
        console.print("[bold yellow]🛑 Run was cancelled - results are partial[/bold yellow]")


def _write_csv(report: BatchReport, csv_path: Optional[str]):
    path = export_csv(report.results, csv_path)
    console.print(f"[bold green]💾 CSV saved to:[/bold green] {path}")


def _print_errors(error_log: ErrorLog):
    for entry in error_log.entries():
        console.print(f"[red]  • [{entry['source']}] {entry['message']}[/red]")

# ─────────────────────────────────────────────────────────────────────────────
# CLI COMMANDS
# ─────────────────────────────────────────────────────────────────────────────

@click.group()
@click.version_option(version="1.0.0")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.option("--local-browser/--remote-browser", default=None,
              help="Launch a local Chromium instead of Browserless.io")
@click.option("--headless/--no-headless", default=None, help="Headless mode for a local browser")
@click.pass_context
def cli(ctx, verbose: bool, local_browser: Optional[bool], headless: Optional[bool]):
    """
    ⚖️ NY Surrogate's Court probate scraper

    Finds probate filings by date range and extracts estate details from the petitions.
    """
    _setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["overrides"] = {"local_browser": local_browser, "headless": headless}


def _search_options(func):
    func = click.option("--county", default="15", show_default=True, help="Court id (see `courts`)")(func)
    func = click.option("--proceeding", default="PROBATE PETITION", show_default=True, help="Proceeding type")(func)
    func = click.option("--from", "date_from", required=True, help="Start date MM/DD/YYYY")(func)
    func = click.option("--to", "date_to", required=True, help="End date MM/DD/YYYY")(func)
    return func


@cli.command()
@_search_options
@click.option("--output", help="Save the filings as JSON for `process`")
@click.pass_context
def search(ctx, county: str, proceeding: str, date_from: str, date_to: str, output: Optional[str]):
    """🔍 Phase 1: find filings in a date range"""
    settings = _settings(ctx)
    query = _query(county, proceeding, date_from, date_to, 0)
    error_log = ErrorLog()

    console.print(f"\n[bold blue]🔍 Searching {COURTS[query.county]} {query.proceeding} "
                  f"filings {query.from_date} - {query.to_date}...[/bold blue]")
    try:
        report = asyncio.run(search_filings(settings, query, error_sink=error_log))
    except ScraperError as e:
        _fail(f"Search failed: {e}")

    _print_search(report)
    if output:
        Path(output).write_text(json.dumps(report.model_dump(mode="json"), indent=2))
        console.print(f"[bold green]💾 Filings saved to:[/bold green] {output}")


@cli.command()
@click.argument("stubs_json", type=click.Path(exists=True, dir_okay=False))
@click.option("--county", default="15", show_default=True, help="Court id the filings belong to")
@click.option("--min-value", default=100000.0, show_default=True, help="Minimum estate value (upper bound)")
@click.option("--batch-size", type=int, help="Filings per browser session")
@click.option("--csv", "csv_path", help="Write included results to this CSV file")
@click.pass_context
def process(ctx, stubs_json: str, county: str, min_value: float, batch_size: Optional[int], csv_path: Optional[str]):
    """📄 Phase 2: look up, download and parse saved filings"""
    settings = _settings(ctx)
    if county not in COURTS:
        _fail(f"Unknown county {county!r}. Run `courts` to list supported counties.")
    stubs = _load_stubs(stubs_json)
    if not stubs:
        console.print("[yellow]⚠️ No filings to process[/yellow]")
        return

    error_log = ErrorLog()
    console.print(f"\n[bold blue]📄 Processing {len(stubs)} filing(s)...[/bold blue]")
    try:
        report = _run_cancellable(lambda cancel: process_in_batches(
            settings, county, stubs, min_value,
            batch_size=batch_size, cancel_event=cancel, error_sink=error_log,
        ))
    except ScraperError as e:
        _fail(f"Processing failed: {e}")

    _print_outcomes(report)
    _print_errors(error_log)
    if csv_path or report.batch_stats.included:
        _write_csv(report, csv_path)


@cli.command()
@_search_options
@click.option("--min-value", default=100000.0, show_default=True, help="Minimum estate value (upper bound)")
@click.option("--batch-size", type=int, help="Filings per browser session")
@click.option("--csv", "csv_path", help="Write included results to this CSV file")
@click.pass_context
def run(ctx, county: str, proceeding: str, date_from: str, date_to: str,
        min_value: float, batch_size: Optional[int], csv_path: Optional[str]):
    """🚀 Search and process in one go"""
    settings = _settings(ctx)
    query = _query(county, proceeding, date_from, date_to, min_value)
    error_log = ErrorLog()

    async def _both(cancel_event):
        found = await search_filings(settings, query, error_sink=error_log)
        _print_search(found)
        processed = await process_in_batches(
            settings, query.county, found.files, query.min_estate_value,
            batch_size=batch_size, cancel_event=cancel_event, error_sink=error_log,
        )
        return processed

    console.print(f"\n[bold blue]🚀 Running {COURTS[query.county]} {query.from_date} - {query.to_date}[/bold blue]")
    try:
        report = _run_cancellable(_both)
    except ScraperError as e:
        _fail(f"Run failed: {e}")

    _print_outcomes(report)
    _print_errors(error_log)
    if csv_path or report.batch_stats.included:
        _write_csv(report, csv_path)


async def _diagnose(settings: ScraperSettings) -> List[tuple]:
    """Step through key, connect, gate, search form; stop at the first failure"""
    steps = []
    if settings.local_browser:
        steps.append(("Browser mode", True, "local Chromium"))
    else:
        has_key = settings.has_api_key()
        key = settings.browserless_api_key or ""
        steps.append(("Check API key", has_key,
                      f"Key is {len(key)} characters" if has_key else
                      "BROWSERLESS_API_KEY env var is missing or is placeholder"))
        if not has_key:
            return steps
        steps.append(("Build WebSocket URL", True, settings.redacted_endpoint()))

    try:
        session = await connect_session(settings)
    except ScraperError as e:
        steps.append(("Connect to browser", False, str(e)))
        return steps
    steps.append(("Connect to browser", True, "Browser connected"))

    async with session:
        try:
            await bypass_gate(session)
        except ScraperError as e:
            steps.append(("Bypass welcome gate", False, str(e)))
            return steps
        steps.append(("Bypass welcome gate", True, session.page.url))

        missing = [role for role in SEARCH_FORM_ROLES if await find_control(session.page, role) is None]
        steps.append((
            "Search form elements",
            not missing,
            f"missing: {', '.join(missing)}" if missing else f"found all {len(SEARCH_FORM_ROLES)}",
        ))
    return steps


@cli.command()
@click.pass_context
def check(ctx):
    """🩺 Test the browser connection and portal gate step by step"""
    settings = _settings(ctx)
    console.print("\n[bold blue]🩺 Checking connection chain...[/bold blue]")
    steps = asyncio.run(_diagnose(settings))

    table = Table(title="Connection check")
    table.add_column("Step", style="cyan")
    table.add_column("Status")
    table.add_column("Detail")
    for name, ok, detail in steps:
        table.add_row(name, "[green]PASS[/green]" if ok else "[red]FAIL[/red]", detail)
    console.print(table)

    if not all(ok for _, ok, _ in steps):
        sys.exit(1)


@cli.command()
def courts():
    """📋 List supported counties and proceeding types"""
    table = Table(title="Counties")
    table.add_column("Court id", style="cyan")
    table.add_column("County")
    for court_id, name in COURTS.items():
        table.add_row(court_id, name)
    console.print(table)

    table = Table(title="Proceedings")
    table.add_column("Proceeding", style="cyan")
    table.add_column("Short name")
    for label, short in LIST_TYPES.items():
        table.add_row(label, short)
    console.print(table)


if __name__ == "__main__":
    cli()
