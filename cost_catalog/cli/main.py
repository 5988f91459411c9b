"""
CLI interface for the cost catalog.

Provides command-line access to price resolution and to the plan and price
timelines.
"""

import json
import sys
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, List, Optional, Sequence

import typer
import yaml
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from cost_catalog.config.loader import CatalogSettings, load_seed_catalog, load_settings
from cost_catalog.core.clock import parse_timestamp
from cost_catalog.core.errors import (
    CostCatalogError,
    StoreUnavailableError,
    UnconfiguredError,
)
from cost_catalog.core.logging import configure_logging
from cost_catalog.core.pricing import format_cost
from cost_catalog.core.service import CostService
from cost_catalog.demo.seed import DEFAULT_SEED_PATH
from cost_catalog.storage.models import PlanRecord, PriceRecord, ResolvedPrice
from cost_catalog.storage.repository import initialize_schema

app = typer.Typer()
prices_app = typer.Typer(help="Effective prices under each provider's active plan.")
costs_app = typer.Typer(help="Price timelines per cost name, across all plans.")
plans_app = typer.Typer(help="Active plan timelines per provider.")
app.add_typer(prices_app, name="prices")
app.add_typer(costs_app, name="costs")
app.add_typer(plans_app, name="plans")

console = Console()

EXIT_CODE_OK = 0
EXIT_CODE_FAIL = 1  # Client-side failure: not found, conflict, bad input, unauthorized
EXIT_CODE_UNCONFIGURED = 2  # Operator defect: provider without an active plan
EXIT_CODE_STORE_UNAVAILABLE = 3  # Transient, safe to retry

API_KEY_ENVVAR = "COST_CATALOG_API_KEY"

_as_of_option = typer.Option(
    None, "--as-of", help="Query time as ISO-8601 (defaults to now)"
)
_json_option = typer.Option(False, "--json", help="Print JSON instead of a table")
_api_key_option = typer.Option(
    None, "--api-key", envvar=API_KEY_ENVVAR, help="Admin key required for writes"
)
_effective_from_option = typer.Option(
    None, "--effective-from", help="When the entry takes effect, ISO-8601 (defaults to now)"
)


def _get_settings() -> CatalogSettings:
    return load_settings()


def _get_service() -> CostService:
    return CostService.from_settings(_get_settings())


@contextmanager
def _handle_errors() -> Iterator[None]:
    """Map catalog errors to messages and exit codes."""
    try:
        yield
    except UnconfiguredError as e:
        console.print(f"[red]Unconfigured:[/] {escape(str(e))}")
        sys.exit(EXIT_CODE_UNCONFIGURED)
    except StoreUnavailableError as e:
        console.print(f"[red]Store unavailable:[/] {escape(str(e))}")
        if "no such table" in str(e).lower():
            console.print("Run `cost-catalog init` to initialize the database")
        sys.exit(EXIT_CODE_STORE_UNAVAILABLE)
    except CostCatalogError as e:
        console.print(f"[red]Error:[/] {escape(str(e))}")
        sys.exit(EXIT_CODE_FAIL)


def _parse_optional_time(value: Optional[str]) -> Optional[datetime]:
    return parse_timestamp(value) if value else None


def _print_json(data) -> None:
    typer.echo(json.dumps(data, indent=2))


def _print_prices(title: str, prices: Sequence[ResolvedPrice]) -> None:
    table = Table(title=title)
    table.add_column("Name")
    table.add_column("Cost (¢/unit)", justify="right")
    table.add_column("Provider")
    table.add_column("Effective from")
    for price in prices:
        table.add_row(
            price.name,
            format_cost(price.cost_per_unit),
            price.provider,
            price.effective_from.isoformat(),
        )
    console.print(table)


def _print_price_records(title: str, records: Sequence[PriceRecord]) -> None:
    table = Table(title=title)
    table.add_column("Name")
    table.add_column("Plan")
    table.add_column("Cost (¢/unit)", justify="right")
    table.add_column("Effective from")
    for record in records:
        table.add_row(
            record.name,
            f"{record.plan_tier}/{record.billing_cycle}",
            format_cost(record.cost_per_unit),
            record.effective_from.isoformat(),
        )
    console.print(table)


def _print_plans(title: str, plans: Sequence[PlanRecord]) -> None:
    table = Table(title=title)
    table.add_column("Provider")
    table.add_column("Plan tier")
    table.add_column("Billing cycle")
    table.add_column("Effective from")
    for plan in plans:
        table.add_row(
            plan.provider,
            plan.plan_tier,
            plan.billing_cycle,
            plan.effective_from.isoformat(),
        )
    console.print(table)


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context):
    """Cost catalog CLI."""
    try:
        settings = _get_settings()
    except ValueError as e:
        console.print(f"[red]Invalid configuration:[/] {escape(str(e))}")
        sys.exit(EXIT_CODE_FAIL)
    configure_logging(settings.log_level, settings.log_format.value)

    if ctx.invoked_subcommand is None:
        console.print("Cost Catalog - Use --help to see available commands")


@app.command()
def init():
    """Initialize the cost catalog database."""
    settings = _get_settings()
    with _handle_errors():
        initialize_schema(settings.db, settings.db_timeout)
    console.print("[green]✓[/] Database initialized successfully")


@app.command()
def seed(
    path: Optional[str] = typer.Argument(
        None, help="YAML seed catalog (defaults to the bundled catalog)"
    ),
    api_key: Optional[str] = _api_key_option,
):
    """Load a seed catalog. Entries that already exist are skipped."""
    seed_path = path or str(DEFAULT_SEED_PATH)
    try:
        catalog = load_seed_catalog(seed_path)
    except (FileNotFoundError, yaml.YAMLError, ValueError) as e:
        console.print(f"[red]Invalid seed catalog:[/] {escape(str(e))}")
        sys.exit(EXIT_CODE_FAIL)

    with _handle_errors():
        plans_added, prices_added = _get_service().seed(api_key, catalog)
    console.print(
        f"[green]✓[/] Seed complete: {plans_added} plan(s), {prices_added} price(s) added"
    )


@prices_app.command("list")
def list_prices(as_of: Optional[str] = _as_of_option, as_json: bool = _json_option):
    """List the effective price of every resolvable cost name."""
    with _handle_errors():
        prices = _get_service().list_current_prices(_parse_optional_time(as_of))
    if as_json:
        _print_json([price.to_dict() for price in prices])
        return
    if not prices:
        console.print("[dim]No resolvable prices.[/]")
        return
    _print_prices("Current prices", prices)


@prices_app.command("show")
def show_price(
    name: str = typer.Argument(..., help="Cost name"),
    as_of: Optional[str] = _as_of_option,
    as_json: bool = _json_option
):
    """Show the effective price of one cost name."""
    with _handle_errors():
        price = _get_service().get_current_price(name, _parse_optional_time(as_of))
    if as_json:
        _print_json(price.to_dict())
        return
    _print_prices(f"Price of {name}", [price])


@costs_app.command("history")
def cost_history(name: str = typer.Argument(..., help="Cost name"), as_json: bool = _json_option):
    """Show every price point of a cost name, newest first."""
    with _handle_errors():
        records = _get_service().get_price_history(name)
    if as_json:
        _print_json([record.to_dict() for record in records])
        return
    _print_price_records(f"History of {name}", records)


@costs_app.command("plans")
def cost_plans(
    name: str = typer.Argument(..., help="Cost name"),
    as_of: Optional[str] = _as_of_option,
    as_json: bool = _json_option
):
    """Show the current price of a cost name under each plan it is priced for."""
    with _handle_errors():
        records = _get_service().get_plan_options(name, _parse_optional_time(as_of))
    if as_json:
        _print_json([record.to_dict() for record in records])
        return
    _print_price_records(f"Plan options for {name}", records)


@costs_app.command("set")
def set_cost(
    name: str = typer.Argument(..., help="Cost name"),
    provider: str = typer.Option(..., "--provider", help="Provider owning the name"),
    plan_tier: str = typer.Option(..., "--plan-tier", help="Plan tier the price applies to"),
    billing_cycle: str = typer.Option(..., "--billing-cycle", help="Billing cycle the price applies to"),
    cost: str = typer.Option(..., "--cost", help="Cost per unit in US cents"),
    effective_from: Optional[str] = _effective_from_option,
    api_key: Optional[str] = _api_key_option,
    as_json: bool = _json_option
):
    """Append a price point for a cost name."""
    with _handle_errors():
        record = _get_service().append_price(
            api_key,
            name,
            provider,
            plan_tier,
            billing_cycle,
            cost,
            _parse_optional_time(effective_from),
        )
    if as_json:
        _print_json(record.to_dict())
        return
    console.print(
        f"[green]✓[/] {escape(record.name)} @ {format_cost(record.cost_per_unit)} ¢/unit "
        f"on {escape(record.plan_tier)}/{escape(record.billing_cycle)} "
        f"from {record.effective_from.isoformat()}"
    )


@costs_app.command("delete")
def delete_cost(
    name: str = typer.Argument(..., help="Cost name"),
    api_key: Optional[str] = _api_key_option
):
    """Delete every price point of a cost name."""
    with _handle_errors():
        deleted = _get_service().delete_prices(api_key, name)
    console.print(f"[green]✓[/] Deleted {deleted} price point(s) for {escape(name)}")


@plans_app.command("list")
def list_plans(as_of: Optional[str] = _as_of_option, as_json: bool = _json_option):
    """List the active plan of every provider."""
    with _handle_errors():
        plans = _get_service().list_current_plans(_parse_optional_time(as_of))
    if as_json:
        _print_json([plan.to_dict() for plan in plans])
        return
    if not plans:
        console.print("[dim]No active plans.[/]")
        return
    _print_plans("Current plans", plans)


@plans_app.command("show")
def show_plan(
    provider: str = typer.Argument(..., help="Provider"),
    as_of: Optional[str] = _as_of_option,
    as_json: bool = _json_option
):
    """Show the active plan of one provider."""
    with _handle_errors():
        plan = _get_service().get_current_plan(provider, _parse_optional_time(as_of))
    if as_json:
        _print_json(plan.to_dict())
        return
    _print_plans(f"Plan of {provider}", [plan])


@plans_app.command("history")
def plan_history(provider: str = typer.Argument(..., help="Provider"), as_json: bool = _json_option):
    """Show every plan assignment of a provider, newest first."""
    with _handle_errors():
        plans: List[PlanRecord] = _get_service().get_plan_history(provider)
    if as_json:
        _print_json([plan.to_dict() for plan in plans])
        return
    _print_plans(f"Plan history of {provider}", plans)


@plans_app.command("set")
def set_plan(
    provider: str = typer.Argument(..., help="Provider"),
    plan_tier: str = typer.Option(..., "--plan-tier", help="Plan tier"),
    billing_cycle: str = typer.Option(..., "--billing-cycle", help="Billing cycle"),
    effective_from: Optional[str] = _effective_from_option,
    api_key: Optional[str] = _api_key_option,
    as_json: bool = _json_option
):
    """Append a plan assignment for a provider."""
    with _handle_errors():
        plan = _get_service().append_plan(
            api_key,
            provider,
            plan_tier,
            billing_cycle,
            _parse_optional_time(effective_from),
        )
    if as_json:
        _print_json(plan.to_dict())
        return
    console.print(
        f"[green]✓[/] {escape(plan.provider)} on {escape(plan.plan_tier)}/"
        f"{escape(plan.billing_cycle)} from {plan.effective_from.isoformat()}"
    )


if __name__ == "__main__":
    app()
