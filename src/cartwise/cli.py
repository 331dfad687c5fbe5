"""Command-line interface for Cartwise."""

from __future__ import annotations

import json
from typing import Optional

import typer

from cartwise.catalog import Catalog
from cartwise.config import get_settings
from cartwise.db.backends import SqlRepository
from cartwise.errors import NotFoundError
from cartwise.events import EventEmitter
from cartwise.lifecycle import CartLifecycleController

app = typer.Typer(help="Cartwise shopping-trip commands.")


def _load_controller() -> CartLifecycleController:
    repository = SqlRepository()
    events = EventEmitter()
    return CartLifecycleController(
        Catalog(repository.load_vault(), events=events),
        repository.list_carts(),
        events=events,
        settings=get_settings(),
    )


def _echo_json(payload: object, pretty: bool) -> None:
    typer.echo(json.dumps(payload, indent=2 if pretty else None, sort_keys=pretty))


@app.command()
def carts() -> None:
    """List carts with their status, value, and spend against budget."""

    controller = _load_controller()
    listed = controller.list_carts()
    if not listed:
        typer.echo("No carts yet.")
        return
    for cart in listed:
        budget = controller.ledger.budget_delta(cart)
        typer.echo(
            f"{cart.id}  {cart.name:<24} {cart.status.value:<10} "
            f"value={controller.ledger.cart_value(cart):.2f} "
            f"spent={budget.spent:.2f}/{cart.budget:.2f} ({budget.status.value})"
        )


@app.command()
def summary(
    cart_id: str = typer.Argument(..., help="Cart ID to summarize."),
    pretty: bool = typer.Option(True, "--pretty/--no-pretty", help="Pretty-print output JSON."),
) -> None:
    """
    Print the ledger summary (value, budget, progress, insights) for a cart as JSON.
    """

    controller = _load_controller()
    try:
        result = controller.summary(cart_id)
    except NotFoundError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc
    _echo_json(result.model_dump(mode="json"), pretty)


@app.command("price-history")
def price_history(
    item_id: str = typer.Argument(..., help="Catalog item ID."),
    pretty: bool = typer.Option(True, "--pretty/--no-pretty", help="Pretty-print output JSON."),
) -> None:
    """Show what was paid for an item on completed trips."""

    controller = _load_controller()
    if controller.catalog.find_item_by_id(item_id) is None:
        typer.secho(f"Item {item_id} not found", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    points = controller.price_history(item_id)
    _echo_json([point.model_dump(mode="json") for point in points], pretty)


@app.command("export-vault")
def export_vault(
    output: Optional[str] = typer.Option(None, "--output", "-o", help="Write JSON to this file."),
    pretty: bool = typer.Option(True, "--pretty/--no-pretty", help="Pretty-print output JSON."),
) -> None:
    """Dump the item catalog (categories, items, prices, stores) as JSON."""

    controller = _load_controller()
    payload = controller.vault.model_dump(mode="json")
    if output is None:
        _echo_json(payload, pretty)
        return
    with open(output, "w", encoding="utf-8") as fh:
        json.dump(payload, fh, indent=2 if pretty else None, sort_keys=pretty)
    typer.echo(f"Wrote vault to {output}")


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address."),
    port: Optional[int] = typer.Option(None, "--port", help="Bind port."),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes."),
) -> None:
    """Run the HTTP API with uvicorn."""

    from cartwise.server.run import serve as run_server

    run_server(host=host, port=port, reload=reload or None)


def main(argv: Optional[list[str]] = None) -> None:
    """Entry point for `python -m cartwise`."""
    app(prog_name="cartwise", args=argv)


if __name__ == "__main__":
    main()
