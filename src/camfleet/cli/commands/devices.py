from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from camfleet.cli.common import (
    build_store,
    load_inventory_or_exit,
    load_settings_or_exit,
)
from camfleet.errors import InventoryError
from camfleet.models import Device
from camfleet.storage.inventory import import_cameras_csv
from camfleet.utils.redaction import Redactor


def list_devices(
    redact: bool = typer.Option(
        False, "--redact", help="Redact sensitive values in output"
    ),
) -> None:
    """List cameras in the inventory."""
    settings = load_settings_or_exit()
    store = build_store(settings)
    inventory = load_inventory_or_exit(store)

    console = Console()

    if not inventory:
        console.print("No cameras defined.")
        console.print(
            f"Use 'camfleet devices add' or 'camfleet devices import' or edit "
            f"{store.cameras_path}"
        )
        return

    redactor = Redactor(enabled=redact)
    table = Table()
    table.add_column("ID", style="cyan")
    table.add_column("Address", style="green")
    table.add_column("User")
    table.add_column("Simulated")

    for device in sorted(inventory, key=lambda item: item.id):
        table.add_row(
            device.id,
            redactor.redact_address(device.address),
            device.username,
            "yes" if device.simulated else "",
        )

    console.print(table)


def add_device(
    device_id: str = typer.Argument(..., help="Camera ID"),
    host: str = typer.Argument(..., help="Camera hostname or IP"),
    port: int | None = typer.Option(None, "--port", help="ONVIF port"),
    username: str = typer.Option("", "--username", "-u", help="ONVIF user"),
    password: str = typer.Option("", "--password", "-p", help="ONVIF password"),
    base_path: str | None = typer.Option(
        None, "--base-path", help="Media service path when not the ONVIF default"
    ),
    simulated: bool = typer.Option(
        False, "--simulated", help="Skip device calls for this camera"
    ),
    replace: bool = typer.Option(False, "--replace", help="Replace existing camera"),
) -> None:
    """Add a camera to the inventory."""
    settings = load_settings_or_exit()
    store = build_store(settings)

    try:
        device = Device(
            id=device_id,
            host=host,
            port=port or settings.devices.port,
            username=username,
            password=password,
            base_path=base_path,
            simulated=simulated,
        )
        store.add(device, replace=replace)
    except (InventoryError, ValueError) as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(1) from exc

    console = Console()
    console.print(f"[green]✓[/green] Added camera '{device_id}' at {device.address}")


def remove_device(device_id: str = typer.Argument(..., help="Camera ID")) -> None:
    """Remove a camera from the inventory."""
    settings = load_settings_or_exit()
    store = build_store(settings)

    try:
        removed = store.remove(device_id)
    except InventoryError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(1) from exc

    console = Console()
    if removed:
        console.print(f"[green]✓[/green] Removed camera '{device_id}'")
    else:
        console.print(f"[yellow]![/yellow] Camera '{device_id}' not found")
        raise typer.Exit(1)


def import_devices(
    csv_path: Path = typer.Argument(..., help="CSV with cam_id and rtsp columns"),
) -> None:
    """Import cameras from a CSV file."""
    settings = load_settings_or_exit()
    store = build_store(settings)

    try:
        devices = import_cameras_csv(csv_path, default_port=settings.devices.port)
        added = store.merge(devices)
    except InventoryError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(1) from exc

    console = Console()
    console.print(
        f"[green]✓[/green] Imported {len(devices)} camera(s), {added} new, "
        f"into {store.cameras_path}"
    )


def register(app: typer.Typer) -> None:
    app.command("list")(list_devices)
    app.command("add")(add_device)
    app.command("remove")(remove_device)
    app.command("import")(import_devices)
