from __future__ import annotations

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from camfleet.cli.common import (
    build_store,
    load_inventory_or_exit,
    load_settings_or_exit,
)
from camfleet.clients import ClientFactory, onvif_client_factory
from camfleet.core.applier import DeviceState, failure_result, read_state, stream_url
from camfleet.errors import CamfleetError
from camfleet.models import Device, ProtocolVariant
from camfleet.utils.redaction import Redactor


async def inspect_device(
    device: Device, factory: ClientFactory
) -> tuple[DeviceState, str]:
    client = factory(device, ProtocolVariant.PRIMARY)
    try:
        state = await read_state(client)
        url = await stream_url(device, client, state.profile_token)
    finally:
        await client.close()
    return state, url


def register(app: typer.Typer) -> None:
    @app.command()
    def check(
        device_id: str = typer.Argument(..., help="Camera ID"),
        redact: bool = typer.Option(
            False, "--redact", help="Redact sensitive values in output"
        ),
    ) -> None:
        """Show a camera's current encoder configuration and capabilities."""
        settings = load_settings_or_exit()
        inventory = load_inventory_or_exit(build_store(settings))
        console = Console()
        redactor = Redactor(enabled=redact)

        try:
            device = inventory.get(device_id)
        except CamfleetError as exc:
            typer.echo(str(exc), err=True)
            raise typer.Exit(1) from exc

        address = redactor.redact_address(device.address)
        if device.simulated:
            console.print(f"Camera {device.id} ({address}) is simulated.")
            return

        console.print(f"Checking camera {device.id} at {address}...")
        try:
            state, url = asyncio.run(
                inspect_device(device, onvif_client_factory(settings))
            )
        except CamfleetError as exc:
            message = failure_result(device, exc).error_message
            console.print(f"[red]✗[/red] {message}")
            raise typer.Exit(1) from exc

        capabilities = state.capabilities
        table = Table(show_header=False)
        table.add_column("Field", style="cyan")
        table.add_column("Value")
        table.add_row("Profile", state.profile_token)
        table.add_row("Encoder config", state.config_token)
        table.add_row("Current", state.current.describe())
        table.add_row(
            "Resolutions",
            ", ".join(str(res) for res in capabilities.resolutions)
            or "none advertised",
        )
        table.add_row("Frame rate range", "%d-%d" % capabilities.frame_rate_range)
        table.add_row("Bitrate range", "%d-%d kbps" % capabilities.bitrate_range)
        table.add_row("Stream", redactor.redact_url(url))
        console.print(table)
