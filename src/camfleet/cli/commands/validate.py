from __future__ import annotations

import asyncio
import logging

import typer
from rich.console import Console

from camfleet.cli.common import (
    build_store,
    desired_config_or_exit,
    load_inventory_or_exit,
    load_settings_or_exit,
)
from camfleet.clients import ClientFactory, onvif_client_factory
from camfleet.core.applier import ConfigApplier, failure_result
from camfleet.core.fallback import FallbackApplier
from camfleet.core.probe import FfprobeProbe
from camfleet.core.registry import DeviceClientRegistry
from camfleet.core.validator import StreamValidator, ValidationPolicy
from camfleet.errors import CamfleetError
from camfleet.models import (
    Device,
    EncoderConfig,
    Inventory,
    ProtocolVariant,
    ValidationResult,
)
from camfleet.utils.redaction import Redactor

logger = logging.getLogger(__name__)


async def validate_device(
    device: Device,
    expected: EncoderConfig,
    factory: ClientFactory,
    validator: StreamValidator,
    resolver: FallbackApplier | None = None,
) -> ValidationResult:
    """Probe one camera against ``expected`` without writing to it."""
    resolver = resolver or FallbackApplier(ConfigApplier())
    if device.simulated:
        return validator.synthesize(device.id, expected)
    async with DeviceClientRegistry(Inventory([device]), factory) as registry:
        url, variant = await resolver.resolve_stream_url(device, registry.client)
    if variant is ProtocolVariant.FALLBACK:
        logger.info("Camera %s answered over the fallback protocol", device.id)
    return await validator.validate(device.id, url, expected)


def register(app: typer.Typer) -> None:
    @app.command()
    def validate(
        device_id: str = typer.Argument(..., help="Camera ID"),
        width: int = typer.Option(..., "--width", help="Expected width"),
        height: int = typer.Option(..., "--height", help="Expected height"),
        fps: int = typer.Option(0, "--fps", help="Expected frame rate"),
        bitrate: int = typer.Option(0, "--bitrate", help="Expected bitrate in kbps"),
        redact: bool = typer.Option(
            False, "--redact", help="Redact sensitive values in output"
        ),
    ) -> None:
        """Probe a camera's stream without changing its configuration."""
        settings = load_settings_or_exit()
        inventory = load_inventory_or_exit(build_store(settings))
        expected = desired_config_or_exit(width, height, fps, bitrate)
        console = Console()
        redactor = Redactor(enabled=redact)

        try:
            device = inventory.get(device_id)
        except CamfleetError as exc:
            typer.echo(str(exc), err=True)
            raise typer.Exit(1) from exc

        validator = StreamValidator(
            FfprobeProbe.from_config(settings.probe),
            ValidationPolicy.from_config(settings.validation),
        )
        console.print(
            f"Validating camera {device.id} at "
            f"{redactor.redact_address(device.address)}..."
        )
        try:
            result = asyncio.run(
                validate_device(
                    device,
                    expected,
                    onvif_client_factory(settings),
                    validator,
                    FallbackApplier(ConfigApplier(), settings.fallback),
                )
            )
        except CamfleetError as exc:
            console.print(f"[red]✗[/red] {failure_result(device, exc).error_message}")
            raise typer.Exit(1) from exc

        console.print(f"Observed: {result.observed.describe()}")
        for issue in result.errors:
            console.print(f"  [red]•[/red] {issue.field}: {issue.detail}")
        for issue in result.warnings:
            console.print(f"  [yellow]•[/yellow] {issue.field}: {issue.detail}")

        if not result.is_valid:
            console.print("[red]✗[/red] Stream does not match")
            raise typer.Exit(1)
        console.print("[green]✓[/green] Stream matches")
