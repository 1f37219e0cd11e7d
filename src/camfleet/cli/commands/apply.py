from __future__ import annotations

import asyncio
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from camfleet.cli.common import (
    build_store,
    desired_config_or_exit,
    load_inventory_or_exit,
    load_settings_or_exit,
)
from camfleet.clients import ClientFactory, onvif_client_factory
from camfleet.config import Settings
from camfleet.core import BatchOrchestrator, DeviceClientRegistry
from camfleet.core.probe import FfprobeProbe, StreamProbe
from camfleet.errors import CamfleetError
from camfleet.export import result_label, write_report_csv
from camfleet.models import BatchReport, EncoderConfig, Inventory, ProtocolVariant
from camfleet.utils.redaction import Redactor

_RESULT_STYLES = {"PASS": "green", "FAIL": "red", "CONFIG_ERROR": "yellow"}


async def run_batch(
    settings: Settings,
    inventory: Inventory,
    device_ids: list[str],
    desired: EncoderConfig,
    factory: ClientFactory,
    probe: StreamProbe | None = None,
) -> BatchReport:
    async with DeviceClientRegistry(inventory, factory) as registry:
        orchestrator = BatchOrchestrator.from_settings(settings, registry, probe=probe)
        return await orchestrator.run(
            device_ids, desired, timeout=settings.batch.timeout
        )


def print_report(console: Console, report: BatchReport, redactor: Redactor) -> None:
    table = Table()
    table.add_column("Camera", style="cyan", no_wrap=True)
    table.add_column("Address", style="green", no_wrap=True)
    table.add_column("Result", no_wrap=True)
    table.add_column("Applied")
    table.add_column("Notes")

    for entry in report:
        label = result_label(entry)
        address = entry.device.address if entry.device is not None else ""
        applied = entry.apply.applied_config
        notes: list[str] = []
        if not entry.apply.success:
            notes.append(entry.apply.error_message or "")
        if entry.apply.unchanged:
            notes.append("unchanged")
        if entry.apply.protocol is not ProtocolVariant.PRIMARY:
            notes.append(f"via {entry.apply.protocol.value} protocol")
        if entry.validation is not None:
            notes.extend(
                f"{issue.severity.value}: {issue.detail}"
                for issue in entry.validation.issues
            )
        table.add_row(
            entry.device_id,
            redactor.redact_address(address) if address else "",
            f"[{_RESULT_STYLES[label]}]{label}[/{_RESULT_STYLES[label]}]",
            applied.describe() if applied is not None else "",
            "\n".join(notes),
        )

    console.print(table)
    summary = report.summary()
    console.print(
        f"Applied {summary.apply_succeeded}/{summary.total}, "
        f"validated {summary.validation_passed}, failed {summary.validation_failed}, "
        f"with warnings {summary.warnings}"
    )


def register(app: typer.Typer) -> None:
    @app.command()
    def apply(
        device_ids: list[str] | None = typer.Argument(None, help="Camera IDs"),
        width: int = typer.Option(..., "--width", help="Desired width"),
        height: int = typer.Option(..., "--height", help="Desired height"),
        fps: int = typer.Option(0, "--fps", help="Desired frame rate, 0 keeps current"),
        bitrate: int = typer.Option(
            0, "--bitrate", help="Desired bitrate in kbps, 0 picks a default"
        ),
        encoding: str | None = typer.Option(
            None, "--encoding", help="Desired encoding (H264, H265, MJPEG)"
        ),
        all_devices: bool = typer.Option(
            False, "--all", help="Apply to every camera in the inventory"
        ),
        csv_path: Path | None = typer.Option(
            None, "--csv", help="Write the report as CSV"
        ),
        redact: bool = typer.Option(
            False, "--redact", help="Redact sensitive values in output"
        ),
    ) -> None:
        """Apply an encoder configuration to cameras and validate their streams."""
        settings = load_settings_or_exit()
        inventory = load_inventory_or_exit(build_store(settings))
        desired = desired_config_or_exit(width, height, fps, bitrate, encoding)

        ids = inventory.ids() if all_devices else list(device_ids or [])
        if not ids:
            typer.echo("No cameras given; pass camera IDs or --all", err=True)
            raise typer.Exit(1)

        console = Console()
        redactor = Redactor(enabled=redact)
        console.print(f"Applying {desired.describe()} to {len(ids)} camera(s)...")

        try:
            report = asyncio.run(
                run_batch(
                    settings,
                    inventory,
                    ids,
                    desired,
                    onvif_client_factory(settings),
                    probe=FfprobeProbe.from_config(settings.probe),
                )
            )
        except CamfleetError as exc:
            typer.echo(str(exc), err=True)
            raise typer.Exit(1) from exc

        print_report(console, report, redactor)

        if csv_path is not None:
            write_report_csv(report, csv_path, redactor)
            console.print(f"Report written to {csv_path}")

        if not all(entry.passed for entry in report):
            raise typer.Exit(1)
