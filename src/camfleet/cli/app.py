from __future__ import annotations

from typing import Annotated

import typer

from camfleet.utils.logging import setup_logging

from . import config as config_cmd
from .commands.apply import register as register_apply
from .commands.check import register as register_check
from .commands.devices import register as register_devices
from .commands.init import register as register_init
from .commands.validate import register as register_validate

app = typer.Typer(
    help="camfleet - bring camera encoder settings in line and check the streams",
    no_args_is_help=True,
)

app.add_typer(config_cmd.app, name="config")

devices_app = typer.Typer(no_args_is_help=True, help="Manage the camera inventory")
register_devices(devices_app)
app.add_typer(devices_app, name="devices")

register_init(app)
register_check(app)
register_apply(app)
register_validate(app)


@app.callback(invoke_without_command=True)
def main(
    version: Annotated[
        bool,
        typer.Option("--version", "-v", help="Show version and exit"),
    ] = False,
) -> None:
    """camfleet CLI."""
    setup_logging()

    if version:
        from importlib.metadata import version as get_version

        typer.echo(f"camfleet version {get_version('camfleet')}")
        raise typer.Exit()
