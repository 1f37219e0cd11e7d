from __future__ import annotations

from typing import Annotated

import typer

from camfleet.config import Settings, render_settings_toml, write_settings

from .common import build_store, load_settings_or_exit, resolve_config_path_or_exit

app = typer.Typer(no_args_is_help=True, help="Show or create the config file")


@app.command("show")
def show_config() -> None:
    """Print the effective settings, with where they and the cameras come from."""
    settings = load_settings_or_exit()
    path, exists = resolve_config_path_or_exit(allow_missing=True)

    typer.echo(f"# settings: {path if exists else 'built-in defaults'}")
    typer.echo(f"# cameras: {build_store(settings).cameras_path}")
    typer.echo(render_settings_toml(settings))


@app.command("path")
def config_path() -> None:
    """Print the config file location, whether or not it exists yet."""
    path, _ = resolve_config_path_or_exit(allow_missing=True)
    typer.echo(str(path))


@app.command("init")
def init_config(
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Replace an existing config file"),
    ] = False,
) -> None:
    """Write the default settings; cameras are added with 'camfleet devices'."""
    path, exists = resolve_config_path_or_exit(allow_missing=True)

    if exists and not force:
        typer.echo(f"{path} already exists, use --force to replace it", err=True)
        raise typer.Exit(1)

    write_settings(Settings(), path)
    typer.echo(f"Wrote default settings to {path}")
