from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from camfleet.cli.common import build_store
from camfleet.config import (
    DatabaseConfig,
    Settings,
    resolve_config_path,
    write_settings,
)


def register(app: typer.Typer) -> None:
    @app.command()
    def init(
        data_dir: Annotated[
            Path | None,
            typer.Option("--data-dir", "--path", help="Custom data directory"),
        ] = None,
        force: Annotated[
            bool,
            typer.Option("--force", "-f", help="Overwrite existing config"),
        ] = False,
    ) -> None:
        """Create the config file and an empty camera inventory."""
        console = Console()

        try:
            config_path, config_exists = resolve_config_path(allow_missing=True)
        except FileNotFoundError as exc:
            typer.echo(str(exc), err=True)
            raise typer.Exit(1) from exc

        settings = Settings()
        if data_dir is not None:
            settings = Settings(database=DatabaseConfig(path=str(data_dir)))

        if config_exists and not force:
            console.print(f"[dim]Config exists:[/dim] {config_path}")
        else:
            write_settings(settings, config_path)
            action = "Overwrote" if config_exists else "Created"
            console.print(f"[green]✓[/green] {action} config: {config_path}")

        store = build_store(settings, data_dir=data_dir)
        existed = store.cameras_path.exists()
        store.init()

        if existed:
            console.print(f"[dim]Inventory exists:[/dim] {store.cameras_path}")
        else:
            console.print(
                f"[green]✓[/green] Initialized inventory: {store.cameras_path}"
            )
