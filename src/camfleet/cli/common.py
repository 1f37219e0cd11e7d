from __future__ import annotations

from pathlib import Path

import typer

from camfleet.config import (
    Settings,
    data_dir_from_settings,
    get_settings,
    resolve_config_path,
)
from camfleet.errors import CamfleetError
from camfleet.models import EncoderConfig, Encoding, Inventory, Resolution
from camfleet.storage.inventory import InventoryStore


def load_settings_or_exit() -> Settings:
    try:
        return get_settings()
    except (FileNotFoundError, ValueError) as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(1) from exc


def resolve_config_path_or_exit(allow_missing: bool = False) -> tuple[Path, bool]:
    try:
        return resolve_config_path(allow_missing=allow_missing)
    except FileNotFoundError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(1) from exc


def build_store(settings: Settings, data_dir: Path | None = None) -> InventoryStore:
    path = data_dir or data_dir_from_settings(settings)
    return InventoryStore(path)


def load_inventory_or_exit(store: InventoryStore) -> Inventory:
    try:
        return store.load()
    except CamfleetError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(1) from exc


def desired_config_or_exit(
    width: int,
    height: int,
    frame_rate: int = 0,
    bitrate: int = 0,
    encoding: str | None = None,
) -> EncoderConfig:
    try:
        return EncoderConfig(
            resolution=Resolution(width=width, height=height),
            frame_rate=frame_rate,
            bitrate_kbps=bitrate,
            encoding=Encoding.parse(encoding) if encoding else None,
        )
    except ValueError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(1) from exc
