from __future__ import annotations

import csv
import json
import tomllib
from pathlib import Path
from urllib.parse import unquote, urlsplit

from pydantic import ValidationError

from camfleet.errors import InventoryError
from camfleet.models import Device, Inventory

CAMERAS_FILE = "cameras.toml"

_TRUE_VALUES = {"1", "true", "yes", "y"}


def _toml_string(value: str) -> str:
    return json.dumps(value)


def _render_cameras_toml(inventory: Inventory) -> str:
    lines = [
        "# camfleet camera inventory",
        "# One entry per camera, keyed by camera ID",
        "",
        "[cameras]",
    ]

    for device in sorted(inventory, key=lambda item: item.id):
        fields = [
            f"host = {_toml_string(device.host)}",
            f"port = {device.port}",
        ]
        if device.base_path:
            fields.append(f"base_path = {_toml_string(device.base_path)}")
        if device.username:
            fields.append(f"username = {_toml_string(device.username)}")
        if device.password:
            fields.append(f"password = {_toml_string(device.password)}")
        if device.simulated:
            fields.append("simulated = true")
        lines.append(f"{_toml_string(device.id)} = {{ {', '.join(fields)} }}")

    lines.append("")
    return "\n".join(lines)


class InventoryStore:
    def __init__(self, data_dir: Path) -> None:
        self._data_dir = data_dir
        self._cameras_path = data_dir / CAMERAS_FILE

    @property
    def path(self) -> Path:
        return self._data_dir

    @property
    def cameras_path(self) -> Path:
        return self._cameras_path

    def ensure_dirs(self) -> None:
        self._data_dir.mkdir(parents=True, exist_ok=True)

    def load(self) -> Inventory:
        if not self._cameras_path.exists():
            return Inventory()

        try:
            with self._cameras_path.open("rb") as handle:
                data = tomllib.load(handle) or {}
        except tomllib.TOMLDecodeError as exc:
            raise InventoryError(
                f"Invalid TOML in cameras file: {self._cameras_path}\n{exc}"
            ) from exc

        devices = []
        for device_id, fields in data.get("cameras", {}).items():
            try:
                devices.append(Device.model_validate({"id": device_id, **fields}))
            except (ValidationError, TypeError) as exc:
                raise InventoryError(
                    f"Invalid camera {device_id!r} in {self._cameras_path}\n{exc}"
                ) from exc
        return Inventory(devices)

    def save(self, inventory: Inventory) -> None:
        self.ensure_dirs()
        self._cameras_path.write_text(_render_cameras_toml(inventory))

    def add(self, device: Device, replace: bool = False) -> None:
        inventory = self.load()
        if device.id in inventory and not replace:
            raise InventoryError(f"camera with ID {device.id} already exists")
        inventory.add(device)
        self.save(inventory)

    def remove(self, device_id: str) -> bool:
        inventory = self.load()
        if inventory.remove(device_id):
            self.save(inventory)
            return True
        return False

    def merge(self, devices: list[Device]) -> int:
        """Add or replace ``devices``; returns how many were new."""
        inventory = self.load()
        added = sum(1 for device in devices if device.id not in inventory)
        for device in devices:
            inventory.add(device)
        self.save(inventory)
        return added

    def init(self) -> None:
        self.ensure_dirs()
        if not self._cameras_path.exists():
            self.save(Inventory())


def device_from_rtsp(
    device_id: str, rtsp_url: str, port: int = 80, simulated: bool = False
) -> Device:
    """Build a camera from its RTSP URL; the ONVIF service shares its host."""
    parts = urlsplit(rtsp_url.strip())
    if parts.scheme.lower() not in ("rtsp", "rtsps") or not parts.hostname:
        raise InventoryError(f"camera {device_id}: invalid RTSP URL {rtsp_url!r}")
    try:
        return Device(
            id=device_id,
            host=parts.hostname,
            port=port,
            username=unquote(parts.username or ""),
            password=unquote(parts.password or ""),
            simulated=simulated,
        )
    except ValidationError as exc:
        raise InventoryError(f"camera {device_id}: {exc}") from exc


def import_cameras_csv(path: Path, default_port: int = 80) -> list[Device]:
    """Read cameras from a CSV with ``cam_id`` and ``rtsp`` columns.

    Optional columns: ``onvif_port`` and ``simulated``. Blank rows are
    skipped; duplicate IDs or hosts are rejected.
    """
    try:
        handle = path.open(newline="", encoding="utf-8-sig")
    except OSError as exc:
        raise InventoryError(f"cannot open {path}: {exc}") from exc

    with handle:
        reader = csv.DictReader(handle)
        if reader.fieldnames is None:
            raise InventoryError(f"{path} is empty")
        columns = {name.strip().lower(): name for name in reader.fieldnames if name}
        for required in ("cam_id", "rtsp"):
            if required not in columns:
                raise InventoryError(f"{path}: missing required column {required!r}")

        def cell(row: dict[str, str | None], column: str) -> str:
            name = columns.get(column)
            if name is None:
                return ""
            return (row.get(name) or "").strip()

        devices: list[Device] = []
        seen_ids: set[str] = set()
        seen_hosts: dict[str, str] = {}
        for line, row in enumerate(reader, start=2):
            device_id = cell(row, "cam_id")
            rtsp = cell(row, "rtsp")
            if not device_id and not rtsp:
                continue
            if not device_id or not rtsp:
                raise InventoryError(f"{path}:{line}: cam_id and rtsp are required")
            if device_id in seen_ids:
                raise InventoryError(f"{path}:{line}: duplicate camera ID {device_id}")

            port_text = cell(row, "onvif_port")
            try:
                port = int(port_text) if port_text else default_port
            except ValueError:
                raise InventoryError(
                    f"{path}:{line}: invalid onvif_port {port_text!r}"
                ) from None

            device = device_from_rtsp(
                device_id,
                rtsp,
                port=port,
                simulated=cell(row, "simulated").lower() in _TRUE_VALUES,
            )
            if device.host in seen_hosts:
                raise InventoryError(
                    f"{path}:{line}: camera {device_id} has the same host "
                    f"{device.host} as camera {seen_hosts[device.host]}"
                )
            seen_ids.add(device_id)
            seen_hosts[device.host] = device_id
            devices.append(device)

    return devices
