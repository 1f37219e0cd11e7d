"""Camera inventory models."""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from pydantic import BaseModel, Field

from camfleet.errors import UnknownDeviceError


class Device(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    id: str = Field(min_length=1)
    host: str = Field(min_length=1)
    port: int = Field(default=80, ge=1, le=65535)
    base_path: str | None = None
    username: str = ""
    password: str = Field(default="", repr=False)
    simulated: bool = False

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"


class Inventory:
    """Devices keyed by id, in insertion order."""

    def __init__(self, devices: Iterable[Device] = ()) -> None:
        self._devices: dict[str, Device] = {}
        for device in devices:
            self.add(device)

    def add(self, device: Device) -> None:
        self._devices[device.id] = device

    def remove(self, device_id: str) -> bool:
        return self._devices.pop(device_id, None) is not None

    def get(self, device_id: str) -> Device:
        try:
            return self._devices[device_id]
        except KeyError:
            raise UnknownDeviceError(device_id) from None

    def ids(self) -> list[str]:
        return list(self._devices)

    def __contains__(self, device_id: object) -> bool:
        return device_id in self._devices

    def __iter__(self) -> Iterator[Device]:
        return iter(self._devices.values())

    def __len__(self) -> int:
        return len(self._devices)
