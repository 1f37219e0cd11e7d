from __future__ import annotations

from collections.abc import Callable

import pytest

from camfleet.config import get_settings
from camfleet.mock_device import MockCamera, MockFleet
from camfleet.models import (
    ConfigRole,
    Device,
    EncoderCapabilities,
    EncoderConfig,
    Inventory,
    Resolution,
)


@pytest.fixture(autouse=True)
def _isolate_settings_env(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("CAMFLEET_CONFIG", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def device() -> Device:
    return Device(id="cam-01", host="192.0.2.10", username="admin", password="s3cret")


@pytest.fixture
def camera() -> MockCamera:
    return MockCamera(
        capabilities=EncoderCapabilities(
            resolutions=[
                Resolution(width=1280, height=720),
                Resolution(width=1920, height=1080),
            ],
            frame_rate_range=(1, 30),
            bitrate_range=(512, 8192),
        ),
        current=EncoderConfig(
            resolution=Resolution(width=1280, height=720),
            quality=4,
            frame_rate=25,
            bitrate_kbps=2048,
            role=ConfigRole.CURRENT,
        ),
    )


@pytest.fixture
def fleet() -> MockFleet:
    return MockFleet()


@pytest.fixture
def make_inventory() -> Callable[..., Inventory]:
    def _make(*ids: str, simulated: tuple[str, ...] = ()) -> Inventory:
        return Inventory(
            Device(
                id=device_id,
                host=f"192.0.2.{index + 10}",
                username="admin",
                password="pw",
                simulated=device_id in simulated,
            )
            for index, device_id in enumerate(ids)
        )

    return _make
