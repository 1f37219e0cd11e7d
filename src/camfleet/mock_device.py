"""In-memory camera for development and testing."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from camfleet.errors import DeviceClientError
from camfleet.models import (
    ConfigRole,
    Device,
    EncoderCapabilities,
    EncoderConfig,
    ProtocolVariant,
    Resolution,
)

logger = logging.getLogger(__name__)

DEFAULT_RESOLUTIONS = [
    Resolution(width=640, height=480),
    Resolution(width=1280, height=720),
    Resolution(width=1920, height=1080),
]


@dataclass
class MockCamera:
    """Camera emulation implementing the ``DeviceClient`` protocol.

    ``fail_on`` maps a method name to the exception that method raises; anything
    other than a ``DeviceClientError`` is wrapped in one the way a real
    client would. ``write_override`` replaces the stored config on
    every write to emulate firmware that silently ignores a request.
    """

    name: str = "mock-camera"
    profiles: list[str] = field(default_factory=lambda: ["Profile_1"])
    configs: list[str] = field(default_factory=lambda: ["VideoEncoder_1"])
    capabilities: EncoderCapabilities = field(
        default_factory=lambda: EncoderCapabilities(
            resolutions=list(DEFAULT_RESOLUTIONS),
            frame_rate_range=(1, 30),
            bitrate_range=(512, 8192),
        )
    )
    current: EncoderConfig = field(
        default_factory=lambda: EncoderConfig(
            resolution=Resolution(width=1280, height=720),
            quality=4,
            frame_rate=25,
            bitrate_kbps=2048,
            role=ConfigRole.CURRENT,
        )
    )
    stream_url: str = "rtsp://192.0.2.10:554/Streaming/Channels/101"
    fail_on: dict[str, BaseException] = field(default_factory=dict)
    write_override: EncoderConfig | None = None

    writes: list[EncoderConfig] = field(default_factory=list)
    calls: list[str] = field(default_factory=list)
    closed: bool = False

    def _enter(self, method: str) -> None:
        self.calls.append(method)
        exc = self.fail_on.get(method)
        if exc is None:
            return
        if isinstance(exc, DeviceClientError):
            raise exc
        raise DeviceClientError(f"{method} failed: {exc}") from exc

    async def discover_profiles_and_configs(self) -> tuple[list[str], list[str]]:
        self._enter("discover_profiles_and_configs")
        return list(self.profiles), list(self.configs)

    async def get_capabilities(
        self, profile_token: str, config_token: str
    ) -> EncoderCapabilities:
        self._enter("get_capabilities")
        return self.capabilities

    async def get_current_config(self, config_token: str) -> EncoderConfig:
        self._enter("get_current_config")
        return self.current.with_role(ConfigRole.CURRENT)

    async def set_config(self, config_token: str, config: EncoderConfig) -> None:
        self._enter("set_config")
        self.writes.append(config)
        stored = self.write_override or config
        self.current = stored.with_role(ConfigRole.CURRENT)
        logger.debug("%s stored %s", self.name, self.current.describe())

    async def get_stream_url(self, profile_token: str) -> str:
        self._enter("get_stream_url")
        return self.stream_url

    async def close(self) -> None:
        self.closed = True


class MockFleet:
    """Client factory handing out one ``MockCamera`` per device and variant.

    Cameras not registered with ``add`` are created with defaults on first
    use, so a fleet can stand in for ``onvif_client_factory``.
    """

    def __init__(self) -> None:
        self.cameras: dict[tuple[str, ProtocolVariant], MockCamera] = {}

    def add(
        self,
        device_id: str,
        camera: MockCamera | None = None,
        variant: ProtocolVariant = ProtocolVariant.PRIMARY,
    ) -> MockCamera:
        camera = camera or MockCamera(name=device_id)
        self.cameras[(device_id, variant)] = camera
        return camera

    def __call__(self, device: Device, variant: ProtocolVariant) -> MockCamera:
        key = (device.id, variant)
        if key not in self.cameras:
            self.add(device.id, variant=variant)
        return self.cameras[key]
