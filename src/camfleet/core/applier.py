"""Reconcile one camera's encoder configuration with a desired one."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from urllib.parse import quote, urlsplit, urlunsplit

from camfleet.clients.base import DeviceClient
from camfleet.core.network import classify_network_error, describe_network_failure
from camfleet.core.resolution import ResolutionMatcher
from camfleet.errors import (
    CamfleetError,
    DeviceClientError,
    DiscoveryError,
    StreamUrlError,
    UnknownDeviceError,
    VerificationError,
    WriteError,
)
from camfleet.models import (
    ApplyResult,
    ConfigRole,
    Device,
    EncoderCapabilities,
    EncoderConfig,
    ErrorKind,
    NetworkCategory,
    ProtocolVariant,
    Resolution,
)

logger = logging.getLogger(__name__)

HIGH_BITRATE_KBPS = 8192
MEDIUM_BITRATE_KBPS = 4096
LOW_BITRATE_KBPS = 2048

_ERROR_KINDS: list[tuple[type[CamfleetError], ErrorKind]] = [
    (DiscoveryError, ErrorKind.DISCOVERY),
    (WriteError, ErrorKind.WRITE),
    (VerificationError, ErrorKind.VERIFICATION),
    (StreamUrlError, ErrorKind.STREAM_URL),
    (UnknownDeviceError, ErrorKind.UNKNOWN_DEVICE),
]


@dataclass(frozen=True)
class DeviceState:
    """What a camera reported before anything was written."""

    profile_token: str
    config_token: str
    current: EncoderConfig
    capabilities: EncoderCapabilities


def default_bitrate(resolution: Resolution) -> int:
    pixels = resolution.area
    if pixels >= 1920 * 1080:
        return HIGH_BITRATE_KBPS
    if pixels >= 1280 * 720:
        return MEDIUM_BITRATE_KBPS
    return LOW_BITRATE_KBPS


def merge_config(
    desired: EncoderConfig,
    current: EncoderConfig,
    resolution: Resolution,
    capabilities: EncoderCapabilities,
) -> EncoderConfig:
    """Fill the unset fields of ``desired`` from what the camera runs now.

    A current bitrate only carries over when the resolution stays the same;
    otherwise the resolution-scaled default is used, clamped to the range the
    camera advertises.
    """
    if desired.bitrate_kbps:
        bitrate = desired.bitrate_kbps
    elif current.bitrate_kbps and resolution == current.resolution:
        bitrate = current.bitrate_kbps
    else:
        bitrate = capabilities.clamp_bitrate(default_bitrate(resolution))

    return EncoderConfig(
        resolution=resolution,
        quality=desired.quality or current.quality,
        frame_rate=desired.frame_rate or current.frame_rate,
        bitrate_kbps=bitrate,
        encoding=desired.encoding or current.encoding,
        role=ConfigRole.APPLIED,
    )


def embed_credentials(url: str, username: str, password: str) -> str:
    """Return ``url`` with the device credentials in its userinfo part.

    URLs that already carry a user name are returned unchanged.
    """
    parts = urlsplit(url.strip())
    if not parts.scheme or not parts.hostname:
        raise StreamUrlError(f"invalid stream URL: {url!r}")
    if parts.username or not username:
        return parts.geturl()
    userinfo = quote(username, safe="")
    if password:
        userinfo = f"{userinfo}:{quote(password, safe='')}"
    return urlunsplit(
        (
            parts.scheme,
            f"{userinfo}@{parts.netloc}",
            parts.path,
            parts.query,
            parts.fragment,
        )
    )


async def discover(client: DeviceClient) -> tuple[str, str]:
    try:
        profiles, configs = await client.discover_profiles_and_configs()
    except DeviceClientError as exc:
        raise DiscoveryError(
            f"failed to get camera profiles and configs: {exc}"
        ) from exc
    if not profiles:
        raise DiscoveryError("no media profiles found")
    if not configs:
        raise DiscoveryError("no video encoder configurations found")
    return profiles[0], configs[0]


async def read_state(client: DeviceClient) -> DeviceState:
    profile_token, config_token = await discover(client)
    try:
        current = await client.get_current_config(config_token)
    except DeviceClientError as exc:
        raise DiscoveryError(
            f"failed to read video encoder configuration: {exc}"
        ) from exc
    try:
        capabilities = await client.get_capabilities(profile_token, config_token)
    except DeviceClientError as exc:
        raise DiscoveryError(f"failed to get video encoder options: {exc}") from exc
    return DeviceState(
        profile_token=profile_token,
        config_token=config_token,
        current=current.with_role(ConfigRole.CURRENT),
        capabilities=capabilities,
    )


async def write_config(
    client: DeviceClient, config_token: str, config: EncoderConfig
) -> None:
    try:
        await client.set_config(config_token, config)
    except DeviceClientError as exc:
        raise WriteError(f"failed to set video encoder configuration: {exc}") from exc


async def stream_url(device: Device, client: DeviceClient, profile_token: str) -> str:
    try:
        url = await client.get_stream_url(profile_token)
    except DeviceClientError as exc:
        raise StreamUrlError(f"failed to get stream URL: {exc}") from exc
    if not url:
        raise StreamUrlError("camera returned an empty stream URL")
    return embed_credentials(url, device.username, device.password)


def failure_result(
    device: Device,
    exc: CamfleetError,
    protocol: ProtocolVariant = ProtocolVariant.PRIMARY,
) -> ApplyResult:
    """Turn a per-device engine error into a failed ``ApplyResult``."""
    kind = ErrorKind.DISCOVERY
    for error_type, error_kind in _ERROR_KINDS:
        if isinstance(exc, error_type):
            kind = error_kind
            break

    category: NetworkCategory | None = None
    message = str(exc)
    if exc.__cause__ is not None:
        category = classify_network_error(exc.__cause__)
        if kind is ErrorKind.DISCOVERY:
            message = describe_network_failure(device, category, exc)

    return ApplyResult.failure(
        device.id,
        kind,
        message,
        network_category=category,
        protocol=protocol,
    )


class ConfigApplier:
    """Bring one camera's encoder configuration in line with ``desired``."""

    def __init__(self, matcher: ResolutionMatcher | None = None) -> None:
        self.matcher = matcher or ResolutionMatcher()

    def simulate(self, device: Device, desired: EncoderConfig) -> ApplyResult:
        logger.info("Camera %s is simulated, skipping device calls", device.id)
        return ApplyResult(
            device_id=device.id,
            success=True,
            applied_config=desired.with_role(ConfigRole.APPLIED),
        )

    def resolve_resolution(
        self, desired: EncoderConfig, state: DeviceState
    ) -> Resolution:
        if desired.resolution.is_zero:
            return state.current.resolution
        available = state.capabilities.resolutions
        if not available:
            logger.warning(
                "Camera advertises no resolutions, writing %s as requested",
                desired.resolution,
            )
            return desired.resolution
        return self.matcher.match(desired.resolution, available)

    async def apply(
        self, device: Device, desired: EncoderConfig, client: DeviceClient
    ) -> ApplyResult:
        if device.simulated:
            return self.simulate(device, desired)
        try:
            return await self._apply(device, desired, client)
        except CamfleetError as exc:
            logger.warning("Apply failed for camera %s: %s", device.id, exc)
            return failure_result(device, exc)

    async def _apply(
        self, device: Device, desired: EncoderConfig, client: DeviceClient
    ) -> ApplyResult:
        state = await read_state(client)
        current = state.current
        resolution = self.resolve_resolution(desired, state)
        adjusted = not desired.resolution.is_zero and resolution != desired.resolution
        if adjusted:
            logger.info(
                "Camera %s does not offer %s, using %s",
                device.id,
                desired.resolution,
                resolution,
            )

        target = EncoderConfig(
            resolution=resolution,
            frame_rate=desired.frame_rate or current.frame_rate,
            bitrate_kbps=desired.bitrate_kbps,
            encoding=desired.encoding,
        )
        if target.matches(current):
            logger.info(
                "Camera %s already runs %s, skipping write",
                device.id,
                current.describe(),
            )
            url = await stream_url(device, client, state.profile_token)
            return ApplyResult(
                device_id=device.id,
                success=True,
                unchanged=True,
                applied_config=current.with_role(ConfigRole.APPLIED),
                stream_url=url,
                resolution_adjusted=adjusted,
            )

        applied = merge_config(desired, current, resolution, state.capabilities)
        logger.info(
            "Writing %s to camera %s (was %s)",
            applied.describe(),
            device.id,
            current.describe(),
        )
        await write_config(client, state.config_token, applied)
        url = await stream_url(device, client, state.profile_token)
        return ApplyResult(
            device_id=device.id,
            success=True,
            applied_config=applied,
            stream_url=url,
            resolution_adjusted=adjusted,
        )
