"""Retry an unreachable camera over the secondary protocol variant."""

from __future__ import annotations

import logging
from enum import Enum

from camfleet.clients.base import ClientFactory, DeviceClient
from camfleet.config import FallbackConfig
from camfleet.core.applier import (
    ConfigApplier,
    DeviceState,
    discover,
    failure_result,
    read_state,
    stream_url,
    write_config,
)
from camfleet.errors import CamfleetError, DeviceClientError, VerificationError
from camfleet.models import (
    ApplyResult,
    ConfigRole,
    Device,
    EncoderConfig,
    ErrorKind,
    NetworkCategory,
    ProtocolVariant,
    Resolution,
)

logger = logging.getLogger(__name__)


class ApplyState(str, Enum):
    DISCOVERING = "discovering"
    FALLBACK_TRIGGERED = "fallback_triggered"
    SUCCESS = "success"
    FAILED = "failed"


def should_fall_back(result: ApplyResult) -> bool:
    """Whether the primary protocol looked unreachable rather than unwilling."""
    if result.success:
        return False
    if result.error_class is ErrorKind.DISCOVERY:
        return True
    return result.network_category is NetworkCategory.CONNECTION_REFUSED


async def _lookup_stream_url(device: Device, client: DeviceClient) -> str:
    profile_token, _ = await discover(client)
    return await stream_url(device, client, profile_token)


class FallbackApplier:
    """Apply over the primary protocol, falling back to the secondary once.

    The fallback pass writes a reduced configuration, reads it back and
    reports a verification failure when the camera did not take it.
    """

    def __init__(
        self,
        applier: ConfigApplier,
        config: FallbackConfig | None = None,
    ) -> None:
        self.applier = applier
        self.config = config or FallbackConfig()

    @property
    def default_resolution(self) -> Resolution:
        return Resolution(width=self.config.width, height=self.config.height)

    def reduced_config(
        self, desired: EncoderConfig, state: DeviceState
    ) -> EncoderConfig:
        current = state.current
        resolution = desired.resolution
        if resolution.is_zero:
            resolution = self.default_resolution
        if state.capabilities.resolutions:
            resolution = self.applier.matcher.match(
                resolution, state.capabilities.resolutions
            )
        return EncoderConfig(
            resolution=resolution,
            quality=current.quality,
            frame_rate=desired.frame_rate or self.config.frame_rate,
            bitrate_kbps=current.bitrate_kbps,
            encoding=current.encoding,
            role=ConfigRole.APPLIED,
        )

    async def apply(
        self, device: Device, desired: EncoderConfig, clients: ClientFactory
    ) -> ApplyResult:
        if device.simulated:
            return self.applier.simulate(device, desired)

        self._enter(device, ApplyState.DISCOVERING, ProtocolVariant.PRIMARY)
        primary = await self.applier.apply(
            device, desired, clients(device, ProtocolVariant.PRIMARY)
        )
        if primary.success:
            self._enter(device, ApplyState.SUCCESS, ProtocolVariant.PRIMARY)
            return primary
        if not self.config.enabled or not should_fall_back(primary):
            self._enter(device, ApplyState.FAILED, ProtocolVariant.PRIMARY)
            return primary

        self._enter(device, ApplyState.FALLBACK_TRIGGERED, ProtocolVariant.PRIMARY)
        logger.info(
            "Primary protocol failed for camera %s (%s), trying fallback",
            device.id,
            primary.error_message,
        )
        self._enter(device, ApplyState.DISCOVERING, ProtocolVariant.FALLBACK)
        result = await self._apply_fallback(
            device, desired, clients(device, ProtocolVariant.FALLBACK)
        )
        if result.success:
            self._enter(device, ApplyState.SUCCESS, ProtocolVariant.FALLBACK)
            return result

        self._enter(device, ApplyState.FAILED, ProtocolVariant.FALLBACK)
        result.error_message = (
            f"{primary.error_message}; fallback: {result.error_message}"
        )
        return result

    async def resolve_stream_url(
        self, device: Device, clients: ClientFactory
    ) -> tuple[str, ProtocolVariant]:
        """Look up the stream URL without writing anything.

        Uses the secondary protocol when the primary one is unreachable, the
        same way ``apply`` does.
        """
        try:
            url = await _lookup_stream_url(
                device, clients(device, ProtocolVariant.PRIMARY)
            )
            return url, ProtocolVariant.PRIMARY
        except CamfleetError as exc:
            primary = failure_result(device, exc)
            if not self.config.enabled or not should_fall_back(primary):
                raise
            logger.info(
                "Primary protocol failed for camera %s (%s), trying fallback",
                device.id,
                primary.error_message,
            )
            primary_error = exc

        try:
            url = await _lookup_stream_url(
                device, clients(device, ProtocolVariant.FALLBACK)
            )
        except CamfleetError as exc:
            raise type(exc)(f"{primary_error}; fallback: {exc}") from exc
        return url, ProtocolVariant.FALLBACK

    def _enter(
        self, device: Device, state: ApplyState, variant: ProtocolVariant
    ) -> None:
        logger.debug("Camera %s: %s [%s]", device.id, state.value, variant.value)

    async def _apply_fallback(
        self, device: Device, desired: EncoderConfig, client: DeviceClient
    ) -> ApplyResult:
        try:
            state = await read_state(client)
            target = self.reduced_config(desired, state)
            logger.info(
                "Writing reduced configuration %s to camera %s",
                target.describe(),
                device.id,
            )
            await write_config(client, state.config_token, target)
            await self._verify(client, state.config_token, target)
            url = await stream_url(device, client, state.profile_token)
        except CamfleetError as exc:
            logger.warning("Fallback failed for camera %s: %s", device.id, exc)
            return failure_result(device, exc, protocol=ProtocolVariant.FALLBACK)

        return ApplyResult(
            device_id=device.id,
            success=True,
            applied_config=target,
            stream_url=url,
            protocol=ProtocolVariant.FALLBACK,
            resolution_adjusted=(
                not desired.resolution.is_zero
                and target.resolution != desired.resolution
            ),
        )

    async def _verify(
        self, client: DeviceClient, config_token: str, target: EncoderConfig
    ) -> None:
        try:
            readback = await client.get_current_config(config_token)
        except DeviceClientError as exc:
            raise VerificationError(
                f"failed to read back video encoder configuration: {exc}"
            ) from exc
        if (
            readback.resolution != target.resolution
            or readback.frame_rate != target.frame_rate
        ):
            raise VerificationError(
                f"configuration not applied: requested {target.describe()}, "
                f"camera reports {readback.describe()}"
            )
