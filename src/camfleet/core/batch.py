"""Apply one desired configuration to many cameras, then validate their streams."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence

from camfleet.config import Settings
from camfleet.core.applier import ConfigApplier, failure_result
from camfleet.core.fallback import FallbackApplier
from camfleet.core.probe import FfprobeProbe, StreamProbe
from camfleet.core.registry import DeviceClientRegistry
from camfleet.core.resolution import ResolutionMatcher
from camfleet.core.validator import StreamValidator, ValidationPolicy
from camfleet.errors import BatchError, CamfleetError, UnknownDeviceError
from camfleet.models import (
    ApplyResult,
    BatchReport,
    ConfigRole,
    Device,
    DeviceReport,
    EncoderConfig,
    ErrorKind,
    Issue,
    Severity,
    ValidationResult,
)

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


def expected_config(
    desired: EncoderConfig, applied: EncoderConfig | None
) -> EncoderConfig:
    """The configuration a stream is held to after a successful apply.

    Unset fields other than bitrate are taken from what was actually
    applied, so a resolution the camera could not offer still fails
    validation. Bitrate is only checked when it was requested; the value
    written otherwise is a limit, not a target.
    """
    if applied is None:
        return desired.with_role(ConfigRole.EXPECTED)
    return EncoderConfig(
        resolution=(
            applied.resolution if desired.resolution.is_zero else desired.resolution
        ),
        quality=desired.quality or applied.quality,
        frame_rate=desired.frame_rate or applied.frame_rate,
        bitrate_kbps=desired.bitrate_kbps,
        encoding=desired.encoding or applied.encoding,
        role=ConfigRole.EXPECTED,
    )


def _failed_validation(
    device_id: str, expected: EncoderConfig, detail: str
) -> ValidationResult:
    return ValidationResult(
        device_id=device_id,
        is_valid=False,
        expected=expected,
        observed=EncoderConfig(role=ConfigRole.OBSERVED),
        issues=[Issue("stream", Severity.ERROR, detail)],
    )


class BatchOrchestrator:
    """Runs the apply, settle and validate phases over a list of cameras.

    Each phase uses at most ``workers`` concurrent device pipelines. One
    camera failing never affects another; results come back in input order.
    """

    def __init__(
        self,
        registry: DeviceClientRegistry,
        applier: FallbackApplier,
        validator: StreamValidator,
        settle_delay: float = 1.0,
        workers: int = 4,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if workers < 1:
            raise ValueError("workers must be at least 1")
        self.registry = registry
        self.applier = applier
        self.validator = validator
        self.settle_delay = settle_delay
        self.workers = workers
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        registry: DeviceClientRegistry,
        probe: StreamProbe | None = None,
    ) -> BatchOrchestrator:
        matcher = ResolutionMatcher(settings.matching.ratio_tolerance)
        applier = FallbackApplier(ConfigApplier(matcher), settings.fallback)
        if probe is None:
            probe = FfprobeProbe.from_config(settings.probe)
        validator = StreamValidator(
            probe, ValidationPolicy.from_config(settings.validation)
        )
        return cls(
            registry,
            applier,
            validator,
            settle_delay=settings.batch.settle_delay,
            workers=settings.batch.workers,
        )

    async def run(
        self,
        device_ids: Sequence[str],
        desired: EncoderConfig,
        cancel: asyncio.Event | None = None,
        timeout: float | None = None,
    ) -> BatchReport:
        ids = list(dict.fromkeys(device_ids))
        if not ids:
            raise BatchError("no cameras given")

        desired = desired.with_role(ConfigRole.DESIRED)
        cancel = cancel or asyncio.Event()
        timer: asyncio.TimerHandle | None = None
        if timeout is not None:
            timer = asyncio.get_running_loop().call_later(timeout, cancel.set)

        logger.info("Applying %s to %d camera(s)", desired.describe(), len(ids))
        try:
            devices: list[Device | None] = [None] * len(ids)
            applies: list[ApplyResult | None] = [None] * len(ids)

            async def apply_one(index: int) -> None:
                devices[index], applies[index] = await self._apply(ids[index], desired)

            await self._pool(len(ids), apply_one, cancel)

            results = [
                result
                if result is not None
                else ApplyResult.failure(
                    ids[index], ErrorKind.CANCELLED, "batch cancelled before dispatch"
                )
                for index, result in enumerate(applies)
            ]

            if any(
                result.success and device is not None and not device.simulated
                for device, result in zip(devices, results)
            ) and not cancel.is_set():
                logger.debug("Waiting %.1fs for encoders to settle", self.settle_delay)
                await self._sleep(self.settle_delay)

            validations: list[ValidationResult | None] = [None] * len(ids)
            pending = [index for index, result in enumerate(results) if result.success]

            async def validate_one(position: int) -> None:
                index = pending[position]
                validations[index] = await self._validate(
                    devices[index], results[index], desired
                )

            await self._pool(len(pending), validate_one, cancel)

            for index in pending:
                if validations[index] is not None:
                    continue
                device = devices[index]
                if device is not None and device.simulated:
                    validations[index] = self.validator.synthesize(
                        ids[index],
                        expected_config(desired, results[index].applied_config),
                    )
                else:
                    validations[index] = _failed_validation(
                        ids[index],
                        expected_config(desired, results[index].applied_config),
                        "validation cancelled",
                    )
        finally:
            if timer is not None:
                timer.cancel()

        report = BatchReport(
            desired=desired,
            entries=[
                DeviceReport(
                    device_id=ids[index],
                    apply=results[index],
                    device=devices[index],
                    validation=validations[index],
                )
                for index in range(len(ids))
            ],
        )
        summary = report.summary()
        logger.info(
            "Batch finished: %d applied, %d failed, %d valid, %d invalid, "
            "%d with warnings",
            summary.apply_succeeded,
            summary.apply_failed,
            summary.validation_passed,
            summary.validation_failed,
            summary.warnings,
        )
        return report

    async def _pool(
        self,
        count: int,
        job: Callable[[int], Awaitable[None]],
        cancel: asyncio.Event,
    ) -> None:
        if count == 0:
            return
        queue: asyncio.Queue[int] = asyncio.Queue()
        for index in range(count):
            queue.put_nowait(index)

        async def worker() -> None:
            while not cancel.is_set():
                try:
                    index = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                await job(index)

        await asyncio.gather(*(worker() for _ in range(min(self.workers, count))))

    async def _apply(
        self, device_id: str, desired: EncoderConfig
    ) -> tuple[Device | None, ApplyResult]:
        try:
            device = self.registry.device(device_id)
        except UnknownDeviceError as exc:
            logger.warning("%s", exc)
            return None, ApplyResult.failure(
                device_id, ErrorKind.UNKNOWN_DEVICE, str(exc)
            )

        try:
            result = await self.applier.apply(device, desired, self.registry.client)
        except CamfleetError as exc:
            result = failure_result(device, exc)
        except Exception as exc:
            logger.exception("Unexpected error applying to camera %s", device_id)
            result = ApplyResult.failure(
                device_id, ErrorKind.DISCOVERY, f"unexpected error: {exc}"
            )
        return device, result

    async def _validate(
        self,
        device: Device | None,
        result: ApplyResult,
        desired: EncoderConfig,
    ) -> ValidationResult:
        expected = expected_config(desired, result.applied_config)
        if device is not None and device.simulated:
            return self.validator.synthesize(result.device_id, expected)
        if not result.stream_url:
            return _failed_validation(
                result.device_id, expected, "no stream URL to validate"
            )
        try:
            return await self.validator.validate(
                result.device_id, result.stream_url, expected
            )
        except Exception as exc:
            logger.exception("Unexpected error validating camera %s", result.device_id)
            return _failed_validation(
                result.device_id, expected, f"unexpected error: {exc}"
            )
