"""Compare what a stream carries with what was configured."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from camfleet.config import ValidationConfig
from camfleet.core.probe import StreamProbe
from camfleet.errors import ProbeError
from camfleet.models import (
    ConfigRole,
    EncoderConfig,
    Issue,
    Severity,
    ValidationResult,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidationPolicy:
    """How strictly each measured quantity is held to the expected value.

    Resolution is always a hard requirement. Frame rate mismatches are
    reported with ``frame_rate_severity``; bitrate and encoding mismatches
    are always warnings.
    """

    bitrate_tolerance: float = 0.10
    frame_rate_severity: Severity = Severity.WARNING

    @classmethod
    def from_config(cls, config: ValidationConfig) -> ValidationPolicy:
        return cls(
            bitrate_tolerance=config.bitrate_tolerance,
            frame_rate_severity=Severity(config.frame_rate_severity),
        )


def check_stream(
    expected: EncoderConfig,
    observed: EncoderConfig,
    policy: ValidationPolicy,
) -> list[Issue]:
    issues: list[Issue] = []

    if observed.resolution.is_zero:
        issues.append(
            Issue("resolution", Severity.ERROR, "could not detect stream resolution")
        )
    elif observed.resolution != expected.resolution:
        issues.append(
            Issue(
                "resolution",
                Severity.ERROR,
                f"expected {expected.resolution}, got {observed.resolution}",
            )
        )

    if expected.frame_rate > 0 and observed.frame_rate != expected.frame_rate:
        issues.append(
            Issue(
                "frame_rate",
                policy.frame_rate_severity,
                f"expected {expected.frame_rate}fps, got {observed.frame_rate}fps",
            )
        )

    if expected.bitrate_kbps > 0:
        if observed.bitrate_kbps <= 0:
            issues.append(
                Issue("bitrate", Severity.WARNING, "could not detect stream bitrate")
            )
        else:
            allowed = policy.bitrate_tolerance * expected.bitrate_kbps
            if abs(observed.bitrate_kbps - expected.bitrate_kbps) > allowed:
                issues.append(
                    Issue(
                        "bitrate",
                        Severity.WARNING,
                        f"expected {expected.bitrate_kbps}kbps "
                        f"(±{policy.bitrate_tolerance:.0%}), "
                        f"got {observed.bitrate_kbps}kbps",
                    )
                )

    if (
        expected.encoding is not None
        and observed.encoding is not None
        and expected.encoding != observed.encoding
    ):
        issues.append(
            Issue(
                "encoding",
                Severity.WARNING,
                f"expected {expected.encoding.value}, got {observed.encoding.value}",
            )
        )

    return issues


class StreamValidator:
    def __init__(
        self, probe: StreamProbe, policy: ValidationPolicy | None = None
    ) -> None:
        self.probe = probe
        self.policy = policy or ValidationPolicy()

    async def validate(
        self, device_id: str, stream_url: str, expected: EncoderConfig
    ) -> ValidationResult:
        expected = expected.with_role(ConfigRole.EXPECTED)
        try:
            measured = await self.probe.probe(stream_url)
        except ProbeError as exc:
            logger.warning("Probe failed for camera %s: %s", device_id, exc)
            return ValidationResult(
                device_id=device_id,
                is_valid=False,
                expected=expected,
                observed=EncoderConfig(role=ConfigRole.OBSERVED),
                issues=[Issue("stream", Severity.ERROR, f"probe failed: {exc}")],
            )

        observed = measured.as_config()
        issues = check_stream(expected, observed, self.policy)
        result = ValidationResult(
            device_id=device_id,
            is_valid=not any(issue.severity is Severity.ERROR for issue in issues),
            expected=expected,
            observed=observed,
            issues=issues,
        )
        for issue in issues:
            logger.info(
                "Camera %s %s %s: %s",
                device_id,
                issue.field,
                issue.severity.value,
                issue.detail,
            )
        logger.debug(
            "Camera %s stream %s (observed %s)",
            device_id,
            "valid" if result.is_valid else "invalid",
            observed.describe(),
        )
        return result

    def synthesize(self, device_id: str, expected: EncoderConfig) -> ValidationResult:
        """Passing result for a simulated camera, mirroring the request."""
        return ValidationResult(
            device_id=device_id,
            is_valid=True,
            expected=expected.with_role(ConfigRole.EXPECTED),
            observed=expected.with_role(ConfigRole.OBSERVED),
        )
