from __future__ import annotations

import asyncio

from camfleet.config import ValidationConfig
from camfleet.core.validator import StreamValidator, ValidationPolicy
from camfleet.errors import ProbeError
from camfleet.models import (
    EncoderConfig,
    Encoding,
    ProbeResult,
    Resolution,
    Severity,
)


class FakeProbe:
    def __init__(self, result: ProbeResult | None = None, error: str | None = None):
        self.result = result
        self.error = error
        self.urls: list[str] = []

    async def probe(self, url: str) -> ProbeResult:
        self.urls.append(url)
        if self.error is not None:
            raise ProbeError(self.error)
        assert self.result is not None
        return self.result


def expected(
    width: int = 1920, height: int = 1080, fps: int = 25, bitrate: int = 4096
) -> EncoderConfig:
    return EncoderConfig(
        resolution=Resolution(width=width, height=height),
        frame_rate=fps,
        bitrate_kbps=bitrate,
    )


def run(
    probe: FakeProbe,
    target: EncoderConfig,
    policy: ValidationPolicy | None = None,
):
    validator = StreamValidator(probe, policy)
    return asyncio.run(validator.validate("cam-01", "rtsp://192.0.2.10/stream", target))


def test_soft_mismatches_are_warnings():
    probe = FakeProbe(
        ProbeResult(
            codec="h264", width=1920, height=1080, frame_rate=24, bitrate_kbps=3000
        )
    )
    result = run(probe, expected())

    assert result.is_valid
    assert result.errors == []
    assert sorted(issue.field for issue in result.warnings) == ["bitrate", "frame_rate"]
    assert all(issue.severity is Severity.WARNING for issue in result.issues)


def test_resolution_mismatch_is_one_error():
    probe = FakeProbe(
        ProbeResult(
            codec="h264", width=1280, height=720, frame_rate=25, bitrate_kbps=4096
        )
    )
    result = run(probe, expected())

    assert not result.is_valid
    assert len(result.issues) == 1
    assert result.issues[0].severity is Severity.ERROR
    assert result.issues[0].field == "resolution"


def test_undetected_resolution_is_error():
    probe = FakeProbe(ProbeResult(codec="h264", frame_rate=25, bitrate_kbps=4096))
    result = run(probe, expected())

    assert not result.is_valid
    assert result.errors[0].field == "resolution"


def test_frame_rate_rounds_half_up():
    probe = FakeProbe(
        ProbeResult(width=1920, height=1080, frame_rate=24.5, bitrate_kbps=4096)
    )
    result = run(probe, expected(fps=25))

    assert result.is_valid
    assert result.issues == []
    assert result.observed.frame_rate == 25


def test_bitrate_within_tolerance_passes():
    probe = FakeProbe(
        ProbeResult(width=1920, height=1080, frame_rate=25, bitrate_kbps=3700)
    )
    assert run(probe, expected()).issues == []


def test_missing_bitrate_is_warning_only_when_expected():
    probe = FakeProbe(ProbeResult(width=1920, height=1080, frame_rate=25))

    with_bitrate = run(probe, expected())
    assert with_bitrate.is_valid
    assert [issue.field for issue in with_bitrate.warnings] == ["bitrate"]

    without_bitrate = run(probe, expected(bitrate=0))
    assert without_bitrate.issues == []


def test_encoding_mismatch_is_warning():
    probe = FakeProbe(
        ProbeResult(
            codec="hevc", width=1920, height=1080, frame_rate=25, bitrate_kbps=4096
        )
    )
    target = expected().model_copy(update={"encoding": Encoding.H264})
    result = run(probe, target)

    assert result.is_valid
    assert [issue.field for issue in result.warnings] == ["encoding"]


def test_probe_failure_is_single_error():
    probe = FakeProbe(error="ffprobe exited with code 1: 401 Unauthorized")
    result = run(probe, expected())

    assert not result.is_valid
    assert len(result.issues) == 1
    assert result.issues[0].field == "stream"
    assert result.issues[0].severity is Severity.ERROR
    assert "401 Unauthorized" in result.issues[0].detail
    assert len(probe.urls) == 1


def test_strict_policy_fails_on_frame_rate():
    probe = FakeProbe(
        ProbeResult(width=1920, height=1080, frame_rate=15, bitrate_kbps=4096)
    )
    policy = ValidationPolicy.from_config(ValidationConfig(frame_rate_severity="error"))
    result = run(probe, expected(), policy)

    assert not result.is_valid
    assert result.errors[0].field == "frame_rate"


def test_synthesize_mirrors_expected():
    validator = StreamValidator(FakeProbe())
    result = validator.synthesize("sim", expected())

    assert result.is_valid
    assert result.issues == []
    assert result.observed.resolution == Resolution(width=1920, height=1080)
