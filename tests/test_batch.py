from __future__ import annotations

import asyncio
from urllib.parse import urlsplit

import pytest

from camfleet.config import Settings
from camfleet.core.applier import ConfigApplier
from camfleet.core.batch import BatchOrchestrator, expected_config
from camfleet.core.fallback import FallbackApplier
from camfleet.core.registry import DeviceClientRegistry
from camfleet.core.validator import StreamValidator
from camfleet.errors import BatchError, ProbeError
from camfleet.mock_device import MockCamera, MockFleet
from camfleet.models import (
    EncoderConfig,
    ErrorKind,
    ProbeResult,
    ProtocolVariant,
    Resolution,
)

DESIRED = EncoderConfig(resolution=Resolution(width=1920, height=1080), frame_rate=25)


class MatchingProbe:
    """Reports whatever the primary camera at the URL's host currently runs."""

    def __init__(self, fleet: MockFleet) -> None:
        self.fleet = fleet
        self.urls: list[str] = []

    async def probe(self, url: str) -> ProbeResult:
        self.urls.append(url)
        host = urlsplit(url).hostname
        for (_, variant), camera in self.fleet.cameras.items():
            if variant is not ProtocolVariant.PRIMARY:
                continue
            if urlsplit(camera.stream_url).hostname == host:
                current = camera.current
                return ProbeResult(
                    codec="h264",
                    width=current.resolution.width,
                    height=current.resolution.height,
                    frame_rate=current.frame_rate,
                    bitrate_kbps=current.bitrate_kbps,
                )
        raise ProbeError(f"no camera at {host}")


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def build(inventory, fleet: MockFleet, workers: int = 2, sleep=None):
    registry = DeviceClientRegistry(inventory, fleet)
    probe = MatchingProbe(fleet)
    orchestrator = BatchOrchestrator(
        registry,
        FallbackApplier(ConfigApplier()),
        StreamValidator(probe),
        settle_delay=1.5,
        workers=workers,
        sleep=sleep or RecordingSleep(),
    )
    return orchestrator, probe


def add_cameras(fleet: MockFleet, *ids: str) -> None:
    for index, device_id in enumerate(ids):
        fleet.add(
            device_id,
            MockCamera(
                name=device_id,
                stream_url=f"rtsp://192.0.2.{index + 10}:554/Streaming/Channels/101",
            ),
        )


def test_failed_device_does_not_stop_others(make_inventory):
    fleet = MockFleet()
    add_cameras(fleet, "a", "b", "c")
    for variant in ProtocolVariant:
        fleet.add("b", MockCamera(profiles=[]), variant=variant)
    orchestrator, _ = build(make_inventory("a", "b", "c"), fleet)

    report = asyncio.run(orchestrator.run(["a", "b", "c"], DESIRED))

    assert [entry.device_id for entry in report] == ["a", "b", "c"]
    assert report.get("a").apply.success
    assert report.get("c").apply.success
    failed = report.get("b")
    assert not failed.apply.success
    assert failed.apply.error_class is ErrorKind.DISCOVERY
    assert failed.validation is None
    assert report.get("a").passed and report.get("c").passed

    summary = report.summary()
    assert (summary.apply_succeeded, summary.apply_failed) == (2, 1)
    assert (summary.validation_passed, summary.validation_failed) == (2, 0)


def test_results_follow_input_order_not_completion(make_inventory):
    fleet = MockFleet()
    ids = [f"cam-{n}" for n in range(6)]
    add_cameras(fleet, *ids)
    orchestrator, _ = build(make_inventory(*ids), fleet, workers=3)

    report = asyncio.run(orchestrator.run(list(reversed(ids)), DESIRED))

    assert [entry.device_id for entry in report] == list(reversed(ids))


def test_settle_delay_runs_once(make_inventory):
    fleet = MockFleet()
    add_cameras(fleet, "a", "b")
    sleep = RecordingSleep()
    orchestrator, _ = build(make_inventory("a", "b"), fleet, sleep=sleep)

    asyncio.run(orchestrator.run(["a", "b"], DESIRED))

    assert sleep.delays == [1.5]


def test_simulated_devices_skip_settle_and_probe(make_inventory):
    fleet = MockFleet()
    sleep = RecordingSleep()
    orchestrator, probe = build(
        make_inventory("sim", simulated=("sim",)), fleet, sleep=sleep
    )

    report = asyncio.run(orchestrator.run(["sim"], DESIRED))

    entry = report.get("sim")
    assert entry.passed
    assert entry.validation is not None
    assert entry.validation.observed.resolution == DESIRED.resolution
    assert sleep.delays == []
    assert probe.urls == []
    assert fleet.cameras == {}


def test_unknown_device_is_reported(make_inventory):
    fleet = MockFleet()
    add_cameras(fleet, "a")
    orchestrator, _ = build(make_inventory("a"), fleet)

    report = asyncio.run(orchestrator.run(["a", "ghost"], DESIRED))

    ghost = report.get("ghost")
    assert ghost.apply.error_class is ErrorKind.UNKNOWN_DEVICE
    assert "ghost" in (ghost.apply.error_message or "")
    assert report.get("a").passed


def test_duplicates_are_collapsed(make_inventory):
    fleet = MockFleet()
    add_cameras(fleet, "a", "b")
    orchestrator, _ = build(make_inventory("a", "b"), fleet)

    report = asyncio.run(orchestrator.run(["a", "b", "a"], DESIRED))

    assert [entry.device_id for entry in report] == ["a", "b"]
    assert len(fleet.cameras[("a", ProtocolVariant.PRIMARY)].writes) == 1


def test_empty_batch_is_rejected(make_inventory):
    orchestrator, _ = build(make_inventory("a"), MockFleet())
    with pytest.raises(BatchError):
        asyncio.run(orchestrator.run([], DESIRED))


def test_cancelled_batch_marks_undispatched_devices(make_inventory):
    fleet = MockFleet()
    add_cameras(fleet, "a", "b", "c")
    cancel = asyncio.Event()
    cancel.set()
    orchestrator, _ = build(make_inventory("a", "b", "c"), fleet)

    report = asyncio.run(orchestrator.run(["a", "b", "c"], DESIRED, cancel=cancel))

    assert all(entry.apply.error_class is ErrorKind.CANCELLED for entry in report)
    assert all(camera.calls == [] for camera in fleet.cameras.values())


def test_cancel_mid_batch_keeps_finished_work(make_inventory):
    fleet = MockFleet()
    add_cameras(fleet, "a", "b", "c")
    cancel = asyncio.Event()

    class CancellingCamera(MockCamera):
        async def set_config(self, config_token, config):
            await super().set_config(config_token, config)
            cancel.set()

    fleet.add(
        "a",
        CancellingCamera(
            name="a", stream_url="rtsp://192.0.2.10:554/Streaming/Channels/101"
        ),
    )
    orchestrator, _ = build(make_inventory("a", "b", "c"), fleet, workers=1)

    report = asyncio.run(orchestrator.run(["a", "b", "c"], DESIRED, cancel=cancel))

    assert report.get("a").apply.success
    assert report.get("b").apply.error_class is ErrorKind.CANCELLED
    assert report.get("c").apply.error_class is ErrorKind.CANCELLED
    # The write already sent is not rolled back.
    assert len(fleet.cameras[("a", ProtocolVariant.PRIMARY)].writes) == 1


def test_adjusted_resolution_fails_validation(make_inventory):
    fleet = MockFleet()
    add_cameras(fleet, "a")
    orchestrator, _ = build(make_inventory("a"), fleet)
    request = EncoderConfig(resolution=Resolution(width=2560, height=1440))

    report = asyncio.run(orchestrator.run(["a"], request))

    entry = report.get("a")
    assert entry.apply.success
    assert entry.apply.resolution_adjusted
    assert entry.validation is not None
    assert not entry.validation.is_valid


def test_expected_config_fills_unset_fields_except_bitrate():
    applied = EncoderConfig(
        resolution=Resolution(width=1920, height=1080), frame_rate=30, bitrate_kbps=8192
    )
    expected = expected_config(
        EncoderConfig(resolution=Resolution(width=1920, height=1080)), applied
    )
    assert expected.frame_rate == 30
    assert expected.bitrate_kbps == 0


def test_requested_bitrate_is_kept_in_expected_config():
    applied = EncoderConfig(
        resolution=Resolution(width=1920, height=1080), frame_rate=30, bitrate_kbps=8192
    )
    request = EncoderConfig(
        resolution=Resolution(width=1920, height=1080), bitrate_kbps=6000
    )
    assert expected_config(request, applied).bitrate_kbps == 6000


def test_unrequested_bitrate_is_not_validated(make_inventory):
    fleet = MockFleet()
    add_cameras(fleet, "a")

    class LowBitrateProbe:
        async def probe(self, url: str) -> ProbeResult:
            return ProbeResult(
                codec="h264", width=1920, height=1080, frame_rate=30, bitrate_kbps=3000
            )

    orchestrator = BatchOrchestrator(
        DeviceClientRegistry(make_inventory("a"), fleet),
        FallbackApplier(ConfigApplier()),
        StreamValidator(LowBitrateProbe()),
        sleep=RecordingSleep(),
    )
    request = EncoderConfig(
        resolution=Resolution(width=1920, height=1080), frame_rate=30
    )

    report = asyncio.run(orchestrator.run(["a"], request))

    entry = report.get("a")
    assert entry.apply.applied_config is not None
    assert entry.apply.applied_config.bitrate_kbps == 8192
    assert entry.validation is not None
    assert entry.validation.is_valid
    assert entry.validation.issues == []


def test_cancel_during_settle_still_passes_simulated_devices(make_inventory):
    fleet = MockFleet()
    add_cameras(fleet, "a")
    cancel = asyncio.Event()

    async def cancelling_sleep(delay: float) -> None:
        cancel.set()

    orchestrator, probe = build(
        make_inventory("sim", "a", simulated=("sim",)), fleet, sleep=cancelling_sleep
    )

    report = asyncio.run(orchestrator.run(["sim", "a"], DESIRED, cancel=cancel))

    simulated = report.get("sim")
    assert simulated.passed
    assert simulated.validation is not None
    assert simulated.validation.expected.resolution == DESIRED.resolution
    real = report.get("a")
    assert real.apply.success
    assert real.validation is not None
    assert not real.validation.is_valid
    assert real.validation.issues[0].detail == "validation cancelled"
    assert probe.urls == []


def test_from_settings_uses_configured_values(make_inventory):
    settings = Settings.model_validate(
        {
            "batch": {"settle_delay": 0.0, "workers": 7},
            "matching": {"ratio_tolerance": 0.1},
        }
    )
    registry = DeviceClientRegistry(make_inventory("a"), MockFleet())
    orchestrator = BatchOrchestrator.from_settings(settings, registry)

    assert orchestrator.workers == 7
    assert orchestrator.settle_delay == 0.0
    assert orchestrator.applier.applier.matcher.ratio_tolerance == 0.1
