from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

import camfleet.cli.commands.apply as apply_cmd
import camfleet.cli.commands.validate as validate_cmd
from camfleet import __version__
from camfleet.cli import app
from camfleet.config import (
    BatchConfig,
    DatabaseConfig,
    Settings,
    write_settings,
)
from camfleet.mock_device import MockCamera, MockFleet
from camfleet.models import Device, ProbeResult, ProtocolVariant
from camfleet.storage.inventory import InventoryStore

runner = CliRunner()


@pytest.fixture
def store(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> InventoryStore:
    data_dir = tmp_path / "data"
    config_path = tmp_path / "config.toml"
    write_settings(
        Settings(
            database=DatabaseConfig(path=str(data_dir)),
            batch=BatchConfig(settle_delay=0.0),
        ),
        config_path,
    )
    monkeypatch.setenv("CAMFLEET_CONFIG", str(config_path))
    monkeypatch.setenv("COLUMNS", "200")
    return InventoryStore(data_dir)


class StaticProbe:
    def __init__(self, result: ProbeResult) -> None:
        self.result = result

    @classmethod
    def from_config(cls, config):
        return cls(
            ProbeResult(
                codec="h264", width=1920, height=1080, frame_rate=25, bitrate_kbps=8192
            )
        )

    async def probe(self, url: str) -> ProbeResult:
        return self.result


def test_version():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert f"camfleet version {__version__}" in result.stdout


def test_init_creates_config_and_inventory(tmp_path: Path, monkeypatch):
    config_path = tmp_path / "config.toml"
    monkeypatch.setenv("CAMFLEET_CONFIG", str(config_path))
    data_dir = tmp_path / "data"

    result = runner.invoke(app, ["init", "--data-dir", str(data_dir)])

    assert result.exit_code == 0
    assert config_path.exists()
    assert (data_dir / "cameras.toml").exists()


def test_config_show(store: InventoryStore):
    result = runner.invoke(app, ["config", "show"])
    assert result.exit_code == 0
    assert f"# cameras: {store.cameras_path}" in result.stdout
    assert "[matching]" in result.stdout
    assert "settle_delay = 0.0" in result.stdout


def test_config_path_and_init(tmp_path: Path, monkeypatch):
    config_path = tmp_path / "nested" / "config.toml"
    monkeypatch.setenv("CAMFLEET_CONFIG", str(config_path))

    result = runner.invoke(app, ["config", "path"])
    assert result.exit_code == 0
    assert result.stdout.strip() == str(config_path)

    result = runner.invoke(app, ["config", "init"])
    assert result.exit_code == 0
    assert config_path.exists()

    result = runner.invoke(app, ["config", "init"])
    assert result.exit_code == 1

    result = runner.invoke(app, ["config", "init", "--force"])
    assert result.exit_code == 0


def test_devices_add_list_remove(store: InventoryStore):
    result = runner.invoke(
        app, ["devices", "add", "lobby", "192.0.2.20", "-u", "admin", "-p", "pw"]
    )
    assert result.exit_code == 0
    assert store.load().get("lobby").username == "admin"

    result = runner.invoke(app, ["devices", "list", "--redact"])
    assert result.exit_code == 0
    assert "lobby" in result.stdout
    assert "x.x.x.20" in result.stdout

    result = runner.invoke(app, ["devices", "remove", "lobby"])
    assert result.exit_code == 0

    result = runner.invoke(app, ["devices", "remove", "lobby"])
    assert result.exit_code == 1


def test_devices_import(store: InventoryStore, tmp_path: Path):
    csv_path = tmp_path / "cams.csv"
    csv_path.write_text("cam_id,rtsp\nyard,rtsp://admin:pw@192.0.2.21/stream1\n")

    result = runner.invoke(app, ["devices", "import", str(csv_path)])

    assert result.exit_code == 0
    assert store.load().get("yard").host == "192.0.2.21"


def test_apply_simulated_devices_pass(store: InventoryStore, tmp_path: Path):
    store.add(Device(id="sim-1", host="192.0.2.50", simulated=True))
    store.add(Device(id="sim-2", host="192.0.2.51", simulated=True))
    report_path = tmp_path / "report.csv"

    result = runner.invoke(
        app,
        [
            "apply",
            "--all",
            "--width",
            "1920",
            "--height",
            "1080",
            "--csv",
            str(report_path),
        ],
    )

    assert result.exit_code == 0, result.stdout
    assert "PASS" in result.stdout
    lines = report_path.read_text().splitlines()
    assert len(lines) == 3
    assert lines[1].startswith("sim-1,192.0.2.50:80,PASS")


def test_apply_exits_nonzero_on_failure(store: InventoryStore, monkeypatch):
    store.add(Device(id="good", host="192.0.2.10", username="admin", password="pw"))
    store.add(Device(id="dead", host="192.0.2.11"))
    fleet = MockFleet()
    unreachable = MockCamera(
        fail_on={"discover_profiles_and_configs": TimeoutError("timed out")}
    )
    fleet.add("dead", unreachable)
    fleet.add("dead", unreachable, variant=ProtocolVariant.FALLBACK)

    monkeypatch.setattr(apply_cmd, "onvif_client_factory", lambda settings: fleet)
    monkeypatch.setattr(apply_cmd, "FfprobeProbe", StaticProbe)

    result = runner.invoke(
        app,
        ["apply", "good", "dead", "--width", "1920", "--height", "1080", "--fps", "25"],
    )

    assert result.exit_code == 1
    assert "PASS" in result.stdout
    assert "CONFIG_ERROR" in result.stdout


def test_apply_requires_devices(store: InventoryStore):
    result = runner.invoke(app, ["apply", "--width", "1920", "--height", "1080"])
    assert result.exit_code == 1


def test_apply_rejects_unknown_encoding(store: InventoryStore):
    store.add(Device(id="sim", host="192.0.2.50", simulated=True))
    result = runner.invoke(
        app,
        ["apply", "sim", "--width", "1920", "--height", "1080", "--encoding", "VP9"],
    )
    assert result.exit_code == 1


def test_validate_simulated(store: InventoryStore):
    store.add(Device(id="sim", host="192.0.2.50", simulated=True))
    result = runner.invoke(
        app, ["validate", "sim", "--width", "1280", "--height", "720"]
    )
    assert result.exit_code == 0
    assert "Stream matches" in result.stdout


def test_validate_uses_fallback_protocol(store: InventoryStore, monkeypatch):
    store.add(Device(id="old", host="192.0.2.30", username="admin", password="pw"))
    fleet = MockFleet()
    fleet.add(
        "old",
        MockCamera(
            fail_on={
                "discover_profiles_and_configs": ConnectionRefusedError(111, "refused")
            }
        ),
    )
    secondary = fleet.add("old", variant=ProtocolVariant.FALLBACK)

    monkeypatch.setattr(validate_cmd, "onvif_client_factory", lambda settings: fleet)
    monkeypatch.setattr(validate_cmd, "FfprobeProbe", StaticProbe)

    result = runner.invoke(
        app, ["validate", "old", "--width", "1920", "--height", "1080"]
    )

    assert result.exit_code == 0, result.stdout
    assert "Stream matches" in result.stdout
    assert secondary.writes == []
    assert secondary.closed


def test_check_unknown_device(store: InventoryStore):
    result = runner.invoke(app, ["check", "ghost"])
    assert result.exit_code == 1
