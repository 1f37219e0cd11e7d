from __future__ import annotations

import pytest

from camfleet.config import (
    BatchConfig,
    DatabaseConfig,
    Settings,
    ValidationConfig,
    default_config_path,
    default_data_dir,
    get_settings,
    load_settings,
    resolve_config_path,
    write_settings,
)


def test_defaults():
    settings = Settings()
    assert settings.matching.ratio_tolerance == 0.5
    assert settings.validation.bitrate_tolerance == 0.10
    assert settings.validation.frame_rate_severity == "warning"
    assert settings.batch.settle_delay == 1.0
    assert settings.fallback.width == 1920
    assert settings.fallback.frame_rate == 25
    assert settings.probe.binary == "ffprobe"


def test_settings_roundtrip(tmp_path):
    path = tmp_path / "config.toml"
    original = Settings(
        database=DatabaseConfig(path=str(tmp_path / "data")),
        batch=BatchConfig(settle_delay=0.0, workers=8, timeout=30.0),
        validation=ValidationConfig(frame_rate_severity="error"),
    )
    write_settings(original, path)

    assert load_settings(path) == original


def test_env_var_points_to_config(tmp_path, monkeypatch: pytest.MonkeyPatch):
    path = tmp_path / "custom.toml"
    path.write_text("[matching]\nratio_tolerance = 0.1\n")
    monkeypatch.setenv("CAMFLEET_CONFIG", str(path))

    assert get_settings().matching.ratio_tolerance == 0.1


def test_env_var_to_missing_file_fails(tmp_path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("CAMFLEET_CONFIG", str(tmp_path / "missing.toml"))

    with pytest.raises(FileNotFoundError):
        resolve_config_path()

    path, exists = resolve_config_path(allow_missing=True)
    assert not exists
    assert path.name == "missing.toml"


def test_unknown_keys_are_rejected(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text("[batch]\nparallel = true\n")

    with pytest.raises(ValueError, match="Invalid config file"):
        load_settings(path)


def test_invalid_toml(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text("[batch\n")

    with pytest.raises(ValueError, match="Invalid TOML"):
        load_settings(path)


def test_xdg_directories(tmp_path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "conf"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "share"))

    assert default_config_path() == tmp_path / "conf" / "camfleet" / "config.toml"
    assert default_data_dir() == tmp_path / "share" / "camfleet"


def test_relative_xdg_values_are_ignored(tmp_path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("XDG_CONFIG_HOME", "relative/conf")
    monkeypatch.delenv("XDG_DATA_HOME", raising=False)

    assert default_config_path() == tmp_path / ".config" / "camfleet" / "config.toml"
    assert default_data_dir() == tmp_path / ".local" / "share" / "camfleet"
