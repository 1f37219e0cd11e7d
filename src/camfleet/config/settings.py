from __future__ import annotations

import json
import os
import tomllib
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, ValidationError

from .paths import default_config_path, default_data_dir, expand_path

CONFIG_ENV_VAR = "CAMFLEET_CONFIG"

MEDIA2_WSDL = "https://www.onvif.org/ver20/media/wsdl/media.wsdl"


class DatabaseConfig(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    path: str = Field(default_factory=lambda: str(default_data_dir()))


class DevicesConfig(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    port: int = Field(default=80, ge=1, le=65535)
    timeout: float = Field(default=5.0, gt=0)
    media2_wsdl: str = MEDIA2_WSDL


class MatchingConfig(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    ratio_tolerance: float = Field(default=0.5, ge=0)


class ValidationConfig(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    bitrate_tolerance: float = Field(default=0.10, ge=0, le=1)
    frame_rate_severity: Literal["warning", "error"] = "warning"


class ProbeConfig(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    binary: str = "ffprobe"
    timeout: float = Field(default=15.0, gt=0)
    rtsp_transport: Literal["tcp", "udp"] = "tcp"


class BatchConfig(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    settle_delay: float = Field(default=1.0, ge=0)
    workers: int = Field(default=4, ge=1, le=64)
    timeout: float | None = Field(default=None, gt=0)


class FallbackConfig(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    enabled: bool = True
    width: int = Field(default=1920, ge=1)
    height: int = Field(default=1080, ge=1)
    frame_rate: int = Field(default=25, ge=1)


class Settings(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    devices: DevicesConfig = Field(default_factory=DevicesConfig)
    matching: MatchingConfig = Field(default_factory=MatchingConfig)
    validation: ValidationConfig = Field(default_factory=ValidationConfig)
    probe: ProbeConfig = Field(default_factory=ProbeConfig)
    batch: BatchConfig = Field(default_factory=BatchConfig)
    fallback: FallbackConfig = Field(default_factory=FallbackConfig)


def resolve_config_path(allow_missing: bool = False) -> tuple[Path, bool]:
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        path = expand_path(env_path)
        if not allow_missing and not path.exists():
            raise FileNotFoundError(f"{CONFIG_ENV_VAR} points to missing file: {path}")
        return path, path.exists()

    path = default_config_path()
    return path, path.exists()


def load_settings(path: Path) -> Settings:
    try:
        with path.open("rb") as handle:
            data = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ValueError(f"Invalid TOML in config file: {path}\n{exc}") from exc

    try:
        return Settings.model_validate(data or {})
    except ValidationError as exc:
        raise ValueError(f"Invalid config file: {path}\n{exc}") from exc


@lru_cache
def get_settings() -> Settings:
    path, exists = resolve_config_path(allow_missing=False)
    if exists:
        return load_settings(path)
    return Settings()


def data_dir_from_settings(settings: Settings) -> Path:
    return expand_path(settings.database.path)


def _toml_string(value: str) -> str:
    return json.dumps(value)


def _toml_bool(value: bool) -> str:
    return "true" if value else "false"


def render_settings_toml(settings: Settings) -> str:
    batch = settings.batch
    lines = [
        "# camfleet configuration",
        "",
        "[database]",
        f"path = {_toml_string(settings.database.path)}",
        "",
        "[devices]",
        f"port = {settings.devices.port}",
        f"timeout = {settings.devices.timeout}",
        f"media2_wsdl = {_toml_string(settings.devices.media2_wsdl)}",
        "",
        "[matching]",
        "# Maximum aspect ratio difference; 0.1 is the strict policy",
        f"ratio_tolerance = {settings.matching.ratio_tolerance}",
        "",
        "[validation]",
        f"bitrate_tolerance = {settings.validation.bitrate_tolerance}",
        "# \"warning\" or \"error\"",
        "frame_rate_severity = "
        f"{_toml_string(settings.validation.frame_rate_severity)}",
        "",
        "[probe]",
        f"binary = {_toml_string(settings.probe.binary)}",
        f"timeout = {settings.probe.timeout}",
        f"rtsp_transport = {_toml_string(settings.probe.rtsp_transport)}",
        "",
        "[batch]",
        f"settle_delay = {batch.settle_delay}",
        f"workers = {batch.workers}",
    ]
    if batch.timeout is not None:
        lines.append(f"timeout = {batch.timeout}")
    lines.extend(
        [
            "",
            "[fallback]",
            f"enabled = {_toml_bool(settings.fallback.enabled)}",
            f"width = {settings.fallback.width}",
            f"height = {settings.fallback.height}",
            f"frame_rate = {settings.fallback.frame_rate}",
            "",
        ]
    )
    return "\n".join(lines)


def write_settings(settings: Settings, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_settings_toml(settings))
