"""Encoder configuration models."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class Encoding(str, Enum):
    H264 = "H264"
    H265 = "H265"
    MJPEG = "MJPEG"
    MPEG4 = "MPEG4"

    @classmethod
    def parse(cls, value: object) -> Encoding:
        """Normalize an encoding reported by a device or a probe.

        Accepts enum members, names in any case (``"h.264"``, ``"JPEG"``),
        ffprobe codec names (``"hevc"``) and ONVIF numeric enum values.
        """
        if isinstance(value, Encoding):
            return value
        if isinstance(value, bool):
            raise ValueError(f"Unknown encoding: {value!r}")
        if isinstance(value, int):
            try:
                return _NUMERIC_ENCODINGS[value]
            except KeyError:
                raise ValueError(f"Unknown encoding: {value!r}") from None
        if isinstance(value, str):
            key = value.strip().upper().replace(".", "").replace("-", "")
            if key.isdigit():
                return cls.parse(int(key))
            try:
                return _ENCODING_ALIASES[key]
            except KeyError:
                raise ValueError(f"Unknown encoding: {value!r}") from None
        raise ValueError(f"Unknown encoding: {value!r}")


# ONVIF tt:VideoEncoding order, with H265 appended by Media2.
_NUMERIC_ENCODINGS = {
    0: Encoding.MJPEG,
    1: Encoding.MPEG4,
    2: Encoding.H264,
    3: Encoding.H265,
}

_ENCODING_ALIASES = {
    "H264": Encoding.H264,
    "AVC": Encoding.H264,
    "H265": Encoding.H265,
    "HEVC": Encoding.H265,
    "JPEG": Encoding.MJPEG,
    "MJPEG": Encoding.MJPEG,
    "MJPG": Encoding.MJPEG,
    "MPEG4": Encoding.MPEG4,
    "MP4V": Encoding.MPEG4,
}


class ConfigRole(str, Enum):
    DESIRED = "desired"
    CURRENT = "current"
    APPLIED = "applied"
    OBSERVED = "observed"
    EXPECTED = "expected"


class Resolution(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    width: int = Field(default=0, ge=0)
    height: int = Field(default=0, ge=0)

    @property
    def area(self) -> int:
        return self.width * self.height

    @property
    def ratio(self) -> float:
        if self.height == 0:
            return 0.0
        return self.width / self.height

    @property
    def is_zero(self) -> bool:
        return self.width == 0 or self.height == 0

    def __str__(self) -> str:
        return f"{self.width}x{self.height}"


ZERO_RESOLUTION = Resolution()


class EncoderConfig(BaseModel):
    """Encoder settings in one of the roles listed in ``ConfigRole``.

    Zero values mean "unset": a desired config with ``frame_rate=0`` keeps
    whatever the device currently runs.
    """

    model_config = {"frozen": True, "extra": "forbid"}

    resolution: Resolution = ZERO_RESOLUTION
    quality: int = Field(default=0, ge=0)
    frame_rate: int = Field(default=0, ge=0)
    bitrate_kbps: int = Field(default=0, ge=0)
    encoding: Encoding | None = None
    role: ConfigRole = ConfigRole.DESIRED

    def with_role(self, role: ConfigRole) -> EncoderConfig:
        return self.model_copy(update={"role": role})

    def matches(self, other: EncoderConfig) -> bool:
        """Whether ``other`` already satisfies this config.

        Resolution and frame rate must be equal; bitrate and encoding only
        count when this config sets them.
        """
        if self.resolution != other.resolution:
            return False
        if self.frame_rate != other.frame_rate:
            return False
        if self.bitrate_kbps and self.bitrate_kbps != other.bitrate_kbps:
            return False
        if self.encoding is not None and self.encoding != other.encoding:
            return False
        return True

    def describe(self) -> str:
        parts = [str(self.resolution), f"{self.frame_rate}fps"]
        if self.bitrate_kbps:
            parts.append(f"{self.bitrate_kbps}kbps")
        if self.encoding is not None:
            parts.append(self.encoding.value)
        return " ".join(parts)


class EncoderCapabilities(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    resolutions: list[Resolution] = Field(default_factory=list)
    frame_rate_range: tuple[int, int] = (0, 0)
    bitrate_range: tuple[int, int] = (0, 0)
    encoding: Encoding | None = None

    def clamp_bitrate(self, bitrate_kbps: int) -> int:
        low, high = self.bitrate_range
        if low <= 0 or high <= 0:
            return bitrate_kbps
        return max(low, min(high, bitrate_kbps))


class ProbeResult(BaseModel):
    """What the stream probe measured on the wire."""

    model_config = {"frozen": True, "extra": "forbid"}

    codec: str = ""
    width: int = 0
    height: int = 0
    frame_rate: float = 0.0
    bitrate_kbps: int = 0

    def as_config(self) -> EncoderConfig:
        try:
            encoding: Encoding | None = Encoding.parse(self.codec)
        except ValueError:
            encoding = None
        return EncoderConfig(
            resolution=Resolution(width=self.width, height=self.height),
            frame_rate=round_half_up(self.frame_rate),
            bitrate_kbps=self.bitrate_kbps,
            encoding=encoding,
            role=ConfigRole.OBSERVED,
        )


def round_half_up(value: float) -> int:
    return int(value + 0.5) if value > 0 else 0
