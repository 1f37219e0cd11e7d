"""Measure a live stream with ffprobe."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Protocol

from camfleet.config import ProbeConfig
from camfleet.errors import ProbeError
from camfleet.models import ProbeResult
from camfleet.utils.redaction import Redactor

logger = logging.getLogger(__name__)

_REDACTOR = Redactor(enabled=False)


class StreamProbe(Protocol):
    async def probe(self, url: str) -> ProbeResult: ...


def parse_frame_rate(value: Any) -> float:
    """Parse ffprobe's ``"num/den"`` rate; ``"0/0"`` and garbage give 0."""
    if not value or not isinstance(value, str):
        return 0.0
    num, sep, den = value.partition("/")
    try:
        if not sep:
            return max(float(num), 0.0)
        denominator = float(den)
        if denominator == 0:
            return 0.0
        return max(float(num) / denominator, 0.0)
    except ValueError:
        return 0.0


def _bitrate_kbps(value: Any) -> int:
    try:
        bits = int(value)
    except (TypeError, ValueError):
        return 0
    if bits <= 0:
        return 0
    return round(bits / 1000)


def parse_probe_output(output: str) -> ProbeResult:
    if not output.strip():
        raise ProbeError("ffprobe returned no output")
    try:
        data = json.loads(output)
    except json.JSONDecodeError as exc:
        raise ProbeError(f"failed to parse ffprobe output: {exc}") from exc

    streams = data.get("streams") if isinstance(data, dict) else None
    if not streams:
        raise ProbeError("no video stream found")
    stream = streams[0]

    frame_rate = parse_frame_rate(stream.get("avg_frame_rate"))
    if frame_rate == 0:
        frame_rate = parse_frame_rate(stream.get("r_frame_rate"))

    bitrate = _bitrate_kbps(stream.get("bit_rate"))
    if bitrate == 0:
        bitrate = _bitrate_kbps((data.get("format") or {}).get("bit_rate"))

    return ProbeResult(
        codec=str(stream.get("codec_name") or ""),
        width=int(stream.get("width") or 0),
        height=int(stream.get("height") or 0),
        frame_rate=frame_rate,
        bitrate_kbps=bitrate,
    )


class FfprobeProbe:
    def __init__(
        self,
        binary: str = "ffprobe",
        timeout: float = 15.0,
        rtsp_transport: str = "tcp",
    ) -> None:
        self.binary = binary
        self.timeout = timeout
        self.rtsp_transport = rtsp_transport

    @classmethod
    def from_config(cls, config: ProbeConfig) -> FfprobeProbe:
        return cls(
            binary=config.binary,
            timeout=config.timeout,
            rtsp_transport=config.rtsp_transport,
        )

    def command(self, url: str) -> list[str]:
        return [
            self.binary,
            "-v",
            "error",
            "-rtsp_transport",
            self.rtsp_transport,
            "-select_streams",
            "v:0",
            "-show_entries",
            "stream=codec_name,width,height,avg_frame_rate,r_frame_rate,bit_rate"
            ":format=bit_rate",
            "-of",
            "json",
            url,
        ]

    async def probe(self, url: str) -> ProbeResult:
        logger.debug("Probing %s", _REDACTOR.redact_url(url))
        try:
            process = await asyncio.create_subprocess_exec(
                *self.command(url),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise ProbeError(f"{self.binary} not found, is ffmpeg installed?") from exc
        except OSError as exc:
            raise ProbeError(f"failed to start {self.binary}: {exc}") from exc

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=self.timeout
            )
        except asyncio.TimeoutError as exc:
            process.kill()
            await process.wait()
            raise ProbeError(f"{self.binary} timed out after {self.timeout}s") from exc

        if process.returncode != 0:
            detail = stderr.decode(errors="replace").strip()
            detail = detail.replace(url, _REDACTOR.redact_url(url))
            raise ProbeError(
                f"{self.binary} exited with code {process.returncode}: {detail}"
            )
        return parse_probe_output(stdout.decode(errors="replace"))
