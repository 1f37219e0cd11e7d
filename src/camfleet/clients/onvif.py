"""ONVIF media clients.

``OnvifMediaClient`` speaks Media ver10 through onvif-zeep and is the primary
path. ``OnvifMedia2Client`` speaks Media2 (ver20) through a plain zeep client
and is only used when ver10 is unreachable. Both run the blocking SOAP calls
in a worker thread.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any, TypeVar

from onvif import ONVIFCamera
from onvif.exceptions import ONVIFError
from zeep import Client
from zeep.exceptions import Error as ZeepError
from zeep.transports import Transport
from zeep.wsse.username import UsernameToken

from camfleet.clients.base import ClientFactory, DeviceClient
from camfleet.config import Settings
from camfleet.errors import DeviceClientError
from camfleet.models import (
    ConfigRole,
    Device,
    EncoderCapabilities,
    EncoderConfig,
    Encoding,
    ProtocolVariant,
    Resolution,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

MEDIA_NAMESPACE = "http://www.onvif.org/ver10/media/wsdl"
MEDIA2_BINDING = "{http://www.onvif.org/ver20/media/wsdl}Media2Binding"
DEFAULT_SERVICE_ROOT = "/onvif"

_TRANSPORT_ERRORS = (ONVIFError, ZeepError, OSError)
# raised while reading fields off a SOAP response that lacks them
_RESPONSE_ERRORS = (AttributeError, KeyError, TypeError, ValueError)

# ONVIF names JPEG what everyone else calls MJPEG
_ONVIF_ENCODING_NAMES = {
    Encoding.H264: "H264",
    Encoding.H265: "H265",
    Encoding.MJPEG: "JPEG",
    Encoding.MPEG4: "MPEG4",
}


def _service_url(device: Device, service: str) -> str:
    root = (device.base_path or DEFAULT_SERVICE_ROOT).rstrip("/")
    if not root.startswith("/"):
        root = f"/{root}"
    return f"http://{device.host}:{device.port}{root}/{service}"


def _parse_encoding(value: Any) -> Encoding | None:
    if value is None:
        return None
    try:
        return Encoding.parse(value)
    except ValueError:
        logger.debug("Ignoring unknown encoding %r", value)
        return None


def _resolutions(items: Any) -> list[Resolution]:
    return [
        Resolution(width=int(item.Width), height=int(item.Height))
        for item in items or []
    ]


def _range(value: Any) -> tuple[int, int]:
    if value is None:
        return (0, 0)
    return (int(value.Min), int(value.Max))


def _config_from_onvif(cfg: Any) -> EncoderConfig:
    rate_control = getattr(cfg, "RateControl", None)
    return EncoderConfig(
        resolution=Resolution(
            width=int(cfg.Resolution.Width), height=int(cfg.Resolution.Height)
        ),
        quality=int(cfg.Quality or 0),
        frame_rate=int(rate_control.FrameRateLimit or 0) if rate_control else 0,
        bitrate_kbps=int(rate_control.BitrateLimit or 0) if rate_control else 0,
        encoding=_parse_encoding(getattr(cfg, "Encoding", None)),
        role=ConfigRole.CURRENT,
    )


def _write_onvif_config(cfg: Any, config: EncoderConfig) -> None:
    cfg.Resolution.Width = config.resolution.width
    cfg.Resolution.Height = config.resolution.height
    if config.quality:
        cfg.Quality = config.quality
    rate_control = getattr(cfg, "RateControl", None)
    if rate_control is not None:
        if config.frame_rate:
            rate_control.FrameRateLimit = config.frame_rate
        if config.bitrate_kbps:
            rate_control.BitrateLimit = config.bitrate_kbps
    if config.encoding is not None:
        cfg.Encoding = _ONVIF_ENCODING_NAMES[config.encoding]


class _SoapClient:
    def __init__(self, device: Device, timeout: float) -> None:
        self._device = device
        self._timeout = timeout
        self._transport: Transport | None = None

    def _make_transport(self) -> Transport:
        self._transport = Transport(
            timeout=self._timeout, operation_timeout=self._timeout
        )
        return self._transport

    async def _call(self, operation: str, func: Callable[[], T]) -> T:
        try:
            return await asyncio.to_thread(func)
        except _TRANSPORT_ERRORS as exc:
            raise DeviceClientError(f"{operation} failed: {exc}") from exc
        except _RESPONSE_ERRORS as exc:
            raise DeviceClientError(
                f"{operation} returned an unexpected response: {exc}"
            ) from exc

    async def close(self) -> None:
        if self._transport is not None:
            self._transport.session.close()
            self._transport = None


class OnvifMediaClient(_SoapClient):
    """Media ver10 client built on onvif-zeep."""

    def __init__(self, device: Device, timeout: float) -> None:
        super().__init__(device, timeout)
        self._media: Any = None

    def _service(self) -> Any:
        if self._media is None:
            device = self._device
            camera = ONVIFCamera(
                device.host,
                device.port,
                device.username,
                device.password,
                transport=self._make_transport(),
            )
            if device.base_path:
                camera.xaddrs[MEDIA_NAMESPACE] = _service_url(device, "media_service")
            self._media = camera.create_media_service()
        return self._media

    async def discover_profiles_and_configs(self) -> tuple[list[str], list[str]]:
        def _discover() -> tuple[list[str], list[str]]:
            profiles = self._service().GetProfiles() or []
            profile_tokens: list[str] = []
            config_tokens: list[str] = []
            for profile in profiles:
                profile_tokens.append(str(profile.token))
                encoder = getattr(profile, "VideoEncoderConfiguration", None)
                if encoder is not None and encoder.token:
                    config_tokens.append(str(encoder.token))
            return profile_tokens, config_tokens

        return await self._call("GetProfiles", _discover)

    async def get_capabilities(
        self, profile_token: str, config_token: str
    ) -> EncoderCapabilities:
        def _options() -> EncoderCapabilities:
            options = self._service().GetVideoEncoderConfigurationOptions(
                {"ConfigurationToken": config_token, "ProfileToken": profile_token}
            )
            h264 = getattr(options, "H264", None)
            if h264 is None:
                jpeg = getattr(options, "JPEG", None)
                if jpeg is None:
                    return EncoderCapabilities()
                return EncoderCapabilities(
                    resolutions=_resolutions(jpeg.ResolutionsAvailable),
                    frame_rate_range=_range(jpeg.FrameRateRange),
                    encoding=Encoding.MJPEG,
                )
            extension = getattr(options, "Extension", None)
            h264_extension = getattr(extension, "H264", None) if extension else None
            return EncoderCapabilities(
                resolutions=_resolutions(h264.ResolutionsAvailable),
                frame_rate_range=_range(h264.FrameRateRange),
                bitrate_range=_range(getattr(h264_extension, "BitrateRange", None)),
                encoding=Encoding.H264,
            )

        return await self._call("GetVideoEncoderConfigurationOptions", _options)

    async def get_current_config(self, config_token: str) -> EncoderConfig:
        def _current() -> EncoderConfig:
            cfg = self._service().GetVideoEncoderConfiguration(
                {"ConfigurationToken": config_token}
            )
            return _config_from_onvif(cfg)

        return await self._call("GetVideoEncoderConfiguration", _current)

    async def set_config(self, config_token: str, config: EncoderConfig) -> None:
        def _write() -> None:
            media = self._service()
            cfg = media.GetVideoEncoderConfiguration(
                {"ConfigurationToken": config_token}
            )
            _write_onvif_config(cfg, config)
            media.SetVideoEncoderConfiguration(
                {"Configuration": cfg, "ForcePersistence": True}
            )

        await self._call("SetVideoEncoderConfiguration", _write)

    async def get_stream_url(self, profile_token: str) -> str:
        def _uri() -> str:
            response = self._service().GetStreamUri(
                {
                    "StreamSetup": {
                        "Stream": "RTP-Unicast",
                        "Transport": {"Protocol": "RTSP"},
                    },
                    "ProfileToken": profile_token,
                }
            )
            return str(response.Uri or "")

        return await self._call("GetStreamUri", _uri)


class OnvifMedia2Client(_SoapClient):
    """Media2 (ver20) client built directly on zeep."""

    def __init__(self, device: Device, timeout: float, wsdl: str) -> None:
        super().__init__(device, timeout)
        self._wsdl = wsdl
        self._media: Any = None

    def _service(self) -> Any:
        if self._media is None:
            device = self._device
            client = Client(
                self._wsdl,
                wsse=UsernameToken(device.username, device.password, use_digest=True),
                transport=self._make_transport(),
            )
            self._media = client.create_service(
                MEDIA2_BINDING, _service_url(device, "media2_service")
            )
        return self._media

    async def discover_profiles_and_configs(self) -> tuple[list[str], list[str]]:
        def _discover() -> tuple[list[str], list[str]]:
            profiles = self._service().GetProfiles(Type=["VideoEncoder"]) or []
            profile_tokens: list[str] = []
            config_tokens: list[str] = []
            for profile in profiles:
                profile_tokens.append(str(profile.token))
                configurations = getattr(profile, "Configurations", None)
                encoder = getattr(configurations, "VideoEncoder", None)
                if encoder is not None and encoder.token:
                    config_tokens.append(str(encoder.token))
            return profile_tokens, config_tokens

        return await self._call("GetProfiles", _discover)

    async def get_capabilities(
        self, profile_token: str, config_token: str
    ) -> EncoderCapabilities:
        def _options() -> EncoderCapabilities:
            options = (
                self._service().GetVideoEncoderConfigurationOptions(
                    ConfigurationToken=config_token, ProfileToken=profile_token
                )
                or []
            )
            if not options:
                return EncoderCapabilities()
            chosen = options[0]
            for option in options:
                if _parse_encoding(option.Encoding) is Encoding.H264:
                    chosen = option
                    break
            rates = [float(rate) for rate in chosen.FrameRatesSupported or []]
            frame_rate_range = (int(min(rates)), int(max(rates))) if rates else (0, 0)
            return EncoderCapabilities(
                resolutions=_resolutions(chosen.ResolutionsAvailable),
                frame_rate_range=frame_rate_range,
                bitrate_range=_range(getattr(chosen, "BitrateRange", None)),
                encoding=_parse_encoding(chosen.Encoding),
            )

        return await self._call("GetVideoEncoderConfigurationOptions", _options)

    def _fetch_config(self, config_token: str) -> Any:
        configs = self._service().GetVideoEncoderConfigurations(
            ConfigurationToken=config_token
        )
        if not configs:
            raise ONVIFError(f"no encoder configuration with token {config_token}")
        return configs[0]

    async def get_current_config(self, config_token: str) -> EncoderConfig:
        def _current() -> EncoderConfig:
            return _config_from_onvif(self._fetch_config(config_token))

        return await self._call("GetVideoEncoderConfigurations", _current)

    async def set_config(self, config_token: str, config: EncoderConfig) -> None:
        def _write() -> None:
            cfg = self._fetch_config(config_token)
            _write_onvif_config(cfg, config)
            self._service().SetVideoEncoderConfiguration(Configuration=cfg)

        await self._call("SetVideoEncoderConfiguration", _write)

    async def get_stream_url(self, profile_token: str) -> str:
        def _uri() -> str:
            uri = self._service().GetStreamUri(
                Protocol="RTSP", ProfileToken=profile_token
            )
            return str(uri or "")

        return await self._call("GetStreamUri", _uri)


def onvif_client_factory(settings: Settings) -> ClientFactory:
    timeout = settings.devices.timeout
    wsdl = settings.devices.media2_wsdl

    def _factory(device: Device, variant: ProtocolVariant) -> DeviceClient:
        if variant is ProtocolVariant.FALLBACK:
            return OnvifMedia2Client(device, timeout, wsdl)
        return OnvifMediaClient(device, timeout)

    return _factory
