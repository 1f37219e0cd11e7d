from __future__ import annotations

from .base import ClientFactory, DeviceClient
from .onvif import OnvifMedia2Client, OnvifMediaClient, onvif_client_factory

__all__ = [
    "ClientFactory",
    "DeviceClient",
    "OnvifMedia2Client",
    "OnvifMediaClient",
    "onvif_client_factory",
]
