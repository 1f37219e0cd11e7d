from __future__ import annotations

from collections.abc import Callable
from typing import Protocol

from camfleet.models import (
    Device,
    EncoderCapabilities,
    EncoderConfig,
    ProtocolVariant,
)


class DeviceClient(Protocol):
    """Encoder read/write access to one camera over one protocol variant.

    Every method raises ``DeviceClientError`` on transport failure or device
    rejection, with the underlying exception chained.
    """

    async def discover_profiles_and_configs(self) -> tuple[list[str], list[str]]: ...

    async def get_capabilities(
        self, profile_token: str, config_token: str
    ) -> EncoderCapabilities: ...

    async def get_current_config(self, config_token: str) -> EncoderConfig: ...

    async def set_config(self, config_token: str, config: EncoderConfig) -> None: ...

    async def get_stream_url(self, profile_token: str) -> str: ...

    async def close(self) -> None: ...


ClientFactory = Callable[[Device, ProtocolVariant], DeviceClient]
