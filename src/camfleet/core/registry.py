from __future__ import annotations

import logging
from types import TracebackType

from camfleet.clients.base import ClientFactory, DeviceClient
from camfleet.models import Device, Inventory, ProtocolVariant

logger = logging.getLogger(__name__)


class DeviceClientRegistry:
    """Owns the live device clients for one batch.

    Clients are created on first use, one per (device, protocol variant),
    and closed together by ``aclose``.
    """

    def __init__(self, inventory: Inventory, factory: ClientFactory) -> None:
        self._inventory = inventory
        self._factory = factory
        self._clients: dict[tuple[str, ProtocolVariant], DeviceClient] = {}

    @property
    def inventory(self) -> Inventory:
        return self._inventory

    def device(self, device_id: str) -> Device:
        return self._inventory.get(device_id)

    def client(
        self, device: Device, variant: ProtocolVariant = ProtocolVariant.PRIMARY
    ) -> DeviceClient:
        key = (device.id, variant)
        client = self._clients.get(key)
        if client is None:
            logger.debug("Creating %s client for camera %s", variant.value, device.id)
            client = self._factory(device, variant)
            self._clients[key] = client
        return client

    async def aclose(self) -> None:
        clients = list(self._clients.items())
        self._clients.clear()
        for (device_id, variant), client in clients:
            try:
                await client.close()
            except OSError as exc:
                logger.warning(
                    "Failed to close %s client for camera %s: %s",
                    variant.value,
                    device_id,
                    exc,
                )

    async def __aenter__(self) -> DeviceClientRegistry:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()
