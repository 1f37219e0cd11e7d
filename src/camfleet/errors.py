from __future__ import annotations


class CamfleetError(Exception):
    """Base exception for camfleet errors."""


class DeviceClientError(CamfleetError):
    """A device transport call failed or the device rejected it."""


class UnknownDeviceError(CamfleetError):
    def __init__(self, device_id: str) -> None:
        super().__init__(f"camera with ID {device_id} not found")
        self.device_id = device_id


class DiscoveryError(CamfleetError):
    """No usable profiles or encoder configurations on the device."""


class WriteError(CamfleetError):
    pass


class VerificationError(CamfleetError):
    pass


class StreamUrlError(CamfleetError):
    pass


class ProbeError(CamfleetError):
    """The stream probe could not produce a measurement."""


class BatchError(CamfleetError):
    pass


class InventoryError(CamfleetError):
    pass
