"""Data models for camfleet."""

from camfleet.models.device import Device, Inventory
from camfleet.models.encoder import (
    ZERO_RESOLUTION,
    ConfigRole,
    EncoderCapabilities,
    EncoderConfig,
    Encoding,
    ProbeResult,
    Resolution,
)
from camfleet.models.results import (
    ApplyResult,
    BatchReport,
    BatchSummary,
    DeviceReport,
    ErrorKind,
    Issue,
    NetworkCategory,
    ProtocolVariant,
    Severity,
    ValidationResult,
)

__all__ = [
    "ZERO_RESOLUTION",
    "ApplyResult",
    "BatchReport",
    "BatchSummary",
    "ConfigRole",
    "Device",
    "DeviceReport",
    "EncoderCapabilities",
    "EncoderConfig",
    "Encoding",
    "ErrorKind",
    "Inventory",
    "Issue",
    "NetworkCategory",
    "ProbeResult",
    "ProtocolVariant",
    "Resolution",
    "Severity",
    "ValidationResult",
]
