"""camfleet - reconcile camera encoder settings and validate the streams."""

from __future__ import annotations

from importlib.metadata import version

from .config import Settings, get_settings
from .core import BatchOrchestrator, ConfigApplier, StreamValidator
from .models import BatchReport, Device, EncoderConfig, Inventory, Resolution
from .storage.inventory import InventoryStore

__all__ = [
    "BatchOrchestrator",
    "BatchReport",
    "ConfigApplier",
    "Device",
    "EncoderConfig",
    "Inventory",
    "InventoryStore",
    "Resolution",
    "Settings",
    "StreamValidator",
    "__version__",
    "get_settings",
]

__version__ = version("camfleet")
