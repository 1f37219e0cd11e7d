"""Per-device outcomes and the aggregate batch report."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum

from camfleet.models.device import Device
from camfleet.models.encoder import EncoderConfig


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class ErrorKind(str, Enum):
    DISCOVERY = "discovery"
    WRITE = "write"
    VERIFICATION = "verification"
    STREAM_URL = "stream_url"
    UNKNOWN_DEVICE = "unknown_device"
    CANCELLED = "cancelled"


class NetworkCategory(str, Enum):
    TIMEOUT = "timeout"
    CONNECTION_REFUSED = "connection_refused"
    NO_ROUTE = "no_route"
    OTHER = "other"


class ProtocolVariant(str, Enum):
    PRIMARY = "primary"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class Issue:
    field: str
    severity: Severity
    detail: str


@dataclass
class ApplyResult:
    device_id: str
    success: bool
    unchanged: bool = False
    applied_config: EncoderConfig | None = None
    stream_url: str | None = None
    error_class: ErrorKind | None = None
    error_message: str | None = None
    network_category: NetworkCategory | None = None
    protocol: ProtocolVariant = ProtocolVariant.PRIMARY
    resolution_adjusted: bool = False

    @classmethod
    def failure(
        cls,
        device_id: str,
        error_class: ErrorKind,
        message: str,
        network_category: NetworkCategory | None = None,
        protocol: ProtocolVariant = ProtocolVariant.PRIMARY,
    ) -> ApplyResult:
        return cls(
            device_id=device_id,
            success=False,
            error_class=error_class,
            error_message=message,
            network_category=network_category,
            protocol=protocol,
        )


@dataclass
class ValidationResult:
    device_id: str
    is_valid: bool
    expected: EncoderConfig
    observed: EncoderConfig
    issues: list[Issue] = field(default_factory=list)

    @property
    def errors(self) -> list[Issue]:
        return [issue for issue in self.issues if issue.severity is Severity.ERROR]

    @property
    def warnings(self) -> list[Issue]:
        return [issue for issue in self.issues if issue.severity is Severity.WARNING]

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)


@dataclass
class DeviceReport:
    device_id: str
    apply: ApplyResult
    device: Device | None = None
    validation: ValidationResult | None = None

    @property
    def passed(self) -> bool:
        return (
            self.apply.success
            and self.validation is not None
            and self.validation.is_valid
        )


@dataclass(frozen=True)
class BatchSummary:
    apply_succeeded: int
    apply_failed: int
    validation_passed: int
    validation_failed: int
    warnings: int

    @property
    def total(self) -> int:
        return self.apply_succeeded + self.apply_failed


@dataclass
class BatchReport:
    desired: EncoderConfig
    entries: list[DeviceReport] = field(default_factory=list)

    def __iter__(self) -> Iterator[DeviceReport]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def get(self, device_id: str) -> DeviceReport:
        for entry in self.entries:
            if entry.device_id == device_id:
                return entry
        raise KeyError(device_id)

    def summary(self) -> BatchSummary:
        applied = [entry for entry in self.entries if entry.apply.success]
        validated = [entry.validation for entry in applied if entry.validation]
        return BatchSummary(
            apply_succeeded=len(applied),
            apply_failed=len(self.entries) - len(applied),
            validation_passed=sum(1 for result in validated if result.is_valid),
            validation_failed=sum(1 for result in validated if not result.is_valid),
            warnings=sum(1 for result in validated if result.has_warnings),
        )
