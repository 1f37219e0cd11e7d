"""CSV projection of a batch report."""

from __future__ import annotations

import csv
import io
from pathlib import Path

from camfleet.models import BatchReport, DeviceReport, Resolution
from camfleet.utils.redaction import Redactor

COLUMNS = [
    "device_id",
    "device_address",
    "result",
    "resolution_expected",
    "resolution_actual",
    "framerate_expected",
    "framerate_actual",
    "notes",
]


def result_label(entry: DeviceReport) -> str:
    if not entry.apply.success:
        return "CONFIG_ERROR"
    return "PASS" if entry.passed else "FAIL"


def _resolution(resolution: Resolution) -> str:
    return "" if resolution.is_zero else str(resolution)


def _frame_rate(value: int) -> str:
    return str(value) if value else ""


def _notes(entry: DeviceReport) -> str:
    if not entry.apply.success:
        return entry.apply.error_message or ""
    notes = []
    if entry.apply.unchanged:
        notes.append("unchanged")
    if entry.apply.resolution_adjusted:
        notes.append("resolution adjusted")
    if entry.validation is not None:
        notes.extend(
            f"{issue.severity.value}: {issue.field}: {issue.detail}"
            for issue in entry.validation.issues
        )
    return "; ".join(notes)


def report_rows(
    report: BatchReport, redactor: Redactor | None = None
) -> list[dict[str, str]]:
    redactor = redactor or Redactor(enabled=False)
    rows = []
    for entry in report:
        address = entry.device.address if entry.device is not None else ""
        expected = entry.validation.expected if entry.validation else report.desired
        observed = entry.validation.observed if entry.validation else None
        rows.append(
            {
                "device_id": entry.device_id,
                "device_address": redactor.redact_address(address) if address else "",
                "result": result_label(entry),
                "resolution_expected": _resolution(expected.resolution),
                "resolution_actual": (
                    _resolution(observed.resolution) if observed else ""
                ),
                "framerate_expected": _frame_rate(expected.frame_rate),
                "framerate_actual": (
                    _frame_rate(observed.frame_rate) if observed else ""
                ),
                "notes": _notes(entry),
            }
        )
    return rows


def render_report_csv(report: BatchReport, redactor: Redactor | None = None) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=COLUMNS, lineterminator="\n")
    writer.writeheader()
    writer.writerows(report_rows(report, redactor))
    return buffer.getvalue()


def write_report_csv(
    report: BatchReport, path: Path, redactor: Redactor | None = None
) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_report_csv(report, redactor), encoding="utf-8")
