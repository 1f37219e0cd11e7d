"""Operator-facing classification of transport failures.

The category only shapes the message shown to an operator; it never changes
what the engine does next.
"""

from __future__ import annotations

import errno
import socket

from camfleet.models import Device, NetworkCategory

_NO_ROUTE_ERRNOS = {errno.EHOSTUNREACH, errno.ENETUNREACH}

_TIMEOUT_MARKERS = ("timed out", "i/o timeout", "dial tcp", "timeout")
_REFUSED_MARKERS = ("connection refused",)
_NO_ROUTE_MARKERS = ("no route to host", "network is unreachable")


def _chain(exc: BaseException) -> list[BaseException]:
    seen: list[BaseException] = []
    current: BaseException | None = exc
    while current is not None and current not in seen:
        seen.append(current)
        current = current.__cause__ or current.__context__
    return seen


def classify_network_error(exc: BaseException) -> NetworkCategory:
    chain = _chain(exc)

    for item in chain:
        if isinstance(item, ConnectionRefusedError):
            return NetworkCategory.CONNECTION_REFUSED
        if isinstance(item, (TimeoutError, socket.timeout)):
            return NetworkCategory.TIMEOUT
        if isinstance(item, OSError) and item.errno in _NO_ROUTE_ERRNOS:
            return NetworkCategory.NO_ROUTE

    text = " ".join(str(item) for item in chain).lower()
    if any(marker in text for marker in _REFUSED_MARKERS):
        return NetworkCategory.CONNECTION_REFUSED
    if any(marker in text for marker in _NO_ROUTE_MARKERS):
        return NetworkCategory.NO_ROUTE
    if any(marker in text for marker in _TIMEOUT_MARKERS):
        return NetworkCategory.TIMEOUT
    return NetworkCategory.OTHER


def describe_network_failure(
    device: Device, category: NetworkCategory, exc: BaseException
) -> str:
    address = device.address
    if category is NetworkCategory.TIMEOUT:
        return (
            f"network timeout: camera at {address} is not responding. Check that "
            f"the camera is powered and connected, that {device.host} is the "
            f"right address and that port {device.port} is its ONVIF port"
        )
    if category is NetworkCategory.CONNECTION_REFUSED:
        return (
            f"connection refused: camera at {address} refused the connection. "
            "Check the ONVIF port (commonly 80, 8080 or 8000), that the ONVIF "
            "service is enabled and the firewall settings"
        )
    if category is NetworkCategory.NO_ROUTE:
        return (
            f"no route to host: cannot reach camera at {address}. Check that the "
            "camera and this host share a network and the routing between them"
        )
    return str(exc)
