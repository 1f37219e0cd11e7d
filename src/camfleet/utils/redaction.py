from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import urlsplit, urlunsplit


@dataclass
class Redactor:
    enabled: bool = True

    def redact_host(self, host: str) -> str:
        if not self.enabled:
            return host
        parts = host.split(".")
        if len(parts) == 4 and all(part.isdigit() for part in parts):
            return f"x.x.x.{parts[3]}"
        return host

    def redact_address(self, address: str) -> str:
        host, sep, port = address.rpartition(":")
        if not sep:
            return self.redact_host(address)
        return f"{self.redact_host(host)}:{port}"

    def redact_url(self, url: str | None) -> str:
        """Mask the password embedded in a stream URL.

        The password is always masked; with redaction enabled the host is
        masked as well.
        """
        if not url:
            return ""
        parts = urlsplit(url)
        if parts.hostname is None:
            return url
        host = self.redact_host(parts.hostname)
        if parts.port is not None:
            host = f"{host}:{parts.port}"
        if parts.username:
            userinfo = parts.username
            if parts.password is not None:
                userinfo = f"{userinfo}:***"
            host = f"{userinfo}@{host}"
        return urlunsplit((parts.scheme, host, parts.path, parts.query, parts.fragment))
