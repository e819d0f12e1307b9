"""
Media sources — data-URL decoding and the host allowlist.

A media field holds either an inline data URL (not yet stored) or an
http(s) URL. Hosted URLs are only accepted from allowlisted hosts; only
the managed storage domain is eligible for deletion.
"""

import base64
import binascii
import re
from dataclasses import dataclass
from urllib.parse import urlsplit

from core.config import Settings
from media.validation import MediaErrorReason, MediaValidationError

DATA_URL_PATTERN = re.compile(r"^data:([^;,]+);base64,([A-Za-z0-9+/=]+)$")
_UNSAFE_FILENAME_CHARS = re.compile(r"[^\w.\-]")


@dataclass(frozen=True)
class DataPayload:
    mime_type: str
    data: bytes


def is_data_url(value: str) -> bool:
    return value.startswith("data:")


def parse_data_url(value: str) -> DataPayload:
    match = DATA_URL_PATTERN.match(value)
    if not match:
        raise MediaValidationError(MediaErrorReason.INVALID_PAYLOAD, "Invalid data URL")
    try:
        data = base64.b64decode(match.group(2), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise MediaValidationError(MediaErrorReason.INVALID_PAYLOAD, "Invalid data URL") from exc
    return DataPayload(mime_type=match.group(1).lower(), data=data)


def safe_file_name(name: str) -> str:
    return _UNSAFE_FILENAME_CHARS.sub("_", name)[:120] or "file"


def url_host(value: str) -> str | None:
    """Lower-cased hostname of an http(s) URL, else None."""
    try:
        parts = urlsplit(value)
    except ValueError:
        return None
    if parts.scheme not in ("http", "https") or not parts.hostname:
        return None
    return parts.hostname.lower()


@dataclass(frozen=True)
class HostAllowlist:
    managed_host: str
    managed_host_suffix: str
    extra_hosts: frozenset[str] = frozenset()

    @classmethod
    def from_settings(cls, settings: Settings) -> "HostAllowlist":
        return cls(
            managed_host=settings.blob_managed_host.lower(),
            managed_host_suffix=settings.blob_managed_host_suffix.lower(),
            extra_hosts=frozenset(settings.media_allowed_host_list),
        )

    def _is_managed_host(self, host: str) -> bool:
        return host == self.managed_host or host.endswith(self.managed_host_suffix)

    def is_managed(self, url: str) -> bool:
        """True for URLs on the storage domain this service may delete from."""
        host = url_host(url)
        return host is not None and self._is_managed_host(host)

    def is_allowed_source(self, url: str) -> bool:
        host = url_host(url)
        if host is None:
            return False
        return self._is_managed_host(host) or host in self.extra_hosts
