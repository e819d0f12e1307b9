"""
Media Validation — mime allowlist, byte ceiling and resolution floor.

Each MediaKind carries its own rules (KindRules) so call sites pass the
kind, never an "is attachment" flag. Rules are built from Settings because
deployments disagree on the image ceiling, the svg/tiff allowance and the
minimum short-side resolution.
"""

import math
from dataclasses import dataclass
from enum import Enum

from core.config import Settings
from media.sniffer import ImageDimensions, sniff_dimensions


class MediaKind(str, Enum):
    """Role of a media field, which decides the rules applied to it."""

    IMAGE = "image"
    ATTACHMENT = "attachment"


class MediaErrorReason(str, Enum):
    UNSUPPORTED_TYPE = "unsupported_type"
    SIZE_OUT_OF_BOUNDS = "size_out_of_bounds"
    RESOLUTION_TOO_LOW = "resolution_too_low"
    FORMAT_UNRECOGNIZED = "format_unrecognized"
    DISALLOWED_SOURCE = "disallowed_source"
    INVALID_PAYLOAD = "invalid_payload"
    MISSING_SOURCE = "missing_source"


class MediaValidationError(ValueError):
    """Inbound media rejected before any upload or database write."""

    def __init__(self, reason: MediaErrorReason, message: str):
        super().__init__(message)
        self.reason = reason


BASE_IMAGE_MIME_TYPES = frozenset(
    {
        "image/jpeg",
        "image/png",
        "image/webp",
        "image/gif",
        "image/bmp",
    }
)

EXTENDED_IMAGE_MIME_TYPES = frozenset({"image/svg+xml", "image/tiff"})

DOCUMENT_MIME_TYPES = frozenset(
    {
        "application/pdf",
        "text/plain",
        "text/csv",
        "application/zip",
        "application/x-zip-compressed",
        "application/vnd.ms-excel",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "application/vnd.ms-powerpoint",
        "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    }
)


@dataclass(frozen=True)
class KindRules:
    allowed_mime_types: frozenset[str]
    max_bytes: int
    min_short_side_px: int | None = None  # None disables the floor


@dataclass(frozen=True)
class MediaPolicy:
    image: KindRules
    attachment: KindRules

    @classmethod
    def from_settings(cls, settings: Settings) -> "MediaPolicy":
        image_types = BASE_IMAGE_MIME_TYPES
        if settings.media_allow_extended_image_types:
            image_types = image_types | EXTENDED_IMAGE_MIME_TYPES
        floor = settings.media_min_image_short_side_px if settings.media_enforce_min_resolution else None
        return cls(
            image=KindRules(
                allowed_mime_types=image_types,
                max_bytes=settings.media_max_image_bytes,
                min_short_side_px=floor,
            ),
            attachment=KindRules(
                allowed_mime_types=image_types | DOCUMENT_MIME_TYPES,
                max_bytes=settings.media_max_attachment_bytes,
            ),
        )

    def rules_for(self, kind: MediaKind) -> KindRules:
        return self.image if kind is MediaKind.IMAGE else self.attachment

    def check_mime(self, mime_type: str, kind: MediaKind) -> None:
        if mime_type.lower() not in self.rules_for(kind).allowed_mime_types:
            raise MediaValidationError(
                MediaErrorReason.UNSUPPORTED_TYPE, f"Unsupported file type: {mime_type}"
            )

    def check_size(self, byte_length: float, kind: MediaKind) -> None:
        max_bytes = self.rules_for(kind).max_bytes
        if not math.isfinite(byte_length) or byte_length <= 0 or byte_length > max_bytes:
            raise MediaValidationError(
                MediaErrorReason.SIZE_OUT_OF_BOUNDS,
                f"File size must be between 1 byte and {max_bytes // (1024 * 1024)}MB",
            )

    def check_resolution(self, payload: bytes, mime_type: str, kind: MediaKind) -> ImageDimensions | None:
        floor = self.rules_for(kind).min_short_side_px
        if kind is not MediaKind.IMAGE or floor is None:
            return None
        dimensions = sniff_dimensions(payload, mime_type)
        if dimensions is None:
            raise MediaValidationError(
                MediaErrorReason.FORMAT_UNRECOGNIZED,
                "Image dimensions could not be determined",
            )
        if dimensions.short_side < floor:
            raise MediaValidationError(
                MediaErrorReason.RESOLUTION_TOO_LOW,
                f"Image is {dimensions.width}x{dimensions.height}; the shorter side must be at least {floor}px",
            )
        return dimensions

    def validate(self, mime_type: str, payload: bytes, kind: MediaKind) -> None:
        """Run every check for `kind`; raises MediaValidationError on the first failure."""
        self.check_mime(mime_type, kind)
        self.check_size(len(payload), kind)
        self.check_resolution(payload, mime_type, kind)
