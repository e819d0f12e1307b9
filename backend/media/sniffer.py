"""
Image Dimension Sniffer — width/height from raw container bytes.

Supports PNG, JPEG, GIF, BMP and WebP (extended VP8X header only) without
an imaging library. Every parser returns None for a buffer it cannot
read (wrong signature, truncated header, unsupported sub-format); none of
them raise.
"""

import struct
from collections.abc import Callable
from dataclasses import dataclass


@dataclass(frozen=True)
class ImageDimensions:
    width: int
    height: int

    @property
    def short_side(self) -> int:
        return min(self.width, self.height)


PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
GIF_SIGNATURES = (b"GIF87a", b"GIF89a")

# Start-Of-Frame markers carry the frame size. 0xC4 (DHT), 0xC8 (JPG) and
# 0xCC (DAC) sit inside the range but are not frames.
JPEG_SOF_MARKERS = frozenset(
    [0xC0, 0xC1, 0xC2, 0xC3, 0xC5, 0xC6, 0xC7, 0xC9, 0xCA, 0xCB, 0xCD, 0xCE, 0xCF]
)
# Markers with no length field
JPEG_STANDALONE_MARKERS = frozenset([0x01, 0xD0, 0xD1, 0xD2, 0xD3, 0xD4, 0xD5, 0xD6, 0xD7, 0xD8])
JPEG_SOS = 0xDA
JPEG_EOI = 0xD9


def _parse_png(data: bytes) -> ImageDimensions | None:
    if len(data) < 24 or not data.startswith(PNG_SIGNATURE):
        return None
    width, height = struct.unpack(">II", data[16:24])
    return ImageDimensions(width, height)


def _parse_gif(data: bytes) -> ImageDimensions | None:
    if len(data) < 10 or data[:6] not in GIF_SIGNATURES:
        return None
    width, height = struct.unpack("<HH", data[6:10])
    return ImageDimensions(width, height)


def _parse_bmp(data: bytes) -> ImageDimensions | None:
    if len(data) < 18 or data[:2] != b"BM":
        return None
    (dib_size,) = struct.unpack("<I", data[14:18])
    if dib_size < 12:
        return None
    if dib_size == 12:
        # OS/2 BITMAPCOREHEADER: 16-bit unsigned fields
        if len(data) < 22:
            return None
        width, height = struct.unpack("<HH", data[18:22])
        return ImageDimensions(width, height)
    if len(data) < 26:
        return None
    width, height = struct.unpack("<ii", data[18:26])
    # Negative height marks top-down row order
    return ImageDimensions(abs(width), abs(height))


def _parse_webp(data: bytes) -> ImageDimensions | None:
    if len(data) < 30 or data[:4] != b"RIFF" or data[8:12] != b"WEBP":
        return None
    if data[12:16] != b"VP8X":
        return None
    # 24-bit little-endian canvas size, stored minus one
    width = int.from_bytes(data[24:27], "little") + 1
    height = int.from_bytes(data[27:30], "little") + 1
    return ImageDimensions(width, height)


def _parse_jpeg(data: bytes) -> ImageDimensions | None:
    if len(data) < 4 or data[0] != 0xFF or data[1] != 0xD8:
        return None

    offset = 2
    size = len(data)
    while offset < size:
        if data[offset] != 0xFF:
            return None
        # Any number of 0xFF fill bytes may precede a marker
        while offset < size and data[offset] == 0xFF:
            offset += 1
        if offset >= size:
            return None
        marker = data[offset]
        offset += 1

        if marker in JPEG_STANDALONE_MARKERS:
            continue
        if marker in (JPEG_SOS, JPEG_EOI):
            # Entropy-coded data follows; no frame header was seen
            return None
        if offset + 2 > size:
            return None
        (segment_length,) = struct.unpack(">H", data[offset : offset + 2])
        if segment_length < 2:
            return None

        if marker in JPEG_SOF_MARKERS:
            # length(2) precision(1) height(2) width(2)
            if offset + 7 > size:
                return None
            height, width = struct.unpack(">HH", data[offset + 3 : offset + 7])
            return ImageDimensions(width, height)

        offset += segment_length
    return None


_PARSERS_BY_MIME: dict[str, Callable[[bytes], ImageDimensions | None]] = {
    "image/png": _parse_png,
    "image/jpeg": _parse_jpeg,
    "image/gif": _parse_gif,
    "image/bmp": _parse_bmp,
    "image/webp": _parse_webp,
}


def sniff_dimensions(data: bytes, declared_mime: str | None = None) -> ImageDimensions | None:
    """
    Return the pixel dimensions encoded in `data`, or None if unrecognized.

    The parser for `declared_mime` is tried first; the remaining parsers
    follow, so a mislabelled but valid image is still measured. Each parser
    checks its own signature, so foreign bytes fall through to None.
    """
    if not data:
        return None
    data = bytes(data)

    ordered = list(_PARSERS_BY_MIME.values())
    preferred = _PARSERS_BY_MIME.get((declared_mime or "").lower())
    if preferred is not None:
        ordered.remove(preferred)
        ordered.insert(0, preferred)

    for parse in ordered:
        try:
            dimensions = parse(data)
        except (struct.error, IndexError, ValueError):
            dimensions = None
        if dimensions is not None:
            return dimensions
    return None
