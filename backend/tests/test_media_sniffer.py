"""
Tests for image dimension sniffing across container formats.
"""

import struct

from conftest import jpeg_bytes, png_bytes

from media.sniffer import ImageDimensions, sniff_dimensions


def _gif_bytes(width: int, height: int) -> bytes:
    return b"GIF89a" + struct.pack("<HH", width, height) + b"\x00\x00\x00"


def _bmp_bytes(width: int, height: int) -> bytes:
    file_header = b"BM" + struct.pack("<IHHI", 0, 0, 0, 54)
    info_header = struct.pack("<Iii", 40, width, height) + b"\x00" * 28
    return file_header + info_header


def _webp_vp8x_bytes(width: int, height: int) -> bytes:
    chunk = b"VP8X" + struct.pack("<I", 10) + b"\x00\x00\x00\x00"
    chunk += (width - 1).to_bytes(3, "little") + (height - 1).to_bytes(3, "little")
    return b"RIFF" + struct.pack("<I", 4 + len(chunk)) + b"WEBP" + chunk


class TestSniffDimensions:
    def test_png(self):
        assert sniff_dimensions(png_bytes(1600, 2667), "image/png") == ImageDimensions(1600, 2667)

    def test_jpeg_after_app_segment(self):
        assert sniff_dimensions(jpeg_bytes(2000, 1200), "image/jpeg") == ImageDimensions(2000, 1200)

    def test_jpeg_with_fill_bytes_before_marker(self):
        data = jpeg_bytes(640, 480)
        padded = data[:2] + b"\xff\xff" + data[2:]
        assert sniff_dimensions(padded, "image/jpeg") == ImageDimensions(640, 480)

    def test_jpeg_without_frame_header_is_unrecognized(self):
        data = b"\xff\xd8" + b"\xff\xda" + struct.pack(">H", 8) + b"\x00" * 6
        assert sniff_dimensions(data, "image/jpeg") is None

    def test_gif(self):
        assert sniff_dimensions(_gif_bytes(320, 200), "image/gif") == ImageDimensions(320, 200)

    def test_bmp(self):
        assert sniff_dimensions(_bmp_bytes(800, 600), "image/bmp") == ImageDimensions(800, 600)

    def test_bmp_negative_height_is_top_down(self):
        assert sniff_dimensions(_bmp_bytes(800, -600), "image/bmp") == ImageDimensions(800, 600)

    def test_webp_extended_header(self):
        assert sniff_dimensions(_webp_vp8x_bytes(1920, 1080), "image/webp") == ImageDimensions(1920, 1080)

    def test_simple_webp_is_unrecognized(self):
        data = b"RIFF" + struct.pack("<I", 30) + b"WEBP" + b"VP8 " + b"\x00" * 20
        assert sniff_dimensions(data, "image/webp") is None

    def test_mislabelled_image_is_still_measured(self):
        assert sniff_dimensions(png_bytes(100, 50), "image/jpeg") == ImageDimensions(100, 50)

    def test_truncated_png_is_unrecognized(self):
        assert sniff_dimensions(png_bytes(100, 100)[:20], "image/png") is None

    def test_truncated_jpeg_is_unrecognized(self):
        assert sniff_dimensions(jpeg_bytes(100, 100)[:25], "image/jpeg") is None

    def test_foreign_bytes_are_unrecognized(self):
        assert sniff_dimensions(b"%PDF-1.7\n" + b"\x00" * 64, "application/pdf") is None
        assert sniff_dimensions(b"<svg xmlns='http://www.w3.org/2000/svg'/>", "image/svg+xml") is None

    def test_empty_buffer(self):
        assert sniff_dimensions(b"") is None

    def test_short_side(self):
        assert ImageDimensions(1200, 2000).short_side == 1200
