"""
Tests for MediaPolicy: mime allowlists, byte ceilings and the resolution floor.
"""

import math

import pytest
from conftest import jpeg_bytes, png_bytes

from core.config import MIB, Settings
from media.validation import MediaErrorReason, MediaKind, MediaPolicy, MediaValidationError


def _policy(**overrides) -> MediaPolicy:
    return MediaPolicy.from_settings(Settings(**overrides))


class TestMimeAllowlist:
    def test_base_image_types_accepted(self):
        policy = _policy()
        for mime in ("image/jpeg", "image/png", "image/webp", "image/gif", "image/bmp"):
            policy.check_mime(mime, MediaKind.IMAGE)

    def test_document_rejected_as_image(self):
        with pytest.raises(MediaValidationError) as exc_info:
            _policy().check_mime("application/pdf", MediaKind.IMAGE)
        assert exc_info.value.reason is MediaErrorReason.UNSUPPORTED_TYPE
        assert "application/pdf" in str(exc_info.value)

    def test_document_accepted_as_attachment(self):
        _policy().check_mime("application/pdf", MediaKind.ATTACHMENT)

    def test_executable_rejected_for_both_kinds(self):
        policy = _policy()
        for kind in MediaKind:
            with pytest.raises(MediaValidationError):
                policy.check_mime("application/x-msdownload", kind)

    def test_extended_image_types_follow_setting(self):
        assert "image/svg+xml" in _policy().image.allowed_mime_types
        strict = _policy(media_allow_extended_image_types=False)
        with pytest.raises(MediaValidationError):
            strict.check_mime("image/svg+xml", MediaKind.IMAGE)
        with pytest.raises(MediaValidationError):
            strict.check_mime("image/tiff", MediaKind.ATTACHMENT)


class TestSizeBounds:
    def test_image_ceiling(self):
        policy = _policy(media_max_image_bytes=5 * MIB)
        policy.check_size(5 * MIB, MediaKind.IMAGE)
        with pytest.raises(MediaValidationError) as exc_info:
            policy.check_size(5 * MIB + 1, MediaKind.IMAGE)
        assert exc_info.value.reason is MediaErrorReason.SIZE_OUT_OF_BOUNDS
        assert "5MB" in str(exc_info.value)

    def test_attachment_ceiling_is_separate(self):
        policy = _policy()
        policy.check_size(20 * MIB, MediaKind.ATTACHMENT)
        with pytest.raises(MediaValidationError):
            policy.check_size(20 * MIB, MediaKind.IMAGE)

    @pytest.mark.parametrize("size", [0, -1, math.inf, math.nan])
    def test_degenerate_sizes_rejected(self, size):
        with pytest.raises(MediaValidationError) as exc_info:
            _policy().check_size(size, MediaKind.ATTACHMENT)
        assert exc_info.value.reason is MediaErrorReason.SIZE_OUT_OF_BOUNDS


class TestResolutionFloor:
    def test_floor_off_by_default(self):
        policy = _policy()
        assert policy.image.min_short_side_px is None
        policy.validate("image/png", png_bytes(10, 10), MediaKind.IMAGE)

    def test_low_resolution_rejected(self):
        policy = _policy(media_enforce_min_resolution=True)
        with pytest.raises(MediaValidationError) as exc_info:
            policy.validate("image/png", png_bytes(1200, 2000), MediaKind.IMAGE)
        assert exc_info.value.reason is MediaErrorReason.RESOLUTION_TOO_LOW
        assert "1200x2000" in str(exc_info.value)

    def test_short_side_at_floor_accepted(self):
        policy = _policy(media_enforce_min_resolution=True)
        policy.validate("image/png", png_bytes(1600, 2667), MediaKind.IMAGE)
        policy.validate("image/png", png_bytes(1500, 1500), MediaKind.IMAGE)

    def test_configurable_floor(self):
        policy = _policy(media_enforce_min_resolution=True, media_min_image_short_side_px=600)
        policy.validate("image/jpeg", jpeg_bytes(800, 600), MediaKind.IMAGE)

    def test_unmeasurable_image_rejected(self):
        policy = _policy(media_enforce_min_resolution=True)
        with pytest.raises(MediaValidationError) as exc_info:
            policy.validate("image/svg+xml", b"<svg xmlns='http://www.w3.org/2000/svg'/>", MediaKind.IMAGE)
        assert exc_info.value.reason is MediaErrorReason.FORMAT_UNRECOGNIZED

    def test_floor_never_applies_to_attachments(self):
        policy = _policy(media_enforce_min_resolution=True)
        policy.validate("image/png", png_bytes(10, 10), MediaKind.ATTACHMENT)
        policy.validate("application/pdf", b"%PDF-1.7", MediaKind.ATTACHMENT)

    def test_mime_checked_before_size(self):
        policy = _policy()
        with pytest.raises(MediaValidationError) as exc_info:
            policy.validate("application/x-msdownload", b"", MediaKind.IMAGE)
        assert exc_info.value.reason is MediaErrorReason.UNSUPPORTED_TYPE
