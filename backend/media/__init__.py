"""
Media ingestion package.

Turns inline media on an entry sheet into durable blob URLs and cleans up
blobs that saved sheets no longer reference:
  - sniffer     image dimensions from raw PNG/JPEG/GIF/BMP/WebP bytes
  - validation  per-kind mime allowlist, byte ceiling, resolution floor
  - sources     data-URL decoding and the host allowlist
  - blob_store  object storage client (Vercel Blob)
  - normalizer  sheet-wide concurrent upload of inline payloads
  - reclaimer   best-effort deletion of orphaned managed blobs

Usage:
    from media import MediaNormalizer, MediaPolicy, HostAllowlist

    normalizer = MediaNormalizer(store, MediaPolicy.from_settings(settings),
                                 HostAllowlist.from_settings(settings))
    sheet = await normalizer.normalize(sheet, "pharmapop/sheets/<id>")
"""

from media.blob_store import BlobStore, BlobStoreError, StoredBlob, VercelBlobStore
from media.normalizer import MediaNormalizer
from media.reclaimer import OrphanBlobReclaimer
from media.sniffer import ImageDimensions, sniff_dimensions
from media.sources import HostAllowlist
from media.validation import MediaErrorReason, MediaKind, MediaPolicy, MediaValidationError

__all__ = [
    "BlobStore",
    "BlobStoreError",
    "StoredBlob",
    "VercelBlobStore",
    "MediaNormalizer",
    "OrphanBlobReclaimer",
    "ImageDimensions",
    "sniff_dimensions",
    "HostAllowlist",
    "MediaErrorReason",
    "MediaKind",
    "MediaPolicy",
    "MediaValidationError",
]
