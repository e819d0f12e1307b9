"""
Media Normalizer — turn inline data URLs into durable blob URLs.

Walks a Sheet and, for every media-bearing field:
  - absent            → unchanged
  - data URL          → validate, upload, replace with the stored URL
  - http(s) URL       → kept only when its host is allowlisted

All uploads of one sheet are fanned out concurrently and fully joined
before normalize() returns. The first failure aborts normalization, but
only after every sibling upload has settled; URLs uploaded along the way
are listed in `uploaded_urls` so the caller can reclaim them.

Normalization is not deduplicated: the same inline bytes sent twice are
stored twice.
"""

import asyncio
import time
from collections.abc import Awaitable

import structlog

from media.blob_store import BlobStore
from media.sources import HostAllowlist, is_data_url, parse_data_url, safe_file_name
from media.validation import MediaErrorReason, MediaKind, MediaPolicy, MediaValidationError
from sheets.schemas import Attachment, Product, Sheet

logger = structlog.get_logger()


async def _settle(awaitables: list[Awaitable]) -> list:
    """Await everything; then raise the first failure, if any."""
    results = await asyncio.gather(*awaitables, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return results


class MediaNormalizer:
    """
    Per-request normalizer.

    Holds the list of URLs uploaded during its calls, so create one per
    save and do not share it between requests.
    """

    def __init__(self, store: BlobStore, policy: MediaPolicy, allowlist: HostAllowlist):
        self.store = store
        self.policy = policy
        self.allowlist = allowlist
        self.uploaded_urls: list[str] = []

    async def upload_data_url(self, data_url: str, file_name: str, path_prefix: str, kind: MediaKind) -> str:
        """Validate one inline payload and store it; returns the durable URL."""
        payload = parse_data_url(data_url)
        self.policy.validate(payload.mime_type, payload.data, kind)

        path = f"{path_prefix}/{int(time.time() * 1000)}-{safe_file_name(file_name)}"
        blob = await self.store.put(path, payload.data, payload.mime_type)
        self.uploaded_urls.append(blob.url)
        logger.info(
            "media.upload.completed",
            path=path,
            kind=kind.value,
            content_type=payload.mime_type,
            bytes=len(payload.data),
        )
        return blob.url

    async def normalize_value(
        self, value: str | None, path_prefix: str, file_name: str, kind: MediaKind
    ) -> str | None:
        if not value:
            return None
        if is_data_url(value):
            return await self.upload_data_url(value, file_name, path_prefix, kind)
        if not self.allowlist.is_allowed_source(value):
            raise MediaValidationError(
                MediaErrorReason.DISALLOWED_SOURCE, "Only allowed Blob URLs are accepted"
            )
        return value

    async def normalize_attachment(self, attachment: Attachment, path_prefix: str) -> Attachment:
        source = attachment.url or attachment.data_url
        url = await self.normalize_value(
            source, path_prefix, attachment.name or "attachment", MediaKind.ATTACHMENT
        )
        if not url:
            raise MediaValidationError(MediaErrorReason.MISSING_SOURCE, "Attachment URL is required")
        return Attachment(name=attachment.name, size=attachment.size, type=attachment.type, url=url)

    async def _normalize_attachments(
        self, attachments: list[Attachment] | None, path_prefix: str
    ) -> list[Attachment] | None:
        if attachments is None:
            return None
        return await _settle(
            [
                self.normalize_attachment(attachment, f"{path_prefix}/{index}")
                for index, attachment in enumerate(attachments)
            ]
        )

    async def normalize_product(self, product: Product, path_prefix: str) -> Product:
        product_image, promo_image, attachments = await _settle(
            [
                self.normalize_value(
                    product.product_image,
                    f"{path_prefix}/product-image",
                    f"{product.id}-product",
                    MediaKind.IMAGE,
                ),
                self.normalize_value(
                    product.promo_image,
                    f"{path_prefix}/promo-image",
                    f"{product.id}-promo",
                    MediaKind.IMAGE,
                ),
                self._normalize_attachments(
                    product.product_attachments,
                    f"{path_prefix}/product-attachments/{product.id}",
                ),
            ]
        )
        return product.model_copy(
            update={
                "product_image": product_image,
                "promo_image": promo_image,
                "product_attachments": attachments,
            }
        )

    async def normalize(self, sheet: Sheet, path_prefix: str) -> Sheet:
        """Return a copy of `sheet` whose media fields all hold durable URLs."""
        products, attachments = await _settle(
            [
                _settle([self.normalize_product(p, f"{path_prefix}/products") for p in sheet.products]),
                self._normalize_attachments(sheet.attachments, f"{path_prefix}/sheet-attachments"),
            ]
        )
        return sheet.model_copy(update={"products": products, "attachments": attachments})
