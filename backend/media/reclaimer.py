"""
Orphan Blob Reclaimer — delete managed blobs a save or delete dropped.

reclaim(before, after) deletes every managed-domain URL referenced by
`before` but not by `after`. Deletes are independent and best-effort: a
failure is logged and the remaining URLs are still attempted. Nothing here
raises to the caller, so it can run after a response has been sent.

Callers:
  - save failed after uploads:  reclaim([normalized], [previous])
  - save committed:             reclaim([previous], [saved])
  - sheet deleted:              reclaim([deleted], [])
"""

from collections.abc import Iterable

import structlog

from media.blob_store import BlobStore
from media.sources import HostAllowlist
from sheets.schemas import Attachment, Sheet

logger = structlog.get_logger()


def _attachment_urls(attachments: list[Attachment] | None) -> list[str]:
    return [a.url or a.data_url for a in attachments or [] if a.url or a.data_url]


def collect_sheet_media_urls(sheet: Sheet) -> list[str]:
    urls = _attachment_urls(sheet.attachments)
    for product in sheet.products:
        if product.product_image:
            urls.append(product.product_image)
        if product.promo_image:
            urls.append(product.promo_image)
        urls.extend(_attachment_urls(product.product_attachments))
    return urls


def collect_media_url_set(sheets: Iterable[Sheet]) -> set[str]:
    return {url for sheet in sheets for url in collect_sheet_media_urls(sheet)}


class OrphanBlobReclaimer:
    def __init__(self, store: BlobStore, allowlist: HostAllowlist):
        self.store = store
        self.allowlist = allowlist

    def orphaned_urls(self, before: Iterable[Sheet], after: Iterable[Sheet]) -> list[str]:
        """Managed URLs in `before` that `after` no longer references."""
        before_set = collect_media_url_set(before)
        after_set = collect_media_url_set(after)
        return sorted(url for url in before_set - after_set if self.allowlist.is_managed(url))

    async def delete_urls(self, urls: Iterable[str]) -> list[str]:
        """Delete each managed URL independently; returns the ones deleted."""
        deleted: list[str] = []
        for url in urls:
            if not self.allowlist.is_managed(url):
                continue
            try:
                await self.store.delete(url)
            except Exception as exc:
                logger.warning("blobs.reclaim.delete_failed", url=url, error=str(exc))
                continue
            deleted.append(url)
        return deleted

    async def reclaim(self, before: Iterable[Sheet], after: Iterable[Sheet]) -> list[str]:
        candidates = self.orphaned_urls(before, after)
        if not candidates:
            return []
        deleted = await self.delete_urls(candidates)
        logger.info(
            "blobs.reclaim.completed",
            candidates=len(candidates),
            deleted=len(deleted),
        )
        return deleted
