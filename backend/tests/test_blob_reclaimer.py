"""
Tests for orphaned-blob reclamation after saves and deletes.
"""

import pytest
from conftest import MANAGED_BLOB_HOST, FakeBlobStore

from core.config import Settings
from media.reclaimer import OrphanBlobReclaimer, collect_sheet_media_urls
from media.sources import HostAllowlist
from sheets.schemas import Attachment, Product, Sheet


def _url(name: str) -> str:
    return f"https://{MANAGED_BLOB_HOST}/pharmapop/sheets/s1/{name}"


def _reclaimer(store: FakeBlobStore) -> OrphanBlobReclaimer:
    settings = Settings(media_allowed_hosts="cdn.partner.example")
    return OrphanBlobReclaimer(store, HostAllowlist.from_settings(settings))


def _sheet(product_image=None, promo_image=None, product_files=(), sheet_files=()) -> Sheet:
    return Sheet(
        id="s1",
        products=[
            Product(
                id="p1",
                product_image=product_image,
                promo_image=promo_image,
                product_attachments=[Attachment(name="f", size=1, type="application/pdf", url=u) for u in product_files]
                or None,
            )
        ],
        attachments=[Attachment(name="f", size=1, type="application/pdf", url=u) for u in sheet_files] or None,
    )


def test_collect_sheet_media_urls_covers_every_field():
    sheet = _sheet(_url("a"), _url("b"), [_url("c")], [_url("d")])
    assert sorted(collect_sheet_media_urls(sheet)) == [_url("a"), _url("b"), _url("c"), _url("d")]


@pytest.mark.asyncio
class TestOrphanBlobReclaimer:
    async def test_deletes_exactly_the_dropped_urls(self):
        store = FakeBlobStore()
        before = _sheet(_url("a"), _url("b"), [_url("c")], [_url("d")])
        after = _sheet(_url("a"), _url("b2"), [], [_url("d")])

        deleted = await _reclaimer(store).reclaim([before], [after])

        assert sorted(deleted) == [_url("b"), _url("c")]
        assert sorted(store.deleted) == [_url("b"), _url("c")]

    async def test_nothing_dropped_nothing_deleted(self):
        store = FakeBlobStore()
        sheet = _sheet(_url("a"))
        assert await _reclaimer(store).reclaim([sheet], [sheet]) == []
        assert store.deleted == []

    async def test_url_moved_between_fields_is_kept(self):
        store = FakeBlobStore()
        before = _sheet(product_image=_url("a"))
        after = _sheet(sheet_files=[_url("a")])
        assert await _reclaimer(store).reclaim([before], [after]) == []

    async def test_off_domain_urls_are_never_deleted(self):
        store = FakeBlobStore()
        before = _sheet("https://cdn.partner.example/logo.png", "https://elsewhere.example/x.png")
        assert await _reclaimer(store).reclaim([before], []) == []
        assert store.deleted == []

    async def test_whole_sheet_reclaimed_on_delete(self):
        store = FakeBlobStore()
        before = _sheet(_url("a"), None, [_url("c")], [_url("d")])
        deleted = await _reclaimer(store).reclaim([before], [])
        assert sorted(deleted) == [_url("a"), _url("c"), _url("d")]

    async def test_delete_failure_does_not_stop_the_rest(self):
        store = FakeBlobStore()
        store.fail_delete_urls.add(_url("b"))
        before = _sheet(_url("a"), _url("b"), [_url("c")])

        deleted = await _reclaimer(store).reclaim([before], [])

        assert sorted(deleted) == [_url("a"), _url("c")]

    async def test_delete_urls_skips_unmanaged(self):
        store = FakeBlobStore()
        deleted = await _reclaimer(store).delete_urls([_url("a"), "https://cdn.partner.example/x.png"])
        assert deleted == [_url("a")]
