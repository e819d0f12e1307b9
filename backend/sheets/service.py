"""
Sheet Service — server-authoritative save and delete of entry sheets.

Ordering of a save:
  1. read the persisted sheet (ownership, created_at, media snapshot)
  2. build the authoritative sheet from the payload + persisted owner
  3. normalize media (uploads fully joined before any write)
  4. upsert in one transaction
Failures after step 3 reclaim the uploads this save made. The reclaim of
blobs the *successful* save dropped is left to the caller, so it can run
after the response is sent.
"""

from dataclasses import dataclass

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import Settings
from db.models import utcnow
from media.blob_store import BlobStore
from media.normalizer import MediaNormalizer
from media.reclaimer import OrphanBlobReclaimer
from media.sources import HostAllowlist
from media.validation import MediaKind, MediaPolicy
from sheets.repository import SheetRepository
from sheets.schemas import Sheet

logger = structlog.get_logger()

ADMIN_ROLE = "ADMIN"


class SheetSaveRejected(ValueError):
    """The payload cannot be saved as submitted."""


class SheetAccessDenied(PermissionError):
    pass


class SheetNotFound(LookupError):
    pass


@dataclass
class SaveResult:
    sheet: Sheet
    previous: Sheet | None


def is_admin(user: dict) -> bool:
    return user.get("role") == ADMIN_ROLE


def can_access_manufacturer(user: dict, manufacturer_name: str) -> bool:
    return is_admin(user) or user.get("manufacturer_name") == manufacturer_name


def _text(value) -> str:
    return str(value or "").strip()


def _first_text(*values) -> str:
    for value in values:
        text = _text(value)
        if text:
            return text
    return ""


def find_too_long_field(sheet: Sheet, max_length: int) -> str | None:
    """Name of the first free-text field longer than `max_length`, if any."""
    header_fields = {
        "title": sheet.title,
        "notes": sheet.notes,
        "email": sheet.email,
        "phoneNumber": sheet.phone_number,
    }
    for name, value in header_fields.items():
        if value and len(value) > max_length:
            return name

    product_fields = (
        ("shelfName", "shelf_name"),
        ("productName", "product_name"),
        ("janCode", "jan_code"),
        ("catchCopy", "catch_copy"),
        ("productMessage", "product_message"),
        ("productNotes", "product_notes"),
        ("promoSample", "promo_sample"),
        ("specialFixture", "special_fixture"),
    )
    for index, product in enumerate(sheet.products):
        for label, attr in product_fields:
            value = getattr(product, attr)
            if value and len(value) > max_length:
                return f"products[{index}].{label}"
    return None


class SheetService:
    def __init__(self, db: AsyncSession, store: BlobStore, settings: Settings):
        self.settings = settings
        self.repository = SheetRepository(db)
        self.store = store
        self.policy = MediaPolicy.from_settings(settings)
        self.allowlist = HostAllowlist.from_settings(settings)
        self.reclaimer = OrphanBlobReclaimer(store, self.allowlist)

    def sheet_path_prefix(self, sheet_id: str) -> str:
        return f"{self.settings.blob_path_prefix}/sheets/{sheet_id}"

    def build_authoritative_sheet(
        self, sheet_id: str, payload: Sheet, user: dict, existing: Sheet | None
    ) -> Sheet:
        """
        Owner fields come from the persisted sheet (or the current user for a
        new one); every product is bound to the owner manufacturer.
        """
        owner_manufacturer = existing.manufacturer_name if existing else _text(user.get("manufacturer_name"))
        owner_creator_id = existing.creator_id if existing else _text(user.get("sub"))

        products = [
            product.model_copy(
                update={
                    "manufacturer_name": owner_manufacturer,
                    "jan_code": _text(product.jan_code),
                    "product_name": _text(product.product_name),
                    "shelf_name": _text(product.shelf_name),
                }
            )
            for product in payload.products
        ]
        return payload.model_copy(
            update={
                "id": sheet_id,
                "manufacturer_name": owner_manufacturer,
                "creator_id": owner_creator_id,
                "creator_name": _first_text(
                    payload.creator_name, existing and existing.creator_name, user.get("display_name")
                ),
                "email": _first_text(payload.email, existing and existing.email, user.get("email")),
                "phone_number": _first_text(
                    payload.phone_number, existing and existing.phone_number, user.get("phone_number")
                ),
                "title": _text(payload.title),
                "notes": _text(payload.notes),
                "created_at": (existing and existing.created_at) or payload.created_at or utcnow(),
                "updated_at": utcnow(),
                "products": products,
                "attachments": list(payload.attachments or []),
            }
        )

    def _check_saveable(self, sheet: Sheet, user: dict) -> None:
        if not sheet.products:
            raise SheetSaveRejected("At least one product is required")
        too_long = find_too_long_field(sheet, self.settings.sheet_max_text_length)
        if too_long:
            raise SheetSaveRejected(
                f"{too_long} must be at most {self.settings.sheet_max_text_length} characters"
            )
        if not sheet.manufacturer_name:
            raise SheetSaveRejected("Manufacturer is required")
        if not can_access_manufacturer(user, sheet.manufacturer_name):
            raise SheetAccessDenied("You can only save sheets in your manufacturer")

    async def save(self, sheet_id: str, payload: Sheet, user: dict) -> SaveResult:
        existing = await self.repository.find_by_id(sheet_id)
        # Close the read transaction; uploads must not hold it open
        await self.repository.db.commit()

        sheet = self.build_authoritative_sheet(sheet_id, payload, user, existing)
        self._check_saveable(sheet, user)

        normalizer = MediaNormalizer(self.store, self.policy, self.allowlist)
        try:
            normalized = await normalizer.normalize(sheet, self.sheet_path_prefix(sheet_id))
        except Exception:
            if normalizer.uploaded_urls:
                logger.info(
                    "sheets.save.normalize_failed",
                    sheet_id=sheet_id,
                    uploaded=len(normalizer.uploaded_urls),
                )
                await self.reclaimer.delete_urls(normalizer.uploaded_urls)
            raise

        previous = [existing] if existing else []
        try:
            saved = await self.repository.upsert(normalized)
        except Exception:
            # Drop fresh uploads the previous version does not reference
            await self.reclaimer.reclaim([normalized], previous)
            raise

        logger.info(
            "sheets.save.completed",
            sheet_id=sheet_id,
            created=existing is None,
            status=saved.status,
            products=len(saved.products),
        )
        return SaveResult(sheet=saved, previous=existing)

    async def delete(self, sheet_id: str, user: dict) -> Sheet:
        """Delete a sheet; returns it so the caller can reclaim its blobs."""
        target = await self.repository.find_by_id(sheet_id)
        if target is None:
            raise SheetNotFound(sheet_id)
        if not can_access_manufacturer(user, target.manufacturer_name):
            raise SheetAccessDenied("You cannot delete this sheet")
        await self.repository.delete_by_id(sheet_id)
        logger.info("sheets.delete.completed", sheet_id=sheet_id)
        return target

    async def upload_data_url(self, data_url: str, file_name: str, kind: MediaKind, user: dict) -> str:
        """Store a single inline payload outside of any sheet."""
        normalizer = MediaNormalizer(self.store, self.policy, self.allowlist)
        prefix = f"{self.settings.blob_path_prefix}/upload/{_text(user.get('sub'))}/{kind.value}"
        return await normalizer.upload_data_url(data_url, file_name, prefix, kind)
