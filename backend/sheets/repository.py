"""
Sheet Repository — transactional persistence of the entry-sheet aggregate.

Write path (upsert) runs in one transaction:
  1. find-or-create every manufacturer name (cache scoped to this call)
  2. upsert the sheet row (full replace of mutable header fields)
  3. resolve product ids: an id owned by another sheet, or repeated in
     this payload, is replaced with a freshly minted one
  4. upsert product rows, batching ingredient and attachment rows; an id
     claimed by another sheet since step 3 is re-minted
  5. delete products dropped from the payload (children cascade)
  6. delete-all-then-reinsert ingredients and product attachments
  7. delete-all-then-reinsert sheet attachments
Any failure rolls the whole transaction back.

Read path: one header query, then one query each for products,
ingredients and attachments of the whole sheet set; children are grouped
in memory, so the query count does not grow with the number of sheets.
"""

import uuid
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone

import structlog
from sqlalchemy import delete, insert, or_, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import (
    EntrySheet,
    FileAttachment,
    Manufacturer,
    ProductEntry,
    ProductIngredient,
    utcnow,
)
from sheets.schemas import Attachment, Product, Sheet

logger = structlog.get_logger()

SHEET_REPLACED_COLUMNS = (
    "creator_name",
    "creator_email",
    "creator_phone",
    "title",
    "notes",
    "status",
    "updated_at",
)

PRODUCT_IMMUTABLE_COLUMNS = frozenset({"product_id", "sheet_id", "created_at"})


class SheetPersistenceError(RuntimeError):
    """The aggregate could not be written; nothing was committed."""


@dataclass
class SheetPage:
    sheets: list[Sheet]
    has_more: bool = False


def _naive_utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _aware_utc(value: datetime | None) -> datetime | None:
    """Columns hold naive UTC; attach the offset on the way out."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _unique_names(names: Iterable[str]) -> list[str]:
    seen: dict[str, None] = {}
    for name in names:
        cleaned = (name or "").strip()
        if cleaned:
            seen.setdefault(cleaned, None)
    return list(seen)


def _attachment_row(attachment: Attachment, position: int, *, sheet_id=None, product_id=None) -> dict:
    return {
        "attachment_id": uuid.uuid4(),
        "sheet_id": sheet_id,
        "product_id": product_id,
        "position": position,
        "name": attachment.name,
        "size": attachment.size,
        "mime_type": attachment.type,
        "url": attachment.url,
        "created_at": utcnow(),
    }


def _product_row(product: Product, product_id: str, sheet_id: str, position: int, manufacturer_id, now) -> dict:
    return {
        "product_id": product_id,
        "sheet_id": sheet_id,
        "position": position,
        "shelf_name": product.shelf_name,
        "manufacturer_id": manufacturer_id,
        "jan_code": product.jan_code,
        "product_name": product.product_name,
        "product_image_url": product.product_image or None,
        "risk_classification": product.risk_classification or None,
        "catch_copy": product.catch_copy or None,
        "product_message": product.product_message or None,
        "product_notes": product.product_notes or None,
        "width": product.width,
        "height": product.height,
        "depth": product.depth,
        "facing_count": product.facing_count,
        "arrival_date": product.arrival_date,
        "has_promo_material": product.has_promo_material == "yes",
        "promo_sample": product.promo_sample or None,
        "special_fixture": product.special_fixture or None,
        "promo_width": product.promo_width,
        "promo_height": product.promo_height,
        "promo_depth": product.promo_depth,
        "promo_image_url": product.promo_image or None,
        "created_at": now,
        "updated_at": now,
    }


def _attachment_from_row(row) -> Attachment:
    return Attachment(name=row.name, size=row.size, type=row.mime_type, url=row.url)


def _product_from_row(row, ingredients: list[str], attachments: list[Attachment]) -> Product:
    return Product(
        id=row.product_id,
        shelf_name=row.shelf_name,
        manufacturer_name=row.manufacturer_name,
        jan_code=row.jan_code,
        product_name=row.product_name,
        product_image=row.product_image_url,
        risk_classification=row.risk_classification,
        specific_ingredients=ingredients,
        catch_copy=row.catch_copy,
        product_message=row.product_message,
        product_notes=row.product_notes,
        width=row.width or 0,
        height=row.height or 0,
        depth=row.depth or 0,
        facing_count=row.facing_count if row.facing_count is not None else 1,
        arrival_date=row.arrival_date,
        has_promo_material="yes" if row.has_promo_material else "no",
        promo_sample=row.promo_sample,
        special_fixture=row.special_fixture,
        promo_width=row.promo_width,
        promo_height=row.promo_height,
        promo_depth=row.promo_depth,
        promo_image=row.promo_image_url,
        product_attachments=attachments or None,
    )


def _sheet_from_row(row, products: list[Product], attachments: list[Attachment]) -> Sheet:
    return Sheet(
        id=row.sheet_id,
        creator_id=row.creator_id,
        creator_name=row.creator_name,
        manufacturer_name=row.manufacturer_name,
        email=row.creator_email,
        phone_number=row.creator_phone,
        title=row.title,
        notes=row.notes or None,
        status=row.status,
        created_at=_aware_utc(row.created_at),
        updated_at=_aware_utc(row.updated_at),
        products=products,
        attachments=attachments or None,
    )


class SheetRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    def _insert(self, model):
        """Dialect insert that supports ON CONFLICT."""
        if self.db.get_bind().dialect.name == "postgresql":
            return pg_insert(model)
        return sqlite_insert(model)

    # ── Read path ───────────────────────────────────────────────────────

    def _header_query(self):
        return (
            select(EntrySheet.__table__, Manufacturer.name.label("manufacturer_name"))
            .join(Manufacturer, EntrySheet.manufacturer_id == Manufacturer.manufacturer_id)
            .order_by(EntrySheet.created_at.desc(), EntrySheet.sheet_id)
        )

    async def _load(self, query, limit: int | None = None, offset: int = 0) -> SheetPage:
        if limit is not None:
            # One extra row tells the caller whether another page exists
            query = query.limit(limit + 1).offset(offset)
        elif offset:
            query = query.offset(offset)
        rows = (await self.db.execute(query)).all()

        has_more = limit is not None and len(rows) > limit
        if has_more:
            rows = rows[:limit]
        return SheetPage(sheets=await self._assemble(rows), has_more=has_more)

    async def _assemble(self, header_rows) -> list[Sheet]:
        if not header_rows:
            return []
        sheet_ids = [row.sheet_id for row in header_rows]
        sheet_product_ids = select(ProductEntry.product_id).where(ProductEntry.sheet_id.in_(sheet_ids))

        product_rows = (
            await self.db.execute(
                select(ProductEntry.__table__, Manufacturer.name.label("manufacturer_name"))
                .join(Manufacturer, ProductEntry.manufacturer_id == Manufacturer.manufacturer_id)
                .where(ProductEntry.sheet_id.in_(sheet_ids))
                .order_by(ProductEntry.sheet_id, ProductEntry.position)
            )
        ).all()
        ingredient_rows = (
            await self.db.execute(
                select(ProductIngredient.product_id, ProductIngredient.ingredient_name)
                .where(ProductIngredient.product_id.in_(sheet_product_ids))
                .order_by(ProductIngredient.product_id, ProductIngredient.ingredient_name)
            )
        ).all()
        attachment_rows = (
            await self.db.execute(
                select(FileAttachment.__table__)
                .where(
                    or_(
                        FileAttachment.sheet_id.in_(sheet_ids),
                        FileAttachment.product_id.in_(sheet_product_ids),
                    )
                )
                .order_by(FileAttachment.position)
            )
        ).all()

        ingredients_by_product: dict[str, list[str]] = defaultdict(list)
        for row in ingredient_rows:
            ingredients_by_product[row.product_id].append(row.ingredient_name)

        sheet_attachments: dict[str, list[Attachment]] = defaultdict(list)
        product_attachments: dict[str, list[Attachment]] = defaultdict(list)
        for row in attachment_rows:
            if row.product_id is not None:
                product_attachments[row.product_id].append(_attachment_from_row(row))
            else:
                sheet_attachments[row.sheet_id].append(_attachment_from_row(row))

        products_by_sheet: dict[str, list[Product]] = defaultdict(list)
        for row in product_rows:
            products_by_sheet[row.sheet_id].append(
                _product_from_row(
                    row,
                    ingredients_by_product.get(row.product_id, []),
                    product_attachments.get(row.product_id, []),
                )
            )

        return [
            _sheet_from_row(
                row,
                products_by_sheet.get(row.sheet_id, []),
                sheet_attachments.get(row.sheet_id, []),
            )
            for row in header_rows
        ]

    async def find_by_id(self, sheet_id: str) -> Sheet | None:
        page = await self._load(self._header_query().where(EntrySheet.sheet_id == sheet_id))
        return page.sheets[0] if page.sheets else None

    async def find_all(self, limit: int | None = None, offset: int = 0) -> SheetPage:
        return await self._load(self._header_query(), limit=limit, offset=offset)

    async def find_by_manufacturer(
        self, manufacturer_name: str, limit: int | None = None, offset: int = 0
    ) -> SheetPage:
        query = self._header_query().where(Manufacturer.name == manufacturer_name.strip())
        return await self._load(query, limit=limit, offset=offset)

    async def find_created_before(self, cutoff: datetime) -> list[Sheet]:
        query = self._header_query().where(EntrySheet.created_at < _naive_utc(cutoff))
        return (await self._load(query)).sheets

    # ── Write path ──────────────────────────────────────────────────────

    async def _ensure_manufacturer(self, name: str, cache: dict[str, uuid.UUID]) -> uuid.UUID:
        """Find-or-create by trimmed name; concurrent creators converge on one row."""
        key = (name or "").strip()
        if not key:
            raise ValueError("Manufacturer name is required")
        if key in cache:
            return cache[key]

        stmt = self._insert(Manufacturer).values(manufacturer_id=uuid.uuid4(), name=key, created_at=utcnow())
        stmt = stmt.on_conflict_do_update(
            index_elements=["name"],
            set_={"name": stmt.excluded.name},
        ).returning(Manufacturer.manufacturer_id)
        manufacturer_id = (await self.db.execute(stmt)).scalar_one()
        cache[key] = manufacturer_id
        return manufacturer_id

    async def _upsert_sheet_row(self, sheet: Sheet, manufacturer_id: uuid.UUID, now: datetime) -> None:
        stmt = self._insert(EntrySheet).values(
            sheet_id=sheet.id,
            creator_id=sheet.creator_id,
            creator_name=sheet.creator_name,
            creator_email=sheet.email,
            creator_phone=sheet.phone_number,
            manufacturer_id=manufacturer_id,
            title=sheet.title,
            notes=sheet.notes or None,
            status=sheet.status,
            created_at=_naive_utc(sheet.created_at) or now,
            updated_at=_naive_utc(sheet.updated_at) or now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["sheet_id"],
            set_={column: stmt.excluded[column] for column in SHEET_REPLACED_COLUMNS},
        )
        await self.db.execute(stmt)

    async def _resolve_product_ids(self, sheet: Sheet) -> tuple[set[str], list[str]]:
        """Return (ids this sheet owned before, final id per incoming product)."""
        existing_ids = set(
            (
                await self.db.execute(select(ProductEntry.product_id).where(ProductEntry.sheet_id == sheet.id))
            ).scalars()
        )

        incoming_ids = {p.id for p in sheet.products if p.id}
        owners: dict[str, str] = {}
        if incoming_ids:
            rows = await self.db.execute(
                select(ProductEntry.product_id, ProductEntry.sheet_id).where(
                    ProductEntry.product_id.in_(incoming_ids)
                )
            )
            owners = {row.product_id: row.sheet_id for row in rows}

        final_ids: list[str] = []
        used: set[str] = set()
        for product in sheet.products:
            product_id = product.id
            owner = owners.get(product_id)
            if not product_id or product_id in used or (owner is not None and owner != sheet.id):
                minted = str(uuid.uuid4())
                if product_id:
                    logger.info(
                        "sheets.upsert.product_id_reassigned",
                        sheet_id=sheet.id,
                        requested_id=product_id,
                        assigned_id=minted,
                    )
                product_id = minted
            used.add(product_id)
            final_ids.append(product_id)
        return existing_ids, final_ids

    async def _upsert_product_row(self, row: dict, sheet_id: str) -> str:
        """Upsert one product row; returns the id it was stored under."""
        stmt = self._insert(ProductEntry).values(**row)
        stmt = stmt.on_conflict_do_update(
            index_elements=["product_id"],
            set_={k: stmt.excluded[k] for k in row if k not in PRODUCT_IMMUTABLE_COLUMNS},
            where=ProductEntry.sheet_id == sheet_id,
        ).returning(ProductEntry.product_id)
        if (await self.db.execute(stmt)).scalar_one_or_none() is not None:
            return row["product_id"]

        # Another sheet claimed the id after ownership was resolved
        minted = str(uuid.uuid4())
        logger.info(
            "sheets.upsert.product_id_reassigned",
            sheet_id=sheet_id,
            requested_id=row["product_id"],
            assigned_id=minted,
        )
        await self.db.execute(insert(ProductEntry).values(**{**row, "product_id": minted}))
        return minted

    async def _write(self, sheet: Sheet) -> None:
        now = utcnow()
        manufacturer_ids: dict[str, uuid.UUID] = {}

        sheet_manufacturer_id = await self._ensure_manufacturer(sheet.manufacturer_name, manufacturer_ids)
        await self._upsert_sheet_row(sheet, sheet_manufacturer_id, now)

        existing_ids, resolved_ids = await self._resolve_product_ids(sheet)

        final_ids: list[str] = []
        ingredient_rows: list[dict] = []
        product_attachment_rows: list[dict] = []
        for position, (product, resolved_id) in enumerate(zip(sheet.products, resolved_ids)):
            manufacturer_id = await self._ensure_manufacturer(
                product.manufacturer_name or sheet.manufacturer_name, manufacturer_ids
            )
            row = _product_row(product, resolved_id, sheet.id, position, manufacturer_id, now)
            product_id = await self._upsert_product_row(row, sheet.id)
            final_ids.append(product_id)

            ingredient_rows.extend(
                {"ingredient_id": uuid.uuid4(), "product_id": product_id, "ingredient_name": name}
                for name in _unique_names(product.specific_ingredients)
            )
            product_attachment_rows.extend(
                _attachment_row(attachment, index, product_id=product_id)
                for index, attachment in enumerate(product.product_attachments or [])
            )

        removed_ids = existing_ids - set(final_ids)
        if removed_ids:
            await self.db.execute(delete(ProductEntry).where(ProductEntry.product_id.in_(removed_ids)))

        if final_ids:
            await self.db.execute(delete(ProductIngredient).where(ProductIngredient.product_id.in_(final_ids)))
            await self.db.execute(delete(FileAttachment).where(FileAttachment.product_id.in_(final_ids)))
        if ingredient_rows:
            await self.db.execute(insert(ProductIngredient), ingredient_rows)
        if product_attachment_rows:
            await self.db.execute(insert(FileAttachment), product_attachment_rows)

        await self.db.execute(delete(FileAttachment).where(FileAttachment.sheet_id == sheet.id))
        sheet_attachment_rows = [
            _attachment_row(attachment, index, sheet_id=sheet.id)
            for index, attachment in enumerate(sheet.attachments or [])
        ]
        if sheet_attachment_rows:
            await self.db.execute(insert(FileAttachment), sheet_attachment_rows)

        logger.info(
            "sheets.upsert.written",
            sheet_id=sheet.id,
            products=len(final_ids),
            removed_products=len(removed_ids),
            ingredients=len(ingredient_rows),
            attachments=len(product_attachment_rows) + len(sheet_attachment_rows),
        )

    async def _commit_or_rollback(self, event: str, **context) -> None:
        try:
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.error(event, error=str(exc), **context)
            raise SheetPersistenceError("Database commit failed") from exc

    async def upsert(self, sheet: Sheet) -> Sheet:
        """Persist `sheet` as the full authoritative state; returns the stored aggregate."""
        try:
            await self._write(sheet)
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.error("sheets.upsert.failed", sheet_id=sheet.id, error=str(exc))
            raise SheetPersistenceError(f"Failed to save sheet {sheet.id}") from exc
        except Exception:
            await self.db.rollback()
            raise
        await self._commit_or_rollback("sheets.upsert.failed", sheet_id=sheet.id)

        saved = await self.find_by_id(sheet.id)
        if saved is None:
            raise SheetPersistenceError(f"Failed to save sheet {sheet.id}")
        return saved

    async def delete_by_ids(self, sheet_ids: list[str]) -> int:
        """Delete sheets; products, ingredients and attachments cascade."""
        if not sheet_ids:
            return 0
        try:
            result = await self.db.execute(delete(EntrySheet).where(EntrySheet.sheet_id.in_(sheet_ids)))
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.error("sheets.delete.failed", sheet_ids=sheet_ids, error=str(exc))
            raise SheetPersistenceError("Failed to delete sheets") from exc
        await self._commit_or_rollback("sheets.delete.failed", sheet_ids=sheet_ids)
        return result.rowcount or 0

    async def delete_by_id(self, sheet_id: str) -> bool:
        return await self.delete_by_ids([sheet_id]) > 0
