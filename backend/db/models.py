"""
PharmaPOP Entry Database Models

5 tables for the entry-sheet aggregate.

Tables:
  1. manufacturers        - Normalized manufacturer names (find-or-create)
  2. entry_sheets         - One submission; creator stored as snapshot columns
  3. product_entries      - Ordered products of a sheet
  4. product_ingredients  - Specific-ingredient set per product
  5. attachments          - Files bound to exactly one of {sheet, product}

Child rows cascade at the database level so a deleted sheet or product
never leaves ingredients or attachments behind.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
    types,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID

from db.session import Base


class GUID(TypeDecorator):
    """Platform-independent UUID type.

    Uses PostgreSQL UUID when available, stores as CHAR(36) on SQLite.
    """

    impl = types.String(36)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PG_UUID(as_uuid=True))
        return dialect.type_descriptor(types.String(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if dialect.name == "postgresql":
            return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
        return str(value) if isinstance(value, uuid.UUID) else value

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(str(value))


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns below."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


SHEET_STATUSES = ("draft", "completed")

# ─── 1. Manufacturers ───────────────────────────────────────────────────────


class Manufacturer(Base):
    __tablename__ = "manufacturers"

    manufacturer_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    name = Column(String(200), nullable=False, unique=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)


# ─── 2. Entry Sheets ────────────────────────────────────────────────────────


class EntrySheet(Base):
    __tablename__ = "entry_sheets"

    sheet_id = Column(String(64), primary_key=True)
    # Creator snapshot: no FK so a removed user never breaks sheet history
    creator_id = Column(String(64), nullable=False)
    creator_name = Column(String(200), nullable=False, default="")
    creator_email = Column(String(255), nullable=False, default="")
    creator_phone = Column(String(50), nullable=False, default="")
    manufacturer_id = Column(
        GUID(), ForeignKey("manufacturers.manufacturer_id", ondelete="RESTRICT"), nullable=False
    )
    title = Column(String(500), nullable=False, default="")
    notes = Column(Text)
    status = Column(String(20), nullable=False, default="draft")
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_sheets_manufacturer", "manufacturer_id"),
        Index("ix_sheets_creator", "creator_id"),
        Index("ix_sheets_created_at", "created_at"),
        CheckConstraint("status IN ('draft', 'completed')", name="ck_sheet_status"),
    )


# ─── 3. Product Entries ─────────────────────────────────────────────────────


class ProductEntry(Base):
    __tablename__ = "product_entries"

    product_id = Column(String(64), primary_key=True)
    sheet_id = Column(String(64), ForeignKey("entry_sheets.sheet_id", ondelete="CASCADE"), nullable=False)
    position = Column(Integer, nullable=False, default=0)
    shelf_name = Column(String(200), nullable=False, default="")
    manufacturer_id = Column(
        GUID(), ForeignKey("manufacturers.manufacturer_id", ondelete="RESTRICT"), nullable=False
    )
    jan_code = Column(String(50), nullable=False, default="")
    product_name = Column(String(500), nullable=False, default="")
    product_image_url = Column(Text)
    risk_classification = Column(String(100))
    catch_copy = Column(Text)
    product_message = Column(Text)
    product_notes = Column(Text)
    width = Column(Float)
    height = Column(Float)
    depth = Column(Float)
    facing_count = Column(Integer)
    arrival_date = Column(Date)
    has_promo_material = Column(Boolean, nullable=False, default=False)
    promo_sample = Column(Text)
    special_fixture = Column(Text)
    promo_width = Column(Float)
    promo_height = Column(Float)
    promo_depth = Column(Float)
    promo_image_url = Column(Text)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_products_sheet", "sheet_id", "position"),
        Index("ix_products_jan_code", "jan_code"),
        Index("ix_products_manufacturer", "manufacturer_id"),
    )


# ─── 4. Product Ingredients ─────────────────────────────────────────────────


class ProductIngredient(Base):
    __tablename__ = "product_ingredients"

    ingredient_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    product_id = Column(
        String(64), ForeignKey("product_entries.product_id", ondelete="CASCADE"), nullable=False
    )
    ingredient_name = Column(String(200), nullable=False)

    __table_args__ = (
        UniqueConstraint("product_id", "ingredient_name", name="uq_product_ingredient"),
        Index("ix_product_ingredients_product", "product_id"),
    )


# ─── 5. Attachments ─────────────────────────────────────────────────────────


class FileAttachment(Base):
    __tablename__ = "attachments"

    attachment_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    sheet_id = Column(String(64), ForeignKey("entry_sheets.sheet_id", ondelete="CASCADE"))
    product_id = Column(String(64), ForeignKey("product_entries.product_id", ondelete="CASCADE"))
    position = Column(Integer, nullable=False, default=0)
    name = Column(String(500), nullable=False)
    size = Column(BigInteger, nullable=False)
    mime_type = Column(String(100), nullable=False)
    url = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_attachments_sheet", "sheet_id"),
        Index("ix_attachments_product", "product_id"),
        CheckConstraint(
            "(sheet_id IS NOT NULL AND product_id IS NULL) OR (sheet_id IS NULL AND product_id IS NOT NULL)",
            name="ck_attachment_single_owner",
        ),
    )
