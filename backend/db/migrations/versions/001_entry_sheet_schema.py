"""
Initial schema - entry sheet aggregate (5 tables)

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import UUID

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # 1. Manufacturers
    op.create_table(
        "manufacturers",
        sa.Column(
            "manufacturer_id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")
        ),
        sa.Column("name", sa.String(200), nullable=False, unique=True),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )

    # 2. Entry sheets
    op.create_table(
        "entry_sheets",
        sa.Column("sheet_id", sa.String(64), primary_key=True),
        sa.Column("creator_id", sa.String(64), nullable=False),
        sa.Column("creator_name", sa.String(200), nullable=False, server_default=""),
        sa.Column("creator_email", sa.String(255), nullable=False, server_default=""),
        sa.Column("creator_phone", sa.String(50), nullable=False, server_default=""),
        sa.Column(
            "manufacturer_id",
            UUID(as_uuid=True),
            sa.ForeignKey("manufacturers.manufacturer_id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("title", sa.String(500), nullable=False, server_default=""),
        sa.Column("notes", sa.Text),
        sa.Column("status", sa.String(20), nullable=False, server_default="draft"),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("status IN ('draft', 'completed')", name="ck_sheet_status"),
    )
    op.create_index("ix_sheets_manufacturer", "entry_sheets", ["manufacturer_id"])
    op.create_index("ix_sheets_creator", "entry_sheets", ["creator_id"])
    op.create_index("ix_sheets_created_at", "entry_sheets", ["created_at"])

    # 3. Product entries
    op.create_table(
        "product_entries",
        sa.Column("product_id", sa.String(64), primary_key=True),
        sa.Column(
            "sheet_id",
            sa.String(64),
            sa.ForeignKey("entry_sheets.sheet_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer, nullable=False, server_default="0"),
        sa.Column("shelf_name", sa.String(200), nullable=False, server_default=""),
        sa.Column(
            "manufacturer_id",
            UUID(as_uuid=True),
            sa.ForeignKey("manufacturers.manufacturer_id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("jan_code", sa.String(50), nullable=False, server_default=""),
        sa.Column("product_name", sa.String(500), nullable=False, server_default=""),
        sa.Column("product_image_url", sa.Text),
        sa.Column("risk_classification", sa.String(100)),
        sa.Column("catch_copy", sa.Text),
        sa.Column("product_message", sa.Text),
        sa.Column("product_notes", sa.Text),
        sa.Column("width", sa.Float),
        sa.Column("height", sa.Float),
        sa.Column("depth", sa.Float),
        sa.Column("facing_count", sa.Integer),
        sa.Column("arrival_date", sa.Date),
        sa.Column("has_promo_material", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("promo_sample", sa.Text),
        sa.Column("special_fixture", sa.Text),
        sa.Column("promo_width", sa.Float),
        sa.Column("promo_height", sa.Float),
        sa.Column("promo_depth", sa.Float),
        sa.Column("promo_image_url", sa.Text),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_products_sheet", "product_entries", ["sheet_id", "position"])
    op.create_index("ix_products_jan_code", "product_entries", ["jan_code"])
    op.create_index("ix_products_manufacturer", "product_entries", ["manufacturer_id"])

    # 4. Product ingredients
    op.create_table(
        "product_ingredients",
        sa.Column(
            "ingredient_id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")
        ),
        sa.Column(
            "product_id",
            sa.String(64),
            sa.ForeignKey("product_entries.product_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("ingredient_name", sa.String(200), nullable=False),
        sa.UniqueConstraint("product_id", "ingredient_name", name="uq_product_ingredient"),
    )
    op.create_index("ix_product_ingredients_product", "product_ingredients", ["product_id"])

    # 5. Attachments (owned by exactly one of sheet / product)
    op.create_table(
        "attachments",
        sa.Column(
            "attachment_id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")
        ),
        sa.Column("sheet_id", sa.String(64), sa.ForeignKey("entry_sheets.sheet_id", ondelete="CASCADE")),
        sa.Column(
            "product_id", sa.String(64), sa.ForeignKey("product_entries.product_id", ondelete="CASCADE")
        ),
        sa.Column("position", sa.Integer, nullable=False, server_default="0"),
        sa.Column("name", sa.String(500), nullable=False),
        sa.Column("size", sa.BigInteger, nullable=False),
        sa.Column("mime_type", sa.String(100), nullable=False),
        sa.Column("url", sa.Text, nullable=False),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "(sheet_id IS NOT NULL AND product_id IS NULL) OR (sheet_id IS NULL AND product_id IS NOT NULL)",
            name="ck_attachment_single_owner",
        ),
    )
    op.create_index("ix_attachments_sheet", "attachments", ["sheet_id"])
    op.create_index("ix_attachments_product", "attachments", ["product_id"])


def downgrade() -> None:
    tables = [
        "attachments",
        "product_ingredients",
        "product_entries",
        "entry_sheets",
        "manufacturers",
    ]
    for table in tables:
        op.drop_table(table)
