"""
Entry Sheet Schemas — the Sheet → Product → Attachment aggregate.

Wire format is camelCase (what the entry form sends); Python code uses the
snake_case field names. Attachments are nested under exactly one owner
(the sheet or one product), so a doubly- or un-owned attachment cannot be
expressed.
"""

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel

_CAMEL_CONFIG = {
    "alias_generator": to_camel,
    "populate_by_name": True,
}


class Attachment(BaseModel):
    name: str = ""
    size: int = Field(0, ge=0)
    type: str = ""
    url: str = ""
    data_url: str | None = None

    model_config = _CAMEL_CONFIG


class Product(BaseModel):
    id: str = Field("", max_length=64)
    shelf_name: str = ""
    manufacturer_name: str = ""
    jan_code: str = ""
    product_name: str = ""
    product_image: str | None = None
    risk_classification: str | None = None
    specific_ingredients: list[str] = Field(default_factory=list)
    catch_copy: str | None = None
    product_message: str | None = None
    product_notes: str | None = None
    width: float = 0
    height: float = 0
    depth: float = 0
    facing_count: int = 1
    arrival_date: date | None = None
    has_promo_material: Literal["yes", "no"] = "no"
    promo_sample: str | None = None
    special_fixture: str | None = None
    promo_width: float | None = None
    promo_height: float | None = None
    promo_depth: float | None = None
    promo_image: str | None = None
    product_attachments: list[Attachment] | None = None

    model_config = _CAMEL_CONFIG

    @field_validator("arrival_date", mode="before")
    @classmethod
    def _blank_date_is_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("width", "height", "depth", mode="before")
    @classmethod
    def _missing_dimension_is_zero(cls, value):
        return 0 if value is None or value == "" else value


class Sheet(BaseModel):
    id: str = Field("", max_length=64)
    creator_id: str = ""
    creator_name: str = ""
    manufacturer_name: str = ""
    email: str = ""
    phone_number: str = ""
    title: str = ""
    notes: str | None = None
    status: Literal["draft", "completed"] = "draft"
    created_at: datetime | None = None
    updated_at: datetime | None = None
    products: list[Product] = Field(default_factory=list)
    attachments: list[Attachment] | None = None

    model_config = _CAMEL_CONFIG

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_status(cls, value):
        # Anything other than an explicit completion is saved as a draft
        return "completed" if value == "completed" else "draft"


class SaveSheetRequest(BaseModel):
    sheet: Sheet | None = None


class SheetListResponse(BaseModel):
    items: list[Sheet]
    has_more: bool

    model_config = _CAMEL_CONFIG
