from datetime import datetime
from typing import TYPE_CHECKING

from pydantic import field_validator

from catalog.schemas.common import CamelModel

if TYPE_CHECKING:
    from catalog.models.product import Product
    from catalog.services.category_service import CategoryRef


class ProductCreate(CamelModel):
    name: str
    description: str
    price: float
    stock: int = 0
    category_id: str | None = None
    image_url: str | None = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        return v.strip()


class ProductUpdate(CamelModel):
    # No stock field: stock only changes through the inventory endpoint
    name: str | None = None
    description: str | None = None
    price: float | None = None
    category_id: str | None = None
    image_url: str | None = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str | None) -> str | None:
        return v.strip() if v is not None else v


class ProductOut(CamelModel):
    id: str
    name: str
    description: str
    price: float
    stock: int
    category_id: str | None = None
    category_name: str = "Uncategorized"
    image_url: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def build(cls, product: "Product", ref: "CategoryRef") -> "ProductOut":
        out = cls.model_validate(product)
        out.category_id = ref.category_id
        out.category_name = ref.display_name
        return out
