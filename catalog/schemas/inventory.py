from datetime import datetime

from pydantic import StrictInt, field_validator

from catalog.schemas.common import CamelModel
from catalog.schemas.product import ProductOut


class StockUpdate(CamelModel):
    # All optional so missing fields reach the service and get the
    # "Missing required fields" message instead of a schema error
    product_id: str | None = None
    quantity: StrictInt | None = None
    type: str | None = None
    reason: str | None = None


class StockChangeOut(CamelModel):
    product_id: str
    previous_stock: int
    new_stock: int
    change_amount: int


class StockHistoryOut(CamelModel):
    id: str
    product_id: str
    previous_stock: int
    new_stock: int
    change_amount: int
    type: str
    reason: str | None = None
    created_at: datetime

    @field_validator("id", mode="before")
    @classmethod
    def id_to_str(cls, v):
        return str(v)


class LowStockItemOut(CamelModel):
    product: ProductOut
    threshold: int
