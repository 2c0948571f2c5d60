from datetime import datetime

from catalog.schemas.common import CamelModel


class CategoryCreate(CamelModel):
    name: str | None = None
    description: str | None = None


class CategoryUpdate(CamelModel):
    name: str | None = None
    description: str | None = None


class CategoryOut(CamelModel):
    id: str
    name: str
    description: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
