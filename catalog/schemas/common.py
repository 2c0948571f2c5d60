from typing import Generic, TypeVar

from pydantic import BaseModel
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class CamelModel(BaseModel):
    """camelCase on the wire, snake_case in Python. Input accepts either."""

    model_config = {"alias_generator": to_camel, "populate_by_name": True, "from_attributes": True}


class ApiResponse(BaseModel, Generic[T]):
    success: bool = True
    data: T


def ok(data) -> dict:
    return {"success": True, "data": data}
