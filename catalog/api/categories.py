from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from catalog.api.auth import get_current_user
from catalog.database import get_db
from catalog.exceptions import NotFoundError
from catalog.schemas.category import CategoryCreate, CategoryOut, CategoryUpdate
from catalog.schemas.common import ApiResponse, ok
from catalog.services import category_service

router = APIRouter(prefix="/categories", tags=["Categories"])

authenticated = [Depends(get_current_user)]


@router.get("", response_model=ApiResponse[list[CategoryOut]])
def list_categories(db: Session = Depends(get_db)):
    return ok([CategoryOut.model_validate(c) for c in category_service.list_categories(db)])


@router.post("", response_model=ApiResponse[CategoryOut], status_code=201, dependencies=authenticated)
def create_category(data: CategoryCreate, db: Session = Depends(get_db)):
    return ok(CategoryOut.model_validate(category_service.create_category(db, data)))


@router.get("/{category_id}", response_model=ApiResponse[CategoryOut])
def get_category(category_id: str, db: Session = Depends(get_db)):
    category = category_service.get_category(db, category_id)
    if not category:
        raise NotFoundError("Category not found")
    return ok(CategoryOut.model_validate(category))


@router.patch("/{category_id}", response_model=ApiResponse[CategoryOut], dependencies=authenticated)
def update_category(category_id: str, data: CategoryUpdate, db: Session = Depends(get_db)):
    return ok(CategoryOut.model_validate(category_service.update_category(db, category_id, data)))


@router.delete("/{category_id}", response_model=ApiResponse[dict], dependencies=authenticated)
def delete_category(category_id: str, db: Session = Depends(get_db)):
    category_service.delete_category(db, category_id)
    return ok({"message": "Category deleted successfully"})
