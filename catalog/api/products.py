from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from catalog.api.auth import get_current_user
from catalog.api.inventory import low_stock_response
from catalog.database import get_db
from catalog.schemas.common import ApiResponse, ok
from catalog.schemas.inventory import LowStockItemOut
from catalog.schemas.product import ProductCreate, ProductOut, ProductUpdate
from catalog.services import product_service

router = APIRouter(prefix="/products", tags=["Products"])

# Reads are public, writes need a token
authenticated = [Depends(get_current_user)]


@router.get("", response_model=ApiResponse[list[ProductOut]])
def list_products(category_id: str | None = Query(default=None, alias="categoryId"), db: Session = Depends(get_db)):
    rows = product_service.list_products(db, category_id=category_id)
    return ok([ProductOut.build(p, ref) for p, ref in rows])


@router.post("", response_model=ApiResponse[ProductOut], status_code=201, dependencies=authenticated)
def create_product(data: ProductCreate, db: Session = Depends(get_db)):
    product = product_service.create_product(db, data)
    return ok(ProductOut.build(*product_service.get_product_view(db, product.id)))


# Registered before /{product_id} so "low-stock" is not taken as an id
@router.get("/low-stock", response_model=ApiResponse[list[LowStockItemOut]], dependencies=authenticated)
def low_stock(db: Session = Depends(get_db)):
    return low_stock_response(db)


@router.get("/{product_id}", response_model=ApiResponse[ProductOut])
def get_product(product_id: str, db: Session = Depends(get_db)):
    return ok(ProductOut.build(*product_service.get_product_view(db, product_id)))


@router.patch("/{product_id}", response_model=ApiResponse[ProductOut], dependencies=authenticated)
def update_product(product_id: str, data: ProductUpdate, db: Session = Depends(get_db)):
    product_service.update_product(db, product_id, data)
    return ok(ProductOut.build(*product_service.get_product_view(db, product_id)))


@router.delete("/{product_id}", response_model=ApiResponse[dict], dependencies=authenticated)
def delete_product(product_id: str, db: Session = Depends(get_db)):
    product_service.delete_product(db, product_id)
    return ok({"message": "Product deleted successfully"})
