from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from catalog.api.auth import get_current_user
from catalog.database import get_db
from catalog.schemas.common import ApiResponse, ok
from catalog.schemas.inventory import LowStockItemOut, StockChangeOut, StockHistoryOut, StockUpdate
from catalog.schemas.product import ProductOut
from catalog.services import inventory_service

router = APIRouter(prefix="/inventory", tags=["Inventory"], dependencies=[Depends(get_current_user)])


def low_stock_response(db: Session) -> dict:
    items = inventory_service.get_low_stock_items(db)
    return ok([
        LowStockItemOut(product=ProductOut.build(item.product, item.category), threshold=item.threshold)
        for item in items
    ])


@router.post("/update", response_model=ApiResponse[StockChangeOut])
def update_stock(data: StockUpdate, db: Session = Depends(get_db)):
    change = inventory_service.apply_stock_change(
        db,
        product_id=data.product_id,
        mutation_type=data.type,
        quantity=data.quantity,
        reason=data.reason,
    )
    return ok(StockChangeOut.model_validate(change))


@router.get("/history/{product_id}", response_model=ApiResponse[list[StockHistoryOut]])
def stock_history(product_id: str, db: Session = Depends(get_db)):
    history = inventory_service.get_stock_history(db, product_id)
    return ok([StockHistoryOut.model_validate(h) for h in history])


@router.get("/low-stock", response_model=ApiResponse[list[LowStockItemOut]])
def low_stock(db: Session = Depends(get_db)):
    return low_stock_response(db)
