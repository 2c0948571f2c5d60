"""Stock mutations, the stock history ledger and the low-stock listing.

Every successful mutation updates ``Product.stock`` and appends exactly one
``StockHistory`` row in the same transaction. The product row is read with
``SELECT ... FOR UPDATE`` and written under its ``version`` column, so two
concurrent mutations of one product can never both commit against the same
previous stock: the loser gets a ``ConflictError`` and writes nothing.
"""
import logging
from dataclasses import dataclass

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from catalog.config import settings
from catalog.exceptions import ConflictError, InvalidArgumentError, NotFoundError, StorageError
from catalog.models.product import Product
from catalog.models.stock_history import MutationType, StockHistory
from catalog.services.category_service import CategoryRef, resolve_category
from catalog.services.product_service import query_with_category

logger = logging.getLogger(__name__)

MISSING_FIELDS_MESSAGE = "Missing required fields: productId, quantity, type"
INVALID_TYPE_MESSAGE = "Invalid type. Must be: add, subtract, or set"


@dataclass(frozen=True)
class StockChange:
    product_id: str
    previous_stock: int
    new_stock: int
    change_amount: int


@dataclass(frozen=True)
class LowStockItem:
    product: Product
    category: CategoryRef
    threshold: int


def parse_mutation_type(value) -> MutationType:
    try:
        return MutationType(value)
    except ValueError:
        raise InvalidArgumentError(INVALID_TYPE_MESSAGE) from None


def compute_stock_change(previous_stock: int, mutation_type: MutationType, quantity: int) -> tuple[int, int]:
    """Return ``(new_stock, change_amount)`` for one mutation.

    ``subtract`` clamps at zero and reports the amount actually removed,
    so subtracting 10 from 3 yields ``(0, -3)``.
    """
    if mutation_type is MutationType.ADD:
        return previous_stock + quantity, quantity
    if mutation_type is MutationType.SUBTRACT:
        new_stock = max(0, previous_stock - quantity)
        return new_stock, new_stock - previous_stock
    if mutation_type is MutationType.SET:
        return quantity, quantity - previous_stock
    raise InvalidArgumentError(INVALID_TYPE_MESSAGE)


def _validate_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidArgumentError("Quantity must be an integer")
    if quantity < 0:
        raise InvalidArgumentError("Quantity cannot be negative")
    if quantity > settings.STOCK_MAX:
        raise InvalidArgumentError(f"Quantity cannot exceed {settings.STOCK_MAX}")
    return quantity


def _lock_product(db: Session, product_id: str) -> Product | None:
    # populate_existing: never trust a stock value cached in the identity map
    return (
        db.query(Product)
        .filter(Product.id == product_id)
        .with_for_update()
        .populate_existing()
        .first()
    )


def apply_stock_change(
    db: Session,
    product_id: str | None,
    mutation_type: str | None,
    quantity: int | None,
    reason: str | None = None,
) -> StockChange:
    if not product_id or quantity is None or not mutation_type:
        raise InvalidArgumentError(MISSING_FIELDS_MESSAGE)
    kind = parse_mutation_type(mutation_type)
    quantity = _validate_quantity(quantity)

    try:
        product = _lock_product(db, product_id)
        if not product:
            raise NotFoundError("Product not found")

        previous_stock = product.stock
        new_stock, change_amount = compute_stock_change(previous_stock, kind, quantity)
        if new_stock > settings.STOCK_MAX:
            db.rollback()
            raise InvalidArgumentError(f"Stock cannot exceed {settings.STOCK_MAX}")

        product.stock = new_stock
        product.updated_at = func.now()
        db.add(
            StockHistory(
                product_id=product.id,
                previous_stock=previous_stock,
                new_stock=new_stock,
                change_amount=change_amount,
                type=kind.value,
                reason=reason,
            )
        )
        db.commit()
    except StaleDataError:
        db.rollback()
        logger.warning("Concurrent stock update on product %s rejected", product_id)
        raise ConflictError("Product stock was modified by another request, please retry") from None
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Stock update for product %s failed: %s", product_id, e)
        raise StorageError("Failed to update stock") from e

    logger.info(
        "Stock %s on product %s: %d -> %d (%+d)",
        kind.value, product_id, previous_stock, new_stock, change_amount,
    )
    if new_stock < settings.LOW_STOCK_THRESHOLD:
        logger.warning("Product %s is low on stock (%d < %d)", product_id, new_stock, settings.LOW_STOCK_THRESHOLD)

    return StockChange(
        product_id=product_id,
        previous_stock=previous_stock,
        new_stock=new_stock,
        change_amount=change_amount,
    )


def get_stock_history(db: Session, product_id: str, limit: int | None = None) -> list[StockHistory]:
    """Newest first. Does not require the product to still exist."""
    if limit is None:
        limit = settings.STOCK_HISTORY_LIMIT
    return (
        db.query(StockHistory)
        .filter(StockHistory.product_id == product_id)
        .order_by(StockHistory.created_at.desc(), StockHistory.id.desc())
        .limit(limit)
        .all()
    )


def get_low_stock_items(db: Session, threshold: int | None = None) -> list[LowStockItem]:
    if threshold is None:
        threshold = settings.LOW_STOCK_THRESHOLD
    rows = (
        query_with_category(db)
        .filter(Product.stock < threshold)
        .order_by(Product.stock.asc(), Product.name.asc())
        .all()
    )
    return [
        LowStockItem(product=p, category=resolve_category(p.category_id, c), threshold=threshold)
        for p, c in rows
    ]
