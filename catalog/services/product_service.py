import logging

from sqlalchemy.orm import Query, Session
from sqlalchemy.orm.exc import StaleDataError

from catalog.config import settings
from catalog.exceptions import ConflictError, InvalidArgumentError, NotFoundError
from catalog.models.category import Category
from catalog.models.product import Product
from catalog.schemas.product import ProductCreate, ProductUpdate
from catalog.services.category_service import CategoryRef, get_category, resolve_category

logger = logging.getLogger(__name__)


def query_with_category(db: Session) -> Query:
    return db.query(Product, Category).outerjoin(Category, Category.id == Product.category_id)


def _check_category(db: Session, category_id: str | None) -> None:
    if category_id and not get_category(db, category_id):
        raise InvalidArgumentError("Category not found")


def create_product(db: Session, data: ProductCreate) -> Product:
    if not data.name or not data.description:
        raise InvalidArgumentError("Missing required fields")
    if data.price < 0:
        raise InvalidArgumentError("Price cannot be negative")
    if data.stock < 0:
        raise InvalidArgumentError("Stock cannot be negative")
    if data.stock > settings.STOCK_MAX:
        raise InvalidArgumentError(f"Stock cannot exceed {settings.STOCK_MAX}")
    _check_category(db, data.category_id)

    # Initial stock is the baseline; the ledger only records later changes
    product = Product(
        name=data.name,
        description=data.description,
        price=data.price,
        stock=data.stock,
        category_id=data.category_id or None,
        image_url=data.image_url,
    )
    db.add(product)
    db.commit()
    db.refresh(product)
    logger.info("Created product %s (%s) with stock %d", product.id, product.name, product.stock)
    return product


def get_product(db: Session, product_id: str) -> Product | None:
    return db.query(Product).filter(Product.id == product_id).first()


def get_product_view(db: Session, product_id: str) -> tuple[Product, CategoryRef]:
    row = query_with_category(db).filter(Product.id == product_id).first()
    if not row:
        raise NotFoundError("Product not found")
    product, category = row
    return product, resolve_category(product.category_id, category)


def list_products(db: Session, category_id: str | None = None) -> list[tuple[Product, CategoryRef]]:
    q = query_with_category(db)
    if category_id:
        q = q.filter(Product.category_id == category_id)
    rows = q.order_by(Product.created_at.desc()).all()
    return [(p, resolve_category(p.category_id, c)) for p, c in rows]


def update_product(db: Session, product_id: str, data: ProductUpdate) -> Product:
    product = get_product(db, product_id)
    if not product:
        raise NotFoundError("Product not found")
    update_data = data.model_dump(exclude_unset=True)
    if update_data.get("price") is not None and update_data["price"] < 0:
        raise InvalidArgumentError("Price cannot be negative")
    if update_data.get("name") == "":
        raise InvalidArgumentError("Product name cannot be empty")
    _check_category(db, update_data.get("category_id"))
    for field, value in update_data.items():
        # null clears optional fields; required ones are left untouched
        if value is None and field in ("name", "description", "price"):
            continue
        if field == "category_id":
            value = value or None
        setattr(product, field, value)
    try:
        db.commit()
    except StaleDataError:
        db.rollback()
        raise ConflictError("Product was modified by another request, please retry") from None
    db.refresh(product)
    return product


def delete_product(db: Session, product_id: str) -> None:
    """Delete a product. Its stock history is kept."""
    product = get_product(db, product_id)
    if not product:
        raise NotFoundError("Product not found")
    db.delete(product)
    db.commit()
    logger.info("Deleted product %s", product_id)
