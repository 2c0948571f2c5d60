import logging
from dataclasses import dataclass
from enum import Enum

from sqlalchemy.orm import Session

from catalog.exceptions import InvalidArgumentError, NotFoundError
from catalog.models.category import Category
from catalog.schemas.category import CategoryCreate, CategoryUpdate

logger = logging.getLogger(__name__)

UNCATEGORIZED = "Uncategorized"
UNKNOWN_CATEGORY = "Unknown"


class CategoryRefState(str, Enum):
    NOT_SET = "not_set"
    UNRESOLVED = "unresolved"
    RESOLVED = "resolved"


@dataclass(frozen=True)
class CategoryRef:
    """Result of following a product's weak category reference."""

    state: CategoryRefState
    category_id: str | None = None
    name: str | None = None

    @property
    def display_name(self) -> str:
        if self.state is CategoryRefState.RESOLVED:
            return self.name
        if self.state is CategoryRefState.UNRESOLVED:
            return UNKNOWN_CATEGORY
        return UNCATEGORIZED


def resolve_category(category_id: str | None, category: Category | None) -> CategoryRef:
    """Classify a stored category id against the row it was joined to (None if dangling)."""
    if not category_id:
        return CategoryRef(CategoryRefState.NOT_SET)
    if category is None:
        return CategoryRef(CategoryRefState.UNRESOLVED, category_id=category_id)
    return CategoryRef(CategoryRefState.RESOLVED, category_id=category.id, name=category.name)


def get_category(db: Session, category_id: str) -> Category | None:
    return db.query(Category).filter(Category.id == category_id).first()


def list_categories(db: Session) -> list[Category]:
    return db.query(Category).order_by(Category.name.asc()).all()


def create_category(db: Session, data: CategoryCreate) -> Category:
    if not data.name or not data.name.strip():
        raise InvalidArgumentError("Category name is required")
    category = Category(name=data.name.strip(), description=data.description)
    db.add(category)
    db.commit()
    db.refresh(category)
    logger.info("Created category %s (%s)", category.id, category.name)
    return category


def update_category(db: Session, category_id: str, data: CategoryUpdate) -> Category:
    category = get_category(db, category_id)
    if not category:
        raise NotFoundError("Category not found")
    update_data = data.model_dump(exclude_unset=True)
    if "name" in update_data:
        if not update_data["name"] or not update_data["name"].strip():
            raise InvalidArgumentError("Category name cannot be empty")
        update_data["name"] = update_data["name"].strip()
    for field, value in update_data.items():
        setattr(category, field, value)
    db.commit()
    db.refresh(category)
    return category


def delete_category(db: Session, category_id: str) -> None:
    """Delete a category. Products pointing at it keep the id and display as "Unknown"."""
    category = get_category(db, category_id)
    if not category:
        raise NotFoundError("Category not found")
    db.delete(category)
    db.commit()
    logger.info("Deleted category %s", category_id)
