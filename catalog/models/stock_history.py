from datetime import datetime, timezone
from enum import Enum as PyEnum

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from catalog.database import Base


class MutationType(str, PyEnum):
    ADD = "add"
    SUBTRACT = "subtract"
    SET = "set"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StockHistory(Base):
    """Append-only ledger of stock changes. Rows are never updated or deleted."""

    __tablename__ = "stock_history"

    # Autoincrement id doubles as insertion order for created_at ties
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # Not a FK: history outlives the product
    product_id: Mapped[str] = mapped_column(String, nullable=False)
    previous_stock: Mapped[int] = mapped_column(Integer, nullable=False)
    new_stock: Mapped[int] = mapped_column(Integer, nullable=False)
    change_amount: Mapped[int] = mapped_column(Integer, nullable=False)  # new_stock - previous_stock
    type: Mapped[str] = mapped_column(String, nullable=False)  # add, subtract, set
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (Index("ix_stock_history_product_created", "product_id", "created_at"),)
