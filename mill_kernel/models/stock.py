"""
Module: mill_kernel.models.stock
Responsibility: ORM persistence for per-warehouse stock levels of wheat and
    bagged products.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - quantity >= 0 at every commit (ck_stock_quantity_non_negative, and the
      conditional UPDATE in StockLedger never lets it go below zero).
    - One row per (warehouse_id, item_name, item_type, sub_type).  A missing
      sub-type is stored as "" so the unique key never contains NULL.

Failure modes:
    - IntegrityError on CHECK violation if a raw UPDATE bypasses StockLedger.

Audit relevance:
    Stock rows are mutable counters.  They are only changed by single-statement
    SQL arithmetic so concurrent adjustments never lose updates.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from mill_kernel.db.base import TrackedBase, UUIDString
from mill_kernel.db.types import QUANTITY_DECIMAL_PLACES, ScaledDecimal

NO_SUB_TYPE = ""


class ItemType(str, Enum):
    WHEAT = "wheat"
    BAGS = "bags"


class StockEntry(TrackedBase):
    """Quantity of one item (and bag size) held in one warehouse."""

    __tablename__ = "stock_entries"

    __table_args__ = (
        UniqueConstraint(
            "warehouse_id",
            "item_name",
            "item_type",
            "sub_type",
            name="uq_stock_item",
        ),
        CheckConstraint("quantity >= 0", name="ck_stock_quantity_non_negative"),
        Index("idx_stock_warehouse", "warehouse_id"),
    )

    warehouse_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("warehouses.id"),
        nullable=False,
    )

    item_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    item_type: Mapped[ItemType] = mapped_column(
        String(20),
        nullable=False,
    )

    # e.g. "50kg"; "" when the item has no bag size
    sub_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default=NO_SUB_TYPE,
    )

    quantity: Mapped[Decimal] = mapped_column(
        ScaledDecimal(QUANTITY_DECIMAL_PLACES),
        nullable=False,
        default=Decimal("0"),
    )

    unit: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )

    last_updated: Mapped[datetime] = mapped_column(
        nullable=False,
    )

    def __repr__(self) -> str:
        label = f"{self.item_name}/{self.sub_type}" if self.sub_type else self.item_name
        return f"<StockEntry {label}: {self.quantity} {self.unit}>"
