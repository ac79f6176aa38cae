"""
Module: mill_kernel.selectors.stock_selector
Responsibility: Read-only inventory views: per-warehouse stock, totals
    across warehouses, and low / out-of-stock queries for dashboards.
Architecture position: Kernel > Selectors.  May import from models/ and
    selectors/base.py.  MUST NOT import from services/ or outer layers.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from mill_config import MillConfig, get_active_config
from mill_kernel.models.stock import ItemType, StockEntry
from mill_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class StockLevel:
    """On-hand quantity of one item at one warehouse."""

    warehouse_id: UUID
    item_name: str
    item_type: ItemType
    sub_type: str | None
    quantity: Decimal
    unit: str
    last_updated: datetime


@dataclass(frozen=True)
class StockSummaryRow:
    """Quantity of one item summed over all warehouses."""

    item_name: str
    item_type: ItemType
    sub_type: str | None
    quantity: Decimal
    warehouse_count: int


def _to_level(entry: StockEntry) -> StockLevel:
    return StockLevel(
        warehouse_id=entry.warehouse_id,
        item_name=entry.item_name,
        item_type=ItemType(entry.item_type),
        sub_type=entry.sub_type or None,
        quantity=entry.quantity,
        unit=entry.unit,
        last_updated=entry.last_updated,
    )


class StockSelector(BaseSelector[StockEntry]):
    """Selector for stock queries."""

    def __init__(self, session: Session, config: MillConfig | None = None):
        super().__init__(session)
        self._config = config or get_active_config()

    def _entries(self, *criteria) -> list[StockLevel]:
        stmt = (
            select(StockEntry)
            .where(*criteria)
            .order_by(StockEntry.item_type, StockEntry.item_name, StockEntry.sub_type)
            .execution_options(populate_existing=True)
        )
        return [_to_level(entry) for entry in self.session.execute(stmt).scalars()]

    def warehouse_summary(self, warehouse_id: UUID) -> list[StockLevel]:
        """Every stock entry held at ``warehouse_id``."""
        return self._entries(StockEntry.warehouse_id == warehouse_id)

    def totals_by_item(self, item_type: ItemType | None = None) -> list[StockSummaryRow]:
        stmt = select(
            StockEntry.item_name,
            StockEntry.item_type,
            StockEntry.sub_type,
            func.sum(StockEntry.quantity),
            func.count(StockEntry.warehouse_id),
        ).group_by(StockEntry.item_name, StockEntry.item_type, StockEntry.sub_type)
        if item_type is not None:
            stmt = stmt.where(StockEntry.item_type == ItemType(item_type).value)
        stmt = stmt.order_by(StockEntry.item_type, StockEntry.item_name, StockEntry.sub_type)

        return [
            StockSummaryRow(
                item_name=item_name,
                item_type=ItemType(stored_type),
                sub_type=sub_type or None,
                quantity=quantity,
                warehouse_count=count,
            )
            for item_name, stored_type, sub_type, quantity, count in self.session.execute(stmt)
        ]

    def low_stock(
        self,
        threshold: Decimal | None = None,
        warehouse_id: UUID | None = None,
    ) -> list[StockLevel]:
        """
        Entries with 0 < quantity <= threshold.

        ``threshold`` defaults to ``stock.low_stock_threshold`` from config.
        Empty entries are reported by out_of_stock() instead.
        """
        if threshold is None:
            threshold = self._config.stock.low_stock_threshold
        criteria = [StockEntry.quantity > 0, StockEntry.quantity <= threshold]
        if warehouse_id is not None:
            criteria.append(StockEntry.warehouse_id == warehouse_id)
        return self._entries(*criteria)

    def out_of_stock(self, warehouse_id: UUID | None = None) -> list[StockLevel]:
        """Entries that exist but hold nothing."""
        criteria = [StockEntry.quantity == 0]
        if warehouse_id is not None:
            criteria.append(StockEntry.warehouse_id == warehouse_id)
        return self._entries(*criteria)
