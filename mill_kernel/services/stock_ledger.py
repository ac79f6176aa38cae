"""
StockLedger -- atomic, non-negative stock adjustments.

Responsibility:
    Applies signed quantity deltas to per-warehouse stock entries and moves
    stock between warehouses.  Used by invoice stock lines (bag purchases
    and sales) and production runs (wheat consumption, bagged output).

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Single-statement arithmetic: additions are one
      ``INSERT ... ON CONFLICT DO UPDATE SET quantity = quantity + excluded``;
      deductions are one ``UPDATE ... SET quantity = quantity - :n WHERE
      quantity >= :n``.  There is no read-modify-write window, so concurrent
      adjustments never lose updates.
    - quantity >= 0 always.  A deduction that would go negative, or that
      targets a missing entry, raises InsufficientStockError and changes
      nothing.  Quantities are never clamped.

Failure modes:
    - ValidationError on zero delta, unknown item type, empty item name, or
      over-precise quantity.
    - WarehouseNotFoundError for unknown or inactive warehouses.
    - InsufficientStockError as above.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from mill_config import MillConfig, get_active_config
from mill_kernel.db.dialect import upsert_insert
from mill_kernel.db.types import to_quantity
from mill_kernel.domain.clock import Clock, SystemClock
from mill_kernel.exceptions import InsufficientStockError, ValidationError
from mill_kernel.logging_config import get_logger
from mill_kernel.models.stock import NO_SUB_TYPE, ItemType, StockEntry
from mill_kernel.services.base import BaseService
from mill_kernel.services.warehouse_service import WarehouseService

logger = get_logger("services.stock_ledger")


@dataclass(frozen=True)
class StockEntryInfo:
    """Immutable DTO for a stock entry.  sub_type is None when absent."""

    id: UUID
    warehouse_id: UUID
    item_name: str
    item_type: ItemType
    sub_type: str | None
    quantity: Decimal
    unit: str
    last_updated: datetime


def _stored_sub_type(sub_type: str | None) -> str:
    return sub_type.strip() if sub_type else NO_SUB_TYPE


class StockLedger(BaseService[StockEntry]):
    """Signed, atomic adjustments to warehouse stock."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: MillConfig | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._config = config or get_active_config()
        self._warehouses = WarehouseService(session)

    def _to_dto(self, entry: StockEntry) -> StockEntryInfo:
        return StockEntryInfo(
            id=entry.id,
            warehouse_id=entry.warehouse_id,
            item_name=entry.item_name,
            item_type=ItemType(entry.item_type),
            sub_type=entry.sub_type or None,
            quantity=entry.quantity,
            unit=entry.unit,
            last_updated=entry.last_updated,
        )

    def _key_clause(self, warehouse_id: UUID, item_name: str, item_type: ItemType, sub_type: str):
        return (
            StockEntry.warehouse_id == warehouse_id,
            StockEntry.item_name == item_name,
            StockEntry.item_type == item_type.value,
            StockEntry.sub_type == sub_type,
        )

    def _load(self, warehouse_id: UUID, item_name: str, item_type: ItemType, sub_type: str) -> StockEntry | None:
        stmt = (
            select(StockEntry)
            .where(*self._key_clause(warehouse_id, item_name, item_type, sub_type))
            .execution_options(populate_existing=True)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def _validate(self, warehouse_id: UUID, item_name: str, item_type) -> tuple[str, ItemType]:
        if not item_name or not item_name.strip():
            raise ValidationError("Item name is required", field="item_name")
        try:
            item_type = ItemType(item_type)
        except ValueError:
            raise ValidationError(f"Unknown item type: {item_type}", field="item_type") from None
        self._warehouses.require_active(warehouse_id)
        return item_name.strip(), item_type

    def get_entry(
        self,
        warehouse_id: UUID,
        item_name: str,
        item_type: ItemType | str,
        sub_type: str | None = None,
    ) -> StockEntryInfo | None:
        entry = self._load(warehouse_id, item_name.strip(), ItemType(item_type), _stored_sub_type(sub_type))
        return self._to_dto(entry) if entry else None

    def adjust_stock(
        self,
        warehouse_id: UUID,
        item_name: str,
        item_type: ItemType | str,
        sub_type: str | None,
        delta: Decimal,
        actor_id: UUID,
    ) -> StockEntryInfo:
        """
        Apply ``delta`` to the entry keyed by (warehouse, item, type, sub_type).

        A positive delta creates the entry if it is missing.  A negative
        delta requires an entry holding at least ``-delta``.

        Returns:
            The entry after the adjustment.

        Raises:
            ValidationError: delta is zero or malformed; bad item.
            WarehouseNotFoundError: Unknown or inactive warehouse.
            InsufficientStockError: Deduction would go below zero.
        """
        item_name, item_type = self._validate(warehouse_id, item_name, item_type)
        delta = to_quantity(delta, "delta")
        if delta == 0:
            raise ValidationError("Stock delta must not be zero", field="delta")
        stored_sub_type = _stored_sub_type(sub_type)
        now = self._clock.now()

        if delta > 0:
            self._add(warehouse_id, item_name, item_type, stored_sub_type, delta, actor_id, now)
        else:
            self._deduct(warehouse_id, item_name, item_type, stored_sub_type, -delta, actor_id, now)

        entry = self._load(warehouse_id, item_name, item_type, stored_sub_type)
        logger.info(
            "stock_adjusted",
            extra={
                "warehouse_id": str(warehouse_id),
                "item_name": item_name,
                "item_type": item_type.value,
                "sub_type": stored_sub_type or None,
                "delta": delta,
                "quantity_after": entry.quantity,
            },
        )
        return self._to_dto(entry)

    def _add(
        self,
        warehouse_id: UUID,
        item_name: str,
        item_type: ItemType,
        sub_type: str,
        quantity: Decimal,
        actor_id: UUID,
        now: datetime,
    ) -> None:
        table = StockEntry.__table__
        stmt = upsert_insert(self.session, table).values(
            id=uuid4(),
            warehouse_id=warehouse_id,
            item_name=item_name,
            item_type=item_type.value,
            sub_type=sub_type,
            quantity=quantity,
            unit=self._config.stock.unit_for(item_type.value),
            last_updated=now,
            created_by_id=actor_id,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["warehouse_id", "item_name", "item_type", "sub_type"],
            set_={
                "quantity": table.c.quantity + stmt.excluded.quantity,
                "last_updated": stmt.excluded.last_updated,
                "updated_by_id": stmt.excluded.created_by_id,
                "updated_at": func.now(),
            },
        )
        self.session.execute(stmt)

    def _deduct(
        self,
        warehouse_id: UUID,
        item_name: str,
        item_type: ItemType,
        sub_type: str,
        quantity: Decimal,
        actor_id: UUID,
        now: datetime,
    ) -> None:
        stmt = (
            update(StockEntry)
            .where(
                *self._key_clause(warehouse_id, item_name, item_type, sub_type),
                StockEntry.quantity >= quantity,
            )
            .values(
                quantity=StockEntry.quantity - quantity,
                last_updated=now,
                updated_by_id=actor_id,
            )
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        if result.rowcount == 1:
            return

        current = self._load(warehouse_id, item_name, item_type, sub_type)
        available = current.quantity if current is not None else Decimal("0")
        logger.warning(
            "stock_insufficient",
            extra={
                "warehouse_id": str(warehouse_id),
                "item_name": item_name,
                "item_type": item_type.value,
                "sub_type": sub_type or None,
                "available": available,
                "requested": quantity,
            },
        )
        raise InsufficientStockError(
            warehouse_id=str(warehouse_id),
            item_name=item_name,
            item_type=item_type.value,
            sub_type=sub_type or None,
            available=available,
            requested=quantity,
        )

    def transfer_stock(
        self,
        from_warehouse_id: UUID,
        to_warehouse_id: UUID,
        item_name: str,
        item_type: ItemType | str,
        sub_type: str | None,
        quantity: Decimal,
        actor_id: UUID,
    ) -> tuple[StockEntryInfo, StockEntryInfo]:
        """
        Move ``quantity`` from one warehouse to another as one unit.

        Returns:
            (source entry after, destination entry after)

        Raises:
            ValidationError: Same warehouse, or non-positive quantity.
            InsufficientStockError: Source holds less than ``quantity``;
                neither warehouse changes.
        """
        quantity = to_quantity(quantity)
        if quantity <= 0:
            raise ValidationError("Transfer quantity must be greater than zero", field="quantity")
        if from_warehouse_id == to_warehouse_id:
            raise ValidationError("Cannot transfer stock to the same warehouse", field="to_warehouse_id")

        with self.session.begin_nested():
            source = self.adjust_stock(from_warehouse_id, item_name, item_type, sub_type, -quantity, actor_id)
            destination = self.adjust_stock(to_warehouse_id, item_name, item_type, sub_type, quantity, actor_id)

        logger.info(
            "stock_transferred",
            extra={
                "from_warehouse_id": str(from_warehouse_id),
                "to_warehouse_id": str(to_warehouse_id),
                "item_name": source.item_name,
                "quantity": quantity,
            },
        )
        return source, destination
