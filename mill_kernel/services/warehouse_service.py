"""
Service layer for Warehouse operations.

Registers warehouses and resolves warehouse references for the stock ledger,
account registry and orchestrator.  Returns WarehouseInfo DTOs instead of
ORM entities.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select

from mill_kernel.exceptions import ValidationError, WarehouseNotFoundError
from mill_kernel.logging_config import get_logger
from mill_kernel.models.warehouse import Warehouse
from mill_kernel.services.base import BaseService

logger = get_logger("services.warehouse")


@dataclass(frozen=True)
class WarehouseInfo:
    id: UUID
    code: str
    name: str
    location: str | None
    is_active: bool


class WarehouseService(BaseService[Warehouse]):
    """Create, look up and deactivate warehouses."""

    def _to_dto(self, warehouse: Warehouse) -> WarehouseInfo:
        return WarehouseInfo(
            id=warehouse.id,
            code=warehouse.code,
            name=warehouse.name,
            location=warehouse.location,
            is_active=warehouse.is_active,
        )

    def _get_by_id(self, warehouse_id: UUID) -> Warehouse:
        warehouse = self.session.get(Warehouse, warehouse_id)
        if warehouse is None:
            raise WarehouseNotFoundError(str(warehouse_id))
        return warehouse

    def get_by_id(self, warehouse_id: UUID) -> WarehouseInfo:
        """
        Raises:
            WarehouseNotFoundError: If the warehouse doesn't exist.
        """
        return self._to_dto(self._get_by_id(warehouse_id))

    def require_active(self, warehouse_id: UUID) -> WarehouseInfo:
        """
        Resolve a warehouse that may hold stock or own postings.

        Inactive warehouses are reported as not found: they cannot be the
        target of new events.
        """
        warehouse = self._get_by_id(warehouse_id)
        if not warehouse.is_active:
            raise WarehouseNotFoundError(str(warehouse_id))
        return self._to_dto(warehouse)

    def list_active(self) -> list[WarehouseInfo]:
        stmt = select(Warehouse).where(Warehouse.is_active.is_(True)).order_by(Warehouse.code)
        return [self._to_dto(w) for w in self.session.execute(stmt).scalars()]

    def create_warehouse(
        self,
        code: str,
        name: str,
        actor_id: UUID,
        location: str | None = None,
    ) -> WarehouseInfo:
        """Create a new warehouse.  ``code`` must be unique."""
        if not code or not code.strip():
            raise ValidationError("Warehouse code is required", field="code")
        if not name or not name.strip():
            raise ValidationError("Warehouse name is required", field="name")

        warehouse = Warehouse(
            code=code.strip(),
            name=name.strip(),
            location=location,
            created_by_id=actor_id,
        )
        self.session.add(warehouse)
        self.session.flush()
        logger.info(
            "warehouse_created",
            extra={"warehouse_id": str(warehouse.id), "code": warehouse.code},
        )
        return self._to_dto(warehouse)

    def deactivate_warehouse(self, warehouse_id: UUID, actor_id: UUID) -> WarehouseInfo:
        warehouse = self._get_by_id(warehouse_id)
        warehouse.is_active = False
        warehouse.updated_by_id = actor_id
        self.session.flush()
        return self._to_dto(warehouse)
