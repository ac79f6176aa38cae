"""
Module: mill_kernel.models.warehouse
Responsibility: ORM persistence for warehouses -- the physical locations that
    hold stock and that may own warehouse-scoped accounts.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - code is unique (uq_warehouse_code).

Failure modes:
    - IntegrityError on duplicate code.
    - WarehouseNotFoundError (raised by services) for unknown ids.
"""

from sqlalchemy import Boolean, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from mill_kernel.db.base import TrackedBase


class Warehouse(TrackedBase):
    """A physical storage location (mill floor, godown, shop)."""

    __tablename__ = "warehouses"

    __table_args__ = (
        UniqueConstraint("code", name="uq_warehouse_code"),
    )

    code: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    location: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    def __repr__(self) -> str:
        return f"<Warehouse {self.code}: {self.name}>"
