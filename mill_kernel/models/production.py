"""
Module: mill_kernel.models.production
Responsibility: ORM persistence for daily production runs (wheat ground into
    bagged flour, bran and other products) and their output lines.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - production_code is unique; it is the idempotency key of the run.
    - gross_weight_excluding_bran omits the configured by-products, while
      every output line (bran included) is still stocked.

Failure modes:
    - IntegrityError on a duplicate production_code (concurrent replay).
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from mill_kernel.db.base import Base, TrackedBase, UUIDString
from mill_kernel.db.types import QUANTITY_DECIMAL_PLACES, ScaledDecimal


class ProductionRun(TrackedBase):
    """One day's (or one shift's) grinding at the mill."""

    __tablename__ = "production_runs"

    __table_args__ = (
        UniqueConstraint("production_code", name="uq_production_code"),
        Index("idx_production_date", "production_date"),
    )

    production_code: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    production_date: Mapped[date] = mapped_column(
        nullable=False,
    )

    wheat_warehouse_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("warehouses.id"),
        nullable=False,
    )

    output_warehouse_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("warehouses.id"),
        nullable=False,
    )

    total_wheat_used: Mapped[Decimal] = mapped_column(
        ScaledDecimal(QUANTITY_DECIMAL_PLACES),
        nullable=False,
    )

    gross_weight_excluding_bran: Mapped[Decimal] = mapped_column(
        ScaledDecimal(QUANTITY_DECIMAL_PLACES),
        nullable=False,
    )

    notes: Mapped[str | None] = mapped_column(
        String(1000),
        nullable=True,
    )

    outputs: Mapped[list["ProductionOutput"]] = relationship(
        back_populates="run",
        cascade="all, delete-orphan",
        order_by="ProductionOutput.line_no",
    )

    def __repr__(self) -> str:
        return f"<ProductionRun {self.production_code}: {self.total_wheat_used} kg wheat>"


class ProductionOutput(Base):
    """A bagged product line of a production run."""

    __tablename__ = "production_outputs"

    __table_args__ = (
        UniqueConstraint("run_id", "line_no", name="uq_production_output_line"),
    )

    run_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("production_runs.id"),
        nullable=False,
    )

    line_no: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    item_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    bag_weight: Mapped[Decimal] = mapped_column(
        ScaledDecimal(QUANTITY_DECIMAL_PLACES),
        nullable=False,
    )

    bag_quantity: Mapped[Decimal] = mapped_column(
        ScaledDecimal(QUANTITY_DECIMAL_PLACES),
        nullable=False,
    )

    gross_weight: Mapped[Decimal] = mapped_column(
        ScaledDecimal(QUANTITY_DECIMAL_PLACES),
        nullable=False,
    )

    run: Mapped[ProductionRun] = relationship(back_populates="outputs")
