"""
Module: mill_kernel.models.invoice
Responsibility: ORM persistence for sale and purchase invoices -- the
    receivable / payable documents whose remaining amounts feed the credit
    policy and the settlement flows.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - (invoice_kind, invoice_number) is unique.  The invoice number is the
      idempotency key of the business event that created the invoice.
    - 0 <= remaining_amount <= total_amount and
      paid_amount + remaining_amount == total_amount (CHECK constraints).

Failure modes:
    - IntegrityError on a duplicate invoice number (a concurrent replay of
      the same event); the orchestrator maps it to ConcurrencyConflict.

Audit relevance:
    Outstanding receivables for a buyer are the sum of remaining_amount over
    that buyer's PENDING and OVERDUE sale invoices.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from mill_kernel.db.base import TrackedBase, UUIDString


class InvoiceKind(str, Enum):
    SALE = "sale"
    PURCHASE = "purchase"


class InvoiceStatus(str, Enum):
    PENDING = "pending"
    OVERDUE = "overdue"
    COMPLETED = "completed"


OUTSTANDING_STATUSES = (InvoiceStatus.PENDING.value, InvoiceStatus.OVERDUE.value)


class Invoice(TrackedBase):
    """A sale invoice (to a buyer) or purchase invoice (from a supplier)."""

    __tablename__ = "invoices"

    __table_args__ = (
        UniqueConstraint("invoice_kind", "invoice_number", name="uq_invoice_number"),
        CheckConstraint("remaining_amount >= 0", name="ck_invoice_remaining_non_negative"),
        CheckConstraint(
            "paid_amount + remaining_amount = total_amount",
            name="ck_invoice_amounts_balance",
        ),
        Index("idx_invoice_party_status", "party_id", "status"),
        Index("idx_invoice_due_date", "due_date"),
    )

    invoice_kind: Mapped[InvoiceKind] = mapped_column(
        String(20),
        nullable=False,
    )

    invoice_number: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    party_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("parties.id"),
        nullable=False,
    )

    warehouse_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("warehouses.id"),
        nullable=False,
    )

    invoice_date: Mapped[date] = mapped_column(
        nullable=False,
    )

    due_date: Mapped[date | None] = mapped_column(
        nullable=True,
    )

    payment_method: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )

    total_amount: Mapped[Decimal] = mapped_column(
        nullable=False,
    )

    paid_amount: Mapped[Decimal] = mapped_column(
        nullable=False,
        default=Decimal("0"),
    )

    remaining_amount: Mapped[Decimal] = mapped_column(
        nullable=False,
    )

    status: Mapped[InvoiceStatus] = mapped_column(
        String(20),
        nullable=False,
        default=InvoiceStatus.PENDING,
    )

    notes: Mapped[str | None] = mapped_column(
        String(1000),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Invoice {self.invoice_kind}:{self.invoice_number} remaining={self.remaining_amount}>"
