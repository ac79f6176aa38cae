"""
Module: mill_kernel.models.transaction
Responsibility: ORM persistence for ledger transactions -- one debit account,
    one credit account, one positive amount.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - transaction_number is unique and strictly monotonic (TXN-000001, ...),
      allocated by SequenceService.
    - amount > 0 and debit_account_id != credit_account_id
      (CHECK constraints, also validated by LedgerEngine).
    - Append-only: once flushed, the only permitted change is
      payment_status PENDING -> COMPLETED; rows are never deleted
      (db/immutability.py).

Failure modes:
    - IntegrityError on CHECK violation or duplicate transaction_number.
    - ImmutabilityViolationError on any other UPDATE, or on DELETE.

Audit relevance:
    The transactions table is the ledger.  Every account's balance movement
    can be recomputed from it.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from mill_kernel.db.base import TrackedBase, UUIDString


class TransactionType(str, Enum):
    SALE = "Sale"
    PURCHASE = "Purchase"
    PAYMENT = "Payment"
    RECEIPT = "Receipt"
    SALARY = "Salary"
    TRANSFER = "Transfer"
    ADJUSTMENT = "Adjustment"
    OTHER = "Other"


class PaymentStatus(str, Enum):
    """Transaction settlement status.

    Transitions: created -> PENDING -> COMPLETED, or created -> COMPLETED.
    """

    PENDING = "Pending"
    COMPLETED = "Completed"
    FAILED = "Failed"
    CANCELLED = "Cancelled"


class PaymentMethod(str, Enum):
    CASH = "Cash"
    BANK_TRANSFER = "Bank Transfer"
    CHEQUE = "Cheque"
    CREDIT = "Credit"


class Transaction(TrackedBase):
    """
    A single double-entry posting.

    The creating actor is created_by_id; warehouse_id records where the
    business event happened (may be NULL for mill-wide postings).
    """

    __tablename__ = "ledger_transactions"

    __table_args__ = (
        UniqueConstraint("transaction_number", name="uq_transaction_number"),
        CheckConstraint("amount > 0", name="ck_transaction_amount_positive"),
        CheckConstraint(
            "debit_account_id <> credit_account_id",
            name="ck_transaction_distinct_accounts",
        ),
        Index("idx_txn_debit_account", "debit_account_id"),
        Index("idx_txn_credit_account", "credit_account_id"),
        Index("idx_txn_invoice", "invoice_id"),
        Index("idx_txn_date", "transaction_date"),
    )

    transaction_number: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )

    transaction_date: Mapped[datetime] = mapped_column(
        nullable=False,
    )

    transaction_type: Mapped[TransactionType] = mapped_column(
        String(20),
        nullable=False,
    )

    debit_account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )

    credit_account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(
        nullable=False,
    )

    currency: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
    )

    warehouse_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("warehouses.id"),
        nullable=True,
    )

    payment_method: Mapped[PaymentMethod | None] = mapped_column(
        String(20),
        nullable=True,
    )

    payment_status: Mapped[PaymentStatus] = mapped_column(
        String(20),
        nullable=False,
        default=PaymentStatus.COMPLETED,
    )

    is_payable: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    is_receivable: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    due_date: Mapped[date | None] = mapped_column(
        nullable=True,
    )

    reference: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    description: Mapped[str | None] = mapped_column(
        String(1000),
        nullable=True,
    )

    invoice_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("invoices.id"),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Transaction {self.transaction_number}: {self.amount} {self.currency}>"
