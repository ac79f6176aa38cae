"""
Domain DTOs -- immutable inputs to the kernel services.

Responsibility:
    Frozen dataclasses describing business events as the outer application
    hands them to the kernel: sales, purchases, production runs and posting
    metadata.  They carry no ORM state and perform no I/O.

Architecture position:
    Kernel > Domain -- pure functional core.

Invariants enforced:
    - Derived amounts (remaining, gross weight, wheat used) are computed
      here from the inputs, never trusted from the caller.
    - All numbers are Decimal; floats are rejected by the services.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from mill_kernel.models.stock import ItemType
from mill_kernel.models.transaction import PaymentMethod, PaymentStatus


def bag_sub_type(bag_weight: Decimal) -> str:
    """Stock sub-type label for a bag size: Decimal("50") -> "50kg"."""
    return f"{format(Decimal(bag_weight).normalize(), 'f')}kg"


@dataclass(frozen=True)
class StockLine:
    """One stock movement carried by an invoice (e.g. 40 bags of 50kg Ata)."""

    item_name: str
    quantity: Decimal
    item_type: ItemType = ItemType.BAGS
    sub_type: str | None = None


@dataclass(frozen=True)
class SalePayload:
    """
    A sale to a buyer.

    A sale is a credit sale when the payment method is CREDIT or any part of
    the total remains unpaid.
    """

    invoice_number: str
    buyer_id: UUID
    total_amount: Decimal
    paid_amount: Decimal = Decimal("0")
    payment_method: PaymentMethod = PaymentMethod.CASH
    invoice_date: date | None = None
    due_date: date | None = None
    items: tuple[StockLine, ...] = ()
    notes: str | None = None

    @property
    def remaining_amount(self) -> Decimal:
        return self.total_amount - self.paid_amount

    @property
    def is_credit(self) -> bool:
        return self.payment_method == PaymentMethod.CREDIT or self.remaining_amount > 0


@dataclass(frozen=True)
class PurchasePayload:
    """A purchase from a supplier; mirror image of SalePayload."""

    invoice_number: str
    supplier_id: UUID
    total_amount: Decimal
    paid_amount: Decimal = Decimal("0")
    payment_method: PaymentMethod = PaymentMethod.CASH
    invoice_date: date | None = None
    due_date: date | None = None
    items: tuple[StockLine, ...] = ()
    notes: str | None = None

    @property
    def remaining_amount(self) -> Decimal:
        return self.total_amount - self.paid_amount

    @property
    def is_credit(self) -> bool:
        return self.payment_method == PaymentMethod.CREDIT or self.remaining_amount > 0


@dataclass(frozen=True)
class ProductionOutputLine:
    item_name: str
    bag_weight: Decimal
    bag_quantity: Decimal

    @property
    def gross_weight(self) -> Decimal:
        return self.bag_weight * self.bag_quantity

    @property
    def sub_type(self) -> str:
        return bag_sub_type(self.bag_weight)


@dataclass(frozen=True)
class ProductionPayload:
    """
    A production run: wheat ground at one warehouse, bags stocked at another.

    ``grinding`` holds the wheat quantity (kg) of each grinding batch.
    """

    production_code: str
    production_date: date
    wheat_warehouse_id: UUID
    output_warehouse_id: UUID
    grinding: tuple[Decimal, ...]
    outputs: tuple[ProductionOutputLine, ...]
    notes: str | None = None

    @property
    def total_wheat_used(self) -> Decimal:
        return sum(self.grinding, Decimal("0"))

    def gross_weight_excluding(self, excluded_items: tuple[str, ...]) -> Decimal:
        """Sum of output gross weights, skipping by-products such as bran."""
        excluded = {name.lower() for name in excluded_items}
        return sum(
            (line.gross_weight for line in self.outputs if line.item_name.lower() not in excluded),
            Decimal("0"),
        )


@dataclass(frozen=True)
class PostingMetadata:
    """Everything about a ledger transaction besides its accounts and amount."""

    created_by: UUID
    warehouse_id: UUID | None = None
    payment_method: PaymentMethod | None = None
    payment_status: PaymentStatus = PaymentStatus.COMPLETED
    is_payable: bool = False
    is_receivable: bool = False
    due_date: date | None = None
    reference: str | None = None
    description: str | None = None
    invoice_id: UUID | None = None
    transaction_date: datetime | None = None
