"""SQLAlchemy models for the mill kernel."""

from mill_kernel.models.account import (
    Account,
    AccountCategory,
    AccountStatus,
    AccountType,
)
from mill_kernel.models.invoice import Invoice, InvoiceKind, InvoiceStatus
from mill_kernel.models.party import Party, PartyStatus, PartyType
from mill_kernel.models.production import ProductionOutput, ProductionRun
from mill_kernel.models.stock import ItemType, StockEntry
from mill_kernel.models.transaction import (
    PaymentMethod,
    PaymentStatus,
    Transaction,
    TransactionType,
)
from mill_kernel.models.warehouse import Warehouse
from mill_kernel.services.sequence_service import SequenceCounter

__all__ = [
    "Account",
    "AccountCategory",
    "AccountStatus",
    "AccountType",
    "Invoice",
    "InvoiceKind",
    "InvoiceStatus",
    "ItemType",
    "Party",
    "PartyStatus",
    "PartyType",
    "PaymentMethod",
    "PaymentStatus",
    "ProductionOutput",
    "ProductionRun",
    "SequenceCounter",
    "StockEntry",
    "Transaction",
    "TransactionType",
    "Warehouse",
]
