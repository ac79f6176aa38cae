"""Services for the mill kernel (write side)."""

from mill_kernel.services.account_registry import AccountInfo, AccountRegistry
from mill_kernel.services.credit_policy import CreditPolicy
from mill_kernel.services.event_runner import EventRunner
from mill_kernel.services.ledger_engine import LedgerEngine, TransactionInfo
from mill_kernel.services.party_service import PartyInfo, PartyService
from mill_kernel.services.sequence_service import SequenceService
from mill_kernel.services.stock_ledger import StockEntryInfo, StockLedger
from mill_kernel.services.transaction_orchestrator import (
    EventResult,
    EventStatus,
    TransactionOrchestrator,
)
from mill_kernel.services.warehouse_service import WarehouseInfo, WarehouseService

__all__ = [
    "AccountInfo",
    "AccountRegistry",
    "CreditPolicy",
    "EventResult",
    "EventRunner",
    "EventStatus",
    "LedgerEngine",
    "PartyInfo",
    "PartyService",
    "SequenceService",
    "StockEntryInfo",
    "StockLedger",
    "TransactionInfo",
    "TransactionOrchestrator",
    "WarehouseInfo",
    "WarehouseService",
]
