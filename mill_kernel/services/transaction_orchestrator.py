"""
TransactionOrchestrator -- one business event, one atomic unit.

Responsibility:
    Turns a sale, purchase, payment or production run into its ledger
    postings, invoice row and stock adjustments.  Each public record_*
    method is one logical business event.

Architecture position:
    Kernel > Services -- imperative shell.
    Composes AccountRegistry, StockLedger, LedgerEngine and CreditPolicy.
    Does NOT commit; EventRunner (or the caller) owns the transaction.

Invariants enforced:
    - All-or-nothing: every event runs inside one savepoint.  A failed
      credit check, stock shortage or posting error rolls back every
      invoice row, posting and stock adjustment of that event.
    - Idempotency: the invoice number (per kind) and the production code
      are the event keys, stripped of surrounding whitespace before they are
      keyed, looked up or stored.  Replaying a recorded event posts nothing and
      returns ALREADY_RECORDED with the original postings.
    - Credit check and receivable posting share one transaction, so the
      buyer lock taken by CreditPolicy covers both.
    - Transaction state machine: created -> PENDING -> COMPLETED, or
      created -> COMPLETED.  Settlement is a new posting plus the
      PENDING -> COMPLETED move of the original receivable / payable.

Posting shapes:
    Credit sale:   Receivable / Revenue (total, PENDING)
                   + Cash-or-Bank / Receivable (paid, COMPLETED) if paid > 0
    Cash sale:     Cash-or-Bank / Revenue (total, COMPLETED)
    Credit purchase: Expense / Payable (total, PENDING)
                   + Payable / Cash-or-Bank (paid, COMPLETED) if paid > 0
    Cash purchase: Expense / Cash-or-Bank (total, COMPLETED)
    Receipt:       Cash-or-Bank / Receivable
    Supplier payment: Payable / Cash-or-Bank

Failure modes:
    - ValidationError family: bad amounts, paid > total, overpayment.
    - NotFoundError family: unknown party, warehouse or invoice.
    - CreditLimitExceededError, InsufficientStockError: zero side effects.
    - ConcurrencyConflict: a concurrent session recorded the same event
      key first (unique violation); safe to retry.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, timedelta
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from mill_config import MillConfig, get_active_config
from mill_kernel.db.types import require_positive_money, to_money, to_quantity
from mill_kernel.domain.clock import Clock, SystemClock
from mill_kernel.domain.dtos import (
    PostingMetadata,
    ProductionPayload,
    PurchasePayload,
    SalePayload,
    StockLine,
)
from mill_kernel.exceptions import (
    ConcurrencyConflict,
    InvalidAmountError,
    InvoiceNotFoundError,
    OverpaymentError,
    ValidationError,
)
from mill_kernel.logging_config import LogContext, get_logger
from mill_kernel.models.invoice import Invoice, InvoiceKind, InvoiceStatus
from mill_kernel.models.party import PartyType
from mill_kernel.models.production import ProductionOutput, ProductionRun
from mill_kernel.models.stock import ItemType
from mill_kernel.models.transaction import PaymentMethod, PaymentStatus, TransactionType
from mill_kernel.services.account_registry import AccountInfo, AccountRegistry
from mill_kernel.services.credit_policy import CreditPolicy
from mill_kernel.services.ledger_engine import LedgerEngine, TransactionInfo
from mill_kernel.services.party_service import PartyInfo, PartyService
from mill_kernel.services.stock_ledger import StockLedger
from mill_kernel.services.warehouse_service import WarehouseService
from mill_kernel.utils.idempotency import generate_idempotency_key, normalize_business_key

logger = get_logger("services.transaction_orchestrator")


class EventStatus(str, Enum):
    RECORDED = "recorded"
    ALREADY_RECORDED = "already_recorded"


@dataclass(frozen=True)
class EventResult:
    """Outcome of one business event."""

    status: EventStatus
    event_key: str
    transactions: tuple[TransactionInfo, ...] = ()
    invoice_id: UUID | None = None
    production_run_id: UUID | None = None
    remaining_amount: Decimal | None = None

    @property
    def is_replay(self) -> bool:
        return self.status == EventStatus.ALREADY_RECORDED


def coerce_payment_method(value: PaymentMethod | str) -> PaymentMethod:
    try:
        return PaymentMethod(value)
    except ValueError:
        raise ValidationError(f"Unknown payment method: {value}", field="payment_method") from None


def settlement_role(payment_method: PaymentMethod) -> str:
    """Bank transfers settle through the bank account; everything else through cash."""
    return "bank" if payment_method == PaymentMethod.BANK_TRANSFER else "cash"


class TransactionOrchestrator:
    """
    Records mill business events atomically.

    Non-goals:
        - Does NOT call ``session.commit()``.
        - Does NOT retry; EventRunner re-runs keyed events on conflict.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: MillConfig | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or get_active_config()
        self._accounts = AccountRegistry(session, self._config)
        self._stock = StockLedger(session, self._clock, self._config)
        self._ledger = LedgerEngine(session, self._clock, self._config)
        self._credit = CreditPolicy(session)
        self._parties = PartyService(session)
        self._warehouses = WarehouseService(session)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _find_invoice(self, kind: InvoiceKind, invoice_number: str, lock: bool = False) -> Invoice | None:
        stmt = select(Invoice).where(
            Invoice.invoice_kind == kind.value,
            Invoice.invoice_number == invoice_number,
        )
        if lock:
            stmt = stmt.with_for_update()
        return self._session.execute(
            stmt.execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _replay(self, event_key: str, invoice: Invoice) -> EventResult:
        logger.info("event_already_recorded", extra={"invoice_id": str(invoice.id)})
        return EventResult(
            status=EventStatus.ALREADY_RECORDED,
            event_key=event_key,
            transactions=self._ledger.transactions_for_invoice(invoice.id),
            invoice_id=invoice.id,
            remaining_amount=invoice.remaining_amount,
        )

    def _role(self, role: str, actor_id: UUID) -> AccountInfo:
        return self._accounts.resolve_role(role, actor_id)

    @staticmethod
    def _amounts(total_amount, paid_amount) -> tuple[Decimal, Decimal, Decimal]:
        total = require_positive_money(total_amount, "total_amount")
        paid = to_money(paid_amount, "paid_amount")
        if paid < 0 or paid > total:
            raise InvalidAmountError(
                paid_amount, "must be between 0 and total_amount", field="paid_amount"
            )
        return total, paid, total - paid

    def _due_date(self, party: PartyInfo, invoice_date: date, explicit: date | None) -> date:
        if explicit is not None:
            return explicit
        terms = party.payment_terms_days
        if terms is None:
            terms = self._config.credit.default_payment_terms_days
        return invoice_date + timedelta(days=terms)

    def _apply_stock_lines(
        self,
        warehouse_id: UUID,
        lines: tuple[StockLine, ...],
        sign: int,
        actor_id: UUID,
    ) -> None:
        for line in lines:
            quantity = to_quantity(line.quantity)
            if quantity <= 0:
                raise InvalidAmountError(line.quantity, "must be greater than zero", field="quantity")
            self._stock.adjust_stock(
                warehouse_id,
                line.item_name,
                line.item_type,
                line.sub_type,
                quantity * sign,
                actor_id,
            )

    def _new_invoice(
        self,
        kind: InvoiceKind,
        invoice_number: str,
        party_id: UUID,
        warehouse_id: UUID,
        invoice_date: date,
        due_date: date | None,
        payment_method: PaymentMethod,
        total: Decimal,
        paid: Decimal,
        notes: str | None,
        actor_id: UUID,
    ) -> Invoice:
        remaining = total - paid
        invoice = Invoice(
            invoice_kind=kind.value,
            invoice_number=invoice_number,
            party_id=party_id,
            warehouse_id=warehouse_id,
            invoice_date=invoice_date,
            due_date=due_date,
            payment_method=payment_method.value,
            total_amount=total,
            paid_amount=paid,
            remaining_amount=remaining,
            status=(InvoiceStatus.PENDING if remaining > 0 else InvoiceStatus.COMPLETED).value,
            notes=notes,
            created_by_id=actor_id,
        )
        self._session.add(invoice)
        self._session.flush()
        return invoice

    # ------------------------------------------------------------------
    # Sales
    # ------------------------------------------------------------------

    def record_sale(self, sale: SalePayload, warehouse_id: UUID, created_by: UUID) -> EventResult:
        """
        Record a sale: invoice, ledger postings and outgoing stock.

        Preconditions:
            - 0 <= paid_amount <= total_amount, total_amount > 0.
            - The buyer can transact; the warehouse is active.

        Postconditions:
            - Exactly the postings listed in the module docstring exist.
            - Stock lines are deducted from ``warehouse_id``.
            - The buyer's outstanding total grew by the remaining amount.

        Raises:
            CreditLimitExceededError: Remaining amount does not fit under
                the buyer's limit.  Nothing is written.
            InsufficientStockError: A stock line exceeds what is on hand.
        """
        sale = replace(sale, invoice_number=normalize_business_key(sale.invoice_number, "invoice_number"))
        event_key = generate_idempotency_key("sale", sale.invoice_number)

        with LogContext.bind(event_key=event_key, actor_id=created_by, warehouse_id=warehouse_id):
            existing = self._find_invoice(InvoiceKind.SALE, sale.invoice_number)
            if existing is not None:
                return self._replay(event_key, existing)

            try:
                with self._session.begin_nested():
                    result = self._record_sale(sale, warehouse_id, created_by, event_key)
            except IntegrityError as exc:
                raise ConcurrencyConflict(
                    "Invoice", sale.invoice_number, "sale recorded concurrently"
                ) from exc

            logger.info(
                "sale_recorded",
                extra={
                    "invoice_number": sale.invoice_number,
                    "transaction_count": len(result.transactions),
                    "remaining_amount": result.remaining_amount,
                },
            )
            return result

    def _record_sale(
        self,
        sale: SalePayload,
        warehouse_id: UUID,
        created_by: UUID,
        event_key: str,
    ) -> EventResult:
        total, paid, remaining = self._amounts(sale.total_amount, sale.paid_amount)
        method = coerce_payment_method(sale.payment_method)
        is_credit = method == PaymentMethod.CREDIT or remaining > 0

        self._warehouses.require_active(warehouse_id)
        buyer = self._parties.validate_can_transact(sale.buyer_id, PartyType.BUYER)
        if is_credit:
            self._credit.check_credit_limit(sale.buyer_id, remaining)

        invoice_date = sale.invoice_date or self._clock.today()
        due_date = self._due_date(buyer, invoice_date, sale.due_date) if is_credit else sale.due_date
        invoice = self._new_invoice(
            InvoiceKind.SALE,
            sale.invoice_number,
            sale.buyer_id,
            warehouse_id,
            invoice_date,
            due_date,
            method,
            total,
            paid,
            sale.notes,
            created_by,
        )

        self._apply_stock_lines(warehouse_id, sale.items, -1, created_by)

        revenue = self._role("revenue", created_by)
        settlement = self._role(settlement_role(method), created_by)
        transactions: list[TransactionInfo] = []

        if is_credit:
            receivable = self._role("receivable", created_by)
            transactions.append(
                self._ledger.post_transaction(
                    TransactionType.SALE,
                    receivable.id,
                    revenue.id,
                    total,
                    PostingMetadata(
                        created_by=created_by,
                        warehouse_id=warehouse_id,
                        payment_method=method,
                        payment_status=PaymentStatus.PENDING,
                        is_receivable=True,
                        due_date=due_date,
                        reference=sale.invoice_number,
                        description=f"Sale - Invoice {sale.invoice_number} - {buyer.name}",
                        invoice_id=invoice.id,
                    ),
                )
            )
            if paid > 0:
                transactions.append(
                    self._ledger.post_transaction(
                        TransactionType.RECEIPT,
                        settlement.id,
                        receivable.id,
                        paid,
                        PostingMetadata(
                            created_by=created_by,
                            warehouse_id=warehouse_id,
                            payment_method=method,
                            reference=sale.invoice_number,
                            description=f"Payment received - Invoice {sale.invoice_number} - {buyer.name}",
                            invoice_id=invoice.id,
                        ),
                    )
                )
            if remaining == 0:
                # Credit method but paid in full at once.
                transactions[0] = self._ledger.complete_transaction(transactions[0].id, created_by)
        else:
            transactions.append(
                self._ledger.post_transaction(
                    TransactionType.SALE,
                    settlement.id,
                    revenue.id,
                    total,
                    PostingMetadata(
                        created_by=created_by,
                        warehouse_id=warehouse_id,
                        payment_method=method,
                        reference=sale.invoice_number,
                        description=f"Cash Sale - Invoice {sale.invoice_number} - {buyer.name}",
                        invoice_id=invoice.id,
                    ),
                )
            )

        return EventResult(
            status=EventStatus.RECORDED,
            event_key=event_key,
            transactions=tuple(transactions),
            invoice_id=invoice.id,
            remaining_amount=remaining,
        )

    # ------------------------------------------------------------------
    # Purchases
    # ------------------------------------------------------------------

    def record_purchase(
        self,
        purchase: PurchasePayload,
        warehouse_id: UUID,
        created_by: UUID,
    ) -> EventResult:
        """
        Record a purchase: invoice, ledger postings and incoming stock.

        Mirror image of record_sale with Payable / Expense accounts.  There
        is no credit check on purchases.
        """
        purchase = replace(
            purchase, invoice_number=normalize_business_key(purchase.invoice_number, "invoice_number")
        )
        event_key = generate_idempotency_key("purchase", purchase.invoice_number)

        with LogContext.bind(event_key=event_key, actor_id=created_by, warehouse_id=warehouse_id):
            existing = self._find_invoice(InvoiceKind.PURCHASE, purchase.invoice_number)
            if existing is not None:
                return self._replay(event_key, existing)

            try:
                with self._session.begin_nested():
                    result = self._record_purchase(purchase, warehouse_id, created_by, event_key)
            except IntegrityError as exc:
                raise ConcurrencyConflict(
                    "Invoice", purchase.invoice_number, "purchase recorded concurrently"
                ) from exc

            logger.info(
                "purchase_recorded",
                extra={
                    "invoice_number": purchase.invoice_number,
                    "transaction_count": len(result.transactions),
                    "remaining_amount": result.remaining_amount,
                },
            )
            return result

    def _record_purchase(
        self,
        purchase: PurchasePayload,
        warehouse_id: UUID,
        created_by: UUID,
        event_key: str,
    ) -> EventResult:
        total, paid, remaining = self._amounts(purchase.total_amount, purchase.paid_amount)
        method = coerce_payment_method(purchase.payment_method)
        is_credit = method == PaymentMethod.CREDIT or remaining > 0

        self._warehouses.require_active(warehouse_id)
        supplier = self._parties.validate_can_transact(purchase.supplier_id, PartyType.SUPPLIER)

        invoice_date = purchase.invoice_date or self._clock.today()
        due_date = (
            self._due_date(supplier, invoice_date, purchase.due_date) if is_credit else purchase.due_date
        )
        invoice = self._new_invoice(
            InvoiceKind.PURCHASE,
            purchase.invoice_number,
            purchase.supplier_id,
            warehouse_id,
            invoice_date,
            due_date,
            method,
            total,
            paid,
            purchase.notes,
            created_by,
        )

        self._apply_stock_lines(warehouse_id, purchase.items, 1, created_by)

        expense = self._role("expense", created_by)
        settlement = self._role(settlement_role(method), created_by)
        transactions: list[TransactionInfo] = []

        if is_credit:
            payable = self._role("payable", created_by)
            transactions.append(
                self._ledger.post_transaction(
                    TransactionType.PURCHASE,
                    expense.id,
                    payable.id,
                    total,
                    PostingMetadata(
                        created_by=created_by,
                        warehouse_id=warehouse_id,
                        payment_method=method,
                        payment_status=PaymentStatus.PENDING,
                        is_payable=True,
                        due_date=due_date,
                        reference=purchase.invoice_number,
                        description=f"Purchase - {purchase.invoice_number} - {supplier.name}",
                        invoice_id=invoice.id,
                    ),
                )
            )
            if paid > 0:
                transactions.append(
                    self._ledger.post_transaction(
                        TransactionType.PAYMENT,
                        payable.id,
                        settlement.id,
                        paid,
                        PostingMetadata(
                            created_by=created_by,
                            warehouse_id=warehouse_id,
                            payment_method=method,
                            reference=purchase.invoice_number,
                            description=f"Payment made - {purchase.invoice_number} - {supplier.name}",
                            invoice_id=invoice.id,
                        ),
                    )
                )
            if remaining == 0:
                transactions[0] = self._ledger.complete_transaction(transactions[0].id, created_by)
        else:
            transactions.append(
                self._ledger.post_transaction(
                    TransactionType.PURCHASE,
                    expense.id,
                    settlement.id,
                    total,
                    PostingMetadata(
                        created_by=created_by,
                        warehouse_id=warehouse_id,
                        payment_method=method,
                        reference=purchase.invoice_number,
                        description=f"Cash Purchase - {purchase.invoice_number} - {supplier.name}",
                        invoice_id=invoice.id,
                    ),
                )
            )

        return EventResult(
            status=EventStatus.RECORDED,
            event_key=event_key,
            transactions=tuple(transactions),
            invoice_id=invoice.id,
            remaining_amount=remaining,
        )

    # ------------------------------------------------------------------
    # Settlement
    # ------------------------------------------------------------------

    def record_receipt(
        self,
        invoice_number: str,
        amount: Decimal,
        created_by: UUID,
        payment_method: PaymentMethod = PaymentMethod.CASH,
    ) -> EventResult:
        """
        Record money received against a sale invoice.

        When the invoice's remaining amount reaches zero the invoice is
        completed and its PENDING receivable posting moves to COMPLETED.

        Raises:
            InvoiceNotFoundError: Unknown sale invoice.
            OverpaymentError: ``amount`` exceeds the remaining amount.
        """
        return self._settle(
            InvoiceKind.SALE,
            invoice_number,
            amount,
            created_by,
            coerce_payment_method(payment_method),
        )

    def record_supplier_payment(
        self,
        invoice_number: str,
        amount: Decimal,
        created_by: UUID,
        payment_method: PaymentMethod = PaymentMethod.CASH,
    ) -> EventResult:
        """Record money paid against a purchase invoice.  Mirror of record_receipt."""
        return self._settle(
            InvoiceKind.PURCHASE,
            invoice_number,
            amount,
            created_by,
            coerce_payment_method(payment_method),
        )

    def _settle(
        self,
        kind: InvoiceKind,
        invoice_number: str,
        amount: Decimal,
        created_by: UUID,
        method: PaymentMethod,
    ) -> EventResult:
        invoice_number = normalize_business_key(invoice_number, "invoice_number")
        amount = require_positive_money(amount)
        event_key = generate_idempotency_key(f"{kind.value}_settlement", invoice_number)

        with LogContext.bind(event_key=event_key, actor_id=created_by):
            with self._session.begin_nested():
                invoice = self._find_invoice(kind, invoice_number, lock=True)
                if invoice is None:
                    raise InvoiceNotFoundError(invoice_number, kind.value)
                if amount > invoice.remaining_amount:
                    raise OverpaymentError(invoice_number, invoice.remaining_amount, amount)

                settlement = self._role(settlement_role(method), created_by)
                if kind == InvoiceKind.SALE:
                    receivable = self._role("receivable", created_by)
                    txn = self._ledger.post_transaction(
                        TransactionType.RECEIPT,
                        settlement.id,
                        receivable.id,
                        amount,
                        PostingMetadata(
                            created_by=created_by,
                            warehouse_id=invoice.warehouse_id,
                            payment_method=method,
                            reference=invoice_number,
                            description=f"Payment received - Invoice {invoice_number}",
                            invoice_id=invoice.id,
                        ),
                    )
                else:
                    payable = self._role("payable", created_by)
                    txn = self._ledger.post_transaction(
                        TransactionType.PAYMENT,
                        payable.id,
                        settlement.id,
                        amount,
                        PostingMetadata(
                            created_by=created_by,
                            warehouse_id=invoice.warehouse_id,
                            payment_method=method,
                            reference=invoice_number,
                            description=f"Payment made - {invoice_number}",
                            invoice_id=invoice.id,
                        ),
                    )

                invoice.paid_amount = invoice.paid_amount + amount
                invoice.remaining_amount = invoice.remaining_amount - amount
                invoice.updated_by_id = created_by
                transactions = [txn]
                if invoice.remaining_amount == 0:
                    invoice.status = InvoiceStatus.COMPLETED.value
                    for pending_id in self._ledger.pending_transactions_for_invoice(invoice.id):
                        transactions.append(self._ledger.complete_transaction(pending_id, created_by))
                self._session.flush()

            logger.info(
                "invoice_settled",
                extra={
                    "invoice_number": invoice_number,
                    "invoice_kind": kind.value,
                    "amount": amount,
                    "remaining_amount": invoice.remaining_amount,
                },
            )
            return EventResult(
                status=EventStatus.RECORDED,
                event_key=event_key,
                transactions=tuple(transactions),
                invoice_id=invoice.id,
                remaining_amount=invoice.remaining_amount,
            )

    def mark_overdue_invoices(self, as_of: date | None = None) -> int:
        """
        Move PENDING invoices whose due date is before ``as_of`` to OVERDUE.

        Overdue invoices still count towards a buyer's outstanding total.

        Returns:
            Number of invoices marked.
        """
        as_of = as_of or self._clock.today()
        result = self._session.execute(
            update(Invoice)
            .where(
                Invoice.status == InvoiceStatus.PENDING.value,
                Invoice.due_date.is_not(None),
                Invoice.due_date < as_of,
            )
            .values(status=InvoiceStatus.OVERDUE.value)
            .execution_options(synchronize_session=False)
        )
        logger.info("invoices_marked_overdue", extra={"as_of": as_of, "count": result.rowcount})
        return result.rowcount

    # ------------------------------------------------------------------
    # Production
    # ------------------------------------------------------------------

    def record_production(self, run: ProductionPayload, created_by: UUID) -> EventResult:
        """
        Record a production run.

        Deducts the total wheat ground from the wheat warehouse and stocks
        every output line (by-products included) at the output warehouse,
        keyed by (item, bags, "<bag_weight>kg").

        Raises:
            ValidationError: No grinding batches or outputs, or a
                non-positive quantity.
            InsufficientStockError: Not enough wheat; nothing is stocked.
        """
        run = replace(run, production_code=normalize_business_key(run.production_code, "production_code"))
        event_key = generate_idempotency_key("production", run.production_code)

        with LogContext.bind(event_key=event_key, actor_id=created_by):
            existing = self._session.execute(
                select(ProductionRun).where(ProductionRun.production_code == run.production_code)
            ).scalar_one_or_none()
            if existing is not None:
                logger.info("event_already_recorded", extra={"production_run_id": str(existing.id)})
                return EventResult(
                    status=EventStatus.ALREADY_RECORDED,
                    event_key=event_key,
                    production_run_id=existing.id,
                )

            try:
                with self._session.begin_nested():
                    production_run = self._record_production(run, created_by)
            except IntegrityError as exc:
                raise ConcurrencyConflict(
                    "ProductionRun", run.production_code, "production recorded concurrently"
                ) from exc

            logger.info(
                "production_recorded",
                extra={
                    "production_code": run.production_code,
                    "total_wheat_used": production_run.total_wheat_used,
                    "gross_weight_excluding_bran": production_run.gross_weight_excluding_bran,
                    "output_lines": len(run.outputs),
                },
            )
            return EventResult(
                status=EventStatus.RECORDED,
                event_key=event_key,
                production_run_id=production_run.id,
            )

    def _record_production(self, run: ProductionPayload, created_by: UUID) -> ProductionRun:
        if not run.grinding:
            raise ValidationError("At least one grinding batch is required", field="grinding")
        if not run.outputs:
            raise ValidationError("At least one output line is required", field="outputs")
        for batch in run.grinding:
            if to_quantity(batch, "grinding") <= 0:
                raise InvalidAmountError(batch, "must be greater than zero", field="grinding")
        for line in run.outputs:
            if to_quantity(line.bag_weight, "bag_weight") <= 0:
                raise InvalidAmountError(line.bag_weight, "must be greater than zero", field="bag_weight")
            if to_quantity(line.bag_quantity, "bag_quantity") <= 0:
                raise InvalidAmountError(line.bag_quantity, "must be greater than zero", field="bag_quantity")
            to_quantity(line.gross_weight, "gross_weight")

        settings = self._config.production
        total_wheat = run.total_wheat_used

        self._stock.adjust_stock(
            run.wheat_warehouse_id,
            settings.wheat_item_name,
            ItemType.WHEAT,
            None,
            -total_wheat,
            created_by,
        )
        for line in run.outputs:
            self._stock.adjust_stock(
                run.output_warehouse_id,
                line.item_name,
                ItemType.BAGS,
                line.sub_type,
                line.bag_quantity,
                created_by,
            )

        production_run = ProductionRun(
            production_code=run.production_code,
            production_date=run.production_date,
            wheat_warehouse_id=run.wheat_warehouse_id,
            output_warehouse_id=run.output_warehouse_id,
            total_wheat_used=total_wheat,
            gross_weight_excluding_bran=run.gross_weight_excluding(settings.excluded_from_gross_weight),
            notes=run.notes,
            created_by_id=created_by,
            outputs=[
                ProductionOutput(
                    line_no=index,
                    item_name=line.item_name,
                    bag_weight=line.bag_weight,
                    bag_quantity=line.bag_quantity,
                    gross_weight=line.gross_weight,
                )
                for index, line in enumerate(run.outputs, start=1)
            ],
        )
        self._session.add(production_run)
        self._session.flush()
        return production_run
