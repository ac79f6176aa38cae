"""
LedgerEngine -- atomic double-entry posting.

Responsibility:
    Posts one ledger transaction: allocates the next transaction number,
    inserts the Transaction row, and moves the two account balances.  Also
    settles PENDING transactions (PENDING -> COMPLETED).

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by TransactionOrchestrator; depends on SequenceService.

Invariants enforced:
    - Atomic posting: number allocation, insert, debit increment and credit
      decrement run inside one savepoint.  All four writes land or none do.
    - Balance moves are single SQL increments
      (``current_balance = current_balance + :amount``), never
      read-modify-write, so concurrent postings to one account never lose
      an update.
    - Debit balances go up by amount, credit balances go down by amount;
      the sum of (current - opening) over all accounts stays zero.
    - Transaction numbers come from the locked ``transaction`` counter
      (TXN-000001, TXN-000002, ...), never from a row count.

Failure modes:
    - InvalidAmountError: amount <= 0 or more than 2 decimal places.
    - ValidationError: debit == credit, unknown transaction type, or
      mixed-currency accounts.
    - AccountNotFoundError / AccountInactiveError: bad account reference.
    - ConcurrencyConflict: an account was deactivated between validation
      and the balance update.
    - InvalidStatusTransitionError: settling a non-PENDING transaction.

Audit relevance:
    Every posting emits ``transaction_posted`` with number, accounts and
    amount.  LedgerSelector.verify_account_balance recomputes balances from
    the transactions table.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from mill_config import MillConfig, get_active_config
from mill_kernel.db.types import require_positive_money
from mill_kernel.domain.clock import Clock, SystemClock
from mill_kernel.domain.dtos import PostingMetadata
from mill_kernel.exceptions import (
    AccountInactiveError,
    AccountNotFoundError,
    ConcurrencyConflict,
    InvalidStatusTransitionError,
    TransactionNotFoundError,
    ValidationError,
)
from mill_kernel.logging_config import get_logger
from mill_kernel.models.account import Account, AccountStatus
from mill_kernel.models.transaction import (
    PaymentMethod,
    PaymentStatus,
    Transaction,
    TransactionType,
)
from mill_kernel.services.base import BaseService
from mill_kernel.services.sequence_service import SequenceService

logger = get_logger("services.ledger_engine")


@dataclass(frozen=True)
class TransactionInfo:
    """Immutable DTO for a ledger transaction."""

    id: UUID
    transaction_number: str
    transaction_date: datetime
    transaction_type: TransactionType
    debit_account_id: UUID
    credit_account_id: UUID
    amount: Decimal
    currency: str
    warehouse_id: UUID | None
    created_by_id: UUID
    payment_method: PaymentMethod | None
    payment_status: PaymentStatus
    is_payable: bool
    is_receivable: bool
    due_date: date | None
    reference: str | None
    description: str | None
    invoice_id: UUID | None


def format_transaction_number(value: int) -> str:
    return f"TXN-{value:06d}"


class LedgerEngine(BaseService[Transaction]):
    """Posts and settles double-entry ledger transactions."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: MillConfig | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._config = config or get_active_config()
        self._sequences = SequenceService(session)

    def _to_dto(self, txn: Transaction) -> TransactionInfo:
        return TransactionInfo(
            id=txn.id,
            transaction_number=txn.transaction_number,
            transaction_date=txn.transaction_date,
            transaction_type=TransactionType(txn.transaction_type),
            debit_account_id=txn.debit_account_id,
            credit_account_id=txn.credit_account_id,
            amount=txn.amount,
            currency=txn.currency,
            warehouse_id=txn.warehouse_id,
            created_by_id=txn.created_by_id,
            payment_method=PaymentMethod(txn.payment_method) if txn.payment_method else None,
            payment_status=PaymentStatus(txn.payment_status),
            is_payable=txn.is_payable,
            is_receivable=txn.is_receivable,
            due_date=txn.due_date,
            reference=txn.reference,
            description=txn.description,
            invoice_id=txn.invoice_id,
        )

    def _require_postable(self, account_id: UUID) -> Account:
        account = self.session.get(Account, account_id, populate_existing=True)
        if account is None:
            raise AccountNotFoundError(str(account_id))
        if account.status != AccountStatus.ACTIVE:
            raise AccountInactiveError(str(account_id))
        return account

    def _apply_balance(self, account_id: UUID, signed_amount: Decimal) -> None:
        result = self.session.execute(
            update(Account)
            .where(
                Account.id == account_id,
                Account.status == AccountStatus.ACTIVE.value,
            )
            .values(current_balance=Account.current_balance + signed_amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConcurrencyConflict(
                "Account", str(account_id), "account deactivated during posting"
            )

    def get_transaction(self, transaction_id: UUID) -> TransactionInfo:
        """
        Raises:
            TransactionNotFoundError: If the transaction doesn't exist.
        """
        txn = self.session.get(Transaction, transaction_id, populate_existing=True)
        if txn is None:
            raise TransactionNotFoundError(str(transaction_id))
        return self._to_dto(txn)

    def transactions_for_invoice(self, invoice_id: UUID) -> tuple[TransactionInfo, ...]:
        """All postings linked to an invoice, in posting order."""
        rows = self.session.execute(
            select(Transaction)
            .where(Transaction.invoice_id == invoice_id)
            .order_by(Transaction.transaction_number)
            .execution_options(populate_existing=True)
        ).scalars()
        return tuple(self._to_dto(txn) for txn in rows)

    def pending_transactions_for_invoice(self, invoice_id: UUID) -> list[UUID]:
        return list(
            self.session.execute(
                select(Transaction.id)
                .where(
                    Transaction.invoice_id == invoice_id,
                    Transaction.payment_status == PaymentStatus.PENDING.value,
                )
                .order_by(Transaction.transaction_number)
            ).scalars()
        )

    def post_transaction(
        self,
        transaction_type: TransactionType | str,
        debit_account_id: UUID,
        credit_account_id: UUID,
        amount: Decimal,
        metadata: PostingMetadata,
    ) -> TransactionInfo:
        """
        Post ``amount`` from ``credit_account_id`` to ``debit_account_id``.

        Preconditions:
            - amount > 0 with at most two decimal places.
            - Both accounts exist, are ACTIVE, and share a currency.

        Postconditions:
            - A Transaction row with the next TXN number exists.
            - debit balance += amount; credit balance -= amount.

        Raises:
            See module docstring.
        """
        try:
            transaction_type = TransactionType(transaction_type)
        except ValueError:
            raise ValidationError(
                f"Unknown transaction type: {transaction_type}", field="transaction_type"
            ) from None
        amount = require_positive_money(amount)
        if debit_account_id == credit_account_id:
            raise ValidationError(
                "Debit and credit accounts must differ", field="credit_account_id"
            )

        with self.session.begin_nested():
            debit = self._require_postable(debit_account_id)
            credit = self._require_postable(credit_account_id)
            if debit.currency != credit.currency:
                raise ValidationError(
                    f"Currency mismatch: {debit.currency} vs {credit.currency}",
                    field="credit_account_id",
                )

            number = format_transaction_number(
                self._sequences.next_value(SequenceService.TRANSACTION)
            )
            txn = Transaction(
                transaction_number=number,
                transaction_date=metadata.transaction_date or self._clock.now(),
                transaction_type=transaction_type.value,
                debit_account_id=debit_account_id,
                credit_account_id=credit_account_id,
                amount=amount,
                currency=debit.currency,
                warehouse_id=metadata.warehouse_id,
                created_by_id=metadata.created_by,
                payment_method=metadata.payment_method.value if metadata.payment_method else None,
                payment_status=PaymentStatus(metadata.payment_status).value,
                is_payable=metadata.is_payable,
                is_receivable=metadata.is_receivable,
                due_date=metadata.due_date,
                reference=metadata.reference,
                description=metadata.description,
                invoice_id=metadata.invoice_id,
            )
            self.session.add(txn)
            self.session.flush()

            # Fixed lock order across concurrent postings.
            moves = sorted(
                [(debit_account_id, amount), (credit_account_id, -amount)],
                key=lambda move: str(move[0]),
            )
            for account_id, signed_amount in moves:
                self._apply_balance(account_id, signed_amount)

        logger.info(
            "transaction_posted",
            extra={
                "transaction_id": str(txn.id),
                "transaction_number": number,
                "transaction_type": transaction_type.value,
                "debit_account_id": str(debit_account_id),
                "credit_account_id": str(credit_account_id),
                "amount": amount,
                "payment_status": txn.payment_status,
            },
        )
        return self._to_dto(txn)

    def complete_transaction(self, transaction_id: UUID, actor_id: UUID) -> TransactionInfo:
        """
        Settle a PENDING transaction (PENDING -> COMPLETED).

        Raises:
            TransactionNotFoundError: Unknown transaction.
            InvalidStatusTransitionError: Transaction is not PENDING.
        """
        txn = self.session.get(Transaction, transaction_id, populate_existing=True)
        if txn is None:
            raise TransactionNotFoundError(str(transaction_id))
        if txn.payment_status != PaymentStatus.PENDING:
            raise InvalidStatusTransitionError(
                "Transaction",
                str(transaction_id),
                str(txn.payment_status),
                PaymentStatus.COMPLETED.value,
            )
        txn.payment_status = PaymentStatus.COMPLETED.value
        txn.updated_by_id = actor_id
        self.session.flush()
        logger.info(
            "transaction_completed",
            extra={
                "transaction_id": str(txn.id),
                "transaction_number": txn.transaction_number,
            },
        )
        return self._to_dto(txn)
