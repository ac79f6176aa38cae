"""
Module: mill_kernel.selectors.ledger_selector
Responsibility: Read-only ledger queries: account statements with running
    balances, the trial balance, and verification of stored balances
    against the transactions table.
Architecture position: Kernel > Selectors.  May import from models/ and
    selectors/base.py.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Balance convention: a debit adds the amount to an account's balance
      and a credit subtracts it, for every account type.  This is the same
      convention LedgerEngine applies to current_balance.
    - Stored balances are an optimisation.  verify_account_balance()
      recomputes opening + debits - credits from the transactions and
      reports any drift.

Audit relevance:
    is_double_entry_balanced() checks that the net movement over all
    accounts is exactly zero, which holds after any sequence of postings.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from mill_kernel.exceptions import AccountNotFoundError
from mill_kernel.models.account import Account, AccountCategory, AccountType
from mill_kernel.models.transaction import PaymentStatus, Transaction, TransactionType
from mill_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class StatementLine:
    """One posting as seen from a single account."""

    transaction_id: UUID
    transaction_number: str
    transaction_date: datetime
    transaction_type: TransactionType
    counter_account_id: UUID
    debit: Decimal
    credit: Decimal
    running_balance: Decimal
    payment_status: PaymentStatus
    description: str | None


@dataclass(frozen=True)
class TrialBalanceRow:
    """A single row in a trial balance report."""

    account_id: UUID
    account_number: str
    account_name: str
    account_type: AccountType
    category: AccountCategory
    opening_balance: Decimal
    debit_total: Decimal
    credit_total: Decimal
    current_balance: Decimal

    @property
    def net_movement(self) -> Decimal:
        """Debits minus credits."""
        return self.debit_total - self.credit_total


@dataclass(frozen=True)
class BalanceCheck:
    account_id: UUID
    stored_balance: Decimal
    computed_balance: Decimal

    @property
    def is_consistent(self) -> bool:
        return self.stored_balance == self.computed_balance


class LedgerSelector(BaseSelector[Transaction]):
    """
    Selector for ledger queries.

    Non-goals:
        - No currency conversion; every account carries one currency.
    """

    def __init__(self, session: Session):
        super().__init__(session)

    def _get_account(self, account_id: UUID) -> Account:
        account = self.session.get(Account, account_id, populate_existing=True)
        if account is None:
            raise AccountNotFoundError(str(account_id))
        return account

    def _totals(self, account_id: UUID, before: datetime | None = None) -> tuple[Decimal, Decimal]:
        def total(column):
            stmt = select(func.coalesce(func.sum(Transaction.amount), 0)).where(column == account_id)
            if before is not None:
                stmt = stmt.where(Transaction.transaction_date < before)
            return self.session.execute(stmt).scalar_one()

        return total(Transaction.debit_account_id), total(Transaction.credit_account_id)

    def account_statement(
        self,
        account_id: UUID,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[StatementLine]:
        """
        Postings touching ``account_id`` in posting order, with the balance
        after each one.

        When ``start`` is given, the running balance begins from the opening
        balance plus every movement before ``start``.

        Raises:
            AccountNotFoundError: Unknown account.
        """
        account = self._get_account(account_id)
        balance = account.opening_balance
        if start is not None:
            debits, credits = self._totals(account_id, before=start)
            balance = balance + debits - credits

        stmt = select(Transaction).where(
            or_(
                Transaction.debit_account_id == account_id,
                Transaction.credit_account_id == account_id,
            )
        )
        if start is not None:
            stmt = stmt.where(Transaction.transaction_date >= start)
        if end is not None:
            stmt = stmt.where(Transaction.transaction_date <= end)
        stmt = stmt.order_by(Transaction.transaction_date, Transaction.transaction_number)

        lines = []
        for txn in self.session.execute(stmt).scalars():
            is_debit = txn.debit_account_id == account_id
            debit = txn.amount if is_debit else Decimal("0")
            credit = Decimal("0") if is_debit else txn.amount
            balance = balance + debit - credit
            lines.append(
                StatementLine(
                    transaction_id=txn.id,
                    transaction_number=txn.transaction_number,
                    transaction_date=txn.transaction_date,
                    transaction_type=TransactionType(txn.transaction_type),
                    counter_account_id=txn.credit_account_id if is_debit else txn.debit_account_id,
                    debit=debit,
                    credit=credit,
                    running_balance=balance,
                    payment_status=PaymentStatus(txn.payment_status),
                    description=txn.description,
                )
            )
        return lines

    def trial_balance(self) -> list[TrialBalanceRow]:
        """Every account with its debit / credit totals, by account number."""
        debits = (
            select(
                Transaction.debit_account_id.label("account_id"),
                func.sum(Transaction.amount).label("total"),
            )
            .group_by(Transaction.debit_account_id)
            .subquery()
        )
        credits = (
            select(
                Transaction.credit_account_id.label("account_id"),
                func.sum(Transaction.amount).label("total"),
            )
            .group_by(Transaction.credit_account_id)
            .subquery()
        )
        stmt = (
            select(
                Account,
                func.coalesce(debits.c.total, 0),
                func.coalesce(credits.c.total, 0),
            )
            .outerjoin(debits, debits.c.account_id == Account.id)
            .outerjoin(credits, credits.c.account_id == Account.id)
            .order_by(Account.account_number)
        )

        return [
            TrialBalanceRow(
                account_id=account.id,
                account_number=account.account_number,
                account_name=account.name,
                account_type=AccountType(account.account_type),
                category=AccountCategory(account.category),
                opening_balance=account.opening_balance,
                debit_total=debit_total,
                credit_total=credit_total,
                current_balance=account.current_balance,
            )
            for account, debit_total, credit_total in self.session.execute(stmt)
        ]

    def verify_account_balance(self, account_id: UUID) -> BalanceCheck:
        """Compare the stored balance with opening + debits - credits."""
        account = self._get_account(account_id)
        debits, credits = self._totals(account_id)
        return BalanceCheck(
            account_id=account_id,
            stored_balance=account.current_balance,
            computed_balance=account.opening_balance + debits - credits,
        )

    def is_double_entry_balanced(self) -> bool:
        """True iff the net movement over all accounts is exactly zero."""
        net = self.session.execute(
            select(
                func.coalesce(
                    func.sum(Account.current_balance - Account.opening_balance), 0
                )
            )
        ).scalar_one()
        return net == 0
