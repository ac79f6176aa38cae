"""
ORM-level immutability of posted ledger transactions.

Only the PENDING -> COMPLETED settlement may change a stored transaction;
every other update, and every delete, is rejected at flush time.
"""

from decimal import Decimal

import pytest

from mill_kernel.domain.dtos import PostingMetadata
from mill_kernel.exceptions import ImmutabilityViolationError
from mill_kernel.models.transaction import PaymentStatus, Transaction, TransactionType
from mill_kernel.services.ledger_engine import LedgerEngine


@pytest.fixture
def posted(session, default_accounts, test_actor_id):
    txn = LedgerEngine(session).post_transaction(
        TransactionType.SALE,
        default_accounts["receivable"].id,
        default_accounts["revenue"].id,
        Decimal("100"),
        PostingMetadata(
            created_by=test_actor_id,
            payment_status=PaymentStatus.PENDING,
            is_receivable=True,
        ),
    )
    return session.get(Transaction, txn.id)


class TestTransactionImmutability:

    def test_amount_cannot_change(self, session, posted):
        posted.amount = Decimal("1")

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()

        assert exc_info.value.entity_type == "Transaction"
        assert "amount" in exc_info.value.reason

    def test_accounts_cannot_change(self, session, posted, default_accounts):
        posted.debit_account_id = default_accounts["cash"].id

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_cannot_delete(self, session, posted):
        session.delete(posted)

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_pending_to_completed_allowed(self, session, posted, test_actor_id):
        posted.payment_status = PaymentStatus.COMPLETED.value
        posted.updated_by_id = test_actor_id
        session.flush()

        assert session.get(Transaction, posted.id, populate_existing=True).payment_status == "Completed"

    def test_completed_cannot_reopen(self, session, posted):
        posted.payment_status = PaymentStatus.COMPLETED.value
        session.flush()

        posted.payment_status = PaymentStatus.PENDING.value
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_pending_cannot_be_cancelled(self, session, posted):
        posted.payment_status = PaymentStatus.CANCELLED.value

        with pytest.raises(ImmutabilityViolationError):
            session.flush()
