"""
Tests for EventRunner.

Handlers are plain callables, so conflicts can be injected without
threads.  Committed rows are removed by the session_factory fixture.
"""

from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from mill_kernel.domain.dtos import SalePayload
from mill_kernel.exceptions import ConcurrencyConflict, CreditLimitExceededError
from mill_kernel.models.invoice import Invoice
from mill_kernel.models.transaction import PaymentMethod, Transaction
from mill_kernel.services.event_runner import EventRunner, is_retryable_db_error
from mill_kernel.services.transaction_orchestrator import EventStatus, TransactionOrchestrator


class _FakeOrig(Exception):
    def __init__(self, message, pgcode=None):
        super().__init__(message)
        self.pgcode = pgcode


def db_error(message, pgcode=None):
    return OperationalError("UPDATE accounts ...", {}, _FakeOrig(message, pgcode))


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def runner(session_factory, config, sleeps):
    return EventRunner(session_factory=session_factory, config=config, sleep=sleeps.append)


def count(session_factory, model):
    s = session_factory()
    try:
        return s.execute(select(func.count()).select_from(model)).scalar_one()
    finally:
        s.close()


class TestRetryPolicy:

    def test_keyed_event_retried_after_conflict(self, runner, sleeps):
        calls = []

        def handler(session):
            calls.append(session)
            if len(calls) < 3:
                raise ConcurrencyConflict("Account", "x", "lost race")
            return "done"

        assert runner.run(handler, idempotency_key="sale:INV-1") == "done"
        assert len(calls) == 3
        # Each attempt gets its own session.
        assert calls[0] is not calls[1]
        assert sleeps == [0.05, 0.1]

    def test_gives_up_after_max_attempts(self, runner, sleeps, captured_logs):
        def handler(session):
            raise ConcurrencyConflict("Account", "x", "lost race")

        with pytest.raises(ConcurrencyConflict):
            runner.run(handler, idempotency_key="sale:INV-1")

        assert len(sleeps) == 2
        failed = [r for r in captured_logs() if r["message"] == "event_failed"]
        assert failed[0]["attempt"] == 3
        assert failed[0]["event_key"] == "sale:INV-1"

    def test_no_retry_without_key(self, runner, sleeps):
        calls = []

        def handler(session):
            calls.append(1)
            raise ConcurrencyConflict("Account", "x")

        with pytest.raises(ConcurrencyConflict):
            runner.run(handler)

        assert calls == [1]
        assert sleeps == []

    def test_business_errors_not_retried(self, runner, sleeps):
        calls = []

        def handler(session):
            calls.append(1)
            raise CreditLimitExceededError("b", Decimal("1"), Decimal("1"), Decimal("1"))

        with pytest.raises(CreditLimitExceededError):
            runner.run(handler, idempotency_key="sale:INV-1")

        assert calls == [1]

    def test_lock_errors_become_conflicts(self, runner, sleeps):
        def handler(session):
            raise db_error("database is locked")

        with pytest.raises(ConcurrencyConflict) as exc_info:
            runner.run(handler, idempotency_key="sale:INV-1")

        assert isinstance(exc_info.value.__cause__, OperationalError)
        assert len(sleeps) == 2

    def test_other_db_errors_propagate(self, runner, sleeps):
        def handler(session):
            raise db_error("no such table: accounts")

        with pytest.raises(OperationalError):
            runner.run(handler, idempotency_key="sale:INV-1")

        assert sleeps == []


class TestRetryableErrors:

    @pytest.mark.parametrize(
        "message, pgcode",
        [
            ("could not serialize access due to concurrent update", "40001"),
            ("deadlock detected", "40P01"),
            ("database is locked", None),
        ],
    )
    def test_retryable(self, message, pgcode):
        assert is_retryable_db_error(db_error(message, pgcode))

    def test_not_retryable(self):
        assert not is_retryable_db_error(db_error("syntax error", "42601"))


class TestUnitOfWork:

    def test_commits_successful_event(self, runner, session_factory, committed_mill, test_actor_id):
        buyer = committed_mill["buyer"]
        warehouse = committed_mill["mill"]
        sale = SalePayload(
            invoice_number="INV-RUN-1",
            buyer_id=buyer.id,
            total_amount=Decimal("700"),
            payment_method=PaymentMethod.CREDIT,
        )

        result = runner.run(
            lambda s: TransactionOrchestrator(s).record_sale(sale, warehouse.id, test_actor_id),
            idempotency_key="sale:INV-RUN-1",
        )
        replay = runner.run(
            lambda s: TransactionOrchestrator(s).record_sale(sale, warehouse.id, test_actor_id),
            idempotency_key="sale:INV-RUN-1",
        )

        assert result.status == EventStatus.RECORDED
        assert replay.status == EventStatus.ALREADY_RECORDED
        assert count(session_factory, Invoice) == 1
        assert count(session_factory, Transaction) == 1

    def test_failed_event_rolls_back(self, runner, session_factory, committed_mill, test_actor_id):
        buyer = committed_mill["buyer"]
        warehouse = committed_mill["mill"]
        sale = SalePayload(
            invoice_number="INV-RUN-2",
            buyer_id=buyer.id,
            total_amount=Decimal("700"),
            payment_method=PaymentMethod.CREDIT,
        )

        def handler(session):
            TransactionOrchestrator(session).record_sale(sale, warehouse.id, test_actor_id)
            raise RuntimeError("crash after recording")

        with pytest.raises(RuntimeError):
            runner.run(handler)

        assert count(session_factory, Invoice) == 0
        assert count(session_factory, Transaction) == 0
