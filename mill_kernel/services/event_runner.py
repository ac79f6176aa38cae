"""
EventRunner -- transaction boundary and bounded retry for business events.

Responsibility:
    Runs one business event in its own session: open, call the handler,
    commit, close.  A failed attempt is rolled back completely.  Conflicts
    caused by concurrent writers are retried a bounded number of times,
    but only for events that carry an idempotency key.

Architecture position:
    Kernel > Services -- imperative shell, outermost kernel layer.
    Wraps TransactionOrchestrator calls made by the host application.

Invariants enforced:
    - One session and one database transaction per attempt; nothing from a
      failed attempt survives.
    - Retries happen only with an idempotency key.  A keyed event that won
      on an earlier attempt is reported as ALREADY_RECORDED by the
      orchestrator, so a retry never double-posts.
    - Business rejections (ValidationError, NotFoundError,
      CreditLimitExceededError, InsufficientStockError, ...) are never
      retried.

Failure modes:
    - The last ConcurrencyConflict after ``retry.max_attempts`` attempts.
    - Any non-retryable exception from the handler, unchanged.
"""

from __future__ import annotations

import time
from typing import Callable, TypeVar

from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session, sessionmaker

from mill_config import MillConfig, get_active_config
from mill_kernel.db.engine import get_session_factory
from mill_kernel.exceptions import ConcurrencyConflict
from mill_kernel.logging_config import LogContext, get_logger

logger = get_logger("services.event_runner")

T = TypeVar("T")

# PostgreSQL SQLSTATEs: serialization_failure, deadlock_detected.
_RETRYABLE_SQLSTATES = frozenset({"40001", "40P01"})
_RETRYABLE_MESSAGES = ("database is locked", "deadlock detected", "could not serialize")


def is_retryable_db_error(exc: DBAPIError) -> bool:
    """True for driver errors caused by a competing transaction."""
    sqlstate = getattr(exc.orig, "pgcode", None)
    if sqlstate in _RETRYABLE_SQLSTATES:
        return True
    message = str(exc.orig).lower()
    return any(fragment in message for fragment in _RETRYABLE_MESSAGES)


class EventRunner:
    """
    Runs handlers ``handler(session) -> T`` as committed units of work.

    Usage:
        runner = EventRunner()
        result = runner.run(
            lambda s: TransactionOrchestrator(s).record_sale(sale, wh_id, user_id),
            idempotency_key=f"sale:{sale.invoice_number}",
        )
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session] | None = None,
        config: MillConfig | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._session_factory = session_factory or get_session_factory()
        self._config = config or get_active_config()
        self._sleep = sleep

    def _attempt(self, handler: Callable[[Session], T]) -> T:
        session = self._session_factory()
        try:
            result = handler(session)
            session.commit()
            return result
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def run(self, handler: Callable[[Session], T], idempotency_key: str | None = None) -> T:
        """
        Run ``handler`` and commit, retrying keyed events on conflict.

        Args:
            handler: Receives a fresh session per attempt.
            idempotency_key: Business key of the event (e.g. ``sale:INV-1``).
                Without it a conflict is raised on the first occurrence.

        Returns:
            Whatever the successful attempt returned.
        """
        retry = self._config.retry
        max_attempts = retry.max_attempts if idempotency_key else 1

        with LogContext.bind(event_key=idempotency_key):
            attempt = 1
            while True:
                try:
                    return self._attempt(handler)
                except DBAPIError as exc:
                    if not is_retryable_db_error(exc):
                        raise
                    conflict = ConcurrencyConflict(
                        "Event", idempotency_key or "-", type(exc.orig).__name__
                    )
                    if attempt >= max_attempts:
                        logger.warning(
                            "event_failed",
                            extra={"attempt": attempt, "reason": conflict.reason},
                        )
                        raise conflict from exc
                    last_reason = conflict.reason
                except ConcurrencyConflict as exc:
                    if attempt >= max_attempts:
                        logger.warning(
                            "event_failed",
                            extra={"attempt": attempt, "reason": exc.reason},
                        )
                        raise
                    last_reason = exc.reason

                logger.info(
                    "event_retry",
                    extra={
                        "attempt": attempt,
                        "max_attempts": max_attempts,
                        "reason": last_reason,
                    },
                )
                self._sleep(retry.backoff_seconds * attempt)
                attempt += 1
