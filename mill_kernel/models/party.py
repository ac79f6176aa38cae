"""
Module: mill_kernel.models.party
Responsibility: ORM persistence for the buyers and suppliers the mill trades
    with.  The buyer row doubles as the per-buyer lock target for credit
    checks.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - party_code is unique (uq_party_code).
    Guard inputs (enforced by services, not the ORM):
        - credit_limit: outstanding receivables + new credit must not exceed it.
          NULL means no limit.
        - status == FROZEN blocks new sales and purchases.

Failure modes:
    - IntegrityError on duplicate party_code.
    - PartyFrozenError / PartyInactiveError from services when the party
      cannot transact.

Audit relevance:
    CreditPolicy locks this row (SELECT ... FOR UPDATE) for the lifetime of a
    credit sale, so two concurrent sales for one buyer are checked one after
    the other against committed outstanding totals.
"""

from decimal import Decimal
from enum import Enum

from sqlalchemy import Boolean, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from mill_kernel.db.base import TrackedBase


class PartyType(str, Enum):
    """Which side of a trade the party sits on."""

    BUYER = "buyer"
    SUPPLIER = "supplier"


class PartyStatus(str, Enum):
    """Party lifecycle status.

    ACTIVE parties transact; FROZEN parties are blocked; CLOSED parties are
    historical only.
    """

    ACTIVE = "active"
    FROZEN = "frozen"
    CLOSED = "closed"


class Party(TrackedBase):
    """
    A buyer or supplier.

    Guarantees:
        - party_code is globally unique.
        - party_type is set at creation and never changes.
        - status and is_active together determine transaction admissibility.
    """

    __tablename__ = "parties"

    __table_args__ = (
        UniqueConstraint("party_code", name="uq_party_code"),
        Index("idx_party_type", "party_type"),
        Index("idx_party_status", "status"),
    )

    party_code: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    party_type: Mapped[PartyType] = mapped_column(
        String(20),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    status: Mapped[PartyStatus] = mapped_column(
        String(20),
        nullable=False,
        default=PartyStatus.ACTIVE,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    # NULL = no limit
    credit_limit: Mapped[Decimal | None] = mapped_column(
        nullable=True,
    )

    payment_terms_days: Mapped[int | None] = mapped_column(
        nullable=True,
    )

    contact_number: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
    )

    address: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )

    @property
    def is_frozen(self) -> bool:
        return self.status == PartyStatus.FROZEN

    @property
    def can_transact(self) -> bool:
        """True iff is_active AND status is ACTIVE."""
        return self.is_active and self.status == PartyStatus.ACTIVE

    def __repr__(self) -> str:
        return f"<Party {self.party_code}: {self.name} ({self.party_type})>"
