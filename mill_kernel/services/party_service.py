"""
Service layer for Party operations.

Manages the mill's buyers and suppliers: creation, credit limits, and the
freeze / close lifecycle.  Returns PartyInfo DTOs instead of ORM entities.
Credit-limit enforcement itself lives in CreditPolicy, which locks the
party row.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from mill_kernel.db.types import to_money
from mill_kernel.exceptions import (
    PartyFrozenError,
    PartyInactiveError,
    PartyNotFoundError,
    ValidationError,
)
from mill_kernel.logging_config import get_logger
from mill_kernel.models.party import Party, PartyStatus, PartyType
from mill_kernel.services.base import BaseService

logger = get_logger("services.party")


@dataclass(frozen=True)
class PartyInfo:
    """Immutable DTO for party data."""

    id: UUID
    party_code: str
    party_type: PartyType
    name: str
    status: PartyStatus
    is_active: bool
    credit_limit: Decimal | None
    payment_terms_days: int | None
    contact_number: str | None
    address: str | None

    @property
    def is_frozen(self) -> bool:
        return self.status == PartyStatus.FROZEN

    @property
    def can_transact(self) -> bool:
        return self.is_active and self.status == PartyStatus.ACTIVE


class PartyService(BaseService[Party]):
    """
    Service for managing buyers and suppliers.

    All public methods return PartyInfo DTOs, not ORM Party entities.
    """

    def _to_dto(self, party: Party) -> PartyInfo:
        return PartyInfo(
            id=party.id,
            party_code=party.party_code,
            party_type=PartyType(party.party_type),
            name=party.name,
            status=PartyStatus(party.status),
            is_active=party.is_active,
            credit_limit=party.credit_limit,
            payment_terms_days=party.payment_terms_days,
            contact_number=party.contact_number,
            address=party.address,
        )

    def _get_by_id(self, party_id: UUID) -> Party:
        party = self.session.get(Party, party_id)
        if party is None:
            raise PartyNotFoundError(str(party_id))
        return party

    def _get_by_code(self, party_code: str) -> Party:
        stmt = select(Party).where(Party.party_code == party_code)
        party = self.session.execute(stmt).scalar_one_or_none()
        if party is None:
            raise PartyNotFoundError(party_code)
        return party

    def get_by_id(self, party_id: UUID) -> PartyInfo:
        """
        Raises:
            PartyNotFoundError: If party doesn't exist.
        """
        return self._to_dto(self._get_by_id(party_id))

    def get_by_code(self, party_code: str) -> PartyInfo:
        """
        Raises:
            PartyNotFoundError: If party doesn't exist.
        """
        return self._to_dto(self._get_by_code(party_code))

    def find_by_code(self, party_code: str) -> PartyInfo | None:
        stmt = select(Party).where(Party.party_code == party_code)
        party = self.session.execute(stmt).scalar_one_or_none()
        return self._to_dto(party) if party else None

    def list_by_type(
        self,
        party_type: PartyType,
        active_only: bool = True,
    ) -> list[PartyInfo]:
        stmt = select(Party).where(Party.party_type == party_type.value)
        if active_only:
            stmt = stmt.where(Party.is_active.is_(True))
        stmt = stmt.order_by(Party.party_code)
        return [self._to_dto(p) for p in self.session.execute(stmt).scalars()]

    def create_party(
        self,
        party_code: str,
        party_type: PartyType,
        name: str,
        actor_id: UUID,
        credit_limit: Decimal | None = None,
        payment_terms_days: int | None = None,
        contact_number: str | None = None,
        address: str | None = None,
    ) -> PartyInfo:
        """
        Create a new buyer or supplier.

        Args:
            party_code: Unique identifier (e.g., "BUY-001").
            party_type: BUYER or SUPPLIER.
            name: Display name.
            actor_id: UUID of the user creating the party.
            credit_limit: Maximum outstanding receivables (buyers).  None
                means no limit.
            payment_terms_days: Default days until a credit invoice is due.

        Raises:
            ValidationError: On a missing code/name or negative credit limit.
        """
        if not party_code or not party_code.strip():
            raise ValidationError("Party code is required", field="party_code")
        if not name or not name.strip():
            raise ValidationError("Party name is required", field="name")
        if credit_limit is not None:
            credit_limit = to_money(credit_limit, "credit_limit")
            if credit_limit < 0:
                raise ValidationError("Credit limit must not be negative", field="credit_limit")

        party = Party(
            party_code=party_code.strip(),
            party_type=PartyType(party_type).value,
            name=name.strip(),
            status=PartyStatus.ACTIVE.value,
            credit_limit=credit_limit,
            payment_terms_days=payment_terms_days,
            contact_number=contact_number,
            address=address,
            created_by_id=actor_id,
        )
        self.session.add(party)
        self.session.flush()
        logger.info(
            "party_created",
            extra={
                "party_id": str(party.id),
                "party_code": party.party_code,
                "party_type": party.party_type,
            },
        )
        return self._to_dto(party)

    def update_credit_limit(
        self,
        party_id: UUID,
        credit_limit: Decimal | None,
        actor_id: UUID,
    ) -> PartyInfo:
        """
        Set or clear (None) a party's credit limit.

        Lowering a limit below the current outstanding total is allowed; it
        blocks further credit sales until receipts bring the total down.
        """
        party = self._get_by_id(party_id)
        if credit_limit is not None:
            credit_limit = to_money(credit_limit, "credit_limit")
            if credit_limit < 0:
                raise ValidationError("Credit limit must not be negative", field="credit_limit")
        party.credit_limit = credit_limit
        party.updated_by_id = actor_id
        self.session.flush()
        logger.info(
            "party_credit_limit_updated",
            extra={"party_id": str(party.id), "credit_limit": credit_limit},
        )
        return self._to_dto(party)

    def freeze_party(self, party_id: UUID) -> PartyInfo:
        """Frozen parties cannot be used in new transactions."""
        party = self._get_by_id(party_id)
        party.status = PartyStatus.FROZEN.value
        self.session.flush()
        return self._to_dto(party)

    def unfreeze_party(self, party_id: UUID) -> PartyInfo:
        party = self._get_by_id(party_id)
        party.status = PartyStatus.ACTIVE.value
        self.session.flush()
        return self._to_dto(party)

    def deactivate_party(self, party_id: UUID) -> PartyInfo:
        party = self._get_by_id(party_id)
        party.is_active = False
        self.session.flush()
        return self._to_dto(party)

    def close_party(self, party_id: UUID) -> PartyInfo:
        """Close a party permanently.  Closed parties cannot be reopened."""
        party = self._get_by_id(party_id)
        party.status = PartyStatus.CLOSED.value
        party.is_active = False
        self.session.flush()
        return self._to_dto(party)

    def validate_can_transact(
        self,
        party_id: UUID,
        party_type: PartyType | None = None,
    ) -> PartyInfo:
        """
        Validate that a party can transact, raising if not.

        Raises:
            PartyNotFoundError: If party doesn't exist, or is not of
                ``party_type`` when one is given.
            PartyFrozenError: If party is frozen.
            PartyInactiveError: If party is inactive or closed.
        """
        party = self._get_by_id(party_id)
        if party_type is not None and party.party_type != party_type.value:
            raise PartyNotFoundError(str(party_id))
        ensure_can_transact(party)
        return self._to_dto(party)


def ensure_can_transact(party: Party) -> None:
    """Raise if ``party`` is frozen, closed or deactivated."""
    if party.status == PartyStatus.FROZEN:
        raise PartyFrozenError(str(party.id))
    if not party.is_active or party.status == PartyStatus.CLOSED:
        raise PartyInactiveError(str(party.id))
