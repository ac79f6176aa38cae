"""
AccountRegistry -- get-or-create chart-of-accounts entries.

Responsibility:
    Resolves the account for a (category, type, warehouse scope), creating it
    on first use, and seeds the mill-wide default chart from configuration.
    The transaction orchestrator resolves posting roles (cash, bank,
    receivable, payable, revenue, expense) through this service.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Exactly one ACTIVE account per (category, account_type, scope_key).
      Creation is an ``INSERT ... ON CONFLICT DO NOTHING`` against the partial
      unique index, followed by a re-read.  Two sessions racing to create the
      same account both end up with the winner's row.
    - The category must be valid for the account type.

Failure modes:
    - InvalidAccountCategoryError / ValidationError on bad input.
    - WarehouseNotFoundError for an unknown warehouse scope.
    - AccountNotFoundError from get_account().
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select, text
from sqlalchemy.orm import Session

from mill_config import MillConfig, get_active_config
from mill_kernel.db.dialect import upsert_insert
from mill_kernel.db.types import to_money
from mill_kernel.exceptions import (
    AccountNotFoundError,
    InvalidAccountCategoryError,
    ValidationError,
)
from mill_kernel.logging_config import get_logger
from mill_kernel.models.account import (
    CATEGORY_ACCOUNT_TYPES,
    Account,
    AccountCategory,
    AccountStatus,
    AccountType,
    scope_key_for,
)
from mill_kernel.services.base import BaseService
from mill_kernel.services.sequence_service import SequenceService
from mill_kernel.services.warehouse_service import WarehouseService

logger = get_logger("services.account_registry")


@dataclass(frozen=True)
class AccountInfo:
    """Immutable DTO for account data."""

    id: UUID
    account_number: str
    code: str | None
    name: str
    account_type: AccountType
    category: AccountCategory
    warehouse_id: UUID | None
    currency: str
    opening_balance: Decimal
    current_balance: Decimal
    status: AccountStatus

    @property
    def is_active(self) -> bool:
        return self.status == AccountStatus.ACTIVE


def validate_category(category, account_type) -> tuple[AccountCategory, AccountType]:
    """
    Coerce and cross-check a category / account type pair.

    Raises:
        ValidationError: If either value is unknown.
        InvalidAccountCategoryError: If the category does not belong to the type.
    """
    try:
        category = AccountCategory(category)
    except ValueError:
        raise ValidationError(f"Unknown account category: {category}", field="category") from None
    try:
        account_type = AccountType(account_type)
    except ValueError:
        raise ValidationError(f"Unknown account type: {account_type}", field="account_type") from None

    expected = CATEGORY_ACCOUNT_TYPES[category]
    if expected is not None and expected != account_type:
        raise InvalidAccountCategoryError(category.value, account_type.value)
    return category, account_type


def account_number_prefix(category: AccountCategory) -> str:
    """ACC-CAS for Cash, ACC-SAL for Sales Revenue, ..."""
    return f"ACC-{category.value[:3].upper()}"


class AccountRegistry(BaseService[Account]):
    """
    Get-or-create access to the chart of accounts.

    Non-goals:
        - Does NOT change balances; only LedgerEngine does.
    """

    def __init__(self, session: Session, config: MillConfig | None = None):
        super().__init__(session)
        self._config = config or get_active_config()
        self._sequences = SequenceService(session)

    def _to_dto(self, account: Account) -> AccountInfo:
        return AccountInfo(
            id=account.id,
            account_number=account.account_number,
            code=account.code,
            name=account.name,
            account_type=AccountType(account.account_type),
            category=AccountCategory(account.category),
            warehouse_id=account.warehouse_id,
            currency=account.currency,
            opening_balance=account.opening_balance,
            current_balance=account.current_balance,
            status=AccountStatus(account.status),
        )

    def _find_active(
        self,
        category: AccountCategory,
        account_type: AccountType,
        scope_key: str,
    ) -> Account | None:
        stmt = (
            select(Account)
            .where(
                Account.category == category.value,
                Account.account_type == account_type.value,
                Account.scope_key == scope_key,
                Account.status == AccountStatus.ACTIVE.value,
            )
            .execution_options(populate_existing=True)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def _find_active_by_code(self, code: str) -> Account | None:
        stmt = (
            select(Account)
            .where(Account.code == code, Account.status == AccountStatus.ACTIVE.value)
            .execution_options(populate_existing=True)
        )
        return self.session.execute(stmt).scalars().first()

    def _number_taken(self, account_number: str) -> bool:
        return (
            self.session.execute(
                select(Account.id).where(Account.account_number == account_number)
            ).first()
            is not None
        )

    def _next_account_number(self, category: AccountCategory) -> str:
        prefix = account_number_prefix(category)
        value = self._sequences.next_value(SequenceService.account_sequence(prefix))
        return f"{prefix}-{value:04d}"

    def get_account(self, account_id: UUID) -> AccountInfo:
        """
        Raises:
            AccountNotFoundError: If the account doesn't exist.
        """
        account = self.session.get(Account, account_id, populate_existing=True)
        if account is None:
            raise AccountNotFoundError(str(account_id))
        return self._to_dto(account)

    def get_or_create_account(
        self,
        category: AccountCategory | str,
        account_type: AccountType | str,
        name: str,
        actor_id: UUID,
        warehouse_id: UUID | None = None,
        opening_balance: Decimal = Decimal("0"),
        code: str | None = None,
        account_number: str | None = None,
        description: str | None = None,
    ) -> AccountInfo:
        """
        Return the ACTIVE account for (category, type, warehouse scope),
        creating it if none exists.

        Lookup order: the well-known ``code`` (if given), then the scope key.
        Creation allocates ``account_number`` from the per-prefix sequence
        unless one is supplied.  ``opening_balance`` only applies when this
        call creates the account.

        Raises:
            ValidationError / InvalidAccountCategoryError: On bad input, or a
                ``code`` already held by an account of another category / type.
            WarehouseNotFoundError: If ``warehouse_id`` is unknown.
        """
        category, account_type = validate_category(category, account_type)
        opening = to_money(opening_balance, "opening_balance")
        if warehouse_id is not None:
            WarehouseService(self.session).require_active(warehouse_id)
        scope_key = scope_key_for(warehouse_id)

        if code:
            by_code = self._find_active_by_code(code)
            if by_code is not None:
                if (by_code.category, by_code.account_type) != (category.value, account_type.value):
                    raise ValidationError(
                        f"Account code '{code}' belongs to a {by_code.category}/"
                        f"{by_code.account_type} account, not {category.value}/{account_type.value}",
                        field="code",
                    )
                return self._to_dto(by_code)

        existing = self._find_active(category, account_type, scope_key)
        if existing is not None:
            return self._to_dto(existing)

        # A configured number stays with the account it was first given to.
        if account_number and not self._number_taken(account_number):
            number = account_number
        else:
            number = self._next_account_number(category)
        stmt = (
            upsert_insert(self.session, Account.__table__)
            .values(
                id=uuid4(),
                account_number=number,
                code=code,
                name=name or f"{category.value} Account",
                account_type=account_type.value,
                category=category.value,
                warehouse_id=warehouse_id,
                scope_key=scope_key,
                currency=self._config.currency,
                opening_balance=opening,
                current_balance=opening,
                status=AccountStatus.ACTIVE.value,
                description=description,
                created_by_id=actor_id,
            )
            .on_conflict_do_nothing(
                index_elements=["category", "account_type", "scope_key"],
                index_where=text("status = 'active'"),
            )
        )
        result = self.session.execute(stmt)

        account = self._find_active(category, account_type, scope_key)
        if account is None:
            # Only possible if the winner was deactivated between our statements.
            raise AccountNotFoundError(f"{category.value}/{account_type.value}/{scope_key}")

        if result.rowcount:
            logger.info(
                "account_created",
                extra={
                    "account_id": str(account.id),
                    "account_number": account.account_number,
                    "category": category.value,
                    "account_type": account_type.value,
                    "scope_key": scope_key,
                },
            )
        else:
            logger.debug(
                "account_create_lost_race",
                extra={"account_id": str(account.id), "scope_key": scope_key},
            )
        return self._to_dto(account)

    def deactivate_account(self, account_id: UUID, actor_id: UUID) -> AccountInfo:
        """
        Mark an account INACTIVE.  Postings to it are rejected afterwards and
        the scope becomes free for a new active account.
        """
        account = self.session.get(Account, account_id)
        if account is None:
            raise AccountNotFoundError(str(account_id))
        account.status = AccountStatus.INACTIVE.value
        account.updated_by_id = actor_id
        self.session.flush()
        logger.info("account_deactivated", extra={"account_id": str(account_id)})
        return self._to_dto(account)

    def initialize_default_accounts(self, actor_id: UUID) -> list[AccountInfo]:
        """Seed the configured mill-wide chart of accounts (idempotent)."""
        created = [
            self.get_or_create_account(
                category=spec.category,
                account_type=spec.account_type,
                name=spec.name,
                actor_id=actor_id,
                code=spec.code,
                account_number=spec.account_number,
                description=spec.description,
            )
            for spec in self._config.default_accounts
        ]
        logger.info("default_accounts_initialized", extra={"count": len(created)})
        return created

    def resolve_role(self, role: str, actor_id: UUID) -> AccountInfo:
        """
        Resolve an orchestrator posting role to its global account.

        Raises:
            ValidationError: If no default account is configured for ``role``.
        """
        try:
            spec = self._config.account_for_role(role)
        except KeyError:
            raise ValidationError(f"No account configured for role '{role}'", field="role") from None
        return self.get_or_create_account(
            category=spec.category,
            account_type=spec.account_type,
            name=spec.name,
            actor_id=actor_id,
            code=spec.code,
            account_number=spec.account_number,
            description=spec.description,
        )
