"""
Configuration schema (``mill_config.schema``).

Frozen dataclasses for every configuration section.  Instances are produced
only by ``mill_config.loader`` and handed out by ``get_active_config()``;
nothing mutates them after load.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


class ConfigError(ValueError):
    """Configuration file is structurally or semantically invalid."""

    code: str = "CONFIG_ERROR"

    def __init__(self, message: str, path: str | None = None):
        self.path = path
        super().__init__(f"{path}: {message}" if path else message)


@dataclass(frozen=True)
class RetrySettings:
    """Bounded retry of idempotent events after a concurrency conflict."""

    max_attempts: int = 3
    backoff_seconds: float = 0.05


@dataclass(frozen=True)
class StockSettings:
    low_stock_threshold: Decimal = Decimal("10")
    units: dict[str, str] = field(
        default_factory=lambda: {"wheat": "kg", "bags": "bags"}
    )

    def unit_for(self, item_type: str) -> str:
        return self.units[item_type]


@dataclass(frozen=True)
class ProductionSettings:
    wheat_item_name: str = "wheat"
    excluded_from_gross_weight: tuple[str, ...] = ("bran",)


@dataclass(frozen=True)
class CreditSettings:
    default_payment_terms_days: int = 30


@dataclass(frozen=True)
class DefaultAccountSpec:
    """One entry of the mill-wide default chart of accounts."""

    code: str
    role: str
    name: str
    account_type: str
    category: str
    account_number: str | None = None
    description: str | None = None


@dataclass(frozen=True)
class MillConfig:
    """
    The active mill configuration.

    ``account_for_role`` maps orchestrator roles (cash, bank, receivable,
    payable, revenue, expense) onto the default chart.
    """

    config_id: str
    version: int
    currency: str
    retry: RetrySettings
    stock: StockSettings
    production: ProductionSettings
    credit: CreditSettings
    default_accounts: tuple[DefaultAccountSpec, ...]
    checksum: str = ""

    def account_for_role(self, role: str) -> DefaultAccountSpec:
        for spec in self.default_accounts:
            if spec.role == role:
                return spec
        raise KeyError(f"No default account configured for role '{role}'")
