"""
Configuration Loader (``mill_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the frozen
``mill_config.schema`` dataclasses.  Runtime callers go through
``mill_config.get_active_config()``; this module is its implementation.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Missing or malformed required sections raise ``ConfigError`` naming the
  offending key; there are no silent defaults for required fields.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the source
  document for configuration identity.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Structural / value errors  -> ``ConfigError``.
"""

from __future__ import annotations

import hashlib
import json
import re
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from mill_config.schema import (
    ConfigError,
    CreditSettings,
    DefaultAccountSpec,
    MillConfig,
    ProductionSettings,
    RetrySettings,
    StockSettings,
)

# Roles the transaction orchestrator posts to; each needs a default account.
REQUIRED_ROLES = ("cash", "bank", "receivable", "payable", "revenue", "expense")

REQUIRED_ITEM_TYPES = ("wheat", "bags")

_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ConfigError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError("top-level document must be a mapping", str(path))
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _require(data: dict[str, Any], key: str, where: str) -> Any:
    if key not in data or data[key] is None:
        raise ConfigError(f"missing required key '{key}'", where)
    return data[key]


def _parse_retry(data: dict[str, Any]) -> RetrySettings:
    max_attempts = int(data.get("max_attempts", RetrySettings.max_attempts))
    backoff = float(data.get("backoff_seconds", RetrySettings.backoff_seconds))
    if max_attempts < 1:
        raise ConfigError("max_attempts must be at least 1", "retry.max_attempts")
    if backoff < 0:
        raise ConfigError("backoff_seconds must not be negative", "retry.backoff_seconds")
    return RetrySettings(max_attempts=max_attempts, backoff_seconds=backoff)


def _parse_stock(data: dict[str, Any]) -> StockSettings:
    try:
        threshold = Decimal(str(data.get("low_stock_threshold", "10")))
    except InvalidOperation:
        raise ConfigError("not a number", "stock.low_stock_threshold") from None
    if threshold < 0:
        raise ConfigError("must not be negative", "stock.low_stock_threshold")

    units = dict(data.get("units") or {"wheat": "kg", "bags": "bags"})
    for item_type in REQUIRED_ITEM_TYPES:
        if not units.get(item_type):
            raise ConfigError(f"no unit configured for item type '{item_type}'", "stock.units")
    return StockSettings(low_stock_threshold=threshold, units=units)


def _parse_production(data: dict[str, Any]) -> ProductionSettings:
    wheat_item_name = str(data.get("wheat_item_name", "wheat")).strip()
    if not wheat_item_name:
        raise ConfigError("must not be empty", "production.wheat_item_name")
    excluded = tuple(str(name) for name in data.get("excluded_from_gross_weight", ["bran"]))
    return ProductionSettings(
        wheat_item_name=wheat_item_name,
        excluded_from_gross_weight=excluded,
    )


def _parse_default_account(data: dict[str, Any], index: int) -> DefaultAccountSpec:
    where = f"default_accounts[{index}]"
    return DefaultAccountSpec(
        code=_require(data, "code", where),
        role=_require(data, "role", where),
        name=_require(data, "name", where),
        account_type=_require(data, "account_type", where),
        category=_require(data, "category", where),
        account_number=data.get("account_number"),
        description=data.get("description"),
    )


def parse_config(data: dict[str, Any]) -> MillConfig:
    """
    Parse a raw configuration mapping into a ``MillConfig``.

    Raises:
        ConfigError: on any structural or value error.
    """
    currency = str(_require(data, "currency", "currency")).upper()
    if not _CURRENCY_RE.match(currency):
        raise ConfigError(f"invalid currency code '{currency}'", "currency")

    accounts = tuple(
        _parse_default_account(entry, i)
        for i, entry in enumerate(_require(data, "default_accounts", "default_accounts"))
    )
    roles = [a.role for a in accounts]
    for role in REQUIRED_ROLES:
        if role not in roles:
            raise ConfigError(f"no default account for role '{role}'", "default_accounts")
    duplicates = sorted({r for r in roles if roles.count(r) > 1})
    if duplicates:
        raise ConfigError(f"duplicate roles: {', '.join(duplicates)}", "default_accounts")

    credit = data.get("credit") or {}
    return MillConfig(
        config_id=str(data.get("config_id", "mill-default")),
        version=int(data.get("version", 1)),
        currency=currency,
        retry=_parse_retry(data.get("retry") or {}),
        stock=_parse_stock(data.get("stock") or {}),
        production=_parse_production(data.get("production") or {}),
        credit=CreditSettings(
            default_payment_terms_days=int(credit.get("default_payment_terms_days", 30)),
        ),
        default_accounts=accounts,
        checksum=compute_checksum(data),
    )
