"""
Tests for mill configuration loading and validation.
"""

from decimal import Decimal
from pathlib import Path

import pytest
import yaml

from mill_config import ConfigError, get_active_config
from mill_config.loader import (
    REQUIRED_ROLES,
    compute_checksum,
    load_yaml_file,
    parse_config,
)

DEFAULT_PATH = Path(__file__).resolve().parents[2] / "mill_config" / "sets" / "default.yaml"


@pytest.fixture
def raw():
    """The shipped default document, as a mutable dict."""
    return load_yaml_file(DEFAULT_PATH)


class TestDefaultConfig:

    def test_loads(self, config):
        assert config.config_id == "mill-default"
        assert config.currency == "PKR"
        assert config.retry.max_attempts == 3
        assert config.stock.low_stock_threshold == Decimal("10")
        assert config.production.wheat_item_name == "wheat"
        assert config.production.excluded_from_gross_weight == ("bran",)
        assert config.credit.default_payment_terms_days == 30

    def test_every_role_has_an_account(self, config):
        for role in REQUIRED_ROLES:
            assert config.account_for_role(role).role == role

    def test_unknown_role(self, config):
        with pytest.raises(KeyError):
            config.account_for_role("petty_cash")

    def test_units(self, config):
        assert config.stock.unit_for("wheat") == "kg"
        assert config.stock.unit_for("bags") == "bags"

    def test_checksum_is_stable(self, raw):
        assert compute_checksum(raw) == compute_checksum(dict(raw))
        assert parse_config(raw).checksum == compute_checksum(raw)

    def test_logs_load(self, captured_logs):
        get_active_config()

        record = next(r for r in captured_logs() if r["message"] == "mill_config_loaded")
        assert record["config_id"] == "mill-default"


class TestOverrides:

    def test_load_from_path(self, tmp_path, raw):
        raw["currency"] = "usd"
        raw["stock"]["low_stock_threshold"] = "2.5"
        path = tmp_path / "mill.yaml"
        path.write_text(yaml.safe_dump(raw))

        config = get_active_config(path)

        assert config.currency == "USD"
        assert config.stock.low_stock_threshold == Decimal("2.5")

    def test_missing_sections_use_defaults(self, raw):
        for section in ("retry", "stock", "production", "credit"):
            raw.pop(section)

        config = parse_config(raw)

        assert config.retry.max_attempts == 3
        assert config.stock.unit_for("wheat") == "kg"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml")


class TestValidation:

    def test_missing_currency(self, raw):
        raw.pop("currency")
        with pytest.raises(ConfigError, match="currency"):
            parse_config(raw)

    def test_bad_currency(self, raw):
        raw["currency"] = "RUPEES"
        with pytest.raises(ConfigError):
            parse_config(raw)

    def test_missing_role(self, raw):
        raw["default_accounts"] = [a for a in raw["default_accounts"] if a["role"] != "bank"]
        with pytest.raises(ConfigError, match="bank"):
            parse_config(raw)

    def test_duplicate_role(self, raw):
        raw["default_accounts"].append(dict(raw["default_accounts"][0], code="SECOND_CASH"))
        with pytest.raises(ConfigError, match="duplicate"):
            parse_config(raw)

    def test_account_entry_missing_name(self, raw):
        raw["default_accounts"][0].pop("name")
        with pytest.raises(ConfigError) as exc_info:
            parse_config(raw)
        assert exc_info.value.path == "default_accounts[0]"

    def test_zero_attempts(self, raw):
        raw["retry"]["max_attempts"] = 0
        with pytest.raises(ConfigError):
            parse_config(raw)

    def test_negative_threshold(self, raw):
        raw["stock"]["low_stock_threshold"] = -1
        with pytest.raises(ConfigError):
            parse_config(raw)

    def test_missing_unit(self, raw):
        raw["stock"]["units"] = {"wheat": "kg"}
        with pytest.raises(ConfigError, match="bags"):
            parse_config(raw)

    def test_blank_wheat_item(self, raw):
        raw["production"]["wheat_item_name"] = "  "
        with pytest.raises(ConfigError):
            parse_config(raw)

    def test_non_mapping_document(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError):
            load_yaml_file(path)
