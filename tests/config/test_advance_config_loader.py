"""
Tests for configuration sets and the YAML loader.
"""

from decimal import Decimal

import pytest

from advance_config import get_active_policy, get_advance_config
from advance_config.loader import load_policy, parse_policy
from advance_modules.advances.config import AdvanceConfig


POLICY_YAML = """\
id: field-ops
name: Field Operations
retirement_deadline_days: 10
categories:
  - category: FUEL
    per_diem: 60.5
  - category: MEALS
    receipt_required_over_amount: "0"
"""


class TestDefaultSet:

    def test_default_policy(self, seed_policy):
        assert get_active_policy() == seed_policy

    def test_default_advance_config(self):
        config = get_advance_config()

        assert config.max_advance_amount == Decimal("5000")
        assert config.default_currency == "USD"
        assert config.retirement_submission_mode == "lenient"
        assert config.require_override_for_missing_receipt is True

    def test_unknown_set(self):
        with pytest.raises(FileNotFoundError):
            get_active_policy(set_name="does-not-exist")


class TestCustomSet:

    @pytest.fixture
    def config_dir(self, tmp_path):
        (tmp_path / "policy.yaml").write_text(POLICY_YAML)
        return tmp_path

    def test_policy_from_directory(self, config_dir):
        policy = get_active_policy(config_dir)

        assert policy.id == "field-ops"
        assert policy.retirement_deadline_days == 10
        assert policy.receipt_required_over_amount is None
        assert [r.category for r in policy.categories] == ["FUEL", "MEALS"]

    def test_float_money_parsed_exactly(self, config_dir):
        policy = load_policy(config_dir / "policy.yaml")

        assert policy.categories[0].per_diem == Decimal("60.5")

    def test_zero_threshold_kept(self, config_dir):
        policy = load_policy(config_dir / "policy.yaml")

        assert policy.categories[1].receipt_required_over_amount == Decimal("0")

    def test_missing_advance_yaml_falls_back_to_defaults(self, config_dir):
        assert get_advance_config(config_dir) == AdvanceConfig.with_defaults()

    def test_advance_yaml_overrides(self, config_dir):
        (config_dir / "advance.yaml").write_text(
            "max_advance_amount: 12000\n"
            "retirement_submission_mode: strict\n"
        )

        config = get_advance_config(config_dir)

        assert config.max_advance_amount == Decimal("12000")
        assert config.is_strict_retirement

    def test_missing_policy_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_policy(tmp_path)

    def test_missing_deadline_raises(self):
        with pytest.raises(KeyError):
            parse_policy({"id": "broken"})


class TestAdvanceConfigValidation:

    @pytest.mark.parametrize("kwargs", [
        {"max_advance_amount": Decimal("0")},
        {"default_receipt_threshold": Decimal("-1")},
        {"default_currency": "usd"},
        {"retirement_submission_mode": "relaxed"},
    ])
    def test_invalid_values(self, kwargs):
        with pytest.raises(ValueError):
            AdvanceConfig(**kwargs)

    def test_from_dict_converts_money(self):
        config = AdvanceConfig.from_dict({"max_advance_amount": "2500.50", "default_receipt_threshold": 10})

        assert config.max_advance_amount == Decimal("2500.50")
        assert config.default_receipt_threshold == Decimal("10")

    def test_unlimited_amount(self):
        assert AdvanceConfig.from_dict({"max_advance_amount": None}).max_advance_amount is None
