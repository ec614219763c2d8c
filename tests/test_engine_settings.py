"""
Tests for services/engine_settings.py

Environment-driven EngineConfig loading.
"""

from decimal import Decimal

import pytest

from services.engine_settings import (
    DEFAULT_APP_SECRET,
    get_app_secret,
    get_engine_config,
    reload_engine_config,
)

ENV_VARS = [
    "LANDED_COST_INSURANCE_RATE",
    "LANDED_COST_TARIFF_RATE",
    "LANDED_COST_FCL_20FT_RATE",
    "LANDED_COST_FCL_40FT_RATE",
    "LANDED_COST_LCL_PER_CBM",
    "LANDED_COST_AIR_PER_KG",
    "LANDED_COST_EXPRESS_PER_KG",
    "LANDED_COST_EXW_ORIGIN_INLAND",
    "LANDED_COST_DESTINATION_INLAND",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Start every test from a clean environment and an empty cache."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    get_engine_config.cache_clear()
    yield
    get_engine_config.cache_clear()


class TestGetEngineConfig:

    def test_defaults(self):
        config = get_engine_config()
        assert config.calculation_version == "v1.0.0"
        assert config.default_insurance_rate == Decimal("0.005")
        assert config.placeholder_tariff_rate == Decimal("0.05")
        assert config.freight_rates.fcl_20ft == Decimal("1500")
        assert config.freight_rates.fcl_40ft == Decimal("2500")
        assert config.freight_rates.lcl_per_cbm == Decimal("50")
        assert config.freight_rates.air_per_kg == Decimal("5")
        assert config.freight_rates.express_per_kg == Decimal("10")
        assert config.inland_defaults.exw_origin == Decimal("200")
        assert config.inland_defaults.destination == Decimal("300")

    def test_snapshot_is_stamped(self):
        assert get_engine_config().data_snapshot_timestamp is not None

    def test_cached(self):
        assert get_engine_config() is get_engine_config()

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("LANDED_COST_INSURANCE_RATE", "0.01")
        monkeypatch.setenv("LANDED_COST_FCL_40FT_RATE", " 2750.50 ")
        monkeypatch.setenv("LANDED_COST_DESTINATION_INLAND", "0")
        config = get_engine_config()
        assert config.default_insurance_rate == Decimal("0.01")
        assert config.freight_rates.fcl_40ft == Decimal("2750.50")
        assert config.inland_defaults.destination == Decimal("0")

    def test_blank_value_uses_default(self, monkeypatch):
        monkeypatch.setenv("LANDED_COST_AIR_PER_KG", "")
        assert get_engine_config().freight_rates.air_per_kg == Decimal("5")

    def test_malformed_value(self, monkeypatch):
        monkeypatch.setenv("LANDED_COST_TARIFF_RATE", "five percent")
        with pytest.raises(RuntimeError, match="LANDED_COST_TARIFF_RATE"):
            get_engine_config()

    def test_negative_value(self, monkeypatch):
        monkeypatch.setenv("LANDED_COST_LCL_PER_CBM", "-1")
        with pytest.raises(RuntimeError, match="LANDED_COST_LCL_PER_CBM"):
            get_engine_config()

    def test_reload_picks_up_changes(self, monkeypatch):
        first = get_engine_config()
        monkeypatch.setenv("LANDED_COST_EXPRESS_PER_KG", "12")
        assert get_engine_config() is first

        reloaded = reload_engine_config()
        assert reloaded is not first
        assert reloaded.freight_rates.express_per_kg == Decimal("12")
        assert reloaded.data_snapshot_timestamp >= first.data_snapshot_timestamp


class TestAppSecret:

    def test_from_environment(self, monkeypatch):
        monkeypatch.setenv("APP_SECRET", "s3cret")
        assert get_app_secret() == "s3cret"

    def test_default(self, monkeypatch):
        monkeypatch.delenv("APP_SECRET", raising=False)
        assert get_app_secret() == DEFAULT_APP_SECRET
