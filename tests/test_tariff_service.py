"""
Tests for services/tariff_service.py
"""

from decimal import Decimal

import pytest

from calculation_models import AdditionalTariffType, TariffMeasure
from services.tariff_service import (
    PLACEHOLDER_TARIFF_RATE,
    FixedTariffResolver,
    TariffResolver,
    TariffTableResolver,
    clean_hs_code,
    is_valid_hs_code,
)


class TestHSCodeFormat:
    """HS codes: 6-10 digits once dots, spaces and dashes are removed."""

    @pytest.mark.parametrize("code", ["847130", "8471.30", "8471 30 00", "8471-30-0000", "8703239090"])
    def test_valid(self, code):
        assert is_valid_hs_code(code)

    @pytest.mark.parametrize("code", ["", "8471", "84713000001", "8471AB", None])
    def test_invalid(self, code):
        assert not is_valid_hs_code(code)

    def test_clean(self):
        assert clean_hs_code("8471.30-00 10") == "8471300010"


class TestFixedTariffResolver:

    def test_placeholder_rate(self):
        tariff = FixedTariffResolver().resolve("847130", "CN", "US")
        assert tariff.rate == PLACEHOLDER_TARIFF_RATE == Decimal("0.05")
        assert tariff.placeholder is True

    def test_custom_rate(self):
        assert FixedTariffResolver(Decimal("0.12")).resolve("1", "CN", "DE").rate == Decimal("0.12")

    def test_negative_rate_rejected(self):
        with pytest.raises(ValueError, match="must be >= 0"):
            FixedTariffResolver(Decimal("-0.01"))

    def test_no_additional_tariffs_by_default(self):
        assert FixedTariffResolver().additional_tariffs("847130", "CN", "US") == []

    def test_is_a_tariff_resolver(self):
        assert isinstance(FixedTariffResolver(), TariffResolver)


class TestTariffTableResolver:
    """Longest HS prefix wins; unmatched lookups use the fallback."""

    @pytest.fixture
    def resolver(self):
        return TariffTableResolver(
            {
                ("8471", "CN", "US"): Decimal("0.10"),
                ("8471.30", "CN", "US"): Decimal("0.25"),
            },
            measures={
                ("8471", "cn", "us"): [
                    TariffMeasure(name="Section 301", type=AdditionalTariffType.OTHER, rate=Decimal("0.075"))
                ],
            },
        )

    def test_most_specific_prefix(self, resolver):
        tariff = resolver.resolve("8471.30.0100", "CN", "US")
        assert tariff.rate == Decimal("0.25")
        assert tariff.placeholder is False
        assert tariff.source == "tariff table"

    def test_shorter_prefix(self, resolver):
        assert resolver.resolve("847150", "CN", "US").rate == Decimal("0.10")

    def test_route_is_part_of_key(self, resolver):
        tariff = resolver.resolve("847130", "VN", "US")
        assert tariff.placeholder is True
        assert tariff.rate == Decimal("0.05")

    def test_country_codes_normalized(self, resolver):
        assert resolver.resolve("847130", " cn", "us ").rate == Decimal("0.25")

    def test_measures(self, resolver):
        measures = resolver.additional_tariffs("847130", "CN", "US")
        assert [m.name for m in measures] == ["Section 301"]
        assert resolver.additional_tariffs("847130", "VN", "US") == []

    def test_custom_fallback(self):
        resolver = TariffTableResolver({}, fallback=FixedTariffResolver(Decimal("0.02")))
        assert resolver.resolve("847130", "CN", "US").rate == Decimal("0.02")
