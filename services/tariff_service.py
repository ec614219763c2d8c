"""
Tariff Service - import duty rates keyed by (HS code, origin, destination)

Real HS classification is not implemented. FixedTariffResolver returns a
flat placeholder rate for every product; TariffTableResolver serves
explicitly configured rates and defers to another resolver for the rest.
"""

import logging
import re
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import List, Mapping, Optional, Tuple

from calculation_models import TariffMeasure, TariffRate
from services.country_duty_service import normalize_country_code

logger = logging.getLogger(__name__)

PLACEHOLDER_TARIFF_RATE = Decimal("0.05")

# HS codes are 6 digits internationally, up to 10 with national extensions
HS_CODE_PATTERN = re.compile(r"^\d{6,10}$")
HS_CODE_SEPARATORS = re.compile(r"[.\s-]")


def clean_hs_code(hs_code: Optional[str]) -> str:
    """Drop dots, spaces and dashes ("8471.30-00" -> "84713000")"""
    if hs_code is None:
        return ""
    return HS_CODE_SEPARATORS.sub("", str(hs_code))


def is_valid_hs_code(hs_code: Optional[str]) -> bool:
    return bool(HS_CODE_PATTERN.match(clean_hs_code(hs_code)))


class TariffResolver(ABC):
    """Source of import duty rates"""

    @abstractmethod
    def resolve(self, hs_code: str, origin_country: str, destination_country: str) -> TariffRate:
        """Ad valorem duty rate applied to the CIF value"""

    def additional_tariffs(
        self,
        hs_code: str,
        origin_country: str,
        destination_country: str
    ) -> List[TariffMeasure]:
        """Anti-dumping, countervailing and safeguard measures. None by default."""
        return []


class FixedTariffResolver(TariffResolver):
    """Same placeholder rate for every HS code and route"""

    def __init__(self, rate: Decimal = PLACEHOLDER_TARIFF_RATE):
        if rate < 0:
            raise ValueError(f"Tariff rate must be >= 0, got {rate}")
        self.rate = rate

    def resolve(self, hs_code: str, origin_country: str, destination_country: str) -> TariffRate:
        return TariffRate(rate=self.rate, source="placeholder", placeholder=True)


class TariffTableResolver(TariffResolver):
    """
    Rates configured per (HS prefix, origin, destination).

    The longest HS prefix that matches the cleaned code wins, so a
    ("8471", "CN", "US") entry covers every 8471.xx subheading unless a
    more specific entry exists. Unmatched lookups go to the fallback.

    Example:
        resolver = TariffTableResolver(
            {("847130", "CN", "US"): Decimal("0.25")},
            measures={("847130", "CN", "US"): [TariffMeasure(name="Section 301", rate=Decimal("0.075"))]},
        )
    """

    def __init__(
        self,
        rates: Mapping[Tuple[str, str, str], Decimal],
        fallback: Optional[TariffResolver] = None,
        measures: Optional[Mapping[Tuple[str, str, str], List[TariffMeasure]]] = None,
    ):
        self._rates = {self._key(*key): rate for key, rate in rates.items()}
        self._measures = {self._key(*key): list(items) for key, items in (measures or {}).items()}
        self._fallback = fallback or FixedTariffResolver()

    @staticmethod
    def _key(hs_code: str, origin_country: str, destination_country: str) -> Tuple[str, str, str]:
        return (
            clean_hs_code(hs_code),
            normalize_country_code(origin_country),
            normalize_country_code(destination_country),
        )

    def _match(self, table, hs_code, origin_country, destination_country):
        code, origin, destination = self._key(hs_code, origin_country, destination_country)
        for length in range(len(code), 0, -1):
            key = (code[:length], origin, destination)
            if key in table:
                return key
        return None

    def resolve(self, hs_code: str, origin_country: str, destination_country: str) -> TariffRate:
        key = self._match(self._rates, hs_code, origin_country, destination_country)
        if key is None:
            return self._fallback.resolve(hs_code, origin_country, destination_country)

        logger.debug("Tariff rate for %s matched entry %s", hs_code, key)
        return TariffRate(rate=self._rates[key], source="tariff table", placeholder=False)

    def additional_tariffs(
        self,
        hs_code: str,
        origin_country: str,
        destination_country: str
    ) -> List[TariffMeasure]:
        key = self._match(self._measures, hs_code, origin_country, destination_country)
        if key is None:
            return self._fallback.additional_tariffs(hs_code, origin_country, destination_country)
        return list(self._measures[key])
