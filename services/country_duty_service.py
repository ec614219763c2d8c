"""
Country Duty Service - destination-country VAT and customs fee schedules

The engine never reads the schedule table directly. It receives a
CountryDutyLookup and asks it for the CountryDutyConfig of the destination
country, so a database- or API-backed source can replace the static table
without touching the calculation code.
"""

import logging
from abc import ABC, abstractmethod
from decimal import Decimal
from types import MappingProxyType
from typing import List, Mapping, Optional

from calculation_models import CountryDutyConfig, HMFSchedule, MPFBand, VatBasis

logger = logging.getLogger(__name__)


# ============================================================================
# STATIC SCHEDULE TABLE
# ============================================================================

# US Merchandise Processing Fee: 0.3464% of CIF, clamped to a dollar band
US_MPF_BAND = MPFBand(rate=Decimal("0.003464"), min_amount=Decimal("27.75"), max_amount=Decimal("538.40"))

# US Harbor Maintenance Fee: 0.125% of CIF (ocean shipments)
US_HMF_SCHEDULE = HMFSchedule(rate=Decimal("0.00125"))

# VAT applied when the destination is not in the table
DEFAULT_VAT_RATE = Decimal("0.15")


def _schedule(country_code: str, vat_rate: str, **fees) -> CountryDutyConfig:
    return CountryDutyConfig(
        country_code=country_code,
        vat_rate=Decimal(vat_rate),
        vat_applies_to=VatBasis.CIF_PLUS_DUTY,
        **fees
    )


COUNTRY_DUTY_TABLE: Mapping[str, CountryDutyConfig] = MappingProxyType({
    "US": _schedule("US", "0", mpf=US_MPF_BAND, hmf=US_HMF_SCHEDULE),
    "GB": _schedule("GB", "0.20"),
    "DE": _schedule("DE", "0.19"),
    "FR": _schedule("FR", "0.20"),
    "CN": _schedule("CN", "0.13"),
    "JP": _schedule("JP", "0.10"),
    "IN": _schedule("IN", "0.18"),
    "AU": _schedule("AU", "0.10"),
    "BR": _schedule("BR", "0.17"),
    "CA": _schedule("CA", "0.05"),
})

COUNTRY_ALIASES: Mapping[str, str] = MappingProxyType({
    "UK": "GB",
})


def normalize_country_code(country_code: Optional[str]) -> str:
    """Strip and upper-case an ISO country code ("  us " -> "US")"""
    if country_code is None:
        return ""
    return str(country_code).strip().upper()


# ============================================================================
# LOOKUP STRATEGIES
# ============================================================================

class CountryDutyLookup(ABC):
    """Source of destination-country duty schedules"""

    @abstractmethod
    def lookup(self, country_code: str) -> CountryDutyConfig:
        """Return the schedule for a destination country. Never raises for unknown codes."""


class StaticCountryDutyLookup(CountryDutyLookup):
    """
    Serves schedules from an in-memory, read-only table.

    Unknown countries get a fallback schedule with DEFAULT_VAT_RATE and no
    MPF/HMF, flagged with fallback=True.
    """

    def __init__(
        self,
        table: Mapping[str, CountryDutyConfig] = COUNTRY_DUTY_TABLE,
        default_vat_rate: Decimal = DEFAULT_VAT_RATE,
        aliases: Mapping[str, str] = COUNTRY_ALIASES,
    ):
        self._table = MappingProxyType(dict(table))
        self._aliases = MappingProxyType(dict(aliases))
        self._default_vat_rate = default_vat_rate

    def lookup(self, country_code: str) -> CountryDutyConfig:
        code = normalize_country_code(country_code)
        code = self._aliases.get(code, code)

        config = self._table.get(code)
        if config is None:
            logger.debug("No duty schedule for %r, falling back to %s VAT", code, self._default_vat_rate)
            return CountryDutyConfig(
                country_code=code,
                vat_rate=self._default_vat_rate,
                vat_applies_to=VatBasis.CIF_PLUS_DUTY,
                fallback=True
            )
        return config

    def known_countries(self) -> List[str]:
        return sorted(self._table)


DEFAULT_COUNTRY_DUTY_LOOKUP = StaticCountryDutyLookup()


def get_country_duty_config(country_code: str) -> CountryDutyConfig:
    """Resolve a schedule from the built-in table"""
    return DEFAULT_COUNTRY_DUTY_LOOKUP.lookup(country_code)
