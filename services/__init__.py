"""
Landed Cost Services

Country duty schedules, tariff resolution and engine configuration.
"""

from .country_duty_service import (
    COUNTRY_DUTY_TABLE,
    DEFAULT_COUNTRY_DUTY_LOOKUP,
    CountryDutyLookup,
    StaticCountryDutyLookup,
    get_country_duty_config,
    normalize_country_code,
)
from .tariff_service import (
    FixedTariffResolver,
    TariffResolver,
    TariffTableResolver,
    clean_hs_code,
    is_valid_hs_code,
)
from .engine_settings import get_engine_config, reload_engine_config, get_app_secret
