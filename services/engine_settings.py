"""
Engine settings - single source of truth for the landed cost EngineConfig
"""

import logging
import os
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from functools import lru_cache

from dotenv import load_dotenv

from calculation_models import EngineConfig, FreightRateTable, InlandTransportDefaults

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_APP_SECRET = "dev-secret-change-in-production"


def _env_decimal(name: str, default: str) -> Decimal:
    """Read a non-negative decimal from the environment"""
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return Decimal(default)

    try:
        value = Decimal(raw.strip())
    except InvalidOperation:
        raise RuntimeError(f"{name} must be a decimal number, got {raw!r}")

    if not value.is_finite() or value < 0:
        raise RuntimeError(f"{name} must be a finite number >= 0, got {raw!r}")
    return value


@lru_cache()
def get_engine_config() -> EngineConfig:
    """Get the EngineConfig built from LANDED_COST_* variables (cached singleton)"""
    config = EngineConfig(
        data_snapshot_timestamp=datetime.now(timezone.utc),
        default_insurance_rate=_env_decimal("LANDED_COST_INSURANCE_RATE", "0.005"),
        placeholder_tariff_rate=_env_decimal("LANDED_COST_TARIFF_RATE", "0.05"),
        freight_rates=FreightRateTable(
            fcl_20ft=_env_decimal("LANDED_COST_FCL_20FT_RATE", "1500"),
            fcl_40ft=_env_decimal("LANDED_COST_FCL_40FT_RATE", "2500"),
            lcl_per_cbm=_env_decimal("LANDED_COST_LCL_PER_CBM", "50"),
            air_per_kg=_env_decimal("LANDED_COST_AIR_PER_KG", "5"),
            express_per_kg=_env_decimal("LANDED_COST_EXPRESS_PER_KG", "10"),
        ),
        inland_defaults=InlandTransportDefaults(
            exw_origin=_env_decimal("LANDED_COST_EXW_ORIGIN_INLAND", "200"),
            destination=_env_decimal("LANDED_COST_DESTINATION_INLAND", "300"),
        ),
    )
    logger.info(
        "Loaded landed cost config %s (snapshot %s)",
        config.calculation_version,
        config.data_snapshot_timestamp.isoformat()
    )
    return config


def reload_engine_config() -> EngineConfig:
    """Drop the cached config and load it again with a fresh snapshot timestamp"""
    get_engine_config.cache_clear()
    return get_engine_config()


def get_app_secret() -> str:
    return os.getenv("APP_SECRET", DEFAULT_APP_SECRET)
