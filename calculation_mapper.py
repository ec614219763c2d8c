"""
Landed Cost Mapping Module

This module handles:
- Mapping flat HTML form values to ShipmentInput
- Parsing JSON request bodies into ShipmentInput
- Flattening LandedCostResult into the camelCase wire shape

The mapper never calculates anything; blank or unparsable form values become
None and the engine's validator decides whether that is an error.
"""

from typing import Any, Dict, List, Optional
from decimal import Decimal, InvalidOperation
import logging

from pydantic import ValidationError as PydanticValidationError

from calculation_engine import collect_validation_errors
from calculation_errors import InvalidRangeError, ShipmentValidationError
from calculation_models import (
    CountryDutyConfig,
    Dimensions,
    FreightOverrides,
    LandedCostResult,
    ShipmentInput,
    ShippingMethod,
)

# Setup logger
logger = logging.getLogger(__name__)


# ============================================================================
# SAFE CONVERSION UTILITIES
# ============================================================================

def safe_decimal(value: Any, default: Optional[Decimal] = None) -> Optional[Decimal]:
    """Safely convert value to Decimal (finite numbers only)"""
    if value is None or str(value).strip() == "":
        return default
    try:
        result = Decimal(str(value).strip().replace(",", "."))
    except (InvalidOperation, ValueError, TypeError):
        return default
    if not result.is_finite():
        return default
    return result


def safe_str(value: Any, default: Optional[str] = None) -> Optional[str]:
    """Safely convert value to stripped string"""
    if value is None or str(value).strip() == "":
        return default
    return str(value).strip()


def safe_int(value: Any, default: Optional[int] = None) -> Optional[int]:
    """Safely convert value to int ("100" and "100.0" both give 100)"""
    number = safe_decimal(value)
    if number is None or number != number.to_integral_value():
        return default
    return int(number)


# ============================================================================
# FORM -> SHIPMENT
# ============================================================================

# Form field -> FreightOverrides field
FREIGHT_OVERRIDE_FIELDS = {
    "freight_sea_20ft": "sea_20ft",
    "freight_sea_40ft": "sea_40ft",
    "freight_air_per_kg": "air_per_kg",
    "freight_lcl_per_cbm": "lcl_per_cbm",
}


def map_form_to_shipment(form: Dict[str, Any]) -> ShipmentInput:
    """
    Build a ShipmentInput from calculator form values.

    Args:
        form: Flat dict of form strings (snake_case keys)

    Returns:
        ShipmentInput. Blank fields are None.

    Notes:
        - insurance_rate is entered in percent (0.5 -> 0.005)
        - dimensions are used only when length, width and height are all given
        - freight_* fields become FreightOverrides when at least one is set
    """
    length = safe_decimal(form.get("length"))
    width = safe_decimal(form.get("width"))
    height = safe_decimal(form.get("height"))
    dimensions = None
    if length is not None and width is not None and height is not None:
        dimensions = Dimensions(length=length, width=width, height=height)

    insurance_percent = safe_decimal(form.get("insurance_rate"))
    insurance_rate = insurance_percent / Decimal("100") if insurance_percent is not None else None

    overrides = {
        target: safe_decimal(form.get(source))
        for source, target in FREIGHT_OVERRIDE_FIELDS.items()
    }
    freight_overrides = None
    if any(value is not None for value in overrides.values()):
        freight_overrides = FreightOverrides(**overrides)

    shipment = ShipmentInput(
        product_name=safe_str(form.get("product_name")),
        hs_code=safe_str(form.get("hs_code")),
        category=safe_str(form.get("category")),
        base_cost=safe_decimal(form.get("base_cost")),
        incoterm=safe_str(form.get("incoterm")),
        quantity=safe_int(form.get("quantity")),
        currency=safe_str(form.get("currency")),
        origin_country=safe_str(form.get("origin_country")),
        destination_country=safe_str(form.get("destination_country")),
        origin_port=safe_str(form.get("origin_port")),
        destination_port=safe_str(form.get("destination_port")),
        shipping_method=safe_str(form.get("shipping_method")),
        container_type=safe_str(form.get("container_type")),
        weight=safe_decimal(form.get("weight")),
        volume=safe_decimal(form.get("volume")),
        dimensions=dimensions,
        insurance_rate=insurance_rate,
        inland_transport_origin=safe_decimal(form.get("inland_transport_origin")),
        inland_transport_destination=safe_decimal(form.get("inland_transport_destination")),
        freight_overrides=freight_overrides,
    )

    logger.debug("Mapped form to shipment %s → %s", shipment.origin_country, shipment.destination_country)
    return shipment


# ============================================================================
# JSON -> SHIPMENT
# ============================================================================

# Validator priority, by top-level wire field; anything else ranks last
VALIDATION_FIELD_ORDER = (
    "baseCost",
    "quantity",
    "currency",
    "incoterm",
    "originCountry",
    "destinationCountry",
    "hsCode",
    "containerType",
    "weight",
    "volume",
    "dimensions",
    "insuranceRate",
    "inlandTransportOrigin",
    "inlandTransportDestination",
    "freightOverrides",
)


def _field_rank(field: str) -> int:
    top = field.split(".")[0]
    if top in VALIDATION_FIELD_ORDER:
        return VALIDATION_FIELD_ORDER.index(top)
    return len(VALIDATION_FIELD_ORDER)


def _wire_field(key: str) -> str:
    """camelCase name for either spelling of a ShipmentInput field"""
    for name, info in ShipmentInput.model_fields.items():
        if key in (name, info.alias):
            return info.alias
    return key


def parse_shipment_payload(payload: Any) -> ShipmentInput:
    """
    Parse a JSON request body.

    Ill-typed fields are ranked against the validator's checks on the fields
    that did parse, so {baseCost: 0, quantity: 1.5} reports the base cost
    first, as validate_shipment would.

    Raises:
        InvalidRangeError: body is not an object, or a field has the wrong type
        ShipmentValidationError: a parsed field fails validation ahead of a type error
    """
    if not isinstance(payload, dict):
        raise InvalidRangeError("body", "Request body must be a JSON object")

    try:
        return ShipmentInput.model_validate(payload)
    except PydanticValidationError as e:
        type_errors: List[ShipmentValidationError] = []
        for error in e.errors():
            parts = [str(part) for part in error["loc"]] or ["body"]
            parts[0] = _wire_field(parts[0])
            field = ".".join(parts)
            type_errors.append(InvalidRangeError(field, f"Invalid value for {field}: {error['msg']}"))
        cause = e

    bad_fields = {err.field.split(".")[0] for err in type_errors}
    partial = ShipmentInput.model_validate(
        {k: v for k, v in payload.items() if _wire_field(k) not in bad_fields}
    )
    checks = [err for err in collect_validation_errors(partial) if err.field.split(".")[0] not in bad_fields]

    # Stable sort; equal ranks keep validator order
    first = sorted(checks + type_errors, key=lambda err: _field_rank(err.field))[0]
    logger.debug("Payload rejected on %s (%d type errors)", first.field, len(type_errors))
    raise first from cause


# ============================================================================
# RESULT -> WIRE
# ============================================================================

# Freight union member -> wire key
FREIGHT_DETAIL_KEYS = {
    ShippingMethod.SEA_FCL: "oceanFCL",
    ShippingMethod.SEA_LCL: "oceanLCL",
    ShippingMethod.AIR: "airFreight",
    ShippingMethod.EXPRESS: "express",
}


def result_to_wire(result: LandedCostResult) -> Dict[str, Any]:
    """
    Serialize a result to a JSON-ready camelCase dict.

    The freight detail is emitted under exactly one of oceanFCL, oceanLCL,
    airFreight or express. Absent optional values (mpf, hmf, dataSource) are
    omitted.
    """
    data = result.model_dump(mode="json", by_alias=True, exclude_none=True)

    freight = data["freight"]
    detail = freight.pop("detail")
    detail.pop("method", None)
    freight[FREIGHT_DETAIL_KEYS[result.freight.selected_method]] = detail

    return data


def country_config_to_wire(config: CountryDutyConfig) -> Dict[str, Any]:
    return config.model_dump(mode="json", by_alias=True, exclude_none=True)
