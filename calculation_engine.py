"""
Landed Cost Engine - Calculation Engine
Multi-stage pipeline that turns a ShipmentInput into an itemized LandedCostResult.

STAGE ORDER (strictly downward, once per call):
━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
1. Validate input (fail-fast; nothing below runs on bad input)
2. Base cost          normalized_cost = base_cost
3. Freight            one of sea_fcl / sea_lcl / air / express
4. CIF (provisional)  base + freight                  -> insurance base
5. Insurance          cif_provisional x rate
6. CIF (final)        base + freight + insurance      -> customs base
7. Customs            duty + VAT + MPF + HMF + additional tariffs
8. Inland transport   origin leg + destination leg
9. Totals, breakdown and audit notes
━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

Every amount is Decimal, rounded to 4 places with ROUND_HALF_UP. The total is
the sum of the rounded components, so the breakdown always adds up exactly.

No currency conversion: all amounts are in the shipment currency.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional, Tuple

from calculation_errors import (
    InvalidEnumError,
    InvalidRangeError,
    MissingFieldError,
    ShipmentValidationError,
    UnsupportedShippingMethodError,
)
from calculation_models import (
    AdditionalTariff,
    AirFreightDetail,
    BaseCostResult,
    CalculationNote,
    ContainerType,
    CostBreakdownItem,
    CountryDutyConfig,
    CustomsResult,
    EngineConfig,
    ExpressDetail,
    FreightRateTable,
    FreightResult,
    HarborMaintenanceFee,
    HMFSchedule,
    ImportDuty,
    Incoterm,
    InlandLeg,
    InlandTransportResult,
    InsuranceResult,
    LandedCostResult,
    MerchandiseProcessingFee,
    MPFBand,
    NoteCategory,
    OceanFCLDetail,
    OceanLCLDetail,
    ShipmentInput,
    ShippingMethod,
    Totals,
    VatBasis,
    VatCharge,
)
from services.country_duty_service import DEFAULT_COUNTRY_DUTY_LOOKUP, CountryDutyLookup
from services.tariff_service import FixedTariffResolver, TariffResolver, is_valid_hs_code

logger = logging.getLogger(__name__)


# ============================================================================
# CONSTANTS
# ============================================================================

DEFAULT_ENGINE_CONFIG = EngineConfig()

FREIGHT_BENCHMARK_SOURCE = "freight benchmark"

DATA_QUALITY_DISCLAIMER = "Rates are estimates. Integrate with actual rate providers for production use."

# Note components
COMPONENT_SYSTEM = "System"
COMPONENT_BASE_COST = "Base Cost"
COMPONENT_FREIGHT = "Freight"
COMPONENT_INSURANCE = "Insurance"
COMPONENT_CUSTOMS = "Customs"
COMPONENT_INLAND = "Inland Transport"
COMPONENT_ROUTE = "Route"
COMPONENT_DATA_QUALITY = "Data Quality"

# Breakdown labels
LABEL_BASE_COST = "Base Cost"
LABEL_FREIGHT = "Freight"
LABEL_INSURANCE = "Insurance"
LABEL_IMPORT_DUTY = "Import Duty"
LABEL_VAT = "VAT/GST"
LABEL_MPF = "MPF"
LABEL_HMF = "HMF"
LABEL_INLAND_ORIGIN = "Inland (Origin)"
LABEL_INLAND_DESTINATION = "Inland (Destination)"

# Freight rate table field -> human label used in notes
FREIGHT_RATE_LABELS = {
    "fcl_20ft": "20ft container",
    "fcl_40ft": "40ft container",
    "lcl_per_cbm": "LCL per CBM",
    "air_per_kg": "air freight per kg",
    "express_per_kg": "express per kg",
}

CBM_DIVISOR = Decimal("1000000")  # cm³ per m³
HUNDRED = Decimal("100")
ZERO = Decimal("0")


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def round_decimal(value: Decimal, decimal_places: int = 4) -> Decimal:
    """Round decimal to specified places using ROUND_HALF_UP.

    Default is 4 decimal places, the precision of every engine amount.
    """
    if decimal_places == 4:
        return value.quantize(Decimal('0.0001'), rounding=ROUND_HALF_UP)
    elif decimal_places == 2:
        return value.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
    else:
        quantizer = Decimal(10) ** -decimal_places
        return value.quantize(quantizer, rounding=ROUND_HALF_UP)


def format_percent(rate: Decimal) -> str:
    """0.005 -> '0.50%'"""
    return f"{round_decimal(rate * HUNDRED, 2)}%"


def format_amount(amount: Decimal, currency: str) -> str:
    return f"{round_decimal(amount, 2)} {currency}"


def make_note(
    category: NoteCategory,
    component: str,
    message: str,
    data_source: Optional[str] = None
) -> CalculationNote:
    return CalculationNote(category=category, component=component, message=message, data_source=data_source)


def normalize_incoterm(value: Optional[str]) -> Optional[Incoterm]:
    """Parse an incoterm case-insensitively; None when it is not one of the four"""
    if value is None:
        return None
    try:
        return Incoterm(str(value).strip().upper())
    except ValueError:
        return None


def normalize_shipping_method(value: Optional[str]) -> ShippingMethod:
    """Parse a shipping method or raise UnsupportedShippingMethodError"""
    try:
        return ShippingMethod(str(value).strip().lower())
    except ValueError:
        raise UnsupportedShippingMethodError(value)


def normalize_container_type(value: Optional[str]) -> Optional[ContainerType]:
    if value is None:
        return None
    try:
        return ContainerType(str(value).strip().lower())
    except ValueError:
        return None


def _container_type_error(value) -> InvalidEnumError:
    valid = ", ".join(c.value for c in ContainerType)
    return InvalidEnumError("containerType", f"Invalid container type: {value}. Must be one of: {valid}", value=value)


def _is_blank(value) -> bool:
    return value is None or str(value).strip() == ""


def _measurement_or_default(value: Optional[Decimal], default: Decimal) -> Tuple[Decimal, bool]:
    """Missing or zero measurement -> (default, True)"""
    if value is None or value == 0:
        return default, True
    return value, False


# ============================================================================
# STAGE 1: INPUT VALIDATION
# ============================================================================

def collect_validation_errors(shipment: ShipmentInput) -> List[ShipmentValidationError]:
    """
    Check a shipment and return every violation, in priority order.

    Order: baseCost, quantity, currency, incoterm, originCountry,
    destinationCountry, hsCode, then containerType (sea_fcl only) and the range checks on
    optional measurements and overrides. Pure; never raises.
    """
    errors: List[ShipmentValidationError] = []

    if shipment.base_cost is None or shipment.base_cost <= 0:
        errors.append(InvalidRangeError("baseCost", "Base cost must be greater than 0"))

    if shipment.quantity is None or shipment.quantity <= 0:
        errors.append(InvalidRangeError("quantity", "Quantity must be greater than 0"))

    if _is_blank(shipment.currency):
        errors.append(MissingFieldError("currency", "Currency is required"))

    if _is_blank(shipment.incoterm):
        errors.append(InvalidEnumError("incoterm", "Incoterm is required"))
    elif normalize_incoterm(shipment.incoterm) is None:
        valid = ", ".join(i.value for i in Incoterm)
        errors.append(InvalidEnumError(
            "incoterm",
            f"Invalid incoterm: {shipment.incoterm}. Must be one of: {valid}",
            value=shipment.incoterm
        ))

    if _is_blank(shipment.origin_country):
        errors.append(MissingFieldError("originCountry", "Origin country is required"))

    if _is_blank(shipment.destination_country):
        errors.append(MissingFieldError("destinationCountry", "Destination country is required"))

    if _is_blank(shipment.hs_code):
        errors.append(MissingFieldError("hsCode", "HS code is required"))

    # Container size only matters for full container loads
    fcl = str(shipment.shipping_method).strip().lower() == ShippingMethod.SEA_FCL.value
    if fcl and not _is_blank(shipment.container_type) and normalize_container_type(shipment.container_type) is None:
        errors.append(_container_type_error(shipment.container_type))

    # Optional measurements
    if shipment.weight is not None and shipment.weight < 0:
        errors.append(InvalidRangeError("weight", "Weight must be >= 0"))

    if shipment.volume is not None and shipment.volume < 0:
        errors.append(InvalidRangeError("volume", "Volume must be >= 0"))

    if shipment.dimensions is not None:
        dims = shipment.dimensions
        if dims.length <= 0 or dims.width <= 0 or dims.height <= 0:
            errors.append(InvalidRangeError("dimensions", "Dimensions must be greater than 0"))

    # Overrides
    if shipment.insurance_rate is not None and shipment.insurance_rate < 0:
        errors.append(InvalidRangeError("insuranceRate", "Insurance rate must be >= 0"))

    if shipment.inland_transport_origin is not None and shipment.inland_transport_origin < 0:
        errors.append(InvalidRangeError("inlandTransportOrigin", "Origin transport cost must be >= 0"))

    if shipment.inland_transport_destination is not None and shipment.inland_transport_destination < 0:
        errors.append(InvalidRangeError("inlandTransportDestination", "Destination transport cost must be >= 0"))

    if shipment.freight_overrides is not None:
        overrides = shipment.freight_overrides.model_dump(by_alias=True)
        for name, value in overrides.items():
            if value is not None and value < 0:
                errors.append(InvalidRangeError(
                    f"freightOverrides.{name}",
                    f"Freight override {name} must be >= 0"
                ))

    return errors


def validate_shipment(shipment: ShipmentInput) -> ShipmentInput:
    """
    Fail-fast validation: raise the first violation.

    Raises:
        InvalidRangeError / MissingFieldError / InvalidEnumError
    """
    errors = collect_validation_errors(shipment)
    if errors:
        logger.debug("Shipment rejected on %s (%d violations)", errors[0].field, len(errors))
        raise errors[0]
    return shipment


# ============================================================================
# STAGE 2: BASE COST
# ============================================================================

def calculate_base_cost(shipment: ShipmentInput) -> BaseCostResult:
    """
    Carry the buyer's base cost forward unchanged.

    The incoterm is provenance only: FOB, EXW and normalized cost are all the
    base cost. CIF and DDP quotes still get freight, insurance and duties
    added on top, which the warning notes call out.
    """
    incoterm = normalize_incoterm(shipment.incoterm)
    cost = shipment.base_cost
    currency = shipment.currency.strip().upper()

    notes = [make_note(NoteCategory.INFO, COMPONENT_BASE_COST, f"Base cost provided as {incoterm.value}")]

    if incoterm == Incoterm.CIF:
        notes.append(make_note(
            NoteCategory.WARNING, COMPONENT_BASE_COST,
            "Base cost is CIF but freight and insurance are still added on top"
        ))
    elif incoterm == Incoterm.DDP:
        notes.append(make_note(
            NoteCategory.WARNING, COMPONENT_BASE_COST,
            "Base cost is DDP but freight, insurance and duties are still added on top"
        ))

    return BaseCostResult(
        fob_cost=cost,
        exw_cost=cost,
        normalized_cost=cost,
        currency=currency,
        notes=notes
    )


# ============================================================================
# STAGE 3: FREIGHT
# ============================================================================

def _rate_note(rate_field: str, rate: Decimal, overridden, currency: str) -> CalculationNote:
    label = FREIGHT_RATE_LABELS[rate_field]
    if rate_field in overridden:
        return make_note(
            NoteCategory.ACTUAL, COMPONENT_FREIGHT,
            f"Using benchmark rate for {label}: {format_amount(rate, currency)}",
            data_source=FREIGHT_BENCHMARK_SOURCE
        )
    return make_note(
        NoteCategory.ESTIMATE, COMPONENT_FREIGHT,
        f"Estimated {label} rate from default rate table: {format_amount(rate, currency)}"
    )


def calculate_ocean_fcl(
    shipment: ShipmentInput,
    rates: FreightRateTable,
    config: EngineConfig,
    overridden=frozenset()
) -> Tuple[OceanFCLDetail, List[CalculationNote]]:
    """Full container load: flat rate for the selected container size"""
    currency = shipment.currency
    notes = []

    if _is_blank(shipment.container_type):
        container = config.default_container_type
        notes.append(make_note(
            NoteCategory.ASSUMPTION, COMPONENT_FREIGHT,
            f"No container type given, assuming {container.value}"
        ))
    else:
        container = normalize_container_type(shipment.container_type)
        if container is None:
            raise _container_type_error(shipment.container_type)

    rate_field = "fcl_20ft" if container == ContainerType.FT20 else "fcl_40ft"
    selected = getattr(rates, rate_field)
    notes.append(_rate_note(rate_field, selected, overridden, currency))

    detail = OceanFCLDetail(
        cost_20ft=rates.fcl_20ft,
        cost_40ft=rates.fcl_40ft,
        selected_cost=round_decimal(selected),
        container_type=container
    )
    return detail, notes


def calculate_ocean_lcl(
    shipment: ShipmentInput,
    rates: FreightRateTable,
    config: EngineConfig,
    overridden=frozenset()
) -> Tuple[OceanLCLDetail, List[CalculationNote]]:
    """Less than container load: volume x rate per CBM"""
    notes = []

    volume, defaulted = _measurement_or_default(shipment.resolved_volume(), config.default_lcl_volume)
    if defaulted:
        notes.append(make_note(
            NoteCategory.ASSUMPTION, COMPONENT_FREIGHT,
            f"No volume given, assuming {volume} CBM"
        ))
    notes.append(_rate_note("lcl_per_cbm", rates.lcl_per_cbm, overridden, shipment.currency))

    detail = OceanLCLDetail(
        cost_per_cbm=rates.lcl_per_cbm,
        volume=round_decimal(volume),
        total_cost=round_decimal(volume * rates.lcl_per_cbm)
    )
    return detail, notes


def calculate_air_freight(
    shipment: ShipmentInput,
    rates: FreightRateTable,
    config: EngineConfig,
    overridden=frozenset()
) -> Tuple[AirFreightDetail, List[CalculationNote]]:
    """
    Air freight on chargeable weight.

    volumetric = volume (CBM) x volumetric factor (167 kg/CBM)
    chargeable = max(actual weight, volumetric)
    cost       = chargeable x rate per kg
    """
    notes = []

    weight, weight_defaulted = _measurement_or_default(shipment.weight, config.default_air_weight)
    if weight_defaulted:
        notes.append(make_note(
            NoteCategory.ASSUMPTION, COMPONENT_FREIGHT,
            f"No weight given, assuming {weight} kg"
        ))

    volume, volume_defaulted = _measurement_or_default(shipment.resolved_volume(), config.default_air_volume)
    if volume_defaulted:
        notes.append(make_note(
            NoteCategory.ASSUMPTION, COMPONENT_FREIGHT,
            f"No volume given, assuming {volume} CBM"
        ))

    volumetric = round_decimal(volume * rates.volumetric_factor)
    chargeable = max(weight, volumetric)

    if volumetric > weight:
        notes.append(make_note(
            NoteCategory.INFO, COMPONENT_FREIGHT,
            f"Charged on volumetric weight ({volumetric} kg) instead of actual weight ({weight} kg)"
        ))
    notes.append(_rate_note("air_per_kg", rates.air_per_kg, overridden, shipment.currency))

    detail = AirFreightDetail(
        cost_per_kg=rates.air_per_kg,
        actual_weight=round_decimal(weight),
        volumetric_weight=volumetric,
        chargeable_weight=round_decimal(chargeable),
        total_cost=round_decimal(chargeable * rates.air_per_kg)
    )
    return detail, notes


def calculate_express(
    shipment: ShipmentInput,
    rates: FreightRateTable,
    config: EngineConfig,
    overridden=frozenset()
) -> Tuple[ExpressDetail, List[CalculationNote]]:
    """Courier: actual weight x express rate per kg"""
    notes = []

    weight, defaulted = _measurement_or_default(shipment.weight, config.default_express_weight)
    if defaulted:
        notes.append(make_note(
            NoteCategory.ASSUMPTION, COMPONENT_FREIGHT,
            f"No weight given, assuming {weight} kg"
        ))
    notes.append(_rate_note("express_per_kg", rates.express_per_kg, overridden, shipment.currency))

    detail = ExpressDetail(
        cost_per_kg=rates.express_per_kg,
        weight=round_decimal(weight),
        total_cost=round_decimal(weight * rates.express_per_kg)
    )
    return detail, notes


FREIGHT_CALCULATORS = {
    ShippingMethod.SEA_FCL: calculate_ocean_fcl,
    ShippingMethod.SEA_LCL: calculate_ocean_lcl,
    ShippingMethod.AIR: calculate_air_freight,
    ShippingMethod.EXPRESS: calculate_express,
}


def calculate_freight(shipment: ShipmentInput, config: Optional[EngineConfig] = None) -> FreightResult:
    """
    Price the main carriage for the shipment's method.

    Benchmark overrides replace individual rates of the default table for
    this call only.

    Raises:
        UnsupportedShippingMethodError: method is not sea_fcl, sea_lcl, air or express
    """
    config = config or DEFAULT_ENGINE_CONFIG
    method = normalize_shipping_method(shipment.shipping_method)
    rates, overridden = config.freight_rates.with_overrides(shipment.freight_overrides)

    calculator = FREIGHT_CALCULATORS[method]
    detail, notes = calculator(shipment, rates, config, overridden)

    selected_cost = detail.selected_cost if method == ShippingMethod.SEA_FCL else detail.total_cost
    logger.debug("Freight %s: %s", method.value, selected_cost)

    return FreightResult(
        detail=detail,
        selected_method=method,
        selected_cost=selected_cost,
        notes=notes
    )


# ============================================================================
# STAGE 4-6: CIF AND INSURANCE
# ============================================================================

def calculate_cif_provisional(base_cost: BaseCostResult, freight: FreightResult) -> Decimal:
    """CIF without insurance; the insurance base"""
    return base_cost.normalized_cost + freight.selected_cost


def calculate_insurance(
    shipment: ShipmentInput,
    cif_provisional: Decimal,
    config: Optional[EngineConfig] = None
) -> InsuranceResult:
    """amount = cif_provisional x rate (buyer override or configured default)"""
    config = config or DEFAULT_ENGINE_CONFIG
    notes = []

    if shipment.insurance_rate is not None:
        rate = shipment.insurance_rate
        notes.append(make_note(
            NoteCategory.ACTUAL, COMPONENT_INSURANCE,
            f"Using user-provided insurance rate: {format_percent(rate)}"
        ))
    else:
        rate = config.default_insurance_rate
        notes.append(make_note(
            NoteCategory.ASSUMPTION, COMPONENT_INSURANCE,
            f"Using default insurance rate: {format_percent(rate)}"
        ))

    amount = round_decimal(cif_provisional * rate)
    notes.append(make_note(
        NoteCategory.INFO, COMPONENT_INSURANCE,
        f"Insurance calculated on CIF value of {format_amount(cif_provisional, shipment.currency)}"
    ))

    return InsuranceResult(rate=rate, amount=amount, cif_value=cif_provisional, notes=notes)


def calculate_cif_final(
    base_cost: BaseCostResult,
    freight: FreightResult,
    insurance: InsuranceResult
) -> Decimal:
    """CIF including insurance; the customs base"""
    return base_cost.normalized_cost + freight.selected_cost + insurance.amount


# ============================================================================
# STAGE 7: CUSTOMS
# ============================================================================

def calculate_mpf(cif_final: Decimal, band: MPFBand) -> MerchandiseProcessingFee:
    """MPF = clamp(cif_final x rate, min, max)"""
    raw = cif_final * band.rate
    amount = min(band.max_amount, max(band.min_amount, raw))
    return MerchandiseProcessingFee(
        rate=band.rate,
        amount=round_decimal(amount),
        min_amount=band.min_amount,
        max_amount=band.max_amount
    )


def calculate_hmf(cif_final: Decimal, schedule: HMFSchedule) -> HarborMaintenanceFee:
    """HMF = cif_final x rate"""
    return HarborMaintenanceFee(rate=schedule.rate, amount=round_decimal(cif_final * schedule.rate))


def calculate_customs(
    shipment: ShipmentInput,
    cif_final: Decimal,
    duty_config: CountryDutyConfig,
    tariff_resolver: Optional[TariffResolver] = None
) -> CustomsResult:
    """
    Import duty, VAT and destination fees on the final CIF value.

    Args:
        shipment: Validated shipment
        cif_final: base + freight + insurance
        duty_config: Destination schedule (VAT, MPF, HMF)
        tariff_resolver: Duty rate source; 5% placeholder when None

    Returns:
        CustomsResult with total_customs_fees = duty + VAT + MPF + HMF + additional tariffs
    """
    tariff_resolver = tariff_resolver or FixedTariffResolver()
    currency = shipment.currency
    destination = duty_config.country_code
    notes = []

    if not is_valid_hs_code(shipment.hs_code):
        notes.append(make_note(
            NoteCategory.WARNING, COMPONENT_CUSTOMS,
            f"HS code {shipment.hs_code} is not 6-10 digits; duty rate may not match the product"
        ))

    if duty_config.fallback:
        notes.append(make_note(
            NoteCategory.ASSUMPTION, COMPONENT_CUSTOMS,
            f"No duty schedule for {destination}, using default VAT/GST rate {format_percent(duty_config.vat_rate)}"
        ))

    # Import duty
    tariff = tariff_resolver.resolve(shipment.hs_code, shipment.origin_country, destination)
    duty_amount = round_decimal(cif_final * tariff.rate)
    import_duty = ImportDuty(rate=tariff.rate, amount=duty_amount, base_value=cif_final)

    if tariff.placeholder:
        notes.append(make_note(
            NoteCategory.ASSUMPTION, COMPONENT_CUSTOMS,
            f"Import duty: {format_percent(tariff.rate)} on CIF value (placeholder rate, HS code not classified)",
            data_source=tariff.source
        ))
    else:
        notes.append(make_note(
            NoteCategory.INFO, COMPONENT_CUSTOMS,
            f"Import duty: {format_percent(tariff.rate)} on CIF value",
            data_source=tariff.source
        ))

    # Additional tariffs
    additional_tariffs = []
    for measure in tariff_resolver.additional_tariffs(shipment.hs_code, shipment.origin_country, destination):
        amount = round_decimal(cif_final * measure.rate)
        additional_tariffs.append(AdditionalTariff(
            name=measure.name,
            type=measure.type,
            rate=measure.rate,
            amount=amount
        ))
        notes.append(make_note(
            NoteCategory.INFO, COMPONENT_CUSTOMS,
            f"{measure.name}: {format_percent(measure.rate)} on CIF value"
        ))

    # VAT
    if duty_config.vat_applies_to == VatBasis.CIF_PLUS_DUTY:
        vat_base = cif_final + duty_amount
        basis_label = "CIF + duty"
    else:
        vat_base = cif_final
        basis_label = "CIF"

    vat = VatCharge(
        rate=duty_config.vat_rate,
        amount=round_decimal(vat_base * duty_config.vat_rate),
        base_value=vat_base
    )

    if duty_config.vat_rate > 0:
        notes.append(make_note(
            NoteCategory.INFO, COMPONENT_CUSTOMS,
            f"VAT/GST: {format_percent(duty_config.vat_rate)} in {destination}"
        ))
        notes.append(make_note(
            NoteCategory.INFO, COMPONENT_CUSTOMS,
            f"VAT/GST base is {basis_label}: {format_amount(vat_base, currency)}"
        ))
    else:
        notes.append(make_note(NoteCategory.INFO, COMPONENT_CUSTOMS, f"No VAT/GST in {destination}"))

    # Destination fees
    mpf = None
    if duty_config.mpf is not None:
        mpf = calculate_mpf(cif_final, duty_config.mpf)
        notes.append(make_note(
            NoteCategory.INFO, COMPONENT_CUSTOMS,
            f"MPF applied ({destination}-specific processing fee)"
        ))

    hmf = None
    if duty_config.hmf is not None:
        hmf = calculate_hmf(cif_final, duty_config.hmf)
        notes.append(make_note(
            NoteCategory.INFO, COMPONENT_CUSTOMS,
            f"HMF applied ({destination}-specific harbor maintenance fee)"
        ))

    total = duty_amount + vat.amount
    total += sum((t.amount for t in additional_tariffs), ZERO)
    if mpf is not None:
        total += mpf.amount
    if hmf is not None:
        total += hmf.amount

    logger.debug("Customs for %s on CIF %s: %s", destination, cif_final, total)

    return CustomsResult(
        hs_code=shipment.hs_code,
        import_duty=import_duty,
        vat=vat,
        additional_tariffs=additional_tariffs,
        mpf=mpf,
        hmf=hmf,
        total_customs_fees=total,
        notes=notes
    )


# ============================================================================
# STAGE 8: INLAND TRANSPORT
# ============================================================================

def calculate_inland_transport(
    shipment: ShipmentInput,
    config: Optional[EngineConfig] = None
) -> InlandTransportResult:
    """
    Origin leg (factory -> port) and destination leg (port -> warehouse).

    Origin: override, else the EXW estimate under EXW, else 0 since the
    seller delivers to the port. Destination: override, else the estimate.
    """
    config = config or DEFAULT_ENGINE_CONFIG
    defaults = config.inland_defaults
    incoterm = normalize_incoterm(shipment.incoterm)

    # Origin leg
    if shipment.inland_transport_origin is not None:
        origin_cost = shipment.inland_transport_origin
        origin_note = make_note(NoteCategory.ACTUAL, COMPONENT_INLAND, "Using user-provided origin transport cost")
    elif incoterm == Incoterm.EXW:
        origin_cost = defaults.exw_origin
        origin_note = make_note(
            NoteCategory.ESTIMATE, COMPONENT_INLAND,
            "Estimated origin transport cost (EXW - factory to port)"
        )
    else:
        origin_cost = ZERO
        origin_note = make_note(
            NoteCategory.ASSUMPTION, COMPONENT_INLAND,
            "No origin transport cost (seller delivers to port)"
        )

    # Destination leg
    if shipment.inland_transport_destination is not None:
        destination_cost = shipment.inland_transport_destination
        destination_note = make_note(
            NoteCategory.ACTUAL, COMPONENT_INLAND,
            "Using user-provided destination transport cost"
        )
    else:
        destination_cost = defaults.destination
        destination_note = make_note(
            NoteCategory.ESTIMATE, COMPONENT_INLAND,
            "Estimated destination transport cost (port to warehouse)"
        )

    origin = InlandLeg(cost=round_decimal(origin_cost), notes=[origin_note])
    destination = InlandLeg(cost=round_decimal(destination_cost), notes=[destination_note])

    return InlandTransportResult(
        origin=origin,
        destination=destination,
        total=origin.cost + destination.cost
    )


# ============================================================================
# STAGE 9: TOTALS, BREAKDOWN, NOTES
# ============================================================================

def calculate_totals(
    shipment: ShipmentInput,
    base_cost: BaseCostResult,
    freight: FreightResult,
    customs: CustomsResult,
    inland: InlandTransportResult,
    insurance: InsuranceResult
) -> Totals:
    """total = base + freight + customs + inland + insurance; per unit = total / quantity"""
    total = (
        base_cost.normalized_cost
        + freight.selected_cost
        + customs.total_customs_fees
        + inland.total
        + insurance.amount
    )
    return Totals(
        total_landed_cost=total,
        cost_per_unit=round_decimal(total / Decimal(shipment.quantity)),
        currency=base_cost.currency
    )


def generate_breakdown(
    base_cost: BaseCostResult,
    freight: FreightResult,
    customs: CustomsResult,
    inland: InlandTransportResult,
    insurance: InsuranceResult,
    total: Decimal
) -> List[CostBreakdownItem]:
    """
    Itemize the total in display order.

    Base cost, freight, insurance, import duty and VAT/GST are always listed;
    MPF, HMF, additional tariffs and the inland legs only when non-zero.
    Cumulative percentage is derived from the running amount so the last
    entry is exactly 100.
    """
    entries = [
        (LABEL_BASE_COST, base_cost.normalized_cost),
        (LABEL_FREIGHT, freight.selected_cost),
        (LABEL_INSURANCE, insurance.amount),
        (LABEL_IMPORT_DUTY, customs.import_duty.amount),
        (LABEL_VAT, customs.vat.amount),
    ]

    optional_entries = []
    if customs.mpf is not None:
        optional_entries.append((LABEL_MPF, customs.mpf.amount))
    if customs.hmf is not None:
        optional_entries.append((LABEL_HMF, customs.hmf.amount))
    for tariff in customs.additional_tariffs:
        optional_entries.append((tariff.name, tariff.amount))
    optional_entries.append((LABEL_INLAND_ORIGIN, inland.origin.cost))
    optional_entries.append((LABEL_INLAND_DESTINATION, inland.destination.cost))

    entries.extend(entry for entry in optional_entries if entry[1] > 0)

    breakdown = []
    cumulative = ZERO
    for component, amount in entries:
        cumulative += amount
        breakdown.append(CostBreakdownItem(
            component=component,
            amount=amount,
            percentage=round_decimal(amount / total * HUNDRED),
            cumulative_amount=cumulative,
            cumulative_percentage=round_decimal(cumulative / total * HUNDRED)
        ))
    return breakdown


def generate_notes(
    shipment: ShipmentInput,
    base_cost: BaseCostResult,
    freight: FreightResult,
    customs: CustomsResult,
    inland: InlandTransportResult,
    insurance: InsuranceResult,
    config: EngineConfig,
    data_snapshot_timestamp: datetime
) -> List[CalculationNote]:
    """Audit trail: version info, stage notes in pipeline order, route, disclaimer"""
    notes = [
        make_note(
            NoteCategory.INFO, COMPONENT_SYSTEM,
            f"Calculation version {config.calculation_version}, "
            f"rate data snapshot {data_snapshot_timestamp.isoformat()}"
        )
    ]

    notes.extend(base_cost.notes)
    notes.extend(freight.notes)
    notes.extend(insurance.notes)
    notes.extend(customs.notes)
    notes.extend(inland.origin.notes)
    notes.extend(inland.destination.notes)

    origin = shipment.origin_country.strip().upper()
    destination = shipment.destination_country.strip().upper()
    notes.append(make_note(
        NoteCategory.INFO, COMPONENT_ROUTE,
        f"{origin} → {destination} via {freight.selected_method.value}"
    ))
    notes.append(make_note(NoteCategory.WARNING, COMPONENT_DATA_QUALITY, DATA_QUALITY_DISCLAIMER))

    return notes


# ============================================================================
# ORCHESTRATOR
# ============================================================================

def calculate_landed_cost(
    shipment: ShipmentInput,
    duty_lookup: Optional[CountryDutyLookup] = None,
    *,
    tariff_resolver: Optional[TariffResolver] = None,
    config: Optional[EngineConfig] = None,
    calculated_at: Optional[datetime] = None
) -> LandedCostResult:
    """
    Calculate the landed cost of one shipment.

    Args:
        shipment: Shipment description
        duty_lookup: Destination duty schedules (built-in table when None)
        tariff_resolver: Import duty source (placeholder rate from config when None)
        config: Engine configuration (built-in defaults when None)
        calculated_at: Calculation timestamp (now, UTC, when None)

    Returns:
        LandedCostResult

    Raises:
        ShipmentValidationError: input rejected; no stage has run
        UnsupportedShippingMethodError: shipping method cannot be priced
    """
    validate_shipment(shipment)

    config = config or DEFAULT_ENGINE_CONFIG
    duty_lookup = duty_lookup or DEFAULT_COUNTRY_DUTY_LOOKUP
    tariff_resolver = tariff_resolver or FixedTariffResolver(config.placeholder_tariff_rate)
    calculated_at = calculated_at or datetime.now(timezone.utc)
    snapshot = config.data_snapshot_timestamp or calculated_at

    base_cost = calculate_base_cost(shipment)
    freight = calculate_freight(shipment, config)

    # Insurance is priced on CIF without itself; customs on CIF including insurance
    cif_provisional = calculate_cif_provisional(base_cost, freight)
    insurance = calculate_insurance(shipment, cif_provisional, config)
    cif_final = calculate_cif_final(base_cost, freight, insurance)
    assert cif_final == cif_provisional + insurance.amount

    duty_config = duty_lookup.lookup(shipment.destination_country)
    customs = calculate_customs(shipment, cif_final, duty_config, tariff_resolver)
    inland = calculate_inland_transport(shipment, config)

    totals = calculate_totals(shipment, base_cost, freight, customs, inland, insurance)
    breakdown = generate_breakdown(base_cost, freight, customs, inland, insurance, totals.total_landed_cost)
    notes = generate_notes(shipment, base_cost, freight, customs, inland, insurance, config, snapshot)

    logger.info(
        "Landed cost %s → %s via %s: %s %s",
        shipment.origin_country, duty_config.country_code, freight.selected_method.value,
        totals.total_landed_cost, totals.currency
    )

    return LandedCostResult(
        calculation_version=config.calculation_version,
        data_snapshot_timestamp=snapshot,
        calculation_timestamp=calculated_at,
        base_cost=base_cost,
        freight=freight,
        customs=customs,
        inland_transport=inland,
        insurance=insurance,
        totals=totals,
        breakdown=breakdown,
        notes=notes
    )


def summarize_result(result: LandedCostResult) -> Dict[str, Decimal]:
    """Flat {label: amount} view of the breakdown plus the totals"""
    summary = {item.component: item.amount for item in result.breakdown}
    summary["Total"] = result.totals.total_landed_cost
    summary["Per Unit"] = result.totals.cost_per_unit
    return summary
