"""
Landed Cost Engine - Calculation Models
Pydantic models for shipment input, country duty schedules, engine
configuration and the itemized landed cost result.

All monetary values, rates, weights and volumes are Decimal. Wire names are
camelCase (alias generator); snake_case names are accepted on input as well.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer
from pydantic.alias_generators import to_camel


CALCULATION_VERSION = "v1.0.0"

# Decimal that leaves the process as a JSON number rather than a string
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class WireModel(BaseModel):
    """Base for every model that crosses the HTTP boundary"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# ENUMS - Dropdown/Select Values
# ============================================================================

class Incoterm(str, Enum):
    """INCOTERMS accepted for the base cost"""
    FOB = "FOB"  # Free On Board
    EXW = "EXW"  # Ex Works
    CIF = "CIF"  # Cost, Insurance, Freight
    DDP = "DDP"  # Delivered Duty Paid


class ShippingMethod(str, Enum):
    """Freight pricing methods"""
    SEA_FCL = "sea_fcl"    # Full container load
    SEA_LCL = "sea_lcl"    # Less than container load
    AIR = "air"
    EXPRESS = "express"    # Courier


class ContainerType(str, Enum):
    """Ocean container sizes (sea_fcl only)"""
    FT20 = "20ft"
    FT40 = "40ft"


class NoteCategory(str, Enum):
    """Audit note categories"""
    INFO = "info"
    WARNING = "warning"
    ASSUMPTION = "assumption"
    ESTIMATE = "estimate"
    ACTUAL = "actual"


class VatBasis(str, Enum):
    """What the destination country levies VAT on"""
    CIF = "cif"
    CIF_PLUS_DUTY = "cif_plus_duty"


class AdditionalTariffType(str, Enum):
    """Trade-remedy measures stacked on top of the base duty"""
    ANTI_DUMPING = "anti_dumping"
    COUNTERVAILING = "countervailing"
    SAFEGUARD = "safeguard"
    OTHER = "other"


# ============================================================================
# INPUT MODELS
# ============================================================================

class Dimensions(WireModel):
    """Package dimensions in centimeters"""
    length: Decimal
    width: Decimal
    height: Decimal

    @property
    def volume_cbm(self) -> Decimal:
        """L x W x H in cm converted to cubic meters"""
        return self.length * self.width * self.height / Decimal("1000000")


class FreightOverrides(WireModel):
    """Unit rates fetched by the caller from a freight benchmark service"""
    sea_20ft: Optional[Decimal] = Field(default=None, alias="sea20ft", description="Per 20ft container")
    sea_40ft: Optional[Decimal] = Field(default=None, alias="sea40ft", description="Per 40ft container")
    air_per_kg: Optional[Decimal] = Field(default=None, description="Air freight per chargeable kg")
    lcl_per_cbm: Optional[Decimal] = Field(default=None, alias="lclPerCBM", description="LCL per CBM")


class ShipmentInput(WireModel):
    """
    Shipment description for a single landed cost calculation.

    Required fields are typed Optional on purpose: the engine's validator,
    not the parser, decides which field is reported first and with which
    message. Incoterm and shipping method stay raw strings for the same
    reason.
    """
    # Product information
    product_name: Optional[str] = None
    hs_code: Optional[str] = None
    category: Optional[str] = None

    # Cost information
    base_cost: Optional[Decimal] = Field(default=None, description="Buyer-supplied cost (FOB/EXW/CIF/DDP)")
    incoterm: Optional[str] = None
    quantity: Optional[int] = None
    currency: Optional[str] = None

    # Route
    origin_country: Optional[str] = None
    destination_country: Optional[str] = None
    origin_port: Optional[str] = None
    destination_port: Optional[str] = None

    # Shipping
    shipping_method: Optional[str] = None
    container_type: Optional[str] = None

    # Weight / volume
    weight: Optional[Decimal] = Field(default=None, description="Actual weight in kg")
    volume: Optional[Decimal] = Field(default=None, description="Volume in CBM")
    dimensions: Optional[Dimensions] = None

    # Overrides
    insurance_rate: Optional[Decimal] = Field(default=None, description="Insurance rate as a fraction (0.005 = 0.5%)")
    inland_transport_origin: Optional[Decimal] = None
    inland_transport_destination: Optional[Decimal] = None
    freight_overrides: Optional[FreightOverrides] = None

    def resolved_volume(self) -> Optional[Decimal]:
        """Volume in CBM, falling back to dimensions when no volume is given"""
        if self.volume is not None:
            return self.volume
        if self.dimensions is not None:
            return self.dimensions.volume_cbm
        return None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "productName": "Laptop",
                "hsCode": "847130",
                "baseCost": 1000,
                "incoterm": "FOB",
                "quantity": 100,
                "currency": "USD",
                "originCountry": "CN",
                "destinationCountry": "US",
                "shippingMethod": "sea_fcl",
                "containerType": "40ft"
            }
        }
    )


# ============================================================================
# COUNTRY DUTY SCHEDULE
# ============================================================================

class MPFBand(WireModel):
    """Merchandise processing fee: percentage of CIF clamped to a dollar band"""
    model_config = ConfigDict(frozen=True)

    rate: Money
    min_amount: Money = Field(alias="min")
    max_amount: Money = Field(alias="max")


class HMFSchedule(WireModel):
    """Harbor maintenance fee: flat percentage of CIF"""
    model_config = ConfigDict(frozen=True)

    rate: Money


class CountryDutyConfig(WireModel):
    """Read-only VAT and customs fee schedule for one destination country"""
    model_config = ConfigDict(frozen=True)

    country_code: str
    vat_rate: Money
    vat_applies_to: VatBasis = VatBasis.CIF_PLUS_DUTY
    mpf: Optional[MPFBand] = None
    hmf: Optional[HMFSchedule] = None
    fallback: bool = Field(default=False, description="True when the country is not in the schedule table")


class TariffRate(WireModel):
    """Ad valorem duty rate resolved for (HS code, origin, destination)"""
    model_config = ConfigDict(frozen=True)

    rate: Money
    source: str = "placeholder"
    placeholder: bool = True


class TariffMeasure(WireModel):
    """Additional trade-remedy tariff, as a rate on CIF"""
    model_config = ConfigDict(frozen=True)

    name: str
    type: AdditionalTariffType = AdditionalTariffType.OTHER
    rate: Money


# ============================================================================
# ENGINE CONFIGURATION (admin controlled, immutable)
# ============================================================================

class FreightRateTable(WireModel):
    """Default freight unit rates"""
    model_config = ConfigDict(frozen=True)

    fcl_20ft: Money = Decimal("1500")
    fcl_40ft: Money = Decimal("2500")
    lcl_per_cbm: Money = Decimal("50")
    air_per_kg: Money = Decimal("5")
    express_per_kg: Money = Decimal("10")
    volumetric_factor: Money = Field(default=Decimal("167"), description="kg per CBM for air volumetric weight")

    def with_overrides(self, overrides: Optional[FreightOverrides]):
        """
        Apply benchmark overrides on top of this table.

        Returns:
            (rate table, frozenset of overridden rate field names)
        """
        if overrides is None:
            return self, frozenset()

        pairs = {
            "fcl_20ft": overrides.sea_20ft,
            "fcl_40ft": overrides.sea_40ft,
            "air_per_kg": overrides.air_per_kg,
            "lcl_per_cbm": overrides.lcl_per_cbm,
        }
        updates = {name: value for name, value in pairs.items() if value is not None}
        if not updates:
            return self, frozenset()
        return self.model_copy(update=updates), frozenset(updates)


class InlandTransportDefaults(WireModel):
    """Trucking estimates used when the buyer supplies no override"""
    model_config = ConfigDict(frozen=True)

    exw_origin: Money = Decimal("200")
    destination: Money = Decimal("300")


class EngineConfig(WireModel):
    """
    Immutable configuration injected into every calculation.

    data_snapshot_timestamp marks when the default rate tables were loaded.
    When None, the engine stamps the snapshot with the calculation time.
    """
    model_config = ConfigDict(frozen=True)

    calculation_version: str = CALCULATION_VERSION
    data_snapshot_timestamp: Optional[datetime] = None
    default_insurance_rate: Money = Decimal("0.005")
    placeholder_tariff_rate: Money = Decimal("0.05")
    freight_rates: FreightRateTable = Field(default_factory=FreightRateTable)
    inland_defaults: InlandTransportDefaults = Field(default_factory=InlandTransportDefaults)

    # Fallbacks when the shipment omits method-specific measurements
    default_container_type: ContainerType = ContainerType.FT20
    default_lcl_volume: Money = Decimal("1")
    default_air_weight: Money = Decimal("10")
    default_air_volume: Money = Decimal("0.1")
    default_express_weight: Money = Decimal("10")


# ============================================================================
# CALCULATION OUTPUT MODELS
# ============================================================================

class CalculationNote(WireModel):
    """Single audit-trail entry"""
    category: NoteCategory
    component: str
    message: str
    data_source: Optional[str] = None


class BaseCostResult(WireModel):
    fob_cost: Money
    exw_cost: Money
    normalized_cost: Money
    currency: str
    notes: List[CalculationNote] = Field(default_factory=list, exclude=True)


class OceanFCLDetail(WireModel):
    method: Literal["sea_fcl"] = "sea_fcl"
    cost_20ft: Money = Field(alias="cost20ft")
    cost_40ft: Money = Field(alias="cost40ft")
    selected_cost: Money
    container_type: ContainerType


class OceanLCLDetail(WireModel):
    method: Literal["sea_lcl"] = "sea_lcl"
    cost_per_cbm: Money = Field(alias="costPerCBM")
    volume: Money
    total_cost: Money


class AirFreightDetail(WireModel):
    method: Literal["air"] = "air"
    cost_per_kg: Money
    actual_weight: Money
    volumetric_weight: Money
    chargeable_weight: Money
    total_cost: Money


class ExpressDetail(WireModel):
    method: Literal["express"] = "express"
    cost_per_kg: Money
    weight: Money
    total_cost: Money


# Exactly one shape per result, selected by the "method" tag
FreightDetail = Annotated[
    Union[OceanFCLDetail, OceanLCLDetail, AirFreightDetail, ExpressDetail],
    Field(discriminator="method"),
]


class FreightResult(WireModel):
    detail: FreightDetail
    selected_method: ShippingMethod
    selected_cost: Money
    notes: List[CalculationNote] = Field(default_factory=list, exclude=True)


class InsuranceResult(WireModel):
    rate: Money
    amount: Money
    cif_value: Money
    notes: List[CalculationNote] = Field(default_factory=list, exclude=True)


class ImportDuty(WireModel):
    rate: Money
    amount: Money
    base_value: Money


class VatCharge(WireModel):
    rate: Money
    amount: Money
    base_value: Money


class AdditionalTariff(WireModel):
    name: str
    type: AdditionalTariffType
    rate: Money
    amount: Money


class MerchandiseProcessingFee(WireModel):
    rate: Money
    amount: Money
    min_amount: Money = Field(alias="min")
    max_amount: Money = Field(alias="max")


class HarborMaintenanceFee(WireModel):
    rate: Money
    amount: Money


class CustomsResult(WireModel):
    hs_code: str
    import_duty: ImportDuty
    vat: VatCharge
    additional_tariffs: List[AdditionalTariff] = Field(default_factory=list)
    mpf: Optional[MerchandiseProcessingFee] = None
    hmf: Optional[HarborMaintenanceFee] = None
    total_customs_fees: Money
    notes: List[CalculationNote] = Field(default_factory=list, exclude=True)


class InlandLeg(WireModel):
    cost: Money
    method: str = "truck"
    notes: List[CalculationNote] = Field(default_factory=list)


class InlandTransportResult(WireModel):
    origin: InlandLeg
    destination: InlandLeg
    total: Money


class Totals(WireModel):
    total_landed_cost: Money
    cost_per_unit: Money
    currency: str


class CostBreakdownItem(WireModel):
    component: str
    amount: Money
    percentage: Money
    cumulative_amount: Money
    cumulative_percentage: Money


class LandedCostResult(WireModel):
    """Complete landed cost calculation result"""
    calculation_version: str
    data_snapshot_timestamp: datetime
    calculation_timestamp: datetime

    base_cost: BaseCostResult
    freight: FreightResult
    customs: CustomsResult
    inland_transport: InlandTransportResult
    insurance: InsuranceResult

    totals: Totals
    breakdown: List[CostBreakdownItem]
    notes: List[CalculationNote]
