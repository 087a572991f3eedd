"""
Pricing configuration snapshot.

One immutable value per configuration version. The engine only ever reads
a snapshot handed to it by the caller; updates produce a new snapshot.

Override resolution for per-trip blocks (night, surge, waiting, ...):
    variant → service → platform-wide
"""

from decimal import Decimal
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


Amount = Annotated[Decimal, Field(ge=0)]
Percentage = Annotated[Decimal, Field(ge=0, le=100)]
Hour = Annotated[int, Field(ge=0, le=23)]


class _Snapshot(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


# ── Rate blocks ────────────────────────────────────────────

class RateCard(_Snapshot):
    base_fare: Amount = Decimal("50")
    per_km_rate: Amount = Decimal("7.5")
    coverage_km: Amount = Decimal("6")
    minimum_fare: Amount = Decimal("50")


class CityWiseAdjustment(_Snapshot):
    enabled: bool = False
    above_km: Amount = Decimal("0")
    adjusted_rate: Amount = Decimal("0")


# ── Surcharge blocks ───────────────────────────────────────

class NightCharges(_Snapshot):
    enabled: bool = False
    start_hour: Hour = 22
    end_hour: Hour = 6
    fixed_amount: Amount = Decimal("10")
    multiplier: Amount = Decimal("1.25")


class SurgeLevel(_Snapshot):
    demand_ratio: Amount
    multiplier: Amount


class SurgePricing(_Snapshot):
    enabled: bool = False
    levels: tuple[SurgeLevel, ...] = (
        SurgeLevel(demand_ratio=Decimal("2"), multiplier=Decimal("1.5")),
        SurgeLevel(demand_ratio=Decimal("3"), multiplier=Decimal("2.0")),
    )

    @field_validator("levels")
    @classmethod
    def _multipliers_rise_with_demand(cls, levels):
        ordered = sorted(levels, key=lambda level: level.demand_ratio)
        for lower, higher in zip(ordered, ordered[1:]):
            if higher.multiplier < lower.multiplier:
                raise ValueError(
                    f"surge multiplier {higher.multiplier} at demand ratio "
                    f"{higher.demand_ratio} is lower than {lower.multiplier} "
                    f"at {lower.demand_ratio}"
                )
        return levels


class WaitingCharges(_Snapshot):
    free_minutes: Amount = Decimal("5")
    per_minute_rate: Amount = Decimal("2")
    maximum_charge: Amount | None = Decimal("20")  # None = uncapped


class CancellationCharges(_Snapshot):
    before_arrival: Amount = Decimal("2")
    after_25_percent: Amount = Decimal("0")
    after_50_percent: Amount = Decimal("5")
    after_arrival: Amount = Decimal("10")


class PlatformFee(_Snapshot):
    percentage: Percentage = Decimal("15")
    driver_share: Percentage = Decimal("7.5")
    customer_share: Percentage = Decimal("7.5")

    @model_validator(mode="after")
    def _shares_within_fee(self):
        if self.driver_share + self.customer_share > self.percentage:
            raise ValueError(
                "driver_share + customer_share must not exceed the platform fee percentage"
            )
        return self


class VAT(_Snapshot):
    enabled: bool = True
    percentage: Percentage = Decimal("5")


# ── Round trip extras (informational) ──────────────────────

class FreeStay(_Snapshot):
    enabled: bool = True
    rate_per_km: Amount = Decimal("0.5")
    maximum_minutes: Amount = Decimal("60")
    five_minute_warning: bool = False


class RefreshmentAlert(_Snapshot):
    """Long-trip alert, and the overtime the driver may start once free stay ends."""

    enabled: bool = True
    minimum_distance_km: Amount = Decimal("20")
    minimum_duration_min: Amount = Decimal("30")
    per_minute_charge: Amount = Decimal("1")
    maximum_charge: Amount | None = Decimal("30")  # None = uncapped


class RoundTrip(_Snapshot):
    multiplier: Amount = Decimal("1.8")
    free_stay: FreeStay = FreeStay()
    refreshment_alert: RefreshmentAlert = RefreshmentAlert()


# ── Service / variant tables ───────────────────────────────

class VariantPricing(_Snapshot):
    """Vehicle type or sub-category. Unset fields inherit from the service."""

    base_fare: Amount | None = None
    per_km_rate: Amount | None = None
    coverage_km: Amount | None = None
    fixed_price: Amount | None = None
    convenience_fee: Amount = Decimal("0")
    # Base when the variant sets none: arrival charge + convenience fee
    minimum_arrival_charge: Amount | None = None
    city_wise_adjustment: CityWiseAdjustment | None = None
    night_charges: NightCharges | None = None
    surge_pricing: SurgePricing | None = None
    waiting_charges: WaitingCharges | None = None
    label: str = ""


class ServicePricing(_Snapshot):
    enabled: bool = True
    base_fare: Amount = Decimal("0")
    per_km_rate: Amount = Decimal("0")
    coverage_km: Amount = Decimal("0")
    minimum_fare: Amount = Decimal("0")
    fixed_price: Amount | None = None
    minimum_arrival_charge: Amount | None = None
    city_wise_adjustment: CityWiseAdjustment = CityWiseAdjustment()
    variants: dict[str, VariantPricing] = {}

    night_charges: NightCharges | None = None
    surge_pricing: SurgePricing | None = None
    waiting_charges: WaitingCharges | None = None
    cancellation_charges: CancellationCharges | None = None
    platform_fee: PlatformFee | None = None
    vat: VAT | None = None
    free_stay: FreeStay | None = None
    refreshment_alert: RefreshmentAlert | None = None


class PricingConfiguration(_Snapshot):
    version: str = "1"
    currency: str = "AED"
    default_rates: RateCard = RateCard()
    services: dict[str, ServicePricing] = {}

    night_charges: NightCharges = NightCharges()
    surge_pricing: SurgePricing = SurgePricing()
    waiting_charges: WaitingCharges = WaitingCharges()
    cancellation_charges: CancellationCharges = CancellationCharges()
    round_trip: RoundTrip = RoundTrip()
    platform_fee: PlatformFee = PlatformFee()
    vat: VAT = VAT()


def default_pricing_configuration(version: str = "default") -> PricingConfiguration:
    """Canonical tariff: car recovery at 50 base, 6 km covered, 7.5/km, 5/km above 10 km."""
    return PricingConfiguration.model_validate({
        "version": version,
        "currency": "AED",
        "default_rates": {
            "base_fare": "50", "per_km_rate": "7.5",
            "coverage_km": "6", "minimum_fare": "50",
        },
        "services": {
            "car_cab": {
                "base_fare": "10", "per_km_rate": "3", "minimum_fare": "40",
                "variants": {
                    "economy": {"base_fare": "10", "per_km_rate": "3", "label": "Economy"},
                    "premium": {"base_fare": "15", "per_km_rate": "4", "label": "Premium"},
                    "luxury": {"base_fare": "25", "per_km_rate": "6", "label": "Luxury"},
                    "xl": {"base_fare": "20", "per_km_rate": "5", "label": "XL"},
                    "family": {"base_fare": "18", "per_km_rate": "4.5", "label": "Family"},
                },
            },
            "bike": {
                "base_fare": "25", "per_km_rate": "4", "minimum_fare": "15",
                "variants": {
                    "economy": {"base_fare": "5", "per_km_rate": "2", "label": "Economy"},
                    "premium": {"base_fare": "8", "per_km_rate": "2.5", "label": "Premium"},
                    "vip": {"base_fare": "12", "per_km_rate": "3", "label": "VIP"},
                },
            },
            "car_recovery": {
                "base_fare": "50", "per_km_rate": "7.5",
                "coverage_km": "6", "minimum_fare": "50",
                "city_wise_adjustment": {
                    "enabled": True, "above_km": "10", "adjusted_rate": "5",
                },
                "variants": {
                    "flatbed": {"convenience_fee": "50", "label": "Flatbed towing"},
                    "wheel_lift": {"convenience_fee": "50", "label": "Wheel-lift towing"},
                    "on_road_winching": {"convenience_fee": "50", "label": "On-road winching"},
                    "off_road_winching": {"convenience_fee": "100", "label": "Off-road winching"},
                    "jumpstart": {"fixed_price": "30", "label": "Battery jump start"},
                    "fuel_delivery": {"fixed_price": "35", "label": "Fuel delivery"},
                    "key_unlock": {"fixed_price": "40", "label": "Key unlocker"},
                    "tire_puncture_repair": {
                        "convenience_fee": "70", "minimum_arrival_charge": "5",
                        "label": "Tire puncture repair",
                    },
                    "battery_replacement": {
                        "convenience_fee": "90", "minimum_arrival_charge": "5",
                        "label": "Battery replacement",
                    },
                },
            },
            "shifting_movers": {
                "base_fare": "100", "per_km_rate": "15",
                "coverage_km": "5", "minimum_fare": "100",
            },
            "appointment": {"fixed_price": "5"},
        },
        "night_charges": {
            "enabled": True, "start_hour": 22, "end_hour": 6,
            "fixed_amount": "10", "multiplier": "1.25",
        },
        "surge_pricing": {
            "enabled": True,
            "levels": [
                {"demand_ratio": "2", "multiplier": "1.5"},
                {"demand_ratio": "3", "multiplier": "2.0"},
            ],
        },
        "waiting_charges": {
            "free_minutes": "5", "per_minute_rate": "2", "maximum_charge": "20",
        },
        "cancellation_charges": {
            "before_arrival": "2", "after_25_percent": "0",
            "after_50_percent": "5", "after_arrival": "10",
        },
        "round_trip": {"multiplier": "1.8"},
        "platform_fee": {"percentage": "15", "driver_share": "7.5", "customer_share": "7.5"},
        "vat": {"enabled": True, "percentage": "5"},
    })
