"""
Fare Engine — itemized trip pricing for the dispatch platform.

Pipeline (each stage a pure function of the previous one + the config snapshot):
  1. Rates:       base fare + per-km rate for the service/variant, or a fixed price
  2. Distance:    per-km beyond the base coverage, city-wise rate above a breakpoint
  3. Floor:       minimum fare on base + distance
  4. Round trip:  multiplier on the subtotal; free-stay and refreshment advisories
  5. Surcharges:  night, surge, waiting, overtime, cancellation
  6. Fees:        platform fee on subtotal + surcharges, VAT on the fee-inclusive base
  7. Aggregate:   total from unrounded parts, then every amount rounded to 2 dp

Example (canonical tariff, car recovery, 8 km):
  base 50 + (8 − 6) × 7.5 = 65 → fee 9.75 → VAT 3.74 → total 78.49
"""

import logging
import re
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from types import MappingProxyType
from typing import Any, Mapping

from dispatch_fares.schemas import CancellationReason, RouteType
from dispatch_fares.schemas.pricing_config import (
    VAT, CancellationCharges, CityWiseAdjustment, FreeStay, NightCharges,
    PlatformFee, PricingConfiguration, RefreshmentAlert, SurgePricing,
    WaitingCharges,
)
from dispatch_fares.services.errors import InvalidTripRequest
from dispatch_fares.services.surcharges import (
    ARRIVED, ONE, ZERO, calculate_cancellation_charge, calculate_night_charge,
    calculate_overtime_charge, calculate_surge_charge, calculate_waiting_charge,
)

logger = logging.getLogger(__name__)


# ── Constants ──────────────────────────────────────────────

MONEY_QUANTUM = Decimal("0.01")
HUNDRED = Decimal("100")

RATE_SOURCE_VARIANT = "variant"
RATE_SOURCE_SERVICE = "service"
RATE_SOURCE_FIXED = "fixed_price"
RATE_SOURCE_DEFAULT = "default"

ADVISORY_REFRESHMENT = "refreshment_alert"
ADVISORY_FREE_STAY = "free_stay_warning"


def normalize_key(value: str) -> str:
    """'Car Cab' → 'car_cab', 'shifting & movers' → 'shifting_movers'."""
    return re.sub(r"[^a-z0-9]+", "_", str(value).strip().lower()).strip("_")


def round_money(value: Decimal) -> Decimal:
    return value.quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def _to_decimal(value: Any, name: str) -> Decimal:
    if isinstance(value, bool):
        raise InvalidTripRequest(f"{name} must be a number, got {value!r}")
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise InvalidTripRequest(f"{name} must be a number, got {value!r}") from e
    if not result.is_finite():
        raise InvalidTripRequest(f"{name} must be finite, got {value!r}")
    return result


# ── Data classes ───────────────────────────────────────────

@dataclass(frozen=True)
class TripRequest:
    """
    One trip to price. Validated and normalized on construction.

    trip_progress is the fraction of the driver's approach completed
    (0–1) or the string "arrived". trip_hour is the local hour of the trip
    used for the night window; is_night forces night pricing regardless.
    overtime_minutes counts only minutes the driver chose to bill after
    the free stay ended.
    """

    service_type: str
    distance_km: Decimal
    variant: str | None = None
    route_type: RouteType = RouteType.ONE_WAY
    demand_ratio: Decimal = ONE
    waiting_minutes: Decimal = ZERO
    overtime_minutes: Decimal = ZERO
    trip_progress: Decimal | str = ZERO
    estimated_duration_min: Decimal = ZERO
    trip_hour: int | None = None
    is_night: bool = False
    is_cancelled: bool = False
    cancellation_reason: CancellationReason | None = None

    def __post_init__(self):
        service_type = normalize_key(self.service_type or "")
        if not service_type:
            raise InvalidTripRequest("service_type is required")
        object.__setattr__(self, "service_type", service_type)
        object.__setattr__(self, "variant", normalize_key(self.variant) if self.variant else None)

        for name in ("distance_km", "waiting_minutes", "overtime_minutes", "estimated_duration_min"):
            value = _to_decimal(getattr(self, name), name)
            if value < 0:
                raise InvalidTripRequest(f"{name} must be non-negative, got {value}")
            object.__setattr__(self, name, value)

        demand = _to_decimal(self.demand_ratio, "demand_ratio")
        if demand < ONE:
            raise InvalidTripRequest(f"demand_ratio must be at least 1, got {demand}")
        object.__setattr__(self, "demand_ratio", demand)

        object.__setattr__(self, "trip_progress", _parse_trip_progress(self.trip_progress))

        hour = self.trip_hour
        if hour is not None and (isinstance(hour, bool) or not isinstance(hour, int) or not 0 <= hour <= 23):
            raise InvalidTripRequest(f"trip_hour must be 0-23, got {hour!r}")

        try:
            object.__setattr__(self, "route_type", RouteType(self.route_type))
            if self.cancellation_reason is not None:
                object.__setattr__(
                    self, "cancellation_reason", CancellationReason(self.cancellation_reason)
                )
        except ValueError as e:
            raise InvalidTripRequest(str(e)) from e


def _parse_trip_progress(value: Any) -> Decimal | str:
    if isinstance(value, str) and value.strip().lower() == ARRIVED:
        return ARRIVED
    progress = _to_decimal(value, "trip_progress")
    if not ZERO <= progress <= ONE:
        raise InvalidTripRequest(f"trip_progress must be between 0 and 1, got {progress}")
    return progress


@dataclass(frozen=True)
class Tariff:
    """Effective rates and surcharge rules for one trip, after override resolution."""

    base_fare: Decimal
    per_km_rate: Decimal
    is_fixed_price: bool
    coverage_km: Decimal
    minimum_fare: Decimal
    city_wise: CityWiseAdjustment
    night_charges: NightCharges
    surge_pricing: SurgePricing
    waiting_charges: WaitingCharges
    cancellation_charges: CancellationCharges
    platform_fee: PlatformFee
    vat: VAT
    free_stay: FreeStay
    refreshment_alert: RefreshmentAlert
    rate_source: str


@dataclass(frozen=True)
class FeeAssessment:
    platform_fee: Decimal
    driver_share: Decimal
    customer_share: Decimal
    vat_amount: Decimal


@dataclass(frozen=True)
class Advisory:
    kind: str
    message: str


@dataclass(frozen=True)
class FareBreakdown:
    base_fare: Decimal
    distance_fare: Decimal
    subtotal: Decimal
    night_charge: Decimal
    surge_charge: Decimal
    waiting_charge: Decimal
    overtime_charge: Decimal
    cancellation_charge: Decimal
    platform_fee: Decimal
    platform_fee_driver_share: Decimal
    platform_fee_customer_share: Decimal
    vat_amount: Decimal
    total_fare: Decimal
    currency: str
    details: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    advisories: tuple[Advisory, ...] = ()

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        def plain(value):
            return float(value) if isinstance(value, Decimal) else value

        return {
            "base_fare": float(self.base_fare),
            "distance_fare": float(self.distance_fare),
            "subtotal": float(self.subtotal),
            "night_charge": float(self.night_charge),
            "surge_charge": float(self.surge_charge),
            "waiting_charge": float(self.waiting_charge),
            "overtime_charge": float(self.overtime_charge),
            "cancellation_charge": float(self.cancellation_charge),
            "platform_fee": float(self.platform_fee),
            "platform_fee_driver_share": float(self.platform_fee_driver_share),
            "platform_fee_customer_share": float(self.platform_fee_customer_share),
            "vat_amount": float(self.vat_amount),
            "total_fare": float(self.total_fare),
            "currency": self.currency,
            "details": {key: plain(value) for key, value in self.details.items()},
            "advisories": [
                {"kind": advisory.kind, "message": advisory.message}
                for advisory in self.advisories
            ],
        }


# ── 1. Rates ───────────────────────────────────────────────

def resolve_tariff(
    service_type: str,
    variant: str | None,
    config: PricingConfiguration,
) -> Tariff:
    """
    Pick base fare, per-km rate and surcharge rules for a service/variant.

    A variant with no base fare of its own starts from the minimum arrival
    charge (variant, then service) if one is set, else from the service
    base; its convenience fee is added on top. Fixed prices replace base
    and distance but are still floored at the service minimum fare.

    Unknown service types and unknown variants fall back to the
    platform-wide default rates. That keeps quoting available but can mask
    a typo in the tariff, so it is logged as a warning.
    """
    service = config.services.get(service_type)
    if service is None:
        logger.warning(
            "Unknown service type %r (config %s) — using platform default rates",
            service_type, config.version,
        )
        return _default_tariff(config)

    if not service.enabled:
        raise InvalidTripRequest(f"Service type '{service_type}' is not enabled")

    variant_cfg = None
    if variant:
        variant_cfg = service.variants.get(variant)
        if variant_cfg is None:
            logger.warning(
                "Unknown variant %r for service %r (config %s) — using platform default rates",
                variant, service_type, config.version,
            )

    def pick(name):
        own = getattr(variant_cfg, name, None) if variant_cfg is not None else None
        if own is not None:
            return own
        inherited = getattr(service, name, None)
        return inherited if inherited is not None else getattr(config, name)

    def service_or(own, platform_wide):
        return own if own is not None else platform_wide

    rules = dict(
        night_charges=pick("night_charges"),
        surge_pricing=pick("surge_pricing"),
        waiting_charges=pick("waiting_charges"),
        cancellation_charges=service_or(service.cancellation_charges, config.cancellation_charges),
        platform_fee=service_or(service.platform_fee, config.platform_fee),
        vat=service_or(service.vat, config.vat),
        free_stay=service_or(service.free_stay, config.round_trip.free_stay),
        refreshment_alert=service_or(service.refreshment_alert, config.round_trip.refreshment_alert),
    )

    fixed_price = service.fixed_price
    if variant_cfg is not None and variant_cfg.fixed_price is not None:
        fixed_price = variant_cfg.fixed_price
    if fixed_price is not None:
        convenience_fee = variant_cfg.convenience_fee if variant_cfg is not None else ZERO
        return Tariff(
            base_fare=fixed_price + convenience_fee,
            per_km_rate=ZERO,
            is_fixed_price=True,
            coverage_km=ZERO,
            minimum_fare=service.minimum_fare,
            city_wise=CityWiseAdjustment(),
            rate_source=RATE_SOURCE_FIXED,
            **rules,
        )

    if variant and variant_cfg is None:
        defaults = config.default_rates
        return Tariff(
            base_fare=defaults.base_fare,
            per_km_rate=defaults.per_km_rate,
            is_fixed_price=False,
            coverage_km=defaults.coverage_km,
            minimum_fare=defaults.minimum_fare,
            city_wise=CityWiseAdjustment(),
            rate_source=RATE_SOURCE_DEFAULT,
            **rules,
        )

    base_fare = service.base_fare
    per_km_rate = service.per_km_rate
    coverage_km = service.coverage_km
    city_wise = service.city_wise_adjustment
    convenience_fee = ZERO
    if variant_cfg is not None:
        arrival_charge = service_or(variant_cfg.minimum_arrival_charge, service.minimum_arrival_charge)
        if variant_cfg.base_fare is not None:
            base_fare = variant_cfg.base_fare
        elif arrival_charge is not None:
            base_fare = arrival_charge
        per_km_rate = variant_cfg.per_km_rate if variant_cfg.per_km_rate is not None else per_km_rate
        coverage_km = variant_cfg.coverage_km if variant_cfg.coverage_km is not None else coverage_km
        if variant_cfg.city_wise_adjustment is not None:
            city_wise = variant_cfg.city_wise_adjustment
        convenience_fee = variant_cfg.convenience_fee

    return Tariff(
        base_fare=base_fare + convenience_fee,
        per_km_rate=per_km_rate,
        is_fixed_price=False,
        coverage_km=coverage_km,
        minimum_fare=service.minimum_fare,
        city_wise=city_wise,
        rate_source=RATE_SOURCE_VARIANT if variant_cfg is not None else RATE_SOURCE_SERVICE,
        **rules,
    )


def _default_tariff(config: PricingConfiguration) -> Tariff:
    defaults = config.default_rates
    return Tariff(
        base_fare=defaults.base_fare,
        per_km_rate=defaults.per_km_rate,
        is_fixed_price=False,
        coverage_km=defaults.coverage_km,
        minimum_fare=defaults.minimum_fare,
        city_wise=CityWiseAdjustment(),
        night_charges=config.night_charges,
        surge_pricing=config.surge_pricing,
        waiting_charges=config.waiting_charges,
        cancellation_charges=config.cancellation_charges,
        platform_fee=config.platform_fee,
        vat=config.vat,
        free_stay=config.round_trip.free_stay,
        refreshment_alert=config.round_trip.refreshment_alert,
        rate_source=RATE_SOURCE_DEFAULT,
    )


# ── 2. Distance ────────────────────────────────────────────

def calculate_distance_fare(
    distance_km: Decimal,
    coverage_km: Decimal,
    per_km_rate: Decimal,
    city_wise: CityWiseAdjustment | None = None,
) -> Decimal:
    """
    Per-km charge beyond the base coverage.

    With a city-wise adjustment enabled and the trip longer than its
    breakpoint, kilometres between coverage and the breakpoint are charged
    at per_km_rate and the rest at the adjusted rate:

        15 km, coverage 6, breakpoint 10: 4 × 7.5 + 5 × 5 = 55
    """
    if distance_km <= coverage_km:
        return ZERO

    remaining = distance_km - coverage_km
    if city_wise is not None and city_wise.enabled and distance_km > city_wise.above_km:
        adjustment_point = max(ZERO, city_wise.above_km - coverage_km)
        if remaining > adjustment_point:
            return (
                adjustment_point * per_km_rate
                + (remaining - adjustment_point) * city_wise.adjusted_rate
            )
    return remaining * per_km_rate


# ── 3. Floor ───────────────────────────────────────────────

def apply_minimum_fare(subtotal: Decimal, minimum_fare: Decimal) -> tuple[Decimal, bool]:
    """Returns (subtotal, floor_applied)."""
    if subtotal < minimum_fare:
        return minimum_fare, True
    return subtotal, False


# ── 4. Round trip ──────────────────────────────────────────

def apply_round_trip(subtotal: Decimal, route_type: RouteType, multiplier: Decimal) -> Decimal:
    if route_type is RouteType.ROUND_TRIP:
        return subtotal * multiplier
    return subtotal


def calculate_free_stay_minutes(distance_km: Decimal, free_stay: FreeStay) -> Decimal:
    """Waiting allowance earned by distance. Informational, never priced."""
    if not free_stay.enabled:
        return ZERO
    return min(distance_km * free_stay.rate_per_km, free_stay.maximum_minutes)


def needs_refreshment_alert(
    distance_km: Decimal,
    estimated_duration_min: Decimal,
    alert: RefreshmentAlert,
) -> bool:
    if not alert.enabled:
        return False
    return (
        distance_km >= alert.minimum_distance_km
        or estimated_duration_min >= alert.minimum_duration_min
    )


# ── 6. Fees ────────────────────────────────────────────────

def assess_fees(fee_base: Decimal, platform_fee: PlatformFee, vat: VAT) -> FeeAssessment:
    """
    Platform fee on the fare, then VAT on fare + platform fee.

    The fee is split between driver and customer in proportion to their
    share percentages of the total fee percentage.
    """
    fee = fee_base * platform_fee.percentage / HUNDRED
    if platform_fee.percentage > 0:
        driver_share = fee * platform_fee.driver_share / platform_fee.percentage
        customer_share = fee * platform_fee.customer_share / platform_fee.percentage
    else:
        driver_share = customer_share = ZERO

    vat_amount = ZERO
    if vat.enabled:
        vat_amount = (fee_base + fee) * vat.percentage / HUNDRED

    return FeeAssessment(
        platform_fee=fee,
        driver_share=driver_share,
        customer_share=customer_share,
        vat_amount=vat_amount,
    )


# ── 7. Aggregate ───────────────────────────────────────────

def aggregate(
    *,
    base_fare: Decimal,
    distance_fare: Decimal,
    subtotal: Decimal,
    night_charge: Decimal,
    surge_charge: Decimal,
    waiting_charge: Decimal,
    overtime_charge: Decimal,
    cancellation_charge: Decimal,
    fees: FeeAssessment,
    currency: str,
    details: dict | None = None,
    advisories: list[Advisory] | None = None,
) -> FareBreakdown:
    """Sum the unrounded parts, then round every amount once."""
    total = (
        subtotal + night_charge + surge_charge + waiting_charge + overtime_charge
        + fees.platform_fee + fees.vat_amount + cancellation_charge
    )
    return FareBreakdown(
        base_fare=round_money(base_fare),
        distance_fare=round_money(distance_fare),
        subtotal=round_money(subtotal),
        night_charge=round_money(night_charge),
        surge_charge=round_money(surge_charge),
        waiting_charge=round_money(waiting_charge),
        overtime_charge=round_money(overtime_charge),
        cancellation_charge=round_money(cancellation_charge),
        platform_fee=round_money(fees.platform_fee),
        platform_fee_driver_share=round_money(fees.driver_share),
        platform_fee_customer_share=round_money(fees.customer_share),
        vat_amount=round_money(fees.vat_amount),
        total_fare=round_money(total),
        currency=currency,
        details=MappingProxyType(dict(details or {})),
        advisories=tuple(advisories or ()),
    )


# ── Core Function ──────────────────────────────────────────

def compute_fare(request: TripRequest, config: PricingConfiguration) -> FareBreakdown:
    """
    Price one trip against one configuration snapshot.

    Pure: no I/O, no clock, no shared state. The same request and
    snapshot always produce the same breakdown.

    Args:
        request: Validated trip description
        config: Pricing configuration snapshot, read once for the whole call

    Returns:
        FareBreakdown with itemized amounts, details and advisories
    """
    details: dict[str, Any] = {"configuration_version": config.version}
    advisories: list[Advisory] = []

    tariff = resolve_tariff(request.service_type, request.variant, config)
    details["rate_source"] = tariff.rate_source
    details["is_fixed_price"] = tariff.is_fixed_price

    distance_fare = ZERO
    if not tariff.is_fixed_price:
        distance_fare = calculate_distance_fare(
            request.distance_km, tariff.coverage_km, tariff.per_km_rate, tariff.city_wise,
        )

    subtotal, floor_applied = apply_minimum_fare(tariff.base_fare + distance_fare, tariff.minimum_fare)
    details["minimum_fare_applied"] = floor_applied

    subtotal = apply_round_trip(subtotal, request.route_type, config.round_trip.multiplier)
    if request.route_type is RouteType.ROUND_TRIP:
        details["round_trip_multiplier"] = config.round_trip.multiplier

    free_stay = calculate_free_stay_minutes(request.distance_km, tariff.free_stay)
    if free_stay > 0:
        details["free_stay_minutes"] = round_money(free_stay)
        if tariff.free_stay.five_minute_warning:
            advisories.append(Advisory(ADVISORY_FREE_STAY, "5 minutes remaining for free stay"))
    if needs_refreshment_alert(request.distance_km, request.estimated_duration_min, tariff.refreshment_alert):
        advisories.append(Advisory(ADVISORY_REFRESHMENT, "Refreshment recommended for long trip"))

    night_charge, night_type = calculate_night_charge(
        subtotal, tariff.night_charges, hour=request.trip_hour, override=request.is_night,
    )
    if night_type:
        details["night_charge_type"] = night_type

    surge_charge, surge_level = calculate_surge_charge(subtotal, request.demand_ratio, tariff.surge_pricing)
    if surge_level is not None:
        details["surge_multiplier"] = surge_level.multiplier
        details["demand_ratio"] = request.demand_ratio

    waiting_charge = calculate_waiting_charge(request.waiting_minutes, tariff.waiting_charges)
    overtime_charge = calculate_overtime_charge(request.overtime_minutes, tariff.refreshment_alert)

    cancellation_charge = ZERO
    if request.is_cancelled:
        cancellation_charge = calculate_cancellation_charge(
            request.trip_progress, request.cancellation_reason, tariff.cancellation_charges,
        )

    fees = assess_fees(
        subtotal + night_charge + surge_charge + waiting_charge + overtime_charge,
        tariff.platform_fee,
        tariff.vat,
    )

    breakdown = aggregate(
        base_fare=tariff.base_fare,
        distance_fare=distance_fare,
        subtotal=subtotal,
        night_charge=night_charge,
        surge_charge=surge_charge,
        waiting_charge=waiting_charge,
        overtime_charge=overtime_charge,
        cancellation_charge=cancellation_charge,
        fees=fees,
        currency=config.currency,
        details=details,
        advisories=advisories,
    )
    logger.debug(
        "Fare computed: service=%s variant=%s distance_km=%s total=%s config=%s",
        request.service_type, request.variant, request.distance_km,
        breakdown.total_fare, config.version,
    )
    return breakdown
