"""
Surcharges applied on top of the (floored, round-trip adjusted) subtotal.

  - Night:        max(fixed amount, subtotal × (multiplier − 1)) inside the night window
  - Surge:        subtotal × (tier multiplier − 1) for the highest qualifying demand tier
  - Waiting:      per-minute beyond the free allowance, capped
  - Overtime:     per-minute once the driver starts overtime after free stay, capped
  - Cancellation: tiered by trip progress, nothing when the provider cancelled
"""

from decimal import Decimal

from dispatch_fares.schemas import CancellationReason
from dispatch_fares.schemas.pricing_config import (
    CancellationCharges, NightCharges, RefreshmentAlert, SurgeLevel, SurgePricing,
    WaitingCharges,
)

ZERO = Decimal("0")
ONE = Decimal("1")

ARRIVED = "arrived"

NIGHT_CHARGE_FIXED = "fixed"
NIGHT_CHARGE_MULTIPLIER = "multiplier"


# ── Night ──────────────────────────────────────────────────

def is_night_time(hour: int | None, night: NightCharges) -> bool:
    """
    Check whether an hour of day falls inside the night window.

    The window is [start_hour, end_hour) and may wrap past midnight
    (22 → 6). Equal start and end hours define an empty window.
    """
    if hour is None or not night.enabled:
        return False
    start, end = night.start_hour, night.end_hour
    if start == end:
        return False
    if start > end:
        return hour >= start or hour < end
    return start <= hour < end


def calculate_night_charge(
    subtotal: Decimal,
    night: NightCharges,
    hour: int | None = None,
    override: bool = False,
) -> tuple[Decimal, str | None]:
    """
    Night surcharge and the method that produced it.

    Returns (charge, "fixed" | "multiplier") when night pricing applies,
    (0, None) otherwise. A tie between the two methods reports "multiplier".
    """
    if not night.enabled:
        return ZERO, None
    if not (override or is_night_time(hour, night)):
        return ZERO, None

    fixed = night.fixed_amount
    proportional = subtotal * (max(ONE, night.multiplier) - ONE)
    if fixed > proportional:
        return fixed, NIGHT_CHARGE_FIXED
    return proportional, NIGHT_CHARGE_MULTIPLIER


# ── Surge ──────────────────────────────────────────────────

def select_surge_level(demand_ratio: Decimal, surge: SurgePricing) -> SurgeLevel | None:
    """Highest tier whose demand threshold does not exceed the ratio."""
    if not surge.enabled or demand_ratio <= ONE:
        return None
    for level in sorted(surge.levels, key=lambda lv: lv.demand_ratio, reverse=True):
        if level.demand_ratio <= demand_ratio:
            return level
    return None


def calculate_surge_charge(
    subtotal: Decimal,
    demand_ratio: Decimal,
    surge: SurgePricing,
) -> tuple[Decimal, SurgeLevel | None]:
    level = select_surge_level(demand_ratio, surge)
    if level is None or level.multiplier <= ONE:
        return ZERO, None
    return subtotal * (level.multiplier - ONE), level


# ── Waiting ────────────────────────────────────────────────

def calculate_waiting_charge(waiting_minutes: Decimal, waiting: WaitingCharges) -> Decimal:
    if waiting_minutes <= waiting.free_minutes:
        return ZERO
    charge = (waiting_minutes - waiting.free_minutes) * waiting.per_minute_rate
    if waiting.maximum_charge is not None:
        charge = min(charge, waiting.maximum_charge)
    return charge


# ── Overtime ───────────────────────────────────────────────

def calculate_overtime_charge(overtime_minutes: Decimal, alert: RefreshmentAlert) -> Decimal:
    """
    Overtime after the free stay ends, only when the driver started it.

    Billed per minute and capped at maximum_charge when one is set.
    """
    if not alert.enabled or overtime_minutes <= 0:
        return ZERO
    charge = overtime_minutes * alert.per_minute_charge
    if alert.maximum_charge is not None:
        charge = min(charge, alert.maximum_charge)
    return charge


# ── Cancellation ───────────────────────────────────────────

def calculate_cancellation_charge(
    trip_progress: Decimal | str,
    reason: CancellationReason | None,
    charges: CancellationCharges,
) -> Decimal:
    """
    Charge for a cancelled trip.

    Provider-initiated cancellations are free. Otherwise the highest
    matching tier wins: arrived, ≥50% of the approach, ≥25%, before arrival.
    """
    if reason is CancellationReason.DRIVER_CANCELLED:
        return ZERO
    if trip_progress == ARRIVED or reason is CancellationReason.CUSTOMER_CANCELLED_AFTER_ARRIVAL:
        return charges.after_arrival
    if trip_progress >= Decimal("0.5"):
        return charges.after_50_percent
    if trip_progress >= Decimal("0.25"):
        return charges.after_25_percent
    return charges.before_arrival
