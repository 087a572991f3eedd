"""Pydantic schemas for API request/response models."""

from __future__ import annotations
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


# ── Enums ──────────────────────────────────────────────────

class RouteType(str, Enum):
    ONE_WAY = "one_way"
    ROUND_TRIP = "round_trip"

    @classmethod
    def _missing_(cls, value):
        # Legacy clients send "two_way"
        if isinstance(value, str) and value.strip().lower() == "two_way":
            return cls.ROUND_TRIP
        return None


class CancellationReason(str, Enum):
    DRIVER_CANCELLED = "driver_cancelled"
    CUSTOMER_CANCELLED = "customer_cancelled"
    CUSTOMER_CANCELLED_AFTER_ARRIVAL = "customer_cancelled_after_arrival"


# ── Fare Schemas ───────────────────────────────────────────

class FareEstimateRequest(BaseModel):
    service_type: str = Field(..., min_length=1)
    variant: str | None = None
    distance_km: float = Field(..., ge=0)
    route_type: RouteType = RouteType.ONE_WAY
    demand_ratio: float = Field(default=1.0, ge=1)
    waiting_minutes: float = Field(default=0, ge=0)
    overtime_minutes: float = Field(default=0, ge=0)  # billed overtime after free stay
    trip_progress: float | str = 0  # fraction of the approach, or "arrived"
    estimated_duration_min: float = Field(default=0, ge=0)
    requested_at: datetime | None = None
    is_night: bool = False
    is_cancelled: bool = False
    cancellation_reason: CancellationReason | None = None


class AdvisoryResponse(BaseModel):
    kind: str
    message: str


class FareBreakdownResponse(BaseModel):
    base_fare: float
    distance_fare: float
    subtotal: float
    night_charge: float
    surge_charge: float
    waiting_charge: float
    overtime_charge: float
    cancellation_charge: float
    platform_fee: float
    platform_fee_driver_share: float
    platform_fee_customer_share: float
    vat_amount: float
    total_fare: float
    currency: str
    details: dict[str, Any] = {}
    advisories: list[AdvisoryResponse] = []
