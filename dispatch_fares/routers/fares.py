"""Fare estimation API endpoints."""

import logging
from datetime import datetime
from zoneinfo import ZoneInfo

from fastapi import APIRouter, Depends, HTTPException

from dispatch_fares.config import get_settings
from dispatch_fares.schemas import FareBreakdownResponse, FareEstimateRequest
from dispatch_fares.services.config_store import ConfigurationStore, get_configuration_store
from dispatch_fares.services.errors import ConfigurationMissing, InvalidTripRequest
from dispatch_fares.services.pricing import TripRequest, compute_fare

logger = logging.getLogger(__name__)

router = APIRouter()


def _trip_hour(requested_at: datetime | None) -> int:
    """Local hour of the trip in the operating timezone (now when not given)."""
    tz = ZoneInfo(get_settings().PRICING_TIMEZONE)
    if requested_at is None:
        return datetime.now(tz).hour
    if requested_at.tzinfo is None:
        return requested_at.hour
    return requested_at.astimezone(tz).hour


@router.post("/estimate", response_model=FareBreakdownResponse)
async def estimate_fare(
    data: FareEstimateRequest,
    store: ConfigurationStore = Depends(get_configuration_store),
):
    """Price a trip against the active configuration snapshot."""
    try:
        config = store.load_active_configuration()
    except ConfigurationMissing as e:
        logger.error("Fare estimate refused: %s", e)
        raise HTTPException(status_code=503, detail="Pricing configuration unavailable")

    try:
        trip = TripRequest(
            service_type=data.service_type,
            variant=data.variant,
            distance_km=data.distance_km,
            route_type=data.route_type,
            demand_ratio=data.demand_ratio,
            waiting_minutes=data.waiting_minutes,
            overtime_minutes=data.overtime_minutes,
            trip_progress=data.trip_progress,
            estimated_duration_min=data.estimated_duration_min,
            trip_hour=_trip_hour(data.requested_at),
            is_night=data.is_night,
            is_cancelled=data.is_cancelled,
            cancellation_reason=data.cancellation_reason,
        )
        breakdown = compute_fare(trip, config)
    except InvalidTripRequest as e:
        raise HTTPException(status_code=422, detail=str(e))

    logger.info(
        "Fare estimate: service=%s variant=%s total=%s %s rates=%s config=%s",
        trip.service_type, trip.variant, breakdown.total_fare, breakdown.currency,
        breakdown.details.get("rate_source"), config.version,
    )
    return FareBreakdownResponse(**breakdown.to_dict())


@router.get("/config")
async def get_active_configuration(
    store: ConfigurationStore = Depends(get_configuration_store),
):
    """Active pricing configuration snapshot."""
    try:
        config = store.load_active_configuration()
    except ConfigurationMissing:
        raise HTTPException(status_code=404, detail="No active pricing configuration")
    return config.model_dump(mode="json")
