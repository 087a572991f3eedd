"""Tests for the fare estimation endpoints (in-process, no server)."""

import pytest
from fastapi.testclient import TestClient

from dispatch_fares.main import app
from dispatch_fares.schemas.pricing_config import default_pricing_configuration
from dispatch_fares.services import config_store
from dispatch_fares.services.config_store import ConfigurationStore, get_configuration_store

NOON_DUBAI = "2026-01-15T12:00:00+04:00"


@pytest.fixture
def store():
    return ConfigurationStore(default_pricing_configuration())


@pytest.fixture
def client(store):
    app.dependency_overrides[get_configuration_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_estimate(client):
    """Car recovery 8 km at noon: 65 + 9.75 fee + 3.74 VAT."""
    response = client.post("/api/fares/estimate", json={
        "service_type": "car recovery",
        "distance_km": 8,
        "requested_at": NOON_DUBAI,
    })
    assert response.status_code == 200
    body = response.json()
    assert body["subtotal"] == 65.0
    assert body["platform_fee"] == 9.75
    assert body["vat_amount"] == 3.74
    assert body["total_fare"] == 78.49
    assert body["currency"] == "AED"
    assert body["details"]["configuration_version"] == "default"
    assert body["night_charge"] == 0.0


def test_estimate_night_from_requested_at(client):
    """23:00 in Dubai is inside the 22–6 window."""
    response = client.post("/api/fares/estimate", json={
        "service_type": "car_recovery",
        "distance_km": 8,
        "requested_at": "2026-01-15T19:00:00+00:00",
    })
    assert response.status_code == 200
    assert response.json()["night_charge"] == 16.25


def test_estimate_round_trip_with_alert(client):
    response = client.post("/api/fares/estimate", json={
        "service_type": "car_recovery",
        "distance_km": 25,
        "route_type": "round_trip",
        "requested_at": NOON_DUBAI,
    })
    body = response.json()
    assert response.status_code == 200
    assert body["details"]["round_trip_multiplier"] == 1.8
    assert body["advisories"][0]["kind"] == "refreshment_alert"


def test_estimate_cancellation(client):
    response = client.post("/api/fares/estimate", json={
        "service_type": "car_recovery",
        "distance_km": 8,
        "is_cancelled": True,
        "trip_progress": "arrived",
        "cancellation_reason": "customer_cancelled",
        "requested_at": NOON_DUBAI,
    })
    assert response.status_code == 200
    assert response.json()["cancellation_charge"] == 10.0


def test_estimate_rejects_negative_distance(client):
    response = client.post("/api/fares/estimate", json={"service_type": "bike", "distance_km": -2})
    assert response.status_code == 422


def test_estimate_rejects_low_demand_ratio(client):
    response = client.post("/api/fares/estimate", json={
        "service_type": "bike", "distance_km": 2, "demand_ratio": 0.5,
    })
    assert response.status_code == 422


def test_estimate_rejects_bad_progress(client):
    """Progress is parsed by the engine, which reports it as invalid input."""
    response = client.post("/api/fares/estimate", json={
        "service_type": "car_recovery",
        "distance_km": 8,
        "trip_progress": "halfway",
        "requested_at": NOON_DUBAI,
    })
    assert response.status_code == 422
    assert "trip_progress" in response.json()["detail"]


def test_estimate_disabled_service(client, store):
    store.apply_patch({"services": {"bike": {"enabled": False}}})
    response = client.post("/api/fares/estimate", json={
        "service_type": "bike", "distance_km": 2, "requested_at": NOON_DUBAI,
    })
    assert response.status_code == 422


def test_estimate_without_configuration():
    app.dependency_overrides[get_configuration_store] = lambda: ConfigurationStore()
    try:
        response = TestClient(app).post("/api/fares/estimate", json={
            "service_type": "bike", "distance_km": 2,
        })
    finally:
        app.dependency_overrides.clear()
    assert response.status_code == 503


def test_estimate_uses_latest_snapshot(client, store):
    store.apply_patch({"vat": {"enabled": False}})
    response = client.post("/api/fares/estimate", json={
        "service_type": "car_recovery", "distance_km": 8, "requested_at": NOON_DUBAI,
    })
    body = response.json()
    assert body["total_fare"] == 74.75
    assert body["details"]["configuration_version"] == "default-2"


def test_active_configuration(client):
    response = client.get("/api/fares/config")
    assert response.status_code == 200
    body = response.json()
    assert body["version"] == "default"
    assert body["currency"] == "AED"
    assert "car_recovery" in body["services"]


def test_estimate_overtime(client):
    response = client.post("/api/fares/estimate", json={
        "service_type": "car_recovery",
        "distance_km": 8,
        "overtime_minutes": 12,
        "requested_at": NOON_DUBAI,
    })
    body = response.json()
    assert body["overtime_charge"] == 12.0
    assert body["total_fare"] == 92.98


def test_fixed_price_floored_to_minimum(client):
    response = client.post("/api/fares/estimate", json={
        "service_type": "car_recovery", "variant": "jumpstart",
        "distance_km": 3, "requested_at": NOON_DUBAI,
    })
    body = response.json()
    assert body["subtotal"] == 50.0
    assert body["details"]["minimum_fare_applied"] is True


def test_health_config_reports_active_version(monkeypatch):
    monkeypatch.setattr(config_store, "_store", ConfigurationStore(default_pricing_configuration()))
    body = TestClient(app).get("/health/config").json()
    assert body == {"status": "ok", "version": "default", "currency": "AED"}


def test_health_config_without_configuration(monkeypatch):
    monkeypatch.setattr(config_store, "_store", ConfigurationStore())
    assert TestClient(app).get("/health/config").json()["status"] == "error"
