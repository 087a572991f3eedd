"""Tests for the pricing configuration snapshot store."""

import json
from decimal import Decimal

import pytest
from pydantic import ValidationError

from dispatch_fares.config import Settings
from dispatch_fares.schemas.pricing_config import (
    PlatformFee, PricingConfiguration, default_pricing_configuration,
)
from dispatch_fares.services import config_store
from dispatch_fares.services.config_store import (
    ConfigurationStore, init_configuration_store, merge_patch, next_version,
)
from dispatch_fares.services.errors import ConfigurationMissing, InvalidConfiguration


@pytest.fixture
def store():
    return ConfigurationStore(default_pricing_configuration())


def test_empty_store_raises():
    with pytest.raises(ConfigurationMissing):
        ConfigurationStore().load_active_configuration()


def test_patch_creates_new_version(store):
    before = store.load_active_configuration()
    after = store.apply_patch({"platform_fee": {"percentage": "20", "driver_share": "10", "customer_share": "10"}})
    assert after.platform_fee.percentage == Decimal("20")
    assert after.version == "default-2"
    assert store.load_active_configuration() is after
    # Snapshots already handed out are untouched
    assert before.platform_fee.percentage == Decimal("15")


def test_patch_keeps_unmentioned_fields(store):
    after = store.apply_patch({"night_charges": {"fixed_amount": "12"}})
    assert after.night_charges.fixed_amount == Decimal("12")
    assert after.night_charges.multiplier == Decimal("1.25")
    assert after.services["car_recovery"].per_km_rate == Decimal("7.5")


def test_patch_with_explicit_version(store):
    assert store.apply_patch({"currency": "USD"}, version="2026.10").version == "2026.10"
    assert store.apply_patch({"currency": "EUR", "version": "v9"}).version == "v9"
    assert store.apply_patch({"currency": "AED"}).version == "v10"


def test_patch_replaces_lists(store):
    after = store.apply_patch({"surge_pricing": {"levels": [{"demand_ratio": "4", "multiplier": "1.8"}]}})
    assert len(after.surge_pricing.levels) == 1
    assert after.surge_pricing.levels[0].multiplier == Decimal("1.8")


def test_patch_adds_service(store):
    after = store.apply_patch({"services": {"scooter": {"base_fare": "3", "per_km_rate": "1"}}})
    assert after.services["scooter"].base_fare == Decimal("3")
    assert "car_cab" in after.services


def test_patch_rejects_unknown_field(store):
    with pytest.raises(InvalidConfiguration):
        store.apply_patch({"platform_fee": {"percentag": "20"}})
    assert store.load_active_configuration().version == "default"


def test_patch_rejects_negative_rate(store):
    with pytest.raises(InvalidConfiguration):
        store.apply_patch({"services": {"bike": {"per_km_rate": "-1"}}})


def test_patch_rejects_fee_split_above_percentage(store):
    with pytest.raises(InvalidConfiguration):
        store.apply_patch({"platform_fee": {"driver_share": "10"}})


def test_platform_fee_shares_validated():
    with pytest.raises(ValidationError):
        PlatformFee(percentage=Decimal("10"), driver_share=Decimal("6"), customer_share=Decimal("6"))


def test_patch_on_empty_store():
    with pytest.raises(ConfigurationMissing):
        ConfigurationStore().apply_patch({"currency": "USD"})


def test_configuration_is_frozen(store):
    config = store.load_active_configuration()
    with pytest.raises(ValidationError):
        config.currency = "USD"


def test_merge_patch_nested():
    base = {"a": {"b": 1, "c": [1, 2]}, "d": 4}
    merged = merge_patch(base, {"a": {"c": [3]}, "e": 5})
    assert merged == {"a": {"b": 1, "c": [3]}, "d": 4, "e": 5}
    assert base["a"]["c"] == [1, 2]


@pytest.mark.parametrize("version,expected", [
    ("7", "8"), ("2024.3", "2024.4"), ("v9", "v10"), ("default", "default-2"),
])
def test_next_version(version, expected):
    assert next_version(version) == expected


def test_load_file(tmp_path):
    path = tmp_path / "pricing.json"
    data = default_pricing_configuration(version="file-1").model_dump(mode="json")
    path.write_text(json.dumps(data), encoding="utf-8")

    config = ConfigurationStore().load_file(path)
    assert config.version == "file-1"
    assert config.services["car_recovery"].city_wise_adjustment.above_km == Decimal("10")


def test_load_file_missing(tmp_path):
    with pytest.raises(ConfigurationMissing):
        ConfigurationStore().load_file(tmp_path / "nope.json")


def test_load_file_invalid(tmp_path):
    path = tmp_path / "pricing.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(InvalidConfiguration):
        ConfigurationStore().load_file(path)

    path.write_text(json.dumps({"vat": {"percentage": 500}}), encoding="utf-8")
    with pytest.raises(InvalidConfiguration):
        ConfigurationStore().load_file(path)


def test_init_from_defaults(monkeypatch):
    monkeypatch.setattr(config_store, "_store", None)
    store = init_configuration_store(Settings(PRICING_CONFIG_PATH=None, PRICING_USE_DEFAULTS=True))
    assert store.load_active_configuration().version == "default"


def test_init_without_source_leaves_store_empty(monkeypatch):
    monkeypatch.setattr(config_store, "_store", None)
    store = init_configuration_store(Settings(PRICING_CONFIG_PATH=None, PRICING_USE_DEFAULTS=False))
    with pytest.raises(ConfigurationMissing):
        store.load_active_configuration()


def test_minimal_configuration_is_valid():
    """Every block has a default."""
    config = PricingConfiguration()
    assert config.currency == "AED"
    assert config.round_trip.multiplier == Decimal("1.8")


def test_block_defaults():
    """Unconfigured blocks carry the documented rates; night and surge stay opt-in."""
    config = PricingConfiguration()
    assert config.night_charges.enabled is False
    assert (config.night_charges.start_hour, config.night_charges.end_hour) == (22, 6)
    assert config.night_charges.fixed_amount == Decimal("10")
    assert config.night_charges.multiplier == Decimal("1.25")
    assert config.surge_pricing.enabled is False
    assert [(level.demand_ratio, level.multiplier) for level in config.surge_pricing.levels] == [
        (Decimal("2"), Decimal("1.5")), (Decimal("3"), Decimal("2.0")),
    ]
    waiting = config.waiting_charges
    assert (waiting.free_minutes, waiting.per_minute_rate, waiting.maximum_charge) == (
        Decimal("5"), Decimal("2"), Decimal("20"),
    )
    alert = config.round_trip.refreshment_alert
    assert (alert.per_minute_charge, alert.maximum_charge) == (Decimal("1"), Decimal("30"))


def test_settings_reject_unknown_timezone():
    with pytest.raises(ValidationError):
        Settings(PRICING_TIMEZONE="Mars/Olympus_Mons")
    assert Settings(PRICING_TIMEZONE="Europe/London").PRICING_TIMEZONE == "Europe/London"
