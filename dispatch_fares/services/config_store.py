"""
Pricing Configuration Store — the active tariff snapshot.

  - Readers receive the snapshot object itself; it is frozen, so a fare
    computation sees one consistent version from start to finish
  - Updates are typed patches: merged onto the current snapshot,
    re-validated against the schema (unknown fields rejected) and swapped
    in as a new version
  - Nested objects merge key by key; lists and scalars replace
"""

import json
import logging
import re
import threading
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from dispatch_fares.config import Settings
from dispatch_fares.schemas.pricing_config import (
    PricingConfiguration, default_pricing_configuration,
)
from dispatch_fares.services.errors import ConfigurationMissing, InvalidConfiguration

logger = logging.getLogger(__name__)


def merge_patch(base: dict[str, Any], patch: dict[str, Any]) -> dict[str, Any]:
    """Return base with patch applied; dicts merge recursively, anything else replaces."""
    merged = dict(base)
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_patch(merged[key], value)
        else:
            merged[key] = value
    return merged


def next_version(version: str) -> str:
    """'7' → '8', '2024.3' → '2024.4', 'default' → 'default-2'."""
    match = re.search(r"(\d+)$", version)
    if match:
        return f"{version[:match.start()]}{int(match.group(1)) + 1}"
    return f"{version}-2"


class ConfigurationStore:
    def __init__(self, initial: PricingConfiguration | None = None):
        self._active = initial
        self._lock = threading.Lock()

    def load_active_configuration(self) -> PricingConfiguration:
        """Current snapshot. Raises ConfigurationMissing when none was loaded."""
        config = self._active
        if config is None:
            raise ConfigurationMissing("No active pricing configuration")
        return config

    def activate(self, config: PricingConfiguration) -> PricingConfiguration:
        with self._lock:
            self._active = config
        logger.info("Pricing configuration activated: version=%s currency=%s",
                    config.version, config.currency)
        return config

    def load_file(self, path: str | Path) -> PricingConfiguration:
        """Validate a JSON tariff file and make it the active snapshot."""
        try:
            raw = json.loads(Path(path).read_text(encoding="utf-8"))
            config = PricingConfiguration.model_validate(raw)
        except FileNotFoundError as e:
            raise ConfigurationMissing(f"Pricing configuration file not found: {path}") from e
        except (json.JSONDecodeError, ValidationError) as e:
            raise InvalidConfiguration(f"Invalid pricing configuration in {path}: {e}") from e
        return self.activate(config)

    def apply_patch(self, patch: dict[str, Any], version: str | None = None) -> PricingConfiguration:
        """
        Apply a partial update and activate the result as a new version.

        Args:
            patch: Nested dict of fields to change, shaped like the configuration
            version: Version label for the result (default: patch["version"]
                     or the current version incremented)

        Returns:
            The newly active snapshot
        """
        with self._lock:
            current = self.load_active_configuration()
            merged = merge_patch(current.model_dump(), patch)
            merged["version"] = version or patch.get("version") or next_version(current.version)
            try:
                updated = PricingConfiguration.model_validate(merged)
            except ValidationError as e:
                raise InvalidConfiguration(f"Rejected pricing configuration patch: {e}") from e
            self._active = updated

        logger.info(
            "Pricing configuration patched: %s → %s (fields: %s)",
            current.version, updated.version, ", ".join(sorted(patch)),
        )
        return updated


_store: ConfigurationStore | None = None


def get_configuration_store() -> ConfigurationStore:
    """Process-wide store singleton."""
    global _store
    if _store is None:
        _store = ConfigurationStore()
    return _store


def load_active_configuration() -> PricingConfiguration:
    """Active snapshot of the process-wide store."""
    return get_configuration_store().load_active_configuration()


def init_configuration_store(settings: Settings) -> ConfigurationStore:
    """Seed the store from PRICING_CONFIG_PATH, or the canonical tariff when allowed."""
    store = get_configuration_store()
    if settings.PRICING_CONFIG_PATH:
        store.load_file(settings.PRICING_CONFIG_PATH)
    elif settings.PRICING_USE_DEFAULTS:
        logger.warning("PRICING_USE_DEFAULTS is set — serving the canonical development tariff")
        store.activate(default_pricing_configuration())
    else:
        logger.error("No pricing configuration source set — fare estimates will be refused")
    return store
