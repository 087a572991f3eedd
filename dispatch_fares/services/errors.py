"""Errors raised by the fare engine and its configuration store."""


class FareEngineError(Exception):
    """Base class for fare engine failures."""


class ConfigurationMissing(FareEngineError):
    """No active pricing configuration is available."""


class InvalidConfiguration(FareEngineError, ValueError):
    """A configuration file or patch failed schema validation."""


class InvalidTripRequest(FareEngineError, ValueError):
    """Trip input rejected before the pricing pipeline runs."""
