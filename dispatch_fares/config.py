import os
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, field_validator


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    # Env-derived defaults are validated too
    model_config = ConfigDict(validate_default=True)

    PRICING_CONFIG_PATH: str | None = os.getenv("PRICING_CONFIG_PATH")
    # Seed the store with the canonical tariff when no file is given (dev only)
    PRICING_USE_DEFAULTS: bool = _env_flag("PRICING_USE_DEFAULTS")
    PRICING_TIMEZONE: str = os.getenv("PRICING_TIMEZONE", "Asia/Dubai")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    @field_validator("PRICING_TIMEZONE")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown PRICING_TIMEZONE {value!r}") from e
        return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
