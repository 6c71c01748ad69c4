from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from osm_pipeline.providers.overpass import OVERPASS_URL


class ServiceSettings(BaseSettings):
    model_config = SettingsConfigDict(extra="ignore")

    SERVICE_NAME: str = "facility-service"
    DATABASE_URL: str | None = None
    LOG_LEVEL: str = "INFO"
    FACILITY_SERVICE_HOST: str = "0.0.0.0"
    FACILITY_SERVICE_PORT: int = 8103

    OVERPASS_URL: str = OVERPASS_URL
    OVERPASS_MIN_INTERVAL_SECONDS: float = Field(default=0.5, ge=0)
    OVERPASS_TIMEOUT_SECONDS: float = Field(default=30.0, gt=0)
    OVERPASS_MAX_RETRIES: int = Field(default=3, gt=0)
    OVERPASS_RETRY_BASE_DELAY_SECONDS: float = Field(default=1.0, ge=0)

    SEARCH_MAX_RADIUS_METERS: float = Field(default=50_000.0, gt=0)
    IMPORT_MAX_RADIUS_METERS: float = Field(default=10_000.0, gt=0)
    IMPORT_RUN_TIMEOUT_SECONDS: float = Field(default=300.0, gt=0)
    # empty string: unclassified elements are skipped instead of stored as entrances
    NORMALIZER_FALLBACK_TYPE: str = "entrance"

    @property
    def fallback_type(self) -> str | None:
        value = self.NORMALIZER_FALLBACK_TYPE.strip()
        return value or None


@lru_cache
def load_settings() -> ServiceSettings:
    return ServiceSettings()
