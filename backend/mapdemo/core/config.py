from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    debug: bool = Field(False, alias="MAPDEMO_DEBUG")

    geocoder_provider: Literal["nominatim", "google", "photon"] = Field(
        "nominatim", alias="MAPDEMO_GEOCODER_PROVIDER"
    )
    geocoder_user_agent: str = Field(
        "mapdemo-geocoder", alias="MAPDEMO_GEOCODER_USER_AGENT"
    )
    geocoder_domain: str | None = Field(None, alias="MAPDEMO_GEOCODER_DOMAIN")
    geocoder_api_key: str | None = Field(None, alias="MAPDEMO_GEOCODER_API_KEY")
    search_result_limit: int = Field(10, ge=1, alias="MAPDEMO_SEARCH_RESULT_LIMIT")

    autocomplete_provider: Literal["photon", "google"] = Field(
        "photon", alias="MAPDEMO_AUTOCOMPLETE_PROVIDER"
    )
    autocomplete_debounce_seconds: float = Field(
        0.0, ge=0.0, alias="MAPDEMO_AUTOCOMPLETE_DEBOUNCE_SECONDS"
    )
    autocomplete_limit: int = Field(8, ge=1, alias="MAPDEMO_AUTOCOMPLETE_LIMIT")

    routing_provider: Literal["osrm", "straight_line"] = Field(
        "osrm", alias="MAPDEMO_ROUTING_PROVIDER"
    )
    osrm_base_url: str = Field(
        "https://router.project-osrm.org", alias="MAPDEMO_OSRM_BASE_URL"
    )

    street_level_provider: Literal["google", "none"] = Field(
        "google", alias="MAPDEMO_STREET_LEVEL_PROVIDER"
    )
    google_maps_api_key: str | None = Field(None, alias="MAPDEMO_GOOGLE_MAPS_API_KEY")

    request_timeout_seconds: float = Field(
        10.0, gt=0.0, alias="MAPDEMO_REQUEST_TIMEOUT_SECONDS"
    )

    # Camera defaults (downtown Calgary)
    default_latitude: float = Field(
        51.04554792104228, ge=-90.0, le=90.0, alias="MAPDEMO_DEFAULT_LATITUDE"
    )
    default_longitude: float = Field(
        -114.07295736885621, ge=-180.0, le=180.0, alias="MAPDEMO_DEFAULT_LONGITUDE"
    )
    default_span_meters: float = Field(
        30000.0, gt=0.0, alias="MAPDEMO_DEFAULT_SPAN_METERS"
    )
    suggestion_span_meters: float = Field(
        2000.0, gt=0.0, alias="MAPDEMO_SUGGESTION_SPAN_METERS"
    )

    # Landmark previewed when the session starts (University of Calgary)
    landmark_latitude: float | None = Field(
        51.07885784940875, alias="MAPDEMO_LANDMARK_LATITUDE"
    )
    landmark_longitude: float | None = Field(
        -114.13220927966469, alias="MAPDEMO_LANDMARK_LONGITUDE"
    )

    max_notices: int = Field(20, ge=1, alias="MAPDEMO_MAX_NOTICES")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @field_validator(
        "geocoder_provider",
        "autocomplete_provider",
        "routing_provider",
        "street_level_provider",
        mode="before",
    )
    def _normalize_provider(cls, value: str) -> str:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("osrm_base_url", mode="before")
    def _strip_trailing_slash(cls, value: str) -> str:
        if isinstance(value, str):
            return value.strip().rstrip("/")
        return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached application settings."""

    return Settings()  # type: ignore[call-arg]
