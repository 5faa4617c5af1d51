"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, HttpUrl, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="MovieMate", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=8080, alias="PORT")

    tmdb_api_url: HttpUrl = Field(
        default="https://api.themoviedb.org/3", alias="TMDB_API_URL"
    )
    tmdb_image_base_url: str = Field(
        default="https://image.tmdb.org/t/p/original", alias="TMDB_IMAGE_BASE_URL"
    )
    tmdb_api_key: str | None = Field(default=None, alias="TMDB_API_KEY")
    tmdb_read_access_token: str | None = Field(
        default=None, alias="TMDB_READ_ACCESS_TOKEN"
    )

    backend_api_url: HttpUrl = Field(
        default="http://localhost:8000", alias="BACKEND_API_URL"
    )

    provider_deadline_ms: int = Field(
        default=10_000, alias="PROVIDER_DEADLINE_MS", gt=0
    )
    backend_deadline_ms: int = Field(
        default=10_000, alias="BACKEND_DEADLINE_MS", gt=0
    )
    chat_probe_deadline_ms: int = Field(
        default=5_000, alias="CHAT_PROBE_DEADLINE_MS", gt=0
    )
    chat_send_deadline_ms: int = Field(
        default=15_000, alias="CHAT_SEND_DEADLINE_MS", gt=0
    )
    rotation_interval_ms: int = Field(
        default=5_000, alias="ROTATION_INTERVAL_MS", gt=0
    )
    extra_backdrop_limit: int = Field(
        default=5, alias="EXTRA_BACKDROP_LIMIT", ge=0, le=50
    )

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @model_validator(mode="after")
    def _normalise_credentials(self) -> "Settings":
        """Treat blank provider credentials as missing."""

        if self.tmdb_api_key is not None and not self.tmdb_api_key.strip():
            self.tmdb_api_key = None
        if (
            self.tmdb_read_access_token is not None
            and not self.tmdb_read_access_token.strip()
        ):
            self.tmdb_read_access_token = None
        return self

    @property
    def has_provider_credentials(self) -> bool:
        return bool(self.tmdb_api_key or self.tmdb_read_access_token)

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
