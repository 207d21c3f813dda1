from __future__ import annotations

from typing import ClassVar, Literal, final

from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [x.strip() for x in value.split(",") if x.strip()]


@final
class Settings(BaseSettings):
    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )
    app_name: str = "Todo Sync Backend"
    api_prefix: str = "/api"

    # Environment (ENVIRONMENT): development | production
    environment: str = "development"

    database_url: str = "sqlite:///./dev.db"
    log_level: str = "INFO"

    # Primary env: CORS_ALLOW_ORIGINS; also accept CORS_ORIGINS as alias.
    cors_allow_origins: str = Field(
        default="*",
        validation_alias=AliasChoices("CORS_ALLOW_ORIGINS", "CORS_ORIGINS"),
    )

    # Pull: above this many changed keys the incremental diff is replaced by clear + full put.
    pull_reset_threshold: int = 1000

    # CVR cache bounds. Losing an entry only costs the client a full reset patch.
    cvr_cache_max_client_groups: int = 1024
    cvr_cache_max_entries_per_group: int = 8

    # Poke fan-out: "local" keeps in-process subscribers, "log" only writes log lines.
    poke_backend: Literal["local", "log"] = "local"
    poke_queue_size: int = 64

    @model_validator(mode="after")
    def _validate_settings(self) -> "Settings":  # pyright: ignore[reportUnusedFunction]
        errors: list[str] = []

        if self.pull_reset_threshold < 1:
            errors.append("PULL_RESET_THRESHOLD must be >= 1")
        if self.cvr_cache_max_client_groups < 1:
            errors.append("CVR_CACHE_MAX_CLIENT_GROUPS must be >= 1")
        if self.cvr_cache_max_entries_per_group < 1:
            errors.append("CVR_CACHE_MAX_ENTRIES_PER_GROUP must be >= 1")

        if self.environment.strip().lower() == "production":
            cors_v = self.cors_allow_origins.strip()
            if not cors_v or cors_v == "*":
                errors.append("CORS_ALLOW_ORIGINS must be explicit (not '*') in production")
            if self.database_url.strip().lower().startswith("sqlite"):
                errors.append("DATABASE_URL must not point at SQLite in production")

        if errors:
            raise ValueError("Invalid settings: " + "; ".join(errors))
        return self

    def cors_origins_list(self) -> list[str]:
        v = self.cors_allow_origins.strip()
        if not v:
            return []
        if v == "*":
            return ["*"]
        return _split_csv(v)

    def security_warnings(self) -> list[str]:
        warnings: list[str] = []
        if self.cors_allow_origins.strip() == "*":
            warnings.append("CORS_ALLOW_ORIGINS='*' is permissive")
        return warnings


settings = Settings()
