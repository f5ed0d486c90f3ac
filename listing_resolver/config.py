from typing import Annotated

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Marketplace Listing Resolver"
    app_env: str = "dev"
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"

    mongo_uri: str = "mongodb://localhost:27017"
    db_name: str = "marketplace"
    stores_collection: str = "stores"

    scraper_headless: bool = True
    scraper_browser_channel: str = ""
    scraper_user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/120.0.0.0 Safari/537.36"
    )
    scraper_locale: str = "en-US"
    scraper_accept_language: str = "en-US,en;q=0.9"
    scraper_viewport_width: int = 1366
    scraper_viewport_height: int = 768
    scraper_extra_chromium_args: Annotated[list[str], NoDecode] = Field(default_factory=list)
    scraper_strategy_order: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["fast", "balanced", "maximal_stealth"]
    )
    scraper_fast_timeout_ms: int = 20000
    scraper_balanced_timeout_ms: int = 22000
    scraper_stealth_timeout_ms: int = 25000
    scraper_simulate_pointer: bool = True
    scraper_pointer_duration_s: float = 10.0
    scraper_cache_max_entries: int = 0
    scraper_batch_size: int = 2
    scraper_batch_min_delay_s: float = 1.0
    scraper_batch_max_delay_s: float = 2.0

    cors_origins: Annotated[list[str], NoDecode] = Field(default_factory=lambda: ["*"])

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, value: object) -> object:
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @field_validator("scraper_extra_chromium_args", mode="before")
    @classmethod
    def parse_scraper_extra_chromium_args(cls, value: object) -> object:
        if isinstance(value, str):
            return [arg.strip() for arg in value.split(",") if arg.strip()]
        return value

    @field_validator("scraper_strategy_order", mode="before")
    @classmethod
    def parse_scraper_strategy_order(cls, value: object) -> object:
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("scraper_batch_size", mode="after")
    @classmethod
    def clamp_scraper_batch_size(cls, value: int) -> int:
        # At most three browser sessions run per batch.
        return min(max(value, 1), 3)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


settings = Settings()
