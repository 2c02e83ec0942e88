"""Application configuration."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Data source API keys
    alpha_vantage_api_key: str = ""
    twelve_data_api_key: str = ""

    # Source selection (failover order: primary, then backups)
    primary_source: str = "alpha_vantage"
    backup_sources: list[str] = ["twelve_data", "yahoo"]

    # Fetching
    request_timeout: float = 10.0
    retry_attempts: int = 3
    retry_delay: float = 1.0
    data_cache_timeout: float = 60.0

    # Circuit breaker per source
    circuit_failure_threshold: int = 5
    circuit_reset_timeout: float = 30.0

    log_level: str = "INFO"
    engine_config_path: str = "engine.yaml"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
