from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # App
    app_name: str = "TradeJournal"
    app_env: str = "development"
    debug: bool = True

    # Journal backend
    journal_api_url: str = "http://localhost:8080/api/v1"
    journal_api_timeout_seconds: float = 30.0

    # Accounts
    default_user_id: int = 1
    enabled_brokers: str = "dhan,zerodha"
    renewal_warning_minutes: int = 60
    max_cached_linkers: int = 256

    @property
    def enabled_broker_list(self) -> list[str]:
        return [b.strip().lower() for b in self.enabled_brokers.split(",") if b.strip()]

    # CORS
    cors_origins: str = "http://localhost:3000"

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",")]

    # Rate limiting
    rate_limit: str = "100/minute"

    model_config = {
        "env_file": ("../.env", ".env"),
        "env_file_encoding": "utf-8",
        "env_prefix": "TRADEJOURNAL_",
    }


@lru_cache
def get_settings() -> Settings:
    return Settings()
