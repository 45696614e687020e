"""Application Settings - Central Configuration"""
from functools import lru_cache
from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # MongoDB
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db: str = "housing_subsidy_dev"

    # Persistence backend: "mongo" or "memory" (memory is for local demos and tests)
    store_backend: str = "mongo"

    # Logging
    logs_path: str = "./logs"
    log_level: str = "INFO"

    # CORS - set to "*" to allow all origins
    cors_origins: str = "*"

    # Roles: when True, actor_roles supplied by the caller are used as is.
    # When False, roles are always resolved through the role provider.
    trust_request_roles: bool = True

    # Notification outbox dispatch
    scheduler_enabled: bool = True
    scheduler_interval_seconds: int = 10
    notification_max_retries: int = 5
    notification_lock_duration_seconds: int = 60
    stale_lock_cleanup_minutes: int = 10
    notification_batch_size: int = 50

    # Notification sink: "log" or "webhook"
    notification_sink: str = "log"
    notification_webhook_url: Optional[str] = None
    notification_timeout_seconds: float = 10.0

    # Environment
    environment: str = "development"
    debug: bool = True

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins string to list"""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.environment.lower() == "production"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
