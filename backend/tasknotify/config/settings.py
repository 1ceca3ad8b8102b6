"""Application Settings - Central Configuration"""
from functools import lru_cache
from typing import List
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
    mongo_uri: str = "mongodb://localhost:27017/?replicaSet=rs0"
    mongo_db: str = "tasker_notify_dev"

    # Application auth (tokens issued by the task app)
    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"

    # Shared key for calls made by the chat platform and the CRUD layer
    chat_api_key: str = ""

    # Chat platform (Zoho Cliq) webhooks
    chat_api_base_url: str = "https://cliq.zoho.com/api/v2"
    chat_bot_name: str = "taskerbot"
    chat_webhook_token: str = ""
    chat_payload_format: str = "cliq"  # cliq | generic
    app_deep_link_base: str = "tasker://"

    # Delivery
    webhook_timeout_seconds: float = 10.0
    webhook_retry_delay_seconds: float = 1.0
    dispatch_concurrency: int = 8

    # Notification rules
    notification_timezone: str = "UTC"  # quiet hours and calendar days are evaluated here
    event_replay_grace_seconds: int = 30
    recent_completion_seconds: int = 60
    due_soon_window_hours: int = 24

    # Linking protocol
    linking_code_ttl_minutes: int = 10

    # Scheduler
    scheduler_enabled: bool = True
    overdue_scan_interval_seconds: int = 86400
    due_soon_scan_interval_seconds: int = 3600
    code_purge_interval_seconds: int = 900
    dnd_sweep_interval_seconds: int = 600

    # Event source (change streams)
    event_source_enabled: bool = True
    event_source_reconnect_seconds: int = 5

    # Logging
    logs_path: str = "./logs"
    log_level: str = "INFO"

    # CORS - set to "*" to allow all origins
    cors_origins: str = "*"

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
