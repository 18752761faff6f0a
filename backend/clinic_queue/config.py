"""
Application configuration using Pydantic Settings.
Loads from environment variables with sensible defaults.
"""

from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "Clinic Queue Service"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # MongoDB
    MONGODB_URL: str = "mongodb://localhost:27017"
    DATABASE_NAME: str = "clinic_queue"
    SERVER_SELECTION_TIMEOUT_MS: int = 5000

    # JWT Authentication
    SECRET_KEY: str = "clinic-queue-secret-key-change-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24  # 24 hours

    # Queue numbering
    TIMEZONE: str = "UTC"  # IANA name; queue numbers restart at local midnight
    TICKET_ALLOCATION_RETRIES: int = 5

    # History
    HISTORY_PAGE_SIZE: int = 10
    HISTORY_MAX_PAGE_SIZE: int = 100

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
