"""
Configuration management for the studio auth service
"""
from functools import lru_cache
from typing import List, Optional

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Auth service configuration loaded from environment variables"""

    # Service
    APP_NAME: str = "DanceAura Auth Service"
    BRAND_NAME: str = "DanceAura"
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"

    # Database Configuration
    DATABASE_URL: str = "sqlite:///./studio.db"

    # Access tokens
    SECRET_KEY: str = "change-this-secret-in-production-please"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_DAYS: int = 30

    # Password hashing
    PASSWORD_HASH_ROUNDS: int = 29000

    # Password reset
    RESET_TOKEN_EXPIRE_MINUTES: int = 10
    FRONTEND_URL: str = "http://localhost:8000"
    RESET_PATH: str = "/resetpassword.html"

    # Social login
    SOCIAL_LOGIN_REDIRECT_URL: str = "http://localhost:8000/home1.html"

    # SMTP
    SMTP_ENABLED: bool = False
    SMTP_HOST: str = ""
    SMTP_PORT: int = 465
    SMTP_USER: str = ""
    SMTP_PASSWORD: Optional[SecretStr] = None
    SMTP_FROM_EMAIL: str = ""
    SMTP_USE_TLS: bool = True
    SMTP_STARTTLS: bool = False
    SMTP_TIMEOUT_SECONDS: int = 10

    # CORS Configuration
    CORS_ORIGINS: List[str] = ["*"]

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )


@lru_cache
def get_settings() -> Settings:
    """Build the settings once per process."""
    return Settings()
