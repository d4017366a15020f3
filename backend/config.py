"""
Configuration management for the newsletter backend.
"""
from typing import List
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Environment
    environment: str = "development"
    log_level: str = "INFO"

    # API settings
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Public base URL of this API (unsubscribe and tracking links in emails)
    api_base_url: str = "http://localhost:8000"

    # Frontend URL (for CORS)
    frontend_url: str = "http://localhost:5173"
    cors_origins: List[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
    ]

    # Admin dashboard access
    admin_secret: str = "newsletter-admin-dev"

    # Campaign delivery API (MailBluster-compatible lead API)
    mail_api_key: str = ""
    mail_api_url: str = "https://api.mailbluster.com"
    mail_timeout_seconds: float = 10.0
    sender_email: str = "no-reply@example.com"
    sender_name: str = "Newsletter"

    # Public ingestion endpoint the tracking client posts to
    tracker_url: str = "http://localhost:8000/api/track"

    # Background jobs
    welcome_email_delay_hours: int = 1
    scheduler_interval_minutes: int = 5

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"  # Ignore extra fields like DATABASE_URL


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def is_mail_api_configured() -> bool:
    """Check if the campaign delivery API has a key."""
    settings = get_settings()
    return bool(settings.mail_api_key and settings.mail_api_url)
