"""
Application configuration using environment variables.
"""
from functools import lru_cache
from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "CampaignHQ API"
    debug: bool = False
    environment: str = "development"

    # Scheduling / dispatch
    dispatch_max_attempts: int = 3
    dispatch_timeout_seconds: float = 10.0
    dispatch_workers: int = 4
    sweep_interval_seconds: float = 30.0
    auto_sweep: bool = False

    # Entity store
    campaign_delete_policy: str = "orphan"  # orphan or cascade
    journal_database_url: Optional[str] = None  # e.g. sqlite:///./campaignhq.db

    # Channel gateway
    gateway_mode: str = "mock"  # mock or webhook
    gateway_base_url: str = ""
    gateway_api_key: str = ""
    gateway_webhook_secret: str = ""

    # Demo data (mock mode in the dashboard)
    seed_demo_data: bool = False

    # CORS
    cors_origins: List[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
    ]

    # Rate limiting
    rate_limit_default: str = "100/minute"
    rate_limit_enabled: bool = True

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
