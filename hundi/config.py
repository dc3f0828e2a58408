"""
Application configuration using pydantic-settings.
Loads from environment variables / .env file.
"""

from functools import lru_cache
from typing import List, Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Hundi settings loaded from environment."""
    
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )
    
    app_name: str = "hundi"
    app_env: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    
    # API Server
    host: str = "0.0.0.0"
    port: int = 8000
    
    # Postgres (asyncpg). Empty disables database features.
    database_url: str = ""
    
    # Celery broker + result backend
    redis_url: str = "redis://localhost:6379/0"
    
    # Calendar used to derive cycle keys (one per deployment, never per donor)
    collection_timezone: str = "Asia/Kolkata"
    
    # Overdue sweep: donors per batch and daily run time (collection timezone)
    reconcile_batch_size: int = 200
    reconcile_hour: int = 0
    reconcile_minute: int = 0
    
    # Created by ensure_default_groups(); the first one is the default group
    default_group_names: List[str] = ["Group A", "Group B", "Group C"]
    
    admin_api_key: str = ""
    
    @field_validator("collection_timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {value}")
        return value
    
    @field_validator("reconcile_batch_size")
    @classmethod
    def _positive_batch(cls, value: int) -> int:
        if value < 1:
            raise ValueError("reconcile_batch_size must be at least 1")
        return value
    
    @field_validator("default_group_names")
    @classmethod
    def _at_least_one_group(cls, value: List[str]) -> List[str]:
        if not value:
            raise ValueError("default_group_names cannot be empty")
        return value
    
    @property
    def is_development(self) -> bool:
        return self.app_env == "development"
    
    @property
    def is_production(self) -> bool:
        return self.app_env == "production"


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
