"""
Configuration settings for Bisna.
"""

import os
from functools import lru_cache
from typing import Optional
from pydantic import ConfigDict
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    """Persistence layer settings."""

    # Database
    DATABASE_URL: str = "sqlite:///bisna.db"
    DATABASE_READ_URL: Optional[str] = None

    # Persistence contexts used by entity services
    READ_CONTEXT: str = "default"
    WRITE_CONTEXT: str = "default"

    # Database Pool
    POOL_SIZE: int = int(os.getenv("POOL_SIZE", "5"))
    MAX_OVERFLOW: int = int(os.getenv("MAX_OVERFLOW", "10"))
    POOL_TIMEOUT: int = int(os.getenv("POOL_TIMEOUT", "30"))
    POOL_RECYCLE: int = int(os.getenv("POOL_RECYCLE", "1800"))

    # Logging
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Environment
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")

    model_config = ConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="allow"
    )

@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
