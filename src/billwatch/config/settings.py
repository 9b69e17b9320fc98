"""
Application settings using Pydantic Settings.

Environment variables are loaded from .env file.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional

from billwatch.config.constants import request_delay_for_limit


class Settings(BaseSettings):
    """
    Application configuration loaded from environment variables.
    
    Create a .env file in the project root with these values.
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )
    
    # ========================================================================
    # Database
    # ========================================================================
    MONGODB_URI: str = "mongodb://localhost:27017"
    MONGODB_DATABASE: str = "billwatch"
    
    # Multi-document transactions need a replica set. When off, child
    # collections are swapped by generation instead.
    MONGODB_USE_TRANSACTIONS: bool = False
    
    # ========================================================================
    # Congress.gov API (get key at: https://api.congress.gov/sign-up/)
    # ========================================================================
    CONGRESS_GOV_API_KEY: Optional[str] = None
    CONGRESS_GOV_RATE_LIMIT: int = 5000  # requests per hour
    CONGRESS_GOV_MAX_RETRIES: int = 3
    CONGRESS_GOV_RETRY_DELAY: float = 5.0  # seconds
    CONGRESS_GOV_TIMEOUT: float = 30.0
    
    # ========================================================================
    # Sync
    # ========================================================================
    SYNC_PAGE_SIZE: int = 50  # API maximum is 250
    SYNC_STALE_AFTER_HOURS: int = 6
    
    @property
    def request_delay_seconds(self) -> float:
        """Minimum spacing between API calls derived from the hourly limit"""
        return request_delay_for_limit(self.CONGRESS_GOV_RATE_LIMIT)
    
    # ========================================================================
    # Logging
    # ========================================================================
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    
    # ========================================================================
    # Application
    # ========================================================================
    APP_NAME: str = "Bill Watch"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    
    # Environment (development, staging, production)
    ENVIRONMENT: str = "development"


# Singleton instance
settings = Settings()
