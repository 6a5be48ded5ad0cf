"""
Application Settings
Load from environment variables
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    """Application settings from environment"""

    # ======================
    # Application
    # ======================
    APP_ENV: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # ======================
    # Business domain API
    # ======================
    BUSINESS_DOMAIN_URL: str = "https://localhost:7223"
    AUTH_TOKEN: Optional[str] = None
    HTTP_TIMEOUT_SECONDS: float = 10.0

    # ======================
    # Request guard
    # ======================
    THROTTLE_WINDOW_MS: int = 2000
    PENDING_COOLDOWN_MS: int = 500

    # ======================
    # Valuation / daily change
    # ======================
    DEFAULT_TIME_RANGE: str = "1M"
    DAILY_CHANGE_SAMPLES: int = 2

    # ======================
    # Pydantic v2 config
    # ======================
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="forbid",
    )


settings = Settings()
