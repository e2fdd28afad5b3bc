"""
Configuration settings for the Automation Engine.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # Application
    APP_NAME: str = "Autoflow"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = True

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Storage (unset = in-memory stores)
    DATABASE_PATH: Optional[str] = None

    # Execution
    ACTION_MAX_ATTEMPTS: int = 3
    RETRY_BASE_DELAY: float = 1.0  # Seconds
    RETRY_MAX_DELAY: float = 30.0  # Seconds
    VISIT_BUDGET_FACTOR: int = 2  # Max visits per run = node count * factor

    # Delay scheduler
    SCHEDULER_INTERVAL: float = 60.0  # Seconds
    SCHEDULER_BATCH_SIZE: int = 100
    DEFAULT_DELAY_MINUTES: int = 5

    # Demo automation
    REGISTER_DEMO: bool = True

    # Logging
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = True


# Global settings instance
settings = Settings()
