"""
Centralized configuration using Pydantic BaseSettings.
All environment variables are loaded here - no hardcoded values.
"""
from functools import lru_cache
from typing import Dict, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "Spin Wheel Reward Engine"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Pity timer
    PITY_THRESHOLD: int = 10  # Consecutive non-rare spins before pity kicks in
    PITY_MULTIPLIER: float = 1.5

    # Spin state
    SPIN_HISTORY_LIMIT: int = 10
    MAX_HISTORY_LIMIT: int = 50
    SPIN_MAX_RETRIES: int = 3  # Compare-and-swap attempts before TransientFailure
    DEFAULT_AVAILABLE_SPINS: Dict[str, int] = Field(
        default_factory=lambda: {"rookie": 1, "pro": 1, "elite": 1}
    )

    # Catalog (admin-edited JSON document, defaults are built in)
    CATALOG_PATH: Optional[str] = None

    # Daily free spin
    FREE_SPIN_TIER: str = "rookie"
    FREE_SPIN_COUNT: int = 1
    FREE_SPIN_COOLDOWN_HOURS: int = 24

    # Telemetry
    ENABLE_OTEL: bool = False  # Default to False to prevent gRPC errors in dev
    ENABLE_PROMETHEUS: bool = True

    # Grant backend
    GRANT_TIMEOUT_MS: int = 2000
    GRANT_RETRY_INTERVAL_SEC: float = 60.0  # Pending grant sweep, 0 disables

    # Circuit Breaker
    CIRCUIT_BREAKER_FAILURE_THRESHOLD: int = 5
    CIRCUIT_BREAKER_RECOVERY_TIMEOUT_SEC: int = 30

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance - singleton pattern."""
    return Settings()
