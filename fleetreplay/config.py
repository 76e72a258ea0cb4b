"""
Configuration for the fleet replay service
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

class Settings(BaseSettings):
    """Application settings"""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # Service Configuration
    SERVICE_NAME: str = "fleetreplay"
    LOG_LEVEL: str = "INFO"

    # Trip data
    DATA_DIR: str = "data"
    AUTOLOAD: bool = True  # Load trips when the service starts

    # Playback
    BASE_INTERVAL_MS: float = 50.0  # One timeline entry per tick at 1x
    DEFAULT_SPEED: float = 1.0
    SPEED_PRESETS: List[float] = [1, 5, 10, 50, 100]

settings = Settings()
