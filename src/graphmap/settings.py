"""
graphmap runtime settings.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables (``GRAPHMAP_*``)."""

    model_config = SettingsConfigDict(
        env_prefix="GRAPHMAP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")

    # Viewport used when no container size is given
    viewport_width: float = Field(default=960.0, description="Default viewport width in pixels")
    viewport_height: float = Field(default=640.0, description="Default viewport height in pixels")

    # Simulation
    max_ticks: int = Field(default=1000, description="Upper bound on ticks when running a layout headless")
    seed: int = Field(default=0, description="Seed for the simulation's jiggle generator")

    # Tour
    skip_tour: bool = Field(default=False, description="Never auto-start the guided tour")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
