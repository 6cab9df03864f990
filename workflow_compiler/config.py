"""Settings for the command-line driver, loaded from the environment."""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings read from ``WORKFLOW_COMPILER_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="WORKFLOW_COMPILER_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "WARNING"

    # Run the optimizer before compiling even without --optimize.
    optimize_before_compile: bool = False

    json_indent: int = 2


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
