"""
Shared configuration management for the condition engine.
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="CONDITIONS_",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Observability
    trace_to_logger: bool = Field(default=False)
    enable_metrics: bool = Field(default=False)


class EngineConfig(BaseConfig):
    """Rule engine configuration."""

    component_name: str = Field(default="conditions")

    # Distinct path strings kept in the normalization cache before it resets
    path_cache_size: int = Field(default=500, ge=1)

    # Aggregation policy for normal rules when a rule set does not name one
    default_satisfy: str = Field(default="ANY")

    @field_validator("default_satisfy")
    @classmethod
    def _check_satisfy(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in ("ALL", "ANY"):
            raise ValueError(f"default_satisfy must be ALL or ANY, got {value!r}")
        return normalized

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in ("debug", "info", "warning", "error", "critical"):
            raise ValueError(f"Unknown log level {value!r}")
        return normalized


def get_config(**overrides) -> EngineConfig:
    """Get engine configuration, with explicit overrides taking precedence over the environment."""
    return EngineConfig(**overrides)
