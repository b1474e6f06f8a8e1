"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from functools import lru_cache
from pathlib import Path
from typing import List


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="opsdesk-sla", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/opsdesk",
        description="Database connection URL (async driver)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== SLA Configuration ==========
    sla_config_path: Path = Field(
        default=Path("sla_config.yaml"),
        description="Path to SLA configuration YAML file"
    )
    sla_refresh_interval: int = Field(
        default=300,
        description="Seconds between periodic SLA status refreshes (0 disables)",
        ge=0
    )
    sla_policy_cache_ttl_seconds: float = Field(
        default=300.0,
        description="Lifetime of cached SLA policy lookups (0 disables caching)",
        ge=0
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "testing", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class EntityKind(str):
    """Kinds of business entities that carry an SLA clock."""
    REQUEST = "REQUEST"
    TASK = "TASK"


class Priority(str):
    """Business priority levels."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class SlaStatus(str):
    """SLA compliance states."""
    ON_TIME = "ON_TIME"
    AT_RISK = "AT_RISK"
    OVERDUE = "OVERDUE"
    PAUSED = "PAUSED"


class PauseReason(str):
    """Reasons an SLA clock may be paused."""
    MEETING = "MEETING"
    CUSTOMER_VISIT = "CUSTOMER_VISIT"
    CLARIFICATION = "CLARIFICATION"
    MANUAL = "MANUAL"


# ========== Lists for validation ==========

VALID_ENTITY_KINDS = [EntityKind.REQUEST, EntityKind.TASK]
VALID_PRIORITIES = [
    Priority.LOW, Priority.MEDIUM,
    Priority.HIGH, Priority.URGENT
]
VALID_SLA_STATUSES = [
    SlaStatus.ON_TIME, SlaStatus.AT_RISK,
    SlaStatus.OVERDUE, SlaStatus.PAUSED
]
VALID_PAUSE_REASONS = [
    PauseReason.MEETING, PauseReason.CUSTOMER_VISIT,
    PauseReason.CLARIFICATION, PauseReason.MANUAL
]
