"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="psa-engine", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/psa",
        description="PostgreSQL connection URL (async)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== Tenant / SLA Configuration ==========
    tenant_config_path: Path = Field(
        default=Path("tenants.yaml"),
        description="Path to the tenant ticketing configuration YAML file"
    )
    sla_evaluation_interval: int = Field(
        default=60,
        description="Seconds between SLA evaluation sweeps (0 disables the scheduler)",
        ge=0
    )
    sla_sweep_on_start: bool = Field(
        default=False,
        description="Run one SLA sweep right after startup instead of waiting a full interval"
    )
    sla_warning_threshold: float = Field(
        default=0.8,
        description="Elapsed fraction of the resolution window after which SLA is 'warning'",
        gt=0.0,
        lt=1.0
    )

    # ========== Automation ==========
    automation_max_pass_depth: int = Field(
        default=1,
        description="Maximum nested automation passes within one call chain",
        ge=1
    )
    side_effect_queue_size: int = Field(
        default=1000,
        description="Maximum pending notification/webhook calls",
        ge=1
    )

    # ========== Notifications ==========
    notification_webhook_url: Optional[str] = Field(
        default=None,
        description="Incoming webhook URL for automation notifications"
    )
    notification_channel: str = Field(
        default="#ticket-automation",
        description="Channel for automation notifications"
    )
    notification_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout for notification calls",
        ge=0.1,
        le=30
    )

    # ========== Webhooks ==========
    webhook_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout for automation webhook calls",
        ge=0.1,
        le=60
    )
    webhook_max_retries: int = Field(
        default=3,
        description="Attempts per automation webhook call",
        ge=1,
        le=10
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

class TicketSource(str, Enum):
    """How the ticket was created."""
    PORTAL = "portal"
    EMAIL = "email"
    PHONE = "phone"
    API = "api"
    CHAT = "chat"
    RMM = "rmm"
    INTERNAL = "internal"


class NoteType(str, Enum):
    """Ticket note visibility."""
    INTERNAL = "internal"
    PUBLIC = "public"
    RESOLUTION = "resolution"
    TIME_ENTRY = "time_entry"


class SLAStatus(str, Enum):
    """Derived SLA classification. Never persisted."""
    NONE = "none"
    ON_TRACK = "on_track"
    WARNING = "warning"
    BREACHED = "breached"
    MET = "met"


class AutomationTrigger(str, Enum):
    """Event classes that select eligible automation rules."""
    ON_CREATE = "on_create"
    ON_UPDATE = "on_update"
    SCHEDULED = "on_schedule"
    SLA_WARNING = "on_sla_warning"
    SLA_BREACH = "on_sla_breach"


class ActionType(str, Enum):
    """Automation action kinds."""
    SET_STATUS = "set_status"
    SET_PRIORITY = "set_priority"
    ASSIGN_TO = "assign_to"
    SET_QUEUE = "set_queue"
    ADD_NOTE = "add_note"
    SEND_NOTIFICATION = "send_notification"
    WEBHOOK = "webhook"


class ConditionOperator(str, Enum):
    """Automation condition operators (case-sensitive string comparisons)."""
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    IS_NULL = "is_null"
    IS_NOT_NULL = "is_not_null"


# Fallback SLA scaling by priority name when no explicit target exists
DEFAULT_PRIORITY_MULTIPLIERS = {
    "critical": 0.25,
    "high": 0.5,
    "medium": 1.0,
    "low": 2.0,
}
