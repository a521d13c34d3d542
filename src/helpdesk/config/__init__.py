"""
Configuration Module
====================

Application settings and configuration management using Pydantic.

Settings here are process-level (database, queue sizing, logging). The
triage policy (auto-close flag, confidence threshold, SLA hours) is a
separate, admin-editable record read from storage on every run; the values
below only seed it on first start.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from functools import lru_cache
from typing import List


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="helpdesk-triage", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Storage ==========
    storage_backend: str = Field(
        default="memory",
        description="Ticket/KB storage backend: 'memory' or 'database'"
    )
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/helpdesk",
        description="Async SQLAlchemy connection URL"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)
    seed_knowledge_base: bool = Field(
        default=True,
        description="Insert the starter KB articles when the KB is empty"
    )

    # ========== Triage policy defaults ==========
    default_auto_close_enabled: bool = Field(
        default=True,
        description="Initial auto-close flag written to the config record"
    )
    default_confidence_threshold: float = Field(
        default=0.78,
        description="Initial confidence threshold written to the config record",
        ge=0.0,
        le=1.0
    )
    default_sla_hours: float = Field(
        default=24,
        description="Initial SLA hours written to the config record",
        gt=0
    )

    # ========== Triage workers ==========
    triage_queue_size: int = Field(
        default=100,
        description="Maximum pending triage jobs before submitters wait",
        ge=1
    )
    triage_workers: int = Field(
        default=2,
        description="Number of concurrent triage workers",
        ge=1,
        le=32
    )
    llm_provider: str = Field(
        default="stub",
        description="Provider used for classify/draft"
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
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
        allowed = {"development", "test", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("storage_backend")
    @classmethod
    def validate_storage_backend(cls, v: str) -> str:
        """Ensure the storage backend is a known one."""
        allowed = {"memory", "database"}
        if v not in allowed:
            raise ValueError(f"storage_backend must be one of {allowed}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            raise ValueError(f"log_level must be one of {allowed}")
        return v.upper()


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class TicketCategory(str):
    """Ticket categories predicted by the classifier."""
    BILLING = "billing"
    TECH = "tech"
    SHIPPING = "shipping"
    OTHER = "other"


class TicketStatus(str):
    """Ticket lifecycle statuses."""
    OPEN = "open"
    TRIAGED = "triaged"
    WAITING_HUMAN = "waiting_human"
    RESOLVED = "resolved"
    CLOSED = "closed"


class ArticleStatus(str):
    """Knowledge-base article publication states."""
    DRAFT = "draft"
    PUBLISHED = "published"


class Actor(str):
    """Who produced an audit entry."""
    SYSTEM = "system"
    AGENT = "agent"
    USER = "user"


class AuthorType(str):
    """Author kinds for ticket replies."""
    USER = "user"
    AGENT = "agent"
    SYSTEM = "system"


class AuditAction(str):
    """Audit trail actions."""
    TICKET_CREATED = "TICKET_CREATED"
    TRIAGE_STARTED = "TRIAGE_STARTED"
    AGENT_CLASSIFIED = "AGENT_CLASSIFIED"
    KB_RETRIEVED = "KB_RETRIEVED"
    DRAFT_GENERATED = "DRAFT_GENERATED"
    AUTO_CLOSED = "AUTO_CLOSED"
    ASSIGNED_TO_HUMAN = "ASSIGNED_TO_HUMAN"
    TRIAGE_COMPLETED = "TRIAGE_COMPLETED"
    TRIAGE_ERROR = "TRIAGE_ERROR"
    REPLY_SENT = "REPLY_SENT"
    TICKET_ASSIGNED = "TICKET_ASSIGNED"


# ========== Lists for validation ==========

VALID_CATEGORIES = [
    TicketCategory.BILLING, TicketCategory.TECH,
    TicketCategory.SHIPPING, TicketCategory.OTHER
]
VALID_STATUSES = [
    TicketStatus.OPEN, TicketStatus.TRIAGED, TicketStatus.WAITING_HUMAN,
    TicketStatus.RESOLVED, TicketStatus.CLOSED
]
VALID_ARTICLE_STATUSES = [ArticleStatus.DRAFT, ArticleStatus.PUBLISHED]
VALID_ACTORS = [Actor.SYSTEM, Actor.AGENT, Actor.USER]
VALID_AUTHOR_TYPES = [AuthorType.USER, AuthorType.AGENT, AuthorType.SYSTEM]
