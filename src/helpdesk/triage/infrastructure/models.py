"""
Triage Infrastructure Models
=============================

SQLAlchemy ORM models for the triage module.

Append-only tables (suggestions, replies, audit logs) carry an integer
`seq` primary key so creation order survives identical timestamps.
"""

from datetime import datetime, timezone
from typing import Optional, List

from sqlalchemy import String, DateTime, Integer, Float, Text, Boolean, JSON, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from helpdesk.infrastructure.database import Base
from helpdesk.config import TicketCategory, TicketStatus, ArticleStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TicketModel(Base):
    """Database model for the Ticket entity."""
    __tablename__ = "tickets"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)

    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(20), nullable=False, default=TicketCategory.OTHER)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TicketStatus.OPEN, index=True
    )

    created_by: Mapped[str] = mapped_column(String(64), nullable=False)
    assignee: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    agent_suggestion_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    attachment_urls: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )


class ArticleModel(Base):
    """Database model for knowledge-base articles."""
    __tablename__ = "articles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)

    title: Mapped[str] = mapped_column(String(500), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    tags: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ArticleStatus.DRAFT, index=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )


class AgentSuggestionModel(Base):
    """
    Database model for AgentSuggestion.

    Rows are never updated.
    """
    __tablename__ = "agent_suggestions"

    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(36), unique=True, nullable=False)

    ticket_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("tickets.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    predicted_category: Mapped[str] = mapped_column(String(20), nullable=False)
    article_ids: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    draft_reply: Mapped[str] = mapped_column(Text, nullable=False)
    confidence: Mapped[float] = mapped_column(Float, nullable=False)
    auto_closed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    model_info: Mapped[dict] = mapped_column(JSON, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )


class TicketReplyModel(Base):
    """Database model for ticket replies."""
    __tablename__ = "ticket_replies"

    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(36), unique=True, nullable=False)

    ticket_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("tickets.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    author_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    author_type: Mapped[str] = mapped_column(String(20), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )


class AuditLogModel(Base):
    """
    Database model for audit trail entries.

    `ticket_id` has no foreign key: failed runs for unknown tickets are
    still recorded against the requested ID.
    """
    __tablename__ = "audit_logs"

    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(36), unique=True, nullable=False)

    ticket_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    trace_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    actor: Mapped[str] = mapped_column(String(20), nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    meta: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )


class TriageConfigModel(Base):
    """Singleton row holding the triage policy."""
    __tablename__ = "triage_config"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    auto_close_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    confidence_threshold: Mapped[float] = mapped_column(Float, nullable=False, default=0.78)
    sla_hours: Mapped[float] = mapped_column(Float, nullable=False, default=24)
