"""
Triage Application DTOs
========================

Data Transfer Objects for the Triage API layer.

Pydantic models for request/response validation.
"""

from pydantic import BaseModel, Field, field_validator
from typing import List, Optional, Dict, Any, Literal
from datetime import datetime

from helpdesk.triage.domain import (
    AgentSuggestion, Article, AuditLogEntry, DashboardStats, Ticket, TicketReply, TriageConfig
)


# ========== Type Aliases for Literals ==========
CategoryStr = Literal["billing", "tech", "shipping", "other"]
TicketStatusStr = Literal["open", "triaged", "waiting_human", "resolved", "closed"]
ArticleStatusStr = Literal["draft", "published"]


# ========== Request DTOs ==========

class CreateTicketRequest(BaseModel):
    """Request model for ticket creation."""
    title: str = Field(..., min_length=1, max_length=500, description="Ticket title")
    description: str = Field(..., min_length=1, description="Ticket description")
    created_by: str = Field(..., min_length=1, description="ID of the submitting user")
    category: CategoryStr = Field(default="other", description="Category chosen by the user")
    attachment_urls: List[str] = Field(default_factory=list)

    @field_validator("description")
    @classmethod
    def validate_description_length(cls, v: str) -> str:
        """Ensure the description stays within a reasonable size."""
        if len(v) > 10000:
            raise ValueError("Description too long (max 10000 characters)")
        return v


class ReplyRequest(BaseModel):
    """Request model for an agent reply."""
    content: str = Field(..., min_length=1, description="Reply text")
    agent_id: Optional[str] = Field(None, description="Replying agent")
    status: Optional[TicketStatusStr] = Field(None, description="New ticket status")


class AssignRequest(BaseModel):
    """Request model for assigning a ticket to an agent."""
    assignee_id: str = Field(..., min_length=1)
    assigned_by: Optional[str] = None


class ConfigUpdateRequest(BaseModel):
    """Partial update of the triage config."""
    auto_close_enabled: Optional[bool] = None
    confidence_threshold: Optional[float] = Field(None, ge=0.0, le=1.0)
    sla_hours: Optional[float] = Field(None, gt=0)


# ========== Response DTOs ==========

class TicketResponse(BaseModel):
    """Ticket as returned by the API."""
    id: str
    title: str
    description: str
    category: CategoryStr
    status: TicketStatusStr
    created_by: str
    assignee: Optional[str]
    agent_suggestion_id: Optional[str]
    attachment_urls: List[str]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, ticket: Ticket) -> "TicketResponse":
        return cls(
            id=ticket.id,
            title=ticket.title,
            description=ticket.description,
            category=ticket.category,
            status=ticket.status,
            created_by=ticket.created_by,
            assignee=ticket.assignee,
            agent_suggestion_id=ticket.agent_suggestion_id,
            attachment_urls=list(ticket.attachment_urls),
            created_at=ticket.created_at,
            updated_at=ticket.updated_at
        )


class ModelInfoResponse(BaseModel):
    provider: str
    model: str
    prompt_version: str
    latency_ms: int


class AgentSuggestionResponse(BaseModel):
    """Agent suggestion as returned by the API."""
    id: str
    ticket_id: str
    predicted_category: CategoryStr
    article_ids: List[str]
    draft_reply: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    auto_closed: bool
    model_info: ModelInfoResponse
    created_at: datetime

    @classmethod
    def from_domain(cls, suggestion: AgentSuggestion) -> "AgentSuggestionResponse":
        return cls(
            id=suggestion.id,
            ticket_id=suggestion.ticket_id,
            predicted_category=suggestion.predicted_category,
            article_ids=list(suggestion.article_ids),
            draft_reply=suggestion.draft_reply,
            confidence=suggestion.confidence,
            auto_closed=suggestion.auto_closed,
            model_info=ModelInfoResponse(**suggestion.model_info.to_dict()),
            created_at=suggestion.created_at
        )


class TicketReplyResponse(BaseModel):
    id: str
    ticket_id: str
    author_type: str
    author_id: Optional[str]
    content: str
    created_at: datetime

    @classmethod
    def from_domain(cls, reply: TicketReply) -> "TicketReplyResponse":
        return cls(
            id=reply.id,
            ticket_id=reply.ticket_id,
            author_type=reply.author_type,
            author_id=reply.author_id,
            content=reply.content,
            created_at=reply.created_at
        )


class TicketDetailResponse(TicketResponse):
    """Ticket with its current suggestion and reply thread."""
    agent_suggestion: Optional[AgentSuggestionResponse] = None
    replies: List[TicketReplyResponse] = Field(default_factory=list)


class AuditLogResponse(BaseModel):
    """One audit trail entry."""
    id: str
    ticket_id: Optional[str]
    trace_id: str
    actor: str
    action: str
    meta: Dict[str, Any]
    timestamp: datetime

    @classmethod
    def from_domain(cls, entry: AuditLogEntry) -> "AuditLogResponse":
        return cls(
            id=entry.id,
            ticket_id=entry.ticket_id,
            trace_id=entry.trace_id,
            actor=entry.actor,
            action=entry.action,
            meta=dict(entry.meta),
            timestamp=entry.timestamp
        )


class ConfigResponse(BaseModel):
    """Current triage config."""
    auto_close_enabled: bool
    confidence_threshold: float
    sla_hours: float

    @classmethod
    def from_domain(cls, config: TriageConfig) -> "ConfigResponse":
        return cls(
            auto_close_enabled=config.auto_close_enabled,
            confidence_threshold=config.confidence_threshold,
            sla_hours=config.sla_hours
        )


class TriageResponse(BaseModel):
    """Result of a manually triggered triage run."""
    message: str
    ticket_id: str
    trace_id: str
    auto_closed: bool
    agent_suggestion_id: str
    confidence: float
    threshold: float


class MessageResponse(BaseModel):
    message: str


# ========== Knowledge Base ==========

class CreateArticleRequest(BaseModel):
    """Request model for a new KB article."""
    title: str = Field(..., min_length=1, max_length=500)
    body: str = Field(..., min_length=1)
    tags: List[str] = Field(default_factory=list)
    status: ArticleStatusStr = "draft"


class ArticleResponse(BaseModel):
    """KB article as returned by the API."""
    id: str
    title: str
    body: str
    tags: List[str]
    status: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, article: Article) -> "ArticleResponse":
        return cls(
            id=article.id,
            title=article.title,
            body=article.body,
            tags=list(article.tags),
            status=article.status,
            created_at=article.created_at,
            updated_at=article.updated_at
        )


class UpdateArticleRequest(BaseModel):
    """Partial update of a KB article; omitted fields are left unchanged."""
    title: Optional[str] = Field(default=None, min_length=1, max_length=500)
    body: Optional[str] = Field(default=None, min_length=1)
    tags: Optional[List[str]] = None
    status: Optional[ArticleStatusStr] = None


# ========== Dashboard ==========

class DashboardStatsResponse(BaseModel):
    """Ticket counts for the helpdesk overview."""
    total_tickets: int
    open_tickets: int
    auto_resolved: int

    @classmethod
    def from_domain(cls, stats: DashboardStats) -> "DashboardStatsResponse":
        return cls(
            total_tickets=stats.total_tickets,
            open_tickets=stats.open_tickets,
            auto_resolved=stats.auto_resolved
        )
