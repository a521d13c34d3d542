"""
Triage Domain Entities
======================

Domain entities for the ticket triage module.

Contains pure Python business objects: tickets, knowledge-base articles,
agent suggestions, replies, the triage policy record, and the value
objects produced by the classifier, retriever and drafter.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Optional, List, Tuple

from helpdesk.config import (
    TicketCategory, TicketStatus, ArticleStatus, AuthorType,
    VALID_AUTHOR_TYPES, VALID_CATEGORIES
)


def new_id() -> str:
    """Generate a new entity identifier."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Ticket:
    """
    Support ticket.

    Status and category change only through the triage orchestrator or an
    explicit agent reply/assign action.
    """
    id: str
    title: str
    description: str
    created_by: str
    category: str = TicketCategory.OTHER
    status: str = TicketStatus.OPEN
    assignee: Optional[str] = None
    agent_suggestion_id: Optional[str] = None
    attachment_urls: List[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def triage_text(self) -> str:
        """Text fed to the classifier, retriever and drafter."""
        return f"{self.title} {self.description}"


@dataclass
class Article:
    """Knowledge-base article."""
    id: str
    title: str
    body: str
    tags: List[str] = field(default_factory=list)
    status: str = ArticleStatus.DRAFT
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def is_published(self) -> bool:
        return self.status == ArticleStatus.PUBLISHED

    @property
    def searchable_text(self) -> str:
        return f"{self.title} {self.body}"


@dataclass(frozen=True)
class ModelInfo:
    """Provider metadata attached to every agent suggestion."""
    provider: str
    model: str
    prompt_version: str
    latency_ms: int

    def to_dict(self) -> dict:
        return {
            "provider": self.provider,
            "model": self.model,
            "prompt_version": self.prompt_version,
            "latency_ms": self.latency_ms,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ModelInfo":
        return cls(
            provider=data["provider"],
            model=data["model"],
            prompt_version=data["prompt_version"],
            latency_ms=int(data["latency_ms"]),
        )


@dataclass(frozen=True)
class AgentSuggestion:
    """
    Output of one triage run for a ticket.

    Immutable once created. Re-running triage adds new suggestions; the
    ticket points at the first suggestion of its most recent run.
    """
    id: str
    ticket_id: str
    predicted_category: str
    article_ids: Tuple[str, ...]
    draft_reply: str
    confidence: float
    auto_closed: bool
    model_info: ModelInfo
    created_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class TicketReply:
    """A reply on a ticket thread, written by a user, agent or the system."""
    id: str
    ticket_id: str
    author_type: str
    content: str
    author_id: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        if self.author_type not in VALID_AUTHOR_TYPES:
            raise ValueError(f"Unknown author type: {self.author_type}")

    @property
    def is_system(self) -> bool:
        return self.author_type == AuthorType.SYSTEM


@dataclass(frozen=True)
class TriageConfig:
    """
    Admin-editable triage policy.

    A single record; the orchestrator reads it fresh on every run.
    """
    auto_close_enabled: bool = True
    confidence_threshold: float = 0.78
    sla_hours: float = 24

    def __post_init__(self):
        if not 0.0 <= self.confidence_threshold <= 1.0:
            raise ValueError("Confidence threshold must be between 0 and 1")
        if self.sla_hours <= 0:
            raise ValueError("SLA hours must be positive")


@dataclass(frozen=True)
class ClassificationResult:
    """Category and confidence assigned to ticket text."""
    predicted_category: str
    confidence: float  # 0.0 to 1.0

    def __post_init__(self):
        if self.predicted_category not in VALID_CATEGORIES:
            raise ValueError(f"Unknown category: {self.predicted_category}")
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError("Confidence must be between 0 and 1")


@dataclass(frozen=True)
class DraftResult:
    """Drafted reply and the KB article IDs it cites."""
    draft_reply: str
    citations: Tuple[str, ...] = ()


@dataclass(frozen=True)
class RetrievedArticle:
    """A knowledge-base article with its relevance score for a query."""
    article: Article
    score: float

    @property
    def id(self) -> str:
        return self.article.id


OPEN_STATUSES = (TicketStatus.OPEN, TicketStatus.TRIAGED, TicketStatus.WAITING_HUMAN)


@dataclass(frozen=True)
class DashboardStats:
    """
    Ticket counts for the helpdesk overview.

    A ticket counts as auto-resolved when it is resolved and carries an
    agent suggestion.
    """
    total_tickets: int
    open_tickets: int
    auto_resolved: int

    @classmethod
    def from_tickets(cls, tickets: Iterable[Ticket]) -> "DashboardStats":
        tickets = list(tickets)
        return cls(
            total_tickets=len(tickets),
            open_tickets=sum(1 for t in tickets if t.status in OPEN_STATUSES),
            auto_resolved=sum(
                1 for t in tickets
                if t.status == TicketStatus.RESOLVED and t.agent_suggestion_id
            ),
        )
