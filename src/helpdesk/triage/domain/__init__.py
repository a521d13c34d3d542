"""
Triage Domain Layer
===================

Domain layer for the ticket triage module.

Contains:
- Entities: Ticket, Article, AgentSuggestion, TicketReply, TriageConfig
- Value Objects: ClassificationResult, DraftResult, RetrievedArticle, ModelInfo,
  DashboardStats
- Audit trail: AuditLogEntry and per-action payloads
- Domain services: relevance scoring, decision policy

This layer is framework-agnostic and contains pure business logic.
"""

from helpdesk.triage.domain.entities import (
    Ticket,
    Article,
    AgentSuggestion,
    TicketReply,
    TriageConfig,
    ModelInfo,
    ClassificationResult,
    DraftResult,
    RetrievedArticle,
    DashboardStats,
    new_id,
    utcnow,
)
from helpdesk.triage.domain.audit import (
    AuditLogEntry,
    AuditMeta,
    TicketCreatedMeta,
    TriageStartedMeta,
    AgentClassifiedMeta,
    KBRetrievedMeta,
    DraftGeneratedMeta,
    AutoClosedMeta,
    AssignedToHumanMeta,
    TriageCompletedMeta,
    TriageErrorMeta,
    ReplySentMeta,
    TicketAssignedMeta,
    parse_meta,
)
from helpdesk.triage.domain.scoring import calculate_relevance_score, extract_keywords
from helpdesk.triage.domain.policy import decide, ASSIGN_REASON_LOW_CONFIDENCE

__all__ = [
    "Ticket",
    "Article",
    "AgentSuggestion",
    "TicketReply",
    "TriageConfig",
    "ModelInfo",
    "ClassificationResult",
    "DraftResult",
    "RetrievedArticle",
    "DashboardStats",
    "new_id",
    "utcnow",
    "AuditLogEntry",
    "AuditMeta",
    "TicketCreatedMeta",
    "TriageStartedMeta",
    "AgentClassifiedMeta",
    "KBRetrievedMeta",
    "DraftGeneratedMeta",
    "AutoClosedMeta",
    "AssignedToHumanMeta",
    "TriageCompletedMeta",
    "TriageErrorMeta",
    "ReplySentMeta",
    "TicketAssignedMeta",
    "parse_meta",
    "calculate_relevance_score",
    "extract_keywords",
    "decide",
    "ASSIGN_REASON_LOW_CONFIDENCE",
]
