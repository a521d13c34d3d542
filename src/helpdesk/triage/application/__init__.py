"""
Triage Application Layer
=========================

Application layer for the ticket triage module.

Contains:
- Services: Pipeline orchestration, retrieval, audit recording
- Interfaces: Storage, config and LLM provider abstractions
- DTOs: Data transfer objects for API serialization
"""

from helpdesk.triage.application.dto import (
    CreateTicketRequest,
    ReplyRequest,
    AssignRequest,
    ConfigUpdateRequest,
    TicketResponse,
    TicketDetailResponse,
    TicketReplyResponse,
    AgentSuggestionResponse,
    AuditLogResponse,
    ConfigResponse,
    TriageResponse,
    MessageResponse,
    CreateArticleRequest,
    UpdateArticleRequest,
    ArticleResponse,
    DashboardStatsResponse,
)
from helpdesk.triage.application.services import (
    IConfigProvider,
    IHelpdeskStorage,
    ILLMProvider,
    AuditLogWriter,
    KnowledgeRetriever,
    TriageOrchestrator,
    TriageOutcome,
)

__all__ = [
    # DTOs
    "CreateTicketRequest",
    "ReplyRequest",
    "AssignRequest",
    "ConfigUpdateRequest",
    "TicketResponse",
    "TicketDetailResponse",
    "TicketReplyResponse",
    "AgentSuggestionResponse",
    "AuditLogResponse",
    "ConfigResponse",
    "TriageResponse",
    "MessageResponse",
    "CreateArticleRequest",
    "UpdateArticleRequest",
    "ArticleResponse",
    "DashboardStatsResponse",
    # Services
    "AuditLogWriter",
    "KnowledgeRetriever",
    "TriageOrchestrator",
    "TriageOutcome",
    # Collaborator Interfaces
    "IConfigProvider",
    "IHelpdeskStorage",
    "ILLMProvider",
]
