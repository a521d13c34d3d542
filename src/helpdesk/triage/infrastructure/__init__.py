"""
Triage Infrastructure Layer
============================

Infrastructure implementations for ticket triage module.

Contains:
- Models: SQLAlchemy ORM models
- Repositories: In-memory and SQLAlchemy storage
- External: LLM provider adapters
- Dispatcher: Background triage workers
- Seed: Starter knowledge base
"""

from helpdesk.triage.infrastructure.models import (
    TicketModel,
    ArticleModel,
    AgentSuggestionModel,
    TicketReplyModel,
    AuditLogModel,
    TriageConfigModel,
)
from helpdesk.triage.infrastructure.repositories import (
    InMemoryHelpdeskStorage,
    SQLAlchemyHelpdeskStorage,
)
from helpdesk.triage.infrastructure.external import (
    StubLLMProvider,
    get_llm_provider,
)
from helpdesk.triage.infrastructure.dispatcher import TriageDispatcher
from helpdesk.triage.infrastructure.seed import DEFAULT_ARTICLES, seed_knowledge_base

__all__ = [
    "TicketModel",
    "ArticleModel",
    "AgentSuggestionModel",
    "TicketReplyModel",
    "AuditLogModel",
    "TriageConfigModel",
    "InMemoryHelpdeskStorage",
    "SQLAlchemyHelpdeskStorage",
    "StubLLMProvider",
    "get_llm_provider",
    "TriageDispatcher",
    "DEFAULT_ARTICLES",
    "seed_knowledge_base",
]
