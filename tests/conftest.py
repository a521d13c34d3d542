"""
Pytest configuration and fixtures
"""
import pytest
import pytest_asyncio

from helpdesk.config import ArticleStatus
from helpdesk.triage.application import TriageOrchestrator
from helpdesk.triage.domain import Article, Ticket, TriageConfig, new_id
from helpdesk.triage.infrastructure import (
    InMemoryHelpdeskStorage, StubLLMProvider, seed_knowledge_base
)


@pytest.fixture
def storage() -> InMemoryHelpdeskStorage:
    """Empty in-memory storage with the default triage config"""
    return InMemoryHelpdeskStorage(TriageConfig())


@pytest_asyncio.fixture
async def seeded_storage(storage) -> InMemoryHelpdeskStorage:
    """In-memory storage holding the starter KB articles"""
    await seed_knowledge_base(storage)
    return storage


@pytest.fixture
def provider() -> StubLLMProvider:
    return StubLLMProvider()


@pytest.fixture
def orchestrator(storage, provider) -> TriageOrchestrator:
    return TriageOrchestrator(storage, provider)


@pytest.fixture
def make_ticket(storage):
    """Factory persisting a ticket; defaults to the refund scenario text"""
    async def _make(
        title: str = "Refund",
        description: str = "my last charge please",
        **kwargs
    ) -> Ticket:
        return await storage.create_ticket(Ticket(
            id=new_id(),
            title=title,
            description=description,
            created_by="user-1",
            **kwargs
        ))
    return _make


@pytest.fixture
def make_article():
    """Factory for published KB articles (not persisted)"""
    def _make(title: str, body: str = "", tags=None, status: str = ArticleStatus.PUBLISHED) -> Article:
        return Article(id=new_id(), title=title, body=body, tags=list(tags or []), status=status)
    return _make
