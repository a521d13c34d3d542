"""
SQLAlchemy storage tests against a temporary SQLite database
"""
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine

from helpdesk.config import (
    ArticleStatus, AuditAction, Actor, AuthorType, TicketCategory, TicketStatus
)
from helpdesk.core import ValidationException
from helpdesk.infrastructure.database import build_session_maker, create_tables
from helpdesk.triage.application import TriageOrchestrator
from helpdesk.triage.domain import (
    AgentSuggestion,
    Article,
    AuditLogEntry,
    DashboardStats,
    ModelInfo,
    Ticket,
    TicketReply,
    TriageConfig,
    TriageErrorMeta,
    TriageStartedMeta,
    new_id,
)
from helpdesk.triage.infrastructure import (
    SQLAlchemyHelpdeskStorage, StubLLMProvider, seed_knowledge_base
)


@pytest_asyncio.fixture
async def sql_storage(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'helpdesk.db'}")
    await create_tables(engine)
    yield SQLAlchemyHelpdeskStorage(
        build_session_maker(engine), TriageConfig(confidence_threshold=0.6)
    )
    await engine.dispose()


async def _ticket(storage, **kwargs) -> Ticket:
    fields = {"title": "Refund", "description": "my last charge please", "created_by": "u-1"}
    fields.update(kwargs)
    return await storage.create_ticket(Ticket(id=new_id(), **fields))


def _suggestion(ticket_id: str, auto_closed: bool = False) -> AgentSuggestion:
    return AgentSuggestion(
        id=new_id(),
        ticket_id=ticket_id,
        predicted_category="billing",
        article_ids=("a-1", "a-2"),
        draft_reply="Hello",
        confidence=0.88,
        auto_closed=auto_closed,
        model_info=ModelInfo("stub", "deterministic-v1.0", "1.0", 3),
    )


class TestTickets:

    @pytest.mark.asyncio
    async def test_create_and_get(self, sql_storage):
        created = await _ticket(sql_storage, attachment_urls=["https://files/1.png"])

        loaded = await sql_storage.get_ticket(created.id)

        assert loaded.title == "Refund"
        assert loaded.status == TicketStatus.OPEN
        assert loaded.attachment_urls == ["https://files/1.png"]
        assert loaded.created_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_get_missing(self, sql_storage):
        assert await sql_storage.get_ticket("missing") is None

    @pytest.mark.asyncio
    async def test_partial_update(self, sql_storage):
        created = await _ticket(sql_storage)

        updated = await sql_storage.update_ticket(
            created.id, status=TicketStatus.WAITING_HUMAN, category="billing"
        )

        assert updated.status == TicketStatus.WAITING_HUMAN
        assert updated.category == "billing"
        assert updated.title == created.title
        assert (await sql_storage.get_ticket(created.id)).status == TicketStatus.WAITING_HUMAN

    @pytest.mark.asyncio
    async def test_update_missing_returns_none(self, sql_storage):
        assert await sql_storage.update_ticket("missing", status=TicketStatus.RESOLVED) is None

    @pytest.mark.asyncio
    async def test_update_rejects_unknown_fields(self, sql_storage):
        created = await _ticket(sql_storage)

        with pytest.raises(ValidationException):
            await sql_storage.update_ticket(created.id, priority="high")

    @pytest.mark.asyncio
    async def test_update_rejects_invalid_status(self, sql_storage):
        created = await _ticket(sql_storage)

        with pytest.raises(ValidationException):
            await sql_storage.update_ticket(created.id, status="archived")

    @pytest.mark.asyncio
    async def test_list_filters_newest_first(self, sql_storage):
        base = datetime(2024, 1, 1, tzinfo=timezone.utc)
        older = await _ticket(sql_storage, category=TicketCategory.BILLING, created_at=base)
        newer = await _ticket(
            sql_storage, category=TicketCategory.BILLING, created_at=base + timedelta(hours=1)
        )
        await _ticket(sql_storage, category=TicketCategory.TECH, created_by="u-2")

        billing = await sql_storage.list_tickets(category=TicketCategory.BILLING)
        mine = await sql_storage.list_tickets(created_by="u-2")
        none_open = await sql_storage.list_tickets(status=TicketStatus.RESOLVED)

        assert [t.id for t in billing] == [newer.id, older.id]
        assert [t.category for t in mine] == [TicketCategory.TECH]
        assert none_open == []

    @pytest.mark.asyncio
    async def test_dashboard_stats(self, sql_storage):
        await _ticket(sql_storage)
        await _ticket(sql_storage, status=TicketStatus.WAITING_HUMAN)
        await _ticket(sql_storage, status=TicketStatus.RESOLVED, agent_suggestion_id="s-1")
        await _ticket(sql_storage, status=TicketStatus.RESOLVED)
        await _ticket(sql_storage, status=TicketStatus.CLOSED)

        stats = await sql_storage.get_dashboard_stats()

        assert stats == DashboardStats(total_tickets=5, open_tickets=2, auto_resolved=1)


class TestKnowledgeBase:

    @pytest.mark.asyncio
    async def test_search_matches_title_body_and_tags(self, sql_storage):
        by_title = await sql_storage.create_article(Article(
            id=new_id(), title="Warranty claims", body="Steps", status=ArticleStatus.PUBLISHED
        ))
        by_tag = await sql_storage.create_article(Article(
            id=new_id(), title="Returns", body="Send it back",
            tags=["warranty"], status=ArticleStatus.PUBLISHED
        ))
        await sql_storage.create_article(Article(
            id=new_id(), title="Warranty draft", body="", status=ArticleStatus.DRAFT
        ))
        await sql_storage.create_article(Article(
            id=new_id(), title="Shipping", body="Carriers", status=ArticleStatus.PUBLISHED
        ))

        found = await sql_storage.search_kb("warranty claim")

        assert {a.id for a in found} == {by_title.id, by_tag.id}

    @pytest.mark.asyncio
    async def test_underscore_in_keyword_is_literal(self, sql_storage):
        exact = await sql_storage.create_article(Article(
            id=new_id(), title="gift_card rules", body="", status=ArticleStatus.PUBLISHED
        ))
        await sql_storage.create_article(Article(
            id=new_id(), title="giftXcard rules", body="", status=ArticleStatus.PUBLISHED
        ))

        found = await sql_storage.search_kb("gift_card")

        assert [a.id for a in found] == [exact.id]

    @pytest.mark.asyncio
    async def test_list_articles_applies_status_and_query(self, sql_storage):
        draft = await sql_storage.create_article(Article(
            id=new_id(), title="Refund policy", body="Draft", status=ArticleStatus.DRAFT
        ))
        await sql_storage.create_article(Article(
            id=new_id(), title="Refund steps", body="Live", status=ArticleStatus.PUBLISHED
        ))

        found = await sql_storage.list_articles(status=ArticleStatus.DRAFT, query="refund")

        assert [a.id for a in found] == [draft.id]

    @pytest.mark.asyncio
    async def test_update_article(self, sql_storage):
        article = await sql_storage.create_article(Article(
            id=new_id(), title="Returns", body="Old", status=ArticleStatus.DRAFT
        ))

        updated = await sql_storage.update_article(
            article.id, body="New", tags=["returns"], status=ArticleStatus.PUBLISHED
        )

        assert (updated.title, updated.body, updated.tags) == ("Returns", "New", ["returns"])
        assert updated.updated_at >= article.updated_at
        assert [a.id for a in await sql_storage.search_kb("returns")] == [article.id]

    @pytest.mark.asyncio
    async def test_update_article_validation(self, sql_storage):
        article = await sql_storage.create_article(Article(id=new_id(), title="Returns", body="x"))

        assert await sql_storage.update_article("missing", title="x") is None
        with pytest.raises(ValidationException):
            await sql_storage.update_article(article.id, status="archived")
        with pytest.raises(ValidationException):
            await sql_storage.update_article(article.id, author="me")

    @pytest.mark.asyncio
    async def test_delete_article(self, sql_storage):
        article = await sql_storage.create_article(Article(id=new_id(), title="Returns", body="x"))

        assert await sql_storage.delete_article(article.id) is True
        assert await sql_storage.delete_article(article.id) is False
        assert await sql_storage.get_article(article.id) is None

    @pytest.mark.asyncio
    async def test_seed_is_idempotent(self, sql_storage):
        first = await seed_knowledge_base(sql_storage)
        second = await seed_knowledge_base(sql_storage)

        assert len(first) == 3
        assert second == []
        assert len(await sql_storage.list_articles(status=ArticleStatus.PUBLISHED)) == 3


class TestConfig:

    @pytest.mark.asyncio
    async def test_defaults_materialized(self, sql_storage):
        config = await sql_storage.get_config()

        assert config == TriageConfig(confidence_threshold=0.6)

    @pytest.mark.asyncio
    async def test_partial_update(self, sql_storage):
        updated = await sql_storage.update_config(confidence_threshold=0.9)

        assert updated.confidence_threshold == 0.9
        assert updated.auto_close_enabled is True
        assert await sql_storage.get_config() == updated

    @pytest.mark.asyncio
    async def test_invalid_update(self, sql_storage):
        with pytest.raises(ValidationException):
            await sql_storage.update_config(confidence_threshold=2.0)

        assert (await sql_storage.get_config()).confidence_threshold == 0.6


class TestAppendOnlyRecords:

    @pytest.mark.asyncio
    async def test_suggestions_in_creation_order(self, sql_storage):
        ticket = await _ticket(sql_storage)
        first = await sql_storage.create_agent_suggestion(_suggestion(ticket.id))
        second = await sql_storage.create_agent_suggestion(_suggestion(ticket.id, auto_closed=True))

        listed = await sql_storage.list_agent_suggestions(ticket.id)

        assert [s.id for s in listed] == [first.id, second.id]
        assert listed[0].article_ids == ("a-1", "a-2")
        assert listed[0].model_info == first.model_info
        assert (await sql_storage.get_agent_suggestion(second.id)).auto_closed is True

    @pytest.mark.asyncio
    async def test_replies(self, sql_storage):
        ticket = await _ticket(sql_storage)
        reply = TicketReply(
            id=new_id(), ticket_id=ticket.id, author_type=AuthorType.SYSTEM, content="Done"
        )
        await sql_storage.create_ticket_reply(reply)

        replies = await sql_storage.list_ticket_replies(ticket.id)

        assert [r.id for r in replies] == [reply.id]
        assert replies[0].is_system

    @pytest.mark.asyncio
    async def test_audit_filters_and_order(self, sql_storage):
        ticket = await _ticket(sql_storage)
        entries = [
            AuditLogEntry.create(ticket.id, "trace-1", Actor.SYSTEM, TriageStartedMeta(ticket_id=ticket.id)),
            AuditLogEntry.create(ticket.id, "trace-1", Actor.SYSTEM, TriageErrorMeta(error="boom")),
            AuditLogEntry.create(ticket.id, "trace-2", Actor.SYSTEM, TriageStartedMeta(ticket_id=ticket.id)),
        ]
        for entry in entries:
            await sql_storage.create_audit_log(entry)

        by_trace = await sql_storage.list_audit_logs(trace_id="trace-1")
        by_ticket = await sql_storage.list_audit_logs(ticket_id=ticket.id)

        assert [e.id for e in by_trace] == [entries[0].id, entries[1].id]
        assert [e.id for e in by_ticket] == [e.id for e in entries]
        assert by_trace[1].typed_meta == TriageErrorMeta(error="boom")

    @pytest.mark.asyncio
    async def test_audit_for_unknown_ticket(self, sql_storage):
        entry = AuditLogEntry.create("ghost", "trace-x", Actor.SYSTEM, TriageErrorMeta(error="x"))

        await sql_storage.create_audit_log(entry)

        assert [e.id for e in await sql_storage.list_audit_logs(ticket_id="ghost")] == [entry.id]


class TestPipelineOnSql:

    @pytest.mark.asyncio
    async def test_auto_close_run(self, sql_storage):
        await seed_knowledge_base(sql_storage)
        ticket = await _ticket(sql_storage)
        orchestrator = TriageOrchestrator(sql_storage, StubLLMProvider())

        outcome = await orchestrator.triage(ticket.id)

        assert outcome.auto_closed is True
        assert (await sql_storage.get_ticket(ticket.id)).status == TicketStatus.RESOLVED
        assert len(await sql_storage.list_agent_suggestions(ticket.id)) == 2
        actions = [e.action for e in await sql_storage.list_audit_logs(trace_id=outcome.trace_id)]
        assert actions[0] == AuditAction.TRIAGE_STARTED
        assert actions[-2:] == [AuditAction.AUTO_CLOSED, AuditAction.TRIAGE_COMPLETED]
