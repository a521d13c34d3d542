"""
In-memory storage tests for ticket listing, dashboard counts and KB maintenance
"""
from datetime import datetime, timedelta, timezone

import pytest

from helpdesk.config import ArticleStatus, TicketCategory, TicketStatus
from helpdesk.core import ValidationException
from helpdesk.triage.domain import DashboardStats


class TestListTickets:

    @pytest.mark.asyncio
    async def test_newest_first(self, storage, make_ticket):
        base = datetime(2024, 1, 1, tzinfo=timezone.utc)
        older = await make_ticket(created_at=base)
        newer = await make_ticket(created_at=base + timedelta(minutes=5))

        tickets = await storage.list_tickets()

        assert [t.id for t in tickets] == [newer.id, older.id]

    @pytest.mark.asyncio
    async def test_filters_combine(self, storage, make_ticket):
        match = await make_ticket(category=TicketCategory.BILLING, status=TicketStatus.WAITING_HUMAN)
        await make_ticket(category=TicketCategory.BILLING)
        await make_ticket(category=TicketCategory.TECH, status=TicketStatus.WAITING_HUMAN)

        tickets = await storage.list_tickets(
            status=TicketStatus.WAITING_HUMAN, category=TicketCategory.BILLING, created_by="user-1"
        )

        assert [t.id for t in tickets] == [match.id]
        assert await storage.list_tickets(created_by="someone-else") == []

    @pytest.mark.asyncio
    async def test_returns_copies(self, storage, make_ticket):
        ticket = await make_ticket()

        (await storage.list_tickets())[0].status = TicketStatus.CLOSED

        assert (await storage.get_ticket(ticket.id)).status == TicketStatus.OPEN


class TestDashboardStats:

    @pytest.mark.asyncio
    async def test_empty(self, storage):
        assert await storage.get_dashboard_stats() == DashboardStats(0, 0, 0)

    @pytest.mark.asyncio
    async def test_counts(self, storage, make_ticket):
        await make_ticket()
        await make_ticket(status=TicketStatus.TRIAGED)
        await make_ticket(status=TicketStatus.RESOLVED, agent_suggestion_id="s-1")
        await make_ticket(status=TicketStatus.RESOLVED)
        await make_ticket(status=TicketStatus.CLOSED, agent_suggestion_id="s-2")

        stats = await storage.get_dashboard_stats()

        assert stats == DashboardStats(total_tickets=5, open_tickets=2, auto_resolved=1)


class TestArticleMaintenance:

    @pytest.mark.asyncio
    async def test_update_is_partial(self, storage, make_article):
        article = await storage.create_article(make_article("Returns", "Old body", ["returns"]))

        updated = await storage.update_article(article.id, body="New body")

        assert updated.title == "Returns"
        assert updated.body == "New body"
        assert updated.tags == ["returns"]
        assert (await storage.get_article(article.id)).body == "New body"

    @pytest.mark.asyncio
    async def test_unpublishing_hides_from_search(self, storage, make_article):
        article = await storage.create_article(make_article("Returns"))

        await storage.update_article(article.id, status=ArticleStatus.DRAFT)

        assert await storage.search_kb("returns") == []

    @pytest.mark.asyncio
    async def test_update_validation(self, storage, make_article):
        article = await storage.create_article(make_article("Returns"))

        assert await storage.update_article("missing", title="x") is None
        with pytest.raises(ValidationException):
            await storage.update_article(article.id, status="archived")

    @pytest.mark.asyncio
    async def test_delete(self, storage, make_article):
        article = await storage.create_article(make_article("Returns"))

        assert await storage.delete_article(article.id) is True
        assert await storage.delete_article(article.id) is False
        assert await storage.list_articles() == []

    @pytest.mark.asyncio
    async def test_list_applies_status_and_query(self, storage, make_article):
        draft = await storage.create_article(
            make_article("Refund policy", status=ArticleStatus.DRAFT)
        )
        await storage.create_article(make_article("Refund steps"))
        await storage.create_article(make_article("Shipping", status=ArticleStatus.DRAFT))

        found = await storage.list_articles(status=ArticleStatus.DRAFT, query="refund")

        assert [a.id for a in found] == [draft.id]
