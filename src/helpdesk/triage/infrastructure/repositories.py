"""
Triage Infrastructure Repositories
====================================

Implementations of IHelpdeskStorage.

- InMemoryHelpdeskStorage: dict-backed, for local runs and tests
- SQLAlchemyHelpdeskStorage: async SQLAlchemy, PostgreSQL or SQLite

Each SQLAlchemy call runs in its own short transaction, so audit entries
written before a failing pipeline step stay committed.
"""

from contextlib import asynccontextmanager
from copy import deepcopy
from dataclasses import replace
from datetime import datetime, timezone
from typing import AsyncIterator, Dict, List, Optional

from sqlalchemy import String, cast, delete, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from helpdesk.config import (
    ArticleStatus, TicketStatus, VALID_ARTICLE_STATUSES, VALID_CATEGORIES, VALID_STATUSES
)
from helpdesk.core import PersistenceException, RepositoryException, ValidationException
from helpdesk.shared.infrastructure.logging import get_logger
from helpdesk.triage.application import IHelpdeskStorage
from helpdesk.triage.domain import (
    AgentSuggestion,
    Article,
    AuditLogEntry,
    DashboardStats,
    ModelInfo,
    Ticket,
    TicketReply,
    TriageConfig,
    extract_keywords,
    utcnow,
)
from helpdesk.triage.domain.entities import OPEN_STATUSES
from helpdesk.triage.infrastructure.models import (
    AgentSuggestionModel,
    ArticleModel,
    AuditLogModel,
    TicketModel,
    TicketReplyModel,
    TriageConfigModel,
)

logger = get_logger(__name__)

UPDATABLE_TICKET_FIELDS = frozenset({
    "title", "description", "category", "status",
    "assignee", "agent_suggestion_id", "attachment_urls",
})
UPDATABLE_ARTICLE_FIELDS = frozenset({"title", "body", "tags", "status"})
CONFIG_FIELDS = frozenset({"auto_close_enabled", "confidence_threshold", "sla_hours"})
CONFIG_ROW_ID = 1


def _validate_ticket_fields(fields: dict) -> None:
    unknown = set(fields) - UPDATABLE_TICKET_FIELDS
    if unknown:
        raise ValidationException(
            f"Unknown ticket fields: {', '.join(sorted(unknown))}",
            {"fields": sorted(unknown)}
        )
    if "status" in fields and fields["status"] not in VALID_STATUSES:
        raise ValidationException(f"Invalid status: {fields['status']}")
    if "category" in fields and fields["category"] not in VALID_CATEGORIES:
        raise ValidationException(f"Invalid category: {fields['category']}")


def _validate_article_fields(fields: dict) -> None:
    unknown = set(fields) - UPDATABLE_ARTICLE_FIELDS
    if unknown:
        raise ValidationException(
            f"Unknown article fields: {', '.join(sorted(unknown))}",
            {"fields": sorted(unknown)}
        )
    if "status" in fields and fields["status"] not in VALID_ARTICLE_STATUSES:
        raise ValidationException(f"Invalid article status: {fields['status']}")


def _merge_config(current: TriageConfig, fields: dict) -> TriageConfig:
    unknown = set(fields) - CONFIG_FIELDS
    if unknown:
        raise ValidationException(
            f"Unknown config fields: {', '.join(sorted(unknown))}",
            {"fields": sorted(unknown)}
        )
    updates = {k: v for k, v in fields.items() if v is not None}
    try:
        return replace(current, **updates)
    except ValueError as e:
        raise ValidationException(str(e), updates)


def _matches_keywords(article: Article, keywords: List[str]) -> bool:
    title = article.title.lower()
    body = article.body.lower()
    tags = [tag.lower() for tag in article.tags]
    return any(
        kw in title or kw in body or any(kw in tag for tag in tags)
        for kw in keywords
    )


class InMemoryHelpdeskStorage(IHelpdeskStorage):
    """
    Process-local storage.

    Returned tickets and articles are copies; mutating them does not change
    stored state.
    """

    def __init__(self, config: Optional[TriageConfig] = None):
        self._config = config or TriageConfig()
        self._tickets: Dict[str, Ticket] = {}
        self._articles: Dict[str, Article] = {}
        self._suggestions: List[AgentSuggestion] = []
        self._replies: List[TicketReply] = []
        self._audit_logs: List[AuditLogEntry] = []

    # Tickets
    async def get_ticket(self, ticket_id: str) -> Optional[Ticket]:
        ticket = self._tickets.get(ticket_id)
        return replace(ticket) if ticket else None

    async def create_ticket(self, ticket: Ticket) -> Ticket:
        if ticket.id in self._tickets:
            raise RepositoryException(f"Ticket {ticket.id} already exists")
        self._tickets[ticket.id] = replace(ticket, attachment_urls=list(ticket.attachment_urls))
        return replace(ticket)

    async def update_ticket(self, ticket_id: str, **fields) -> Optional[Ticket]:
        _validate_ticket_fields(fields)
        ticket = self._tickets.get(ticket_id)
        if ticket is None:
            return None
        updated = replace(ticket, **fields, updated_at=utcnow())
        self._tickets[ticket_id] = updated
        return replace(updated)

    async def list_tickets(
        self,
        status: Optional[str] = None,
        category: Optional[str] = None,
        created_by: Optional[str] = None
    ) -> List[Ticket]:
        tickets = [
            t for t in self._tickets.values()
            if (status is None or t.status == status)
            and (category is None or t.category == category)
            and (created_by is None or t.created_by == created_by)
        ]
        tickets.sort(key=lambda t: t.created_at, reverse=True)
        return [replace(t) for t in tickets]

    async def get_dashboard_stats(self) -> DashboardStats:
        return DashboardStats.from_tickets(self._tickets.values())

    # Knowledge base
    async def search_kb(self, query: str) -> List[Article]:
        return await self.list_articles(status=ArticleStatus.PUBLISHED, query=query)

    async def create_article(self, article: Article) -> Article:
        if article.status not in VALID_ARTICLE_STATUSES:
            raise ValidationException(f"Invalid article status: {article.status}")
        self._articles[article.id] = replace(article, tags=list(article.tags))
        return replace(article)

    async def get_article(self, article_id: str) -> Optional[Article]:
        article = self._articles.get(article_id)
        return replace(article) if article else None

    async def update_article(self, article_id: str, **fields) -> Optional[Article]:
        _validate_article_fields(fields)
        article = self._articles.get(article_id)
        if article is None:
            return None
        if "tags" in fields:
            fields["tags"] = list(fields["tags"])
        updated = replace(article, **fields, updated_at=utcnow())
        self._articles[article_id] = updated
        return replace(updated)

    async def delete_article(self, article_id: str) -> bool:
        return self._articles.pop(article_id, None) is not None

    async def list_articles(
        self,
        status: Optional[str] = None,
        query: Optional[str] = None
    ) -> List[Article]:
        keywords = extract_keywords(query) if query else []
        articles = [
            a for a in self._articles.values()
            if (status is None or a.status == status)
            and (not keywords or _matches_keywords(a, keywords))
        ]
        articles.sort(key=lambda a: a.updated_at, reverse=True)
        return [replace(a) for a in articles]

    # Config
    async def get_config(self) -> TriageConfig:
        return self._config

    async def update_config(self, **fields) -> TriageConfig:
        self._config = _merge_config(self._config, fields)
        return self._config

    # Agent suggestions
    async def create_agent_suggestion(self, suggestion: AgentSuggestion) -> AgentSuggestion:
        self._suggestions.append(suggestion)
        return suggestion

    async def get_agent_suggestion(self, suggestion_id: str) -> Optional[AgentSuggestion]:
        return next((s for s in self._suggestions if s.id == suggestion_id), None)

    async def list_agent_suggestions(self, ticket_id: str) -> List[AgentSuggestion]:
        return [s for s in self._suggestions if s.ticket_id == ticket_id]

    # Replies
    async def create_ticket_reply(self, reply: TicketReply) -> TicketReply:
        self._replies.append(reply)
        return reply

    async def list_ticket_replies(self, ticket_id: str) -> List[TicketReply]:
        return [r for r in self._replies if r.ticket_id == ticket_id]

    # Audit
    async def create_audit_log(self, entry: AuditLogEntry) -> AuditLogEntry:
        # Stored and returned entries never share a meta dict with callers
        self._audit_logs.append(replace(entry, meta=deepcopy(entry.meta)))
        return entry

    async def list_audit_logs(
        self,
        ticket_id: Optional[str] = None,
        trace_id: Optional[str] = None
    ) -> List[AuditLogEntry]:
        return [
            replace(e, meta=deepcopy(e.meta)) for e in self._audit_logs
            if (ticket_id is None or e.ticket_id == ticket_id)
            and (trace_id is None or e.trace_id == trace_id)
        ]


# ========== SQLAlchemy ==========

def _like_pattern(keyword: str) -> str:
    escaped = keyword.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _article_matches(keyword: str):
    pattern = _like_pattern(keyword)
    return or_(
        ArticleModel.title.ilike(pattern, escape="\\"),
        ArticleModel.body.ilike(pattern, escape="\\"),
        cast(ArticleModel.tags, String).ilike(pattern, escape="\\"),
    )


def _aware(value: datetime) -> datetime:
    # SQLite drops tzinfo on the way back
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_ticket(model: TicketModel) -> Ticket:
    return Ticket(
        id=model.id,
        title=model.title,
        description=model.description,
        created_by=model.created_by,
        category=model.category,
        status=model.status,
        assignee=model.assignee,
        agent_suggestion_id=model.agent_suggestion_id,
        attachment_urls=list(model.attachment_urls or []),
        created_at=_aware(model.created_at),
        updated_at=_aware(model.updated_at),
    )


def _to_article(model: ArticleModel) -> Article:
    return Article(
        id=model.id,
        title=model.title,
        body=model.body,
        tags=list(model.tags or []),
        status=model.status,
        created_at=_aware(model.created_at),
        updated_at=_aware(model.updated_at),
    )


def _to_suggestion(model: AgentSuggestionModel) -> AgentSuggestion:
    return AgentSuggestion(
        id=model.id,
        ticket_id=model.ticket_id,
        predicted_category=model.predicted_category,
        article_ids=tuple(model.article_ids or ()),
        draft_reply=model.draft_reply,
        confidence=model.confidence,
        auto_closed=model.auto_closed,
        model_info=ModelInfo.from_dict(model.model_info),
        created_at=_aware(model.created_at),
    )


def _to_reply(model: TicketReplyModel) -> TicketReply:
    return TicketReply(
        id=model.id,
        ticket_id=model.ticket_id,
        author_type=model.author_type,
        content=model.content,
        author_id=model.author_id,
        created_at=_aware(model.created_at),
    )


def _to_audit_entry(model: AuditLogModel) -> AuditLogEntry:
    return AuditLogEntry(
        id=model.id,
        ticket_id=model.ticket_id,
        trace_id=model.trace_id,
        actor=model.actor,
        action=model.action,
        meta=dict(model.meta or {}),
        timestamp=_aware(model.timestamp),
    )


def _to_config(model: TriageConfigModel) -> TriageConfig:
    return TriageConfig(
        auto_close_enabled=model.auto_close_enabled,
        confidence_threshold=model.confidence_threshold,
        sla_hours=model.sla_hours,
    )


class SQLAlchemyHelpdeskStorage(IHelpdeskStorage):
    """SQLAlchemy implementation of the helpdesk storage."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        default_config: Optional[TriageConfig] = None
    ):
        self._session_maker = session_maker
        self._default_config = default_config or TriageConfig()

    @asynccontextmanager
    async def _transaction(self, operation: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_maker.begin() as session:
                yield session
        except SQLAlchemyError as e:
            logger.error(
                "Database operation failed",
                extra={"operation": operation, "error": str(e)}
            )
            raise PersistenceException(operation, str(e)) from e

    # Tickets
    async def get_ticket(self, ticket_id: str) -> Optional[Ticket]:
        async with self._transaction("get_ticket") as session:
            model = await session.get(TicketModel, ticket_id)
            return _to_ticket(model) if model else None

    async def create_ticket(self, ticket: Ticket) -> Ticket:
        async with self._transaction("create_ticket") as session:
            model = TicketModel(
                id=ticket.id,
                title=ticket.title,
                description=ticket.description,
                created_by=ticket.created_by,
                category=ticket.category,
                status=ticket.status,
                assignee=ticket.assignee,
                agent_suggestion_id=ticket.agent_suggestion_id,
                attachment_urls=list(ticket.attachment_urls),
                created_at=ticket.created_at,
                updated_at=ticket.updated_at,
            )
            session.add(model)
            await session.flush()
            return _to_ticket(model)

    async def update_ticket(self, ticket_id: str, **fields) -> Optional[Ticket]:
        _validate_ticket_fields(fields)
        async with self._transaction("update_ticket") as session:
            model = await session.get(TicketModel, ticket_id)
            if model is None:
                return None
            for name, value in fields.items():
                setattr(model, name, list(value) if name == "attachment_urls" else value)
            model.updated_at = utcnow()
            await session.flush()
            return _to_ticket(model)

    async def list_tickets(
        self,
        status: Optional[str] = None,
        category: Optional[str] = None,
        created_by: Optional[str] = None
    ) -> List[Ticket]:
        stmt = select(TicketModel)
        if status is not None:
            stmt = stmt.where(TicketModel.status == status)
        if category is not None:
            stmt = stmt.where(TicketModel.category == category)
        if created_by is not None:
            stmt = stmt.where(TicketModel.created_by == created_by)
        stmt = stmt.order_by(TicketModel.created_at.desc(), TicketModel.id)

        async with self._transaction("list_tickets") as session:
            result = await session.execute(stmt)
            return [_to_ticket(m) for m in result.scalars().all()]

    async def get_dashboard_stats(self) -> DashboardStats:
        stmt = select(
            func.count(TicketModel.id),
            func.count(TicketModel.id).filter(TicketModel.status.in_(OPEN_STATUSES)),
            func.count(TicketModel.id).filter(
                TicketModel.status == TicketStatus.RESOLVED,
                TicketModel.agent_suggestion_id.is_not(None),
            ),
        )
        async with self._transaction("get_dashboard_stats") as session:
            total, open_count, auto_resolved = (await session.execute(stmt)).one()
        return DashboardStats(
            total_tickets=total,
            open_tickets=open_count,
            auto_resolved=auto_resolved,
        )

    # Knowledge base
    async def search_kb(self, query: str) -> List[Article]:
        return await self.list_articles(status=ArticleStatus.PUBLISHED, query=query)

    async def get_article(self, article_id: str) -> Optional[Article]:
        async with self._transaction("get_article") as session:
            model = await session.get(ArticleModel, article_id)
            return _to_article(model) if model else None

    async def update_article(self, article_id: str, **fields) -> Optional[Article]:
        _validate_article_fields(fields)
        async with self._transaction("update_article") as session:
            model = await session.get(ArticleModel, article_id)
            if model is None:
                return None
            for name, value in fields.items():
                setattr(model, name, list(value) if name == "tags" else value)
            model.updated_at = utcnow()
            await session.flush()
            return _to_article(model)

    async def delete_article(self, article_id: str) -> bool:
        async with self._transaction("delete_article") as session:
            result = await session.execute(
                delete(ArticleModel).where(ArticleModel.id == article_id)
            )
            return result.rowcount > 0

    async def create_article(self, article: Article) -> Article:
        if article.status not in VALID_ARTICLE_STATUSES:
            raise ValidationException(f"Invalid article status: {article.status}")
        async with self._transaction("create_article") as session:
            model = ArticleModel(
                id=article.id,
                title=article.title,
                body=article.body,
                tags=list(article.tags),
                status=article.status,
                created_at=article.created_at,
                updated_at=article.updated_at,
            )
            session.add(model)
            await session.flush()
            return _to_article(model)

    async def list_articles(
        self,
        status: Optional[str] = None,
        query: Optional[str] = None
    ) -> List[Article]:
        stmt = select(ArticleModel)
        if status is not None:
            stmt = stmt.where(ArticleModel.status == status)
        keywords = extract_keywords(query) if query else []
        if keywords:
            stmt = stmt.where(or_(*[_article_matches(kw) for kw in keywords]))
        stmt = stmt.order_by(ArticleModel.updated_at.desc(), ArticleModel.id)

        async with self._transaction("list_articles") as session:
            result = await session.execute(stmt)
            return [_to_article(m) for m in result.scalars().all()]

    # Config
    async def _load_config(self, session: AsyncSession) -> TriageConfigModel:
        model = await session.get(TriageConfigModel, CONFIG_ROW_ID)
        if model is None:
            model = TriageConfigModel(
                id=CONFIG_ROW_ID,
                auto_close_enabled=self._default_config.auto_close_enabled,
                confidence_threshold=self._default_config.confidence_threshold,
                sla_hours=self._default_config.sla_hours,
            )
            session.add(model)
            await session.flush()
        return model

    async def get_config(self) -> TriageConfig:
        async with self._transaction("get_config") as session:
            return _to_config(await self._load_config(session))

    async def update_config(self, **fields) -> TriageConfig:
        async with self._transaction("update_config") as session:
            model = await self._load_config(session)
            config = _merge_config(_to_config(model), fields)
            model.auto_close_enabled = config.auto_close_enabled
            model.confidence_threshold = config.confidence_threshold
            model.sla_hours = config.sla_hours
            await session.flush()
            return config

    # Agent suggestions
    async def create_agent_suggestion(self, suggestion: AgentSuggestion) -> AgentSuggestion:
        async with self._transaction("create_agent_suggestion") as session:
            session.add(AgentSuggestionModel(
                id=suggestion.id,
                ticket_id=suggestion.ticket_id,
                predicted_category=suggestion.predicted_category,
                article_ids=list(suggestion.article_ids),
                draft_reply=suggestion.draft_reply,
                confidence=suggestion.confidence,
                auto_closed=suggestion.auto_closed,
                model_info=suggestion.model_info.to_dict(),
                created_at=suggestion.created_at,
            ))
        return suggestion

    async def get_agent_suggestion(self, suggestion_id: str) -> Optional[AgentSuggestion]:
        stmt = select(AgentSuggestionModel).where(AgentSuggestionModel.id == suggestion_id)
        async with self._transaction("get_agent_suggestion") as session:
            model = (await session.execute(stmt)).scalar_one_or_none()
            return _to_suggestion(model) if model else None

    async def list_agent_suggestions(self, ticket_id: str) -> List[AgentSuggestion]:
        stmt = (
            select(AgentSuggestionModel)
            .where(AgentSuggestionModel.ticket_id == ticket_id)
            .order_by(AgentSuggestionModel.seq)
        )
        async with self._transaction("list_agent_suggestions") as session:
            result = await session.execute(stmt)
            return [_to_suggestion(m) for m in result.scalars().all()]

    # Replies
    async def create_ticket_reply(self, reply: TicketReply) -> TicketReply:
        async with self._transaction("create_ticket_reply") as session:
            session.add(TicketReplyModel(
                id=reply.id,
                ticket_id=reply.ticket_id,
                author_id=reply.author_id,
                author_type=reply.author_type,
                content=reply.content,
                created_at=reply.created_at,
            ))
        return reply

    async def list_ticket_replies(self, ticket_id: str) -> List[TicketReply]:
        stmt = (
            select(TicketReplyModel)
            .where(TicketReplyModel.ticket_id == ticket_id)
            .order_by(TicketReplyModel.seq)
        )
        async with self._transaction("list_ticket_replies") as session:
            result = await session.execute(stmt)
            return [_to_reply(m) for m in result.scalars().all()]

    # Audit
    async def create_audit_log(self, entry: AuditLogEntry) -> AuditLogEntry:
        async with self._transaction("create_audit_log") as session:
            session.add(AuditLogModel(
                id=entry.id,
                ticket_id=entry.ticket_id,
                trace_id=entry.trace_id,
                actor=entry.actor,
                action=entry.action,
                meta=dict(entry.meta),
                timestamp=entry.timestamp,
            ))
        return entry

    async def list_audit_logs(
        self,
        ticket_id: Optional[str] = None,
        trace_id: Optional[str] = None
    ) -> List[AuditLogEntry]:
        stmt = select(AuditLogModel)
        if ticket_id is not None:
            stmt = stmt.where(AuditLogModel.ticket_id == ticket_id)
        if trace_id is not None:
            stmt = stmt.where(AuditLogModel.trace_id == trace_id)
        stmt = stmt.order_by(AuditLogModel.seq)

        async with self._transaction("list_audit_logs") as session:
            result = await session.execute(stmt)
            return [_to_audit_entry(m) for m in result.scalars().all()]
