"""
Triage Application Services
============================

Application services for automated ticket triage.

Orchestrates business logic between domain entities, the storage
collaborator and the LLM provider:

    classify -> retrieve -> draft -> persist suggestion -> decide -> update

Every step is written to the audit trail under one trace ID, including
failures.
"""

import asyncio
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager, contextmanager
from dataclasses import dataclass, replace
from functools import partial
from typing import AsyncIterator, Callable, Dict, Iterator, List, Optional, Sequence

from helpdesk.config import Actor, AuthorType, TicketStatus
from helpdesk.core import (
    ApplicationException,
    ClassificationException,
    DraftException,
    PersistenceException,
    RepositoryException,
    RetrievalException,
    TicketNotFoundException,
)
from helpdesk.shared.infrastructure.logging import (
    get_context_logger, get_logger, measure_latency
)
from helpdesk.triage.domain import (
    AgentSuggestion,
    Article,
    AuditLogEntry,
    AuditMeta,
    ClassificationResult,
    DashboardStats,
    DraftResult,
    ModelInfo,
    RetrievedArticle,
    Ticket,
    TicketReply,
    TriageConfig,
    AgentClassifiedMeta,
    AssignedToHumanMeta,
    AutoClosedMeta,
    DraftGeneratedMeta,
    KBRetrievedMeta,
    TriageCompletedMeta,
    TriageErrorMeta,
    TriageStartedMeta,
    calculate_relevance_score,
    decide,
    new_id,
    utcnow,
)

logger = get_logger(__name__)


# ========== Collaborator Interfaces ==========

class IConfigProvider(ABC):
    """Read access to the current triage policy."""

    @abstractmethod
    async def get_config(self) -> TriageConfig:
        """Return the current config; never cached by callers."""


class IHelpdeskStorage(IConfigProvider):
    """Storage collaborator for tickets, KB articles and triage records."""

    # Tickets
    @abstractmethod
    async def get_ticket(self, ticket_id: str) -> Optional[Ticket]:
        """Get ticket by ID, None when absent."""

    @abstractmethod
    async def create_ticket(self, ticket: Ticket) -> Ticket:
        """Persist a new ticket."""

    @abstractmethod
    async def update_ticket(self, ticket_id: str, **fields) -> Optional[Ticket]:
        """Apply a partial update; None when the ticket is absent."""

    @abstractmethod
    async def list_tickets(
        self,
        status: Optional[str] = None,
        category: Optional[str] = None,
        created_by: Optional[str] = None
    ) -> List[Ticket]:
        """Tickets matching every given filter, newest first."""

    @abstractmethod
    async def get_dashboard_stats(self) -> DashboardStats:
        """Ticket counts for the overview."""

    # Knowledge base
    @abstractmethod
    async def search_kb(self, query: str) -> List[Article]:
        """Published articles loosely matching the query, unranked."""

    @abstractmethod
    async def create_article(self, article: Article) -> Article:
        """Persist a KB article."""

    @abstractmethod
    async def get_article(self, article_id: str) -> Optional[Article]:
        """Get article by ID, None when absent."""

    @abstractmethod
    async def update_article(self, article_id: str, **fields) -> Optional[Article]:
        """Apply a partial update; None when the article is absent."""

    @abstractmethod
    async def delete_article(self, article_id: str) -> bool:
        """Delete an article; False when it did not exist."""

    @abstractmethod
    async def list_articles(
        self,
        status: Optional[str] = None,
        query: Optional[str] = None
    ) -> List[Article]:
        """Articles filtered by status and query keywords, newest update first."""

    # Config
    @abstractmethod
    async def update_config(self, **fields) -> TriageConfig:
        """Apply a partial update to the triage config."""

    # Agent suggestions
    @abstractmethod
    async def create_agent_suggestion(self, suggestion: AgentSuggestion) -> AgentSuggestion:
        """Append an agent suggestion."""

    @abstractmethod
    async def get_agent_suggestion(self, suggestion_id: str) -> Optional[AgentSuggestion]:
        """Get a suggestion by ID."""

    @abstractmethod
    async def list_agent_suggestions(self, ticket_id: str) -> List[AgentSuggestion]:
        """All suggestions for a ticket, oldest first."""

    # Replies
    @abstractmethod
    async def create_ticket_reply(self, reply: TicketReply) -> TicketReply:
        """Append a reply to a ticket thread."""

    @abstractmethod
    async def list_ticket_replies(self, ticket_id: str) -> List[TicketReply]:
        """Replies on a ticket, oldest first."""

    # Audit
    @abstractmethod
    async def create_audit_log(self, entry: AuditLogEntry) -> AuditLogEntry:
        """Append an audit entry."""

    @abstractmethod
    async def list_audit_logs(
        self,
        ticket_id: Optional[str] = None,
        trace_id: Optional[str] = None
    ) -> List[AuditLogEntry]:
        """Audit entries in creation order, optionally filtered."""


class ILLMProvider(ABC):
    """
    Classify/draft capability.

    Providers are swappable; the orchestrator only depends on this
    interface.
    """

    @abstractmethod
    async def classify(self, text: str) -> ClassificationResult:
        """Assign a category and confidence to ticket text."""

    @abstractmethod
    async def draft(self, text: str, articles: Sequence[Article]) -> DraftResult:
        """Compose a reply citing a subset of the given articles."""

    @abstractmethod
    def get_model_info(self, latency_ms: int) -> ModelInfo:
        """Provider metadata for an agent suggestion."""


# ========== Helpers ==========

@contextmanager
def _stage_errors(error_factory: Callable[[str], ApplicationException]) -> Iterator[None]:
    """Re-raise non-application errors as the stage's error kind."""
    try:
        yield
    except ApplicationException:
        raise
    except Exception as e:
        raise error_factory(str(e) or type(e).__name__) from e


def _persisting(operation: str):
    return _stage_errors(partial(PersistenceException, operation))


# ========== Application Services ==========

class AuditLogWriter:
    """
    Append-only audit recorder.

    Never raises: a failing audit write is logged and dropped so it cannot
    abort or mask a triage run.
    """

    def __init__(self, storage: IHelpdeskStorage):
        self._storage = storage

    async def record(self, entry: AuditLogEntry) -> Optional[AuditLogEntry]:
        try:
            return await self._storage.create_audit_log(entry)
        except Exception as e:
            logger.error(
                "Failed to write audit log",
                extra={
                    "ticket_id": entry.ticket_id,
                    "trace_id": entry.trace_id,
                    "action": entry.action,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )
            return None

    async def record_event(
        self,
        ticket_id: Optional[str],
        trace_id: str,
        actor: str,
        meta: AuditMeta,
    ) -> Optional[AuditLogEntry]:
        """Build an entry for `meta` and record it."""
        return await self.record(AuditLogEntry.create(ticket_id, trace_id, actor, meta))


class KnowledgeRetriever:
    """
    Ranks knowledge-base articles for a query.

    Takes the first few candidates of the storage's superset search, scores
    them and keeps the best.
    """

    def __init__(
        self,
        storage: IHelpdeskStorage,
        scorer: Callable[[str, str], float] = calculate_relevance_score,
        candidate_limit: int = 5,
        result_limit: int = 3,
    ):
        self._storage = storage
        self._scorer = scorer
        self._candidate_limit = candidate_limit
        self._result_limit = result_limit

    async def retrieve(self, query: str) -> List[RetrievedArticle]:
        """
        Return at most `result_limit` published articles, best first.

        Raises:
            RetrievalException: If the search or scoring fails
        """
        with _stage_errors(RetrievalException):
            articles = await self._storage.search_kb(query)
            candidates = [a for a in articles if a.is_published][:self._candidate_limit]
            scored = [
                RetrievedArticle(article=a, score=self._scorer(query, a.searchable_text))
                for a in candidates
            ]

        # sorted() is stable: equal scores keep search order
        ranked = sorted(scored, key=lambda r: r.score, reverse=True)
        return ranked[:self._result_limit]


@dataclass(frozen=True)
class TriageOutcome:
    """Summary of a completed triage run."""
    trace_id: str
    ticket_id: str
    suggestion: AgentSuggestion
    auto_closed: bool
    threshold: float


class TriageOrchestrator:
    """
    Runs the triage pipeline for one ticket.

    Runs for different tickets may overlap; runs for the same ticket are
    serialized so status writes cannot interleave.
    """

    def __init__(
        self,
        storage: IHelpdeskStorage,
        provider: ILLMProvider,
        retriever: Optional[KnowledgeRetriever] = None,
        audit_writer: Optional[AuditLogWriter] = None,
        config_provider: Optional[IConfigProvider] = None,
    ):
        self._storage = storage
        self._provider = provider
        self._retriever = retriever or KnowledgeRetriever(storage)
        self._audit = audit_writer or AuditLogWriter(storage)
        self._config_provider = config_provider or storage
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    @asynccontextmanager
    async def _ticket_lock(self, ticket_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(ticket_id, asyncio.Lock())
        self._lock_users[ticket_id] = self._lock_users.get(ticket_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[ticket_id] -= 1
            if self._lock_users[ticket_id] == 0:
                del self._lock_users[ticket_id]
                del self._locks[ticket_id]

    async def triage(self, ticket_id: str) -> TriageOutcome:
        """
        Triage a ticket end to end.

        Safe to call again for the same ticket: each run gets a new trace and
        appends new suggestions and audit entries.

        Raises:
            TicketNotFoundException: If the ticket does not exist
            ClassificationException, RetrievalException, DraftException,
            PersistenceException: If a stage fails; the ticket keeps its
            prior status
        """
        trace_id = new_id()
        log = get_context_logger(__name__, trace_id=trace_id)

        async with self._ticket_lock(ticket_id):
            try:
                return await self._run(ticket_id, trace_id, log)
            except Exception as e:
                await self._audit.record_event(
                    ticket_id, trace_id, Actor.SYSTEM,
                    TriageErrorMeta(error=str(e) or type(e).__name__, error_type=type(e).__name__),
                )
                log.error(
                    "Triage failed",
                    extra={"ticket_id": ticket_id, "error": str(e), "error_type": type(e).__name__},
                )
                raise

    async def _run(self, ticket_id: str, trace_id: str, log) -> TriageOutcome:
        async def audit(meta: AuditMeta) -> None:
            await self._audit.record_event(ticket_id, trace_id, Actor.SYSTEM, meta)

        with measure_latency() as total:
            ticket = await self._storage.get_ticket(ticket_id)
            if ticket is None:
                raise TicketNotFoundException(ticket_id)

            await audit(TriageStartedMeta(ticket_id=ticket_id))
            log.info("Triage started", extra={"ticket_id": ticket_id})
            text = ticket.triage_text

            with measure_latency(log, "classify") as classify_timer:
                with _stage_errors(ClassificationException):
                    classification = await self._provider.classify(text)
            await audit(AgentClassifiedMeta(
                predicted_category=classification.predicted_category,
                confidence=classification.confidence,
                latency_ms=classify_timer.latency_ms,
            ))

            with measure_latency(log, "retrieve") as retrieve_timer:
                ranked = await self._retriever.retrieve(text)
            await audit(KBRetrievedMeta(
                articles_found=len(ranked),
                article_ids=[r.id for r in ranked],
                latency_ms=retrieve_timer.latency_ms,
            ))

            with measure_latency(log, "draft") as draft_timer:
                with _stage_errors(DraftException):
                    draft = await self._provider.draft(text, [r.article for r in ranked])
            await audit(DraftGeneratedMeta(
                draft_length=len(draft.draft_reply),
                citations_count=len(draft.citations),
                latency_ms=draft_timer.latency_ms,
            ))

            model_info = self._provider.get_model_info(
                classify_timer.latency_ms + retrieve_timer.latency_ms + draft_timer.latency_ms
            )
            with _persisting("create_agent_suggestion"):
                suggestion = await self._storage.create_agent_suggestion(AgentSuggestion(
                    id=new_id(),
                    ticket_id=ticket_id,
                    predicted_category=classification.predicted_category,
                    article_ids=tuple(draft.citations),
                    draft_reply=draft.draft_reply,
                    confidence=classification.confidence,
                    auto_closed=False,
                    model_info=model_info,
                ))

            with _stage_errors(RepositoryException):
                config = await self._config_provider.get_config()
            auto_close = decide(classification.confidence, config)

            if auto_close:
                await self._auto_close(ticket, suggestion, classification)
                await audit(AutoClosedMeta(
                    confidence=classification.confidence,
                    threshold=config.confidence_threshold,
                    agent_suggestion_id=suggestion.id,
                ))
            else:
                await self._update_ticket(
                    ticket_id,
                    status=TicketStatus.WAITING_HUMAN,
                    category=classification.predicted_category,
                    agent_suggestion_id=suggestion.id,
                )
                await audit(AssignedToHumanMeta(
                    confidence=classification.confidence,
                    threshold=config.confidence_threshold,
                ))

        await audit(TriageCompletedMeta(
            total_latency_ms=total.latency_ms,
            auto_resolved=auto_close,
        ))
        log.info(
            "Triage completed",
            extra={
                "ticket_id": ticket_id,
                "category": classification.predicted_category,
                "confidence": classification.confidence,
                "auto_closed": auto_close,
                "latency_ms": total.latency_ms,
            },
        )
        return TriageOutcome(
            trace_id=trace_id,
            ticket_id=ticket_id,
            suggestion=suggestion,
            auto_closed=auto_close,
            threshold=config.confidence_threshold,
        )

    async def _auto_close(
        self,
        ticket: Ticket,
        suggestion: AgentSuggestion,
        classification: ClassificationResult,
    ) -> None:
        await self._update_ticket(
            ticket.id,
            status=TicketStatus.RESOLVED,
            category=classification.predicted_category,
            agent_suggestion_id=suggestion.id,
        )
        try:
            with _persisting("create_ticket_reply"):
                await self._storage.create_ticket_reply(TicketReply(
                    id=new_id(),
                    ticket_id=ticket.id,
                    author_type=AuthorType.SYSTEM,
                    content=suggestion.draft_reply,
                ))
            # Both attempts stay in the history; the ticket keeps pointing at the first
            with _persisting("create_agent_suggestion"):
                await self._storage.create_agent_suggestion(
                    replace(suggestion, id=new_id(), auto_closed=True, created_at=utcnow())
                )
        except Exception:
            await self._restore_ticket(ticket)
            raise

    async def _restore_ticket(self, ticket: Ticket) -> None:
        """Put back the fields a failed run changed."""
        try:
            await self._storage.update_ticket(
                ticket.id,
                status=ticket.status,
                category=ticket.category,
                agent_suggestion_id=ticket.agent_suggestion_id,
            )
        except Exception as e:
            logger.error(
                "Failed to restore ticket after failed triage",
                extra={"ticket_id": ticket.id, "error": str(e), "error_type": type(e).__name__},
            )

    async def _update_ticket(self, ticket_id: str, **fields) -> Ticket:
        with _persisting("update_ticket"):
            ticket = await self._storage.update_ticket(ticket_id, **fields)
        if ticket is None:
            raise PersistenceException("update_ticket", f"ticket {ticket_id} disappeared")
        return ticket
