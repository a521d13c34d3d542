"""
Triage Controllers (API Routes)
================================

FastAPI routes for tickets, agent triage, the knowledge base, the
triage config and dashboard stats.

Controllers delegate to the storage and the triage services held on
`app.state`.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from helpdesk.config import Actor, AuthorType, TicketStatus
from helpdesk.core import (
    DispatcherFullException, ResourceNotFoundException, TicketNotFoundException
)
from helpdesk.shared.infrastructure.logging import get_context_logger, get_logger
from helpdesk.triage.application import (
    AuditLogWriter, IHelpdeskStorage, TriageOrchestrator,
    CreateTicketRequest, ReplyRequest, AssignRequest, ConfigUpdateRequest,
    CreateArticleRequest, UpdateArticleRequest,
    TicketResponse, TicketDetailResponse, TicketReplyResponse,
    AgentSuggestionResponse, AuditLogResponse, ConfigResponse,
    ArticleResponse, TriageResponse, MessageResponse, DashboardStatsResponse,
)
from helpdesk.triage.application.dto import ArticleStatusStr, CategoryStr, TicketStatusStr
from helpdesk.triage.domain import (
    Article, Ticket, TicketReply,
    TicketCreatedMeta, ReplySentMeta, TicketAssignedMeta,
    new_id,
)
from helpdesk.triage.infrastructure import TriageDispatcher

logger = get_logger(__name__)

tickets_router = APIRouter(prefix="/tickets", tags=["Tickets"])
agent_router = APIRouter(prefix="/agent", tags=["Agent"])
kb_router = APIRouter(prefix="/kb", tags=["Knowledge Base"])
config_router = APIRouter(prefix="/config", tags=["Config"])
dashboard_router = APIRouter(prefix="/dashboard", tags=["Dashboard"])


# ========== Dependencies ==========

def _from_state(request: Request, name: str):
    component = getattr(request.app.state, name, None)
    if component is None:
        raise HTTPException(
            status_code=503,
            detail=f"{name.replace('_', ' ').capitalize()} not initialized"
        )
    return component


def get_storage(request: Request) -> IHelpdeskStorage:
    return _from_state(request, "storage")


def get_orchestrator(request: Request) -> TriageOrchestrator:
    return _from_state(request, "orchestrator")


def get_dispatcher(request: Request) -> TriageDispatcher:
    return _from_state(request, "dispatcher")


def get_audit_writer(request: Request) -> AuditLogWriter:
    return _from_state(request, "audit_writer")


def get_request_logger(request: Request):
    """Logger stamping records with the request's correlation ID."""
    return get_context_logger(
        __name__, correlation_id=getattr(request.state, "correlation_id", None)
    )


async def _require_ticket(storage: IHelpdeskStorage, ticket_id: str) -> Ticket:
    ticket = await storage.get_ticket(ticket_id)
    if ticket is None:
        raise TicketNotFoundException(ticket_id)
    return ticket


# ========== Tickets ==========

@tickets_router.post(
    "",
    response_model=TicketResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a ticket and queue it for triage"
)
async def create_ticket(
    payload: CreateTicketRequest,
    storage: IHelpdeskStorage = Depends(get_storage),
    dispatcher: TriageDispatcher = Depends(get_dispatcher),
    audit: AuditLogWriter = Depends(get_audit_writer),
    log=Depends(get_request_logger)
):
    """
    Create a support ticket.

    Triage runs in the background; the response returns the ticket in its
    initial `open` state.
    """
    ticket = await storage.create_ticket(Ticket(
        id=new_id(),
        title=payload.title,
        description=payload.description,
        created_by=payload.created_by,
        category=payload.category,
        attachment_urls=list(payload.attachment_urls)
    ))

    # The ticket ID doubles as the trace ID of the creation event
    await audit.record_event(
        ticket.id, ticket.id, Actor.USER,
        TicketCreatedMeta(
            title=ticket.title,
            category=ticket.category,
            created_by=ticket.created_by
        )
    )

    try:
        dispatcher.submit_nowait(ticket.id)
    except DispatcherFullException as e:
        log.warning("Triage not queued", extra={"ticket_id": ticket.id, "error": e.message})

    log.info("Ticket created", extra={"ticket_id": ticket.id})
    return TicketResponse.from_domain(ticket)


@tickets_router.get(
    "",
    response_model=List[TicketResponse],
    summary="List tickets, newest first"
)
async def list_tickets(
    status: Optional[TicketStatusStr] = None,
    category: Optional[CategoryStr] = None,
    created_by: Optional[str] = None,
    storage: IHelpdeskStorage = Depends(get_storage)
):
    tickets = await storage.list_tickets(
        status=status, category=category, created_by=created_by
    )
    return [TicketResponse.from_domain(t) for t in tickets]


@tickets_router.get(
    "/{ticket_id}",
    response_model=TicketDetailResponse,
    summary="Get a ticket with its suggestion and replies"
)
async def get_ticket(
    ticket_id: str,
    storage: IHelpdeskStorage = Depends(get_storage)
):
    ticket = await _require_ticket(storage, ticket_id)

    suggestion = None
    if ticket.agent_suggestion_id:
        suggestion = await storage.get_agent_suggestion(ticket.agent_suggestion_id)
    replies = await storage.list_ticket_replies(ticket_id)

    return TicketDetailResponse(
        **TicketResponse.from_domain(ticket).model_dump(),
        agent_suggestion=AgentSuggestionResponse.from_domain(suggestion) if suggestion else None,
        replies=[TicketReplyResponse.from_domain(r) for r in replies]
    )


@tickets_router.get(
    "/{ticket_id}/audit",
    response_model=List[AuditLogResponse],
    summary="Audit trail of a ticket in creation order"
)
async def get_ticket_audit(
    ticket_id: str,
    trace_id: Optional[str] = None,
    storage: IHelpdeskStorage = Depends(get_storage)
):
    await _require_ticket(storage, ticket_id)
    entries = await storage.list_audit_logs(ticket_id=ticket_id, trace_id=trace_id)
    return [AuditLogResponse.from_domain(e) for e in entries]


@tickets_router.post(
    "/{ticket_id}/reply",
    response_model=MessageResponse,
    summary="Post an agent reply"
)
async def reply_to_ticket(
    ticket_id: str,
    payload: ReplyRequest,
    storage: IHelpdeskStorage = Depends(get_storage),
    audit: AuditLogWriter = Depends(get_audit_writer)
):
    await _require_ticket(storage, ticket_id)

    await storage.create_ticket_reply(TicketReply(
        id=new_id(),
        ticket_id=ticket_id,
        author_type=AuthorType.AGENT,
        author_id=payload.agent_id,
        content=payload.content
    ))
    if payload.status:
        await storage.update_ticket(ticket_id, status=payload.status)

    await audit.record_event(
        ticket_id, f"reply-{new_id()}", Actor.AGENT,
        ReplySentMeta(
            agent_id=payload.agent_id,
            content_length=len(payload.content),
            new_status=payload.status
        )
    )
    return MessageResponse(message="Reply sent successfully")


@tickets_router.post(
    "/{ticket_id}/assign",
    response_model=TicketResponse,
    summary="Assign a ticket to an agent"
)
async def assign_ticket(
    ticket_id: str,
    payload: AssignRequest,
    storage: IHelpdeskStorage = Depends(get_storage),
    audit: AuditLogWriter = Depends(get_audit_writer)
):
    ticket = await storage.update_ticket(
        ticket_id, assignee=payload.assignee_id, status=TicketStatus.TRIAGED
    )
    if ticket is None:
        raise TicketNotFoundException(ticket_id)

    await audit.record_event(
        ticket_id, f"assign-{new_id()}", Actor.AGENT,
        TicketAssignedMeta(assigned_to=payload.assignee_id, assigned_by=payload.assigned_by)
    )
    return TicketResponse.from_domain(ticket)


# ========== Agent ==========

@agent_router.post(
    "/triage/{ticket_id}",
    response_model=TriageResponse,
    summary="Run triage for a ticket and wait for the result"
)
async def trigger_triage(
    ticket_id: str,
    orchestrator: TriageOrchestrator = Depends(get_orchestrator),
    log=Depends(get_request_logger)
):
    try:
        outcome = await orchestrator.triage(ticket_id)
    except TicketNotFoundException:
        raise
    except Exception as e:
        log.error("Manual triage failed", extra={"ticket_id": ticket_id, "error": str(e)})
        raise HTTPException(status_code=500, detail=f"Triage failed: {e}")

    return TriageResponse(
        message="Triage completed successfully",
        ticket_id=ticket_id,
        trace_id=outcome.trace_id,
        auto_closed=outcome.auto_closed,
        agent_suggestion_id=outcome.suggestion.id,
        confidence=outcome.suggestion.confidence,
        threshold=outcome.threshold
    )


@agent_router.get(
    "/suggestion/{ticket_id}",
    response_model=AgentSuggestionResponse,
    summary="Current agent suggestion for a ticket"
)
async def get_suggestion(
    ticket_id: str,
    storage: IHelpdeskStorage = Depends(get_storage)
):
    ticket = await _require_ticket(storage, ticket_id)
    suggestion = None
    if ticket.agent_suggestion_id:
        suggestion = await storage.get_agent_suggestion(ticket.agent_suggestion_id)
    if suggestion is None:
        raise HTTPException(status_code=404, detail="No suggestion found for this ticket")
    return AgentSuggestionResponse.from_domain(suggestion)


# ========== Knowledge Base ==========

@kb_router.get("", response_model=List[ArticleResponse], summary="List or search articles")
async def list_articles(
    query: Optional[str] = None,
    status: Optional[ArticleStatusStr] = None,
    storage: IHelpdeskStorage = Depends(get_storage)
):
    """Articles matching both filters, most recently updated first."""
    articles = await storage.list_articles(status=status, query=query)
    return [ArticleResponse.from_domain(a) for a in articles]


@kb_router.post(
    "",
    response_model=ArticleResponse,
    status_code=201,
    summary="Create a KB article"
)
async def create_article(
    payload: CreateArticleRequest,
    storage: IHelpdeskStorage = Depends(get_storage)
):
    article = await storage.create_article(Article(
        id=new_id(),
        title=payload.title,
        body=payload.body,
        tags=list(payload.tags),
        status=payload.status
    ))
    return ArticleResponse.from_domain(article)


@kb_router.put("/{article_id}", response_model=ArticleResponse, summary="Update a KB article")
async def update_article(
    article_id: str,
    payload: UpdateArticleRequest,
    storage: IHelpdeskStorage = Depends(get_storage)
):
    article = await storage.update_article(article_id, **payload.model_dump(exclude_none=True))
    if article is None:
        raise ResourceNotFoundException("Article", article_id)
    return ArticleResponse.from_domain(article)


@kb_router.delete(
    "/{article_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a KB article"
)
async def delete_article(
    article_id: str,
    storage: IHelpdeskStorage = Depends(get_storage)
):
    if not await storage.delete_article(article_id):
        raise ResourceNotFoundException("Article", article_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ========== Dashboard ==========

@dashboard_router.get(
    "/stats",
    response_model=DashboardStatsResponse,
    summary="Ticket counts for the overview"
)
async def get_dashboard_stats(storage: IHelpdeskStorage = Depends(get_storage)):
    return DashboardStatsResponse.from_domain(await storage.get_dashboard_stats())


# ========== Config ==========

@config_router.get("", response_model=ConfigResponse, summary="Current triage config")
async def get_config(storage: IHelpdeskStorage = Depends(get_storage)):
    return ConfigResponse.from_domain(await storage.get_config())


@config_router.put("", response_model=ConfigResponse, summary="Update the triage config")
async def update_config(
    payload: ConfigUpdateRequest,
    storage: IHelpdeskStorage = Depends(get_storage)
):
    """Partial update; omitted fields keep their current value."""
    config = await storage.update_config(**payload.model_dump(exclude_none=True))
    logger.info("Triage config updated", extra=payload.model_dump(exclude_none=True))
    return ConfigResponse.from_domain(config)
