"""
Audit Trail Domain
==================

Append-only audit entries and their per-action payloads.

Each action has its own frozen payload class; the `action` class attribute
is the tag. Storage only ever sees `meta.to_dict()`, so the persisted
document stays schema-agnostic while code reading and writing entries works
with typed payloads.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import ClassVar, Dict, List, Optional, Type, Union

from helpdesk.config import AuditAction, VALID_ACTORS
from helpdesk.triage.domain.entities import new_id, utcnow
from helpdesk.triage.domain.policy import ASSIGN_REASON_LOW_CONFIDENCE


class _AuditMeta:
    action: ClassVar[str]

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class TicketCreatedMeta(_AuditMeta):
    action: ClassVar[str] = AuditAction.TICKET_CREATED
    title: str
    category: str
    created_by: str


@dataclass(frozen=True)
class TriageStartedMeta(_AuditMeta):
    action: ClassVar[str] = AuditAction.TRIAGE_STARTED
    ticket_id: str


@dataclass(frozen=True)
class AgentClassifiedMeta(_AuditMeta):
    action: ClassVar[str] = AuditAction.AGENT_CLASSIFIED
    predicted_category: str
    confidence: float
    latency_ms: int


@dataclass(frozen=True)
class KBRetrievedMeta(_AuditMeta):
    action: ClassVar[str] = AuditAction.KB_RETRIEVED
    articles_found: int
    article_ids: List[str] = field(default_factory=list)
    latency_ms: int = 0


@dataclass(frozen=True)
class DraftGeneratedMeta(_AuditMeta):
    action: ClassVar[str] = AuditAction.DRAFT_GENERATED
    draft_length: int
    citations_count: int
    latency_ms: int


@dataclass(frozen=True)
class AutoClosedMeta(_AuditMeta):
    action: ClassVar[str] = AuditAction.AUTO_CLOSED
    confidence: float
    threshold: float
    agent_suggestion_id: str


@dataclass(frozen=True)
class AssignedToHumanMeta(_AuditMeta):
    action: ClassVar[str] = AuditAction.ASSIGNED_TO_HUMAN
    confidence: float
    threshold: float
    reason: str = ASSIGN_REASON_LOW_CONFIDENCE


@dataclass(frozen=True)
class TriageCompletedMeta(_AuditMeta):
    action: ClassVar[str] = AuditAction.TRIAGE_COMPLETED
    total_latency_ms: int
    auto_resolved: bool


@dataclass(frozen=True)
class TriageErrorMeta(_AuditMeta):
    action: ClassVar[str] = AuditAction.TRIAGE_ERROR
    error: str
    error_type: str = "Exception"


@dataclass(frozen=True)
class ReplySentMeta(_AuditMeta):
    action: ClassVar[str] = AuditAction.REPLY_SENT
    agent_id: Optional[str]
    content_length: int
    new_status: Optional[str] = None


@dataclass(frozen=True)
class TicketAssignedMeta(_AuditMeta):
    action: ClassVar[str] = AuditAction.TICKET_ASSIGNED
    assigned_to: str
    assigned_by: Optional[str] = None


AuditMeta = Union[
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
]

META_TYPES: Dict[str, Type[_AuditMeta]] = {
    cls.action: cls
    for cls in (
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
    )
}


def parse_meta(action: str, data: dict) -> AuditMeta:
    """Rebuild the typed payload for a stored entry."""
    try:
        meta_cls = META_TYPES[action]
    except KeyError:
        raise ValueError(f"Unknown audit action: {action}")
    return meta_cls(**data)


@dataclass(frozen=True)
class AuditLogEntry:
    """
    One immutable audit record.

    `ticket_id` is None for events not tied to a ticket. All entries of one
    triage run share a `trace_id`.
    """
    id: str
    ticket_id: Optional[str]
    trace_id: str
    actor: str
    action: str
    meta: dict
    timestamp: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        if self.actor not in VALID_ACTORS:
            raise ValueError(f"Unknown actor: {self.actor}")

    @classmethod
    def create(
        cls,
        ticket_id: Optional[str],
        trace_id: str,
        actor: str,
        meta: AuditMeta,
    ) -> "AuditLogEntry":
        return cls(
            id=new_id(),
            ticket_id=ticket_id,
            trace_id=trace_id,
            actor=actor,
            action=meta.action,
            meta=meta.to_dict(),
        )

    @property
    def typed_meta(self) -> AuditMeta:
        return parse_meta(self.action, self.meta)
