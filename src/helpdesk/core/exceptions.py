"""
Core Exceptions
================

Custom exceptions for the helpdesk, following clean architecture principles.

Every failure kind the triage pipeline can surface has its own class so the
orchestrator can record it in the audit trail and callers can map it to a
response (404 for missing tickets, 500 for pipeline failures).
"""

from typing import Optional


class ApplicationException(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors."""


class PersistenceException(RepositoryException):
    """A storage write failed (ticket update, suggestion, reply, audit entry)."""

    def __init__(self, operation: str, message: str, details: Optional[dict] = None):
        self.operation = operation
        super().__init__(f"{operation} failed: {message}", details)


class ValidationException(ApplicationException):
    """Exception for validation errors."""


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class TicketNotFoundException(ResourceNotFoundException):
    """Raised when triage is requested for a ticket that does not exist."""

    def __init__(self, ticket_id: str):
        self.ticket_id = ticket_id
        super().__init__("Ticket", ticket_id, {"ticket_id": ticket_id})


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""


class TriageException(DomainException):
    """Base exception for failures inside a triage stage."""

    stage = "triage"

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(f"{self.stage}: {message}", details)


class ClassificationException(TriageException):
    """The classifier could not categorize the ticket text."""

    stage = "classification"


class RetrievalException(TriageException):
    """Knowledge-base retrieval or scoring failed."""

    stage = "retrieval"


class DraftException(TriageException):
    """The drafter could not compose a reply."""

    stage = "draft"


class DispatcherFullException(ApplicationException):
    """The triage queue is at capacity and the job was not accepted."""

    def __init__(self, ticket_id: str, capacity: int):
        self.ticket_id = ticket_id
        self.capacity = capacity
        super().__init__(
            f"Triage queue full ({capacity} pending), ticket {ticket_id} not queued",
            {"ticket_id": ticket_id, "capacity": capacity}
        )
