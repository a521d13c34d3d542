"""
Triage Interfaces Layer
========================

Interface adapters (controllers) for ticket triage module.

Contains:
- Controllers: FastAPI route handlers
"""

from helpdesk.triage.interfaces.controllers import (
    tickets_router,
    agent_router,
    kb_router,
    config_router,
    dashboard_router,
)

__all__ = [
    "tickets_router", "agent_router", "kb_router", "config_router", "dashboard_router"
]
