"""
Helpdesk Triage Service
=======================

Support-ticket helpdesk with an automated triage pipeline.

Architecture Pattern: Modular Monolith
- triage: classify, retrieve, draft and decide for new tickets
- shared: generic infrastructure (logging, HTTP middleware)
- core: exceptions shared by every layer
"""

__version__ = "1.0.0"
