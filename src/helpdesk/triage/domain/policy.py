"""
Decision Policy
===============

Maps a classifier confidence and the current triage config to the
auto-close / hand-to-human outcome.
"""

from helpdesk.triage.domain.entities import TriageConfig

ASSIGN_REASON_LOW_CONFIDENCE = "confidence_below_threshold"


def decide(confidence: float, config: TriageConfig) -> bool:
    """Return True when the ticket should be auto-closed."""
    return config.auto_close_enabled and confidence >= config.confidence_threshold
