"""
Triage Module
=============

Bounded Context for automated ticket triage.

Responsibilities:
- Classify new tickets into billing / tech / shipping / other
- Retrieve and rank relevant knowledge-base articles
- Draft a reply citing those articles
- Auto-resolve or hand off to a human based on the configured threshold
- Record every step in an append-only, trace-correlated audit trail
"""
