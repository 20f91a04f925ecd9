"""
Incident Desk Services

Core business logic for incident management.
"""

from .lifecycle import IncidentLifecycleService
from .rules import VALID_TRANSITIONS, can_transition

__all__ = [
    # Lifecycle (the single authority over incident writes)
    "IncidentLifecycleService",

    # Transition table
    "VALID_TRANSITIONS", "can_transition",
]
