"""
Incident Desk persistence gateways.

The lifecycle service depends on the IncidentGateway protocol only.
"""

from .base import IncidentGateway
from .memory import InMemoryIncidentGateway
from .sql import SqlIncidentGateway

__all__ = ["IncidentGateway", "InMemoryIncidentGateway", "SqlIncidentGateway"]
