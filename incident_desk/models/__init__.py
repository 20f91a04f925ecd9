"""
Incident Desk Models

Incident record, typed inputs/filters and the statistics aggregate.
"""

from .incident import (
    # Enums
    IncidentStatus,
    UserRole,

    # Core models
    Incident,
    NewIncident,

    # Supporting models
    UserSummary,
    CategorySummary,
    PrioritySummary,

    # Inputs
    IncidentCreate,
    IncidentUpdate,
    IncidentFilters,
    StatisticsFilters,

    utcnow,
)
from .statistics import (
    IncidentStatistics,
    StatisticsRow,
    UNCATEGORIZED,
    UNPRIORITIZED,
)

__all__ = [
    "IncidentStatus", "UserRole",
    "Incident", "NewIncident",
    "UserSummary", "CategorySummary", "PrioritySummary",
    "IncidentCreate", "IncidentUpdate", "IncidentFilters", "StatisticsFilters",
    "IncidentStatistics", "StatisticsRow", "UNCATEGORIZED", "UNPRIORITIZED",
    "utcnow",
]
