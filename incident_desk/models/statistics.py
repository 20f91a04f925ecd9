"""
Incident statistics.

Both gateways feed the same reducer so the grouping keys and the
averaging rule cannot drift between storage backends.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, Optional

from pydantic import BaseModel, Field

from .incident import IncidentStatus

UNCATEGORIZED = "uncategorized"
UNPRIORITIZED = "unprioritized"


@dataclass
class StatisticsRow:
    """One incident projected down to what statistics need."""
    status: IncidentStatus
    category_name: Optional[str]
    priority_name: Optional[str]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]


class IncidentStatistics(BaseModel):
    """
    Aggregate view over a filtered set of incidents.

    average_resolution_hours is the mean of (updated_at - created_at)
    over closed incidents only; None when nothing is closed.
    """
    total: int = 0
    open: int = 0
    in_progress: int = 0
    closed: int = 0
    by_category: Dict[str, int] = Field(default_factory=dict)
    by_priority: Dict[str, int] = Field(default_factory=dict)
    average_resolution_hours: Optional[float] = None

    @classmethod
    def from_rows(cls, rows: Iterable[StatisticsRow]) -> "IncidentStatistics":
        stats = cls()
        resolution_hours = []

        for row in rows:
            status = IncidentStatus(row.status)
            stats.total += 1
            if status == IncidentStatus.OPEN:
                stats.open += 1
            elif status == IncidentStatus.IN_PROGRESS:
                stats.in_progress += 1
            else:
                stats.closed += 1

            category = row.category_name or UNCATEGORIZED
            stats.by_category[category] = stats.by_category.get(category, 0) + 1

            priority = row.priority_name or UNPRIORITIZED
            stats.by_priority[priority] = stats.by_priority.get(priority, 0) + 1

            if status == IncidentStatus.CLOSED and row.created_at and row.updated_at:
                elapsed = row.updated_at - row.created_at
                resolution_hours.append(elapsed.total_seconds() / 3600)

        if resolution_hours:
            stats.average_resolution_hours = sum(resolution_hours) / len(resolution_hours)

        return stats
