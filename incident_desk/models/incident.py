"""
Incident Desk Incident Model

Core principles:
1. Incident = a reported IT problem tracked from open to closed
2. Reporter is fixed at creation, assignee comes and goes
3. Status only moves along the transition table (services/rules.py)
4. Inputs and filters are typed models, never loose dicts
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every gateway stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# =============================================================================
# ENUMS
# =============================================================================

class IncidentStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    CLOSED = "closed"


class UserRole(str, Enum):
    EMPLOYEE = "employee"
    SUPPORT = "support"
    ADMINISTRATOR = "administrator"


# =============================================================================
# REFERENCE SUMMARIES (hydrated on request)
# =============================================================================

class UserSummary(BaseModel):
    """Reporter or assignee as shown alongside an incident."""
    id: int
    name: str
    email: str
    role: UserRole = UserRole.EMPLOYEE


class CategorySummary(BaseModel):
    id: int
    name: str
    description: Optional[str] = None


class PrioritySummary(BaseModel):
    id: int
    name: str
    level: int = 1
    color: Optional[str] = None  # Hex, e.g. "#FF6B6B"


# =============================================================================
# CORE MODEL
# =============================================================================

class Incident(BaseModel):
    """
    A stored incident.

    Relations (reporter, assignee, category, priority) are only filled
    when the caller asks for them.
    """
    id: int

    title: str
    description: Optional[str] = None
    status: IncidentStatus = IncidentStatus.OPEN

    reporter_id: int
    assignee_id: Optional[int] = None  # None = unassigned

    category_id: int
    priority_id: int

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    # Hydrated relations
    reporter: Optional[UserSummary] = None
    assignee: Optional[UserSummary] = None
    category: Optional[CategorySummary] = None
    priority: Optional[PrioritySummary] = None

    @property
    def is_assigned(self) -> bool:
        return self.assignee_id is not None


class NewIncident(BaseModel):
    """Normalized, validated record handed to the gateway on create."""
    title: str
    description: Optional[str] = None
    status: IncidentStatus = IncidentStatus.OPEN
    reporter_id: int
    assignee_id: Optional[int] = None
    category_id: int
    priority_id: int


# =============================================================================
# INPUTS
# =============================================================================

class IncidentCreate(BaseModel):
    """Raw create input. Business rules are checked by the lifecycle service."""
    title: str
    description: Optional[str] = None
    reporter_id: int
    category_id: int
    priority_id: int
    assignee_id: Optional[int] = None
    status: Optional[IncidentStatus] = None


class IncidentUpdate(BaseModel):
    """
    Partial update. A field counts as supplied only when it was set
    explicitly, so `assignee_id=None` means "unassign".
    """
    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[IncidentStatus] = None
    assignee_id: Optional[int] = None
    category_id: Optional[int] = None
    priority_id: Optional[int] = None

    def supplied(self) -> dict:
        return self.model_dump(exclude_unset=True)


class IncidentFilters(BaseModel):
    """Every filter `list()` understands."""
    model_config = ConfigDict(populate_by_name=True)

    status: Optional[IncidentStatus] = None
    reporter_id: Optional[int] = None
    assignee_id: Optional[int] = None
    category_id: Optional[int] = None
    priority_id: Optional[int] = None
    date_from: Optional[datetime] = Field(default=None, alias="from")
    date_to: Optional[datetime] = Field(default=None, alias="to")


class StatisticsFilters(BaseModel):
    """Every filter `statistics()` understands."""
    model_config = ConfigDict(populate_by_name=True)

    date_from: Optional[datetime] = Field(default=None, alias="from")
    date_to: Optional[datetime] = Field(default=None, alias="to")
    reporter_id: Optional[int] = None
    category_id: Optional[int] = None
