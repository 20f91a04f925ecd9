"""Shared test fixtures."""

from datetime import datetime, timedelta

import pytest

from incident_desk.models import (
    CategorySummary,
    IncidentCreate,
    PrioritySummary,
    UserRole,
    UserSummary,
)
from incident_desk.repositories import InMemoryIncidentGateway
from incident_desk.services import IncidentLifecycleService


class FakeClock:
    """Deterministic clock; call it for "now", advance it explicitly."""

    def __init__(self, start: datetime = datetime(2024, 3, 1, 9, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


USERS = [
    UserSummary(id=1, name="Ana Reporter", email="ana@example.com", role=UserRole.EMPLOYEE),
    UserSummary(id=5, name="Sam Support", email="sam@example.com", role=UserRole.SUPPORT),
    UserSummary(id=6, name="Lee Support", email="lee@example.com", role=UserRole.SUPPORT),
]
CATEGORIES = [
    CategorySummary(id=2, name="Hardware", description="Printers, laptops, peripherals"),
    CategorySummary(id=3, name="Network"),
]
PRIORITIES = [
    PrioritySummary(id=1, name="High", level=3, color="#FF6B6B"),
    PrioritySummary(id=4, name="Low", level=1),
]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def gateway(clock):
    return InMemoryIncidentGateway(
        users=USERS,
        categories=CATEGORIES,
        priorities=PRIORITIES,
        clock=clock,
    )


@pytest.fixture
def service(gateway):
    return IncidentLifecycleService(gateway)


@pytest.fixture
def make_input():
    """Factory for a valid IncidentCreate, overridable per field."""

    def _make(**overrides) -> IncidentCreate:
        data = {
            "title": "Printer not working",
            "description": "Third floor printer jams on every job",
            "reporter_id": 1,
            "category_id": 2,
            "priority_id": 1,
        }
        data.update(overrides)
        return IncidentCreate(**data)

    return _make
