"""
In-memory incident gateway.

Used by tests and by `storage_backend=memory`. Behaves like the SQL
gateway: ids start at 1, timestamps come from the gateway clock, and
conditional writes match on the stored status.
"""

import asyncio
from itertools import count
from typing import Any, Callable, Dict, Iterable, List, Optional

from ..models.incident import (
    CategorySummary,
    Incident,
    IncidentFilters,
    IncidentStatus,
    NewIncident,
    PrioritySummary,
    StatisticsFilters,
    UserSummary,
    utcnow,
)
from ..models.statistics import IncidentStatistics, StatisticsRow

UPDATABLE_FIELDS = {"title", "description", "status", "assignee_id", "category_id", "priority_id"}


class InMemoryIncidentGateway:
    """
    Dict-backed gateway.

    Reference data (users, categories, priorities) is only used to
    hydrate relations and to name statistics groups.
    """

    def __init__(
        self,
        users: Optional[Iterable[UserSummary]] = None,
        categories: Optional[Iterable[CategorySummary]] = None,
        priorities: Optional[Iterable[PrioritySummary]] = None,
        clock: Callable[[], Any] = utcnow,
    ):
        self.users = {u.id: u for u in users or []}
        self.categories = {c.id: c for c in categories or []}
        self.priorities = {p.id: p for p in priorities or []}
        self.clock = clock

        self._incidents: Dict[int, Incident] = {}
        self._ids = count(1)
        self._lock = asyncio.Lock()

    # =========================================================================
    # Writes
    # =========================================================================

    async def create(self, record: NewIncident) -> int:
        async with self._lock:
            now = self.clock()
            incident_id = next(self._ids)
            self._incidents[incident_id] = Incident(
                id=incident_id,
                created_at=now,
                updated_at=now,
                **record.model_dump(),
            )
            return incident_id

    async def update(
        self,
        incident_id: int,
        fields: Dict[str, Any],
        expected_status: Optional[IncidentStatus] = None,
    ) -> bool:
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise KeyError(f"Not updatable: {sorted(unknown)}")

        async with self._lock:
            incident = self._matching(incident_id, expected_status)
            if incident is None:
                return False
            if not fields:
                return True
            self._incidents[incident_id] = incident.model_copy(
                update={**fields, "updated_at": self.clock()}
            )
            return True

    async def change_status(
        self,
        incident_id: int,
        status: IncidentStatus,
        expected_status: Optional[IncidentStatus] = None,
    ) -> bool:
        return await self.update(incident_id, {"status": status}, expected_status)

    async def assign(
        self,
        incident_id: int,
        assignee_id: Optional[int],
        expected_status: Optional[IncidentStatus] = None,
        new_status: Optional[IncidentStatus] = None,
    ) -> bool:
        fields: Dict[str, Any] = {"assignee_id": assignee_id}
        if new_status is not None:
            fields["status"] = new_status
        return await self.update(incident_id, fields, expected_status)

    async def delete(self, incident_id: int, expected_status: Optional[IncidentStatus] = None) -> bool:
        async with self._lock:
            if self._matching(incident_id, expected_status) is None:
                return False
            del self._incidents[incident_id]
            return True

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_by_id(self, incident_id: int, include_relations: bool = False) -> Optional[Incident]:
        incident = self._incidents.get(incident_id)
        if incident is None:
            return None
        return self._to_result(incident, include_relations)

    async def list(self, filters: IncidentFilters, include_relations: bool = False) -> List[Incident]:
        matched = [
            incident for incident in self._incidents.values()
            if self._matches_filters(incident, filters)
        ]
        matched.sort(key=lambda i: (i.created_at, i.id), reverse=True)
        return [self._to_result(i, include_relations) for i in matched]

    async def statistics(self, filters: StatisticsFilters) -> IncidentStatistics:
        listing = IncidentFilters(
            reporter_id=filters.reporter_id,
            category_id=filters.category_id,
            date_from=filters.date_from,
            date_to=filters.date_to,
        )
        rows = []
        for incident in self._incidents.values():
            if not self._matches_filters(incident, listing):
                continue
            category = self.categories.get(incident.category_id)
            priority = self.priorities.get(incident.priority_id)
            rows.append(StatisticsRow(
                status=incident.status,
                category_name=category.name if category else None,
                priority_name=priority.name if priority else None,
                created_at=incident.created_at,
                updated_at=incident.updated_at,
            ))
        return IncidentStatistics.from_rows(rows)

    # =========================================================================
    # Private helpers
    # =========================================================================

    def _matching(self, incident_id: int, expected_status: Optional[IncidentStatus]) -> Optional[Incident]:
        incident = self._incidents.get(incident_id)
        if incident is None:
            return None
        if expected_status is not None and incident.status != expected_status:
            return None
        return incident

    @staticmethod
    def _matches_filters(incident: Incident, filters: IncidentFilters) -> bool:
        if filters.status is not None and incident.status != filters.status:
            return False
        if filters.reporter_id is not None and incident.reporter_id != filters.reporter_id:
            return False
        if filters.assignee_id is not None and incident.assignee_id != filters.assignee_id:
            return False
        if filters.category_id is not None and incident.category_id != filters.category_id:
            return False
        if filters.priority_id is not None and incident.priority_id != filters.priority_id:
            return False
        if filters.date_from is not None and incident.created_at < filters.date_from:
            return False
        if filters.date_to is not None and incident.created_at > filters.date_to:
            return False
        return True

    def _to_result(self, incident: Incident, include_relations: bool) -> Incident:
        result = incident.model_copy(deep=True)
        if include_relations:
            result.reporter = self.users.get(incident.reporter_id)
            result.assignee = self.users.get(incident.assignee_id) if incident.assignee_id else None
            result.category = self.categories.get(incident.category_id)
            result.priority = self.priorities.get(incident.priority_id)
        return result
