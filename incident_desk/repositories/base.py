"""
Incident persistence gateway contract.

The lifecycle service only talks to storage through this protocol.
Status-sensitive writes take `expected_status`: the write applies only
while the stored status still equals it, and reports False otherwise.
"""

from typing import Any, Dict, List, Optional, Protocol

from ..models.incident import Incident, IncidentFilters, IncidentStatus, NewIncident, StatisticsFilters
from ..models.statistics import IncidentStatistics


class IncidentGateway(Protocol):

    async def create(self, record: NewIncident) -> int:
        ...

    async def get_by_id(self, incident_id: int, include_relations: bool = False) -> Optional[Incident]:
        ...

    async def list(self, filters: IncidentFilters, include_relations: bool = False) -> List[Incident]:
        ...

    async def update(
        self,
        incident_id: int,
        fields: Dict[str, Any],
        expected_status: Optional[IncidentStatus] = None,
    ) -> bool:
        ...

    async def change_status(
        self,
        incident_id: int,
        status: IncidentStatus,
        expected_status: Optional[IncidentStatus] = None,
    ) -> bool:
        ...

    async def assign(
        self,
        incident_id: int,
        assignee_id: Optional[int],
        expected_status: Optional[IncidentStatus] = None,
        new_status: Optional[IncidentStatus] = None,
    ) -> bool:
        ...

    async def delete(self, incident_id: int, expected_status: Optional[IncidentStatus] = None) -> bool:
        ...

    async def statistics(self, filters: StatisticsFilters) -> IncidentStatistics:
        ...
