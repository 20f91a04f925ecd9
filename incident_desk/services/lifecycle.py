"""
Incident Desk Lifecycle Service

The only path from raw input to a stored incident.

Lifecycle:
    open <-> in_progress -> closed -> open (reopen)
                 open  -> closed

Assignment starts the work: the first assignee on an open incident
moves it to in_progress in the same write. Closed incidents cannot be
assigned, and only closed incidents can be deleted.
"""

from typing import List, Optional

from ..errors import ConflictError, IncidentDeskError, InfrastructureError, NotFoundError, ValidationError
from ..models.incident import (
    Incident,
    IncidentCreate,
    IncidentFilters,
    IncidentStatus,
    IncidentUpdate,
    NewIncident,
    StatisticsFilters,
)
from ..models.statistics import IncidentStatistics
from ..utils.logging import get_logger
from . import rules

logger = get_logger("incident_desk.services.lifecycle")


class IncidentLifecycleService:
    """
    Enforces the incident business rules.

    Rules:
    1. Input is validated and normalized before any write
    2. Status only moves along rules.VALID_TRANSITIONS
    3. Reporter and assignee differ at creation
    4. Closed incidents cannot be (un)assigned
    5. Only closed incidents can be deleted
    6. Status-sensitive writes are conditional on the status we validated
       against; losing that race raises ConflictError
    """

    def __init__(self, incident_repo):
        self.incident_repo = incident_repo

    # =========================================================================
    # Create / read
    # =========================================================================

    async def create(self, data: IncidentCreate) -> int:
        """
        File a new incident.

        Status defaults to open and the assignee to nobody. Returns the
        new incident id.
        """
        title = rules.validate_title(data.title)
        description = rules.validate_description(data.description)
        reporter_id = rules.validate_positive_id(data.reporter_id, "reporter_id")
        category_id = rules.validate_positive_id(data.category_id, "category_id")
        priority_id = rules.validate_positive_id(data.priority_id, "priority_id")
        assignee_id = rules.validate_optional_id(data.assignee_id, "assignee_id")
        status = (
            rules.validate_status(data.status)
            if data.status is not None
            else IncidentStatus.OPEN
        )

        if assignee_id is not None and assignee_id == reporter_id:
            raise ValidationError("The reporter cannot be assigned to their own incident")

        record = NewIncident(
            title=title,
            description=description,
            status=status,
            reporter_id=reporter_id,
            assignee_id=assignee_id,
            category_id=category_id,
            priority_id=priority_id,
        )
        incident_id = await self._gateway("create", self.incident_repo.create(record))

        logger.info(
            "incident_created",
            id=incident_id,
            reporter_id=reporter_id,
            status=status.value,
        )
        return incident_id

    async def get_by_id(self, incident_id: int, include_relations: bool = False) -> Optional[Incident]:
        """Return the incident, or None when it does not exist."""
        rules.validate_positive_id(incident_id, "incident id")
        return await self._gateway(
            "get_by_id",
            self.incident_repo.get_by_id(incident_id, include_relations),
        )

    async def list(
        self,
        filters: Optional[IncidentFilters] = None,
        include_relations: bool = False,
    ) -> List[Incident]:
        """Incidents matching every given filter, newest first."""
        filters = self._validate_filters(filters or IncidentFilters())
        return await self._gateway(
            "list",
            self.incident_repo.list(filters, include_relations),
        )

    async def list_by_reporter(
        self,
        reporter_id: int,
        status: Optional[IncidentStatus] = None,
        include_relations: bool = False,
    ) -> List[Incident]:
        rules.validate_positive_id(reporter_id, "reporter_id")
        return await self.list(IncidentFilters(reporter_id=reporter_id, status=status), include_relations)

    async def list_by_assignee(
        self,
        assignee_id: int,
        status: Optional[IncidentStatus] = None,
        include_relations: bool = False,
    ) -> List[Incident]:
        rules.validate_positive_id(assignee_id, "assignee_id")
        return await self.list(IncidentFilters(assignee_id=assignee_id, status=status), include_relations)

    async def list_by_category(
        self,
        category_id: int,
        status: Optional[IncidentStatus] = None,
        include_relations: bool = False,
    ) -> List[Incident]:
        rules.validate_positive_id(category_id, "category_id")
        return await self.list(IncidentFilters(category_id=category_id, status=status), include_relations)

    async def list_by_priority(
        self,
        priority_id: int,
        status: Optional[IncidentStatus] = None,
        include_relations: bool = False,
    ) -> List[Incident]:
        rules.validate_positive_id(priority_id, "priority_id")
        return await self.list(IncidentFilters(priority_id=priority_id, status=status), include_relations)

    # =========================================================================
    # Mutations
    # =========================================================================

    async def update(self, incident_id: int, changes: IncidentUpdate) -> bool:
        """
        Apply a partial update.

        Every supplied field gets the same checks as on create. A status
        change must be a legal transition from the stored status.
        """
        existing = await self._require(incident_id)
        supplied = changes.supplied()
        fields = {}

        if "title" in supplied:
            fields["title"] = rules.validate_title(supplied["title"])
        if "description" in supplied:
            fields["description"] = rules.validate_description(supplied["description"])
        if "status" in supplied:
            fields["status"] = rules.validate_transition(existing.status, supplied["status"])
        if "assignee_id" in supplied:
            fields["assignee_id"] = rules.validate_optional_id(supplied["assignee_id"], "assignee_id")
        if "category_id" in supplied:
            fields["category_id"] = rules.validate_positive_id(supplied["category_id"], "category_id")
        if "priority_id" in supplied:
            fields["priority_id"] = rules.validate_positive_id(supplied["priority_id"], "priority_id")

        expected_status = existing.status if "status" in fields else None
        updated = await self._gateway(
            "update",
            self.incident_repo.update(incident_id, fields, expected_status=expected_status),
        )
        if not updated:
            await self._raise_lost_write(incident_id, "update")

        logger.info("incident_updated", id=incident_id, fields=sorted(fields))
        return True

    async def change_status(self, incident_id: int, new_status: IncidentStatus) -> bool:
        """Move the incident along the transition table."""
        new_status = rules.validate_status(new_status)
        existing = await self._require(incident_id)
        rules.validate_transition(existing.status, new_status)

        changed = await self._gateway(
            "change_status",
            self.incident_repo.change_status(
                incident_id, new_status, expected_status=existing.status
            ),
        )
        if not changed:
            await self._raise_lost_write(incident_id, "change_status")

        logger.info(
            "incident_status_changed",
            id=incident_id,
            old=existing.status.value,
            new=new_status.value,
        )
        return True

    async def assign(self, incident_id: int, assignee_id: Optional[int]) -> bool:
        """
        Assign (or with None, unassign) a support user.

        The first assignee on an open incident moves it to in_progress.
        """
        assignee_id = rules.validate_optional_id(assignee_id, "assignee_id")
        existing = await self._require(incident_id)

        if existing.status == IncidentStatus.CLOSED:
            raise ValidationError("Cannot assign a closed incident")

        new_status = None
        if (
            assignee_id is not None
            and not existing.is_assigned
            and existing.status != IncidentStatus.IN_PROGRESS
        ):
            new_status = rules.validate_transition(existing.status, IncidentStatus.IN_PROGRESS)

        assigned = await self._gateway(
            "assign",
            self.incident_repo.assign(
                incident_id,
                assignee_id,
                expected_status=existing.status,
                new_status=new_status,
            ),
        )
        if not assigned:
            await self._raise_lost_write(incident_id, "assign")

        logger.info(
            "incident_assigned" if assignee_id is not None else "incident_unassigned",
            id=incident_id,
            assignee_id=assignee_id,
            status=(new_status or existing.status).value,
        )
        return True

    async def delete(self, incident_id: int) -> bool:
        """Remove a closed incident."""
        existing = await self._require(incident_id)
        if existing.status != IncidentStatus.CLOSED:
            raise ValidationError("Only closed incidents can be deleted")

        deleted = await self._gateway(
            "delete",
            self.incident_repo.delete(incident_id, expected_status=IncidentStatus.CLOSED),
        )
        if not deleted:
            await self._raise_lost_write(incident_id, "delete")

        logger.info("incident_deleted", id=incident_id)
        return True

    # =========================================================================
    # Statistics
    # =========================================================================

    async def statistics(self, filters: Optional[StatisticsFilters] = None) -> IncidentStatistics:
        """Counts by status, category and priority plus mean resolution hours."""
        filters = filters or StatisticsFilters()
        rules.validate_optional_id(filters.reporter_id, "reporter_id")
        rules.validate_optional_id(filters.category_id, "category_id")
        date_from, date_to = rules.validate_date_range(filters.date_from, filters.date_to)

        filters = filters.model_copy(update={"date_from": date_from, "date_to": date_to})
        return await self._gateway("statistics", self.incident_repo.statistics(filters))

    # =========================================================================
    # Private helpers
    # =========================================================================

    async def _require(self, incident_id: int) -> Incident:
        rules.validate_positive_id(incident_id, "incident id")
        incident = await self._gateway(
            "get_by_id", self.incident_repo.get_by_id(incident_id)
        )
        if incident is None:
            raise NotFoundError(incident_id)
        return incident

    async def _raise_lost_write(self, incident_id: int, operation: str) -> None:
        """A conditional write matched nothing: gone, or changed under us."""
        current = await self._gateway(
            "get_by_id", self.incident_repo.get_by_id(incident_id)
        )
        if current is None:
            raise NotFoundError(incident_id)

        logger.warning(
            "incident_write_conflict",
            id=incident_id,
            operation=operation,
            status=current.status.value,
        )
        raise ConflictError(
            f"Incident {incident_id} changed while processing {operation} "
            f"(now {current.status.value}). Retry with fresh data."
        )

    @staticmethod
    def _validate_filters(filters: IncidentFilters) -> IncidentFilters:
        if filters.status is not None:
            rules.validate_status(filters.status)
        rules.validate_optional_id(filters.reporter_id, "reporter_id")
        rules.validate_optional_id(filters.assignee_id, "assignee_id")
        rules.validate_optional_id(filters.category_id, "category_id")
        rules.validate_optional_id(filters.priority_id, "priority_id")
        date_from, date_to = rules.validate_date_range(filters.date_from, filters.date_to)
        return filters.model_copy(update={"date_from": date_from, "date_to": date_to})

    @staticmethod
    async def _gateway(operation: str, call):
        """Await a gateway call; anything but a domain error becomes InfrastructureError."""
        try:
            return await call
        except IncidentDeskError:
            raise
        except Exception as exc:
            logger.error(
                "gateway_failure",
                operation=operation,
                error=str(exc),
                exc_info=True,
            )
            raise InfrastructureError(f"Storage failure during {operation}") from exc
