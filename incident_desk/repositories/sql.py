"""
SQL incident gateway (SQLAlchemy asyncio).

One session per operation. Status-sensitive writes are single
conditional UPDATE/DELETE statements, so a stale read in the service
turns into a zero-row write instead of a lost update.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import delete as sql_delete
from sqlalchemy import select
from sqlalchemy import update as sql_update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import joinedload

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
from .tables import CategoryRow, IncidentRow, PriorityRow, UserRow

UPDATABLE_FIELDS = {"title", "description", "status", "assignee_id", "category_id", "priority_id"}


class SqlIncidentGateway:

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    # =========================================================================
    # Writes
    # =========================================================================

    async def create(self, record: NewIncident) -> int:
        now = utcnow()
        async with self._session_factory() as session:
            row = IncidentRow(
                title=record.title,
                description=record.description,
                status=IncidentStatus(record.status).value,
                reporter_id=record.reporter_id,
                assignee_id=record.assignee_id,
                category_id=record.category_id,
                priority_id=record.priority_id,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            await session.flush()
            incident_id = row.id
            await session.commit()
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
        if not fields:
            return await self._exists(incident_id, expected_status)

        values = {
            key: value.value if isinstance(value, IncidentStatus) else value
            for key, value in fields.items()
        }
        values["updated_at"] = utcnow()

        stmt = sql_update(IncidentRow).where(IncidentRow.id == incident_id)
        if expected_status is not None:
            stmt = stmt.where(IncidentRow.status == IncidentStatus(expected_status).value)

        async with self._session_factory() as session:
            result = await session.execute(stmt.values(**values))
            matched = result.rowcount
            await session.commit()
        return matched > 0

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
        stmt = sql_delete(IncidentRow).where(IncidentRow.id == incident_id)
        if expected_status is not None:
            stmt = stmt.where(IncidentRow.status == IncidentStatus(expected_status).value)

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            matched = result.rowcount
            await session.commit()
        return matched > 0

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_by_id(self, incident_id: int, include_relations: bool = False) -> Optional[Incident]:
        stmt = select(IncidentRow).where(IncidentRow.id == incident_id)
        if include_relations:
            stmt = stmt.options(*self._relation_options())

        async with self._session_factory() as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
            return self._to_domain(row, include_relations) if row else None

    async def list(self, filters: IncidentFilters, include_relations: bool = False) -> List[Incident]:
        stmt = select(IncidentRow)
        if include_relations:
            stmt = stmt.options(*self._relation_options())

        if filters.status is not None:
            stmt = stmt.where(IncidentRow.status == IncidentStatus(filters.status).value)
        if filters.reporter_id is not None:
            stmt = stmt.where(IncidentRow.reporter_id == filters.reporter_id)
        if filters.assignee_id is not None:
            stmt = stmt.where(IncidentRow.assignee_id == filters.assignee_id)
        if filters.category_id is not None:
            stmt = stmt.where(IncidentRow.category_id == filters.category_id)
        if filters.priority_id is not None:
            stmt = stmt.where(IncidentRow.priority_id == filters.priority_id)
        if filters.date_from is not None:
            stmt = stmt.where(IncidentRow.created_at >= filters.date_from)
        if filters.date_to is not None:
            stmt = stmt.where(IncidentRow.created_at <= filters.date_to)

        stmt = stmt.order_by(IncidentRow.created_at.desc(), IncidentRow.id.desc())

        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [self._to_domain(row, include_relations) for row in rows]

    async def statistics(self, filters: StatisticsFilters) -> IncidentStatistics:
        stmt = (
            select(
                IncidentRow.status,
                CategoryRow.name,
                PriorityRow.name,
                IncidentRow.created_at,
                IncidentRow.updated_at,
            )
            .outerjoin(CategoryRow, IncidentRow.category_id == CategoryRow.id)
            .outerjoin(PriorityRow, IncidentRow.priority_id == PriorityRow.id)
        )
        if filters.date_from is not None:
            stmt = stmt.where(IncidentRow.created_at >= filters.date_from)
        if filters.date_to is not None:
            stmt = stmt.where(IncidentRow.created_at <= filters.date_to)
        if filters.reporter_id is not None:
            stmt = stmt.where(IncidentRow.reporter_id == filters.reporter_id)
        if filters.category_id is not None:
            stmt = stmt.where(IncidentRow.category_id == filters.category_id)

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            rows = [
                StatisticsRow(
                    status=IncidentStatus(status),
                    category_name=category_name,
                    priority_name=priority_name,
                    created_at=created_at,
                    updated_at=updated_at,
                )
                for status, category_name, priority_name, created_at, updated_at in result.all()
            ]
        return IncidentStatistics.from_rows(rows)

    # =========================================================================
    # Private helpers
    # =========================================================================

    async def _exists(self, incident_id: int, expected_status: Optional[IncidentStatus]) -> bool:
        stmt = select(IncidentRow.id).where(IncidentRow.id == incident_id)
        if expected_status is not None:
            stmt = stmt.where(IncidentRow.status == IncidentStatus(expected_status).value)
        async with self._session_factory() as session:
            return (await session.execute(stmt)).scalar_one_or_none() is not None

    @staticmethod
    def _relation_options():
        return (
            joinedload(IncidentRow.reporter),
            joinedload(IncidentRow.assignee),
            joinedload(IncidentRow.category),
            joinedload(IncidentRow.priority),
        )

    @staticmethod
    def _to_domain(row: IncidentRow, include_relations: bool = False) -> Incident:
        incident = Incident(
            id=row.id,
            title=row.title,
            description=row.description,
            status=IncidentStatus(row.status),
            reporter_id=row.reporter_id,
            assignee_id=row.assignee_id,
            category_id=row.category_id,
            priority_id=row.priority_id,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

        if include_relations:
            if row.reporter is not None:
                incident.reporter = _user_summary(row.reporter)
            if row.assignee is not None:
                incident.assignee = _user_summary(row.assignee)
            if row.category is not None:
                incident.category = CategorySummary(
                    id=row.category.id,
                    name=row.category.name,
                    description=row.category.description,
                )
            if row.priority is not None:
                incident.priority = PrioritySummary(
                    id=row.priority.id,
                    name=row.priority.name,
                    level=row.priority.level,
                    color=row.priority.color,
                )

        return incident


def _user_summary(row: UserRow) -> UserSummary:
    return UserSummary(id=row.id, name=row.name, email=row.email, role=row.role)
