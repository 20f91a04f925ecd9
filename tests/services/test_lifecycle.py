"""Tests for IncidentLifecycleService: create, transitions, assignment, deletion, statistics."""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from incident_desk.errors import ConflictError, InfrastructureError, NotFoundError, ValidationError
from incident_desk.models import (
    IncidentFilters,
    IncidentStatus,
    IncidentUpdate,
    StatisticsFilters,
)
from incident_desk.repositories import InMemoryIncidentGateway
from incident_desk.services import IncidentLifecycleService

OPEN = IncidentStatus.OPEN
IN_PROGRESS = IncidentStatus.IN_PROGRESS
CLOSED = IncidentStatus.CLOSED


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class RacingGateway(InMemoryIncidentGateway):
    """Moves the incident to `race_to` right after the next read returns."""

    race_to = None

    async def get_by_id(self, incident_id, include_relations=False):
        incident = await super().get_by_id(incident_id, include_relations)
        if self.race_to is not None and incident is not None:
            race_to, self.race_to = self.race_to, None
            await super().change_status(incident_id, race_to)
        return incident


async def _incident_in(service, make_input, status):
    incident_id = await service.create(make_input())
    if status == IN_PROGRESS:
        await service.change_status(incident_id, IN_PROGRESS)
    elif status == CLOSED:
        await service.change_status(incident_id, CLOSED)
    return incident_id


# ---------------------------------------------------------------------------
# Create / read
# ---------------------------------------------------------------------------

class TestCreate:

    @pytest.mark.asyncio
    async def test_round_trip_with_defaults(self, service, make_input, clock):
        incident_id = await service.create(make_input(
            title="  Printer not working ",
            description="  Paper jam  ",
        ))

        incident = await service.get_by_id(incident_id)
        assert incident.id == incident_id
        assert incident.title == "Printer not working"
        assert incident.description == "Paper jam"
        assert incident.status == OPEN
        assert incident.assignee_id is None
        assert incident.reporter_id == 1
        assert incident.category_id == 2
        assert incident.priority_id == 1
        assert incident.created_at == incident.updated_at == clock.now

    @pytest.mark.asyncio
    async def test_explicit_status_and_assignee(self, service, make_input):
        incident_id = await service.create(make_input(status="in_progress", assignee_id=5))

        incident = await service.get_by_id(incident_id)
        assert incident.status == IN_PROGRESS
        assert incident.assignee_id == 5

    @pytest.mark.asyncio
    async def test_reporter_cannot_be_assignee(self, service, make_input, gateway):
        with pytest.raises(ValidationError, match="reporter"):
            await service.create(make_input(reporter_id=5, assignee_id=5))
        assert await gateway.list(IncidentFilters()) == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("length,ok", [(4, False), (5, True), (150, True), (151, False)])
    async def test_title_length_boundaries(self, service, make_input, length, ok):
        data = make_input(title="T" * length)
        if ok:
            assert await service.create(data) > 0
        else:
            with pytest.raises(ValidationError):
                await service.create(data)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("field", ["reporter_id", "category_id", "priority_id", "assignee_id"])
    async def test_ids_must_be_positive(self, service, make_input, field):
        with pytest.raises(ValidationError, match=field):
            await service.create(make_input(**{field: 0}))

    @pytest.mark.asyncio
    async def test_description_too_long(self, service, make_input):
        with pytest.raises(ValidationError):
            await service.create(make_input(description="x" * 5001))


class TestRead:

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, service):
        assert await service.get_by_id(404) is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("bad_id", [0, -3])
    async def test_get_rejects_bad_id(self, service, bad_id):
        with pytest.raises(ValidationError):
            await service.get_by_id(bad_id)

    @pytest.mark.asyncio
    async def test_get_with_relations(self, service, make_input):
        incident_id = await service.create(make_input(assignee_id=5))

        incident = await service.get_by_id(incident_id, include_relations=True)
        assert incident.reporter.name == "Ana Reporter"
        assert incident.assignee.email == "sam@example.com"
        assert incident.category.name == "Hardware"
        assert incident.priority.color == "#FF6B6B"

        bare = await service.get_by_id(incident_id)
        assert bare.reporter is None and bare.category is None

    @pytest.mark.asyncio
    async def test_list_newest_first(self, service, make_input, clock):
        first = await service.create(make_input(title="First incident"))
        clock.advance(minutes=5)
        second = await service.create(make_input(title="Second incident"))

        incidents = await service.list()
        assert [i.id for i in incidents] == [second, first]

    @pytest.mark.asyncio
    async def test_list_filters(self, service, make_input, clock):
        a = await service.create(make_input(category_id=2, priority_id=1))
        clock.advance(hours=1)
        b = await service.create(make_input(category_id=3, priority_id=4, reporter_id=6))
        await service.assign(b, 5)

        assert [i.id for i in await service.list(IncidentFilters(category_id=3))] == [b]
        assert [i.id for i in await service.list(IncidentFilters(status=OPEN))] == [a]
        assert [i.id for i in await service.list(IncidentFilters(assignee_id=5))] == [b]
        assert [i.id for i in await service.list(IncidentFilters(reporter_id=1))] == [a]

        window = IncidentFilters(date_from=clock.now - timedelta(minutes=30), date_to=clock.now)
        assert [i.id for i in await service.list(window)] == [b]

    @pytest.mark.asyncio
    async def test_list_rejects_bad_filters(self, service):
        with pytest.raises(ValidationError):
            await service.list(IncidentFilters(priority_id=0))

        with pytest.raises(ValidationError, match="Start date"):
            await service.list(IncidentFilters.model_validate({
                "from": "2024-03-05T00:00:00",
                "to": "2024-03-01T00:00:00",
            }))

    @pytest.mark.asyncio
    async def test_list_by_shortcuts(self, service, make_input):
        incident_id = await service.create(make_input(reporter_id=1, category_id=3, priority_id=4))
        await service.assign(incident_id, 6)

        assert [i.id for i in await service.list_by_reporter(1)] == [incident_id]
        assert [i.id for i in await service.list_by_assignee(6, IN_PROGRESS)] == [incident_id]
        assert await service.list_by_assignee(6, OPEN) == []
        assert [i.id for i in await service.list_by_category(3)] == [incident_id]
        assert [i.id for i in await service.list_by_priority(4)] == [incident_id]

        with pytest.raises(ValidationError):
            await service.list_by_category(0)


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------

class TestUpdate:

    @pytest.mark.asyncio
    async def test_only_supplied_fields_change(self, service, make_input, clock):
        incident_id = await service.create(make_input(assignee_id=5))
        clock.advance(minutes=10)

        assert await service.update(incident_id, IncidentUpdate(title="  Printer fixed, toner swapped ", priority_id=4))

        incident = await service.get_by_id(incident_id)
        assert incident.title == "Printer fixed, toner swapped"
        assert incident.priority_id == 4
        assert incident.category_id == 2
        assert incident.assignee_id == 5
        assert incident.updated_at == clock.now
        assert incident.created_at < incident.updated_at

    @pytest.mark.asyncio
    async def test_explicit_none_unassigns(self, service, make_input):
        incident_id = await service.create(make_input(assignee_id=5))

        await service.update(incident_id, IncidentUpdate(assignee_id=None))

        assert (await service.get_by_id(incident_id)).assignee_id is None

    @pytest.mark.asyncio
    async def test_revalidates_fields(self, service, make_input):
        incident_id = await service.create(make_input())

        with pytest.raises(ValidationError):
            await service.update(incident_id, IncidentUpdate(title="abc"))
        with pytest.raises(ValidationError):
            await service.update(incident_id, IncidentUpdate(category_id=-1))
        with pytest.raises(ValidationError):
            await service.update(incident_id, IncidentUpdate(description="x" * 5001))

    @pytest.mark.asyncio
    async def test_status_follows_transition_table(self, service, make_input):
        incident_id = await service.create(make_input())

        with pytest.raises(ValidationError):
            await service.update(incident_id, IncidentUpdate(status=OPEN))

        await service.update(incident_id, IncidentUpdate(status=CLOSED))
        with pytest.raises(ValidationError):
            await service.update(incident_id, IncidentUpdate(status=IN_PROGRESS))

    @pytest.mark.asyncio
    async def test_missing_incident(self, service):
        with pytest.raises(NotFoundError):
            await service.update(99, IncidentUpdate(title="Valid title"))


class TestChangeStatus:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("start", [OPEN, IN_PROGRESS, CLOSED])
    @pytest.mark.parametrize("target", [OPEN, IN_PROGRESS, CLOSED])
    async def test_every_pair(self, service, make_input, start, target):
        incident_id = await _incident_in(service, make_input, start)
        allowed = {
            OPEN: {IN_PROGRESS, CLOSED},
            IN_PROGRESS: {OPEN, CLOSED},
            CLOSED: {OPEN},
        }[start]

        if target in allowed:
            assert await service.change_status(incident_id, target) is True
            assert (await service.get_by_id(incident_id)).status == target
        else:
            with pytest.raises(ValidationError):
                await service.change_status(incident_id, target)
            assert (await service.get_by_id(incident_id)).status == start

    @pytest.mark.asyncio
    async def test_missing_incident(self, service):
        with pytest.raises(NotFoundError):
            await service.change_status(12, CLOSED)

    @pytest.mark.asyncio
    async def test_unknown_status(self, service, make_input):
        incident_id = await service.create(make_input())
        with pytest.raises(ValidationError):
            await service.change_status(incident_id, "resolved")


class TestAssign:

    @pytest.mark.asyncio
    async def test_first_assignment_starts_work(self, service, make_input):
        incident_id = await service.create(make_input())

        assert await service.assign(incident_id, 5) is True

        incident = await service.get_by_id(incident_id)
        assert incident.status == IN_PROGRESS
        assert incident.assignee_id == 5

    @pytest.mark.asyncio
    async def test_reassignment_keeps_status(self, service, make_input):
        incident_id = await service.create(make_input(assignee_id=5))

        await service.assign(incident_id, 6)

        incident = await service.get_by_id(incident_id)
        assert incident.status == OPEN
        assert incident.assignee_id == 6

    @pytest.mark.asyncio
    async def test_unassigned_in_progress_stays_in_progress(self, service, make_input):
        incident_id = await _incident_in(service, make_input, IN_PROGRESS)

        await service.assign(incident_id, 5)

        incident = await service.get_by_id(incident_id)
        assert incident.status == IN_PROGRESS
        assert incident.assignee_id == 5

    @pytest.mark.asyncio
    @pytest.mark.parametrize("assignee", [None, 5])
    async def test_unassign_always_allowed_while_not_closed(self, service, make_input, assignee):
        for status in (OPEN, IN_PROGRESS):
            incident_id = await _incident_in(service, make_input, status)
            if assignee is not None:
                await service.assign(incident_id, assignee)

            assert await service.assign(incident_id, None) is True
            assert (await service.get_by_id(incident_id)).assignee_id is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("assignee", [None, 5])
    async def test_closed_rejects_assignment(self, service, make_input, assignee):
        incident_id = await _incident_in(service, make_input, CLOSED)

        with pytest.raises(ValidationError, match="closed"):
            await service.assign(incident_id, assignee)

    @pytest.mark.asyncio
    async def test_missing_incident(self, service):
        with pytest.raises(NotFoundError):
            await service.assign(77, 5)


class TestDelete:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [OPEN, IN_PROGRESS])
    async def test_requires_closed(self, service, make_input, status):
        incident_id = await _incident_in(service, make_input, status)

        with pytest.raises(ValidationError, match="closed"):
            await service.delete(incident_id)
        assert await service.get_by_id(incident_id) is not None

    @pytest.mark.asyncio
    async def test_closed_is_removed(self, service, make_input):
        incident_id = await _incident_in(service, make_input, CLOSED)

        assert await service.delete(incident_id) is True
        assert await service.get_by_id(incident_id) is None

    @pytest.mark.asyncio
    async def test_missing_incident(self, service):
        with pytest.raises(NotFoundError):
            await service.delete(3)


# ---------------------------------------------------------------------------
# Races and storage failures
# ---------------------------------------------------------------------------

class TestConflicts:

    @pytest.mark.asyncio
    async def test_stale_status_change_conflicts(self, clock, make_input):
        gateway = RacingGateway(clock=clock)
        service = IncidentLifecycleService(gateway)
        incident_id = await service.create(make_input())

        gateway.race_to = IN_PROGRESS
        with pytest.raises(ConflictError):
            await service.change_status(incident_id, CLOSED)

        assert (await service.get_by_id(incident_id)).status == IN_PROGRESS

    @pytest.mark.asyncio
    async def test_stale_assignment_conflicts(self, clock, make_input):
        gateway = RacingGateway(clock=clock)
        service = IncidentLifecycleService(gateway)
        incident_id = await service.create(make_input())

        gateway.race_to = CLOSED
        with pytest.raises(ConflictError):
            await service.assign(incident_id, 5)

        incident = await service.get_by_id(incident_id)
        assert incident.status == CLOSED
        assert incident.assignee_id is None

    @pytest.mark.asyncio
    async def test_conflict_is_a_validation_error(self):
        assert issubclass(ConflictError, ValidationError)


class TestInfrastructureErrors:

    @pytest.mark.asyncio
    async def test_gateway_failure_is_wrapped(self, make_input):
        repo = AsyncMock()
        repo.create.side_effect = RuntimeError("connection refused")
        service = IncidentLifecycleService(repo)

        with pytest.raises(InfrastructureError) as excinfo:
            await service.create(make_input())
        assert isinstance(excinfo.value.__cause__, RuntimeError)

    @pytest.mark.asyncio
    async def test_read_failure_is_wrapped(self):
        repo = AsyncMock()
        repo.get_by_id.side_effect = OSError("disk gone")
        service = IncidentLifecycleService(repo)

        with pytest.raises(InfrastructureError):
            await service.change_status(1, CLOSED)

    @pytest.mark.asyncio
    async def test_validation_happens_before_storage(self, make_input):
        repo = AsyncMock()
        service = IncidentLifecycleService(repo)

        with pytest.raises(ValidationError):
            await service.create(make_input(title="bad"))
        repo.create.assert_not_awaited()


# ---------------------------------------------------------------------------
# End-to-end walk through the lifecycle
# ---------------------------------------------------------------------------

class TestScenario:

    @pytest.mark.asyncio
    async def test_printer_incident(self, service, make_input):
        a = await service.create(make_input(
            title="Printer not working", reporter_id=1, category_id=2, priority_id=1,
        ))
        incident = await service.get_by_id(a)
        assert incident.status == OPEN
        assert incident.assignee_id is None

        await service.assign(a, 5)
        incident = await service.get_by_id(a)
        assert incident.status == IN_PROGRESS
        assert incident.assignee_id == 5

        assert await service.change_status(a, CLOSED)
        assert await service.delete(a)

        b = await service.create(make_input())
        with pytest.raises(ValidationError):
            await service.change_status(b, OPEN)
        assert await service.change_status(b, IN_PROGRESS)
        with pytest.raises(ValidationError):
            await service.change_status(b, IN_PROGRESS)


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------

class TestStatistics:

    @pytest.mark.asyncio
    async def test_empty(self, service):
        stats = await service.statistics()
        assert stats.total == 0
        assert stats.by_category == {}
        assert stats.average_resolution_hours is None

    @pytest.mark.asyncio
    async def test_no_closed_means_no_average(self, service, make_input):
        await service.create(make_input())
        await _incident_in(service, make_input, IN_PROGRESS)

        stats = await service.statistics()
        assert stats.total == 2
        assert stats.open == 1
        assert stats.in_progress == 1
        assert stats.closed == 0
        assert stats.average_resolution_hours is None

    @pytest.mark.asyncio
    async def test_resolution_hours(self, service, make_input, clock):
        incident_id = await service.create(make_input())
        clock.advance(hours=3)
        await service.change_status(incident_id, CLOSED)

        stats = await service.statistics()
        assert stats.closed == 1
        assert stats.average_resolution_hours == 3.0

    @pytest.mark.asyncio
    async def test_groups_and_filters(self, service, make_input, clock):
        await service.create(make_input(category_id=2, priority_id=1))
        await service.create(make_input(category_id=3, priority_id=4, reporter_id=6))
        await service.create(make_input(category_id=99, priority_id=98))

        stats = await service.statistics()
        assert stats.by_category == {"Hardware": 1, "Network": 1, "uncategorized": 1}
        assert stats.by_priority == {"High": 1, "Low": 1, "unprioritized": 1}

        by_reporter = await service.statistics(StatisticsFilters(reporter_id=6))
        assert by_reporter.total == 1
        assert by_reporter.by_category == {"Network": 1}

        future = await service.statistics(StatisticsFilters(date_from=clock.now + timedelta(days=1)))
        assert future.total == 0

    @pytest.mark.asyncio
    async def test_rejects_bad_filters(self, service):
        with pytest.raises(ValidationError):
            await service.statistics(StatisticsFilters(reporter_id=-1))
        with pytest.raises(ValidationError):
            await service.statistics(StatisticsFilters.model_validate({
                "from": "2024-03-05T00:00:00",
                "to": "2024-03-01T00:00:00",
            }))
