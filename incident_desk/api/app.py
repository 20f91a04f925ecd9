"""
Incident Desk API

FastAPI application with:
- Incident CRUD with lifecycle protection
- Status transitions and assignment
- Filtered listings (by reporter, assignee, category, priority)
- Statistics
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from .. import __version__
from ..config import IncidentDeskConfig, get_config
from ..database import build_engine, build_session_factory, create_tables
from ..errors import ValidationError
from ..models import (
    IncidentCreate,
    IncidentFilters,
    IncidentStatus,
    IncidentUpdate,
    StatisticsFilters,
)
from ..repositories import InMemoryIncidentGateway, SqlIncidentGateway
from ..services import IncidentLifecycleService
from ..utils.logging import get_logger, setup_logging
from .errors import register_error_handlers

logger = get_logger("incident_desk.api")

router = APIRouter()


# =============================================================================
# REQUEST MODELS
# =============================================================================

class ChangeStatusRequest(BaseModel):
    status: IncidentStatus


class AssignIncidentRequest(BaseModel):
    assignee_id: Optional[int]  # null = unassign


# =============================================================================
# DEPENDENCIES
# =============================================================================

def get_incident_service(request: Request) -> IncidentLifecycleService:
    service = getattr(request.app.state, "incident_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Incident service not initialised",
        )
    return service


def wants_relations(include: Optional[str] = None) -> bool:
    return include == "relations"


# =============================================================================
# HEALTH CHECK
# =============================================================================

@router.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "service": "incident-desk",
        "version": __version__,
    }


# =============================================================================
# INCIDENT ENDPOINTS
# =============================================================================

@router.post("/incidents", status_code=status.HTTP_201_CREATED)
async def create_incident(
    request: IncidentCreate,
    service: IncidentLifecycleService = Depends(get_incident_service),
):
    """
    File a new incident.

    Starts open and unassigned unless the body says otherwise.
    """
    incident_id = await service.create(request)
    incident = await service.get_by_id(incident_id)
    return {
        "message": "Incident created",
        "incident_id": incident_id,
        "incident": incident,
    }


@router.get("/incidents")
async def list_incidents(
    status_filter: Optional[IncidentStatus] = Query(None, alias="status"),
    reporter_id: Optional[int] = None,
    assignee_id: Optional[int] = None,
    category_id: Optional[int] = None,
    priority_id: Optional[int] = None,
    date_from: Optional[datetime] = Query(None, alias="from"),
    date_to: Optional[datetime] = Query(None, alias="to"),
    include_relations: bool = Depends(wants_relations),
    service: IncidentLifecycleService = Depends(get_incident_service),
):
    filters = IncidentFilters(
        status=status_filter,
        reporter_id=reporter_id,
        assignee_id=assignee_id,
        category_id=category_id,
        priority_id=priority_id,
        date_from=date_from,
        date_to=date_to,
    )
    incidents = await service.list(filters, include_relations)
    return {
        "message": "Incidents retrieved",
        "count": len(incidents),
        "incidents": incidents,
    }


@router.get("/incidents/statistics")
async def incident_statistics(
    date_from: Optional[datetime] = Query(None, alias="from"),
    date_to: Optional[datetime] = Query(None, alias="to"),
    reporter_id: Optional[int] = None,
    category_id: Optional[int] = None,
    service: IncidentLifecycleService = Depends(get_incident_service),
):
    stats = await service.statistics(StatisticsFilters(
        date_from=date_from,
        date_to=date_to,
        reporter_id=reporter_id,
        category_id=category_id,
    ))
    return {"message": "Statistics retrieved", "statistics": stats}


@router.get("/incidents/user/{reporter_id}")
async def incidents_by_reporter(
    reporter_id: int,
    status_filter: Optional[IncidentStatus] = Query(None, alias="status"),
    include_relations: bool = Depends(wants_relations),
    service: IncidentLifecycleService = Depends(get_incident_service),
):
    incidents = await service.list_by_reporter(reporter_id, status_filter, include_relations)
    return {"message": "Reporter incidents retrieved", "count": len(incidents), "incidents": incidents}


@router.get("/incidents/support/{assignee_id}")
async def incidents_by_assignee(
    assignee_id: int,
    status_filter: Optional[IncidentStatus] = Query(None, alias="status"),
    include_relations: bool = Depends(wants_relations),
    service: IncidentLifecycleService = Depends(get_incident_service),
):
    incidents = await service.list_by_assignee(assignee_id, status_filter, include_relations)
    return {"message": "Assignee incidents retrieved", "count": len(incidents), "incidents": incidents}


@router.get("/incidents/category/{category_id}")
async def incidents_by_category(
    category_id: int,
    status_filter: Optional[IncidentStatus] = Query(None, alias="status"),
    include_relations: bool = Depends(wants_relations),
    service: IncidentLifecycleService = Depends(get_incident_service),
):
    incidents = await service.list_by_category(category_id, status_filter, include_relations)
    return {"message": "Category incidents retrieved", "count": len(incidents), "incidents": incidents}


@router.get("/incidents/priority/{priority_id}")
async def incidents_by_priority(
    priority_id: int,
    status_filter: Optional[IncidentStatus] = Query(None, alias="status"),
    include_relations: bool = Depends(wants_relations),
    service: IncidentLifecycleService = Depends(get_incident_service),
):
    incidents = await service.list_by_priority(priority_id, status_filter, include_relations)
    return {"message": "Priority incidents retrieved", "count": len(incidents), "incidents": incidents}


@router.get("/incidents/{incident_id}")
async def get_incident(
    incident_id: int,
    include_relations: bool = Depends(wants_relations),
    service: IncidentLifecycleService = Depends(get_incident_service),
):
    incident = await service.get_by_id(incident_id, include_relations)
    if incident is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Incident not found")
    return {"message": "Incident found", "incident": incident}


@router.put("/incidents/{incident_id}")
async def update_incident(
    incident_id: int,
    request: IncidentUpdate,
    service: IncidentLifecycleService = Depends(get_incident_service),
):
    """Partial update; only the fields present in the body are touched."""
    if not request.model_fields_set:
        raise ValidationError("Provide at least one field to update")

    await service.update(incident_id, request)
    incident = await service.get_by_id(incident_id)
    return {"message": "Incident updated", "incident": incident}


@router.patch("/incidents/{incident_id}/status")
async def change_incident_status(
    incident_id: int,
    request: ChangeStatusRequest,
    service: IncidentLifecycleService = Depends(get_incident_service),
):
    await service.change_status(incident_id, request.status)
    incident = await service.get_by_id(incident_id)
    return {"message": "Incident status changed", "incident": incident}


@router.patch("/incidents/{incident_id}/assign")
async def assign_incident(
    incident_id: int,
    request: AssignIncidentRequest,
    service: IncidentLifecycleService = Depends(get_incident_service),
):
    """
    Assign or unassign a support user.

    First assignment moves an open incident to in_progress.
    """
    await service.assign(incident_id, request.assignee_id)
    incident = await service.get_by_id(incident_id)
    message = "Incident assigned" if request.assignee_id is not None else "Incident unassigned"
    return {"message": message, "incident": incident}


@router.delete("/incidents/{incident_id}")
async def delete_incident(
    incident_id: int,
    service: IncidentLifecycleService = Depends(get_incident_service),
):
    """Only closed incidents can be deleted."""
    await service.delete(incident_id)
    return {"message": "Incident deleted", "incident_id": incident_id}


# =============================================================================
# APP SETUP
# =============================================================================

def create_app(
    service: Optional[IncidentLifecycleService] = None,
    config: Optional[IncidentDeskConfig] = None,
) -> FastAPI:
    """
    Build the application.

    Pass a ready service to skip storage wiring (tests do this). Without
    one, the configured backend is built on startup.
    """
    config = config or get_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = None
        if app.state.incident_service is None:
            if config.storage_backend == "memory":
                gateway = InMemoryIncidentGateway()
            else:
                engine = build_engine(config)
                await create_tables(engine)
                gateway = SqlIncidentGateway(build_session_factory(engine))
            app.state.incident_service = IncidentLifecycleService(gateway)
            logger.info("incident_service_ready", backend=config.storage_backend)
        yield
        if engine is not None:
            await engine.dispose()

    app = FastAPI(
        title=config.app_name,
        description="IT incident ticketing backend",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.incident_service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(app, debug=config.debug)
    app.include_router(router)
    return app


def main() -> None:
    import uvicorn

    config = get_config()
    setup_logging(
        debug=config.debug,
        log_dir=config.log_dir,
        log_max_bytes=config.log_max_bytes,
        log_backup_count=config.log_backup_count,
    )
    uvicorn.run(create_app(config=config), host=config.host, port=config.port)


if __name__ == "__main__":
    main()
