"""Error handlers: one response envelope for every failure."""

from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..errors import ConflictError, InfrastructureError, NotFoundError, ValidationError
from ..utils.logging import get_logger

logger = get_logger("incident_desk.api.errors")


def error_response(status_code: int, detail: Any, errors: Optional[list] = None) -> JSONResponse:
    content = {
        "error": True,
        "status_code": status_code,
        "detail": detail,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if errors is not None:
        content["errors"] = errors
    return JSONResponse(status_code=status_code, content=content)


def register_error_handlers(app: FastAPI, debug: bool = False) -> None:
    """Map the domain error taxonomy onto HTTP responses."""

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        return error_response(400, str(exc))

    @app.exception_handler(ConflictError)
    async def conflict_error_handler(request: Request, exc: ConflictError):
        return error_response(409, str(exc))

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return error_response(404, str(exc))

    @app.exception_handler(InfrastructureError)
    async def infrastructure_error_handler(request: Request, exc: InfrastructureError):
        logger.error(
            "infrastructure_error",
            error=str(exc),
            path=str(request.url.path),
        )
        return error_response(500, str(exc) if debug else "Internal server error")

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return error_response(exc.status_code, exc.detail)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return error_response(422, "Validation error", errors=jsonable_errors(exc))

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.error(
            "unhandled_exception",
            error=str(exc),
            path=str(request.url.path),
            exc_info=True,
        )
        return error_response(500, "Internal server error")


def jsonable_errors(exc: RequestValidationError) -> list:
    # ctx may hold the raw exception object, which JSON cannot carry.
    return [
        {key: value for key, value in error.items() if key != "ctx"}
        for error in exc.errors()
    ]
