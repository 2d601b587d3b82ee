from collections.abc import Callable
from typing import Literal

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from courier_dispatch.dependencies import get_session_factory
from courier_dispatch.observability import log_failure, metrics_store
from courier_dispatch.schemas.ops import HealthResponse, ReadinessDependency, ReadinessResponse

DependencyStatus = Literal["ok", "error"]

router = APIRouter(tags=["health"])


@router.get("/health", summary="Liveness check", response_model=HealthResponse)
def health() -> HealthResponse:
    return HealthResponse(status="ok")


@router.get(
    "/ready",
    summary="Readiness check",
    response_model=ReadinessResponse,
    responses={status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ReadinessResponse}},
)
def readiness(
    response: Response,
    session_factory: Callable[[], Session] = Depends(get_session_factory),
) -> ReadinessResponse:
    dependencies = [
        ReadinessDependency(name="database", status=database_status(session_factory)),
    ]
    if any(dep.status != "ok" for dep in dependencies):
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return ReadinessResponse(status="degraded", dependencies=dependencies)
    return ReadinessResponse(status="ok", dependencies=dependencies)


def database_status(session_factory: Callable[[], Session]) -> DependencyStatus:
    try:
        with session_factory() as db:
            db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        metrics_store.increment("readiness_dependency_error_total")
        log_failure("readiness_database_unavailable")
        return "error"
    return "ok"
