"""
Health check endpoints.

Liveness and readiness probes. Readiness also reports how many bulk
operations were left unfinished, so an operator can see that a resume is
waiting.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel
from sqlalchemy import func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from deckvault.db.database import get_session
from deckvault.models.db import CheckpointDB

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    database: str | None = None
    pending_operations: int | None = None


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """
    Liveness probe.

    Returns healthy if the service is running. Does not check dependencies.
    """
    return HealthResponse(status="healthy")


@router.get(
    "/ready",
    response_model=HealthResponse,
    responses={503: {"model": HealthResponse}},
)
async def ready(
    response: Response,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> HealthResponse:
    """
    Readiness probe.

    Checks database connectivity and counts stored checkpoints. Returns 503
    if the database is unavailable.
    """
    try:
        await session.execute(text("SELECT 1"))
        pending = await session.execute(select(func.count()).select_from(CheckpointDB))
        return HealthResponse(
            status="ready",
            database="connected",
            pending_operations=int(pending.scalar_one()),
        )
    except SQLAlchemyError:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(status="not ready", database="disconnected")
