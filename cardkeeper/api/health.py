"""
Health check endpoints.

Liveness says the process is up. Readiness also probes the card store
and reports whether the starter dataset can be loaded.
"""

from typing import Annotated, Literal

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cardkeeper.config import settings
from cardkeeper.db.database import get_session
from cardkeeper.services.seed_data import seed_dataset_available

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    app: str = settings.app_name
    database: Literal["connected", "disconnected"] | None = None
    seed_data: Literal["available", "missing"] | None = None


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Liveness probe. Does not touch the store."""
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

    Returns 503 if the card store cannot be reached. A missing starter
    dataset is reported but does not make the service unready.
    """
    seed_data = "available" if seed_dataset_available() else "missing"
    try:
        await session.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError):
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(status="not ready", database="disconnected", seed_data=seed_data)
    return HealthResponse(status="ready", database="connected", seed_data=seed_data)
