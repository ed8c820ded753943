"""
Starter data API endpoints.
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from cardkeeper.db.database import get_session
from cardkeeper.db.operations import get_seed_marker
from cardkeeper.services.seed_importer import SeedImporter

router = APIRouter(prefix="/seed", tags=["seed"])


class SeedStatusResponse(BaseModel):
    """Whether the user would receive the starter cards now."""

    user_id: str
    dataset_version: str | None = None
    imported_version: str | None = None
    should_import: bool = False


class SeedImportResponse(BaseModel):
    user_id: str
    imported: int = 0
    failed: int = 0
    version: str | None = None
    skipped: bool = False


class SeedResetResponse(BaseModel):
    user_id: str
    reset: bool = False


@router.get("/{user_id}", response_model=SeedStatusResponse)
async def get_seed_status(
    user_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> SeedStatusResponse:
    importer = SeedImporter(session)
    dataset = importer.dataset()
    marker = await get_seed_marker(session, user_id)
    return SeedStatusResponse(
        user_id=user_id,
        dataset_version=dataset.version if dataset is not None else None,
        imported_version=marker.version if marker is not None else None,
        should_import=await importer.should_import(user_id),
    )


@router.post("/{user_id}", response_model=SeedImportResponse)
async def import_seed_data(
    user_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> SeedImportResponse:
    """
    Import the starter cards if the user needs them.

    Returns ``skipped: true`` when the user already has this version.
    """
    result = await SeedImporter(session).import_for_user(user_id)
    return SeedImportResponse(
        user_id=user_id,
        imported=result.imported,
        failed=result.failed,
        version=result.version,
        skipped=result.skipped,
    )


@router.delete("/{user_id}", response_model=SeedResetResponse)
async def reset_seed_marker(
    user_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> SeedResetResponse:
    """Forget the user's import so the next POST imports again."""
    reset = await SeedImporter(session).reset(user_id)
    return SeedResetResponse(user_id=user_id, reset=reset)
