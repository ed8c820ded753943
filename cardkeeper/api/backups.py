"""
Backup API endpoints.

Export (JSON snapshot and CSV), stored backups with retention, and
restore from either an uploaded file or a stored backup.
"""

from datetime import datetime
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from cardkeeper.db.database import get_session
from cardkeeper.models.backup import BackupRecord, BackupType
from cardkeeper.models.failure import ValidationError
from cardkeeper.services.csv_export import cards_to_csv
from cardkeeper.services.restore_engine import RestoreEngine, RestoreOptions, RestoreResult
from cardkeeper.services.retention import RetentionManager
from cardkeeper.services.snapshot_builder import SnapshotBuilder

router = APIRouter(prefix="/backups", tags=["backups"])


class BackupCreateRequest(BaseModel):
    """Request model for storing a backup of the user's current cards."""

    type: BackupType = BackupType.MANUAL
    exported_by: str | None = None
    user_name: str | None = None


class BackupSummary(BaseModel):
    """A stored backup without its cards."""

    id: str
    type: BackupType
    timestamp: datetime
    size_bytes: int
    version: str
    total_cards: int
    total_value: float

    @classmethod
    def from_record(cls, record: BackupRecord) -> "BackupSummary":
        return cls(
            id=record.id,
            type=record.type,
            timestamp=record.timestamp,
            size_bytes=record.size_bytes,
            version=record.snapshot.version,
            total_cards=record.snapshot.metadata.total_cards,
            total_value=record.snapshot.metadata.total_value,
        )


class BackupListResponse(BaseModel):
    user_id: str
    backups: list[BackupSummary] = Field(default_factory=list)


class BackupStatsResponse(BaseModel):
    """Counts and storage used by a user's backups."""

    user_id: str
    total_backups: int = 0
    auto_backups: int = 0
    manual_backups: int = 0
    total_size_bytes: int = 0


class PurgeResponse(BaseModel):
    user_id: str
    removed: int = 0


class RestoreRequest(BaseModel):
    """
    Request model for a restore.

    Supply either ``backup`` (the contents of a backup file) or
    ``backup_id`` (one of the user's stored backups).
    """

    backup: dict[str, Any] | None = Field(
        default=None,
        description="Backup file contents in the export format",
    )
    backup_id: str | None = None
    clear_existing: bool = Field(
        default=False,
        description="Delete all of the user's cards before importing",
    )
    skip_duplicates: bool = Field(
        default=True,
        description="Skip cards whose id the user already has",
    )


class RestoreResponse(BaseModel):
    """What a restore did."""

    imported: int = 0
    skipped: int = 0
    errors: list[str] = Field(default_factory=list)
    cancelled: bool = False
    phase: str
    cleared: int = 0
    final_card_count: int | None = None

    @classmethod
    def from_result(cls, result: RestoreResult) -> "RestoreResponse":
        return cls(
            imported=result.imported,
            skipped=result.skipped,
            errors=list(result.errors),
            cancelled=result.cancelled,
            phase=result.phase.value,
            cleared=result.cleared,
            final_card_count=result.final_card_count,
        )


@router.get("/{user_id}/snapshot")
async def get_snapshot(
    user_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
    exported_by: Annotated[str | None, Query()] = None,
    user_name: Annotated[str | None, Query()] = None,
) -> dict[str, Any]:
    """Export the user's cards as a backup file without storing it."""
    snapshot = await SnapshotBuilder(session).build(
        user_id, exported_by=exported_by, user_name=user_name
    )
    return snapshot.to_wire()


@router.get("/{user_id}/export.csv")
async def export_csv(
    user_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> Response:
    """Export the user's cards as CSV."""
    snapshot = await SnapshotBuilder(session).build(user_id)
    filename = f"sports-cards-{snapshot.timestamp[:10]}.csv"
    return Response(
        content=cards_to_csv(snapshot.cards),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post(
    "/{user_id}",
    response_model=BackupSummary,
    status_code=status.HTTP_201_CREATED,
)
async def create_backup(
    user_id: str,
    request: BackupCreateRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> BackupSummary:
    """
    Store a backup of the user's current cards.

    An automatic backup replaces the previous automatic one.
    """
    record = await SnapshotBuilder(session).create_backup(
        user_id,
        backup_type=request.type,
        exported_by=request.exported_by,
        user_name=request.user_name,
    )
    return BackupSummary.from_record(record)


@router.get("/{user_id}", response_model=BackupListResponse)
async def list_user_backups(
    user_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> BackupListResponse:
    """All of the user's stored backups, newest first."""
    records = await RetentionManager(session).list_all(user_id)
    return BackupListResponse(
        user_id=user_id, backups=[BackupSummary.from_record(r) for r in records]
    )


@router.delete("/{user_id}", response_model=PurgeResponse)
async def clear_all_backups(
    user_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> PurgeResponse:
    removed = await RetentionManager(session).clear_all(user_id)
    return PurgeResponse(user_id=user_id, removed=removed)


@router.get("/{user_id}/auto", response_model=BackupListResponse)
async def list_auto_backups(
    user_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> BackupListResponse:
    """The user's automatic backup, if one exists."""
    records = await RetentionManager(session).list_auto(user_id)
    return BackupListResponse(
        user_id=user_id, backups=[BackupSummary.from_record(r) for r in records]
    )


@router.delete("/{user_id}/auto", response_model=PurgeResponse)
async def clear_auto_backups(
    user_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> PurgeResponse:
    removed = await RetentionManager(session).clear_auto(user_id)
    return PurgeResponse(user_id=user_id, removed=removed)


@router.get("/{user_id}/stats", response_model=BackupStatsResponse)
async def get_backup_stats(
    user_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> BackupStatsResponse:
    stats = await RetentionManager(session).stats(user_id)
    return BackupStatsResponse(
        user_id=user_id,
        total_backups=stats.total_backups,
        auto_backups=stats.auto_backups,
        manual_backups=stats.manual_backups,
        total_size_bytes=stats.total_size_bytes,
    )


@router.post("/{user_id}/restore", response_model=RestoreResponse)
async def restore_backup(
    user_id: str,
    request: RestoreRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> RestoreResponse:
    """
    Restore cards from a backup file or a stored backup.

    Returns 422 if the file is malformed (nothing is written), and 503
    with the partial result if the store fails mid-import.
    """
    options = RestoreOptions(
        clear_existing=request.clear_existing,
        skip_duplicates=request.skip_duplicates,
    )
    engine = RestoreEngine(session)

    if request.backup_id is not None:
        record = await RetentionManager(session).get(user_id, request.backup_id)
        result = await engine.restore(user_id, record.snapshot, options)
    elif request.backup is not None:
        result = await engine.restore_raw(user_id, request.backup, options)
    else:
        raise ValidationError("backup", "provide a backup file or a backup_id")

    return RestoreResponse.from_result(result)


@router.get("/{user_id}/{backup_id}")
async def get_stored_backup(
    user_id: str,
    backup_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> dict[str, Any]:
    """Download one stored backup in the backup file format."""
    record = await RetentionManager(session).get(user_id, backup_id)
    return record.snapshot.to_wire()


@router.delete("/{user_id}/{backup_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_stored_backup(
    user_id: str,
    backup_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> None:
    await RetentionManager(session).delete(user_id, backup_id)
