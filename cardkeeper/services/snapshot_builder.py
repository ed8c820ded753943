"""
Snapshot builder: exports a user's cards as a versioned backup.

``build`` is a pure read. ``persist`` stores a snapshot as a backup
record; for automatic backups the older automatic records are pruned in
the same transaction under the user's lock, so at most one exists per
user at any time.
"""

import logging
import uuid
from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from cardkeeper.config import settings
from cardkeeper.db.operations import (
    add_backup,
    backup_to_record,
    card_to_model,
    commit,
    list_cards,
)
from cardkeeper.models.backup import BackupMetadata, BackupRecord, BackupSnapshot, BackupType
from cardkeeper.models.db import BackupRecordDB, utcnow
from cardkeeper.models.failure import ValidationError
from cardkeeper.services.locks import UserLockRegistry, user_locks
from cardkeeper.services.retention import RetentionManager

logger = logging.getLogger(__name__)

# exported_by value stamped on automatic backups
AUTO_EXPORTER = "auto"


def new_backup_id() -> str:
    return f"backup-{uuid.uuid4().hex}"


class SnapshotBuilder:
    """Builds and stores backup snapshots for one database session."""

    def __init__(
        self,
        session: AsyncSession,
        retention: RetentionManager | None = None,
        locks: UserLockRegistry | None = None,
    ):
        self._session = session
        self._locks = locks if locks is not None else user_locks
        self._retention = retention if retention is not None else RetentionManager(session)

    async def build(
        self,
        user_id: str,
        exported_by: str | None = None,
        user_name: str | None = None,
    ) -> BackupSnapshot:
        """
        Snapshot every card the user owns.

        Cards are ordered by creation time. ``total_value`` is the sum of
        ``current_value`` across all cards.
        """
        rows = await list_cards(self._session, user_id)
        cards = tuple(card_to_model(row) for row in rows)

        return BackupSnapshot(
            version=settings.backup_format_version,
            timestamp=datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            app_name=settings.app_name,
            user_id=user_id,
            cards=cards,
            metadata=BackupMetadata(
                total_cards=len(cards),
                total_value=sum(card.current_value for card in cards),
                exported_by=exported_by,
                user_name=user_name,
            ),
        )

    async def persist(
        self, snapshot: BackupSnapshot, backup_type: BackupType = BackupType.MANUAL
    ) -> BackupRecord:
        """
        Store a snapshot as a backup record owned by ``snapshot.user_id``.

        Automatic backups replace any earlier automatic backup for the user.
        """
        if not snapshot.user_id:
            raise ValidationError("userId", "snapshot has no owner")

        user_id = snapshot.user_id
        size_bytes = snapshot.size_bytes()
        row = BackupRecordDB(
            id=new_backup_id(),
            user_id=user_id,
            type=backup_type.value,
            data=snapshot.to_wire(),
            size_bytes=size_bytes,
            created_at=utcnow(),
        )

        if backup_type == BackupType.AUTO:
            # At most one auto backup per user, even across overlapping calls
            async with self._locks.hold(user_id):
                await self._retention.prune_auto(user_id)
                await add_backup(self._session, row)
                await commit(self._session, "persist_backup")
        else:
            await add_backup(self._session, row)
            await commit(self._session, "persist_backup")

        logger.info(
            "backup_persisted",
            extra={
                "user_id": user_id,
                "backup_id": row.id,
                "backup_type": backup_type.value,
                "total_cards": snapshot.metadata.total_cards,
                "size_bytes": size_bytes,
            },
        )
        return backup_to_record(row)

    async def create_backup(
        self,
        user_id: str,
        backup_type: BackupType = BackupType.MANUAL,
        exported_by: str | None = None,
        user_name: str | None = None,
    ) -> BackupRecord:
        """Build a snapshot of the user's cards and persist it."""
        if backup_type == BackupType.AUTO and exported_by is None:
            exported_by = AUTO_EXPORTER
        snapshot = await self.build(user_id, exported_by=exported_by, user_name=user_name)
        return await self.persist(snapshot, backup_type)
