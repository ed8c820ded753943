"""
Backup retention.

Only the latest automatic backup is kept per user; manual backups are
kept until the user deletes them. Purges are idempotent: clearing an
empty set is not an error.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from cardkeeper.db.operations import (
    backup_to_record,
    commit,
    delete_backups,
    get_backup,
    list_backups,
)
from cardkeeper.models.backup import BackupRecord, BackupStats, BackupType
from cardkeeper.models.failure import NotFoundError

logger = logging.getLogger(__name__)


class RetentionManager:
    """Lists and prunes a user's stored backups."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def prune_auto(self, user_id: str, keep_id: str | None = None) -> int:
        """
        Delete the user's automatic backups, except ``keep_id``.

        Flushes without committing so the caller can make the prune and the
        insert of the replacement backup a single transaction.
        """
        removed = await delete_backups(
            self._session, user_id, backup_type=BackupType.AUTO, exclude_id=keep_id
        )
        if removed:
            logger.info("auto_backups_pruned", extra={"user_id": user_id, "removed": removed})
        return removed

    async def clear_auto(self, user_id: str) -> int:
        """Delete all of the user's automatic backups. Returns the count removed."""
        removed = await delete_backups(self._session, user_id, backup_type=BackupType.AUTO)
        await commit(self._session, "clear_auto_backups")
        logger.info("auto_backups_cleared", extra={"user_id": user_id, "removed": removed})
        return removed

    async def clear_all(self, user_id: str) -> int:
        """Delete every backup the user has. Returns the count removed."""
        removed = await delete_backups(self._session, user_id)
        await commit(self._session, "clear_all_backups")
        logger.info("all_backups_cleared", extra={"user_id": user_id, "removed": removed})
        return removed

    async def list_auto(self, user_id: str) -> list[BackupRecord]:
        """The user's automatic backups (at most one under normal operation)."""
        rows = await list_backups(self._session, user_id, BackupType.AUTO)
        return [backup_to_record(row) for row in rows]

    async def list_all(self, user_id: str) -> list[BackupRecord]:
        """All of the user's backups, newest first."""
        rows = await list_backups(self._session, user_id)
        return [backup_to_record(row) for row in rows]

    async def get(self, user_id: str, backup_id: str) -> BackupRecord:
        """Get one backup. Raises NotFoundError for unknown or foreign ids."""
        row = await get_backup(self._session, user_id, backup_id)
        if row is None:
            raise NotFoundError("backup", backup_id)
        return backup_to_record(row)

    async def delete(self, user_id: str, backup_id: str) -> None:
        """Delete one backup. Raises NotFoundError for unknown or foreign ids."""
        row = await get_backup(self._session, user_id, backup_id)
        if row is None:
            raise NotFoundError("backup", backup_id)
        await self._session.delete(row)
        await commit(self._session, "delete_backup")

    async def stats(self, user_id: str) -> BackupStats:
        """Backup counts by type and total stored size."""
        rows = await list_backups(self._session, user_id)
        auto = sum(1 for row in rows if row.type == BackupType.AUTO.value)
        return BackupStats(
            total_backups=len(rows),
            auto_backups=auto,
            manual_backups=len(rows) - auto,
            total_size_bytes=sum(row.size_bytes for row in rows),
        )
