"""
Starter card import for new users.

A user gets the bundled starter cards when they have no cards at all, or
when the bundled dataset is newer than the version recorded for them.
The marker is written once the pass completes; ``reset`` deletes it so
the import can be retried.
"""

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cardkeeper.db.operations import (
    add_card,
    commit,
    count_cards,
    delete_seed_marker,
    get_seed_marker,
    set_seed_marker,
)
from cardkeeper.models.backup import parse_version
from cardkeeper.models.card import Card
from cardkeeper.models.db import utcnow
from cardkeeper.models.failure import classify_store_error
from cardkeeper.services.collection_registry import CollectionRegistry
from cardkeeper.services.locks import UserLockRegistry, user_locks
from cardkeeper.services.seed_data import SeedDataError, SeedDataset, get_seed_dataset

logger = logging.getLogger(__name__)

DatasetLoader = Callable[[], SeedDataset]


@dataclass
class SeedImportResult:
    """Outcome of one starter import pass."""

    imported: int = 0
    failed: int = 0
    version: str | None = None
    skipped: bool = False


def new_seed_card_id(user_id: str) -> str:
    return f"{user_id}_{uuid.uuid4().hex}"


class SeedImporter:
    """Imports the starter dataset into a user's default collection."""

    def __init__(
        self,
        session: AsyncSession,
        registry: CollectionRegistry | None = None,
        dataset_loader: DatasetLoader | None = None,
        locks: UserLockRegistry | None = None,
    ):
        self._session = session
        self._locks = locks if locks is not None else user_locks
        self._registry = (
            registry if registry is not None else CollectionRegistry(session, locks=self._locks)
        )
        self._load = dataset_loader if dataset_loader is not None else get_seed_dataset

    def dataset(self) -> SeedDataset | None:
        """The starter dataset, or None if it is missing or unreadable."""
        try:
            return self._load()
        except SeedDataError as e:
            logger.warning("seed_dataset_unavailable", extra={"error": str(e)})
            return None

    async def should_import(self, user_id: str) -> bool:
        """True if the user has no cards or has not seen this dataset version."""
        dataset = self.dataset()
        if dataset is None:
            return False
        return await self._should_import(user_id, dataset)

    async def _should_import(self, user_id: str, dataset: SeedDataset) -> bool:
        if await count_cards(self._session, user_id) == 0:
            return True

        marker = await get_seed_marker(self._session, user_id)
        if marker is None:
            return True
        try:
            return parse_version(marker.version) < parse_version(dataset.version)
        except ValueError:
            # An unreadable marker is treated as stale
            return True

    async def import_for_user(self, user_id: str) -> SeedImportResult:
        """
        Import the starter cards for a user if they need them.

        The check and the import run under the user's lock, so overlapping
        calls import the starter set once. Cards that fail to insert are
        logged and counted; the rest are kept. A fatal store error
        propagates as StoreError.
        """
        dataset = self.dataset()
        if dataset is None:
            return SeedImportResult(skipped=True)

        if not await self._should_import(user_id, dataset):
            return SeedImportResult(version=dataset.version, skipped=True)

        # Resolved before taking the user's lock; ensure_default takes it too
        default = await self._registry.ensure_default(user_id)

        async with self._locks.hold(user_id):
            # Another call may have imported while this one waited
            if not await self._should_import(user_id, dataset):
                return SeedImportResult(version=dataset.version, skipped=True)

            result = SeedImportResult(version=dataset.version)
            for card in dataset.cards:
                try:
                    await add_card(self._session, self._adopt(card, user_id, default.id))
                    await commit(self._session, "seed_import_card")
                except SQLAlchemyError as e:
                    store_error = classify_store_error(e, "seed_import_card")
                    if store_error is not None:
                        raise store_error from e
                    await self._session.rollback()
                    result.failed += 1
                    logger.warning(
                        "seed_card_failed",
                        extra={"user_id": user_id, "player": card.player, "error": str(e)},
                    )
                    continue
                result.imported += 1

            await set_seed_marker(self._session, user_id, dataset.version)
            await commit(self._session, "seed_import_marker")

        logger.info(
            "seed_import_completed",
            extra={
                "user_id": user_id,
                "version": dataset.version,
                "imported": result.imported,
                "failed": result.failed,
            },
        )
        return result

    async def reset(self, user_id: str) -> bool:
        """Forget that the user was seeded. Returns False if they never were."""
        removed = await delete_seed_marker(self._session, user_id)
        await commit(self._session, "seed_reset")
        if removed:
            logger.info("seed_marker_reset", extra={"user_id": user_id})
        return removed

    @staticmethod
    def _adopt(card: Card, user_id: str, collection_id: str) -> Card:
        now = utcnow()
        return card.model_copy(
            update={
                "id": new_seed_card_id(user_id),
                "user_id": user_id,
                "collection_id": collection_id,
                "created_at": now,
                "updated_at": now,
            }
        )
