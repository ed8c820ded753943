"""
Collection registry: CRUD over a user's collections.

INVARIANTS:
- Collection names are unique per user (case-sensitive exact match)
- A user with at least one collection has exactly one default collection
- A user with no collections has no default
- The default collection cannot be deleted
- A collection that still holds cards cannot be deleted

Every invariant is checked before the first write, so a rejected call
leaves the store unchanged. Swapping the default runs under the user's
lock and commits before the lock is released.
"""

import logging
import uuid

from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from cardkeeper.config import (
    DEFAULT_COLLECTION_COLOR,
    DEFAULT_COLLECTION_DESCRIPTION,
    DEFAULT_COLLECTION_ICON,
    settings,
)
from cardkeeper.db.operations import (
    add_collection,
    collection_to_model,
    commit,
    find_collection_by_name,
    get_collection,
    get_default_collection,
    list_collections,
    remove_collection,
)
from cardkeeper.models.collection import Collection, CollectionStats, Visibility
from cardkeeper.models.db import CollectionDB, utcnow
from cardkeeper.models.failure import (
    CannotUnsetLastDefaultError,
    DefaultCollectionUndeletableError,
    DuplicateNameError,
    LastCollectionError,
    NonEmptyCollectionError,
    NotFoundError,
)
from cardkeeper.services.card_lookup import CardLookup, SqlCardLookup
from cardkeeper.services.locks import UserLockRegistry, user_locks

logger = logging.getLogger(__name__)


class CollectionCreate(BaseModel):
    """Fields a caller supplies for a new collection."""

    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    color: str | None = None
    icon: str | None = None
    visibility: Visibility = Visibility.PRIVATE
    tags: list[str] = Field(default_factory=list)


class CollectionUpdate(BaseModel):
    """
    Partial update. Only fields the caller actually set are applied.

    Setting ``is_default`` to True promotes the collection; setting it to
    False on the default collection is rejected (use ``unset_default``).
    """

    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    color: str | None = None
    icon: str | None = None
    visibility: Visibility | None = None
    tags: list[str] | None = None
    is_default: bool | None = None


def new_collection_id() -> str:
    """Generate a collection id that will not collide on retry."""
    return f"collection-{uuid.uuid4().hex}"


def normalize_tags(tags: list[str] | None) -> list[str]:
    """Tags behave as a set: stripped, de-duplicated, sorted."""
    if not tags:
        return []
    return sorted({tag.strip() for tag in tags if tag and tag.strip()})


class CollectionRegistry:
    """Collection CRUD for one database session."""

    def __init__(
        self,
        session: AsyncSession,
        card_lookup: CardLookup | None = None,
        locks: UserLockRegistry | None = None,
    ):
        self._session = session
        self._cards = card_lookup if card_lookup is not None else SqlCardLookup(session)
        self._locks = locks if locks is not None else user_locks

    # --- Reads ---

    async def list_for_user(self, user_id: str) -> list[Collection]:
        """A user's collections, default first, then by name."""
        rows = await list_collections(self._session, user_id)
        collections = [collection_to_model(row) for row in rows]
        return sorted(collections, key=lambda c: (not c.is_default, c.name))

    async def get(self, user_id: str, collection_id: str) -> Collection:
        """
        Get one collection.

        Raises NotFoundError if it does not exist or is not the user's.
        """
        return collection_to_model(await self._get_row(user_id, collection_id))

    async def get_default(self, user_id: str) -> Collection | None:
        """The user's default collection, or None if they have no collections."""
        row = await get_default_collection(self._session, user_id)
        return collection_to_model(row) if row is not None else None

    async def stats(self, user_id: str, collection_id: str) -> CollectionStats:
        """Card count, value and category breakdown for one collection."""
        await self._get_row(user_id, collection_id)
        cards = await self._cards.list_by_collection(user_id, collection_id)

        breakdown: dict[str, int] = {}
        for card in cards:
            breakdown[card.category] = breakdown.get(card.category, 0) + 1

        return CollectionStats(
            card_count=len(cards),
            total_value=sum(card.current_value for card in cards),
            total_cost=sum(card.purchase_price for card in cards),
            category_breakdown=breakdown,
        )

    # --- Writes ---

    async def create(self, user_id: str, data: CollectionCreate) -> Collection:
        """
        Create a non-default collection.

        Makes sure the user has a default collection first, so the new
        collection is never the user's only one without a default. A new
        user asking for the default name gets that default collection, with
        the requested fields applied.

        Raises:
            DuplicateNameError: A collection with this name already exists.
        """
        if await find_collection_by_name(self._session, user_id, data.name) is not None:
            raise DuplicateNameError(data.name)

        default = await self.ensure_default(user_id)
        if default.name == data.name:
            requested = data.model_dump(include=data.model_fields_set - {"name"})
            return await self.update(user_id, default.id, CollectionUpdate(**requested))

        row = CollectionDB(
            id=new_collection_id(),
            user_id=user_id,
            name=data.name,
            description=data.description,
            color=data.color,
            icon=data.icon,
            is_default=False,
            visibility=data.visibility.value,
            tags=normalize_tags(data.tags),
        )
        try:
            await add_collection(self._session, row)
            await commit(self._session, "create_collection")
        except IntegrityError as e:
            # Lost a race with a concurrent create of the same name
            await self._session.rollback()
            raise DuplicateNameError(data.name) from e

        logger.info(
            "collection_created",
            extra={"user_id": user_id, "collection_id": row.id, "collection_name": row.name},
        )
        return collection_to_model(row)

    async def ensure_default(self, user_id: str) -> Collection:
        """
        Make sure the user has a default collection and return it.

        Idempotent. If none exists, a collection already carrying the
        default name is promoted; otherwise a new one is created.
        """
        async with self._locks.hold(user_id):
            existing = await get_default_collection(self._session, user_id)
            if existing is not None:
                return collection_to_model(existing)

            name = settings.default_collection_name
            row = await find_collection_by_name(self._session, user_id, name)
            try:
                if row is not None:
                    row.is_default = True
                    row.updated_at = utcnow()
                    await self._session.flush()
                else:
                    row = CollectionDB(
                        id=new_collection_id(),
                        user_id=user_id,
                        name=name,
                        description=DEFAULT_COLLECTION_DESCRIPTION,
                        color=DEFAULT_COLLECTION_COLOR,
                        icon=DEFAULT_COLLECTION_ICON,
                        is_default=True,
                        visibility=Visibility.PRIVATE.value,
                        tags=[],
                    )
                    await add_collection(self._session, row)
                await commit(self._session, "ensure_default")
            except IntegrityError:
                # Another process created the default first; use theirs
                await self._session.rollback()
                winner = await get_default_collection(self._session, user_id)
                if winner is None:
                    raise
                return collection_to_model(winner)

            logger.info(
                "default_collection_created",
                extra={"user_id": user_id, "collection_id": row.id},
            )
            return collection_to_model(row)

    async def update(self, user_id: str, collection_id: str, patch: CollectionUpdate) -> Collection:
        """
        Apply a partial update.

        Raises:
            NotFoundError: No such collection for this user.
            CannotUnsetLastDefaultError: Patch clears the default flag.
            DuplicateNameError: Patch renames onto an existing name.
        """
        row = await self._get_row(user_id, collection_id)
        fields = patch.model_fields_set

        promote = False
        if "is_default" in fields and patch.is_default is not None:
            if row.is_default and not patch.is_default:
                raise CannotUnsetLastDefaultError(collection_id)
            promote = patch.is_default and not row.is_default

        if "name" in fields and patch.name is not None and patch.name != row.name:
            clash = await find_collection_by_name(self._session, user_id, patch.name)
            if clash is not None:
                raise DuplicateNameError(patch.name)
            row.name = patch.name

        if "description" in fields:
            row.description = patch.description
        if "color" in fields:
            row.color = patch.color
        if "icon" in fields:
            row.icon = patch.icon
        if "visibility" in fields and patch.visibility is not None:
            row.visibility = patch.visibility.value
        if "tags" in fields:
            row.tags = normalize_tags(patch.tags)
        row.updated_at = utcnow()

        try:
            await commit(self._session, "update_collection")
        except IntegrityError as e:
            await self._session.rollback()
            raise DuplicateNameError(patch.name or "") from e

        if promote:
            return await self.set_default(user_id, collection_id)
        return collection_to_model(row)

    async def set_default(self, user_id: str, collection_id: str) -> Collection:
        """
        Make a collection the user's default.

        Clears the previous default and sets the new one in one transaction
        under the user's lock. No-op if the collection is already default.
        """
        async with self._locks.hold(user_id):
            target = await self._get_row(user_id, collection_id)
            if target.is_default:
                return collection_to_model(target)

            current = await get_default_collection(self._session, user_id)
            now = utcnow()
            if current is not None:
                current.is_default = False
                current.updated_at = now
                # Clear first so the one-default index never sees two
                await self._session.flush()

            target.is_default = True
            target.updated_at = now
            await commit(self._session, "set_default")

            logger.info(
                "default_collection_changed",
                extra={
                    "user_id": user_id,
                    "previous_default": current.id if current is not None else None,
                    "new_default": target.id,
                },
            )
            return collection_to_model(target)

    async def unset_default(self, user_id: str, collection_id: str) -> Collection:
        """
        Stop a collection being the default, promoting another one.

        The replacement is the remaining collection with the earliest
        ``created_at`` (ties broken by id). No-op if the collection is not
        the default.

        Raises:
            LastCollectionError: The collection is the user's only one.
        """
        async with self._locks.hold(user_id):
            target = await self._get_row(user_id, collection_id)
            rows = await list_collections(self._session, user_id)
            others = [row for row in rows if row.id != collection_id]
            if not others:
                raise LastCollectionError(collection_id)
            if not target.is_default:
                return collection_to_model(target)

            replacement = others[0]
            now = utcnow()
            target.is_default = False
            target.updated_at = now
            await self._session.flush()

            replacement.is_default = True
            replacement.updated_at = now
            await commit(self._session, "unset_default")

            logger.info(
                "default_collection_changed",
                extra={
                    "user_id": user_id,
                    "previous_default": target.id,
                    "new_default": replacement.id,
                },
            )
            return collection_to_model(target)

    async def delete(self, user_id: str, collection_id: str) -> None:
        """
        Delete an empty, non-default collection.

        Raises:
            NotFoundError: No such collection for this user.
            DefaultCollectionUndeletableError: It is the default collection.
            NonEmptyCollectionError: Cards still reference it.
        """
        row = await self._get_row(user_id, collection_id)
        if row.is_default:
            raise DefaultCollectionUndeletableError(collection_id)

        count = await self._cards.count_by_collection(user_id, collection_id)
        if count > 0:
            raise NonEmptyCollectionError(collection_id, count)

        await remove_collection(self._session, row)
        await commit(self._session, "delete_collection")
        logger.info(
            "collection_deleted",
            extra={"user_id": user_id, "collection_id": collection_id},
        )

    async def _get_row(self, user_id: str, collection_id: str) -> CollectionDB:
        row = await get_collection(self._session, user_id, collection_id)
        if row is None:
            raise NotFoundError("collection", collection_id)
        return row
