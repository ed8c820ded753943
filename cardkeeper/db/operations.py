"""
Database CRUD operations.

Provides async functions for reading and writing collections, cards,
backups and seed import markers. Every query is scoped to a user id.

Query functions flush but never commit; services call ``commit`` where
a unit of work ends.
"""

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cardkeeper.models.backup import BackupRecord, BackupSnapshot, BackupType
from cardkeeper.models.card import Card, as_utc
from cardkeeper.models.collection import Collection, Visibility
from cardkeeper.models.db import (
    BackupRecordDB,
    CardDB,
    CollectionDB,
    SeedImportMarkerDB,
    utcnow,
)
from cardkeeper.models.failure import classify_store_error


async def commit(session: AsyncSession, operation: str) -> None:
    """
    Commit the current unit of work.

    On failure the session is rolled back. Fatal store errors are re-raised
    as StoreError; record-level errors (e.g. IntegrityError) propagate as-is.
    """
    try:
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        store_error = classify_store_error(e, operation)
        if store_error is not None:
            raise store_error from e
        raise


# --- Collection Operations ---


async def get_collection(
    session: AsyncSession, user_id: str, collection_id: str
) -> CollectionDB | None:
    """
    Get one of a user's collections by id.

    Returns None if the collection does not exist or belongs to another user.
    """
    result = await session.execute(
        select(CollectionDB).where(
            CollectionDB.id == collection_id,
            CollectionDB.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


async def list_collections(session: AsyncSession, user_id: str) -> list[CollectionDB]:
    """Get all of a user's collections, oldest first."""
    result = await session.execute(
        select(CollectionDB)
        .where(CollectionDB.user_id == user_id)
        .order_by(CollectionDB.created_at, CollectionDB.id)
    )
    return list(result.scalars().all())


async def get_default_collection(session: AsyncSession, user_id: str) -> CollectionDB | None:
    """Get the user's default collection, if any."""
    result = await session.execute(
        select(CollectionDB).where(
            CollectionDB.user_id == user_id,
            CollectionDB.is_default.is_(True),
        )
    )
    return result.scalars().first()


async def find_collection_by_name(
    session: AsyncSession, user_id: str, name: str
) -> CollectionDB | None:
    """Exact, case-sensitive name lookup within a user's collections."""
    result = await session.execute(
        select(CollectionDB).where(
            CollectionDB.user_id == user_id,
            CollectionDB.name == name,
        )
    )
    return result.scalar_one_or_none()


async def add_collection(session: AsyncSession, collection: CollectionDB) -> CollectionDB:
    """
    Insert a collection row.

    Raises IntegrityError on a duplicate name or a second default.
    """
    session.add(collection)
    await session.flush()
    return collection


async def remove_collection(session: AsyncSession, collection: CollectionDB) -> None:
    """Delete a collection row. Callers check emptiness first."""
    await session.delete(collection)
    await session.flush()


def collection_to_model(collection: CollectionDB) -> Collection:
    """Convert a database collection to a domain model."""
    return Collection(
        id=collection.id,
        user_id=collection.user_id,
        name=collection.name,
        description=collection.description,
        color=collection.color,
        icon=collection.icon,
        is_default=bool(collection.is_default),
        visibility=Visibility(collection.visibility),
        tags=frozenset(collection.tags or ()),
        created_at=as_utc(collection.created_at),
        updated_at=as_utc(collection.updated_at),
    )


# --- Card Operations ---


async def get_card(session: AsyncSession, card_id: str) -> CardDB | None:
    """
    Get a card by id regardless of owner.

    Callers must compare ``user_id`` before acting on the result.
    """
    return await session.get(CardDB, card_id)


async def list_cards(
    session: AsyncSession, user_id: str, collection_id: str | None = None
) -> list[CardDB]:
    """Get a user's cards, optionally limited to one collection."""
    query = select(CardDB).where(CardDB.user_id == user_id)
    if collection_id is not None:
        query = query.where(CardDB.collection_id == collection_id)
    result = await session.execute(query.order_by(CardDB.created_at, CardDB.id))
    return list(result.scalars().all())


async def list_card_ids(session: AsyncSession, user_id: str) -> set[str]:
    """Ids of every card the user owns."""
    result = await session.execute(select(CardDB.id).where(CardDB.user_id == user_id))
    return set(result.scalars().all())


async def count_cards(
    session: AsyncSession, user_id: str, collection_id: str | None = None
) -> int:
    """Number of cards a user owns, optionally within one collection."""
    query = select(func.count()).select_from(CardDB).where(CardDB.user_id == user_id)
    if collection_id is not None:
        query = query.where(CardDB.collection_id == collection_id)
    result = await session.execute(query)
    return int(result.scalar_one())


async def add_card(session: AsyncSession, card: Card) -> CardDB:
    """
    Insert a card.

    The card's ``user_id`` is stored as given; callers rewrite it first.
    Raises IntegrityError if the id is already taken.
    """
    db_card = card_from_model(card)
    session.add(db_card)
    await session.flush()
    return db_card


async def delete_all_cards(session: AsyncSession, user_id: str) -> int:
    """
    Delete every card a user owns.

    Returns the number of deleted records.
    """
    result = await session.execute(delete(CardDB).where(CardDB.user_id == user_id))
    # rowcount is available on DELETE results; type stubs incomplete for async
    return int(result.rowcount)  # type: ignore[attr-defined]


def card_to_model(card: CardDB) -> Card:
    """Convert a database card to a domain model."""
    return Card(
        id=card.id,
        user_id=card.user_id,
        collection_id=card.collection_id,
        player=card.player,
        team=card.team,
        year=card.year,
        brand=card.brand,
        category=card.category,
        card_number=card.card_number,
        parallel=card.parallel,
        condition=card.condition,
        grading_company=card.grading_company,
        purchase_price=card.purchase_price,
        purchase_date=card.purchase_date,
        sell_price=card.sell_price,
        sell_date=card.sell_date,
        current_value=card.current_value,
        images=list(card.images or []),
        notes=card.notes,
        created_at=as_utc(card.created_at),
        updated_at=as_utc(card.updated_at),
    )


def card_from_model(card: Card) -> CardDB:
    """Build a database row from a domain card."""
    return CardDB(
        id=card.id,
        user_id=card.user_id,
        collection_id=card.collection_id,
        player=card.player,
        team=card.team,
        year=card.year,
        brand=card.brand,
        category=card.category,
        card_number=card.card_number,
        parallel=card.parallel,
        condition=card.condition,
        grading_company=card.grading_company,
        purchase_price=card.purchase_price,
        purchase_date=card.purchase_date,
        sell_price=card.sell_price,
        sell_date=card.sell_date,
        current_value=card.current_value,
        images=list(card.images),
        notes=card.notes,
        created_at=card.created_at,
        updated_at=card.updated_at,
    )


# --- Backup Operations ---


async def add_backup(session: AsyncSession, backup: BackupRecordDB) -> BackupRecordDB:
    """Insert a backup row."""
    session.add(backup)
    await session.flush()
    return backup


async def list_backups(
    session: AsyncSession, user_id: str, backup_type: BackupType | None = None
) -> list[BackupRecordDB]:
    """Get a user's backups, newest first, optionally filtered by type."""
    query = select(BackupRecordDB).where(BackupRecordDB.user_id == user_id)
    if backup_type is not None:
        query = query.where(BackupRecordDB.type == backup_type.value)
    result = await session.execute(
        query.order_by(BackupRecordDB.created_at.desc(), BackupRecordDB.id.desc())
    )
    return list(result.scalars().all())


async def get_backup(
    session: AsyncSession, user_id: str, backup_id: str
) -> BackupRecordDB | None:
    """Get one of a user's backups by id."""
    result = await session.execute(
        select(BackupRecordDB).where(
            BackupRecordDB.id == backup_id,
            BackupRecordDB.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


async def delete_backups(
    session: AsyncSession,
    user_id: str,
    backup_type: BackupType | None = None,
    exclude_id: str | None = None,
) -> int:
    """
    Delete a user's backups, optionally only one type.

    Returns the number of deleted records.
    """
    statement = delete(BackupRecordDB).where(BackupRecordDB.user_id == user_id)
    if backup_type is not None:
        statement = statement.where(BackupRecordDB.type == backup_type.value)
    if exclude_id is not None:
        statement = statement.where(BackupRecordDB.id != exclude_id)
    result = await session.execute(statement)
    return int(result.rowcount)  # type: ignore[attr-defined]


def backup_to_record(backup: BackupRecordDB) -> BackupRecord:
    """Convert a database backup to a domain record."""
    return BackupRecord(
        id=backup.id,
        user_id=backup.user_id,
        type=BackupType(backup.type),
        timestamp=as_utc(backup.created_at),
        snapshot=BackupSnapshot.model_validate(backup.data),
        size_bytes=backup.size_bytes,
    )


# --- Seed Import Marker Operations ---


async def get_seed_marker(session: AsyncSession, user_id: str) -> SeedImportMarkerDB | None:
    """Get the user's seed import marker, if one was recorded."""
    return await session.get(SeedImportMarkerDB, user_id)


async def set_seed_marker(session: AsyncSession, user_id: str, version: str) -> SeedImportMarkerDB:
    """Record that ``version`` of the starter dataset was imported for the user."""
    marker = await get_seed_marker(session, user_id)
    if marker is None:
        marker = SeedImportMarkerDB(user_id=user_id, version=version)
        session.add(marker)
    else:
        marker.version = version
        marker.imported_at = utcnow()
    await session.flush()
    return marker


async def delete_seed_marker(session: AsyncSession, user_id: str) -> bool:
    """
    Delete the user's seed import marker.

    Returns True if deleted, False if there was none.
    """
    result = await session.execute(
        delete(SeedImportMarkerDB).where(SeedImportMarkerDB.user_id == user_id)
    )
    return int(result.rowcount) > 0  # type: ignore[attr-defined]
