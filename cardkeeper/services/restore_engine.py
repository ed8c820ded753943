"""
Restore engine: validates backup files and applies them to the store.

A restore moves through these phases:

    VALIDATING -> REJECTED
    VALIDATING -> [CLEARING ->] IMPORTING -> VERIFYING -> DONE

Validation is all-or-nothing: a malformed file is rejected before any
write. Importing is best-effort: each card is committed on its own, a
card that fails is recorded in ``errors`` and the loop moves on. Only a
store-level failure stops the loop, surfacing as PartialImportError with
whatever was imported before it.

INVARIANTS:
- Imported cards always belong to the acting user, whatever the file says
- With clear_existing, the user ends with exactly the cards in the file
- With skip_duplicates, restoring the same file twice imports nothing new
- Progress is reported in file order, once per imported card
"""

import asyncio
import json
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cardkeeper.db.operations import (
    add_card,
    commit,
    count_cards,
    delete_all_cards,
    get_card,
    list_card_ids,
)
from cardkeeper.models.backup import BackupSnapshot, parse_version
from cardkeeper.models.card import Card
from cardkeeper.models.failure import (
    PartialImportError,
    StoreError,
    ValidationError,
    classify_store_error,
)
from cardkeeper.services.collection_registry import CollectionRegistry
from cardkeeper.services.locks import UserLockRegistry, user_locks

logger = logging.getLogger(__name__)

# Snapshots at or above this version must name their owner
OWNER_REQUIRED_SINCE = (2, 0, 0)

REQUIRED_SNAPSHOT_FIELDS = ("version", "timestamp", "appName")
REQUIRED_CARD_FIELDS = ("id", "player", "year", "brand")

ProgressCallback = Callable[[int, int], None]


class RestorePhase(str, Enum):
    """Where a restore call is, or where it stopped."""

    VALIDATING = "validating"
    REJECTED = "rejected"
    CLEARING = "clearing"
    IMPORTING = "importing"
    VERIFYING = "verifying"
    DONE = "done"


@dataclass
class RestoreOptions:
    """
    Merge policy for a restore.

    ``skip_duplicates`` has no effect when ``clear_existing`` is set, since
    every incoming card is new after the clear.
    """

    clear_existing: bool = False
    skip_duplicates: bool = True
    on_progress: ProgressCallback | None = None
    cancel_event: asyncio.Event | None = None


@dataclass
class RestoreResult:
    """What a restore did, including partial progress on cancel or abort."""

    imported: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)
    cancelled: bool = False
    phase: RestorePhase = RestorePhase.VALIDATING
    cleared: int = 0
    final_card_count: int | None = None


class CardIdConflictError(Exception):
    """The store already holds a card with this id."""


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def validate_snapshot(raw: Any) -> BackupSnapshot:
    """
    Check a backup payload and turn it into a BackupSnapshot.

    Accepts a parsed mapping or the raw JSON text. Stops at the first
    violation; nothing is partially accepted.

    Raises:
        ValidationError: Naming the offending field (and card index).
    """
    if isinstance(raw, (str, bytes, bytearray)):
        try:
            raw = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ValidationError("$", f"not valid JSON ({e})") from e

    if not isinstance(raw, Mapping):
        raise ValidationError("$", "expected a JSON object")

    for name in REQUIRED_SNAPSHOT_FIELDS:
        if _is_blank(raw.get(name)):
            raise ValidationError(name, "missing")

    version = raw["version"]
    if not isinstance(version, str):
        raise ValidationError("version", "must be a string")
    try:
        owner_required = parse_version(version) >= OWNER_REQUIRED_SINCE
    except ValueError as e:
        raise ValidationError("version", str(e)) from e

    cards = raw.get("cards")
    if not isinstance(cards, list):
        raise ValidationError("cards", "must be an array")

    if not isinstance(raw.get("metadata"), Mapping):
        raise ValidationError("metadata", "must be an object")

    if owner_required and _is_blank(raw.get("userId")):
        raise ValidationError("userId", f"required for version {version}")

    for index, card in enumerate(cards):
        if not isinstance(card, Mapping):
            raise ValidationError("$", "expected an object", card_index=index)
        for name in REQUIRED_CARD_FIELDS:
            if _is_blank(card.get(name)) or (name == "year" and card.get(name) == 0):
                raise ValidationError(name, "missing", card_index=index)
        if owner_required and _is_blank(card.get("userId")):
            raise ValidationError("userId", f"required for version {version}", card_index=index)

    try:
        return BackupSnapshot.model_validate(raw)
    except PydanticValidationError as e:
        first = e.errors()[0]
        location = [str(part) for part in first["loc"]]
        if len(location) >= 2 and location[0] == "cards" and location[1].isdigit():
            raise ValidationError(
                ".".join(location[2:]) or "$", first["msg"], card_index=int(location[1])
            ) from e
        raise ValidationError(".".join(location) or "$", first["msg"]) from e


class RestoreEngine:
    """Applies validated snapshots to the acting user's cards."""

    def __init__(
        self,
        session: AsyncSession,
        registry: CollectionRegistry | None = None,
        locks: UserLockRegistry | None = None,
    ):
        self._session = session
        self._locks = locks if locks is not None else user_locks
        self._registry = (
            registry if registry is not None else CollectionRegistry(session, locks=self._locks)
        )

    def validate(self, raw: Any) -> BackupSnapshot:
        """Validate a raw backup payload. See ``validate_snapshot``."""
        return validate_snapshot(raw)

    async def restore_raw(
        self, user_id: str, raw: Any, options: RestoreOptions | None = None
    ) -> RestoreResult:
        """Validate then restore. A rejected file never reaches the store."""
        try:
            snapshot = self.validate(raw)
        except ValidationError as e:
            logger.info(
                "restore_rejected",
                extra={
                    "user_id": user_id,
                    "phase": RestorePhase.REJECTED.value,
                    "reason": e.detail,
                },
            )
            raise
        return await self.restore(user_id, snapshot, options)

    async def restore(
        self, user_id: str, snapshot: BackupSnapshot, options: RestoreOptions | None = None
    ) -> RestoreResult:
        """
        Import a snapshot's cards for ``user_id``.

        Returns the result even when cancelled part-way.

        Raises:
            PartialImportError: The store failed mid-import. Cards imported
                before the failure are kept.
        """
        options = options if options is not None else RestoreOptions()
        result = RestoreResult()

        # Resolved before taking the user's lock; ensure_default takes it too
        owned_collections, fallback_collection = await self._collection_targets(
            user_id, snapshot
        )

        async with self._locks.hold(user_id):
            existing_ids: set[str] = set()
            if options.clear_existing:
                result.phase = RestorePhase.CLEARING
                result.cleared = await self._clear(user_id)
            elif options.skip_duplicates:
                existing_ids = await list_card_ids(self._session, user_id)

            result.phase = RestorePhase.IMPORTING
            total = len(snapshot.cards)
            for index, card in enumerate(snapshot.cards, start=1):
                if options.cancel_event is not None and options.cancel_event.is_set():
                    result.cancelled = True
                    logger.info(
                        "restore_cancelled",
                        extra={
                            "user_id": user_id,
                            "imported": result.imported,
                            "skipped": result.skipped,
                            "remaining": total - index + 1,
                        },
                    )
                    return result

                if card.id in existing_ids:
                    result.skipped += 1
                    continue

                incoming = self._adopt(card, user_id, owned_collections, fallback_collection)
                try:
                    await self._import_card(incoming)
                except StoreError as e:
                    raise self._abort(user_id, result, e) from e
                except SQLAlchemyError as e:
                    store_error = classify_store_error(e, "restore_card")
                    if store_error is not None:
                        raise self._abort(user_id, result, store_error) from e
                    await self._session.rollback()
                    self._record_failure(result, card, type(e).__name__)
                    continue
                except CardIdConflictError as e:
                    self._record_failure(result, card, str(e))
                    continue

                result.imported += 1
                if options.on_progress is not None:
                    options.on_progress(index, total)

            result.phase = RestorePhase.VERIFYING
            result.final_card_count = await count_cards(self._session, user_id)
            if options.clear_existing and result.final_card_count != result.imported:
                logger.warning(
                    "restore_count_mismatch",
                    extra={
                        "user_id": user_id,
                        "imported": result.imported,
                        "final_card_count": result.final_card_count,
                    },
                )

        result.phase = RestorePhase.DONE
        logger.info(
            "restore_completed",
            extra={
                "user_id": user_id,
                "imported": result.imported,
                "skipped": result.skipped,
                "failed": len(result.errors),
                "cleared": result.cleared,
            },
        )
        return result

    async def _collection_targets(
        self, user_id: str, snapshot: BackupSnapshot
    ) -> tuple[set[str], str | None]:
        """
        The user's collection ids, and the default collection id if any
        incoming card points at a collection the user does not own.
        """
        owned = {c.id for c in await self._registry.list_for_user(user_id)}
        dangling = any(
            card.collection_id is not None and card.collection_id not in owned
            for card in snapshot.cards
        )
        if not dangling:
            return owned, None
        default = await self._registry.ensure_default(user_id)
        owned.add(default.id)
        return owned, default.id

    async def _clear(self, user_id: str) -> int:
        removed = await delete_all_cards(self._session, user_id)
        await commit(self._session, "restore_clear")
        logger.info("restore_cleared_cards", extra={"user_id": user_id, "removed": removed})
        return removed

    @staticmethod
    def _adopt(
        card: Card, user_id: str, owned_collections: set[str], fallback_collection: str | None
    ) -> Card:
        """Rewrite ownership so the card belongs to the acting user."""
        collection_id = card.collection_id
        if collection_id is not None and collection_id not in owned_collections:
            collection_id = fallback_collection
        return card.model_copy(update={"user_id": user_id, "collection_id": collection_id})

    async def _import_card(self, card: Card) -> None:
        if await get_card(self._session, card.id) is not None:
            raise CardIdConflictError("a card with this id already exists")
        await add_card(self._session, card)
        await commit(self._session, "restore_card")

    @staticmethod
    def _record_failure(result: RestoreResult, card: Card, reason: str) -> None:
        message = f"Failed to import card {card.player} ({card.year}): {reason}"
        result.errors.append(message)
        logger.warning("restore_card_failed", extra={"card_id": card.id, "reason": reason})

    @staticmethod
    def _abort(user_id: str, result: RestoreResult, cause: StoreError) -> PartialImportError:
        logger.error(
            "restore_aborted",
            extra={
                "user_id": user_id,
                "imported": result.imported,
                "skipped": result.skipped,
                "error": cause.detail,
            },
        )
        return PartialImportError(result, cause)
