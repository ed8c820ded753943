"""
Card reassigner: moves cards between a user's collections.

Moves are best-effort: each card is validated and committed on its own,
so a failure part-way through leaves earlier cards moved. Callers get a
per-card account of what happened rather than an all-or-nothing result.
"""

import logging
from dataclasses import dataclass, field

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cardkeeper.db.operations import commit, get_card, get_collection
from cardkeeper.models.db import utcnow
from cardkeeper.models.failure import NotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MoveError:
    """Why one card was not moved."""

    card_id: str
    reason: str


@dataclass
class MoveResult:
    """Outcome of a batch move."""

    target_collection_id: str
    moved: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    errors: list[MoveError] = field(default_factory=list)

    @property
    def moved_count(self) -> int:
        return len(self.moved)

    @property
    def complete(self) -> bool:
        """Whether every requested card ended up in the target."""
        return not self.errors


class CardReassigner:
    """Moves cards into a target collection, one card at a time."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def move(
        self, user_id: str, card_ids: list[str], target_collection_id: str
    ) -> MoveResult:
        """
        Move cards into ``target_collection_id``.

        The target must belong to ``user_id``; otherwise NotFoundError is
        raised before anything is written. Cards that do not exist or belong
        to another user are reported as per-card errors and skipped. A card
        already in the target is reported as unchanged.

        A fatal store error stops the batch and propagates as StoreError;
        cards moved before it stay moved.
        """
        target = await get_collection(self._session, user_id, target_collection_id)
        if target is None:
            raise NotFoundError("collection", target_collection_id)

        result = MoveResult(target_collection_id=target_collection_id)

        # Preserve caller order, ignore repeats
        for card_id in dict.fromkeys(card_ids):
            card = await get_card(self._session, card_id)
            if card is None or card.user_id != user_id:
                # Same message either way; never confirm another user's card exists
                result.errors.append(MoveError(card_id=card_id, reason="card not found"))
                continue

            if card.collection_id == target_collection_id:
                result.unchanged.append(card_id)
                continue

            previous = card.collection_id
            card.collection_id = target_collection_id
            card.updated_at = utcnow()
            try:
                await commit(self._session, "move_card")
            except SQLAlchemyError as e:
                # Fatal errors were already raised as StoreError by commit
                result.errors.append(MoveError(card_id=card_id, reason=type(e).__name__))
                logger.warning(
                    "card_move_failed",
                    extra={"user_id": user_id, "card_id": card_id, "error": str(e)},
                )
                continue

            result.moved.append(card_id)
            logger.debug(
                "card_moved",
                extra={
                    "user_id": user_id,
                    "card_id": card_id,
                    "from_collection": previous,
                    "to_collection": target_collection_id,
                },
            )

        logger.info(
            "cards_moved",
            extra={
                "user_id": user_id,
                "target_collection_id": target_collection_id,
                "moved": len(result.moved),
                "unchanged": len(result.unchanged),
                "failed": len(result.errors),
            },
        )
        return result
