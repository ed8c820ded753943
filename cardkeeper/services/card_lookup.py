"""
Narrow read access to cards for services that must not own card logic.

The collection registry needs to know whether a collection still holds
cards before deleting it. It receives a ``CardLookup`` instead of reaching
into card storage directly.
"""

from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from cardkeeper.db.operations import card_to_model, count_cards, list_cards
from cardkeeper.models.card import Card


class CardLookup(Protocol):
    """Read-only card queries scoped to one user."""

    async def count_by_collection(self, user_id: str, collection_id: str) -> int: ...

    async def list_by_collection(self, user_id: str, collection_id: str) -> list[Card]: ...


class SqlCardLookup:
    """``CardLookup`` backed by the card table."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def count_by_collection(self, user_id: str, collection_id: str) -> int:
        return await count_cards(self._session, user_id, collection_id)

    async def list_by_collection(self, user_id: str, collection_id: str) -> list[Card]:
        rows = await list_cards(self._session, user_id, collection_id)
        return [card_to_model(row) for row in rows]
