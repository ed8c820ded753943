"""
Card API endpoints.

Only reassignment lives here; card editing belongs to the client app.
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from cardkeeper.db.database import get_session
from cardkeeper.services.card_reassigner import CardReassigner

router = APIRouter(prefix="/cards", tags=["cards"])


class MoveCardsRequest(BaseModel):
    """Request model for moving cards between collections."""

    card_ids: list[str] = Field(
        ...,
        min_length=1,
        description="Ids of the cards to move, in order",
        examples=[["card-1", "card-2"]],
    )
    target_collection_id: str = Field(..., min_length=1)


class MoveErrorResponse(BaseModel):
    card_id: str
    reason: str


class MoveCardsResponse(BaseModel):
    """Per-card outcome of a move."""

    user_id: str
    target_collection_id: str
    moved: list[str] = Field(default_factory=list)
    unchanged: list[str] = Field(default_factory=list)
    errors: list[MoveErrorResponse] = Field(default_factory=list)
    moved_count: int = 0
    complete: bool = True


@router.post("/{user_id}/move", response_model=MoveCardsResponse)
async def move_cards(
    user_id: str,
    request: MoveCardsRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> MoveCardsResponse:
    """
    Move cards into one of the user's collections.

    Returns 404 if the target collection is not the user's. Cards that
    cannot be moved are listed in ``errors``; the rest are moved.
    """
    result = await CardReassigner(session).move(
        user_id, request.card_ids, request.target_collection_id
    )
    return MoveCardsResponse(
        user_id=user_id,
        target_collection_id=result.target_collection_id,
        moved=result.moved,
        unchanged=result.unchanged,
        errors=[MoveErrorResponse(card_id=e.card_id, reason=e.reason) for e in result.errors],
        moved_count=result.moved_count,
        complete=result.complete,
    )
