"""
Collection API endpoints.

CRUD over a user's collections plus default-collection management.
Invariant violations surface as KnownError bodies with a 4xx status.
"""

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from cardkeeper.db.database import get_session
from cardkeeper.models.collection import Collection, CollectionStats, Visibility
from cardkeeper.services.collection_registry import (
    CollectionCreate,
    CollectionRegistry,
    CollectionUpdate,
)

router = APIRouter(prefix="/collections", tags=["collections"])


class CollectionResponse(BaseModel):
    """Response model for one collection."""

    id: str
    user_id: str
    name: str
    description: str | None = None
    color: str | None = None
    icon: str | None = None
    is_default: bool = False
    visibility: Visibility = Visibility.PRIVATE
    tags: list[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_collection(cls, collection: Collection) -> "CollectionResponse":
        return cls(
            id=collection.id,
            user_id=collection.user_id,
            name=collection.name,
            description=collection.description,
            color=collection.color,
            icon=collection.icon,
            is_default=collection.is_default,
            visibility=collection.visibility,
            tags=sorted(collection.tags),
            created_at=collection.created_at,
            updated_at=collection.updated_at,
        )


class CollectionListResponse(BaseModel):
    """A user's collections, default first."""

    user_id: str
    collections: list[CollectionResponse] = Field(default_factory=list)
    default_collection_id: str | None = None


class CollectionStatsResponse(BaseModel):
    """Aggregates over the cards in one collection."""

    collection_id: str
    card_count: int = 0
    total_value: float = 0.0
    total_cost: float = 0.0
    profit: float = 0.0
    category_breakdown: dict[str, int] = Field(
        default_factory=dict,
        description="Card counts by category (Baseball, Basketball, ...)",
    )

    @classmethod
    def from_stats(cls, collection_id: str, stats: CollectionStats) -> "CollectionStatsResponse":
        return cls(
            collection_id=collection_id,
            card_count=stats.card_count,
            total_value=stats.total_value,
            total_cost=stats.total_cost,
            profit=stats.profit,
            category_breakdown=stats.category_breakdown,
        )


class DeleteResponse(BaseModel):
    """Response model for delete operations."""

    user_id: str
    collection_id: str
    deleted: bool = True


@router.get("/{user_id}", response_model=CollectionListResponse)
async def list_user_collections(
    user_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> CollectionListResponse:
    """List a user's collections. A user with none gets an empty list."""
    collections = await CollectionRegistry(session).list_for_user(user_id)
    default_id = next((c.id for c in collections if c.is_default), None)
    return CollectionListResponse(
        user_id=user_id,
        collections=[CollectionResponse.from_collection(c) for c in collections],
        default_collection_id=default_id,
    )


@router.post(
    "/{user_id}",
    response_model=CollectionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_user_collection(
    user_id: str,
    request: CollectionCreate,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> CollectionResponse:
    """
    Create a collection.

    A user's first call also creates their default collection.
    Returns 409 if the name is already taken.
    """
    collection = await CollectionRegistry(session).create(user_id, request)
    return CollectionResponse.from_collection(collection)


@router.get("/{user_id}/default", response_model=CollectionResponse)
async def get_default_collection(
    user_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> CollectionResponse:
    """Get the user's default collection, creating it if they have none."""
    collection = await CollectionRegistry(session).ensure_default(user_id)
    return CollectionResponse.from_collection(collection)


@router.get("/{user_id}/{collection_id}", response_model=CollectionResponse)
async def get_user_collection(
    user_id: str,
    collection_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> CollectionResponse:
    collection = await CollectionRegistry(session).get(user_id, collection_id)
    return CollectionResponse.from_collection(collection)


@router.get("/{user_id}/{collection_id}/stats", response_model=CollectionStatsResponse)
async def get_collection_stats(
    user_id: str,
    collection_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> CollectionStatsResponse:
    """Card count, value, cost and category breakdown for one collection."""
    stats = await CollectionRegistry(session).stats(user_id, collection_id)
    return CollectionStatsResponse.from_stats(collection_id, stats)


@router.patch("/{user_id}/{collection_id}", response_model=CollectionResponse)
async def update_user_collection(
    user_id: str,
    collection_id: str,
    request: CollectionUpdate,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> CollectionResponse:
    """
    Partially update a collection.

    Only fields present in the body are changed. ``is_default: true``
    promotes the collection; ``is_default: false`` on the default is a 409.
    """
    collection = await CollectionRegistry(session).update(user_id, collection_id, request)
    return CollectionResponse.from_collection(collection)


@router.delete("/{user_id}/{collection_id}", response_model=DeleteResponse)
async def delete_user_collection(
    user_id: str,
    collection_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> DeleteResponse:
    """
    Delete an empty, non-default collection.

    Returns 409 for the default collection or one that still holds cards.
    """
    await CollectionRegistry(session).delete(user_id, collection_id)
    return DeleteResponse(user_id=user_id, collection_id=collection_id)


@router.put("/{user_id}/{collection_id}/default", response_model=CollectionResponse)
async def set_default_collection(
    user_id: str,
    collection_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> CollectionResponse:
    """Make this the user's default collection."""
    collection = await CollectionRegistry(session).set_default(user_id, collection_id)
    return CollectionResponse.from_collection(collection)


@router.delete("/{user_id}/{collection_id}/default", response_model=CollectionResponse)
async def unset_default_collection(
    user_id: str,
    collection_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> CollectionResponse:
    """
    Stop this collection being the default.

    The oldest other collection is promoted. Returns 409 if this is the
    user's only collection.
    """
    collection = await CollectionRegistry(session).unset_default(user_id, collection_id)
    return CollectionResponse.from_collection(collection)
