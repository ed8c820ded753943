from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class Visibility(str, Enum):
    """Who may see a collection."""

    PRIVATE = "private"
    PUBLIC = "public"


@dataclass
class Collection:
    """
    A user's named group of cards.

    Exactly one of a user's collections is the default; it receives
    cards that have nowhere else to go.
    """

    id: str
    user_id: str
    name: str
    created_at: datetime
    updated_at: datetime
    description: str | None = None
    color: str | None = None
    icon: str | None = None
    is_default: bool = False
    visibility: Visibility = Visibility.PRIVATE
    tags: frozenset[str] = field(default_factory=frozenset)


@dataclass
class CollectionStats:
    """Aggregates over the cards currently in one collection."""

    card_count: int = 0
    total_value: float = 0.0
    total_cost: float = 0.0
    category_breakdown: dict[str, int] = field(default_factory=dict)

    @property
    def profit(self) -> float:
        """Unrealized gain of the collection."""
        return self.total_value - self.total_cost
