from datetime import UTC, date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class Card(BaseModel):
    """
    A card as it appears in backups and seed data.

    Serializes with camelCase keys (``purchasePrice``, ``collectionId``) to
    match the backup file format. Accepts either spelling on input.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
    )

    id: str
    user_id: str = ""
    collection_id: str | None = None
    player: str
    team: str = ""
    year: int
    brand: str
    category: str = ""
    card_number: str = ""
    parallel: str | None = None
    condition: str = "RAW"
    grading_company: str | None = None
    purchase_price: float = 0.0
    purchase_date: date | None = None
    sell_price: float | None = None
    sell_date: date | None = None
    current_value: float = 0.0
    images: list[str] = Field(default_factory=list)
    notes: str = ""
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @field_validator("purchase_date", "sell_date", mode="before")
    @classmethod
    def _date_from_timestamp(cls, value: Any) -> Any:
        """Older exports wrote full timestamps for date-only fields."""
        if value in ("", None):
            return None
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, str) and "T" in value:
            return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
        return value

    @field_validator("created_at", "updated_at")
    @classmethod
    def _timestamps_in_utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    @field_validator("notes", mode="before")
    @classmethod
    def _notes_not_null(cls, value: Any) -> Any:
        return "" if value is None else value

    def to_wire(self) -> dict[str, Any]:
        """JSON-ready dict using backup file key names."""
        return self.model_dump(mode="json", by_alias=True)
