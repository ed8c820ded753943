"""
SQLAlchemy ORM models for persistent storage.

Models mirror the domain models but add database persistence.
Every table carries a ``user_id`` column; all queries filter on it.
"""

from datetime import UTC, date, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    """Timezone-aware current time with microsecond resolution."""
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class CollectionDB(Base):
    """
    A named group of cards owned by one user.

    At most one collection per user has ``is_default`` set; the partial
    unique index below rejects a second one at the store level.
    """

    __tablename__ = "collections"
    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_collection_user_name"),
        Index(
            "uq_collection_user_default",
            "user_id",
            unique=True,
            sqlite_where=text("is_default = 1"),
            postgresql_where=text("is_default"),
        ),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(255), index=True)
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    color: Mapped[str | None] = mapped_column(String(32), nullable=True)
    icon: Mapped[str | None] = mapped_column(String(32), nullable=True)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)
    visibility: Mapped[str] = mapped_column(String(16), default="private")
    tags: Mapped[list[str]] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    def __repr__(self) -> str:
        return f"<CollectionDB(id={self.id}, name={self.name}, default={self.is_default})>"


class CardDB(Base):
    """
    A single physical card in a user's inventory.

    ``collection_id`` is NULL for uncategorized cards.
    """

    __tablename__ = "cards"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(255), index=True)
    collection_id: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("collections.id"), nullable=True, index=True
    )

    player: Mapped[str] = mapped_column(String(255))
    team: Mapped[str] = mapped_column(String(255), default="")
    year: Mapped[int] = mapped_column(Integer)
    brand: Mapped[str] = mapped_column(String(255))
    category: Mapped[str] = mapped_column(String(100), default="")
    card_number: Mapped[str] = mapped_column(String(100), default="")
    parallel: Mapped[str | None] = mapped_column(String(255), nullable=True)
    condition: Mapped[str] = mapped_column(String(100), default="RAW")
    grading_company: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Money
    purchase_price: Mapped[float] = mapped_column(Float, default=0.0)
    purchase_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    sell_price: Mapped[float | None] = mapped_column(Float, nullable=True)
    sell_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    current_value: Mapped[float] = mapped_column(Float, default=0.0)

    images: Mapped[list[str]] = mapped_column(JSON, default=list)
    notes: Mapped[str] = mapped_column(Text, default="")

    # Timestamps are carried over from backups, so no server defaults
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    def __repr__(self) -> str:
        return f"<CardDB(id={self.id}, player={self.player}, year={self.year})>"


class BackupRecordDB(Base):
    """
    A persisted backup snapshot.

    Automatic backups are pruned to one per user; manual ones are kept
    until the user deletes them.
    """

    __tablename__ = "backups"
    __table_args__ = (Index("ix_backups_user_type", "user_id", "type"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(255), index=True)
    type: Mapped[str] = mapped_column(String(16))

    # Snapshot stored verbatim in its JSON wire form
    data: Mapped[dict[str, Any]] = mapped_column(JSON)
    size_bytes: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    def __repr__(self) -> str:
        return f"<BackupRecordDB(id={self.id}, user_id={self.user_id}, type={self.type})>"


class SeedImportMarkerDB(Base):
    """Which starter dataset version has been imported for a user."""

    __tablename__ = "seed_import_markers"

    user_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    version: Mapped[str] = mapped_column(String(32))
    imported_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    def __repr__(self) -> str:
        return f"<SeedImportMarkerDB(user_id={self.user_id}, version={self.version})>"
