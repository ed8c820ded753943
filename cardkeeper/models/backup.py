"""
Backup snapshot models.

A snapshot is the versioned JSON export of one user's cards plus summary
metadata. Snapshots are frozen once built; a ``BackupRecord`` is a
snapshot that has been persisted as an automatic or manual backup.
"""

import json
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from cardkeeper.models.card import Card


class BackupType(str, Enum):
    """How a backup came to exist."""

    AUTO = "auto"
    MANUAL = "manual"


class BackupMetadata(BaseModel):
    """Summary figures stored alongside the cards."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    total_cards: int = 0
    total_value: float = 0.0
    exported_by: str | None = None
    user_name: str | None = None


class BackupSnapshot(BaseModel):
    """
    Immutable export of a user's full card set.

    Version 1.x snapshots have no ``userId``; it defaults to empty.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    version: str
    timestamp: str
    app_name: str
    user_id: str = ""
    cards: tuple[Card, ...] = Field(default_factory=tuple)
    metadata: BackupMetadata

    def to_wire(self) -> dict[str, Any]:
        """JSON-ready dict in the backup file format."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=False)

    def to_json(self, indent: int | None = 2) -> str:
        """Serialize to the backup file format."""
        return json.dumps(self.to_wire(), indent=indent, ensure_ascii=False)

    def size_bytes(self) -> int:
        """Size of the compact UTF-8 JSON encoding."""
        return len(self.to_json(indent=None).encode("utf-8"))


@dataclass(frozen=True)
class BackupRecord:
    """A snapshot persisted by the snapshot builder."""

    id: str
    user_id: str
    type: BackupType
    timestamp: datetime
    snapshot: BackupSnapshot
    size_bytes: int


@dataclass(frozen=True)
class BackupStats:
    """Counts and storage used by a user's backups."""

    total_backups: int
    auto_backups: int
    manual_backups: int
    total_size_bytes: int


def parse_version(version: str) -> tuple[int, ...]:
    """
    Parse a semver-like version string into a comparable tuple.

    Missing components count as zero: "2" -> (2, 0, 0),
    "1.4.2" -> (1, 4, 2), "2.1-beta" -> (2, 1, 0).

    Raises:
        ValueError: The major component is not numeric.
    """
    parts: list[int] = []
    for piece in version.strip().split("."):
        digits = ""
        for char in piece:
            if not char.isdigit():
                break
            digits += char
        if not digits:
            break
        parts.append(int(digits))
    if not parts:
        raise ValueError(f"Unrecognized version: {version!r}")
    while len(parts) < 3:
        parts.append(0)
    return tuple(parts)
