"""
Starter dataset loader.

Provides read-only access to the bundled starter cards imported for new
users. The dataset is a JSON file of the form
``{"version": "...", "lastUpdated": "...", "cards": [...]}``.
"""

import json
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from cardkeeper.config import settings
from cardkeeper.models.card import Card


class SeedDataError(Exception):
    """Raised when the starter dataset cannot be loaded."""

    pass


@dataclass(frozen=True)
class SeedDataset:
    """Parsed starter dataset."""

    version: str
    last_updated: str
    cards: tuple[Card, ...]


@lru_cache(maxsize=4)
def _load_seed_dataset(path: Path) -> SeedDataset:
    """
    Load the starter dataset from disk.

    Cached per path after first load (seed data is read-only).
    """
    if not path.exists():
        raise SeedDataError(f"Seed data file not found: {path}")

    try:
        with open(path, encoding="utf-8") as f:
            payload = json.load(f)
    except json.JSONDecodeError as e:
        raise SeedDataError(f"Seed data file is not valid JSON: {path}") from e

    version = payload.get("version")
    if not version:
        raise SeedDataError("Seed data has no version")

    try:
        cards = tuple(Card.model_validate(card) for card in payload.get("cards", []))
    except PydanticValidationError as e:
        raise SeedDataError(f"Seed data contains an invalid card: {e}") from e

    return SeedDataset(
        version=str(version),
        last_updated=str(payload.get("lastUpdated", "")),
        cards=cards,
    )


def get_seed_dataset(path: Path | None = None) -> SeedDataset:
    """Get the starter dataset from ``path`` or the configured location."""
    return _load_seed_dataset(Path(path) if path is not None else Path(settings.seed_data_path))


def seed_dataset_available(path: Path | None = None) -> bool:
    """Check if the starter dataset exists and is loadable."""
    try:
        get_seed_dataset(path)
        return True
    except SeedDataError:
        return False
