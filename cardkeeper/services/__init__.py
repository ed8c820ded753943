"""
Card Keeper services.

Business logic for collections, card moves, backups and starter data.
"""

from cardkeeper.services.card_lookup import CardLookup, SqlCardLookup
from cardkeeper.services.card_reassigner import CardReassigner, MoveError, MoveResult
from cardkeeper.services.collection_registry import (
    CollectionCreate,
    CollectionRegistry,
    CollectionUpdate,
)
from cardkeeper.services.csv_export import CSV_HEADERS, cards_to_csv
from cardkeeper.services.locks import UserLockRegistry, user_locks
from cardkeeper.services.restore_engine import (
    RestoreEngine,
    RestoreOptions,
    RestorePhase,
    RestoreResult,
    validate_snapshot,
)
from cardkeeper.services.retention import RetentionManager
from cardkeeper.services.seed_data import (
    SeedDataError,
    SeedDataset,
    get_seed_dataset,
    seed_dataset_available,
)
from cardkeeper.services.seed_importer import SeedImporter, SeedImportResult
from cardkeeper.services.snapshot_builder import SnapshotBuilder

__all__ = [
    # Collections
    "CardLookup",
    "SqlCardLookup",
    "CollectionCreate",
    "CollectionRegistry",
    "CollectionUpdate",
    # Card moves
    "CardReassigner",
    "MoveError",
    "MoveResult",
    # Backups
    "SnapshotBuilder",
    "RetentionManager",
    "RestoreEngine",
    "RestoreOptions",
    "RestorePhase",
    "RestoreResult",
    "validate_snapshot",
    "CSV_HEADERS",
    "cards_to_csv",
    # Starter data
    "SeedDataError",
    "SeedDataset",
    "SeedImporter",
    "SeedImportResult",
    "get_seed_dataset",
    "seed_dataset_available",
    # Concurrency
    "UserLockRegistry",
    "user_locks",
]
