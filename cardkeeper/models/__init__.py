from cardkeeper.models.backup import (
    BackupMetadata,
    BackupRecord,
    BackupSnapshot,
    BackupStats,
    BackupType,
)
from cardkeeper.models.card import Card
from cardkeeper.models.collection import Collection, CollectionStats, Visibility
from cardkeeper.models.failure import (
    CannotUnsetLastDefaultError,
    DefaultCollectionUndeletableError,
    DuplicateNameError,
    FailureDetail,
    FailureKind,
    KnownError,
    LastCollectionError,
    NonEmptyCollectionError,
    NotFoundError,
    PartialImportError,
    StoreError,
    ValidationError,
    classify_store_error,
)

__all__ = [
    "BackupMetadata",
    "BackupRecord",
    "BackupSnapshot",
    "BackupStats",
    "BackupType",
    "CannotUnsetLastDefaultError",
    "Card",
    "Collection",
    "CollectionStats",
    "DefaultCollectionUndeletableError",
    "DuplicateNameError",
    "FailureDetail",
    "FailureKind",
    "KnownError",
    "LastCollectionError",
    "NonEmptyCollectionError",
    "NotFoundError",
    "PartialImportError",
    "StoreError",
    "ValidationError",
    "Visibility",
    "classify_store_error",
]
