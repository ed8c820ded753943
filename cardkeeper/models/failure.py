"""
Failure classification for the collection and backup engine.

Every failure a caller can see is a ``KnownError`` subclass carrying a
``FailureKind``, a user-appropriate message, optional technical detail and
a suggested next step. The HTTP layer turns these into ``FailureDetail``
bodies using ``status_code``.

Invariant violations are raised before any write, so a caller that
receives one can assume the store is unchanged.
"""

from enum import Enum
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field
from sqlalchemy import exc as sa_exc

if TYPE_CHECKING:
    from cardkeeper.services.restore_engine import RestoreResult


class FailureKind(str, Enum):
    """Classification of failure types."""

    # Input validation failures
    VALIDATION_FAILED = "validation_failed"

    # Resource failures
    NOT_FOUND = "not_found"
    DUPLICATE_NAME = "duplicate_name"
    NOT_EMPTY = "not_empty"

    # Constraint violations
    INVARIANT_VIOLATION = "invariant_violation"

    # Store failures
    STORE_UNAVAILABLE = "store_unavailable"
    PARTIAL_IMPORT = "partial_import"


class FailureDetail(BaseModel):
    """Detailed information about a failure."""

    kind: FailureKind = Field(
        ...,
        description="Classification of the failure",
    )
    message: str = Field(
        ...,
        description="User-appropriate explanation of what went wrong",
    )
    detail: str | None = Field(
        default=None,
        description="Additional technical detail (optional)",
    )
    suggestion: str | None = Field(
        default=None,
        description="Suggested action for the user",
    )


class KnownError(Exception):
    """
    Base class for exceptions that represent known, explainable failures.

    Subclass this for errors where the system knows exactly what went wrong.
    """

    def __init__(
        self,
        kind: FailureKind,
        message: str,
        detail: str | None = None,
        suggestion: str | None = None,
        status_code: int = 400,
    ):
        self.kind = kind
        self.message = message
        self.detail = detail
        self.suggestion = suggestion
        self.status_code = status_code
        super().__init__(message)

    def to_detail(self) -> FailureDetail:
        """Convert to a serializable FailureDetail."""
        return FailureDetail(
            kind=self.kind,
            message=self.message,
            detail=self.detail,
            suggestion=self.suggestion,
        )


# =============================================================================
# COLLECTION INVARIANTS
# =============================================================================


class DuplicateNameError(KnownError):
    """A collection with this name already exists for the user."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(
            kind=FailureKind.DUPLICATE_NAME,
            message=f"A collection named '{name}' already exists.",
            detail=f"name={name!r}",
            suggestion="Choose a different collection name.",
            status_code=409,
        )


class CannotUnsetLastDefaultError(KnownError):
    """The default flag was cleared without naming a replacement."""

    def __init__(self, collection_id: str):
        self.collection_id = collection_id
        super().__init__(
            kind=FailureKind.INVARIANT_VIOLATION,
            message="Cannot remove default status from the default collection directly.",
            detail=f"collection_id={collection_id}",
            suggestion="Set another collection as default, or use unset-default.",
            status_code=409,
        )


class LastCollectionError(KnownError):
    """The user's only collection must stay default."""

    def __init__(self, collection_id: str):
        self.collection_id = collection_id
        super().__init__(
            kind=FailureKind.INVARIANT_VIOLATION,
            message="Cannot unset default when only one collection exists.",
            detail=f"collection_id={collection_id}",
            suggestion="Create another collection first.",
            status_code=409,
        )


class DefaultCollectionUndeletableError(KnownError):
    """Default collections cannot be deleted."""

    def __init__(self, collection_id: str):
        self.collection_id = collection_id
        super().__init__(
            kind=FailureKind.INVARIANT_VIOLATION,
            message="Cannot delete the default collection.",
            detail=f"collection_id={collection_id}",
            suggestion="Set another collection as default before deleting this one.",
            status_code=409,
        )


class NonEmptyCollectionError(KnownError):
    """Cards still reference the collection being deleted."""

    def __init__(self, collection_id: str, count: int):
        self.collection_id = collection_id
        self.count = count
        noun = "card" if count == 1 else "cards"
        super().__init__(
            kind=FailureKind.NOT_EMPTY,
            message=f"Cannot delete collection with {count} {noun}.",
            detail=f"collection_id={collection_id} card_count={count}",
            suggestion="Move or delete the cards first.",
            status_code=409,
        )


class NotFoundError(KnownError):
    """
    The resource does not exist for the requesting user.

    Raised identically whether the record is missing or owned by someone
    else, so callers cannot probe for other users' ids.
    """

    def __init__(self, resource: str, resource_id: str):
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(
            kind=FailureKind.NOT_FOUND,
            message=f"{resource.capitalize()} not found.",
            detail=f"{resource}_id={resource_id}",
            status_code=404,
        )


# =============================================================================
# BACKUP FAILURES
# =============================================================================


class ValidationError(KnownError):
    """A backup payload is structurally invalid."""

    def __init__(self, field: str, reason: str, card_index: int | None = None):
        self.field = field
        self.reason = reason
        self.card_index = card_index
        location = field if card_index is None else f"cards[{card_index}].{field}"
        super().__init__(
            kind=FailureKind.VALIDATION_FAILED,
            message="Invalid backup file format.",
            detail=f"{location}: {reason}",
            suggestion="Make sure the file is an unmodified backup export.",
            status_code=422,
        )


class StoreError(KnownError):
    """The underlying store failed; ``cause`` holds the original error."""

    def __init__(self, operation: str, cause: BaseException):
        self.operation = operation
        self.cause = cause
        super().__init__(
            kind=FailureKind.STORE_UNAVAILABLE,
            message="The card store is unavailable.",
            detail=f"{operation}: {type(cause).__name__}: {cause}",
            suggestion="Try again in a moment.",
            status_code=503,
        )


class PartialImportError(KnownError):
    """
    A restore stopped part-way through.

    ``result`` holds what was imported before the store failed; those
    cards remain in the store.
    """

    def __init__(self, result: "RestoreResult", cause: StoreError):
        self.result = result
        self.cause = cause
        super().__init__(
            kind=FailureKind.PARTIAL_IMPORT,
            message=(
                f"Restore stopped after importing {result.imported} cards "
                f"({result.skipped} skipped, {len(result.errors)} failed)."
            ),
            detail=cause.detail,
            suggestion="Run the restore again with duplicate skipping enabled to finish.",
            status_code=503,
        )


# Errors that mean the store itself is unusable, not that one record was bad
_FATAL_STORE_ERRORS: tuple[type[BaseException], ...] = (
    sa_exc.OperationalError,
    sa_exc.InterfaceError,
    sa_exc.DisconnectionError,
    sa_exc.TimeoutError,
    ConnectionError,
    OSError,
)


def is_fatal_store_error(error: BaseException) -> bool:
    """Whether an error should abort a batch rather than skip one record."""
    return isinstance(error, _FATAL_STORE_ERRORS)


def classify_store_error(error: BaseException, operation: str) -> StoreError | None:
    """
    Wrap a fatal store error.

    Returns None for errors scoped to a single record (integrity, data),
    which batch operations record and continue past.
    """
    if isinstance(error, StoreError):
        return error
    if is_fatal_store_error(error):
        return StoreError(operation, error)
    return None
