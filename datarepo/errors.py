"""Error taxonomy for repository operations.

Errors raised before a workflow's commit abort the whole operation; errors
in post-commit side effects are logged by the caller and never surface
through this hierarchy.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from datarepo.models.locks import DatasetLock
    from datarepo.core.validation import FieldViolation


class RepositoryError(RuntimeError):
    """Base class for every error raised by datarepo."""


class ConfigurationError(RepositoryError):
    """Raised when the repository configuration violates a constraint.

    This error indicates the services cannot safely start with the current
    configuration.  It must not be caught and ignored.
    """


class PermissionDeniedError(RepositoryError):
    """Raised when the caller is unauthenticated or lacks the permission."""


class DatasetLockedError(RepositoryError):
    """Raised when a dataset holds a lock that conflicts with the operation."""

    def __init__(self, dataset_id: int | None, locks: Iterable[DatasetLock]) -> None:
        self.dataset_id = dataset_id
        self.locks = list(locks)
        reasons = ", ".join(sorted(lock.reason.value for lock in self.locks))
        super().__init__(f"Dataset {dataset_id} is locked: {reasons}")


class FieldValidationError(RepositoryError):
    """Raised in strict mode when draft field values fail validation."""

    def __init__(self, violations: Iterable[FieldViolation]) -> None:
        self.violations = list(violations)
        detail = "; ".join(
            f"{v.type_name}: {v.message}" for v in self.violations
        )
        super().__init__(f"Validation failed: {detail}")


class EntityNotFoundError(RepositoryError):
    """Raised when a referenced entity does not exist in the store."""


class InvalidOperationError(RepositoryError):
    """Raised when an operation is not valid for the entity's current state."""


class PersistenceError(RepositoryError):
    """Raised when the underlying store fails; the transaction is discarded."""


class DuplicateEntityError(PersistenceError):
    """Raised when a write violates a uniqueness constraint."""


class IdentifierRegistrationError(RepositoryError):
    """Raised when an operation requires a registered identifier and none was obtained."""
