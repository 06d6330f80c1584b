"""datarepo data models — all Pydantic v2."""

from datarepo.models.dataset import (
    DataFile,
    DataFileCategory,
    Dataset,
    DatasetVersion,
    FileMetadata,
    IdentifiableObject,
    VersionState,
)
from datarepo.models.fields import (
    DEFAULT_SCHEMA,
    NA_VALUE,
    DatasetField,
    DatasetFieldType,
    FieldType,
    MetadataSchema,
)
from datarepo.models.identifiers import (
    GlobalId,
    RegistrationOutcome,
    RegistrationResult,
    RegistrationStatus,
)
from datarepo.models.locks import REVIEW_REASONS, DatasetLock, LockReason
from datarepo.models.notifications import NotificationType, UserNotification
from datarepo.models.users import (
    AuthenticatedUser,
    DatasetVersionUser,
    GuestUser,
    Principal,
)

__all__ = [
    # dataset
    "DataFile",
    "DataFileCategory",
    "Dataset",
    "DatasetVersion",
    "FileMetadata",
    "IdentifiableObject",
    "VersionState",
    # fields
    "DEFAULT_SCHEMA",
    "NA_VALUE",
    "DatasetField",
    "DatasetFieldType",
    "FieldType",
    "MetadataSchema",
    # identifiers
    "GlobalId",
    "RegistrationOutcome",
    "RegistrationResult",
    "RegistrationStatus",
    # locks
    "REVIEW_REASONS",
    "DatasetLock",
    "LockReason",
    # notifications
    "NotificationType",
    "UserNotification",
    # users
    "AuthenticatedUser",
    "DatasetVersionUser",
    "GuestUser",
    "Principal",
]
