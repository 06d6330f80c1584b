"""Dataset lock models — domain-level mutual exclusion between operations."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict


class LockReason(str, Enum):
    """Why a dataset is locked.  At most one lock per (dataset, reason)."""

    INGEST = "Ingest"
    WORKFLOW = "Workflow"
    IN_REVIEW = "InReview"
    DCM_UPLOAD = "DcmUpload"
    GLOBUS_UPLOAD = "GlobusUpload"
    FINALIZE_PUBLICATION = "finalizePublication"
    EDIT_IN_PROGRESS = "EditInProgress"
    FILE_VALIDATION_FAILED = "FileValidationFailed"


# An InReview lock only stops curators-without-publish-rights from editing;
# every other reason blocks edits and publication outright.
REVIEW_REASONS: frozenset[LockReason] = frozenset({LockReason.IN_REVIEW})


class DatasetLock(BaseModel):
    """An active lock held on a dataset."""

    model_config = ConfigDict(validate_assignment=True)

    id: int | None = None
    dataset_id: int
    reason: LockReason
    user_id: int | None = None
    start_time: datetime | None = None
    info: str = ""
