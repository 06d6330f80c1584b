"""User notification models."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class NotificationType(str, Enum):
    """Kinds of notifications a user can receive.

    Values are the names used in the AlwaysMuted / NeverMuted settings.
    """

    ASSIGNROLE = "ASSIGNROLE"
    REVOKEROLE = "REVOKEROLE"
    CREATEDV = "CREATEDV"
    CREATEDS = "CREATEDS"
    CREATEACC = "CREATEACC"
    SUBMITTEDDS = "SUBMITTEDDS"
    RETURNEDDS = "RETURNEDDS"
    PUBLISHEDDS = "PUBLISHEDDS"
    REQUESTFILEACCESS = "REQUESTFILEACCESS"
    GRANTFILEACCESS = "GRANTFILEACCESS"
    REJECTFILEACCESS = "REJECTFILEACCESS"
    CHECKSUMFAIL = "CHECKSUMFAIL"
    CONFIRMEMAIL = "CONFIRMEMAIL"
    INGESTCOMPLETED = "INGESTCOMPLETED"
    INGESTCOMPLETEDWITHERRORS = "INGESTCOMPLETEDWITHERRORS"
    PUBLISHFAILED_PIDREG = "PUBLISHFAILED_PIDREG"
    WORKFLOW_SUCCESS = "WORKFLOW_SUCCESS"
    WORKFLOW_FAILURE = "WORKFLOW_FAILURE"
    STATUSUPDATED = "STATUSUPDATED"


class UserNotification(BaseModel):
    """A notification addressed to one user about one repository object."""

    model_config = ConfigDict(validate_assignment=True)

    id: int | None = None
    user_id: int
    send_date: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    type: NotificationType
    object_id: int | None = None
    requestor_id: int | None = None
    read: bool = False
    emailed: bool = False
