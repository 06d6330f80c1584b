"""Caller principals and per-user bookkeeping records."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from datarepo.models.notifications import NotificationType


class GuestUser(BaseModel):
    """An unauthenticated caller.  Never allowed to mutate anything."""

    model_config = ConfigDict(frozen=True)

    identifier: str = ":guest"

    @property
    def is_authenticated(self) -> bool:
        return False


class AuthenticatedUser(BaseModel):
    """A logged-in account.

    ``dataset_lock_ids`` is the "locks by user" secondary index.  It is
    maintained by the LockManager alongside the lock table and is never
    the owner of a lock.
    """

    model_config = ConfigDict(validate_assignment=True)

    id: int | None = None
    identifier: str
    email: str = ""
    display_name: str = ""
    superuser: bool = False
    muted_emails: set[NotificationType] = set()
    muted_notifications: set[NotificationType] = set()
    dataset_lock_ids: list[int] = []

    @property
    def is_authenticated(self) -> bool:
        return True

    def has_email_muted(self, notification_type: NotificationType) -> bool:
        return notification_type in self.muted_emails

    def has_notification_muted(self, notification_type: NotificationType) -> bool:
        return notification_type in self.muted_notifications


Principal = AuthenticatedUser | GuestUser


class DatasetVersionUser(BaseModel):
    """Marks when a user last interacted with a dataset version."""

    model_config = ConfigDict(validate_assignment=True)

    id: int | None = None
    dataset_version_id: str
    user_id: int
    last_update_date: datetime
