"""NotificationService — sends and stores user notifications under the mute policy.

Mute policy, applied separately to email and to in-app notifications:

- a type listed in ``always_muted`` is muted for everyone;
- otherwise a type listed in ``never_muted`` is delivered regardless of
  the user's own preference;
- otherwise the user's own preference decides.

A type listed in both settings is muted, with a warning.
"""

from __future__ import annotations

import logging
from datetime import datetime

from datarepo.config import RepoConfig
from datarepo.core.store import PersistenceStore
from datarepo.errors import InvalidOperationError
from datarepo.models.notifications import NotificationType, UserNotification
from datarepo.models.users import AuthenticatedUser
from datarepo.notifications.mailer import Mailer

logger = logging.getLogger(__name__)


class NotificationService:
    """Delivers notifications by email and stores them for in-app display.

    Parameters
    ----------
    store:
        The persistence store.
    mailer:
        Email delivery.
    config:
        Supplies the ``always_muted`` / ``never_muted`` settings.
    """

    def __init__(self, store: PersistenceStore, mailer: Mailer, config: RepoConfig) -> None:
        self._store = store
        self._mailer = mailer
        self._config = config

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    def send_notification(
        self,
        user: AuthenticatedUser,
        send_date: datetime,
        type: NotificationType,
        object_id: int | None,
        comment: str = "",
        requestor: AuthenticatedUser | None = None,
        is_html: bool = False,
    ) -> UserNotification:
        """Email and/or store a notification, honoring the mute policy.

        The notification is returned whether or not it was stored; its
        ``id`` is None when in-app notifications of this type are muted.
        """
        if user.id is None:
            raise InvalidOperationError(f"User {user.identifier} has not been saved")
        notification = UserNotification(
            user_id=user.id,
            send_date=send_date,
            type=type,
            object_id=object_id,
            requestor_id=requestor.id if requestor is not None else None,
        )

        if not self.is_email_muted(user, type) and self._mailer.send_notification_email(
            notification, user, comment, requestor, is_html
        ):
            logger.debug("email was sent")
            notification.emailed = True
        else:
            logger.debug("email was not sent")

        if not self.is_notification_muted(user, type):
            self.save(notification)
        return notification

    # ------------------------------------------------------------------
    # Mute policy
    # ------------------------------------------------------------------

    def is_email_muted(self, user: AuthenticatedUser, type: NotificationType) -> bool:
        return self._is_muted(type, "email", user.has_email_muted(type))

    def is_notification_muted(self, user: AuthenticatedUser, type: NotificationType) -> bool:
        return self._is_muted(type, "notification", user.has_notification_muted(type))

    def _is_muted(self, type: NotificationType, channel: str, user_muted: bool) -> bool:
        always = type.value in self._config.always_muted
        never = type.value in self._config.never_muted
        if always and never:
            logger.warning(
                "Both; AlwaysMuted and NeverMuted are set for %s, %s is muted",
                type.value,
                channel,
            )
        return always or (not never and user_muted)

    # ------------------------------------------------------------------
    # Persistence and queries
    # ------------------------------------------------------------------

    def save(self, notification: UserNotification) -> UserNotification:
        with self._store.transaction() as tx:
            tx.merge(notification)
        return notification

    def find(self, notification_id: int) -> UserNotification | None:
        return self._store.find(UserNotification, notification_id)

    def find_by_user(self, user_id: int) -> list[UserNotification]:
        return self._store.query("notification.by_user", user_id=user_id)

    def find_by_requestor(self, requestor_id: int) -> list[UserNotification]:
        return self._store.query("notification.by_requestor", requestor_id=requestor_id)

    def find_by_object(self, object_id: int) -> list[UserNotification]:
        return self._store.query("notification.by_object", object_id=object_id)

    def find_unread_by_user(self, user_id: int) -> list[UserNotification]:
        return self._store.query("notification.unread_by_user", user_id=user_id)

    def unread_count(self, user_id: int | None) -> int:
        if user_id is None:
            return 0
        return len(self._store.query_ids("notification.unread_by_user", user_id=user_id))

    def find_unemailed(self) -> list[UserNotification]:
        return self._store.query("notification.unemailed")

    def mark_read(self, notification_id: int) -> UserNotification | None:
        with self._store.transaction() as tx:
            notification = tx.find(UserNotification, notification_id)
            if notification is not None:
                notification.read = True
        return notification

    def delete(self, notification: UserNotification) -> None:
        with self._store.transaction() as tx:
            tx.remove(notification)
