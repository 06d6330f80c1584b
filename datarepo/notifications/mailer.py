"""Mailer protocol and the outbox mailer — builds notification email payloads.

``OutboxMailer`` constructs email-compatible messages from user
notifications.  Actual SMTP delivery is left to a transport layer; this
mailer only builds the payload and keeps it in an outbox.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict

from datarepo.models.notifications import NotificationType, UserNotification
from datarepo.models.users import AuthenticatedUser

logger = logging.getLogger(__name__)

_SUBJECTS: dict[NotificationType, str] = {
    NotificationType.ASSIGNROLE: "You have been assigned a role",
    NotificationType.REVOKEROLE: "Your role has been revoked",
    NotificationType.CREATEDV: "Your collection has been created",
    NotificationType.CREATEDS: "Your dataset has been created",
    NotificationType.CREATEACC: "Your account has been created",
    NotificationType.SUBMITTEDDS: "A dataset has been submitted for review",
    NotificationType.RETURNEDDS: "Your dataset has been returned",
    NotificationType.PUBLISHEDDS: "Your dataset has been published",
    NotificationType.REQUESTFILEACCESS: "Access has been requested for a restricted file",
    NotificationType.GRANTFILEACCESS: "You have been granted access to a restricted file",
    NotificationType.REJECTFILEACCESS: "Your request for a restricted file has been rejected",
    NotificationType.CHECKSUMFAIL: "A file checksum validation failed",
    NotificationType.CONFIRMEMAIL: "Verify your email address",
    NotificationType.INGESTCOMPLETED: "Your ingest has completed",
    NotificationType.INGESTCOMPLETEDWITHERRORS: "Your ingest has completed with errors",
    NotificationType.PUBLISHFAILED_PIDREG: "Publication failed: identifier registration",
    NotificationType.WORKFLOW_SUCCESS: "Workflow completed",
    NotificationType.WORKFLOW_FAILURE: "Workflow failed",
    NotificationType.STATUSUPDATED: "Dataset status updated",
}


class EmailMessage(BaseModel):
    """A notification email ready for SMTP delivery."""

    model_config = ConfigDict(frozen=True)

    recipient: str
    sender: str
    subject: str
    body: str
    is_html: bool = False
    headers: dict[str, str] = {}


@runtime_checkable
class Mailer(Protocol):
    """Protocol every notification mailer must implement."""

    def send_notification_email(
        self,
        notification: UserNotification,
        recipient: AuthenticatedUser,
        comment: str = "",
        requestor: AuthenticatedUser | None = None,
        is_html: bool = False,
    ) -> bool:
        """Deliver the email for *notification*.  Returns True if it was sent."""
        ...


class OutboxMailer:
    """Builds notification emails into an outbox (no SMTP).

    Parameters
    ----------
    sender:
        The From address.
    """

    def __init__(self, sender: str = "noreply@localhost") -> None:
        self._sender = sender
        self._outbox: list[EmailMessage] = []

    def send_notification_email(
        self,
        notification: UserNotification,
        recipient: AuthenticatedUser,
        comment: str = "",
        requestor: AuthenticatedUser | None = None,
        is_html: bool = False,
    ) -> bool:
        if not recipient.email:
            logger.debug("User %s has no email address; not sending", recipient.identifier)
            return False

        message = EmailMessage(
            recipient=recipient.email,
            sender=self._sender,
            subject=self._format_subject(notification),
            body=self._format_body(notification, recipient, comment, requestor, is_html),
            is_html=is_html,
            headers={
                "X-Notification-Type": notification.type.value,
                "X-Object-Id": str(notification.object_id or ""),
            },
        )
        self._outbox.append(message)
        logger.debug("OutboxMailer: queued %s for %s", notification.type.value, recipient.email)
        return True

    def flush(self) -> list[EmailMessage]:
        """Return and clear all queued messages."""
        messages = list(self._outbox)
        self._outbox.clear()
        return messages

    @property
    def pending_count(self) -> int:
        return len(self._outbox)

    @staticmethod
    def _format_subject(notification: UserNotification) -> str:
        return f"[datarepo] {_SUBJECTS.get(notification.type, notification.type.value)}"

    @staticmethod
    def _format_body(
        notification: UserNotification,
        recipient: AuthenticatedUser,
        comment: str,
        requestor: AuthenticatedUser | None,
        is_html: bool,
    ) -> str:
        name = recipient.display_name or recipient.identifier
        lines = [
            f"Hello {name},",
            "",
            _SUBJECTS.get(notification.type, notification.type.value) + ".",
        ]
        if notification.object_id is not None:
            lines.append(f"Object: {notification.object_id}")
        if requestor is not None:
            lines.append(f"Requested by: {requestor.display_name or requestor.identifier}")
        if comment:
            lines += ["", comment]
        lines += ["", "-- datarepo notification"]
        if is_html:
            return "<br/>\n".join(lines)
        return "\n".join(lines)
