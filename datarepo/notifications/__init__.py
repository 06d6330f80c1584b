"""User notifications — mute-policy filtering, storage, and email payloads."""

from datarepo.notifications.mailer import EmailMessage, Mailer, OutboxMailer
from datarepo.notifications.service import NotificationService

__all__ = ["EmailMessage", "Mailer", "NotificationService", "OutboxMailer"]
