from typing import List, Optional

from backup_scheduler.config import Settings
from .channels import NotificationChannel, WebhookChannel
from .context import NotificationContext, format_ran_at
from .discord import DiscordWebhookChannel
from .dispatcher import NotificationDispatcher
from .mail import EmailChannel, Mailer, SmtpMailer
from .slack import SlackWebhookChannel


def default_channels(settings: Settings, mailer: Optional[Mailer] = None) -> List[NotificationChannel]:
    return [
        EmailChannel(settings, mailer),
        DiscordWebhookChannel(settings),
        SlackWebhookChannel(settings),
    ]


__all__ = [
    "NotificationChannel", "WebhookChannel", "NotificationContext", "format_ran_at",
    "DiscordWebhookChannel", "SlackWebhookChannel", "EmailChannel", "Mailer", "SmtpMailer",
    "NotificationDispatcher", "default_channels",
]
