from typing import Any, Dict, Optional

from backup_scheduler.domain.task import NotificationTargets
from backup_scheduler.notifications.channels import WebhookChannel
from backup_scheduler.notifications.context import NotificationContext


class SlackWebhookChannel(WebhookChannel):
    name = "slack"

    def target(self, targets: NotificationTargets) -> Optional[str]:
        return targets.slack_webhook

    def format(self, context: NotificationContext) -> Dict[str, Any]:
        fields = [
            ("Backup Type", context.backup_type),
            ("Remote Server", context.remote_server),
            ("Backup Destination", context.destination),
            ("Result", context.result.capitalize()),
            ("Ran at", context.ran_at(self.settings.timezone)),
        ]
        return {
            "attachments": [
                {
                    "title": context.title,
                    "text": context.message,
                    "color": "good" if context.successful else "danger",
                    "fields": [{"title": title, "value": value, "short": True} for title, value in fields],
                    "footer": f"This notification was sent by {self.settings.app_name}.",
                }
            ]
        }
