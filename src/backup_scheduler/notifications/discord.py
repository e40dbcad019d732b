from typing import Any, Dict, Optional

from backup_scheduler.domain.task import NotificationTargets
from backup_scheduler.notifications.channels import WebhookChannel
from backup_scheduler.notifications.context import NotificationContext

SUCCESS_COLOR = 3066993
FAILURE_COLOR = 15158332

# Discord rejects embed fields with an empty value.
BLANK_VALUE = "\u200b"


class DiscordWebhookChannel(WebhookChannel):
    name = "discord"

    def target(self, targets: NotificationTargets) -> Optional[str]:
        return targets.discord_webhook

    def _field(self, name: str, value: str) -> Dict[str, Any]:
        return {"name": name, "value": value or BLANK_VALUE, "inline": True}

    def format(self, context: NotificationContext) -> Dict[str, Any]:
        embed = {
            "title": context.title,
            "description": context.message,
            "color": SUCCESS_COLOR if context.successful else FAILURE_COLOR,
            "fields": [
                self._field("Backup Type", context.backup_type),
                self._field("Remote Server", context.remote_server),
                self._field("Backup Destination", context.destination),
                self._field("Result", context.result.capitalize()),
                self._field("Ran at", context.ran_at(self.settings.timezone)),
            ],
            "footer": {
                "icon_url": self.settings.asset_url("images/logo.png"),
                "text": f"This notification was sent by {self.settings.app_name}.",
            },
        }
        return {
            "username": self.settings.app_name,
            "avatar_url": self.settings.asset_url("images/logo-on-black.png"),
            "embeds": [embed],
        }
