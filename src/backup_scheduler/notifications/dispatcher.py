import logging
from typing import Dict, Iterable, List, Optional, Tuple

from backup_scheduler.errors import DeliveryFailure
from backup_scheduler.notifications.channels import NotificationChannel
from backup_scheduler.notifications.context import NotificationContext
from backup_scheduler.storages.protocol import Storage

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """
    Turns a finished run into one independent delivery per configured channel.

    ``plan`` is the fan-out step: it reads the task and its latest log once and
    returns the deliveries to enqueue. ``deliver`` performs a single delivery and
    is what a notification worker runs.
    """

    def __init__(self, storage: Storage, channels: Iterable[NotificationChannel]):
        self.storage = storage
        self.channels: Dict[str, NotificationChannel] = {}
        for channel in channels:
            if channel.name in self.channels:
                raise ValueError(f"A channel named '{channel.name}' is already registered")
            self.channels[channel.name] = channel

    def get_channel(self, name: str) -> NotificationChannel:
        if name not in self.channels:
            raise KeyError(f"No notification channel registered with name '{name}'")
        return self.channels[name]

    async def build_context(self, task_id: str) -> Optional[NotificationContext]:
        task = await self.storage.get_task(task_id)
        if task is None:
            logger.warning("Task %s no longer exists, not sending notifications", task_id)
            return None

        remote_server = await self.storage.get_remote_server(task.remote_server_id)
        destination = await self.storage.get_backup_destination(task.backup_destination_id)
        return NotificationContext(
            task_id=task.id,
            task_label=task.label,
            task_kind=task.kind,
            remote_server_label=remote_server.label if remote_server else None,
            destination_label=destination.label if destination else None,
            destination_type=destination.type if destination else None,
            targets=task.notification_targets,
            log=await self.storage.get_latest_log(task.id),
        )

    async def plan(self, task_id: str) -> List[Tuple[str, NotificationContext]]:
        context = await self.build_context(task_id)
        if context is None:
            return []

        if not context.targets.wants(context.successful):
            logger.debug("Task %s does not want %s notifications", task_id, context.result)
            return []

        return [
            (name, context)
            for name, channel in self.channels.items()
            if channel.is_configured(context.targets)
        ]

    async def deliver(self, channel_name: str, context: NotificationContext) -> None:
        """
        Send one notification.

        Raises:
            DeliveryFailure: Re-raised after logging so the worker's retry policy can act on it.
        """
        channel = self.get_channel(channel_name)
        try:
            await channel.send(context)
        except DeliveryFailure as e:
            logger.warning("Notification via %s for task %s failed: %s", channel_name, context.task_id, e.reason)
            raise
        logger.info("Sent %s notification for task %s (%s)", channel_name, context.task_id, context.result)
