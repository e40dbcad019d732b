import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, ClassVar, Dict, Optional

import aiohttp

from backup_scheduler.config import Settings
from backup_scheduler.domain.task import NotificationTargets
from backup_scheduler.errors import DeliveryFailure
from backup_scheduler.notifications.context import NotificationContext

logger = logging.getLogger(__name__)


class NotificationChannel(ABC):
    """
    Base class for all notification channels.

    A channel knows where its target lives on a task, how to turn a finished
    run into its own payload shape, and how to deliver that payload.
    """
    name: ClassVar[str]

    def __init__(self, settings: Settings):
        self.settings = settings

    @abstractmethod
    def target(self, targets: NotificationTargets) -> Optional[str]:
        pass

    @abstractmethod
    def format(self, context: NotificationContext) -> Dict[str, Any]:
        pass

    @abstractmethod
    async def deliver(self, target: str, payload: Dict[str, Any]) -> None:
        """
        Deliver a formatted payload.

        Raises:
            DeliveryFailure: If the payload could not be delivered.
        """
        pass

    def is_configured(self, targets: NotificationTargets) -> bool:
        return bool(self.target(targets))

    async def send(self, context: NotificationContext) -> None:
        target = self.target(context.targets)
        if not target:
            logger.debug("Channel %s is not configured for task %s", self.name, context.task_id)
            return
        await self.deliver(target, self.format(context))


class WebhookChannel(NotificationChannel):
    """
    Delivers a JSON payload with a single POST using aiohttp.
    """

    async def deliver(self, target: str, payload: Dict[str, Any]) -> None:
        timeout = aiohttp.ClientTimeout(total=self.settings.webhook_timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(
                    target,
                    json=payload,
                    headers={"Content-Type": "application/json"}
                ) as response:
                    if not 200 <= response.status < 300:
                        body = await response.text()
                        raise DeliveryFailure(self.name, f"HTTP {response.status}: {body[:200]}")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise DeliveryFailure(self.name, str(e) or e.__class__.__name__) from e
