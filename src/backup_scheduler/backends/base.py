import asyncio
from abc import ABC, abstractmethod
import logging
from datetime import datetime
from typing import List, Optional
from zoneinfo import ZoneInfo
from pydantic import BaseModel, Field
from backup_scheduler.config import Settings, get_settings
from backup_scheduler.domain.log import BackupTaskLog
from backup_scheduler.domain.task import BackupTask, TaskKind
from backup_scheduler.executor_registry import ExecutorRegistry
from backup_scheduler.notifications.context import NotificationContext
from backup_scheduler.notifications.dispatcher import NotificationDispatcher
from backup_scheduler.scheduling import SkipReason, skip_reason
from backup_scheduler.storages.protocol import Storage

logger = logging.getLogger(__name__)


class WorkItem(BaseModel):
    """
    A unit of backup work handed to the execution side.
    """
    task_id: str = Field(..., description="The task to run")
    kind: TaskKind = Field(..., description="Kind of backup, selects the queue")
    queue: str = Field(..., description="Name of the queue the item was routed to")


class BaseBackend(ABC):
    """
    Dispatches backup runs and notifications onto queues, and implements the
    worker side that consumes them. Subclasses only decide how an item is queued.
    """
    def __init__(
        self,
        storage: Storage,
        executor_registry: ExecutorRegistry,
        notifier: NotificationDispatcher,
        settings: Optional[Settings] = None,
    ):
        self.storage: Storage = storage
        self.executor_registry: ExecutorRegistry = executor_registry
        self.notifier: NotificationDispatcher = notifier
        self.settings: Settings = settings or get_settings()

    async def start(self):
        pass

    async def stop(self):
        pass

    def _now(self) -> datetime:
        return datetime.now(ZoneInfo("UTC"))

    def queue_for(self, kind: TaskKind) -> str:
        if kind == TaskKind.FILES:
            return self.settings.files_backup_queue
        if kind == TaskKind.DATABASE:
            return self.settings.database_backup_queue
        raise ValueError(f"Unsupported task kind: {kind}")

    @abstractmethod
    async def _enqueue_run(self, item: WorkItem) -> None:
        pass

    @abstractmethod
    async def _enqueue_notifications(self, task_id: str) -> None:
        pass

    @abstractmethod
    async def _enqueue_delivery(self, channel_name: str, context: NotificationContext) -> None:
        pass

    async def dispatch(self, task: BackupTask) -> Optional[WorkItem]:
        """
        Enqueue a run of the task unless it is paused, running, or its remote server is busy.

        Skips are logged and return None. The task's status is left alone: the
        worker flips it when it claims the remote server.
        """
        reason = skip_reason(task)
        if reason is None and await self.storage.is_another_task_running_on_same_remote_server(task):
            reason = SkipReason.CONTENDED
        if reason is not None:
            logger.debug("Skipping run of task %s: %s", task.id, reason.value)
            return None

        item = WorkItem(task_id=task.id, kind=task.kind, queue=self.queue_for(task.kind))
        await self._enqueue_run(item)
        logger.info("Dispatched task %s to queue %s", task.id, item.queue)
        return item

    async def run_now(self, task_id: str) -> Optional[WorkItem]:
        """
        Dispatch a task immediately, regardless of its cadence.
        """
        task = await self.storage.get_task(task_id)
        if task is None:
            raise KeyError(f"No task with id '{task_id}'")
        return await self.dispatch(task)

    async def send_notifications(self, task_id: str) -> None:
        await self._enqueue_notifications(task_id)

    async def execute(self, task_id: str) -> Optional[BackupTaskLog]:
        """
        Worker side of a run: claim the remote server, back up, log, release, notify.

        Returns None without running if the claim fails. Once claimed, the server
        is released even if the run is cancelled or the log cannot be written.
        A cancelled run is logged as a failure and the cancellation re-raised.
        """
        if not await self.storage.claim_run(task_id):
            logger.debug("Task %s could not claim its remote server, skipping run", task_id)
            return None

        log = BackupTaskLog(backup_task_id=task_id, created_at=self._now())
        cancelled = False
        try:
            try:
                task = await self.storage.get_task(task_id)
                executor = self.executor_registry.get_executor(task.kind)
                await executor.async_execute(task, log)
                log.mark_successful(self._now())
            except asyncio.CancelledError:
                cancelled = True
                logger.warning("Backup task %s was cancelled", task_id)
                log.mark_failed(self._now(), "Error: the run was cancelled")
            except Exception as e:
                logger.exception("Error executing backup task %s", task_id)
                log.mark_failed(self._now(), f"Error: {e}")

            await self.storage.create_log(log)
        finally:
            await self.storage.release_run(task_id, self._now())

        await self.send_notifications(task_id)
        if cancelled:
            raise asyncio.CancelledError()
        return log

    async def notify(self, task_id: str) -> List[str]:
        """
        Fan-out step: enqueue one delivery per configured channel and return their names.
        """
        deliveries = await self.notifier.plan(task_id)
        for channel_name, context in deliveries:
            await self._enqueue_delivery(channel_name, context)
        return [channel_name for channel_name, _ in deliveries]

    async def deliver(self, channel_name: str, context: NotificationContext) -> None:
        await self.notifier.deliver(channel_name, context)
