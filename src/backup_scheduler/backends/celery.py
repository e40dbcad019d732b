import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional
from celery import Celery
from celery.schedules import crontab
from redbeat import RedBeatSchedulerEntry
from backup_scheduler.config import Settings, get_settings
from backup_scheduler.errors import DeliveryFailure
from backup_scheduler.executor_registry import ExecutorRegistry
from backup_scheduler.notifications.context import NotificationContext
from backup_scheduler.notifications.dispatcher import NotificationDispatcher
from backup_scheduler.storages.protocol import Storage
from .base import BaseBackend, WorkItem

logger = logging.getLogger(__name__)

TICK_ENTRY_NAME = "backup_scheduler:tick"


def make_celery_app(settings: Optional[Settings] = None) -> Celery:
    settings = settings or get_settings()
    app = Celery('backup_scheduler', broker=settings.broker_url, backend=settings.result_backend)
    app.conf.update(
        task_default_queue=settings.notification_fanout_queue,
        beat_scheduler='redbeat.RedBeatScheduler',
        redbeat_redis_url=settings.redbeat_redis_url,
        timezone=settings.timezone,
    )
    return app


class CeleryBackend(BaseBackend):
    app: Celery

    def __init__(
        self,
        storage: Storage,
        executor_registry: ExecutorRegistry,
        notifier: NotificationDispatcher,
        celery_app: Celery,
        settings: Optional[Settings] = None,
    ):
        super().__init__(storage, executor_registry, notifier, settings)
        self.app = celery_app

        @self.app.task(name="backup_scheduler.run_backup_task", shared=False)
        def run_backup_task(task_id: str):
            logger.info("Executing backup task %s", task_id)
            self._run(lambda: self.execute(task_id))

        @self.app.task(name="backup_scheduler.send_notifications", shared=False)
        def send_notifications(task_id: str):
            self._run(lambda: self.notify(task_id))

        @self.app.task(
            name="backup_scheduler.deliver_notification",
            shared=False,
            autoretry_for=(DeliveryFailure,),
            retry_backoff=True,
            max_retries=self.settings.notification_max_retries,
        )
        def deliver_notification(channel_name: str, context: dict):
            self._run(lambda: self.deliver(channel_name, NotificationContext.model_validate(context)))

        self._run_task = run_backup_task
        self._notifications_task = send_notifications
        self._delivery_task = deliver_notification
        self._tick_task = None

    def _run(self, job: Callable[[], Awaitable[Any]]) -> Any:
        """
        Run a coroutine to completion from a synchronous Celery worker.

        Every call gets a fresh event loop, so pooled connections are dropped before it closes.
        """
        async def _execute():
            try:
                return await job()
            finally:
                dispose = getattr(self.storage, "dispose", None)
                if dispose is not None:
                    await dispose()
        return asyncio.run(_execute())

    async def _enqueue_run(self, item: WorkItem) -> None:
        self._run_task.apply_async(args=[item.task_id], queue=item.queue)

    async def _enqueue_notifications(self, task_id: str) -> None:
        self._notifications_task.apply_async(args=[task_id], queue=self.settings.notification_fanout_queue)

    async def _enqueue_delivery(self, channel_name: str, context: NotificationContext) -> None:
        self._delivery_task.apply_async(
            args=[channel_name, context.model_dump(mode="json")],
            queue=self.settings.notification_queue,
        )

    def register_tick(self, scheduler):
        """
        Register the scheduler tick as a Celery task. Workers must call this at import time.
        """
        @self.app.task(name="backup_scheduler.tick", shared=False)
        def tick():
            work_items = self._run(scheduler.tick)
            logger.info("Scheduler tick dispatched %d task(s)", len(work_items))

        self._tick_task = tick
        return tick

    def install_tick(self, scheduler) -> RedBeatSchedulerEntry:
        """
        Save a RedBeat entry that fires the scheduler tick every minute.
        """
        tick = self._tick_task or self.register_tick(scheduler)
        entry = RedBeatSchedulerEntry(
            TICK_ENTRY_NAME,
            tick.name,
            crontab(minute="*"),
            app=self.app,
        )
        entry.save()
        logger.info("Saved RedBeat entry %s", TICK_ENTRY_NAME)
        return entry
