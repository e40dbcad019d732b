import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple
from backup_scheduler.config import Settings
from backup_scheduler.errors import DeliveryFailure
from backup_scheduler.executor_registry import ExecutorRegistry
from backup_scheduler.notifications.context import NotificationContext
from backup_scheduler.notifications.dispatcher import NotificationDispatcher
from backup_scheduler.storages.protocol import Storage
from .base import BaseBackend, WorkItem

logger = logging.getLogger(__name__)

# Items remembered per queue in `enqueued`
ENQUEUED_HISTORY = 1000


class InMemoryBackend(BaseBackend):
    """
    In-process backend built on asyncio.
    WARNING: This backend is for development and tests only.
    Queued work lives in memory and is lost on restart.

    Runs and notification fan-outs are processed one at a time by a single
    worker. Each channel delivery runs as its own asyncio task so a slow
    webhook does not hold up the others.
    """

    def __init__(
        self,
        storage: Storage,
        executor_registry: ExecutorRegistry,
        notifier: NotificationDispatcher,
        settings: Optional[Settings] = None,
    ):
        super().__init__(storage, executor_registry, notifier, settings)
        self.enqueued: Dict[str, List[Any]] = {}
        self._queue: asyncio.Queue = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None
        self._deliveries: Set[asyncio.Task] = set()
        self.is_running: bool = False

    async def start(self):
        """
        Start the worker.
        """
        if not self.is_running:
            self.is_running = True
            self._worker = asyncio.create_task(self._worker_loop())
            logger.warning("InMemoryBackend started. Do not use it in production.")

    async def stop(self):
        """
        Stop the worker and wait for in-flight deliveries.
        """
        if self.is_running:
            self.is_running = False
            if self._worker:
                self._worker.cancel()
                try:
                    await self._worker
                except asyncio.CancelledError:
                    pass
            await asyncio.gather(*self._deliveries, return_exceptions=True)
            self._deliveries.clear()
            self.enqueued.clear()
            logger.info("InMemoryBackend stopped.")

    async def drain(self):
        """
        Wait until every queued item and delivery has been processed.
        """
        while True:
            await self._queue.join()
            pending = [delivery for delivery in self._deliveries if not delivery.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    def _record(self, queue: str, item: Any) -> None:
        items = self.enqueued.setdefault(queue, [])
        items.append(item)
        del items[:-ENQUEUED_HISTORY]

    async def _enqueue_run(self, item: WorkItem) -> None:
        self._record(item.queue, item)
        await self._queue.put((item.queue, lambda: self.execute(item.task_id)))

    async def _enqueue_notifications(self, task_id: str) -> None:
        queue = self.settings.notification_fanout_queue
        self._record(queue, task_id)
        await self._queue.put((queue, lambda: self.notify(task_id)))

    async def _enqueue_delivery(self, channel_name: str, context: NotificationContext) -> None:
        self._record(self.settings.notification_queue, (channel_name, context))
        delivery = asyncio.create_task(self._deliver_safely(channel_name, context))
        self._deliveries.add(delivery)
        delivery.add_done_callback(self._deliveries.discard)

    async def _deliver_safely(self, channel_name: str, context: NotificationContext) -> None:
        try:
            await self.deliver(channel_name, context)
        except DeliveryFailure:
            # already logged by the dispatcher, no retries in process
            pass
        except Exception:
            logger.exception("Unexpected error delivering %s notification for task %s", channel_name, context.task_id)

    async def _worker_loop(self):
        """
        Process queued runs and fan-outs in order.
        """
        while True:
            entry: Tuple[str, Callable[[], Awaitable[Any]]] = await self._queue.get()
            queue, job = entry
            try:
                await job()
            except Exception:
                logger.exception("Error processing item from queue %s", queue)
            finally:
                self._queue.task_done()
