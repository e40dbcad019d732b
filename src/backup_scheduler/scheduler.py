import asyncio
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional
from zoneinfo import ZoneInfo

from pydantic import ValidationError

from backup_scheduler.backends.base import BaseBackend, WorkItem
from backup_scheduler.config import Settings, get_settings
from backup_scheduler.errors import ConfigurationError
from backup_scheduler.scheduling import Decision, calculate_next_run, evaluate
from backup_scheduler.storages.protocol import Storage

logger = logging.getLogger(__name__)


class Scheduler:
    """
    Evaluates every ready, unpaused task once per tick and dispatches the due ones.

    A tick must happen every minute. Minutes without a tick are not caught up.
    """

    def __init__(self, storage: Storage, backend: BaseBackend, settings: Optional[Settings] = None):
        self.storage = storage
        self.backend = backend
        self.settings = settings or get_settings()
        self.is_running: bool = False

    def now(self) -> datetime:
        return datetime.now(ZoneInfo(self.settings.timezone)).replace(second=0, microsecond=0)

    async def tick(self, now: Optional[datetime] = None) -> List[WorkItem]:
        now = now or self.now()
        dispatched: List[WorkItem] = []
        for task_id in await self.storage.list_schedulable_task_ids():
            try:
                item = await self._evaluate_task(task_id, now)
            except (ConfigurationError, ValidationError):
                logger.exception("Task %s has an invalid schedule and was not evaluated", task_id)
                continue
            if item is not None:
                dispatched.append(item)
        return dispatched

    async def _evaluate_task(self, task_id: str, now: datetime) -> Optional[WorkItem]:
        task = await self.storage.get_task(task_id)
        if task is None:
            return None

        decision = evaluate(task, now)
        if decision != Decision.RUN:
            logger.debug("Task %s not dispatched: %s", task_id, decision.value)
            return None

        item = await self.backend.dispatch(task)
        if item is not None and task.is_weekly:
            await self.storage.record_scheduled_weekly_run(task.id, now)
        return item

    async def next_runs(self, user_id: Optional[str] = None, now: Optional[datetime] = None) -> Dict[str, Optional[datetime]]:
        now = now or datetime.now(ZoneInfo(self.settings.timezone))
        tasks = await self.storage.list_tasks(user_id=user_id)
        return {task.id: calculate_next_run(task, now) for task in tasks}

    async def run_forever(self):
        """
        Tick at the start of every minute until cancelled or stopped.
        """
        self.is_running = True
        try:
            while self.is_running:
                current = datetime.now(ZoneInfo(self.settings.timezone))
                next_minute = current.replace(second=0, microsecond=0) + timedelta(minutes=1)
                await asyncio.sleep((next_minute - current).total_seconds())
                try:
                    await self.tick(next_minute)
                except Exception:
                    logger.exception("Error in scheduler tick")
        finally:
            self.is_running = False

    def stop(self):
        self.is_running = False
