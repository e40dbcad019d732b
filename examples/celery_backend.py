import logging
from backup_scheduler import BackupTask, BackupTaskLog, Scheduler, TaskKind
from backup_scheduler.backends.celery import CeleryBackend, make_celery_app
from backup_scheduler.config import get_settings
from backup_scheduler.executor_registry import ExecutorRegistry
from backup_scheduler.executors.protocol import BackupExecutor
from backup_scheduler.notifications import NotificationDispatcher, default_channels
from backup_scheduler.storages.sqlalchemy import SqlAlchemyStorage

logging.basicConfig(level=logging.INFO)

class RsyncExecutor(BackupExecutor):
    @staticmethod
    def supported_kind() -> TaskKind:
        return TaskKind.FILES

    async def async_execute(self, task: BackupTask, log: BackupTaskLog) -> None:
        log.output = f"rsync {task.store_path or '/'} from {task.remote_server_id}"

class DumpExecutor(BackupExecutor):
    @staticmethod
    def supported_kind() -> TaskKind:
        return TaskKind.DATABASE

    async def async_execute(self, task: BackupTask, log: BackupTaskLog) -> None:
        log.output = f"pg_dump on {task.remote_server_id}"

settings = get_settings()
celery_app = make_celery_app(settings)

storage = SqlAlchemyStorage(db_url=settings.database_url)
executor_registry = ExecutorRegistry()
executor_registry.register(RsyncExecutor)
executor_registry.register(DumpExecutor)
notifier = NotificationDispatcher(storage, default_channels(settings))

backend = CeleryBackend(storage, executor_registry, notifier, celery_app, settings)
scheduler = Scheduler(storage, backend, settings)
backend.register_tick(scheduler)

if __name__ == "__main__":
    # Save the RedBeat entry once, then run a worker with beat on every queue:
    # celery -A examples.celery_backend.celery_app worker --beat --scheduler redbeat.RedBeatScheduler \
    #     -Q files-backup,database-backup,notifications,backup-task-notifications -P solo --loglevel=info
    backend.install_tick(scheduler)
    print("Installed the scheduler tick. Start a worker to begin processing backups.")
