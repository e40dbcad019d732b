import asyncio
import logging
from backup_scheduler import BackupTask, BackupTaskLog, Scheduler, TaskKind
from backup_scheduler.backends.in_memory import InMemoryBackend
from backup_scheduler.config import get_settings
from backup_scheduler.domain.cadence import CronCadence
from backup_scheduler.domain.targets import BackupDestination, RemoteServer
from backup_scheduler.executor_registry import ExecutorRegistry
from backup_scheduler.executors.protocol import BackupExecutor
from backup_scheduler.notifications import NotificationDispatcher, default_channels
from backup_scheduler.storages.sqlalchemy import InMemoryStorage

class PrintExecutor(BackupExecutor):
    @staticmethod
    def supported_kind() -> TaskKind:
        return TaskKind.FILES

    async def async_execute(self, task: BackupTask, log: BackupTaskLog) -> None:
        print(f"Backing up {task.label} from {task.remote_server_id}")
        log.output = f"Copied files for {task.label}"

settings = get_settings()
storage = InMemoryStorage()
executor_registry = ExecutorRegistry()
executor_registry.register(PrintExecutor)
notifier = NotificationDispatcher(storage, default_channels(settings))
backend = InMemoryBackend(storage, executor_registry, notifier, settings)
scheduler = Scheduler(storage, backend, settings)

async def main():
    logging.basicConfig(level=logging.INFO)
    await storage.create_tables()
    await storage.save_remote_server(RemoteServer(id="srv_web", label="web-01"))
    await storage.save_backup_destination(BackupDestination(id="dst_s3", label="Offsite", type="S3"))
    await storage.create_task(BackupTask(
        user_id="user_1",
        remote_server_id="srv_web",
        backup_destination_id="dst_s3",
        label="Every Minute Files",
        kind=TaskKind.FILES,
        cadence=CronCadence(expression="* * * * *"),
    ))

    await backend.start()
    try:
        await scheduler.run_forever()
    finally:
        await backend.stop()
        await storage.dispose()

if __name__ == "__main__":
    asyncio.run(main())
