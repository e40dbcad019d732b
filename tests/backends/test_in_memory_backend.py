import asyncio
import pytest
import pytest_asyncio
from aioresponses import aioresponses
from yarl import URL
from backup_scheduler.backends import in_memory
from backup_scheduler.backends.in_memory import InMemoryBackend
from backup_scheduler.domain.log import BackupTaskLog
from backup_scheduler.domain.targets import BackupDestination, RemoteServer
from backup_scheduler.domain.task import BackupTask, NotificationTargets, TaskKind, TaskStatus
from backup_scheduler.executor_registry import ExecutorRegistry
from backup_scheduler.executors.protocol import BackupExecutor
from backup_scheduler.notifications import NotificationDispatcher, default_channels

DISCORD_URL = "https://discord.test/api/webhooks/1/abc"
SLACK_URL = "https://hooks.slack.test/services/T000/B000/XXX"


class FilesExecutor(BackupExecutor):
    @staticmethod
    def supported_kind() -> TaskKind:
        return TaskKind.FILES

    async def async_execute(self, task: BackupTask, log: BackupTaskLog) -> None:
        log.output = f"Backed up {task.label}"

class FailingDatabaseExecutor(BackupExecutor):
    @staticmethod
    def supported_kind() -> TaskKind:
        return TaskKind.DATABASE

    async def async_execute(self, task: BackupTask, log: BackupTaskLog) -> None:
        log.output = "pg_dump started"
        raise RuntimeError("disk full")

class FakeMailer:
    def __init__(self):
        self.sent = []
        self.logs = []

    async def send(self, to: str, subject: str, body: str, log=None) -> None:
        self.sent.append((to, subject, body))
        self.logs.append(log)

@pytest.fixture(scope="function")
def executor_registry() -> ExecutorRegistry:
    registry = ExecutorRegistry()
    registry.register(FilesExecutor)
    registry.register(FailingDatabaseExecutor)
    return registry

@pytest.fixture(scope="function")
def mailer():
    return FakeMailer()

@pytest_asyncio.fixture(scope="function")
async def backend(storage, executor_registry, settings, mailer):
    notifier = NotificationDispatcher(storage, default_channels(settings, mailer))
    backend = InMemoryBackend(storage, executor_registry, notifier, settings)
    yield backend
    await backend.stop()

@pytest.fixture(scope="function")
def notified_task(make_task):
    def _notified_task(**overrides) -> BackupTask:
        overrides.setdefault("notification_targets", NotificationTargets(
            email="ops@example.com",
            discord_webhook=DISCORD_URL,
            slack_webhook=SLACK_URL,
        ))
        return make_task(**overrides)
    return _notified_task

async def save_targets(storage):
    await storage.save_remote_server(RemoteServer(id="srv_1", label="web-01"))
    await storage.save_backup_destination(BackupDestination(id="dst_1", label="Offsite", type="S3"))

@pytest.mark.asyncio
async def test_runs_are_routed_by_kind(backend, storage, make_task):
    files = make_task(id="files", kind=TaskKind.FILES, remote_server_id="r1")
    database = make_task(id="database", kind=TaskKind.DATABASE, remote_server_id="r2")
    await storage.create_task(files)
    await storage.create_task(database)

    files_item = await backend.dispatch(files)
    database_item = await backend.dispatch(database)

    assert files_item.queue == "files-backup"
    assert database_item.queue == "database-backup"
    assert [item.task_id for item in backend.enqueued["files-backup"]] == ["files"]
    assert [item.task_id for item in backend.enqueued["database-backup"]] == ["database"]
    # the worker flips the status, not the dispatcher
    assert (await storage.get_task("files")).status == TaskStatus.READY

@pytest.mark.asyncio
async def test_paused_and_running_tasks_are_not_dispatched(backend, storage, make_task):
    paused = make_task(id="paused", paused_at=make_task().created_at)
    running = make_task(id="running", remote_server_id="r2", status=TaskStatus.RUNNING)
    await storage.create_task(paused)
    await storage.create_task(running)

    assert await backend.dispatch(paused) is None
    assert await backend.dispatch(running) is None
    assert backend.enqueued == {}

@pytest.mark.asyncio
async def test_busy_remote_server_is_not_dispatched(backend, storage, make_task):
    busy = make_task(id="busy", remote_server_id="r1", status=TaskStatus.RUNNING)
    waiting = make_task(id="waiting", remote_server_id="r1")
    await storage.create_task(busy)
    await storage.create_task(waiting)

    assert await backend.dispatch(waiting) is None
    assert backend.enqueued == {}

@pytest.mark.asyncio
async def test_run_now_unknown_task(backend):
    with pytest.raises(KeyError):
        await backend.run_now("bkt_missing")

@pytest.mark.asyncio
async def test_successful_run_is_logged_released_and_notified(backend, storage, mailer, notified_task):
    await save_targets(storage)
    task = notified_task()
    await storage.create_task(task)

    with aioresponses() as m:
        m.post(DISCORD_URL, status=204)
        m.post(SLACK_URL, status=200, body="ok")

        await backend.start()
        assert await backend.run_now(task.id) is not None
        await backend.drain()

        assert len(m.requests[("POST", URL(DISCORD_URL))]) == 1
        assert len(m.requests[("POST", URL(SLACK_URL))]) == 1

    log = await storage.get_latest_log(task.id)
    assert log.successful
    assert log.output == "Backed up Nightly Files"
    assert log.finished_at is not None

    stored = await storage.get_task(task.id)
    assert stored.status == TaskStatus.READY
    assert stored.last_run_at is not None

    assert len(mailer.sent) == 1
    assert mailer.sent[0][1] == "Nightly Files Backup Task succeeded"
    assert backend.enqueued["notifications"] == [task.id]
    assert sorted(name for name, _ in backend.enqueued["backup-task-notifications"]) == ["discord", "email", "slack"]

@pytest.mark.asyncio
async def test_failed_run_is_logged_as_failure(backend, storage, mailer, notified_task):
    await save_targets(storage)
    task = notified_task(kind=TaskKind.DATABASE, notification_targets=NotificationTargets(email="dba@example.com"))
    await storage.create_task(task)

    await backend.start()
    await backend.run_now(task.id)
    await backend.drain()

    log = await storage.get_latest_log(task.id)
    assert not log.successful
    assert log.output == "pg_dump started\nError: disk full"

    stored = await storage.get_task(task.id)
    assert stored.status == TaskStatus.READY
    assert mailer.sent[0][1] == "Nightly Files Backup Task failed"

@pytest.mark.asyncio
async def test_failing_webhook_does_not_block_other_channels(backend, storage, mailer, notified_task):
    await save_targets(storage)
    task = notified_task()
    await storage.create_task(task)

    with aioresponses() as m:
        m.post(DISCORD_URL, status=500, body="upstream error")
        m.post(SLACK_URL, status=200, body="ok")

        await backend.start()
        await backend.run_now(task.id)
        await backend.drain()

        assert len(m.requests[("POST", URL(SLACK_URL))]) == 1

    assert len(mailer.sent) == 1
    assert (await storage.get_latest_log(task.id)).successful

@pytest.mark.asyncio
async def test_second_task_on_the_same_server_cannot_claim(backend, storage, make_task):
    first = make_task(id="first", remote_server_id="r1")
    second = make_task(id="second", remote_server_id="r1")
    await storage.create_task(first)
    await storage.create_task(second)

    assert await storage.claim_run("first")
    assert await backend.execute("second") is None
    assert await storage.get_latest_log("second") is None
    assert (await storage.get_task("second")).status == TaskStatus.READY

class CancelledExecutor(BackupExecutor):
    @staticmethod
    def supported_kind() -> TaskKind:
        return TaskKind.FILES

    async def async_execute(self, task: BackupTask, log: BackupTaskLog) -> None:
        raise asyncio.CancelledError()

@pytest.mark.asyncio
async def test_cancelled_run_releases_the_server(storage, settings, make_task):
    registry = ExecutorRegistry()
    registry.register(CancelledExecutor)
    backend = InMemoryBackend(storage, registry, NotificationDispatcher(storage, []), settings)
    await storage.create_task(make_task(id="a", remote_server_id="r1"))
    await storage.create_task(make_task(id="b", remote_server_id="r1"))

    with pytest.raises(asyncio.CancelledError):
        await backend.execute("a")

    assert (await storage.get_task("a")).status == TaskStatus.READY
    log = await storage.get_latest_log("a")
    assert not log.successful
    assert "cancelled" in log.output
    assert await storage.claim_run("b") is True

@pytest.mark.asyncio
async def test_server_is_released_when_the_log_cannot_be_written(backend, storage, make_task, monkeypatch):
    async def failing_create_log(log):
        raise RuntimeError("database is locked")

    await storage.create_task(make_task(id="a", remote_server_id="r1"))
    await storage.create_task(make_task(id="b", remote_server_id="r1"))
    monkeypatch.setattr(storage, "create_log", failing_create_log)

    with pytest.raises(RuntimeError):
        await backend.execute("a")

    assert (await storage.get_task("a")).status == TaskStatus.READY
    assert await storage.claim_run("b") is True

@pytest.mark.asyncio
async def test_enqueued_history_is_bounded_and_cleared_on_stop(backend, storage, make_task, monkeypatch):
    monkeypatch.setattr(in_memory, "ENQUEUED_HISTORY", 2)
    for index in range(3):
        task = make_task(id=f"task_{index}", remote_server_id=f"r{index}")
        await storage.create_task(task)
        await backend.dispatch(task)

    assert [item.task_id for item in backend.enqueued["files-backup"]] == ["task_1", "task_2"]

    await backend.start()
    await backend.drain()
    await backend.stop()
    assert backend.enqueued == {}
