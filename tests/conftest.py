from datetime import datetime, timezone
from typing import Callable

import pytest
import pytest_asyncio

from backup_scheduler.config import Settings
from backup_scheduler.domain.task import BackupTask, TaskKind
from backup_scheduler.domain.cadence import DailyCadence
from backup_scheduler.storages.sqlalchemy import InMemoryStorage


@pytest.fixture(scope="function")
def settings() -> Settings:
    return Settings(_env_file=None, app_name="Vanguard", app_url="https://vanguard.test", timezone="UTC")


@pytest_asyncio.fixture(scope="function")
async def storage():
    storage = InMemoryStorage()
    await storage.create_tables()
    yield storage
    await storage.dispose()


@pytest.fixture(scope="function")
def make_task() -> Callable[..., BackupTask]:
    def _make_task(**overrides) -> BackupTask:
        values = dict(
            user_id="user_1",
            remote_server_id="srv_1",
            backup_destination_id="dst_1",
            label="Nightly Files",
            kind=TaskKind.FILES,
            cadence=DailyCadence(time_to_run_at="09:00"),
            created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
        )
        values.update(overrides)
        return BackupTask(**values)
    return _make_task
