import calendar
from datetime import datetime, timezone
from typing import Dict, List, Optional
from sqlalchemy import Column, String, Text, Integer, DateTime, JSON, ForeignKey, delete, func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import declarative_base, sessionmaker, relationship
from sqlalchemy.future import select
from backup_scheduler.domain.task import BackupTask, TaskStatus
from backup_scheduler.domain.log import BackupTaskLog
from backup_scheduler.domain.targets import BackupDestination, RemoteServer
from backup_scheduler.storages.protocol import Storage

Base = declarative_base()


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _months_ago(now: datetime, months: int) -> datetime:
    index = now.year * 12 + now.month - 1 - months
    year, month = divmod(index, 12)
    day = min(now.day, calendar.monthrange(year, month + 1)[1])
    return now.replace(year=year, month=month + 1, day=day)


class BackupTaskModel(Base):
    __tablename__ = 'backup_tasks'

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    remote_server_id = Column(String, nullable=False, index=True)
    backup_destination_id = Column(String, nullable=False)
    label = Column(String, nullable=False)
    description = Column(String)
    kind = Column(String, nullable=False)
    cadence_type = Column(String)
    cadence = Column(JSON)
    status = Column(String, nullable=False, default=TaskStatus.READY.value, index=True)
    paused_at = Column(DateTime(timezone=True))
    last_run_at = Column(DateTime(timezone=True))
    last_scheduled_weekly_run_at = Column(DateTime(timezone=True))
    maximum_backups_to_keep = Column(Integer, nullable=False, default=0)
    store_path = Column(String)
    appended_file_name = Column(String)
    tags = Column(JSON)
    notification_targets = Column(JSON)
    created_at = Column(DateTime(timezone=True), nullable=False)

    logs = relationship("BackupTaskLogModel", back_populates="task", cascade="all, delete-orphan")

class BackupTaskLogModel(Base):
    __tablename__ = 'backup_task_logs'

    id = Column(String, primary_key=True)
    backup_task_id = Column(String, ForeignKey('backup_tasks.id'), nullable=False, index=True)
    output = Column(Text, nullable=False, default="")
    successful_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), nullable=False)
    finished_at = Column(DateTime(timezone=True))

    task = relationship("BackupTaskModel", back_populates="logs")

class RemoteServerModel(Base):
    __tablename__ = 'remote_servers'

    id = Column(String, primary_key=True)
    label = Column(String)

class BackupDestinationModel(Base):
    __tablename__ = 'backup_destinations'

    id = Column(String, primary_key=True)
    label = Column(String)
    type = Column(String)

class RemoteServerLockModel(Base):
    """
    One row per remote server that currently has a running task.
    The primary key makes a second claim on the same server fail.
    """
    __tablename__ = 'remote_server_locks'

    remote_server_id = Column(String, primary_key=True)
    task_id = Column(String, ForeignKey('backup_tasks.id'), nullable=False, unique=True)
    acquired_at = Column(DateTime(timezone=True), nullable=False)

class SqlAlchemyStorage(Storage):
    def __init__(self, db_url: str):
        self.engine = create_async_engine(db_url)
        self.async_session = sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )

    async def create_tables(self):
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self):
        await self.engine.dispose()

    def _apply_task(self, db_task: BackupTaskModel, task: BackupTask) -> None:
        db_task.user_id = task.user_id
        db_task.remote_server_id = task.remote_server_id
        db_task.backup_destination_id = task.backup_destination_id
        db_task.label = task.label
        db_task.description = task.description
        db_task.kind = task.kind.value
        db_task.cadence_type = task.cadence.type.value if task.cadence else None
        db_task.cadence = task.cadence.model_dump(mode="json") if task.cadence else None
        db_task.status = task.status.value
        db_task.paused_at = _utc(task.paused_at)
        db_task.last_run_at = _utc(task.last_run_at)
        db_task.last_scheduled_weekly_run_at = _utc(task.last_scheduled_weekly_run_at)
        db_task.maximum_backups_to_keep = task.maximum_backups_to_keep
        db_task.store_path = task.store_path
        db_task.appended_file_name = task.appended_file_name
        db_task.tags = list(task.tags)
        db_task.notification_targets = task.notification_targets.model_dump(mode="json")

    async def create_task(self, task: BackupTask) -> str:
        async with self.async_session() as session:
            db_task = BackupTaskModel(id=task.id, created_at=_utc(task.created_at))
            self._apply_task(db_task, task)
            session.add(db_task)
            await session.commit()
            return task.id

    async def get_task(self, task_id: str) -> Optional[BackupTask]:
        async with self.async_session() as session:
            result = await session.execute(select(BackupTaskModel).filter_by(id=task_id))
            db_task = result.scalar_one_or_none()
            if db_task:
                return self._db_to_task(db_task)
            return None

    async def update_task(self, task: BackupTask) -> bool:
        async with self.async_session() as session:
            result = await session.execute(select(BackupTaskModel).filter_by(id=task.id))
            db_task = result.scalar_one_or_none()
            if db_task:
                self._apply_task(db_task, task)
                await session.commit()
                return True
            return False

    async def delete_task(self, task_id: str) -> bool:
        async with self.async_session() as session:
            result = await session.execute(select(BackupTaskModel).filter_by(id=task_id))
            db_task = result.scalar_one_or_none()
            if db_task:
                await session.execute(delete(RemoteServerLockModel).filter_by(task_id=task_id))
                await session.delete(db_task)
                await session.commit()
                return True
            return False

    async def list_tasks(
        self,
        user_id: Optional[str] = None,
        remote_server_id: Optional[str] = None,
        status: Optional[TaskStatus] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[BackupTask]:
        query = select(BackupTaskModel)
        if user_id is not None:
            query = query.filter_by(user_id=user_id)
        if remote_server_id is not None:
            query = query.filter_by(remote_server_id=remote_server_id)
        if status is not None:
            query = query.filter_by(status=status.value)
        async with self.async_session() as session:
            result = await session.execute(query.order_by(BackupTaskModel.created_at.desc()).offset(offset).limit(limit))
            return [self._db_to_task(db_task) for db_task in result.scalars()]

    async def list_schedulable_task_ids(self) -> List[str]:
        async with self.async_session() as session:
            result = await session.execute(
                select(BackupTaskModel.id)
                .where(BackupTaskModel.status == TaskStatus.READY.value)
                .where(BackupTaskModel.paused_at.is_(None))
                .order_by(BackupTaskModel.created_at)
            )
            return list(result.scalars())

    async def _update_columns(self, task_id: str, **values) -> bool:
        async with self.async_session() as session:
            result = await session.execute(
                update(BackupTaskModel).where(BackupTaskModel.id == task_id).values(**values)
            )
            await session.commit()
            return result.rowcount == 1

    async def pause_task(self, task_id: str, paused_at: datetime) -> bool:
        return await self._update_columns(task_id, paused_at=_utc(paused_at))

    async def resume_task(self, task_id: str) -> bool:
        return await self._update_columns(task_id, paused_at=None)

    async def record_scheduled_weekly_run(self, task_id: str, at: datetime) -> bool:
        return await self._update_columns(task_id, last_scheduled_weekly_run_at=_utc(at))

    async def is_another_task_running_on_same_remote_server(self, task: BackupTask) -> bool:
        async with self.async_session() as session:
            result = await session.execute(
                select(BackupTaskModel.id)
                .where(BackupTaskModel.remote_server_id == task.remote_server_id)
                .where(BackupTaskModel.status == TaskStatus.RUNNING.value)
                .where(BackupTaskModel.id != task.id)
                .limit(1)
            )
            return result.scalar_one_or_none() is not None

    async def claim_run(self, task_id: str) -> bool:
        try:
            async with self.async_session() as session:
                async with session.begin():
                    result = await session.execute(
                        select(BackupTaskModel.remote_server_id).where(BackupTaskModel.id == task_id)
                    )
                    remote_server_id = result.scalar_one_or_none()
                    if remote_server_id is None:
                        return False
                    claimed = await session.execute(
                        update(BackupTaskModel)
                        .where(BackupTaskModel.id == task_id)
                        .where(BackupTaskModel.status == TaskStatus.READY.value)
                        .values(status=TaskStatus.RUNNING.value)
                    )
                    if claimed.rowcount != 1:
                        return False
                    session.add(RemoteServerLockModel(
                        remote_server_id=remote_server_id,
                        task_id=task_id,
                        acquired_at=datetime.now(timezone.utc),
                    ))
                    await session.flush()
        except IntegrityError:
            return False
        return True

    async def release_run(self, task_id: str, finished_at: datetime) -> bool:
        async with self.async_session() as session:
            async with session.begin():
                released = await session.execute(
                    update(BackupTaskModel)
                    .where(BackupTaskModel.id == task_id)
                    .where(BackupTaskModel.status == TaskStatus.RUNNING.value)
                    .values(status=TaskStatus.READY.value, last_run_at=_utc(finished_at))
                )
                await session.execute(delete(RemoteServerLockModel).filter_by(task_id=task_id))
                return released.rowcount == 1

    async def save_remote_server(self, server: RemoteServer) -> str:
        async with self.async_session() as session:
            await session.merge(RemoteServerModel(id=server.id, label=server.label))
            await session.commit()
            return server.id

    async def get_remote_server(self, server_id: str) -> Optional[RemoteServer]:
        async with self.async_session() as session:
            db_server = await session.get(RemoteServerModel, server_id)
            if db_server:
                return RemoteServer(id=db_server.id, label=db_server.label)
            return None

    async def save_backup_destination(self, destination: BackupDestination) -> str:
        async with self.async_session() as session:
            await session.merge(BackupDestinationModel(id=destination.id, label=destination.label, type=destination.type))
            await session.commit()
            return destination.id

    async def get_backup_destination(self, destination_id: str) -> Optional[BackupDestination]:
        async with self.async_session() as session:
            db_destination = await session.get(BackupDestinationModel, destination_id)
            if db_destination:
                return BackupDestination(id=db_destination.id, label=db_destination.label, type=db_destination.type)
            return None

    async def create_log(self, log: BackupTaskLog) -> str:
        async with self.async_session() as session:
            db_log = BackupTaskLogModel(
                id=log.id,
                backup_task_id=log.backup_task_id,
                output=log.output,
                successful_at=_utc(log.successful_at),
                created_at=_utc(log.created_at),
                finished_at=_utc(log.finished_at)
            )
            session.add(db_log)
            await session.commit()
            return log.id

    async def list_recent_logs(self, task_id: str, limit: int = 10) -> List[BackupTaskLog]:
        async with self.async_session() as session:
            result = await session.execute(
                select(BackupTaskLogModel)
                .filter_by(backup_task_id=task_id)
                .order_by(BackupTaskLogModel.created_at.desc())
                .limit(limit)
            )
            return [self._db_to_log(db_log) for db_log in result.scalars()]

    async def get_latest_log(self, task_id: str) -> Optional[BackupTaskLog]:
        logs = await self.list_recent_logs(task_id, limit=1)
        return logs[0] if logs else None

    async def count_tasks_by_kind(self, user_id: str) -> Dict[str, int]:
        async with self.async_session() as session:
            result = await session.execute(
                select(BackupTaskModel.kind, func.count(BackupTaskModel.id))
                .where(BackupTaskModel.user_id == user_id)
                .group_by(BackupTaskModel.kind)
            )
            return {kind: count for kind, count in result.all()}

    async def count_logs_per_month(self, user_id: str, now: datetime) -> Dict[str, int]:
        async with self.async_session() as session:
            result = await session.execute(
                select(BackupTaskLogModel.created_at)
                .join(BackupTaskModel, BackupTaskModel.id == BackupTaskLogModel.backup_task_id)
                .where(BackupTaskModel.user_id == user_id)
                .where(BackupTaskLogModel.created_at >= _utc(_months_ago(now, 6)))
                .order_by(BackupTaskLogModel.created_at)
            )
            counts: Dict[str, int] = {}
            for created_at in result.scalars():
                month = created_at.strftime("%b %Y")
                counts[month] = counts.get(month, 0) + 1
            return counts

    def _db_to_task(self, db_task: BackupTaskModel) -> BackupTask:
        return BackupTask(
            id=db_task.id,
            user_id=db_task.user_id,
            remote_server_id=db_task.remote_server_id,
            backup_destination_id=db_task.backup_destination_id,
            label=db_task.label,
            description=db_task.description,
            kind=db_task.kind,
            cadence=db_task.cadence,
            status=db_task.status,
            paused_at=db_task.paused_at,
            last_run_at=db_task.last_run_at,
            last_scheduled_weekly_run_at=db_task.last_scheduled_weekly_run_at,
            maximum_backups_to_keep=db_task.maximum_backups_to_keep,
            store_path=db_task.store_path,
            appended_file_name=db_task.appended_file_name,
            tags=db_task.tags or [],
            notification_targets=db_task.notification_targets or {},
            created_at=_aware(db_task.created_at)
        )

    def _db_to_log(self, db_log: BackupTaskLogModel) -> BackupTaskLog:
        return BackupTaskLog(
            id=db_log.id,
            backup_task_id=db_log.backup_task_id,
            output=db_log.output,
            successful_at=db_log.successful_at,
            created_at=db_log.created_at,
            finished_at=db_log.finished_at
        )


class InMemoryStorage(SqlAlchemyStorage):
    def __init__(self):
        super().__init__("sqlite+aiosqlite:///:memory:")
