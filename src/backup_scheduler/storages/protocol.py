from datetime import datetime
from typing import Dict, List, Optional, Protocol
from backup_scheduler.domain.task import BackupTask, TaskStatus
from backup_scheduler.domain.log import BackupTaskLog
from backup_scheduler.domain.targets import BackupDestination, RemoteServer

class Storage(Protocol):
    async def create_task(self, task: BackupTask) -> str:
        """Create a new task and return its ID."""
        ...

    async def get_task(self, task_id: str) -> Optional[BackupTask]:
        """Retrieve a task by its ID."""
        ...

    async def update_task(self, task: BackupTask) -> bool:
        """Update an existing task. Return True if successful, False otherwise."""
        ...

    async def delete_task(self, task_id: str) -> bool:
        """Delete a task by its ID. Return True if successful, False otherwise."""
        ...

    async def list_tasks(
        self,
        user_id: Optional[str] = None,
        remote_server_id: Optional[str] = None,
        status: Optional[TaskStatus] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[BackupTask]:
        """List tasks with pagination, optionally filtered by owner, remote server and status."""
        ...

    async def list_schedulable_task_ids(self) -> List[str]:
        """List the IDs of tasks that are ready and not paused."""
        ...

    async def pause_task(self, task_id: str, paused_at: datetime) -> bool:
        """Set the pause marker without touching the status."""
        ...

    async def resume_task(self, task_id: str) -> bool:
        """Clear the pause marker without touching the status."""
        ...

    async def record_scheduled_weekly_run(self, task_id: str, at: datetime) -> bool:
        """Store when a weekly task was last dispatched by the scheduler."""
        ...

    async def is_another_task_running_on_same_remote_server(self, task: BackupTask) -> bool:
        """Whether a task other than this one is running against the same remote server."""
        ...

    async def claim_run(self, task_id: str) -> bool:
        """
        Atomically move a ready task to running and take its remote server.
        Return False, without raising, if the task is not ready or the server is taken.
        """
        ...

    async def release_run(self, task_id: str, finished_at: datetime) -> bool:
        """Move a running task back to ready, stamp last_run_at and free its remote server."""
        ...

    async def save_remote_server(self, server: RemoteServer) -> str:
        """Create or replace a remote server and return its ID."""
        ...

    async def get_remote_server(self, server_id: str) -> Optional[RemoteServer]:
        ...

    async def save_backup_destination(self, destination: BackupDestination) -> str:
        """Create or replace a backup destination and return its ID."""
        ...

    async def get_backup_destination(self, destination_id: str) -> Optional[BackupDestination]:
        ...

    async def create_log(self, log: BackupTaskLog) -> str:
        """Create a new log and return its ID."""
        ...

    async def get_latest_log(self, task_id: str) -> Optional[BackupTaskLog]:
        """Get the most recent log for a specific task."""
        ...

    async def list_recent_logs(self, task_id: str, limit: int = 10) -> List[BackupTaskLog]:
        """List logs for a specific task with limit order by created_at descending"""
        ...

    async def count_tasks_by_kind(self, user_id: str) -> Dict[str, int]:
        """Number of tasks a user owns per task kind."""
        ...

    async def count_logs_per_month(self, user_id: str, now: datetime) -> Dict[str, int]:
        """Number of runs per month over the last six months, keyed like 'Oct 2026'."""
        ...
