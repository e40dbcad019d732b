"""
Backup Task Scheduling

This package decides when recurring backup tasks run, keeps tasks that share a
remote server from running at the same time, and reports finished runs.

Core Concepts:

BackupTask:
    A recurring backup job bound to one remote server and one backup destination.
    Its cadence is either a fixed daily time, a fixed weekly day and time, or a
    cron expression. A task is READY or RUNNING and can be paused independently.

Scheduler:
    Runs once a minute. Each ready, unpaused task that is due is handed to the
    backend, which enqueues a WorkItem on the queue for the task's kind.

Backend:
    Owns the queues. Its worker side claims the task's remote server, runs the
    backup executor for the task's kind, writes a BackupTaskLog and releases the
    server. It then fans the outcome out to every configured notification channel,
    each delivered as a separate unit of work.

Relationships:
    - A BackupTask has many BackupTaskLogs, one per run.
    - At most one task per remote server is RUNNING at any time.
"""

from .domain import BackupTask, BackupTaskLog, TaskKind, TaskStatus
from .scheduler import Scheduler

__all__ = ["BackupTask", "BackupTaskLog", "TaskKind", "TaskStatus", "Scheduler"]
