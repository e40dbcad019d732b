import uuid
from datetime import datetime
from enum import Enum
from typing import List, Optional
import logging
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field, field_validator

from .cadence import Cadence, CadenceType


class TaskStatus(str, Enum):
    """
    Two-state lifecycle of a backup task.

    READY -> RUNNING is performed by the execution side when it claims the
    task's remote server; RUNNING -> READY when it releases it after the run.
    The scheduler only ever dispatches READY tasks and never writes either state.
    """
    READY = "ready"
    RUNNING = "running"


class TaskKind(str, Enum):
    FILES = "files"
    DATABASE = "database"


class NotificationTargets(BaseModel):
    """
    Where to report a finished run. Each channel is independently optional.
    """
    email: Optional[str] = Field(None, description="Address that receives the run output by mail")
    discord_webhook: Optional[str] = Field(None, description="Discord webhook URL")
    slack_webhook: Optional[str] = Field(None, description="Slack incoming webhook URL")
    notify_on_success: bool = Field(default=True, description="Send notifications for successful runs")
    notify_on_failure: bool = Field(default=True, description="Send notifications for failed runs")

    @property
    def has_any(self) -> bool:
        return any([self.email, self.discord_webhook, self.slack_webhook])

    def wants(self, successful: bool) -> bool:
        return self.notify_on_success if successful else self.notify_on_failure


class BackupTask(BaseModel):
    """
    A recurring backup job bound to one remote server and one backup destination.
    """
    id: str = Field(default_factory=lambda: f"bkt_{uuid.uuid4().hex[:8]}", description="Unique task identifier")
    user_id: str = Field(..., description="Owner of the task")
    remote_server_id: str = Field(..., description="Remote server the backup is taken from")
    backup_destination_id: str = Field(..., description="Destination the backup is stored in")
    label: str = Field(..., description="Human readable task name")
    description: Optional[str] = None
    kind: TaskKind = Field(..., description="Selects the execution queue for the task")
    cadence: Optional[Cadence] = Field(None, description="When the task is due; None means it is never scheduled")
    status: TaskStatus = TaskStatus.READY
    paused_at: Optional[datetime] = Field(None, description="Set while the task is paused")
    last_run_at: Optional[datetime] = None
    last_scheduled_weekly_run_at: Optional[datetime] = None
    maximum_backups_to_keep: int = Field(default=0, ge=0, description="Backups kept when rotating, 0 disables rotation")
    store_path: Optional[str] = None
    appended_file_name: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    notification_targets: NotificationTargets = Field(default_factory=NotificationTargets)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(ZoneInfo("UTC")),
        description="Task creation timestamp with UTC timezone"
    )

    @field_validator('created_at')
    def check_timezone(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            logging.warning("Datetime does not include a timezone. Defaulting to UTC+0 for consistent representation.")
            return v.replace(tzinfo=ZoneInfo("UTC"))
        return v

    @field_validator("paused_at", "last_run_at", "last_scheduled_weekly_run_at")
    def assume_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=ZoneInfo("UTC"))
        return v

    @property
    def is_running(self) -> bool:
        return self.status == TaskStatus.RUNNING

    @property
    def is_ready(self) -> bool:
        return self.status == TaskStatus.READY

    @property
    def is_paused(self) -> bool:
        return self.paused_at is not None

    @property
    def using_custom_cron_expression(self) -> bool:
        return self.cadence is not None and self.cadence.type == CadenceType.CRON

    @property
    def is_daily(self) -> bool:
        return self.cadence is not None and self.cadence.type == CadenceType.DAILY

    @property
    def is_weekly(self) -> bool:
        return self.cadence is not None and self.cadence.type == CadenceType.WEEKLY

    @property
    def is_files_type(self) -> bool:
        return self.kind == TaskKind.FILES

    @property
    def is_database_type(self) -> bool:
        return self.kind == TaskKind.DATABASE

    @property
    def is_rotating_backups(self) -> bool:
        return self.maximum_backups_to_keep > 0

    @property
    def has_custom_store_path(self) -> bool:
        return self.store_path is not None

    @property
    def has_file_name_appended(self) -> bool:
        return self.appended_file_name is not None

    def pause(self, now: datetime) -> None:
        self.paused_at = now

    def resume(self) -> None:
        self.paused_at = None

    def list_of_attached_tag_labels(self) -> Optional[str]:
        if not self.tags:
            return None
        return ", ".join(self.tags)

    @property
    def readable_string(self) -> str:
        task_summary = f"Backup Task: '{self.label}' ({self.kind.value})"
        if self.description:
            task_summary += f"\nDescription: {self.description}"

        cadence_details = self.cadence.format_cadence() if self.cadence else "Not scheduled"
        if self.is_paused:
            cadence_details += " (paused)"
        return f"{task_summary}\n{cadence_details}"
