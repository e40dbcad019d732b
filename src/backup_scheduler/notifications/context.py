from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field

from backup_scheduler.domain.log import BackupTaskLog
from backup_scheduler.domain.task import NotificationTargets, TaskKind

SUCCESS_MESSAGE = "The backup task was successful. Please see the details below for more information about this task."
FAILURE_MESSAGE = "The backup task failed. Please see the details below for more information about this task."


def ordinal_suffix(day: int) -> str:
    if 11 <= day % 100 <= 13:
        return "th"
    return {1: "st", 2: "nd", 3: "rd"}.get(day % 10, "th")


def format_ran_at(moment: datetime, timezone: str = "UTC") -> str:
    """
    Format a run timestamp like ``18th October 2026, 09:00:00``.
    """
    local = moment.astimezone(ZoneInfo(timezone)) if moment.tzinfo else moment
    return f"{local.day}{ordinal_suffix(local.day)} {local.strftime('%B %Y, %H:%M:%S')}"


class NotificationContext(BaseModel):
    """
    Everything a channel needs to describe a finished run.

    Built once per run and shared by every channel's delivery.
    """
    task_id: str
    task_label: str
    task_kind: TaskKind
    remote_server_label: Optional[str] = None
    destination_label: Optional[str] = None
    destination_type: Optional[str] = None
    targets: NotificationTargets = Field(default_factory=NotificationTargets)
    log: Optional[BackupTaskLog] = None

    @property
    def successful(self) -> bool:
        return self.log is not None and self.log.successful

    @property
    def result(self) -> str:
        return "success" if self.successful else "failure"

    @property
    def message(self) -> str:
        return SUCCESS_MESSAGE if self.successful else FAILURE_MESSAGE

    @property
    def title(self) -> str:
        return f"{self.task_label} Backup Task"

    @property
    def backup_type(self) -> str:
        return self.task_kind.value.capitalize()

    @property
    def remote_server(self) -> str:
        return self.remote_server_label or ""

    @property
    def destination(self) -> str:
        if not self.destination_label and not self.destination_type:
            return ""
        return f"{self.destination_label or ''} ({self.destination_type or ''})"

    def ran_at(self, timezone: str = "UTC") -> str:
        if self.log is None:
            return ""
        return format_ran_at(self.log.created_at, timezone)
