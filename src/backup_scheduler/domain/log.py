import uuid
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field, field_validator


class BackupTaskLog(BaseModel):
    """
    Record of a single run of a backup task.
    """
    id: str = Field(default_factory=lambda: f"log_{uuid.uuid4().hex[:8]}", description="Unique log identifier")
    backup_task_id: str = Field(..., description="The task this run belongs to")
    output: str = Field(default="", description="Output collected while the backup ran")
    successful_at: Optional[datetime] = Field(None, description="Set only when the run succeeded")
    created_at: datetime = Field(default_factory=lambda: datetime.now(ZoneInfo("UTC")))
    finished_at: Optional[datetime] = None

    @field_validator("successful_at", "created_at", "finished_at")
    def assume_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=ZoneInfo("UTC"))
        return v

    @property
    def successful(self) -> bool:
        return self.successful_at is not None

    def mark_successful(self, at: datetime) -> None:
        self.successful_at = at
        self.finished_at = at

    def mark_failed(self, at: datetime, reason: Optional[str] = None) -> None:
        """
        Record a failed run, appending the reason to the output if one is given.
        """
        if reason:
            self.output = f"{self.output}\n{reason}" if self.output else reason
        self.successful_at = None
        self.finished_at = at
