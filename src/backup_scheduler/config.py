"""Scheduler settings loaded from environment variables."""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Backup scheduler configuration. Every value can be overridden with a
    ``BACKUP_SCHEDULER_`` prefixed environment variable.
    """
    model_config = SettingsConfigDict(env_prefix="BACKUP_SCHEDULER_", env_file=".env", extra="ignore")

    # Application
    app_name: str = Field(default="Vanguard", description="Name credited in notification footers")
    app_url: str = Field(default="http://localhost", description="Base URL used to build asset links")
    timezone: str = Field(default="UTC", description="Timezone in which fixed daily/weekly times are interpreted")

    # Storage
    database_url: str = Field(default="sqlite+aiosqlite:///./backup_scheduler.db")

    # Celery
    broker_url: str = Field(default="redis://localhost:6379/2")
    result_backend: str = Field(default="redis://localhost:6379/3")
    redbeat_redis_url: str = Field(default="redis://localhost:6379/1")

    # Queues
    files_backup_queue: str = Field(default="files-backup")
    database_backup_queue: str = Field(default="database-backup")
    notification_fanout_queue: str = Field(default="notifications")
    notification_queue: str = Field(default="backup-task-notifications")

    # Notification delivery
    notification_max_retries: int = Field(default=3, ge=0)
    webhook_timeout: float = Field(default=10.0, gt=0, description="Total timeout in seconds for one webhook POST")

    # Mail
    smtp_host: str = Field(default="localhost")
    smtp_port: int = Field(default=25)
    smtp_username: Optional[str] = Field(default=None)
    smtp_password: Optional[str] = Field(default=None)
    smtp_use_tls: bool = Field(default=False)
    smtp_timeout: float = Field(default=30.0, gt=0, description="Timeout in seconds for the SMTP connection")
    mail_from: str = Field(default="backups@localhost")

    def asset_url(self, path: str) -> str:
        return f"{self.app_url.rstrip('/')}/{path.lstrip('/')}"


@lru_cache
def get_settings() -> Settings:
    return Settings()
