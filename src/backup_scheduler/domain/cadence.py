from abc import ABC, abstractmethod
from enum import Enum
from typing import Annotated, Literal, Union
import re

from pydantic import BaseModel, Field, PrivateAttr, field_validator

from backup_scheduler.cron import CronMatcher


TIME_OF_DAY_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

WEEKDAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


class CadenceType(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    CRON = "cron"


class BaseCadence(BaseModel, ABC):
    """
    Base class for all cadence types. A task carries at most one cadence.
    """
    type: CadenceType

    @abstractmethod
    def format_cadence(self) -> str:
        pass


class FixedTimeCadence(BaseCadence):
    time_to_run_at: str = Field(..., description="Time of day in 24h 'HH:MM' format")

    @field_validator("time_to_run_at")
    def check_time_of_day(cls, v: str) -> str:
        if not TIME_OF_DAY_PATTERN.match(v):
            raise ValueError(f"time_to_run_at must be in 'HH:MM' format, got '{v}'")
        return v

    @property
    def hour(self) -> int:
        return int(self.time_to_run_at[:2])

    @property
    def minute(self) -> int:
        return int(self.time_to_run_at[3:])


class DailyCadence(FixedTimeCadence):
    """
    Runs once a day at a fixed time.
    """
    type: Literal[CadenceType.DAILY] = CadenceType.DAILY

    def format_cadence(self) -> str:
        return f"Runs daily at {self.time_to_run_at}"


class WeeklyCadence(FixedTimeCadence):
    """
    Runs once a week on a fixed weekday and time.
    """
    type: Literal[CadenceType.WEEKLY] = CadenceType.WEEKLY
    day_of_week: int = Field(..., ge=0, le=6, description="Weekday to run on, Monday=0 through Sunday=6")

    def format_cadence(self) -> str:
        return f"Runs weekly on {WEEKDAY_NAMES[self.day_of_week]} at {self.time_to_run_at}"


class CronCadence(BaseCadence):
    """
    Runs whenever a cron expression is due. Fixed-time settings do not apply.
    """
    type: Literal[CadenceType.CRON] = CadenceType.CRON
    expression: str = Field(..., description="Cron expression, five fields or six with leading seconds")

    _matcher: CronMatcher = PrivateAttr()

    def model_post_init(self, __context) -> None:
        self._matcher = CronMatcher(self.expression)

    @property
    def matcher(self) -> CronMatcher:
        return self._matcher

    def format_cadence(self) -> str:
        return f"Runs on cron expression: {self.expression}"


Cadence = Annotated[Union[DailyCadence, WeeklyCadence, CronCadence], Field(discriminator="type")]
