"""
Scheduling decisions for backup tasks.

Fixed cadences are compared at minute resolution: a daily task set for
"14:30" is due only during the 14:30 minute. The caller is expected to
evaluate every task once per minute. A minute that is never evaluated
(host down, worker stalled) is skipped, not caught up later.
"""
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Union

from backup_scheduler.domain.cadence import CronCadence, DailyCadence, WeeklyCadence
from backup_scheduler.domain.task import BackupTask


class Decision(str, Enum):
    RUN = "run"
    NOT_YET = "not_yet"
    BLOCKED = "blocked"


class SkipReason(str, Enum):
    """
    Why a task was not dispatched. Skips are expected outcomes, never errors.
    """
    RUNNING = "running"
    PAUSED = "paused"
    CONTENDED = "contended"
    NOT_DUE = "not_due"


def _in_zone_of(moment: datetime, now: datetime) -> datetime:
    if now.tzinfo is None:
        return moment.replace(tzinfo=None)
    if moment.tzinfo is None:
        return moment.replace(tzinfo=now.tzinfo)
    return moment.astimezone(now.tzinfo)


def _at_time_of_day(day: datetime, cadence: Union[DailyCadence, WeeklyCadence]) -> datetime:
    return day.replace(hour=cadence.hour, minute=cadence.minute, second=0, microsecond=0)


def skip_reason(task: BackupTask) -> Optional[SkipReason]:
    """
    Return why the task's state blocks it from running, or None if it may run.
    """
    if task.is_running:
        return SkipReason.RUNNING
    if task.is_paused:
        return SkipReason.PAUSED
    return None


def is_the_right_time_to_run(task: BackupTask, now: datetime) -> bool:
    """
    Check a fixed daily or weekly cadence against ``now``.

    A weekly task fires on its weekday at its time, provided no weekly run has
    been recorded yet or the recorded one is at least seven calendar days back.
    The latter keeps a weekly task from firing twice in the same week.
    """
    cadence = task.cadence
    current_time = now.strftime("%H:%M")

    if isinstance(cadence, DailyCadence):
        return cadence.time_to_run_at == current_time

    if isinstance(cadence, WeeklyCadence):
        if cadence.time_to_run_at != current_time or now.weekday() != cadence.day_of_week:
            return False
        last_run = task.last_scheduled_weekly_run_at
        if last_run is None:
            return True
        return (now.date() - _in_zone_of(last_run, now).date()).days >= 7

    return False


def evaluate(task: BackupTask, now: datetime) -> Decision:
    if skip_reason(task) is not None:
        return Decision.BLOCKED

    if isinstance(task.cadence, CronCadence):
        return Decision.RUN if task.cadence.matcher.is_due(now) else Decision.NOT_YET

    if isinstance(task.cadence, (DailyCadence, WeeklyCadence)):
        return Decision.RUN if is_the_right_time_to_run(task, now) else Decision.NOT_YET

    return Decision.NOT_YET


def eligible_to_run_now(task: BackupTask, now: datetime) -> bool:
    return evaluate(task, now) == Decision.RUN


def calculate_next_run(task: BackupTask, now: datetime) -> Optional[datetime]:
    """
    Compute the next instant the task is scheduled to run, or None when it has no cadence.
    """
    cadence = task.cadence

    if isinstance(cadence, CronCadence):
        return cadence.matcher.next_after(now)

    if isinstance(cadence, DailyCadence):
        next_run = _at_time_of_day(now, cadence)
        if next_run <= now:
            next_run += timedelta(days=1)
        return next_run

    if isinstance(cadence, WeeklyCadence):
        if task.last_scheduled_weekly_run_at is not None:
            return _in_zone_of(task.last_scheduled_weekly_run_at, now) + timedelta(weeks=1)

        days_ahead = (cadence.day_of_week - now.weekday()) % 7
        next_run = _at_time_of_day(now, cadence) + timedelta(days=days_ahead)
        if next_run <= now:
            next_run += timedelta(weeks=1)
        return next_run

    return None
