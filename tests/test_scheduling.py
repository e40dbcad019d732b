import pytest
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo
from backup_scheduler.domain.cadence import CronCadence, DailyCadence, WeeklyCadence
from backup_scheduler.domain.task import TaskStatus
from backup_scheduler.scheduling import (
    Decision,
    calculate_next_run,
    eligible_to_run_now,
    evaluate,
    is_the_right_time_to_run,
)

# 2026-10-19 is a Monday
MONDAY_0900 = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)


def at(hour: int, minute: int, second: int = 0) -> datetime:
    return MONDAY_0900.replace(hour=hour, minute=minute, second=second)


@pytest.mark.parametrize("cadence", [
    DailyCadence(time_to_run_at="09:00"),
    WeeklyCadence(day_of_week=0, time_to_run_at="09:00"),
    CronCadence(expression="0 9 * * *"),
])
def test_running_task_is_never_eligible(make_task, cadence):
    task = make_task(cadence=cadence, status=TaskStatus.RUNNING)
    assert evaluate(task, MONDAY_0900) == Decision.BLOCKED
    assert not eligible_to_run_now(task, MONDAY_0900)


@pytest.mark.parametrize("cadence", [
    DailyCadence(time_to_run_at="09:00"),
    WeeklyCadence(day_of_week=0, time_to_run_at="09:00"),
    CronCadence(expression="0 9 * * *"),
])
def test_paused_task_is_never_eligible(make_task, cadence):
    task = make_task(cadence=cadence, paused_at=MONDAY_0900 - timedelta(days=1))
    assert evaluate(task, MONDAY_0900) == Decision.BLOCKED
    assert not eligible_to_run_now(task, MONDAY_0900)


def test_daily_task_is_eligible_only_on_its_minute(make_task):
    task = make_task(cadence=DailyCadence(time_to_run_at="14:30"))
    assert eligible_to_run_now(task, at(14, 30))
    assert eligible_to_run_now(task, at(14, 30, 59))
    assert not eligible_to_run_now(task, at(14, 29))
    assert not eligible_to_run_now(task, at(14, 31))
    assert evaluate(task, at(14, 31)) == Decision.NOT_YET


def test_daily_task_uses_the_wall_clock_of_now(make_task):
    task = make_task(cadence=DailyCadence(time_to_run_at="14:30"))
    amsterdam = datetime(2026, 10, 19, 14, 30, tzinfo=ZoneInfo("Europe/Amsterdam"))
    assert eligible_to_run_now(task, amsterdam)
    assert not eligible_to_run_now(task, amsterdam.astimezone(timezone.utc))


def test_weekly_task_without_history_runs_on_its_day(make_task):
    task = make_task(cadence=WeeklyCadence(day_of_week=0, time_to_run_at="09:00"))
    assert eligible_to_run_now(task, MONDAY_0900)
    assert not eligible_to_run_now(task, MONDAY_0900 + timedelta(days=1))
    assert not eligible_to_run_now(task, at(9, 1))


def test_weekly_task_last_scheduled_six_days_ago_is_not_eligible(make_task):
    task = make_task(
        cadence=WeeklyCadence(day_of_week=0, time_to_run_at="09:00"),
        last_scheduled_weekly_run_at=MONDAY_0900 - timedelta(days=6),
    )
    assert not is_the_right_time_to_run(task, MONDAY_0900)
    assert not eligible_to_run_now(task, MONDAY_0900)


def test_weekly_task_last_scheduled_seven_days_ago_is_eligible(make_task):
    task = make_task(
        cadence=WeeklyCadence(day_of_week=0, time_to_run_at="09:00"),
        last_scheduled_weekly_run_at=MONDAY_0900 - timedelta(days=7),
    )
    assert eligible_to_run_now(task, MONDAY_0900)


def test_weekly_task_does_not_fire_twice_in_the_same_week(make_task):
    task = make_task(
        cadence=WeeklyCadence(day_of_week=0, time_to_run_at="09:00"),
        last_scheduled_weekly_run_at=MONDAY_0900,
    )
    assert not eligible_to_run_now(task, MONDAY_0900)


def test_weekly_task_recovers_after_missed_weeks(make_task):
    task = make_task(
        cadence=WeeklyCadence(day_of_week=0, time_to_run_at="09:00"),
        last_scheduled_weekly_run_at=MONDAY_0900 - timedelta(weeks=3),
    )
    assert eligible_to_run_now(task, MONDAY_0900)


def test_cron_task_follows_the_matcher(make_task):
    task = make_task(cadence=CronCadence(expression="0 3 * * *"))
    due = at(3, 0)
    not_due = at(3, 1)
    assert task.cadence.matcher.is_due(due)
    assert eligible_to_run_now(task, due)
    assert not task.cadence.matcher.is_due(not_due)
    assert not eligible_to_run_now(task, not_due)


def test_task_without_cadence_is_never_due(make_task):
    task = make_task(cadence=None)
    assert evaluate(task, MONDAY_0900) == Decision.NOT_YET
    assert calculate_next_run(task, MONDAY_0900) is None


def test_next_daily_run_rolls_to_tomorrow_once_passed(make_task):
    task = make_task(cadence=DailyCadence(time_to_run_at="14:30"))
    assert calculate_next_run(task, at(15, 0)) == datetime(2026, 10, 20, 14, 30, tzinfo=timezone.utc)


def test_next_daily_run_is_today_when_still_ahead(make_task):
    task = make_task(cadence=DailyCadence(time_to_run_at="14:30"))
    assert calculate_next_run(task, at(8, 0)) == datetime(2026, 10, 19, 14, 30, tzinfo=timezone.utc)


def test_next_daily_run_at_exactly_the_time_is_tomorrow(make_task):
    task = make_task(cadence=DailyCadence(time_to_run_at="14:30"))
    assert calculate_next_run(task, at(14, 30)) == datetime(2026, 10, 20, 14, 30, tzinfo=timezone.utc)


def test_next_weekly_run_is_a_week_after_the_last_one(make_task):
    last = datetime(2026, 10, 12, 9, 0, tzinfo=timezone.utc)
    task = make_task(
        cadence=WeeklyCadence(day_of_week=0, time_to_run_at="09:00"),
        last_scheduled_weekly_run_at=last,
    )
    assert calculate_next_run(task, MONDAY_0900) == last + timedelta(days=7)


@pytest.mark.parametrize("day_of_week, expected", [
    (2, datetime(2026, 10, 21, 9, 0, tzinfo=timezone.utc)),  # Wednesday this week
    (0, datetime(2026, 10, 26, 9, 0, tzinfo=timezone.utc)),  # Monday, already passed today
    (6, datetime(2026, 10, 25, 9, 0, tzinfo=timezone.utc)),  # Sunday this week
])
def test_next_weekly_run_without_history(make_task, day_of_week, expected):
    task = make_task(cadence=WeeklyCadence(day_of_week=day_of_week, time_to_run_at="09:00"))
    next_run = calculate_next_run(task, at(10, 0))
    assert next_run == expected
    assert next_run > at(10, 0)


def test_next_cron_run(make_task):
    task = make_task(cadence=CronCadence(expression="0 3 * * *"))
    assert calculate_next_run(task, MONDAY_0900) == datetime(2026, 10, 20, 3, 0, tzinfo=timezone.utc)
