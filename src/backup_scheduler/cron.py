from datetime import datetime, timedelta

from croniter import croniter

from backup_scheduler.errors import ConfigurationError


class CronMatcher:
    """
    Answers whether a cron expression is due at a given instant.

    Accepts the standard five fields (minute, hour, day of month, month, day of week)
    or six fields with the seconds field first. The expression is parsed once, here,
    so a malformed one fails at construction rather than on every tick.
    """

    def __init__(self, expression: str):
        fields = expression.split()
        if len(fields) not in (5, 6):
            raise ConfigurationError(f"Invalid cron expression '{expression}': expected 5 or 6 fields, got {len(fields)}")
        self.expression = " ".join(fields)
        self.has_seconds = len(fields) == 6
        try:
            croniter(self.expression, datetime(2000, 1, 1), second_at_beginning=True)
        except (ValueError, KeyError) as e:
            raise ConfigurationError(f"Invalid cron expression '{expression}': {e}") from e

    def _iter(self, start: datetime) -> croniter:
        return croniter(self.expression, start, second_at_beginning=True)

    def _truncate(self, moment: datetime) -> datetime:
        if self.has_seconds:
            return moment.replace(microsecond=0)
        return moment.replace(second=0, microsecond=0)

    def is_due(self, now: datetime) -> bool:
        at = self._truncate(now)
        resolution = timedelta(seconds=1)
        return self._iter(at - resolution).get_next(datetime) == at

    def next_after(self, now: datetime) -> datetime:
        return self._iter(now).get_next(datetime)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, CronMatcher) and other.expression == self.expression

    def __hash__(self) -> int:
        return hash(self.expression)

    def __repr__(self) -> str:
        return f"CronMatcher({self.expression!r})"
