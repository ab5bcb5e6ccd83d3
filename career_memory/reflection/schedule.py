"""Reflection schedule — when the next weekly reflection is due."""

from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

from croniter import croniter

from career_memory.models.entry import as_utc


class ReflectionSchedule:
    """
    Cron-based schedule, evaluated in the user's timezone so that
    "0 17 * * FRI" means Friday 17:00 local time.
    """

    def __init__(self, expression: str, timezone: str = "UTC"):
        if not croniter.is_valid(expression):
            raise ValueError(f"Invalid reflection schedule: {expression!r}")
        self.expression = expression
        self.timezone = timezone

    def _local(self, moment: datetime) -> datetime:
        return as_utc(moment).astimezone(ZoneInfo(self.timezone))

    def previous_run(self, now: datetime) -> datetime:
        """Most recent scheduled time at or before `now`."""
        local_now = self._local(now)
        if croniter.match(self.expression, local_now.replace(second=0, microsecond=0)):
            return as_utc(local_now.replace(second=0, microsecond=0))
        return as_utc(croniter(self.expression, local_now).get_prev(datetime))

    def next_run(self, now: datetime) -> datetime:
        return as_utc(croniter(self.expression, self._local(now)).get_next(datetime))

    def is_due(self, last_run: Optional[datetime], now: datetime) -> bool:
        """Due when a scheduled time has passed since the last run."""
        if last_run is None:
            return True
        return self.previous_run(now) > as_utc(last_run)
