"""Schedule helpers for press review subscriptions.

Subscriptions store their recurrence as a 5-field cron string restricted to
three shapes, always at the top of the hour:

    daily:   "0 H * * *"
    weekly:  "0 H * * D"   (D = 0-6, Sunday = 0)
    monthly: "0 H D * *"   (D = 1-31)

The pipeline never runs the schedule as a timer. It only uses it to decide
how far back the research stage searches for news:

    monthly -> 30 days
    weekly  -> 7 days
    daily / anything else -> 1 day
"""

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum


class ScheduleFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


WINDOW_DAYS: dict[ScheduleFrequency, int] = {
    ScheduleFrequency.DAILY: 1,
    ScheduleFrequency.WEEKLY: 7,
    ScheduleFrequency.MONTHLY: 30,
}

DAYS_OF_WEEK = ("sunday", "monday", "tuesday", "wednesday", "thursday", "friday", "saturday")

_DAILY_PATTERN = re.compile(r"^0 (\d{1,2}) \* \* \*$")
_WEEKLY_PATTERN = re.compile(r"^0 (\d{1,2}) \* \* ([0-6])$")
_MONTHLY_PATTERN = re.compile(r"^0 (\d{1,2}) (\d{1,2}) \* \*$")
_SINGLE_DAY_OF_MONTH = re.compile(r"\d{1,2}")
_SINGLE_DAY_OF_WEEK = re.compile(r"[0-7]")


@dataclass
class ScheduleConfig:
    """Structured form of a subscription schedule.

    Attributes:
        schedule: Recurrence frequency
        time: Hour of day, "0"-"23"
        day_of_week: Weekday name, required for weekly schedules
        day_of_month: "1"-"31", required for monthly schedules
    """

    schedule: ScheduleFrequency
    time: str
    day_of_week: str | None = None
    day_of_month: str | None = None


def build_cron_expression(config: ScheduleConfig) -> str:
    """Build the cron string for a schedule.

    Raises:
        ValueError: If a weekly schedule has no day_of_week or a monthly
            schedule has no day_of_month
    """
    hour = config.time
    if config.schedule == ScheduleFrequency.DAILY:
        return f"0 {hour} * * *"
    if config.schedule == ScheduleFrequency.WEEKLY:
        if not config.day_of_week:
            raise ValueError("day_of_week is required for weekly schedule")
        day = config.day_of_week.lower()
        if day not in DAYS_OF_WEEK:
            raise ValueError(f"Unknown day_of_week: '{config.day_of_week}'")
        return f"0 {hour} * * {DAYS_OF_WEEK.index(day)}"
    if config.schedule == ScheduleFrequency.MONTHLY:
        if not config.day_of_month:
            raise ValueError("day_of_month is required for monthly schedule")
        return f"0 {hour} {config.day_of_month} * *"
    raise ValueError(f"Unsupported schedule type: {config.schedule}")


def parse_cron_expression(cron: str) -> ScheduleConfig | None:
    """Parse one of the supported cron shapes.

    Returns:
        ScheduleConfig, or None for anything outside the three supported shapes
    """
    if not cron or not isinstance(cron, str):
        return None
    cron = " ".join(cron.split())

    if match := _DAILY_PATTERN.match(cron):
        hour = match.group(1)
        if int(hour) > 23:
            return None
        return ScheduleConfig(schedule=ScheduleFrequency.DAILY, time=hour)

    if match := _WEEKLY_PATTERN.match(cron):
        hour, day = match.groups()
        if int(hour) > 23:
            return None
        return ScheduleConfig(
            schedule=ScheduleFrequency.WEEKLY,
            time=hour,
            day_of_week=DAYS_OF_WEEK[int(day)],
        )

    if match := _MONTHLY_PATTERN.match(cron):
        hour, day = match.groups()
        if int(hour) > 23 or not 1 <= int(day) <= 31:
            return None
        return ScheduleConfig(schedule=ScheduleFrequency.MONTHLY, time=hour, day_of_month=day)

    return None


def _format_hour(hour: int) -> str:
    suffix = "AM" if hour < 12 else "PM"
    display = hour % 12 or 12
    return f"{display}:00 {suffix}"


def _ordinal(day: int) -> str:
    if 11 <= day % 100 <= 13:
        return f"{day}th"
    suffix = {1: "st", 2: "nd", 3: "rd"}.get(day % 10, "th")
    return f"{day}{suffix}"


def format_cron_to_readable(cron: str) -> str:
    """Render a schedule for humans, e.g. "Every Monday at 9:00 AM".

    Unparseable strings are returned unchanged.
    """
    config = parse_cron_expression(cron)
    if config is None:
        return cron

    at = _format_hour(int(config.time))
    if config.schedule == ScheduleFrequency.DAILY:
        return f"Daily at {at}"
    if config.schedule == ScheduleFrequency.WEEKLY:
        return f"Every {config.day_of_week.capitalize()} at {at}"
    return f"Monthly on the {_ordinal(int(config.day_of_month))} at {at}"


def schedule_frequency(cron: str) -> ScheduleFrequency:
    """Classify a cron string as daily, weekly or monthly.

    Supported shapes are parsed exactly. Other 5-field strings fall back to
    their day fields: a single day-of-month means monthly, a single
    day-of-week means weekly. Ranges, lists and steps such as "1-5" or "*/2"
    fire more often than that, so they count as daily.
    """
    config = parse_cron_expression(cron)
    if config is not None:
        return config.schedule

    parts = (cron or "").split()
    if len(parts) == 5:
        _, _, day_of_month, _, day_of_week = parts
        if _SINGLE_DAY_OF_MONTH.fullmatch(day_of_month) and day_of_week == "*":
            return ScheduleFrequency.MONTHLY
        if _SINGLE_DAY_OF_WEEK.fullmatch(day_of_week) and day_of_month == "*":
            return ScheduleFrequency.WEEKLY
    return ScheduleFrequency.DAILY


def search_window(cron: str, now: datetime | None = None) -> tuple[datetime, datetime]:
    """Compute the publication window for the research stage.

    Args:
        cron: Subscription schedule
        now: Invocation time (defaults to current UTC time)

    Returns:
        (start_published_date, end_published_date) where end is now

    Example:
        >>> end = datetime(2025, 3, 10, 9, tzinfo=timezone.utc)
        >>> search_window("0 9 * * 1", end)[0]
        datetime.datetime(2025, 3, 3, 9, 0, tzinfo=datetime.timezone.utc)
    """
    end = now or datetime.now(timezone.utc)
    days = WINDOW_DAYS[schedule_frequency(cron)]
    return end - timedelta(days=days), end
