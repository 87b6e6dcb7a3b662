from datetime import datetime, timedelta, timezone

import pytest

from schedule import (
    ScheduleConfig,
    ScheduleFrequency,
    build_cron_expression,
    format_cron_to_readable,
    parse_cron_expression,
    schedule_frequency,
    search_window,
)

NOW = datetime(2025, 3, 10, 9, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "cron, days",
    [
        ("0 9 * * 1", 7),
        ("0 9 1 * *", 30),
        ("0 9 * * *", 1),
        ("not a cron", 1),
        ("", 1),
    ],
)
def test_search_window_follows_schedule(cron, days):
    start, end = search_window(cron, NOW)
    assert end == NOW
    assert end - start == timedelta(days=days)


def test_frequency_falls_back_to_day_fields():
    assert schedule_frequency("30 6 15 * *") == ScheduleFrequency.MONTHLY
    assert schedule_frequency("30 6 * * 3") == ScheduleFrequency.WEEKLY
    assert schedule_frequency("*/5 * * * *") == ScheduleFrequency.DAILY


@pytest.mark.parametrize("cron", ["0 9 */2 * *", "0 9 * * 1-5", "0 9 1,15 * *", "30 6 * * MON", "0 9 15 * 1"])
def test_frequency_treats_repeating_day_fields_as_daily(cron):
    assert schedule_frequency(cron) == ScheduleFrequency.DAILY
    start, end = search_window(cron, NOW)
    assert end - start == timedelta(days=1)


def test_build_cron_expression():
    assert build_cron_expression(ScheduleConfig(ScheduleFrequency.DAILY, "8")) == "0 8 * * *"
    assert build_cron_expression(
        ScheduleConfig(ScheduleFrequency.WEEKLY, "9", day_of_week="Monday")
    ) == "0 9 * * 1"
    assert build_cron_expression(
        ScheduleConfig(ScheduleFrequency.MONTHLY, "10", day_of_month="1")
    ) == "0 10 1 * *"


def test_build_cron_expression_requires_day_fields():
    with pytest.raises(ValueError):
        build_cron_expression(ScheduleConfig(ScheduleFrequency.WEEKLY, "9"))
    with pytest.raises(ValueError):
        build_cron_expression(ScheduleConfig(ScheduleFrequency.MONTHLY, "9"))
    with pytest.raises(ValueError):
        build_cron_expression(ScheduleConfig(ScheduleFrequency.WEEKLY, "9", day_of_week="someday"))


def test_parse_cron_expression():
    weekly = parse_cron_expression("0 16 * * 3")
    assert weekly == ScheduleConfig(ScheduleFrequency.WEEKLY, "16", day_of_week="wednesday")
    assert parse_cron_expression("0 25 * * *") is None
    assert parse_cron_expression("0 9 32 * *") is None
    assert parse_cron_expression("15 9 * * *") is None


def test_format_cron_to_readable():
    assert format_cron_to_readable("0 9 * * *") == "Daily at 9:00 AM"
    assert format_cron_to_readable("0 16 * * 3") == "Every Wednesday at 4:00 PM"
    assert format_cron_to_readable("0 0 1 * *") == "Monthly on the 1st at 12:00 AM"
    assert format_cron_to_readable("0 12 12 * *") == "Monthly on the 12th at 12:00 PM"
    assert format_cron_to_readable("0 10 22 * *") == "Monthly on the 22nd at 10:00 AM"
    assert format_cron_to_readable("weird") == "weird"
