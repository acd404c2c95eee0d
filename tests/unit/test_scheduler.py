"""
Unit tests for next-run computation
"""

from datetime import datetime

import pytest

from pipeline.scheduler import compute_next_run
from schemas.pipeline import ScheduleSpec


class TestComputeNextRun:
    """Test schedule arithmetic"""

    def test_daily_later_today(self):
        schedule = ScheduleSpec(frequency="daily", hour=9, minute=0)
        now = datetime(2024, 3, 10, 8, 0)

        assert compute_next_run(schedule, now) == datetime(2024, 3, 10, 9, 0)

    def test_daily_already_passed_rolls_to_tomorrow(self):
        schedule = ScheduleSpec(frequency="daily", hour=9, minute=0)
        now = datetime(2024, 3, 10, 9, 30)

        assert compute_next_run(schedule, now) == datetime(2024, 3, 11, 9, 0)

    def test_daily_exactly_now_is_not_next(self):
        schedule = ScheduleSpec(frequency="daily", hour=9, minute=0)
        now = datetime(2024, 3, 10, 9, 0)

        assert compute_next_run(schedule, now) == datetime(2024, 3, 11, 9, 0)

    def test_weekly_on_day(self):
        # 2024-03-10 is a Sunday; day_of_week 2 = Wednesday
        schedule = ScheduleSpec(frequency="weekly", day_of_week=2, hour=6)
        now = datetime(2024, 3, 10, 12, 0)

        assert compute_next_run(schedule, now) == datetime(2024, 3, 13, 6, 0)

    def test_weekly_same_day_passed(self):
        schedule = ScheduleSpec(frequency="weekly", day_of_week=6, hour=6)
        now = datetime(2024, 3, 10, 12, 0)

        assert compute_next_run(schedule, now) == datetime(2024, 3, 17, 6, 0)

    def test_weekly_without_day(self):
        schedule = ScheduleSpec(frequency="weekly", hour=6)
        now = datetime(2024, 3, 10, 12, 0)

        assert compute_next_run(schedule, now) == datetime(2024, 3, 17, 6, 0)

    def test_monthly_clamps_to_month_end(self):
        schedule = ScheduleSpec(frequency="monthly", day_of_month=31, hour=2)
        now = datetime(2024, 2, 10, 12, 0)

        assert compute_next_run(schedule, now) == datetime(2024, 2, 29, 2, 0)

    def test_monthly_passed_moves_to_next_month(self):
        schedule = ScheduleSpec(frequency="monthly", day_of_month=31, hour=2)
        now = datetime(2024, 1, 31, 12, 0)

        assert compute_next_run(schedule, now) == datetime(2024, 2, 29, 2, 0)

    def test_monthly_without_day(self):
        schedule = ScheduleSpec(frequency="monthly", hour=2)
        now = datetime(2024, 1, 31, 12, 0)

        assert compute_next_run(schedule, now) == datetime(2024, 2, 29, 2, 0)

    @pytest.mark.parametrize("schedule", [
        None,
        ScheduleSpec(frequency="manual"),
        ScheduleSpec(frequency="daily", is_active=False),
    ])
    def test_no_next_run(self, schedule):
        assert compute_next_run(schedule, datetime(2024, 3, 10)) is None

    def test_time_string_is_accepted(self):
        schedule = ScheduleSpec(**{"frequency": "Daily", "time": "09:30"})

        assert (schedule.hour, schedule.minute) == (9, 30)
