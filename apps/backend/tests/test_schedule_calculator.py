"""
schedule_calculator 테스트
"""

from datetime import date, datetime, timedelta

import pytest

from pfm.models import AutoImportFrequency, RecurringFrequency
from pfm.services.schedule_calculator import (
    add_months,
    first_occurrence,
    next_auto_import_run,
    next_occurrence,
)


class TestNextOccurrence:
    @pytest.mark.parametrize("frequency", list(RecurringFrequency))
    @pytest.mark.parametrize("day_of_week", [None, 0, 3, 6])
    @pytest.mark.parametrize("day_of_month", [None, 1, 15, 29, 31])
    def test_always_strictly_after_anchor(self, frequency, day_of_week, day_of_month):
        anchor = date(2024, 1, 28)
        for _ in range(40):
            nxt = next_occurrence(frequency, anchor, day_of_week, day_of_month, origin=date(2024, 1, 28))
            assert nxt > anchor
            anchor = nxt

    def test_weekly_without_pin_adds_seven_days(self):
        assert next_occurrence(RecurringFrequency.WEEKLY, date(2025, 1, 8)) == date(2025, 1, 15)

    def test_weekly_pinned_moves_to_weekday(self):
        # 2025-01-08 is a Wednesday; next Friday is 01-10
        assert next_occurrence(RecurringFrequency.WEEKLY, date(2025, 1, 8), day_of_week=4) == date(2025, 1, 10)

    def test_biweekly_pinned_monday_steps_fourteen_days(self):
        monday = date(2025, 1, 6)
        nxt = next_occurrence(RecurringFrequency.BIWEEKLY, monday, day_of_week=0, origin=monday)
        assert nxt == date(2025, 1, 20)
        assert next_occurrence(RecurringFrequency.BIWEEKLY, nxt, day_of_week=0, origin=monday) == date(2025, 2, 3)

    def test_biweekly_without_pin_adds_fourteen_days(self):
        assert next_occurrence(RecurringFrequency.BIWEEKLY, date(2025, 1, 1)) == date(2025, 1, 15)

    def test_monthly_clamps_to_short_month(self):
        """31일 고정 → 30일짜리 달에서는 말일"""
        assert next_occurrence(RecurringFrequency.MONTHLY, date(2025, 3, 31), day_of_month=31) == date(2025, 4, 30)
        assert next_occurrence(RecurringFrequency.MONTHLY, date(2025, 1, 31), day_of_month=31) == date(2025, 2, 28)

    def test_monthly_pin_recovers_after_clamp(self):
        assert next_occurrence(RecurringFrequency.MONTHLY, date(2025, 2, 28), day_of_month=31) == date(2025, 3, 31)

    def test_quarterly_crosses_year(self):
        assert next_occurrence(RecurringFrequency.QUARTERLY, date(2025, 11, 15), day_of_month=15) == date(2026, 2, 15)

    def test_yearly_leap_day_clamps_and_restores(self):
        origin = date(2024, 2, 29)
        assert next_occurrence(RecurringFrequency.YEARLY, origin, origin=origin) == date(2025, 2, 28)
        assert next_occurrence(RecurringFrequency.YEARLY, date(2027, 2, 28), origin=origin) == date(2028, 2, 29)

    def test_unknown_frequency_falls_back_one_day(self):
        assert next_occurrence("FORTNIGHTLY-ISH", date(2025, 5, 5)) == date(2025, 5, 6)

    def test_out_of_range_day_of_month_is_clamped(self):
        assert next_occurrence(RecurringFrequency.MONTHLY, date(2025, 1, 15), day_of_month=45) == date(2025, 2, 28)
        assert next_occurrence(RecurringFrequency.MONTHLY, date(2025, 1, 15), day_of_month=0) == date(2025, 2, 1)

    def test_out_of_range_day_of_week_is_ignored(self):
        assert next_occurrence(RecurringFrequency.WEEKLY, date(2025, 1, 8), day_of_week=9) == date(2025, 1, 15)

    def test_accepts_lowercase_string_frequency(self):
        assert next_occurrence("monthly", date(2025, 1, 10)) == date(2025, 2, 10)


class TestFirstOccurrence:
    def test_monthly_day_before_start_moves_to_next_month(self):
        assert first_occurrence(RecurringFrequency.MONTHLY, date(2025, 1, 20), day_of_month=15) == date(2025, 2, 15)

    def test_monthly_day_on_or_after_start_stays_in_month(self):
        assert first_occurrence(RecurringFrequency.MONTHLY, date(2025, 1, 15), day_of_month=15) == date(2025, 1, 15)

    def test_weekly_pinned_weekday(self):
        # 2025-01-06 Monday → Friday 01-10
        assert first_occurrence(RecurringFrequency.WEEKLY, date(2025, 1, 6), day_of_week=4) == date(2025, 1, 10)

    def test_not_before_skips_past_occurrences(self):
        result = first_occurrence(
            RecurringFrequency.MONTHLY,
            date(2025, 1, 15),
            day_of_month=15,
            not_before=date(2025, 5, 1),
        )
        assert result == date(2025, 5, 15)

    def test_never_before_start(self):
        start = date(2025, 6, 1)
        assert first_occurrence(RecurringFrequency.YEARLY, start, not_before=date(2020, 1, 1)) == start


class TestAddMonths:
    def test_negative_months(self):
        assert add_months(date(2025, 3, 31), -1) == date(2025, 2, 28)

    def test_explicit_day(self):
        assert add_months(date(2025, 1, 1), 1, day=30) == date(2025, 2, 28)


class TestAutoImportRun:
    now = datetime(2025, 1, 31, 10, 30)

    def test_daily(self):
        assert next_auto_import_run(AutoImportFrequency.DAILY, self.now) == self.now + timedelta(days=1)

    def test_weekly(self):
        assert next_auto_import_run(AutoImportFrequency.WEEKLY, self.now) == self.now + timedelta(days=7)

    def test_monthly_clamps_and_keeps_time(self):
        assert next_auto_import_run(AutoImportFrequency.MONTHLY, self.now) == datetime(2025, 2, 28, 10, 30)

    def test_unknown_defaults_to_one_day(self):
        assert next_auto_import_run("HOURLY", self.now) == self.now + timedelta(days=1)
