"""
Tests for the working-day calendar and input validators.

Calendar facts used below (2025):
- 2025-03-09 and 2025-03-16 are Sundays
- 2025-03-08 is a Saturday (a working day)
- 2025-08-15 (Friday) is a configured holiday
- 2025-04-16 and 2025-04-30 are Wednesdays
"""

import random
from datetime import date, datetime
from decimal import Decimal

import pytest

from src.utils.validators import (
    coerce_kg,
    coerce_optional_date,
    validate_compound_code,
    validate_positive_kg,
    validate_role,
)
from src.utils.working_days import (
    PROCESS_DATE_FIELDS,
    add_working_days,
    compound_date_from_calendaring,
    count_working_days,
    format_date,
    is_working_day,
    next_working_day,
    parse_date,
    previous_working_day,
    process_dates_from_any_date,
    process_dates_from_dispatch,
    snap_to_working_day,
)


class TestParseDate:
    def test_parses_iso_string(self):
        assert parse_date("2025-03-10") == date(2025, 3, 10)

    def test_datetime_drops_time(self):
        assert parse_date(datetime(2025, 3, 10, 17, 45)) == date(2025, 3, 10)

    def test_invalid_string_raises_value_error(self):
        with pytest.raises(ValueError):
            parse_date("10/03/2025")

    def test_non_date_raises_type_error(self):
        with pytest.raises(TypeError):
            parse_date(20250310)

    def test_format_date(self):
        assert format_date(date(2025, 3, 1)) == "2025-03-01"
        assert format_date(None) is None


class TestWorkingDays:
    def test_saturday_is_working_day(self):
        assert is_working_day(date(2025, 3, 8)) is True

    def test_sunday_is_not_working_day(self):
        assert is_working_day(date(2025, 3, 9)) is False

    def test_configured_holiday_is_not_working_day(self):
        assert is_working_day("2025-08-15") is False

    def test_explicit_holiday_set(self):
        """An explicit holiday set replaces the configured one."""
        monday = date(2025, 3, 10)
        assert is_working_day(monday, holidays={monday}) is False
        assert is_working_day("2025-08-15", holidays=set()) is True

    def test_next_working_day_skips_sunday(self):
        assert next_working_day(date(2025, 3, 8)) == date(2025, 3, 10)

    def test_next_working_day_skips_holiday(self):
        assert next_working_day(date(2025, 8, 14)) == date(2025, 8, 16)

    def test_previous_working_day_skips_sunday(self):
        assert previous_working_day(date(2025, 3, 10)) == date(2025, 3, 8)

    def test_snap_keeps_working_day(self):
        assert snap_to_working_day(date(2025, 3, 8)) == date(2025, 3, 8)

    def test_snap_moves_sunday_forward(self):
        assert snap_to_working_day("2025-03-09") == date(2025, 3, 10)


class TestWorkingDayArithmetic:
    def test_add_forward_over_sunday(self):
        assert add_working_days(date(2025, 3, 7), 2) == date(2025, 3, 10)

    def test_add_backward_over_sunday(self):
        assert add_working_days(date(2025, 3, 10), -2) == date(2025, 3, 7)

    def test_add_zero_returns_same_day(self):
        assert add_working_days(date(2025, 3, 9), 0) == date(2025, 3, 9)

    def test_count_excludes_endpoints_and_sundays(self):
        assert count_working_days(date(2025, 3, 7), date(2025, 3, 10)) == 1

    def test_count_is_symmetric(self):
        start, end = date(2025, 3, 3), date(2025, 3, 17)
        assert count_working_days(start, end) == count_working_days(end, start)

    def test_count_same_day_is_zero(self):
        assert count_working_days("2025-03-10", "2025-03-10") == 0

    def test_compound_date_is_seven_working_days_earlier(self):
        """Mon 2025-03-17 minus 7 working days skips two Sundays."""
        assert compound_date_from_calendaring(date(2025, 3, 17)) == date(2025, 3, 8)


def _steps(earlier, later):
    """Working days walked from `earlier` to `later` (0 when equal)."""
    if earlier == later:
        return 0
    return count_working_days(earlier, later) + 1


class TestProcessSchedule:
    """Dispatch 2025-04-30 is a Wednesday; no configured holiday falls near it."""

    @pytest.mark.parametrize("seed", range(25))
    def test_schedule_from_dispatch(self, seed):
        dates = process_dates_from_dispatch("2025-04-30", rng=random.Random(seed))

        assert dates.dispatch_date == date(2025, 4, 30)
        for name in PROCESS_DATE_FIELDS:
            assert is_working_day(getattr(dates, name)), name
        assert _steps(dates.packaging_date, dates.dispatch_date) == 1
        assert 4 <= _steps(dates.pdi_date, dates.dispatch_date) <= 5
        assert 4 <= _steps(dates.internal_inspection_date, dates.pdi_date) <= 10
        assert _steps(dates.curing_date, dates.internal_inspection_date) == 2
        assert _steps(dates.green_belt_date, dates.curing_date) == 1
        assert 0 <= _steps(dates.calendaring_date, dates.green_belt_date) <= 1
        assert 7 <= _steps(dates.cover_compound_date, dates.calendaring_date) <= 10
        assert dates.skim_compound_date < dates.calendaring_date
        assert dates.skim_compound_date != dates.cover_compound_date

    def test_same_seed_same_schedule(self):
        first = process_dates_from_dispatch("2025-04-30", rng=random.Random(7))
        second = process_dates_from_dispatch("2025-04-30", rng=random.Random(7))
        assert first == second

    def test_holidays_skipped(self):
        dates = process_dates_from_dispatch(
            "2025-04-30", rng=random.Random(1), holidays={date(2025, 4, 29)}
        )
        assert dates.packaging_date == date(2025, 4, 28)

    def test_to_dict_uses_iso_strings(self):
        data = process_dates_from_dispatch("2025-04-30", rng=random.Random(3)).to_dict()
        assert set(data) == set(PROCESS_DATE_FIELDS)
        assert data["dispatch_date"] == "2025-04-30"

    @pytest.mark.parametrize("field_name", PROCESS_DATE_FIELDS)
    @pytest.mark.parametrize("seed", range(5))
    def test_schedule_from_any_step(self, field_name, seed):
        dates = process_dates_from_any_date(field_name, "2025-04-16", rng=random.Random(seed))

        assert getattr(dates, field_name) == date(2025, 4, 16)
        for name in PROCESS_DATE_FIELDS:
            assert is_working_day(getattr(dates, name)), name
        assert dates.packaging_date < dates.dispatch_date
        assert dates.pdi_date < dates.dispatch_date
        assert dates.internal_inspection_date < dates.pdi_date
        assert dates.curing_date < dates.internal_inspection_date
        assert dates.green_belt_date < dates.curing_date
        assert dates.calendaring_date <= dates.green_belt_date
        assert dates.cover_compound_date < dates.calendaring_date
        assert dates.skim_compound_date < dates.calendaring_date
        assert dates.cover_compound_date != dates.skim_compound_date

    def test_unknown_step_rejected(self):
        with pytest.raises(ValueError):
            process_dates_from_any_date("mixing_date", "2025-04-16")


class TestValidators:
    def test_compound_code_rejects_whitespace(self):
        is_valid, error = validate_compound_code("nk 5")
        assert is_valid is False
        assert "whitespace" in error

    def test_compound_code_rejects_empty(self):
        is_valid, _ = validate_compound_code("  ")
        assert is_valid is False

    @pytest.mark.parametrize("value", [0, "-1", "abc", "NaN", None])
    def test_positive_kg_rejects(self, value):
        is_valid, _ = validate_positive_kg(value)
        assert is_valid is False

    def test_coerce_kg_quantises_to_grams(self):
        assert coerce_kg("12.34567") == Decimal("12.346")

    def test_coerce_kg_raises_value_error(self):
        with pytest.raises(ValueError):
            coerce_kg("0")

    def test_coerce_optional_date(self):
        assert coerce_optional_date("") is None
        assert coerce_optional_date(None) is None
        assert coerce_optional_date("2025-03-10") == date(2025, 3, 10)
        with pytest.raises(ValueError):
            coerce_optional_date("March 10")

    def test_validate_role(self):
        assert validate_role("cover")[0] is True
        assert validate_role("tread")[0] is False
