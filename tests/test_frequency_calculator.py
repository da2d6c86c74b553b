# tests/test_frequency_calculator.py
from datetime import date, datetime

import pytest

from homecare.schemas import CompanyHolidaySettings, FrequencyConfig, ScheduleOptions
from homecare.services.frequency_calculator import (
    FrequencyCalculatorService, FrequencyConfigurationError, MAX_SCHEDULE_ITERATIONS
)


@pytest.fixture
def calculator(holiday_service):
    return FrequencyCalculatorService(holiday_service)


def make_frequency(**fields) -> FrequencyConfig:
    values = {"id": 1, "name": "Test frequency", "frequency_type": "SIMPLE", "next_date_calculation_rule": "EXACT_DAYS"}
    values.update(fields)
    return FrequencyConfig(**values)


def next_visit(calculator, reference, **fields):
    return calculator.calculate_next_visit_date(make_frequency(**fields), reference)


MONDAY_10AM = datetime(2024, 1, 1, 10, 0)


# ---------- SIMPLE ----------

def test_simple_days_between_visits(calculator):
    result = next_visit(calculator, MONDAY_10AM, days_between_visits=7)
    assert result.next_visit_date == datetime(2024, 1, 8, 10, 0)
    assert result.adjustment_details == "Exact date, no adjustment"
    assert result.business_day_adjustment is False


def test_simple_accepts_plain_date(calculator):
    result = next_visit(calculator, date(2024, 1, 1), days_between_visits=2)
    assert result.next_visit_date == datetime(2024, 1, 3)


@pytest.mark.parametrize("visits_per_month, days", [(4, 8), (7, 4), (12, 3)])
def test_simple_visits_per_month_rounds_half_up(calculator, visits_per_month, days):
    result = next_visit(calculator, MONDAY_10AM, visits_per_month=visits_per_month)
    assert (result.next_visit_date - MONDAY_10AM).days == days


def test_simple_interval_in_weeks(calculator):
    result = next_visit(calculator, MONDAY_10AM, interval_value=2, interval_unit="WEEKS")
    assert result.next_visit_date == datetime(2024, 1, 15, 10, 0)


def test_simple_interval_in_months_clamps_to_month_end(calculator):
    result = next_visit(calculator, datetime(2024, 1, 31, 9, 0), interval_value=1, interval_unit="MONTHS")
    assert result.next_visit_date == datetime(2024, 2, 29, 9, 0)


def test_simple_without_spacing_is_a_configuration_error(calculator):
    with pytest.raises(FrequencyConfigurationError):
        next_visit(calculator, MONDAY_10AM)


def test_unknown_frequency_type_is_rejected(calculator):
    with pytest.raises(FrequencyConfigurationError, match="Unsupported frequency type"):
        next_visit(calculator, MONDAY_10AM, frequency_type="FORTNIGHTLY", days_between_visits=14)


def test_missing_frequency_type_is_rejected(calculator):
    with pytest.raises(FrequencyConfigurationError):
        next_visit(calculator, MONDAY_10AM, frequency_type=None, days_between_visits=14)


# ---------- HOURLY ----------

NURSING_TIMES = {"schedule_type": "FIXED_HOURS", "fixed_times": ["08:00", "16:00", "00:00"]}


def test_hourly_fixed_hours_picks_next_time_today(calculator):
    result = next_visit(calculator, MONDAY_10AM, frequency_type="HOURLY", custom_schedule=NURSING_TIMES)
    assert result.next_visit_date == datetime(2024, 1, 1, 16, 0)
    assert result.possible_times == ["08:00", "16:00", "00:00"]


def test_hourly_fixed_hours_rolls_to_first_time_tomorrow(calculator):
    result = next_visit(calculator, datetime(2024, 1, 1, 17, 0), frequency_type="HOURLY", custom_schedule=NURSING_TIMES)
    assert result.next_visit_date == datetime(2024, 1, 2, 8, 0)


def test_hourly_fixed_hours_compares_minutes(calculator):
    schedule = {"schedule_type": "FIXED_HOURS", "fixed_times": ["10:00", "10:30"]}
    result = next_visit(calculator, datetime(2024, 1, 1, 10, 15), frequency_type="HOURLY", custom_schedule=schedule)
    assert result.next_visit_date == datetime(2024, 1, 1, 10, 30)


def test_hourly_interval(calculator):
    result = next_visit(calculator, MONDAY_10AM, frequency_type="HOURLY", interval_value=6)
    assert result.next_visit_date == datetime(2024, 1, 1, 16, 0)
    assert result.possible_times == []


def test_hourly_without_parameters_is_a_configuration_error(calculator):
    with pytest.raises(FrequencyConfigurationError):
        next_visit(calculator, MONDAY_10AM, frequency_type="HOURLY")


# ---------- DAILY_MULTIPLE ----------

def test_daily_multiple_generates_even_slots(calculator):
    result = next_visit(calculator, datetime(2024, 1, 1, 9, 30), frequency_type="DAILY_MULTIPLE", visits_per_day=3)
    assert result.possible_times == ["00:00", "08:00", "16:00"]
    assert result.next_visit_date == datetime(2024, 1, 1, 16, 0)


def test_daily_multiple_needs_a_strictly_later_hour(calculator):
    result = next_visit(calculator, datetime(2024, 1, 1, 8, 10), frequency_type="DAILY_MULTIPLE", visits_per_day=3)
    assert result.next_visit_date == datetime(2024, 1, 1, 16, 0)


def test_daily_multiple_rolls_to_first_slot_tomorrow(calculator):
    result = next_visit(calculator, datetime(2024, 1, 1, 16, 30), frequency_type="DAILY_MULTIPLE", visits_per_day=3)
    assert result.next_visit_date == datetime(2024, 1, 2, 0, 0)


def test_daily_multiple_uses_custom_times(calculator):
    schedule = {"schedule_type": "FIXED_HOURS", "fixed_times": ["09:00", "17:00"]}
    result = next_visit(calculator, datetime(2024, 1, 1, 12, 0), frequency_type="DAILY_MULTIPLE",
                        visits_per_day=2, custom_schedule=schedule)
    assert result.next_visit_date == datetime(2024, 1, 1, 17, 0)
    assert result.possible_times == ["09:00", "17:00"]


def test_daily_multiple_needs_two_visits(calculator):
    with pytest.raises(FrequencyConfigurationError):
        next_visit(calculator, MONDAY_10AM, frequency_type="DAILY_MULTIPLE", visits_per_day=1)


# ---------- WEEKLY_PATTERN ----------

MON_WED_FRI = [1, 3, 5]


@pytest.mark.parametrize("reference, expected", [
    (datetime(2024, 1, 1, 9, 0), datetime(2024, 1, 3, 9, 0)),   # Monday -> Wednesday
    (datetime(2024, 1, 5, 9, 0), datetime(2024, 1, 8, 9, 0)),   # Friday -> Monday
    (datetime(2024, 1, 6, 9, 0), datetime(2024, 1, 8, 9, 0)),   # Saturday -> Monday
    (datetime(2024, 1, 7, 9, 0), datetime(2024, 1, 8, 9, 0)),   # Sunday -> Monday
])
def test_weekly_pattern_moves_to_next_listed_day(calculator, reference, expected):
    result = next_visit(calculator, reference, frequency_type="WEEKLY_PATTERN", weekly_pattern=MON_WED_FRI)
    assert result.next_visit_date == expected


def test_weekly_pattern_order_and_duplicates_do_not_matter(calculator):
    result = next_visit(calculator, datetime(2024, 1, 1, 9, 0), frequency_type="WEEKLY_PATTERN",
                        weekly_pattern=[5, 3, 3, 1])
    assert result.next_visit_date == datetime(2024, 1, 3, 9, 0)


def test_empty_weekly_pattern_falls_back_to_next_day(calculator):
    result = next_visit(calculator, MONDAY_10AM, frequency_type="WEEKLY_PATTERN", weekly_pattern=[])
    assert result.next_visit_date == datetime(2024, 1, 2, 10, 0)


# ---------- CUSTOM ----------

def test_custom_specific_times(calculator):
    schedule = {"schedule_type": "SPECIFIC_TIMES", "fixed_times": ["07:30", "19:30"]}
    result = next_visit(calculator, MONDAY_10AM, frequency_type="CUSTOM", custom_schedule=schedule)
    assert result.next_visit_date == datetime(2024, 1, 1, 19, 30)


def test_custom_flexible_intervals_same_day(calculator):
    schedule = {"schedule_type": "FLEXIBLE_INTERVALS", "start_time": "09:00", "interval_hours": 8}
    result = next_visit(calculator, datetime(2024, 1, 1, 9, 30), frequency_type="CUSTOM", custom_schedule=schedule)
    assert result.next_visit_date == datetime(2024, 1, 1, 17, 30)


def test_custom_flexible_intervals_overflow_to_start_time(calculator):
    schedule = {"schedule_type": "FLEXIBLE_INTERVALS", "start_time": "09:00", "interval_hours": 8}
    result = next_visit(calculator, datetime(2024, 1, 1, 17, 30), frequency_type="CUSTOM", custom_schedule=schedule)
    assert result.next_visit_date == datetime(2024, 1, 2, 9, 0)


def test_custom_without_schedule_adds_a_day(calculator):
    result = next_visit(calculator, MONDAY_10AM, frequency_type="CUSTOM")
    assert result.next_visit_date == datetime(2024, 1, 2, 10, 0)


# ---------- calculation rules ----------

FRIDAY_9AM = datetime(2024, 1, 5, 9, 0)


def test_next_business_day_moves_off_weekend(calculator):
    result = next_visit(calculator, FRIDAY_9AM, days_between_visits=1, next_date_calculation_rule="NEXT_BUSINESS_DAY")
    assert result.next_visit_date == datetime(2024, 1, 8, 9, 0)
    assert result.business_day_adjustment is True
    assert result.holiday_adjustment is False
    assert "Weekend" in result.adjustment_details
    assert result.metadata["candidate_date"] == "2024-01-06T09:00:00"


def test_next_business_day_moves_off_holiday(calculator, add_holiday):
    add_holiday(date(2024, 5, 1), "Día del Trabajador")
    result = next_visit(calculator, datetime(2024, 4, 30, 9, 0), days_between_visits=1,
                        next_date_calculation_rule="NEXT_BUSINESS_DAY")
    assert result.next_visit_date == datetime(2024, 5, 2, 9, 0)
    assert result.holiday_adjustment is True
    assert "Día del Trabajador" in result.adjustment_details


def test_next_business_day_keeps_working_day(calculator):
    result = next_visit(calculator, MONDAY_10AM, days_between_visits=1, next_date_calculation_rule="NEXT_BUSINESS_DAY")
    assert result.next_visit_date == datetime(2024, 1, 2, 10, 0)
    assert result.business_day_adjustment is False


def test_exact_days_keeps_weekend(calculator):
    result = next_visit(calculator, FRIDAY_9AM, days_between_visits=1)
    assert result.next_visit_date == datetime(2024, 1, 6, 9, 0)


def test_frequency_allowing_weekends_is_not_moved(calculator):
    result = next_visit(calculator, FRIDAY_9AM, days_between_visits=1, allow_weekends=True,
                        next_date_calculation_rule="NEXT_BUSINESS_DAY")
    assert result.next_visit_date == datetime(2024, 1, 6, 9, 0)


def test_frequency_allowing_holidays_is_not_moved(calculator, add_holiday):
    add_holiday(date(2024, 5, 1), "Día del Trabajador")
    result = next_visit(calculator, datetime(2024, 4, 30, 9, 0), days_between_visits=1, allow_holidays=True,
                        next_date_calculation_rule="NEXT_BUSINESS_DAY")
    assert result.next_visit_date == datetime(2024, 5, 1, 9, 0)


def test_company_non_working_day_is_skipped(holiday_service):
    calculator = FrequencyCalculatorService(
        holiday_service, holiday_settings=CompanyHolidaySettings(custom_non_working_days=["2024-01-02"])
    )
    result = next_visit(calculator, MONDAY_10AM, days_between_visits=1, next_date_calculation_rule="NEXT_BUSINESS_DAY")
    assert result.next_visit_date == datetime(2024, 1, 3, 10, 0)


def test_same_day_next_month(calculator):
    result = next_visit(calculator, datetime(2024, 1, 14, 9, 0), days_between_visits=1,
                        next_date_calculation_rule="SAME_DAY_NEXT_MONTH")
    assert result.next_visit_date == datetime(2024, 2, 15, 9, 0)
    assert result.adjustment_details == "Same day next month"


def test_same_day_next_month_clamps(calculator):
    result = next_visit(calculator, datetime(2024, 1, 30, 9, 0), days_between_visits=1,
                        next_date_calculation_rule="SAME_DAY_NEXT_MONTH")
    assert result.next_visit_date == datetime(2024, 2, 29, 9, 0)
    assert "last day of the month" in result.adjustment_details


def test_same_day_next_month_clamps_outside_leap_years(calculator):
    result = next_visit(calculator, datetime(2025, 1, 31, 9, 0), days_between_visits=1,
                        next_date_calculation_rule="SAME_DAY_NEXT_MONTH")
    assert result.next_visit_date == datetime(2025, 2, 28, 9, 0)
    assert "last day of the month" in result.adjustment_details


def test_smart_frequency_counts_shifted_days(calculator):
    result = next_visit(calculator, FRIDAY_9AM, days_between_visits=1, next_date_calculation_rule="SMART_FREQUENCY")
    assert result.next_visit_date == datetime(2024, 1, 8, 9, 0)
    assert result.business_day_adjustment is True
    assert "2 day(s)" in result.adjustment_details


def test_smart_frequency_flags_holiday(calculator, add_holiday):
    add_holiday(date(2024, 1, 8), "Puente")
    result = next_visit(calculator, FRIDAY_9AM, days_between_visits=1, next_date_calculation_rule="SMART_FREQUENCY")
    assert result.next_visit_date == datetime(2024, 1, 9, 9, 0)
    assert result.holiday_adjustment is True
    assert "3 day(s)" in result.adjustment_details


def test_fortnightly_smart_visit_skips_national_holiday(calculator, add_holiday):
    add_holiday(date(2024, 5, 2), "Feriado nacional")
    result = next_visit(calculator, datetime(2024, 4, 18, 9, 0), days_between_visits=14,
                        next_date_calculation_rule="SMART_FREQUENCY")
    assert result.next_visit_date == datetime(2024, 5, 3, 9, 0)
    assert result.business_day_adjustment is True
    assert result.holiday_adjustment is True
    assert "1 day(s)" in result.adjustment_details


@pytest.mark.parametrize("rule", ["HOURLY_PATTERN", "CUSTOM_SCHEDULE", "SOMETHING_ELSE"])
def test_other_rules_do_not_adjust(calculator, rule):
    result = next_visit(calculator, FRIDAY_9AM, days_between_visits=1, next_date_calculation_rule=rule)
    assert result.next_visit_date == datetime(2024, 1, 6, 9, 0)
    assert result.business_day_adjustment is False


def test_metadata_records_reference_and_options(calculator):
    result = next_visit(calculator, MONDAY_10AM, days_between_visits=3)
    assert result.metadata["original_reference_date"] == "2024-01-01T10:00:00"
    assert result.metadata["frequency_type"] == "SIMPLE"
    options = result.metadata["options_used"]
    assert options["allow_weekends"] is False
    assert options["time_zone"] == "America/Argentina/Buenos_Aires"
    assert options["max_look_ahead_days"] == 90


def test_options_override_frequency_flags(calculator):
    frequency = make_frequency(days_between_visits=1, next_date_calculation_rule="NEXT_BUSINESS_DAY")
    result = calculator.calculate_next_visit_date(frequency, FRIDAY_9AM, ScheduleOptions(allow_weekends=True))
    assert result.next_visit_date == datetime(2024, 1, 6, 9, 0)


# ---------- calculate_visit_schedule ----------

def test_schedule_lists_visits_up_to_end(calculator):
    frequency = make_frequency(days_between_visits=7)
    dates = calculator.calculate_visit_schedule(frequency, datetime(2024, 1, 1), datetime(2024, 1, 31))
    assert dates == [datetime(2024, 1, d) for d in (8, 15, 22, 29)]


def test_schedule_end_date_is_inclusive(calculator):
    frequency = make_frequency(days_between_visits=7)
    dates = calculator.calculate_visit_schedule(frequency, date(2024, 1, 1), date(2024, 1, 29))
    assert dates[-1] == datetime(2024, 1, 29)


def test_schedule_is_strictly_increasing_with_business_days(calculator):
    frequency = make_frequency(frequency_type="WEEKLY_PATTERN", weekly_pattern=MON_WED_FRI,
                               next_date_calculation_rule="NEXT_BUSINESS_DAY")
    dates = calculator.calculate_visit_schedule(frequency, datetime(2024, 1, 1, 9), datetime(2024, 2, 1))
    assert len(dates) == 13
    assert all(a < b for a, b in zip(dates, dates[1:]))
    assert all(d.weekday() in (0, 2, 4) for d in dates)


def test_schedule_empty_when_end_before_first_visit(calculator):
    frequency = make_frequency(days_between_visits=30)
    assert calculator.calculate_visit_schedule(frequency, datetime(2024, 1, 1), datetime(2024, 1, 15)) == []


def test_schedule_is_capped(calculator):
    frequency = make_frequency(frequency_type="HOURLY", interval_value=1)
    dates = calculator.calculate_visit_schedule(frequency, datetime(2024, 1, 1), datetime(2024, 3, 1))
    assert len(dates) == MAX_SCHEDULE_ITERATIONS


# ---------- is_valid_visit_date ----------

def test_weekend_visit_rejected_when_business_hours_respected(calculator):
    validity = calculator.is_valid_visit_date(make_frequency(days_between_visits=1), datetime(2024, 1, 6, 9))
    assert validity.is_valid is False
    assert "Weekend" in validity.reason


def test_weekend_visit_accepted_when_weekends_allowed(calculator):
    frequency = make_frequency(days_between_visits=1, allow_weekends=True)
    assert calculator.is_valid_visit_date(frequency, datetime(2024, 1, 6, 9)).is_valid is True


def test_weekend_visit_accepted_without_business_hours(calculator):
    frequency = make_frequency(days_between_visits=1, respect_business_hours=False)
    assert calculator.is_valid_visit_date(frequency, datetime(2024, 1, 6, 9)).is_valid is True


def test_holiday_visit_rejected(calculator, add_holiday):
    add_holiday(date(2024, 5, 1), "Día del Trabajador")
    validity = calculator.is_valid_visit_date(make_frequency(days_between_visits=1), datetime(2024, 5, 1, 9))
    assert validity.is_valid is False
    assert "Día del Trabajador" in validity.reason


def test_visit_outside_weekly_pattern_rejected(calculator):
    frequency = make_frequency(frequency_type="WEEKLY_PATTERN", weekly_pattern=MON_WED_FRI)
    assert calculator.is_valid_visit_date(frequency, datetime(2024, 1, 2, 9)).is_valid is False
    assert calculator.is_valid_visit_date(frequency, datetime(2024, 1, 3, 9)).is_valid is True


def test_minimum_gap_between_visits(calculator):
    frequency = make_frequency(days_between_visits=3)
    last = datetime(2024, 1, 1, 9)
    too_soon = calculator.is_valid_visit_date(frequency, datetime(2024, 1, 3, 9), last)
    on_boundary = calculator.is_valid_visit_date(frequency, datetime(2024, 1, 4, 9), last)
    assert too_soon.is_valid is False
    assert "3 days" in too_soon.reason
    assert on_boundary.is_valid is True


def test_gap_counts_whole_days(calculator):
    frequency = make_frequency(days_between_visits=3)
    validity = calculator.is_valid_visit_date(frequency, datetime(2024, 1, 4, 8, 59), datetime(2024, 1, 1, 9))
    assert validity.is_valid is False


# ---------- calculate_frequency_stats ----------

@pytest.mark.parametrize("fields, per_month, average, complexity", [
    ({"days_between_visits": 7}, 4, 7, "LOW"),
    ({"visits_per_month": 4}, 4, 8, "LOW"),
    ({"visits_per_month": 12}, 12, 3, "LOW"),
    ({"frequency_type": "HOURLY", "interval_value": 8}, 90, 1, "HIGH"),
    ({"frequency_type": "DAILY_MULTIPLE", "visits_per_day": 3}, 90, 1, "HIGH"),
    ({"frequency_type": "WEEKLY_PATTERN", "weekly_pattern": [1, 3, 5]}, 13, 2, "MEDIUM"),
    ({"frequency_type": "CUSTOM"}, 4, 7, "HIGH"),
])
def test_frequency_stats(calculator, fields, per_month, average, complexity):
    stats = calculator.calculate_frequency_stats(make_frequency(**fields))
    assert stats.estimated_visits_per_month == per_month
    assert stats.estimated_visits_per_year == per_month * 12
    assert stats.average_days_between == average
    assert stats.complexity == complexity


# ---------- validate_frequency_configuration ----------

def test_valid_configuration(calculator):
    validation = calculator.validate_frequency_configuration(make_frequency(days_between_visits=14))
    assert validation.is_valid is True
    assert validation.errors == []


def test_name_and_type_are_required(calculator):
    validation = calculator.validate_frequency_configuration(FrequencyConfig(name="x"))
    assert validation.is_valid is False
    assert "Name must be at least 2 characters long" in validation.errors
    assert "Frequency type is required" in validation.errors


def test_unknown_type_is_reported(calculator):
    validation = calculator.validate_frequency_configuration(make_frequency(frequency_type="YEARLY"))
    assert validation.errors == ["Unsupported frequency type: YEARLY"]


def test_simple_needs_spacing_and_warns_on_long_gaps(calculator):
    assert calculator.validate_frequency_configuration(make_frequency()).is_valid is False
    validation = calculator.validate_frequency_configuration(make_frequency(days_between_visits=400))
    assert validation.is_valid is True
    assert validation.warnings


def test_hourly_interval_must_be_positive(calculator):
    validation = calculator.validate_frequency_configuration(
        make_frequency(frequency_type="HOURLY", interval_value=0)
    )
    assert "Hourly interval must be at least 1 hour" in validation.errors


def test_hourly_needs_both_interval_and_schedule(calculator):
    interval_only = calculator.validate_frequency_configuration(
        make_frequency(frequency_type="HOURLY", interval_value=8)
    )
    assert interval_only.is_valid is False
    assert "Hourly frequencies need both an interval and a custom schedule" in interval_only.errors

    schedule_only = calculator.validate_frequency_configuration(
        make_frequency(frequency_type="HOURLY", custom_schedule=NURSING_TIMES)
    )
    assert schedule_only.is_valid is False

    both = calculator.validate_frequency_configuration(
        make_frequency(frequency_type="HOURLY", interval_value=8, custom_schedule=NURSING_TIMES)
    )
    assert both.is_valid is True


@pytest.mark.parametrize("visits", [None, 1, 25])
def test_daily_multiple_bounds(calculator, visits):
    validation = calculator.validate_frequency_configuration(
        make_frequency(frequency_type="DAILY_MULTIPLE", visits_per_day=visits)
    )
    assert validation.is_valid is False


def test_weekly_pattern_checks(calculator):
    empty = calculator.validate_frequency_configuration(make_frequency(frequency_type="WEEKLY_PATTERN"))
    assert empty.is_valid is False

    bad = calculator.validate_frequency_configuration(
        make_frequency(frequency_type="WEEKLY_PATTERN", weekly_pattern=[1, 1, 8])
    )
    assert bad.is_valid is False
    assert len(bad.warnings) == 1

    every_day = calculator.validate_frequency_configuration(
        make_frequency(frequency_type="WEEKLY_PATTERN", weekly_pattern=list(range(7)))
    )
    assert every_day.is_valid is True
    assert every_day.warnings


def test_custom_needs_a_schedule(calculator):
    assert calculator.validate_frequency_configuration(make_frequency(frequency_type="CUSTOM")).is_valid is False


def test_holiday_warning_and_business_hours_recommendation(calculator):
    validation = calculator.validate_frequency_configuration(
        make_frequency(days_between_visits=1, allow_holidays=True, allow_weekends=True, respect_business_hours=False)
    )
    assert validation.is_valid is True
    assert "Visits may be scheduled on holidays" in validation.warnings
    assert validation.recommendations
