# homecare/services/frequency_calculator.py
import math
from datetime import date, datetime, time, timedelta
from typing import Optional, List, Tuple, Union

import structlog
from dateutil.relativedelta import relativedelta

from ..schemas import (
    CompanyHolidaySettings, Complexity, FixedHoursSchedule, FlexibleIntervalsSchedule, FrequencyConfig,
    FrequencyInterval, FrequencyStats, FrequencyType, FrequencyValidation, NextDateCalculationRule,
    NextVisitCalculation, ScheduleOptions, SpecificTimesSchedule, VisitDateValidity
)
from .holiday_service import HolidayService

logger = structlog.get_logger(__name__)

AVERAGE_DAYS_PER_MONTH = 30
MAX_SMART_ADJUSTMENT_DAYS = 14
MAX_SCHEDULE_ITERATIONS = 1000


class FrequencyConfigurationError(ValueError):
    """The frequency cannot produce a date: unknown type or missing parameters."""


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def sunday_based_weekday(value: date) -> int:
    """0 = Sunday ... 6 = Saturday, the numbering used by weekly patterns."""
    return (value.weekday() + 1) % 7


def _as_datetime(value: Union[date, datetime]) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min)


def _parse_clock(value: str) -> Tuple[int, int]:
    hours, minutes = value.split(":")
    return int(hours), int(minutes)


def _at_clock(day: datetime, clock: str) -> datetime:
    hours, minutes = _parse_clock(clock)
    return day.replace(hour=hours, minute=minutes, second=0, microsecond=0)


def _next_fixed_time(reference: datetime, times: List[str]) -> datetime:
    """First listed time later today, else the first listed time tomorrow."""
    for clock in times:
        if _parse_clock(clock) > (reference.hour, reference.minute):
            return _at_clock(reference, clock)
    return _at_clock(reference + timedelta(days=1), times[0])


class FrequencyCalculatorService:
    """Turns a frequency policy and a reference instant into the next visit.

    Two steps: a per-type strategy proposes a candidate instant, then the
    frequency's calculation rule moves it onto an acceptable calendar day.
    """

    def __init__(
        self,
        holiday_service: HolidayService,
        holiday_settings: Optional[CompanyHolidaySettings] = None,
        time_zone: str = "America/Argentina/Buenos_Aires",
        max_look_ahead_days: int = 90,
    ):
        self.holiday_service = holiday_service
        self.holiday_settings = holiday_settings
        self.time_zone = time_zone
        self.max_look_ahead_days = max_look_ahead_days
        self._strategies = {
            FrequencyType.SIMPLE: self._next_simple,
            FrequencyType.HOURLY: self._next_hourly,
            FrequencyType.DAILY_MULTIPLE: self._next_daily_multiple,
            FrequencyType.WEEKLY_PATTERN: self._next_weekly_pattern,
            FrequencyType.CUSTOM: self._next_custom,
        }

    # ---------- option resolution ----------

    def resolve_options(self, frequency: FrequencyConfig, options: Optional[ScheduleOptions] = None) -> ScheduleOptions:
        """Fill every unset option from the frequency or the service defaults."""
        options = options or ScheduleOptions()

        def pick(value, fallback):
            return fallback if value is None else value

        return ScheduleOptions(
            respect_business_hours=pick(options.respect_business_hours, frequency.respect_business_hours),
            allow_weekends=pick(options.allow_weekends, frequency.allow_weekends),
            allow_holidays=pick(options.allow_holidays, frequency.allow_holidays),
            holiday_settings=pick(options.holiday_settings, self.holiday_settings),
            max_look_ahead_days=pick(options.max_look_ahead_days, self.max_look_ahead_days),
            time_zone=pick(options.time_zone, self.time_zone),
        )

    @staticmethod
    def _effective_settings(options: ScheduleOptions) -> Optional[CompanyHolidaySettings]:
        # A frequency that allows holidays behaves like a company that works them;
        # explicit non-working days still win inside is_working_day.
        if not options.allow_holidays:
            return options.holiday_settings
        base = options.holiday_settings or CompanyHolidaySettings()
        return base.model_copy(update={"allow_work_on_holidays": True})

    @staticmethod
    def _frequency_type(frequency: FrequencyConfig) -> FrequencyType:
        if frequency.frequency_type is None:
            raise FrequencyConfigurationError("Frequency type is required")
        try:
            return FrequencyType(frequency.frequency_type)
        except ValueError:
            raise FrequencyConfigurationError(f"Unsupported frequency type: {frequency.frequency_type}")

    # ---------- step 1: candidate per frequency type ----------

    def _next_simple(self, frequency: FrequencyConfig, reference: datetime) -> Tuple[datetime, List[str]]:
        if frequency.days_between_visits:
            return reference + timedelta(days=frequency.days_between_visits), []
        if frequency.visits_per_month:
            days = round_half_up(AVERAGE_DAYS_PER_MONTH / frequency.visits_per_month)
            return reference + timedelta(days=days), []
        if frequency.interval_value and frequency.interval_unit:
            value = frequency.interval_value
            unit = FrequencyInterval(frequency.interval_unit)
            if unit == FrequencyInterval.HOURS:
                return reference + timedelta(hours=value), []
            if unit == FrequencyInterval.DAYS:
                return reference + timedelta(days=value), []
            if unit == FrequencyInterval.WEEKS:
                return reference + timedelta(days=value * 7), []
            return reference + relativedelta(months=value), []
        raise FrequencyConfigurationError(
            "SIMPLE frequency needs days_between_visits, visits_per_month or interval_value with interval_unit"
        )

    def _next_hourly(self, frequency: FrequencyConfig, reference: datetime) -> Tuple[datetime, List[str]]:
        schedule = frequency.custom_schedule
        if isinstance(schedule, FixedHoursSchedule) and schedule.fixed_times:
            return _next_fixed_time(reference, schedule.fixed_times), list(schedule.fixed_times)
        if frequency.interval_value:
            return reference + timedelta(hours=frequency.interval_value), []
        raise FrequencyConfigurationError("HOURLY frequency needs FIXED_HOURS times or an interval_value")

    def _next_daily_multiple(self, frequency: FrequencyConfig, reference: datetime) -> Tuple[datetime, List[str]]:
        visits = frequency.visits_per_day
        if not visits or visits < 2:
            raise FrequencyConfigurationError("DAILY_MULTIPLE frequency needs visits_per_day of at least 2")

        step = 24 // visits
        times = [f"{i * step:02d}:00" for i in range(visits)]
        schedule = frequency.custom_schedule
        if isinstance(schedule, (FixedHoursSchedule, SpecificTimesSchedule)) and schedule.fixed_times:
            times = list(schedule.fixed_times)

        for clock in times:
            if _parse_clock(clock)[0] > reference.hour:
                return _at_clock(reference, clock), times
        return _at_clock(reference + timedelta(days=1), times[0]), times

    def _next_weekly_pattern(self, frequency: FrequencyConfig, reference: datetime) -> Tuple[datetime, List[str]]:
        pattern = sorted({d for d in (frequency.weekly_pattern or []) if 0 <= d <= 6})
        if not pattern:
            return reference + timedelta(days=1), []

        current = sunday_based_weekday(reference)
        later = [d for d in pattern if d > current]
        days_ahead = later[0] - current if later else 7 - current + pattern[0]
        return reference + timedelta(days=days_ahead), []

    def _next_custom(self, frequency: FrequencyConfig, reference: datetime) -> Tuple[datetime, List[str]]:
        schedule = frequency.custom_schedule
        if isinstance(schedule, SpecificTimesSchedule):
            if not schedule.fixed_times:
                return reference + timedelta(days=1), []
            return _next_fixed_time(reference, schedule.fixed_times), list(schedule.fixed_times)
        if isinstance(schedule, FlexibleIntervalsSchedule):
            next_hour = reference.hour + schedule.interval_hours
            if next_hour < 24:
                return reference.replace(hour=next_hour, second=0, microsecond=0), []
            return _at_clock(reference + timedelta(days=1), schedule.start_time), []
        return reference + timedelta(days=1), []

    # ---------- step 2: calendar rule ----------

    def _apply_rule(
        self, rule, candidate: datetime, options: ScheduleOptions
    ) -> Tuple[datetime, bool, bool, str]:
        """Returns (adjusted date, business-day moved, holiday involved, details)."""
        settings = self._effective_settings(options)
        allow_weekends = bool(options.allow_weekends)

        try:
            rule = NextDateCalculationRule(rule)
        except ValueError:
            return candidate, False, False, f"No adjustment for rule {rule}"

        if rule == NextDateCalculationRule.EXACT_DAYS:
            return candidate, False, False, "Exact date, no adjustment"

        if rule == NextDateCalculationRule.NEXT_BUSINESS_DAY:
            check = self.holiday_service.is_working_day(candidate, settings, allow_weekends)
            if check.is_working_day:
                return candidate, False, False, "Already a business day"
            adjusted = self.holiday_service.get_next_working_day(candidate, settings, allow_weekends)
            return adjusted, True, check.holiday is not None, f"Moved to next business day ({check.reason})"

        if rule == NextDateCalculationRule.SAME_DAY_NEXT_MONTH:
            adjusted = candidate + relativedelta(months=1)
            if adjusted.day != candidate.day:
                return adjusted, False, False, (
                    f"Day {candidate.day} does not exist in {adjusted:%B %Y}, using the last day of the month"
                )
            return adjusted, False, False, "Same day next month"

        if rule == NextDateCalculationRule.SMART_FREQUENCY:
            adjusted = candidate
            shifted = 0
            holiday_seen = False
            while shifted < MAX_SMART_ADJUSTMENT_DAYS:
                check = self.holiday_service.is_working_day(adjusted, settings, allow_weekends)
                if check.is_working_day:
                    break
                if check.holiday is not None:
                    holiday_seen = True
                adjusted += timedelta(days=1)
                shifted += 1
            if shifted:
                return adjusted, True, holiday_seen, f"Smart adjustment: moved {shifted} day(s)"
            return adjusted, False, False, "Smart adjustment: no change needed"

        return candidate, False, False, f"No adjustment for rule {rule.value}"

    # ---------- public operations ----------

    def calculate_next_visit_date(
        self,
        frequency: FrequencyConfig,
        last_visit_date: Union[date, datetime],
        options: Optional[ScheduleOptions] = None,
    ) -> NextVisitCalculation:
        reference = _as_datetime(last_visit_date)
        resolved = self.resolve_options(frequency, options)
        frequency_type = self._frequency_type(frequency)

        candidate, possible_times = self._strategies[frequency_type](frequency, reference)
        adjusted, business_moved, holiday_moved, details = self._apply_rule(
            frequency.next_date_calculation_rule, candidate, resolved
        )

        logger.debug(
            "next_visit_calculated", frequency_id=frequency.id, frequency_type=frequency_type.value,
            reference=reference.isoformat(), candidate=candidate.isoformat(), next_visit=adjusted.isoformat(),
        )

        return NextVisitCalculation(
            next_visit_date=adjusted,
            calculation_method=frequency.next_date_calculation_rule,
            frequency_applied=frequency,
            business_day_adjustment=business_moved,
            holiday_adjustment=holiday_moved,
            adjustment_details=details,
            possible_times=possible_times,
            metadata={
                "original_reference_date": reference.isoformat(),
                "candidate_date": candidate.isoformat(),
                "frequency_type": frequency_type.value,
                "options_used": resolved.model_dump(mode="json"),
            },
        )

    def calculate_visit_schedule(
        self,
        frequency: FrequencyConfig,
        start_date: Union[date, datetime],
        end_date: Union[date, datetime],
        options: Optional[ScheduleOptions] = None,
    ) -> List[datetime]:
        """All visit instants after `start_date` up to and including `end_date`."""
        current = _as_datetime(start_date)
        end = end_date if isinstance(end_date, datetime) else datetime.combine(end_date, time.max)
        schedule: List[datetime] = []

        while current <= end and len(schedule) < MAX_SCHEDULE_ITERATIONS:
            next_visit = self.calculate_next_visit_date(frequency, current, options).next_visit_date
            if next_visit > end:
                break
            if next_visit <= current:
                logger.warning("schedule_not_advancing", frequency_id=frequency.id, at=current.isoformat())
                break
            schedule.append(next_visit)
            current = next_visit

        if len(schedule) >= MAX_SCHEDULE_ITERATIONS:
            logger.warning("schedule_truncated", frequency_id=frequency.id, limit=MAX_SCHEDULE_ITERATIONS)
        return schedule

    def is_valid_visit_date(
        self,
        frequency: FrequencyConfig,
        proposed_date: Union[date, datetime],
        last_visit_date: Optional[Union[date, datetime]] = None,
        options: Optional[ScheduleOptions] = None,
    ) -> VisitDateValidity:
        proposed = _as_datetime(proposed_date)
        resolved = self.resolve_options(frequency, options)

        if resolved.respect_business_hours:
            check = self.holiday_service.is_working_day(
                proposed, self._effective_settings(resolved), bool(resolved.allow_weekends)
            )
            if not check.is_working_day:
                return VisitDateValidity(is_valid=False, reason=f"Date not allowed: {check.reason}")

        if frequency.frequency_type == FrequencyType.WEEKLY_PATTERN and frequency.weekly_pattern:
            if sunday_based_weekday(proposed) not in frequency.weekly_pattern:
                return VisitDateValidity(is_valid=False, reason="Day is not part of the weekly pattern")

        if last_visit_date is not None and frequency.days_between_visits:
            gap = (proposed - _as_datetime(last_visit_date)).days
            if gap < frequency.days_between_visits:
                return VisitDateValidity(
                    is_valid=False,
                    reason=f"At least {frequency.days_between_visits} days must pass between visits (got {gap})",
                )

        return VisitDateValidity(is_valid=True)

    def calculate_frequency_stats(self, frequency: FrequencyConfig) -> FrequencyStats:
        frequency_type = self._frequency_type(frequency)
        per_month = 0
        average_days = 0
        complexity = Complexity.LOW

        if frequency_type == FrequencyType.SIMPLE:
            if frequency.days_between_visits:
                average_days = frequency.days_between_visits
                per_month = round_half_up(AVERAGE_DAYS_PER_MONTH / average_days)
            elif frequency.visits_per_month:
                per_month = frequency.visits_per_month
                average_days = round_half_up(AVERAGE_DAYS_PER_MONTH / per_month)
            elif frequency.interval_value and frequency.interval_unit:
                unit = FrequencyInterval(frequency.interval_unit)
                if unit == FrequencyInterval.HOURS:
                    per_month = (24 // frequency.interval_value) * AVERAGE_DAYS_PER_MONTH
                    average_days = max(1, round_half_up(frequency.interval_value / 24))
                else:
                    multiplier = {FrequencyInterval.DAYS: 1, FrequencyInterval.WEEKS: 7,
                                  FrequencyInterval.MONTHS: AVERAGE_DAYS_PER_MONTH}[unit]
                    average_days = frequency.interval_value * multiplier
                    per_month = round_half_up(AVERAGE_DAYS_PER_MONTH / average_days)

        elif frequency_type == FrequencyType.HOURLY:
            complexity = Complexity.HIGH
            average_days = 1
            schedule = frequency.custom_schedule
            if frequency.interval_value:
                per_month = (24 // frequency.interval_value) * AVERAGE_DAYS_PER_MONTH
            elif isinstance(schedule, FixedHoursSchedule):
                per_month = len(schedule.fixed_times) * AVERAGE_DAYS_PER_MONTH

        elif frequency_type == FrequencyType.DAILY_MULTIPLE:
            complexity = Complexity.HIGH
            average_days = 1
            per_month = (frequency.visits_per_day or 0) * AVERAGE_DAYS_PER_MONTH

        elif frequency_type == FrequencyType.WEEKLY_PATTERN:
            complexity = Complexity.MEDIUM
            days = len(set(frequency.weekly_pattern or []))
            if days:
                per_month = round_half_up(days * AVERAGE_DAYS_PER_MONTH / 7)
                average_days = round_half_up(7 / days)

        elif frequency_type == FrequencyType.CUSTOM:
            complexity = Complexity.HIGH
            per_month = 4
            average_days = 7

        return FrequencyStats(
            estimated_visits_per_month=per_month,
            estimated_visits_per_year=per_month * 12,
            average_days_between=average_days,
            complexity=complexity,
        )

    def validate_frequency_configuration(self, frequency: FrequencyConfig) -> FrequencyValidation:
        errors: List[str] = []
        warnings: List[str] = []
        recommendations: List[str] = []

        if not frequency.name or len(frequency.name.strip()) < 2:
            errors.append("Name must be at least 2 characters long")

        frequency_type = None
        if frequency.frequency_type is None:
            errors.append("Frequency type is required")
        else:
            try:
                frequency_type = FrequencyType(frequency.frequency_type)
            except ValueError:
                errors.append(f"Unsupported frequency type: {frequency.frequency_type}")

        if frequency_type == FrequencyType.SIMPLE:
            if not frequency.days_between_visits and not frequency.visits_per_month and not frequency.interval_value:
                errors.append("Simple frequencies need days between visits, visits per month or an interval")
            if frequency.days_between_visits and frequency.days_between_visits > 365:
                warnings.append("More than a year between visits is unusual")

        elif frequency_type == FrequencyType.HOURLY:
            if not frequency.interval_value or not frequency.custom_schedule:
                errors.append("Hourly frequencies need both an interval and a custom schedule")
            if frequency.interval_value is not None and frequency.interval_value < 1:
                errors.append("Hourly interval must be at least 1 hour")

        elif frequency_type == FrequencyType.DAILY_MULTIPLE:
            if not frequency.visits_per_day or frequency.visits_per_day < 2:
                errors.append("Daily multiple frequencies need at least 2 visits per day")
            elif frequency.visits_per_day > 24:
                errors.append("No more than 24 visits per day are allowed")

        elif frequency_type == FrequencyType.WEEKLY_PATTERN:
            pattern = frequency.weekly_pattern or []
            if not pattern:
                errors.append("Weekly patterns need at least one day")
            if any(d < 0 or d > 6 for d in pattern):
                errors.append("Weekly pattern days must be between 0 (Sunday) and 6 (Saturday)")
            if len(set(pattern)) != len(pattern):
                warnings.append("Weekly pattern has repeated days; duplicates are ignored")
            if len(set(pattern)) == 7:
                warnings.append("Every day of the week is selected; consider a daily frequency instead")

        elif frequency_type == FrequencyType.CUSTOM:
            if not frequency.custom_schedule:
                errors.append("Custom frequencies need a custom schedule")

        if frequency.allow_holidays:
            warnings.append("Visits may be scheduled on holidays")

        if not frequency.respect_business_hours and frequency.allow_weekends:
            recommendations.append("Consider respecting business hours for better staff coverage")

        return FrequencyValidation(
            is_valid=not errors,
            errors=errors,
            warnings=warnings,
            recommendations=recommendations,
        )
