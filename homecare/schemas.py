# homecare/schemas.py
import re
from datetime import datetime, date
from typing import List, Optional, Dict, Any, Union, Literal, Annotated
from pydantic import BaseModel, Field, field_validator, computed_field
from enum import Enum

from .models import HolidayType, HolidaySource

_HHMM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


# --- Enum Classes ---
class FrequencyType(str, Enum):
    SIMPLE = "SIMPLE"
    HOURLY = "HOURLY"
    DAILY_MULTIPLE = "DAILY_MULTIPLE"
    WEEKLY_PATTERN = "WEEKLY_PATTERN"
    CUSTOM = "CUSTOM"


class NextDateCalculationRule(str, Enum):
    EXACT_DAYS = "EXACT_DAYS"
    NEXT_BUSINESS_DAY = "NEXT_BUSINESS_DAY"
    SAME_DAY_NEXT_MONTH = "SAME_DAY_NEXT_MONTH"
    SMART_FREQUENCY = "SMART_FREQUENCY"
    HOURLY_PATTERN = "HOURLY_PATTERN"
    DAILY_MULTIPLE = "DAILY_MULTIPLE"
    WEEKLY_PATTERN = "WEEKLY_PATTERN"
    CUSTOM_SCHEDULE = "CUSTOM_SCHEDULE"


class FrequencyInterval(str, Enum):
    HOURS = "HOURS"
    DAYS = "DAYS"
    WEEKS = "WEEKS"
    MONTHS = "MONTHS"


class Complexity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


# --- Base Schemas ---
class BaseSchema(BaseModel):
    class Config:
        from_attributes = True


def _check_clock_time(value: str) -> str:
    if not _HHMM.match(value or ""):
        raise ValueError(f"'{value}' is not a valid HH:MM 24-hour time")
    return value


# --- Custom schedules (one variant per schedule kind) ---
class FixedHoursSchedule(BaseSchema):
    schedule_type: Literal["FIXED_HOURS"] = "FIXED_HOURS"
    fixed_times: List[str] = Field(default_factory=list, description="Ordered HH:MM times, e.g. ['08:00', '16:00']")

    @field_validator("fixed_times")
    @classmethod
    def validate_times(cls, v):
        return [_check_clock_time(t) for t in v]


class FlexibleIntervalsSchedule(BaseSchema):
    schedule_type: Literal["FLEXIBLE_INTERVALS"] = "FLEXIBLE_INTERVALS"
    start_time: str = Field(..., description="First visit of the day, HH:MM")
    interval_hours: int = Field(..., ge=1, le=23)

    @field_validator("start_time")
    @classmethod
    def validate_start_time(cls, v):
        return _check_clock_time(v)


class SpecificTimesSchedule(BaseSchema):
    schedule_type: Literal["SPECIFIC_TIMES"] = "SPECIFIC_TIMES"
    fixed_times: List[str] = Field(default_factory=list)

    @field_validator("fixed_times")
    @classmethod
    def validate_times(cls, v):
        return [_check_clock_time(t) for t in v]


CustomSchedule = Annotated[
    Union[FixedHoursSchedule, FlexibleIntervalsSchedule, SpecificTimesSchedule],
    Field(discriminator="schedule_type"),
]


# --- Frequency Schemas ---
class FrequencyConfig(BaseSchema):
    """Domain view of a frequency as consumed by the calculator.

    Per-type parameters are unconstrained so an incomplete draft can reach
    the configuration validator.
    """
    id: Optional[int] = None
    name: Optional[str] = None
    description: Optional[str] = None

    frequency_type: Optional[Union[FrequencyType, str]] = None
    next_date_calculation_rule: Union[NextDateCalculationRule, str] = NextDateCalculationRule.NEXT_BUSINESS_DAY

    days_between_visits: Optional[int] = None
    visits_per_month: Optional[int] = None
    interval_value: Optional[int] = None
    interval_unit: Optional[FrequencyInterval] = None
    visits_per_day: Optional[int] = None
    weekly_pattern: Optional[List[int]] = None
    custom_schedule: Optional[CustomSchedule] = None

    respect_business_hours: bool = True
    allow_weekends: bool = False
    allow_holidays: bool = False


class FrequencyValidation(BaseModel):
    is_valid: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)


class FrequencyStats(BaseModel):
    estimated_visits_per_month: int
    estimated_visits_per_year: int
    average_days_between: int
    complexity: Complexity


class VisitDateValidity(BaseModel):
    is_valid: bool
    reason: Optional[str] = None


# --- Holiday Schemas ---
class CompanyHolidaySettings(BaseModel):
    allow_work_on_holidays: bool = False
    custom_working_holidays: List[str] = Field(default_factory=list, description="ISO dates of holidays that ARE worked")
    custom_non_working_days: List[str] = Field(default_factory=list, description="ISO dates that are never worked")


class HolidayResponse(BaseSchema):
    id: Optional[int] = None
    date: date
    name: str
    description: Optional[str] = None
    country: str
    type: Optional[HolidayType] = None
    source: Optional[HolidaySource] = None
    is_recurring: bool = False
    recurring_day: Optional[int] = None
    recurring_month: Optional[int] = None
    allow_work: bool = False
    external_id: Optional[str] = None
    last_sync_date: Optional[datetime] = None
    is_active: bool = True

    @computed_field
    @property
    def day_of_week(self) -> str:
        return self.date.strftime("%A")


class WorkingDayCheck(BaseModel):
    date: date
    is_working_day: bool
    holiday: Optional[HolidayResponse] = None
    reason: Optional[str] = None


class CustomHolidayCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=150)
    date: date
    description: Optional[str] = Field(None, max_length=500)
    is_recurring: bool = False
    allow_work: bool = False
    is_active: bool = True


class HolidaySearchResponse(BaseModel):
    holidays: List[HolidayResponse]
    total: int
    skip: int
    limit: int


class WorkingDayRequest(BaseModel):
    date: date
    settings: Optional[CompanyHolidaySettings] = None
    allow_weekends: bool = False


class PublicHoliday(BaseModel):
    """One entry of the public holiday feed."""
    date: date
    local_name: str = Field(..., alias="localName")
    name: str
    country_code: str = Field(..., alias="countryCode")
    fixed: bool = False
    global_: bool = Field(False, alias="global")
    counties: Optional[List[str]] = None
    types: List[str] = Field(default_factory=list)

    class Config:
        populate_by_name = True


class HolidaySyncResult(BaseModel):
    year: int
    total_found: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: List[str] = Field(default_factory=list)
    sync_date: datetime


class RecurringGenerationResult(BaseModel):
    year: int
    created: int


# --- Next visit calculation ---
class ScheduleOptions(BaseModel):
    """Per-call overrides. Unset flags fall back to the frequency's own policy."""
    respect_business_hours: Optional[bool] = None
    allow_weekends: Optional[bool] = None
    allow_holidays: Optional[bool] = None
    holiday_settings: Optional[CompanyHolidaySettings] = None
    max_look_ahead_days: Optional[int] = None
    time_zone: Optional[str] = None


class NextVisitCalculation(BaseModel):
    next_visit_date: datetime
    calculation_method: Union[NextDateCalculationRule, str]
    frequency_applied: FrequencyConfig
    business_day_adjustment: bool = False
    holiday_adjustment: bool = False
    adjustment_details: str = ""
    possible_times: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ScheduleRequest(BaseModel):
    frequency: FrequencyConfig
    start_date: datetime
    end_date: datetime
    options: Optional[ScheduleOptions] = None


class ScheduleResponse(BaseModel):
    dates: List[datetime]
    count: int


class VisitDateCheckRequest(BaseModel):
    proposed_date: datetime
    last_visit_date: Optional[datetime] = None
    options: Optional[ScheduleOptions] = None


class NextVisitPatientSummary(BaseSchema):
    id: int
    full_name: str
    last_visit_date: Optional[date] = None
    next_scheduled_visit_date: Optional[date] = None


class NextVisitResponse(BaseModel):
    patient: NextVisitPatientSummary
    base_date: datetime
    calculation: NextVisitCalculation
    updated: bool
