# homecare/services/holiday_service.py
from datetime import date, datetime, timedelta, timezone
from typing import Optional, List, Protocol, Union

import httpx
import structlog

from .. import models
from ..crud import CRUDError
from ..schemas import (
    CompanyHolidaySettings, HolidayResponse, HolidaySyncResult, PublicHoliday, WorkingDayCheck
)

logger = structlog.get_logger(__name__)

# Upper bound on consecutive calendar lookups when searching for a working day
MAX_WORKING_DAY_LOOKAHEAD = 14

DateLike = Union[date, datetime]


class HolidayStoreProtocol(Protocol):
    """What the holiday service needs from a calendar store."""

    def find_holiday(self, day: date, country: str) -> Optional[models.Holiday]: ...

    def find_holiday_by_name(self, day: date, name: str, country: str) -> Optional[models.Holiday]: ...

    def find_recurring_holidays(self, country: str) -> List[models.Holiday]: ...

    def create_holiday(self, **fields) -> models.Holiday: ...

    def update_holiday(self, holiday: models.Holiday, **fields) -> models.Holiday: ...


def _as_date(value: DateLike) -> date:
    return value.date() if isinstance(value, datetime) else value


class HolidayService:
    """Working-day rules on top of a holiday calendar and company overrides."""

    def __init__(
        self,
        store: HolidayStoreProtocol,
        country: str = "AR",
        api_url: str = "https://date.nager.at/api/v3/publicholidays",
        timeout: float = 10.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.store = store
        self.country = country
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.http_client = http_client

    def _lookup_holiday(self, day: date) -> Optional[models.Holiday]:
        # A calendar outage must not block scheduling: treat it as "no holiday"
        try:
            return self.store.find_holiday(day, self.country)
        except CRUDError as e:
            logger.warning("holiday_lookup_failed", day=day.isoformat(), country=self.country, error=str(e))
            return None

    def is_working_day(
        self,
        day: DateLike,
        settings: Optional[CompanyHolidaySettings] = None,
        allow_weekends: bool = False,
    ) -> WorkingDayCheck:
        """Decide whether `day` can be worked.

        Weekends are non-working unless the caller passes `allow_weekends`.
        For a holiday the overrides apply in this order, last one wins:
        company `allow_work_on_holidays`, the holiday's own `allow_work`,
        `custom_working_holidays`, and finally `custom_non_working_days`.
        """
        check_date = _as_date(day)
        date_string = check_date.isoformat()
        custom_non_working = settings is not None and date_string in settings.custom_non_working_days

        if check_date.weekday() >= 5 and not allow_weekends:
            return WorkingDayCheck(date=check_date, is_working_day=False, reason="Weekend")

        holiday = self._lookup_holiday(check_date)

        if holiday is None:
            if custom_non_working:
                return WorkingDayCheck(date=check_date, is_working_day=False, reason="Custom non-working day")
            return WorkingDayCheck(date=check_date, is_working_day=True)

        is_working = False
        if settings is not None and settings.allow_work_on_holidays:
            is_working = True
        if holiday.allow_work:
            is_working = True
        if settings is not None and date_string in settings.custom_working_holidays:
            is_working = True
        if custom_non_working:
            is_working = False

        return WorkingDayCheck(
            date=check_date,
            is_working_day=is_working,
            holiday=HolidayResponse.model_validate(holiday),
            reason=None if is_working else f"Holiday: {holiday.name}",
        )

    def get_next_working_day(
        self,
        from_date: DateLike,
        settings: Optional[CompanyHolidaySettings] = None,
        allow_weekends: bool = False,
    ) -> DateLike:
        """First working day strictly after `from_date`, keeping its time of day.

        Falls back to the following calendar day when nothing workable shows up
        within MAX_WORKING_DAY_LOOKAHEAD days.
        """
        candidate = from_date + timedelta(days=1)
        for _ in range(MAX_WORKING_DAY_LOOKAHEAD):
            if self.is_working_day(candidate, settings, allow_weekends).is_working_day:
                return candidate
            candidate += timedelta(days=1)

        logger.warning("next_working_day_not_found", from_date=str(from_date), attempts=MAX_WORKING_DAY_LOOKAHEAD)
        return from_date + timedelta(days=1)

    async def _fetch_public_holidays(self, year: int) -> list:
        url = f"{self.api_url}/{year}/{self.country}"
        if self.http_client is not None:
            response = await self.http_client.get(url)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(url)
        response.raise_for_status()
        return response.json()

    async def sync_national_holidays(self, year: int) -> HolidaySyncResult:
        """Import the nationally observed public holidays for `year`.

        Regional entries are skipped. Rows imported earlier from the feed are
        refreshed; manually created rows are left alone. Per-holiday failures
        are reported in `errors` without stopping the batch.
        """
        result = HolidaySyncResult(year=year, sync_date=datetime.now(timezone.utc))

        try:
            items = await self._fetch_public_holidays(year)
        except httpx.HTTPStatusError as e:
            result.errors.append(f"Holiday sync failed: API response {e.response.status_code} {e.response.reason_phrase}")
            logger.error("holiday_sync_failed", year=year, status=e.response.status_code)
            return result
        except (httpx.HTTPError, ValueError) as e:
            result.errors.append(f"Holiday sync failed: {e}")
            logger.error("holiday_sync_failed", year=year, error=str(e))
            return result

        result.total_found = len(items)

        for item in items:
            label = item.get("localName", "?") if isinstance(item, dict) else "?"
            try:
                api_holiday = PublicHoliday.model_validate(item)
                if not api_holiday.global_:
                    result.skipped += 1
                    continue

                recurring_fields = {
                    "is_recurring": api_holiday.fixed,
                    "recurring_day": api_holiday.date.day if api_holiday.fixed else None,
                    "recurring_month": api_holiday.date.month if api_holiday.fixed else None,
                    "external_id": f"{api_holiday.country_code}-{api_holiday.date.isoformat()}",
                    "last_sync_date": datetime.now(timezone.utc),
                }

                existing = self.store.find_holiday_by_name(api_holiday.date, api_holiday.local_name, self.country)
                if existing is not None:
                    if existing.source == models.HolidaySource.api:
                        self.store.update_holiday(existing, description=api_holiday.name, **recurring_fields)
                        result.updated += 1
                    else:
                        result.skipped += 1
                    continue

                self.store.create_holiday(
                    date=api_holiday.date,
                    name=api_holiday.local_name,
                    description=api_holiday.name,
                    country=self.country,
                    type=models.HolidayType.national,
                    source=models.HolidaySource.api,
                    allow_work=False,
                    is_active=True,
                    **recurring_fields,
                )
                result.created += 1
            except (CRUDError, ValueError) as e:
                result.errors.append(f"Error processing {label}: {e}")

        logger.info(
            "holiday_sync_finished", year=year, country=self.country, found=result.total_found,
            created=result.created, updated=result.updated, skipped=result.skipped, errors=len(result.errors),
        )
        return result

    def generate_recurring_holidays(self, year: int) -> int:
        """Materialise this year's instance of every active recurring holiday."""
        created = 0
        for holiday in self.store.find_recurring_holidays(self.country):
            if not holiday.recurring_month or not holiday.recurring_day:
                continue
            try:
                new_date = date(year, holiday.recurring_month, holiday.recurring_day)
            except ValueError:
                # 29 February outside a leap year
                logger.warning("recurring_holiday_skipped", name=holiday.name, year=year,
                               month=holiday.recurring_month, day=holiday.recurring_day)
                continue

            if self.store.find_holiday_by_name(new_date, holiday.name, holiday.country) is not None:
                continue

            self.store.create_holiday(
                date=new_date,
                name=holiday.name,
                description=holiday.description,
                country=holiday.country,
                type=holiday.type,
                source=holiday.source,
                is_recurring=True,
                recurring_day=holiday.recurring_day,
                recurring_month=holiday.recurring_month,
                allow_work=holiday.allow_work,
                is_active=True,
            )
            created += 1

        logger.info("recurring_holidays_generated", year=year, country=self.country, created=created)
        return created
