# homecare/routers/holidays.py
import calendar
import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from .. import crud, schemas, security, models
from ..dependencies import get_company_holiday_settings, get_holiday_service, get_holiday_store
from ..services.holiday_service import HolidayService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/holidays",
    tags=["Holidays"],
    dependencies=[Depends(security.get_current_user)],
    responses={404: {"description": "Not found"}},
)


def _search_window(year, month, from_date, to_date):
    if from_date or to_date:
        return from_date, to_date
    if year and month:
        return date(year, month, 1), date(year, month, calendar.monthrange(year, month)[1])
    if year:
        return date(year, 1, 1), date(year, 12, 31)
    return None, None


@router.get("/search", response_model=schemas.HolidaySearchResponse)
def search_holidays(
    year: Optional[int] = Query(None, ge=1900, le=2100),
    month: Optional[int] = Query(None, ge=1, le=12),
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
    is_active: Optional[bool] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    store: crud.HolidayStore = Depends(get_holiday_store),
    holiday_service: HolidayService = Depends(get_holiday_service),
):
    """
    List calendar entries for the configured country, filtered by year, month or an explicit range.
    """
    date_from, date_to = _search_window(year, month, from_date, to_date)
    try:
        rows, total = store.search_holidays(
            skip=skip, limit=limit, date_from=date_from, date_to=date_to,
            is_active=is_active, country=holiday_service.country,
        )
    except crud.CRUDError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
    return schemas.HolidaySearchResponse(
        holidays=[schemas.HolidayResponse.model_validate(row) for row in rows],
        total=total, skip=skip, limit=limit,
    )


@router.post("/check-working-day", response_model=schemas.WorkingDayCheck)
def check_working_day(
    request: schemas.WorkingDayRequest,
    holiday_service: HolidayService = Depends(get_holiday_service),
    company_settings: schemas.CompanyHolidaySettings = Depends(get_company_holiday_settings),
):
    """
    Tell whether a date can be worked. Settings in the body replace the company defaults.
    """
    return holiday_service.is_working_day(
        request.date, request.settings or company_settings, allow_weekends=request.allow_weekends
    )


@router.get("/next-working-day", response_model=schemas.WorkingDayCheck)
def next_working_day(
    from_date: date,
    allow_weekends: bool = False,
    holiday_service: HolidayService = Depends(get_holiday_service),
    company_settings: schemas.CompanyHolidaySettings = Depends(get_company_holiday_settings),
):
    next_day = holiday_service.get_next_working_day(from_date, company_settings, allow_weekends)
    return holiday_service.is_working_day(next_day, company_settings, allow_weekends)


@router.post("", response_model=schemas.HolidayResponse, status_code=status.HTTP_201_CREATED)
def create_custom_holiday(
    holiday: schemas.CustomHolidayCreate,
    store: crud.HolidayStore = Depends(get_holiday_store),
    holiday_service: HolidayService = Depends(get_holiday_service),
    current_user: models.User = Depends(security.require_admin),
):
    """
    Add a company holiday. Only one calendar entry per date is accepted here.
    """
    if holiday.date < date.today():
        raise HTTPException(status_code=400, detail="Cannot create a holiday in the past")

    try:
        if store.find_holiday_on_date(holiday.date):
            raise HTTPException(status_code=409, detail=f"A holiday already exists on {holiday.date.isoformat()}")

        created = store.create_holiday(
            date=holiday.date,
            name=holiday.name,
            description=holiday.description,
            country=holiday_service.country,
            type=models.HolidayType.custom,
            source=models.HolidaySource.manual,
            is_recurring=holiday.is_recurring,
            recurring_day=holiday.date.day if holiday.is_recurring else None,
            recurring_month=holiday.date.month if holiday.is_recurring else None,
            allow_work=holiday.allow_work,
            is_active=holiday.is_active,
        )
    except crud.CRUDError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    crud.create_audit_log(
        db=store.db, user_id=current_user.id, action="HOLIDAY_CREATE", category="HOLIDAY",
        resource_type="holiday", resource_id=created.id,
        details=f"Created custom holiday {created.name} on {created.date.isoformat()}",
        new_values=holiday.model_dump(mode="json"),
    )
    return created


@router.post("/sync/{year}", response_model=schemas.HolidaySyncResult)
async def sync_national_holidays(
    year: int,
    holiday_service: HolidayService = Depends(get_holiday_service),
    current_user: models.User = Depends(security.require_admin),
):
    """
    Pull the national public holidays for `year` from the external feed.
    """
    if year < 1900 or year > 2100:
        raise HTTPException(status_code=400, detail="Year out of range")

    result = await holiday_service.sync_national_holidays(year)
    logger.info(f"Holiday sync {year}: {result.created} created, {result.updated} updated, {len(result.errors)} errors")

    crud.create_audit_log(
        db=holiday_service.store.db, user_id=current_user.id, action="HOLIDAY_SYNC", category="HOLIDAY",
        severity="WARN" if result.errors else "INFO",
        details=f"Synced {year}: found {result.total_found}, created {result.created}, "
                f"updated {result.updated}, skipped {result.skipped}, errors {len(result.errors)}",
    )
    return result


@router.post("/recurring/{year}", response_model=schemas.RecurringGenerationResult)
def generate_recurring_holidays(
    year: int,
    holiday_service: HolidayService = Depends(get_holiday_service),
    current_user: models.User = Depends(security.require_admin),
):
    if year < 1900 or year > 2100:
        raise HTTPException(status_code=400, detail="Year out of range")

    try:
        created = holiday_service.generate_recurring_holidays(year)
    except crud.CRUDError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

    crud.create_audit_log(
        db=holiday_service.store.db, user_id=current_user.id, action="HOLIDAY_GENERATE", category="HOLIDAY",
        details=f"Generated {created} recurring holidays for {year}",
    )
    return schemas.RecurringGenerationResult(year=year, created=created)
