# homecare/dependencies.py
"""FastAPI dependencies that build the scheduling services per request."""
from fastapi import Depends
from sqlalchemy.orm import Session

from . import crud
from .config import Settings, get_settings
from .database import get_db
from .schemas import CompanyHolidaySettings
from .services.frequency_calculator import FrequencyCalculatorService
from .services.holiday_service import HolidayService


def get_holiday_store(db: Session = Depends(get_db)) -> crud.HolidayStore:
    return crud.HolidayStore(db)


def get_company_holiday_settings(settings: Settings = Depends(get_settings)) -> CompanyHolidaySettings:
    return settings.company_holiday_settings()


def get_holiday_service(
    store: crud.HolidayStore = Depends(get_holiday_store),
    settings: Settings = Depends(get_settings),
) -> HolidayService:
    return HolidayService(
        store,
        country=settings.holiday_country,
        api_url=settings.holiday_api_url,
        timeout=settings.holiday_api_timeout,
    )


def get_frequency_calculator(
    holiday_service: HolidayService = Depends(get_holiday_service),
    company_settings: CompanyHolidaySettings = Depends(get_company_holiday_settings),
    settings: Settings = Depends(get_settings),
) -> FrequencyCalculatorService:
    return FrequencyCalculatorService(
        holiday_service,
        holiday_settings=company_settings,
        time_zone=settings.schedule_timezone,
        max_look_ahead_days=settings.max_look_ahead_days,
    )


__all__ = [
    "get_holiday_store",
    "get_company_holiday_settings",
    "get_holiday_service",
    "get_frequency_calculator",
]
