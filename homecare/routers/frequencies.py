# homecare/routers/frequencies.py
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import ValidationError
from sqlalchemy.orm import Session

from .. import crud, schemas, security
from ..database import get_db
from ..dependencies import get_frequency_calculator
from ..services.frequency_calculator import FrequencyCalculatorService, FrequencyConfigurationError

router = APIRouter(
    prefix="/frequencies",
    tags=["Frequencies"],
    dependencies=[Depends(security.get_current_user)],
    responses={404: {"description": "Not found"}},
)


def _load_frequency(db: Session, frequency_id: int) -> schemas.FrequencyConfig:
    try:
        db_frequency = crud.get_frequency(db, frequency_id=frequency_id)
    except crud.CRUDError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
    if db_frequency is None:
        raise HTTPException(status_code=404, detail="Frequency not found")
    try:
        return schemas.FrequencyConfig.model_validate(db_frequency)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"Stored frequency is malformed: {e.error_count()} error(s)")


def _build_schedule(calculator, frequency, start, end, options) -> schemas.ScheduleResponse:
    if (start.tzinfo is None) != (end.tzinfo is None):
        raise HTTPException(status_code=400, detail="start_date and end_date must both include a timezone or both omit it")
    if end < start:
        raise HTTPException(status_code=400, detail="end_date must not be before start_date")
    try:
        dates = calculator.calculate_visit_schedule(frequency, start, end, options)
    except FrequencyConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return schemas.ScheduleResponse(dates=dates, count=len(dates))


@router.post("/validate", response_model=schemas.FrequencyValidation)
def validate_frequency(
    frequency: schemas.FrequencyConfig,
    calculator: FrequencyCalculatorService = Depends(get_frequency_calculator),
):
    """
    Check a frequency draft before saving it. Never fails: problems come back as errors and warnings.
    """
    return calculator.validate_frequency_configuration(frequency)


@router.post("/stats", response_model=schemas.FrequencyStats)
def frequency_stats(
    frequency: schemas.FrequencyConfig,
    calculator: FrequencyCalculatorService = Depends(get_frequency_calculator),
):
    try:
        return calculator.calculate_frequency_stats(frequency)
    except FrequencyConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/schedule", response_model=schemas.ScheduleResponse)
def preview_schedule(
    request: schemas.ScheduleRequest,
    calculator: FrequencyCalculatorService = Depends(get_frequency_calculator),
):
    """
    Expand an unsaved frequency into the visits it would produce between two instants.
    """
    return _build_schedule(calculator, request.frequency, request.start_date, request.end_date, request.options)


@router.get("/{frequency_id}/schedule", response_model=schemas.ScheduleResponse)
def frequency_schedule(
    frequency_id: int,
    start: datetime,
    end: datetime,
    allow_weekends: Optional[bool] = None,
    db: Session = Depends(get_db),
    calculator: FrequencyCalculatorService = Depends(get_frequency_calculator),
):
    frequency = _load_frequency(db, frequency_id)
    options = schemas.ScheduleOptions(allow_weekends=allow_weekends)
    return _build_schedule(calculator, frequency, start, end, options)


@router.post("/{frequency_id}/valid-date", response_model=schemas.VisitDateValidity)
def check_visit_date(
    frequency_id: int,
    request: schemas.VisitDateCheckRequest,
    db: Session = Depends(get_db),
    calculator: FrequencyCalculatorService = Depends(get_frequency_calculator),
):
    """
    Tell whether a proposed visit fits the stored frequency and the calendar.
    """
    frequency = _load_frequency(db, frequency_id)
    return calculator.is_valid_visit_date(frequency, request.proposed_date, request.last_visit_date, request.options)
