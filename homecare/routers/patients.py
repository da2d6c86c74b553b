# homecare/routers/patients.py
import logging
from datetime import date, datetime, time
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import ValidationError
from sqlalchemy.orm import Session

from .. import crud, schemas, security, models
from ..database import get_db
from ..dependencies import get_frequency_calculator
from ..services.frequency_calculator import FrequencyCalculatorService, FrequencyConfigurationError

logger = logging.getLogger(__name__)

router = APIRouter(
    tags=["Patients"],
    dependencies=[Depends(security.get_current_user)],
    responses={404: {"description": "Not found"}},
)


def pick_base_date(from_date: Optional[datetime], last_visit_date: Optional[date]) -> datetime:
    """Explicit date first, then the patient's last visit (start of day), then now."""
    if from_date is not None:
        return from_date
    if last_visit_date is not None:
        return datetime.combine(last_visit_date, time.min)
    return datetime.now()


@router.post("/patients/{patient_id}/next-visit", response_model=schemas.NextVisitResponse)
def calculate_patient_next_visit(
    patient_id: int,
    from_date: Optional[datetime] = None,
    update_patient: bool = False,
    db: Session = Depends(get_db),
    calculator: FrequencyCalculatorService = Depends(get_frequency_calculator),
    current_user: models.User = Depends(security.require_scheduler),
):
    """
    Compute the patient's next visit from their assigned frequency.
    With `update_patient=true` the result is stored as the next scheduled visit.
    """
    try:
        patient = crud.get_patient(db, patient_id=patient_id)
        if patient is None:
            raise HTTPException(status_code=404, detail="Patient not found")
        if patient.frequency is None:
            raise HTTPException(status_code=400, detail="Patient has no frequency assigned")

        frequency = schemas.FrequencyConfig.model_validate(patient.frequency)
        base_date = pick_base_date(from_date, patient.last_visit_date)
        calculation = calculator.calculate_next_visit_date(frequency, base_date)

        updated = False
        if update_patient:
            old_value = patient.next_scheduled_visit_date
            patient = crud.set_patient_next_visit(db, patient, calculation.next_visit_date.date())
            updated = True
            crud.create_audit_log(
                db=db, user_id=current_user.id, action="NEXT_VISIT_SCHEDULE", category="PATIENT",
                resource_type="patient", resource_id=patient.id,
                details=f"Next visit set to {patient.next_scheduled_visit_date.isoformat()} ({calculation.adjustment_details})",
                old_values={"next_scheduled_visit_date": old_value.isoformat() if old_value else None},
                new_values={"next_scheduled_visit_date": patient.next_scheduled_visit_date.isoformat()},
            )

        return schemas.NextVisitResponse(
            patient=schemas.NextVisitPatientSummary.model_validate(patient),
            base_date=base_date,
            calculation=calculation,
            updated=updated,
        )
    except HTTPException:
        raise
    except (FrequencyConfigurationError, ValidationError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid frequency configuration: {e}")
    except Exception as e:
        logger.error(f"Error calculating next visit for patient {patient_id}: {e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Could not calculate the next visit")
