# homecare/crud.py
from sqlalchemy.orm import Session, joinedload
from sqlalchemy.exc import SQLAlchemyError, IntegrityError
from datetime import date
from typing import Optional, List, Tuple
import logging

from . import models
from .compliance_logger import compliance_logger

logger = logging.getLogger(__name__)


class CRUDError(Exception):
    pass


# ==================== USERS ====================

def get_user_by_username(db: Session, username: str) -> Optional[models.User]:
    try:
        return db.query(models.User).filter(models.User.username == username).first()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching user by username '{username}': {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")


# ==================== PATIENTS & FREQUENCIES ====================

def get_patient(db: Session, patient_id: int) -> Optional[models.Patient]:
    """Get a patient with its frequency eagerly loaded."""
    try:
        return db.query(models.Patient).options(joinedload(models.Patient.frequency)).filter(
            models.Patient.id == patient_id
        ).first()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching patient {patient_id}: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")


def get_frequency(db: Session, frequency_id: int) -> Optional[models.Frequency]:
    try:
        return db.query(models.Frequency).filter(
            models.Frequency.id == frequency_id,
            models.Frequency.is_active.is_(True)
        ).first()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching frequency {frequency_id}: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")


def set_patient_next_visit(db: Session, patient: models.Patient, next_visit: date) -> models.Patient:
    """Persist the computed next visit date onto the patient record."""
    try:
        patient.next_scheduled_visit_date = next_visit
        db.commit()
        db.refresh(patient)
        return patient
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error updating next visit for patient {patient.id}: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")


# ==================== HOLIDAY CALENDAR ====================

class HolidayStore:
    """Calendar store backed by the `holidays` table."""

    def __init__(self, db: Session):
        self.db = db

    def find_holiday(self, day: date, country: str) -> Optional[models.Holiday]:
        try:
            return self.db.query(models.Holiday).filter(
                models.Holiday.date == day,
                models.Holiday.country == country,
                models.Holiday.is_active.is_(True)
            ).first()
        except SQLAlchemyError as e:
            logger.error(f"Error looking up holiday on {day} ({country}): {str(e)}")
            raise CRUDError(f"Database error: {str(e)}")

    def find_holiday_on_date(self, day: date) -> Optional[models.Holiday]:
        """Any holiday row for the date, active or not, in any country."""
        try:
            return self.db.query(models.Holiday).filter(models.Holiday.date == day).first()
        except SQLAlchemyError as e:
            logger.error(f"Error looking up holiday on {day}: {str(e)}")
            raise CRUDError(f"Database error: {str(e)}")

    def find_holiday_by_name(self, day: date, name: str, country: str) -> Optional[models.Holiday]:
        try:
            return self.db.query(models.Holiday).filter(
                models.Holiday.date == day,
                models.Holiday.name == name,
                models.Holiday.country == country
            ).first()
        except SQLAlchemyError as e:
            logger.error(f"Error looking up holiday '{name}' on {day}: {str(e)}")
            raise CRUDError(f"Database error: {str(e)}")

    def find_recurring_holidays(self, country: str) -> List[models.Holiday]:
        try:
            return self.db.query(models.Holiday).filter(
                models.Holiday.country == country,
                models.Holiday.is_recurring.is_(True),
                models.Holiday.is_active.is_(True)
            ).order_by(models.Holiday.date).all()
        except SQLAlchemyError as e:
            logger.error(f"Error fetching recurring holidays ({country}): {str(e)}")
            raise CRUDError(f"Database error: {str(e)}")

    def create_holiday(self, **fields) -> models.Holiday:
        try:
            holiday = models.Holiday(**fields)
            self.db.add(holiday)
            self.db.commit()
            self.db.refresh(holiday)
            return holiday
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"Duplicate holiday {fields.get('name')} on {fields.get('date')}: {str(e)}")
            raise CRUDError("A holiday with this date and name already exists")
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error creating holiday: {str(e)}")
            raise CRUDError(f"Database error: {str(e)}")

    def update_holiday(self, holiday: models.Holiday, **fields) -> models.Holiday:
        try:
            for key, value in fields.items():
                setattr(holiday, key, value)
            self.db.commit()
            self.db.refresh(holiday)
            return holiday
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error updating holiday {holiday.id}: {str(e)}")
            raise CRUDError(f"Database error: {str(e)}")

    def search_holidays(
        self,
        skip: int = 0,
        limit: int = 100,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        is_active: Optional[bool] = None,
        country: Optional[str] = None,
    ) -> Tuple[List[models.Holiday], int]:
        try:
            query = self.db.query(models.Holiday)
            if country:
                query = query.filter(models.Holiday.country == country)
            if is_active is not None:
                query = query.filter(models.Holiday.is_active.is_(is_active))
            if date_from:
                query = query.filter(models.Holiday.date >= date_from)
            if date_to:
                query = query.filter(models.Holiday.date <= date_to)
            total = query.count()
            rows = query.order_by(models.Holiday.date).offset(skip).limit(limit).all()
            return rows, total
        except SQLAlchemyError as e:
            logger.error(f"Error searching holidays: {str(e)}")
            raise CRUDError("A database error occurred while searching holidays.")


# ==================== AUDIT TRAIL ====================

def create_audit_log(db, user_id=None, action=None, category=None, details=None, **kwargs):
    """Record an audit entry. Never raises: auditing must not break the calling request."""
    username = kwargs.get('username')
    if username is None and user_id:
        try:
            username = db.query(models.User.username).filter(models.User.id == user_id).scalar()
        except SQLAlchemyError as e:
            logger.error(f"Error resolving username for audit log: {e}")

    if hasattr(action, "value"):
        action = action.value
    if hasattr(category, "value"):
        category = category.value

    compliance_logger.log_event(
        user_id=user_id,
        username=username,
        action=action or 'READ',
        category=category or 'GENERAL',
        details=details,
        severity=kwargs.get('severity', 'INFO'),
        resource_type=kwargs.get('resource_type'),
        resource_id=kwargs.get('resource_id'),
        old_values=kwargs.get('old_values'),
        new_values=kwargs.get('new_values'),
    )
