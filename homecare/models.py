# homecare/models.py
from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey, Text, Date,
    Enum as SQLAlchemyEnum, Boolean, JSON, Index, UniqueConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from .database import Base
import enum


class UserRole(str, enum.Enum):
    admin = "admin"
    coordinator = "coordinator"
    professional = "professional"


class AuditAction(str, enum.Enum):
    CREATE = "CREATE"
    READ = "READ"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    ACCESS_DENIED = "ACCESS_DENIED"
    EXPORT = "EXPORT"
    BULK_ACTION = "BULK_ACTION"


class HolidayType(str, enum.Enum):
    national = "national"
    bridge = "bridge"
    custom = "custom"


class HolidaySource(str, enum.Enum):
    api = "api"
    manual = "manual"


class User(Base):
    """Back-office user. Credentials and token issuance live outside this service."""
    __tablename__ = "users"
    __table_args__ = (
        Index('idx_users_role_active', 'role', 'is_active'),
    )

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, index=True, nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    role = Column(SQLAlchemyEnum(UserRole, name='user_role'), default=UserRole.coordinator, nullable=False)
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    audit_logs = relationship("AuditLog", back_populates="user")


class Frequency(Base):
    """Reusable visit-scheduling policy assigned to patients."""
    __tablename__ = "frequencies"
    __table_args__ = (
        Index('idx_frequency_type_active', 'frequency_type', 'is_active'),
        Index('idx_frequency_days_between', 'days_between_visits'),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), unique=True, nullable=False)
    description = Column(Text, nullable=True)

    # Stored as plain strings; values are validated by schemas.FrequencyType / NextDateCalculationRule
    frequency_type = Column(String(20), nullable=False, default="SIMPLE", index=True)
    next_date_calculation_rule = Column(String(30), nullable=False, default="NEXT_BUSINESS_DAY")

    # Simple frequencies
    days_between_visits = Column(Integer, nullable=True)
    visits_per_month = Column(Integer, nullable=True)

    # Complex frequencies
    interval_value = Column(Integer, nullable=True)
    interval_unit = Column(String(10), nullable=True)
    visits_per_day = Column(Integer, nullable=True)
    weekly_pattern = Column(JSON, nullable=True)   # [1, 3, 5] -> Mon/Wed/Fri (0 = Sunday)
    custom_schedule = Column(JSON, nullable=True)  # {"schedule_type": "FIXED_HOURS", "fixed_times": [...]}

    respect_business_hours = Column(Boolean, default=True, nullable=False)
    allow_weekends = Column(Boolean, default=False, nullable=False)
    allow_holidays = Column(Boolean, default=False, nullable=False)

    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    patients = relationship("Patient", back_populates="frequency")


class Holiday(Base):
    """A calendar entry for one country."""
    __tablename__ = "holidays"
    __table_args__ = (
        UniqueConstraint('date', 'name', 'country', name='uq_holiday_date_name_country'),
        Index('idx_holidays_date_country_active', 'date', 'country', 'is_active'),
        Index('idx_holidays_recurring', 'is_recurring', 'is_active'),
    )

    id = Column(Integer, primary_key=True, index=True)
    date = Column(Date, nullable=False, index=True)
    name = Column(String(150), nullable=False)
    description = Column(Text, nullable=True)

    country = Column(String(2), nullable=False, default="AR")
    type = Column(SQLAlchemyEnum(HolidayType, name='holiday_type'), nullable=False, default=HolidayType.national)
    source = Column(SQLAlchemyEnum(HolidaySource, name='holiday_source'), nullable=False, default=HolidaySource.api)

    is_recurring = Column(Boolean, default=False, nullable=False)
    recurring_day = Column(Integer, nullable=True)
    recurring_month = Column(Integer, nullable=True)

    allow_work = Column(Boolean, default=False, nullable=False)

    external_id = Column(String(50), nullable=True)
    last_sync_date = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


class Patient(Base):
    """Home-care patient. Only the scheduling-related columns are modelled here."""
    __tablename__ = "patients"
    __table_args__ = (
        Index('idx_patients_next_visit', 'next_scheduled_visit_date'),
        Index('idx_patients_last_visit', 'last_visit_date'),
    )

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String(150), nullable=False, index=True)
    frequency_id = Column(Integer, ForeignKey("frequencies.id"), nullable=True, index=True)

    last_visit_date = Column(Date, nullable=True)
    next_scheduled_visit_date = Column(Date, nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    frequency = relationship("Frequency", back_populates="patients")


class AuditLog(Base):
    """Compliance audit trail"""
    __tablename__ = "audit_logs"
    __table_args__ = (
        Index('idx_audit_user_date', 'user_id', 'timestamp'),
        Index('idx_audit_action_date', 'action', 'timestamp'),
        Index('idx_audit_resource', 'resource_type', 'resource_id'),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    username = Column(String(50), nullable=True)  # Denormalized for audit integrity
    action = Column(SQLAlchemyEnum(AuditAction, name='audit_action'), nullable=False)
    category = Column(String(50), nullable=False, default="GENERAL", index=True)
    severity = Column(String(20), default="INFO", index=True)  # INFO, WARN, ERROR
    resource_type = Column(String(50), nullable=True)
    resource_id = Column(Integer, nullable=True)
    details = Column(Text, nullable=True)
    old_values = Column(JSON, nullable=True)
    new_values = Column(JSON, nullable=True)
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    user = relationship("User", back_populates="audit_logs")
