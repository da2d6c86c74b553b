# tests/conftest.py
import os

# Must be set before anything under homecare is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key-that-is-long-enough-for-jwt"

from datetime import date, datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from homecare import crud, models
from homecare.config import get_settings
from homecare.compliance_logger import compliance_logger
from homecare.database import Base, get_db
from homecare.services.holiday_service import HolidayService

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def create_access_token(username: str, token_type: str = "access") -> str:
    settings = get_settings()
    now = datetime.now(timezone.utc)
    claims = {
        "sub": username,
        "type": token_type,
        "iat": now,
        "exp": now + timedelta(minutes=settings.access_token_expire_minutes),
    }
    return jwt.encode(claims, settings.secret_key, algorithm=settings.algorithm)


@pytest.fixture
def db_session():
    Base.metadata.create_all(bind=engine)
    original_factory = compliance_logger.session_factory
    compliance_logger.session_factory = TestingSessionLocal
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        compliance_logger.session_factory = original_factory
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def holiday_store(db_session):
    return crud.HolidayStore(db_session)


@pytest.fixture
def holiday_service(holiday_store):
    return HolidayService(holiday_store, country="AR")


@pytest.fixture
def add_holiday(holiday_store):
    def _add(day: date, name: str = "Feriado", **fields):
        values = dict(
            date=day, name=name, country="AR",
            type=models.HolidayType.national, source=models.HolidaySource.api,
            is_recurring=False, allow_work=False, is_active=True,
        )
        values.update(fields)
        return holiday_store.create_holiday(**values)
    return _add


@pytest.fixture
def users(db_session):
    admin = models.User(username="admin", email="admin@example.com", role=models.UserRole.admin, is_active=True)
    coordinator = models.User(username="coord", email="coord@example.com", role=models.UserRole.coordinator, is_active=True)
    professional = models.User(username="nurse", email="nurse@example.com", role=models.UserRole.professional, is_active=True)
    db_session.add_all([admin, coordinator, professional])
    db_session.commit()
    return {"admin": admin, "coordinator": coordinator, "professional": professional}


@pytest.fixture
def auth_headers():
    def _headers(username: str, token_type: str = "access") -> dict:
        token = create_access_token(username, token_type)
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture
def client(db_session):
    from homecare.main import app

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()
