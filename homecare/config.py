# homecare/config.py - Environment-driven configuration
from dotenv import load_dotenv

load_dotenv()
from typing import List, Union
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator


def _split_csv(value: str) -> List[str]:
    return [item.strip() for item in (value or "").split(",") if item.strip()]


class Settings(BaseSettings):
    """Application settings with validation and environment variable support (Pydantic V2 Syntax)"""

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="allow",
        case_sensitive=False,
        populate_by_name=True,
    )

    # Application
    app_name: str = "Home Care Visit Scheduling"
    app_version: str = "1.0.0"
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")

    # Database
    database_url: str = Field(..., alias="DATABASE_URL")

    # Security
    secret_key: str = Field(..., alias="SECRET_KEY")
    algorithm: str = Field(default="HS256", alias="ALGORITHM")
    access_token_expire_minutes: int = Field(default=30, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    # CORS
    cors_origins: Union[str, list[str]] = Field(default=["http://localhost:3000", "http://localhost:8000"], alias="CORS_ORIGINS")

    # Holiday calendar
    holiday_country: str = Field(default="AR", alias="HOLIDAY_COUNTRY")
    holiday_api_url: str = Field(default="https://date.nager.at/api/v3/publicholidays", alias="HOLIDAY_API_URL")
    holiday_api_timeout: float = Field(default=10.0, alias="HOLIDAY_API_TIMEOUT")

    # Company holiday policy. Date lists are comma-separated ISO dates.
    allow_work_on_holidays: bool = Field(default=False, alias="ALLOW_WORK_ON_HOLIDAYS")
    custom_working_holidays: str = Field(default="", alias="CUSTOM_WORKING_HOLIDAYS")
    custom_non_working_days: str = Field(default="", alias="CUSTOM_NON_WORKING_DAYS")

    # Scheduling
    schedule_timezone: str = Field(default="America/Argentina/Buenos_Aires", alias="SCHEDULE_TIMEZONE")
    max_look_ahead_days: int = Field(default=90, alias="MAX_LOOK_AHEAD_DAYS")

    # --- Pydantic V2 Validators ---
    @field_validator("cors_origins", mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            if not v.strip():
                return ["http://localhost:3000", "http://localhost:8000"]
            return _split_csv(v)
        return v

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v):
        if not v:
            raise ValueError("DATABASE_URL is required")
        if not v.startswith(("postgresql://", "postgresql+psycopg2://", "sqlite://")):
            raise ValueError("DATABASE_URL must be a valid PostgreSQL or SQLite URL")
        return v

    @field_validator("secret_key")
    @classmethod
    def validate_key_length(cls, v):
        if not v or len(v) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters long")
        return v

    @field_validator("holiday_country")
    @classmethod
    def normalize_country(cls, v):
        return v.strip().upper()

    def company_holiday_settings(self):
        """Company-wide holiday overrides used when a request brings none."""
        from .schemas import CompanyHolidaySettings

        return CompanyHolidaySettings(
            allow_work_on_holidays=self.allow_work_on_holidays,
            custom_working_holidays=_split_csv(self.custom_working_holidays),
            custom_non_working_days=_split_csv(self.custom_non_working_days),
        )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()

# Note: Do not instantiate settings at import time to avoid failing
# on missing environment variables. Use `get_settings()` instead.
