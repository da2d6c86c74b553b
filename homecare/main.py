import logging
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from homecare.config import get_settings
from homecare.core.logging import setup_logging
from homecare.database import create_tables
from homecare.routers import frequencies, holidays, patients

settings = get_settings()

setup_logging(logging.DEBUG if settings.debug else logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.app_name, version=settings.app_version)


@app.on_event("startup")
def on_startup():
    create_tables()
    logger.info(f"{settings.app_name} {settings.app_version} started ({settings.environment})")


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "HEAD"],
    allow_headers=["*"],
)

app.include_router(holidays.router, prefix="/api/v1")
app.include_router(frequencies.router, prefix="/api/v1")
app.include_router(patients.router, prefix="/api/v1")


@app.get("/api/v1/health", tags=["Health Checks"])
async def health():
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}
