# backend/compliancedb/main.py
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import List

from alembic.config import Config
from alembic.script import ScriptDirectory
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from .database import WriteSessionLocal
from .apps.audit.router import router as audit_router
from .apps.compliance.errors import StoreUnavailable, ValidationError
from .apps.compliance.router import router as compliance_router
from .apps.exports.router import router as exports_router
from .apps.notifications.router import router as notifications_router
from .apps.reminders.router import router as reminders_router

logger = logging.getLogger(__name__)

ALEMBIC_DIR = Path(__file__).resolve().parent / "alembic"


def _allowed_origins() -> List[str]:
    """
    Parse CORS_ALLOWED_ORIGINS from env.

    Accepts comma-separated origins. If unset, defaults to local dev ports.
    """
    raw = os.getenv("CORS_ALLOWED_ORIGINS", "")
    if raw:
        origins = [origin.strip() for origin in raw.split(",") if origin.strip()]
        if origins:
            return origins
    return [
        "http://127.0.0.1:3000",
        "http://localhost:3000",
    ]


def _enforce_schema_head_sync_if_configured() -> None:
    """
    With SCHEMA_STRICT set, refuse to start unless the database is at the
    latest migration head.
    """
    if os.getenv("SCHEMA_STRICT", "0").strip().lower() not in {"1", "true", "yes", "on"}:
        return

    config = Config()
    config.set_main_option("script_location", str(ALEMBIC_DIR))
    heads = set(ScriptDirectory.from_config(config).get_heads())

    db = WriteSessionLocal()
    try:
        current = {row[0] for row in db.execute(text("SELECT version_num FROM alembic_version")).fetchall()}
    finally:
        db.close()

    if current != heads:
        raise RuntimeError(
            f"Database schema is at {sorted(current)} but migrations head is {sorted(heads)}. "
            "Run `alembic upgrade head` before starting the API."
        )
    logger.info("Schema preflight passed", extra={"heads": sorted(heads)})


@asynccontextmanager
async def lifespan(_app: FastAPI):
    _enforce_schema_head_sync_if_configured()
    yield


app = FastAPI(title="Compliance Engine API", version="1.0.0", lifespan=lifespan)
cors_origins = _allowed_origins()
allow_credentials = "*" not in cors_origins

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ValidationError)
async def validation_error_handler(_request: Request, exc: ValidationError):
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": str(exc), "field": exc.field},
    )


@app.exception_handler(StoreUnavailable)
async def store_unavailable_handler(_request: Request, exc: StoreUnavailable):
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": str(exc), "operation": exc.operation},
    )


@app.get("/", tags=["health"])
def read_root():
    return {"status": "ok", "message": "Compliance engine is running"}


@app.get("/health", tags=["health"])
def health():
    return {"status": "ok"}


app.include_router(compliance_router)
app.include_router(exports_router)
app.include_router(reminders_router)
app.include_router(notifications_router)
app.include_router(audit_router)
