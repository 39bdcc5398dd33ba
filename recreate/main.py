"""
ReCreate backend: app factory.

Shared resources (database handle, storage and payment providers) live on
app.state. Tests inject their own through create_app(); in production the
lifespan builds whatever was not injected from settings and disposes what it
built at shutdown.
"""
import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

# Into os.environ as well, so SDK-level variables (GOOGLE_APPLICATION_CREDENTIALS) are seen
if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv()

from recreate.api import auth, health, notifications, users, works
from recreate.core.config import Settings, settings, validate_config
from recreate.core.database import Database, get_database_url
from recreate.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    request_validation_handler,
    unhandled_exception_handler,
)
from recreate.core.logging import configure_logging
from recreate.core.middleware.request_id import RequestIdMiddleware
from recreate.core.validation import validate_env
from recreate.features.payments.provider import PaymentProvider
from recreate.features.payments.stripe_provider import StripeProvider
from recreate.features.storage.gcs_provider import GCSStorageProvider
from recreate.features.storage.provider import StorageProvider

logger = logging.getLogger("recreate")


def _build_storage(cfg: Settings) -> Optional[StorageProvider]:
    if not cfg.GCS_BUCKET:
        logger.warning("GCS_BUCKET not set; delivery endpoints will return 503")
        return None
    return GCSStorageProvider(cfg.GCS_BUCKET, project=cfg.GCS_PROJECT, timeout=cfg.STORAGE_TIMEOUT_SECONDS)


def _build_payments(cfg: Settings) -> Optional[PaymentProvider]:
    if not cfg.STRIPE_SECRET_KEY:
        logger.warning("STRIPE_SECRET_KEY not set; checkout only works for plans with a payment link")
        return None
    return StripeProvider(cfg.STRIPE_SECRET_KEY, timeout=cfg.PAYMENT_TIMEOUT_SECONDS)


@asynccontextmanager
async def lifespan(app: FastAPI):
    cfg: Settings = app.state.settings
    owned_db = None
    logger.info("Starting ReCreate backend...")

    if app.state.db is None:
        owned_db = Database(get_database_url(cfg), cfg)
        owned_db.create_all()
        app.state.db = owned_db
    if app.state.storage is None:
        app.state.storage = _build_storage(cfg)
    if app.state.payments is None:
        app.state.payments = _build_payments(cfg)

    try:
        yield
    finally:
        logger.info("Stopping ReCreate backend...")
        if owned_db is not None:
            owned_db.dispose()
            app.state.db = None


def create_app(
    settings_obj: Optional[Settings] = None,
    database: Optional[Database] = None,
    storage: Optional[StorageProvider] = None,
    payments: Optional[PaymentProvider] = None,
) -> FastAPI:
    cfg = settings_obj or settings

    configure_logging(cfg.ENV)
    validate_env(settings_obj=cfg)
    validate_config(settings_obj=cfg)

    app = FastAPI(title="ReCreate - Backend", lifespan=lifespan)
    app.state.settings = cfg
    app.state.db = database
    app.state.storage = storage
    app.state.payments = payments

    app.add_middleware(RequestIdMiddleware)

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["x-request-id"],
    )

    app.include_router(auth.router)
    app.include_router(users.router)
    app.include_router(works.router)
    app.include_router(notifications.router)
    app.include_router(health.root_router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("recreate.main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")), log_level="info")
