"""
Request-scoped access to the shared resources built by the app lifespan.
"""
from fastapi import Request

from recreate.core.config import Settings, settings
from recreate.core.database import Database
from recreate.core.errors import DependencyError
from recreate.features.payments.provider import PaymentProvider
from recreate.features.storage.provider import StorageProvider


def get_settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or settings


def get_db(request: Request) -> Database:
    db = getattr(request.app.state, "db", None)
    if db is None:
        raise DependencyError("Database is not available")
    return db


def get_storage(request: Request) -> StorageProvider:
    storage = getattr(request.app.state, "storage", None)
    if storage is None:
        raise DependencyError("Object storage is not configured")
    return storage


def get_payments(request: Request) -> PaymentProvider:
    """May be None: works with a stored payment link need no provider."""
    return getattr(request.app.state, "payments", None)
