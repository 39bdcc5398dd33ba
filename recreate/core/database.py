"""
Database configuration and connection management.

This module provides:
- A `Database` handle owning the SQLAlchemy engine and session factory
- Connection pooling with sane defaults and per-statement timeouts
- Table definitions for users, price plans, works and notifications

The handle is created by the application lifespan and passed explicitly to
services (see `recreate.api.deps`); nothing here holds a module-level engine.
"""
from typing import Optional, Iterator
from contextlib import contextmanager
import logging
import os

from sqlalchemy import create_engine, MetaData, Table, Column, Integer, String, DateTime, Boolean, Text, Index, ForeignKey, UniqueConstraint, text
from sqlalchemy.engine import Engine
from sqlalchemy.pool import QueuePool, StaticPool
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.sql import func, false

from recreate.core.config import settings, Settings

logger = logging.getLogger("recreate")

# SQLAlchemy metadata for table definitions
metadata = MetaData()

POOL_RECYCLE = 3600  # Recycle connections after 1 hour


def get_database_url(settings_obj: Optional[Settings] = None) -> Optional[str]:
    """
    Get the database URL from settings or environment.

    For testing, use TEST_DATABASE_URL if available.
    """
    test_url = os.getenv("TEST_DATABASE_URL")
    if test_url:
        return test_url

    return (settings_obj or settings).DATABASE_URL


class Database:
    """
    Shared, bounded connection resource.

    Usage:
        db = Database(url)
        with db.session() as session:
            session.execute(...)
        # committed on exit, rolled back on any exception
    """

    def __init__(self, url: str, settings_obj: Optional[Settings] = None, echo: bool = False):
        if not url:
            raise ValueError(
                "DATABASE_URL is not configured. "
                "Set DATABASE_URL in environment or .env file."
            )
        cfg = settings_obj or settings
        self.url = url

        if url.startswith("sqlite"):
            # Single shared connection so in-memory databases survive across sessions
            self.engine: Engine = create_engine(
                url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
                echo=echo,
            )
        else:
            timeout_ms = int(cfg.DB_STATEMENT_TIMEOUT_MS)
            self.engine = create_engine(
                url,
                poolclass=QueuePool,
                pool_size=cfg.DB_POOL_SIZE,
                max_overflow=cfg.DB_MAX_OVERFLOW,
                pool_timeout=cfg.DB_POOL_TIMEOUT,
                pool_recycle=POOL_RECYCLE,
                pool_pre_ping=True,
                connect_args={
                    "options": f"-c statement_timeout={timeout_ms} -c lock_timeout={timeout_ms}",
                },
                echo=echo,  # Set to True for SQL query logging
            )

        self._session_factory = sessionmaker(
            bind=self.engine,
            autoflush=False,
            expire_on_commit=False,
        )

    @contextmanager
    def session(self) -> Iterator[Session]:
        """One transaction: commit on success, rollback on any exception."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except BaseException:
            session.rollback()
            raise
        finally:
            session.close()

    def create_all(self) -> None:
        """
        Create all tables defined in metadata.

        This is idempotent - tables that already exist will not be recreated.
        """
        metadata.create_all(bind=self.engine)

    def drop_all(self) -> None:
        """
        Drop all tables defined in metadata.

        WARNING: This is destructive! Only use in tests or development.
        """
        metadata.drop_all(bind=self.engine)

    def check_connection(self) -> bool:
        """
        Check if database connection is available.

        Returns:
            True if connection successful, False otherwise
        """
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.warning(f"Database connection check failed: {e}")
            return False

    def dispose(self) -> None:
        """Drain the pool (called at shutdown)."""
        self.engine.dispose()


# Users table: identity + seller profile
users = Table(
    'app_users',
    metadata,
    Column('id', String(36), primary_key=True),
    Column('external_id', String(100), nullable=False, unique=True),
    Column('handle', String(100), nullable=False),
    Column('display_name', Text, nullable=True),
    Column('avatar_url', Text, nullable=True),
    Column('description', Text, nullable=False, server_default=''),
    Column('status', String(32), nullable=False, server_default='unavailable'),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Index('idx_app_users_created_at', 'created_at'),
)

# Handles are unique regardless of case
Index('uq_app_users_handle_lower', func.lower(users.c.handle), unique=True)

# Price plans table
price_plans = Table(
    'price_plans',
    metadata,
    Column('id', String(36), primary_key=True),
    Column('user_id', String(36), ForeignKey('app_users.id'), nullable=False),
    Column('title', String(200), nullable=False),
    Column('description', Text, nullable=False, server_default=''),
    Column('amount', Integer, nullable=False),
    Column('is_hidden', Boolean, nullable=False, server_default=false()),
    Column('payment_link', Text, nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    # Composite index for the availability probe: (user_id, is_hidden, amount)
    Index('idx_price_plans_user_visible', 'user_id', 'is_hidden', 'amount'),
)

# Works (commissions) table
works = Table(
    'works',
    metadata,
    Column('id', String(36), primary_key=True),
    Column('sequential_id', Integer, nullable=False),
    Column('requester_id', String(36), ForeignKey('app_users.id'), nullable=False),
    Column('creator_id', String(36), ForeignKey('app_users.id'), nullable=False),
    Column('plan_title', Text, nullable=False, server_default=''),
    Column('description', Text, nullable=False),
    Column('amount', Integer, nullable=False),
    Column('payment_link', Text, nullable=True),
    Column('status', String(32), nullable=False, server_default='requested'),
    Column('file_key', Text, nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('delivered_at', DateTime(timezone=True), nullable=True),
    Column('paid_at', DateTime(timezone=True), nullable=True),
    # Display numbers are per creator
    UniqueConstraint('creator_id', 'sequential_id', name='uq_works_creator_sequential'),
    Index('idx_works_creator_created', 'creator_id', 'created_at'),
    Index('idx_works_requester_created', 'requester_id', 'created_at'),
)

# Notifications table (append-only)
notifications = Table(
    'notifications',
    metadata,
    Column('id', String(36), primary_key=True),
    Column('user_id', String(36), ForeignKey('app_users.id'), nullable=False),
    Column('work_id', String(36), ForeignKey('works.id'), nullable=False),
    Column('type', String(32), nullable=False),
    Column('message', Text, nullable=False),
    Column('is_read', Boolean, nullable=False, server_default=false()),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('read_at', DateTime(timezone=True), nullable=True),
    Index('idx_notifications_user_read', 'user_id', 'is_read'),
    Index('idx_notifications_user_created', 'user_id', 'created_at'),
)
