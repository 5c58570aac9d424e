"""
Database configuration and connection management.

This module provides:
- SQLAlchemy engine and session management
- Connection pooling with sane defaults (PostgreSQL/MySQL)
- Test database support (TEST_DATABASE_URL, SQLite friendly)
- Table definitions for every tenant-scoped entity
"""
from typing import Optional, Generator
from contextlib import contextmanager
from datetime import datetime, timezone
from uuid import uuid4
from sqlalchemy import create_engine, MetaData, Table, Column, Integer, String, DateTime, Boolean, JSON, Text, Index, ForeignKey, UniqueConstraint, text
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.sql import func
import logging
import os

from nextspark.core.config import settings


logger = logging.getLogger(__name__)

# SQLAlchemy metadata for table definitions
metadata = MetaData()

# Connection pooling configuration
POOL_SIZE = 10
MAX_OVERFLOW = 20
POOL_TIMEOUT = 30
POOL_RECYCLE = 3600  # Recycle connections after 1 hour

# Global engine and session factory
_engine = None
_SessionLocal = None


def utc_now() -> datetime:
    """Timezone-aware UTC now for SQLAlchemy defaults."""
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def new_id() -> str:
    return str(uuid4())


def get_database_url() -> Optional[str]:
    """
    Get the database URL from settings or environment.

    For testing, use TEST_DATABASE_URL if available.
    """
    test_url = os.getenv("TEST_DATABASE_URL")
    if test_url:
        return test_url

    return os.getenv("DATABASE_URL") or settings.DATABASE_URL


def init_engine(database_url: Optional[str] = None):
    """
    Initialize the SQLAlchemy engine.

    Args:
        database_url: Optional override for DATABASE_URL
    """
    global _engine, _SessionLocal

    url = database_url or get_database_url()

    if not url:
        raise ValueError(
            "DATABASE_URL is not configured. "
            "Set DATABASE_URL in environment or .env file."
        )

    if make_url(url).get_backend_name() == "sqlite":
        # SQLite: no pool sizing, allow use across TestClient threads
        _engine = create_engine(
            url,
            connect_args={"check_same_thread": False},
            echo=False,
        )
    else:
        _engine = create_engine(
            url,
            pool_size=POOL_SIZE,
            max_overflow=MAX_OVERFLOW,
            pool_timeout=POOL_TIMEOUT,
            pool_recycle=POOL_RECYCLE,
            pool_pre_ping=True,
            echo=False,  # Set to True for SQL query logging
        )

    # Create session factory
    _SessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=_engine
    )

    return _engine


def get_engine():
    """Get the current SQLAlchemy engine."""
    global _engine
    if _engine is None:
        init_engine()
    return _engine


def get_session_factory():
    """Get the session factory."""
    global _SessionLocal
    if _SessionLocal is None:
        init_engine()
    return _SessionLocal


def dialect_name() -> str:
    return get_engine().dialect.name


@contextmanager
def get_db_session():
    """
    Context manager for database sessions.

    Usage:
        with get_db_session() as session:
            session.execute(...)

    Commits on success, rolls back on error.
    """
    SessionLocal = get_session_factory()
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_db() -> Generator[Session, None, None]:
    """FastAPI-friendly DB dependency that yields a Session and closes it.

    Use this with `Depends(get_db)` in route functions to ensure the session
    lifecycle works with both sync and async endpoints under FastAPI.
    """
    SessionLocal = get_session_factory()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_all_tables():
    """
    Create all tables defined in metadata.

    This is idempotent - tables that already exist will not be recreated.
    """
    engine = get_engine()
    metadata.create_all(bind=engine)


def drop_all_tables():
    """
    Drop all tables defined in metadata.

    WARNING: This is destructive! Only use in tests or development.
    """
    engine = get_engine()
    metadata.drop_all(bind=engine)


def reset_database():
    """
    Reset the database by dropping and recreating all tables.

    WARNING: This is destructive! Only use in tests.
    """
    drop_all_tables()
    create_all_tables()


def truncate_all_tables():
    """Delete every row, children first. Works on PostgreSQL and SQLite."""
    engine = get_engine()
    with engine.begin() as conn:
        for table in reversed(metadata.sorted_tables):
            conn.execute(table.delete())


def check_connection() -> bool:
    """
    Check if database connection is available.

    Returns:
        True if connection successful, False otherwise
    """
    try:
        engine = get_engine()
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.warning("Database connection check failed: %s", e)
        return False


# ---------------------------------------------------------------------------
# Identity & tenancy
# ---------------------------------------------------------------------------

users = Table(
    'users',
    metadata,
    Column('id', String(64), primary_key=True),
    Column('email', String(255), nullable=True, unique=True),
    Column('name', Text, nullable=True),
    # System role: member | superadmin | developer
    Column('role', String(32), nullable=False, server_default='member'),
    Column('created_at', DateTime(timezone=True), default=utc_now, server_default=func.now(), nullable=False),
    Column('updated_at', DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=True),
    Index('idx_users_created_at', 'created_at'),
)

teams = Table(
    'teams',
    metadata,
    Column('id', String(36), primary_key=True, default=new_id),
    Column('name', String(255), nullable=False),
    Column('slug', String(255), nullable=False, unique=True),
    Column('description', Text, nullable=True),
    Column('owner_id', String(64), ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
    Column('avatar_url', Text, nullable=True),
    Column('settings', JSON, nullable=True),
    Column('created_at', DateTime(timezone=True), default=utc_now, server_default=func.now(), nullable=False),
    Column('updated_at', DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=True),
    Index('idx_teams_owner', 'owner_id'),
)

team_members = Table(
    'team_members',
    metadata,
    Column('id', String(36), primary_key=True, default=new_id),
    Column('team_id', String(36), ForeignKey('teams.id', ondelete='CASCADE'), nullable=False),
    Column('user_id', String(64), ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
    # owner | admin | member | viewer
    Column('role', String(32), nullable=False),
    Column('joined_at', DateTime(timezone=True), default=utc_now, server_default=func.now(), nullable=False),
    UniqueConstraint('team_id', 'user_id', name='uq_team_members_team_user'),
    Index('idx_team_members_user', 'user_id'),
)

# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------

tasks = Table(
    'tasks',
    metadata,
    Column('id', String(36), primary_key=True, default=new_id),
    Column('team_id', String(36), ForeignKey('teams.id', ondelete='CASCADE'), nullable=False),
    Column('user_id', String(64), nullable=False),
    Column('title', String(255), nullable=False),
    Column('description', Text, nullable=True),
    Column('status', String(32), nullable=False, server_default='todo'),
    Column('priority', String(32), nullable=False, server_default='medium'),
    Column('due_date', DateTime(timezone=True), nullable=True),
    Column('created_at', DateTime(timezone=True), default=utc_now, server_default=func.now(), nullable=False),
    Column('updated_at', DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=True),
    Index('idx_tasks_team_created', 'team_id', 'created_at'),
)

customers = Table(
    'customers',
    metadata,
    Column('id', String(36), primary_key=True, default=new_id),
    Column('team_id', String(36), ForeignKey('teams.id', ondelete='CASCADE'), nullable=False),
    Column('user_id', String(64), nullable=False),
    Column('name', String(255), nullable=False),
    Column('account', String(64), nullable=False, server_default='Main'),
    Column('office', String(255), nullable=False, server_default='Main'),
    Column('phone', String(64), nullable=True),
    Column('salesperson', String(255), nullable=True),
    Column('visit_days', JSON, nullable=True),
    Column('contact_days', JSON, nullable=True),
    Column('created_at', DateTime(timezone=True), default=utc_now, server_default=func.now(), nullable=False),
    Column('updated_at', DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=True),
    Index('idx_customers_team_name', 'team_id', 'name'),
)

pages = Table(
    'pages',
    metadata,
    Column('id', String(36), primary_key=True, default=new_id),
    Column('team_id', String(36), ForeignKey('teams.id', ondelete='CASCADE'), nullable=False),
    Column('user_id', String(64), nullable=False),
    Column('title', String(255), nullable=False),
    Column('slug', String(255), nullable=False),
    Column('locale', String(16), nullable=False, server_default='en'),
    # draft | published
    Column('status', String(32), nullable=False, server_default='draft'),
    Column('blocks', JSON, nullable=False),
    Column('seo_title', String(255), nullable=True),
    Column('seo_description', Text, nullable=True),
    Column('created_at', DateTime(timezone=True), default=utc_now, server_default=func.now(), nullable=False),
    Column('updated_at', DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=True),
    UniqueConstraint('team_id', 'slug', 'locale', name='uq_pages_team_slug_locale'),
)

patterns = Table(
    'patterns',
    metadata,
    Column('id', String(36), primary_key=True, default=new_id),
    Column('team_id', String(36), ForeignKey('teams.id', ondelete='CASCADE'), nullable=False),
    Column('user_id', String(64), nullable=False),
    Column('title', String(255), nullable=False),
    Column('slug', String(255), nullable=False),
    Column('description', Text, nullable=True),
    Column('status', String(32), nullable=False, server_default='draft'),
    Column('blocks', JSON, nullable=False),
    Column('created_at', DateTime(timezone=True), default=utc_now, server_default=func.now(), nullable=False),
    Column('updated_at', DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=True),
    UniqueConstraint('team_id', 'slug', name='uq_patterns_team_slug'),
)

pattern_usages = Table(
    'pattern_usages',
    metadata,
    Column('id', String(36), primary_key=True, default=new_id),
    Column('pattern_id', String(36), ForeignKey('patterns.id', ondelete='CASCADE'), nullable=False),
    Column('entity_type', String(64), nullable=False),
    Column('entity_id', String(36), nullable=False),
    Column('team_id', String(36), nullable=False),
    Column('created_at', DateTime(timezone=True), default=utc_now, server_default=func.now(), nullable=False),
    UniqueConstraint('pattern_id', 'entity_type', 'entity_id', name='uq_pattern_usages_pattern_entity'),
    Index('idx_pattern_usages_entity', 'entity_type', 'entity_id'),
)

# ---------------------------------------------------------------------------
# Billing
# ---------------------------------------------------------------------------

plans = Table(
    'plans',
    metadata,
    Column('id', String(36), primary_key=True, default=new_id),
    Column('slug', String(64), nullable=False, unique=True),
    Column('name', String(255), nullable=False),
    # free | paid | enterprise
    Column('type', String(32), nullable=False, server_default='free'),
    Column('price_monthly', Integer, nullable=False, server_default='0'),  # cents
    Column('price_yearly', Integer, nullable=False, server_default='0'),  # cents
    Column('trial_days', Integer, nullable=False, server_default='0'),
    Column('features', JSON, nullable=False),
    Column('limits', JSON, nullable=False),
    Column('sort_order', Integer, nullable=False, server_default='0'),
    Column('is_public', Boolean, nullable=False, server_default='1'),
    Column('is_default', Boolean, nullable=False, server_default='0'),
    Column('created_at', DateTime(timezone=True), default=utc_now, server_default=func.now(), nullable=False),
)

subscriptions = Table(
    'subscriptions',
    metadata,
    Column('id', String(36), primary_key=True, default=new_id),
    Column('team_id', String(36), ForeignKey('teams.id', ondelete='CASCADE'), nullable=False),
    Column('plan_id', String(36), ForeignKey('plans.id'), nullable=False),
    # trialing | active | past_due | canceled | paused | expired
    Column('status', String(32), nullable=False),
    Column('billing_interval', String(16), nullable=False, server_default='monthly'),
    Column('current_period_start', DateTime(timezone=True), nullable=True),
    Column('current_period_end', DateTime(timezone=True), nullable=True),
    Column('trial_ends_at', DateTime(timezone=True), nullable=True),
    Column('cancel_at_period_end', Boolean, nullable=False, server_default='0'),
    Column('canceled_at', DateTime(timezone=True), nullable=True),
    Column('external_subscription_id', String(255), nullable=True, unique=True),
    Column('external_customer_id', String(255), nullable=True),
    Column('created_at', DateTime(timezone=True), default=utc_now, server_default=func.now(), nullable=False),
    Column('updated_at', DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=True),
    Index('idx_subscriptions_team_status', 'team_id', 'status'),
)

usage = Table(
    'usage',
    metadata,
    Column('id', String(36), primary_key=True, default=new_id),
    Column('team_id', String(36), ForeignKey('teams.id', ondelete='CASCADE'), nullable=False),
    Column('subscription_id', String(36), ForeignKey('subscriptions.id', ondelete='CASCADE'), nullable=False),
    Column('limit_slug', String(64), nullable=False),
    Column('period_key', String(32), nullable=False),
    Column('current_value', Integer, nullable=False, server_default='0'),
    Column('updated_at', DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=True),
    UniqueConstraint('subscription_id', 'limit_slug', 'period_key', name='uq_usage_sub_limit_period'),
    Index('idx_usage_team_limit', 'team_id', 'limit_slug'),
)

# ---------------------------------------------------------------------------
# API keys & background work
# ---------------------------------------------------------------------------

api_keys = Table(
    'api_keys',
    metadata,
    Column('id', String(36), primary_key=True, default=new_id),
    Column('key_prefix', String(32), nullable=False, index=True),
    Column('key_hash', String(255), nullable=False),
    Column('name', String(255), nullable=False),
    Column('user_id', String(64), ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
    Column('team_id', String(36), ForeignKey('teams.id', ondelete='CASCADE'), nullable=True),
    Column('scopes', JSON, nullable=False),
    # active | revoked
    Column('status', String(16), nullable=False, server_default='active'),
    Column('expires_at', DateTime(timezone=True), nullable=True),
    Column('last_used_at', DateTime(timezone=True), nullable=True),
    Column('created_at', DateTime(timezone=True), default=utc_now, server_default=func.now(), nullable=False),
)

scheduled_actions = Table(
    'scheduled_actions',
    metadata,
    Column('id', String(36), primary_key=True, default=new_id),
    Column('action_type', String(128), nullable=False),
    # pending | running | completed | failed
    Column('status', String(16), nullable=False, server_default='pending'),
    Column('payload', JSON, nullable=True),
    Column('team_id', String(36), nullable=True),
    Column('scheduled_at', DateTime(timezone=True), nullable=False),
    Column('started_at', DateTime(timezone=True), nullable=True),
    Column('completed_at', DateTime(timezone=True), nullable=True),
    Column('error_message', Text, nullable=True),
    Column('attempts', Integer, nullable=False, server_default='0'),
    Column('max_retries', Integer, nullable=False, server_default='3'),
    Column('recurring_interval', String(64), nullable=True),
    # fixed | rolling, recurring actions only
    Column('recurrence_type', String(16), nullable=True),
    # At most one action per lock group runs at a time
    Column('lock_group', String(128), nullable=True),
    Column('created_at', DateTime(timezone=True), default=utc_now, server_default=func.now(), nullable=False),
    Column('updated_at', DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=True),
    Index('idx_scheduled_actions_status_time', 'status', 'scheduled_at'),
    Index('idx_scheduled_actions_lock_group', 'lock_group', 'status'),
)
