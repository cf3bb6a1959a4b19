"""
Persistence for plans, companies, professionals and appointments.

SQLAlchemy Core tables plus a lazily built engine. SQLite URLs share a
single connection so an in-memory database is visible from every thread
(FastAPI runs sync routes in a threadpool).
"""
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, Optional
import logging

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from agenda.core.config import settings

logger = logging.getLogger(__name__)

metadata = MetaData()

POOL_SIZE = 10
MAX_OVERFLOW = 20
POOL_RECYCLE_SECONDS = 3600

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _build_engine(url: str) -> Engine:
    if url.startswith("sqlite"):
        return create_engine(url, poolclass=StaticPool, connect_args={"check_same_thread": False})
    return create_engine(
        url,
        poolclass=QueuePool,
        pool_size=POOL_SIZE,
        max_overflow=MAX_OVERFLOW,
        pool_recycle=POOL_RECYCLE_SECONDS,
        pool_pre_ping=True,
    )


def init_engine(database_url: Optional[str] = None) -> Engine:
    """(Re)build the engine; database_url overrides settings.DATABASE_URL."""
    global _engine, _session_factory

    url = database_url or settings.DATABASE_URL
    if not url:
        raise ValueError("DATABASE_URL is not configured")

    if _engine is not None:
        _engine.dispose()
    _engine = _build_engine(url)
    _session_factory = sessionmaker(bind=_engine, autoflush=False)
    logger.debug(f"Database engine ready ({_engine.dialect.name})")
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        init_engine()
    return _engine


def dispose_engine() -> None:
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


@contextmanager
def get_db_session() -> Iterator[Session]:
    """Session that commits on success and rolls back on any error."""
    get_engine()
    session = _session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def create_all_tables() -> None:
    metadata.create_all(bind=get_engine())


def reset_database() -> None:
    """Drop and recreate every table. Tests only."""
    engine = get_engine()
    metadata.drop_all(bind=engine)
    metadata.create_all(bind=engine)


def check_connection() -> bool:
    try:
        with get_engine().connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as exc:
        logger.warning(f"Database connection check failed: {exc.__class__.__name__}")
        return False


# Plans: permission map (JSON) plus professional headcount ceiling
plans = Table(
    'plans',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('name', String(200), nullable=False),
    Column('price_cents', Integer, nullable=False, default=0),
    Column('free_days', Integer, nullable=False, default=0),
    Column('max_professionals', Integer, nullable=True),
    # NULL means a legacy plan created before permissions existed
    Column('permissions', JSON, nullable=True),
    Column('is_active', Boolean, nullable=False, default=True),
    Column('created_at', DateTime(timezone=True), default=_utcnow, nullable=False),
    Column('updated_at', DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False),
)

# Companies (tenants)
companies = Table(
    'companies',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('name', String(200), nullable=False),
    Column('email', String(200), nullable=True),
    Column('plan_id', Integer, ForeignKey('plans.id'), nullable=True),
    Column('created_at', DateTime(timezone=True), default=_utcnow, nullable=False),
    Index('idx_companies_plan_id', 'plan_id'),
)

professionals = Table(
    'professionals',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('company_id', Integer, ForeignKey('companies.id'), nullable=False),
    Column('name', String(200), nullable=False),
    Column('email', String(200), nullable=True),
    Column('phone', String(50), nullable=True),
    Column('is_active', Boolean, nullable=False, default=True),
    Column('created_at', DateTime(timezone=True), default=_utcnow, nullable=False),
    Index('idx_professionals_company_id', 'company_id'),
)

appointments = Table(
    'appointments',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('company_id', Integer, ForeignKey('companies.id'), nullable=False),
    Column('professional_id', Integer, ForeignKey('professionals.id'), nullable=True),
    Column('client_name', String(200), nullable=False),
    Column('client_phone', String(50), nullable=True),
    Column('service_name', String(200), nullable=True),
    Column('scheduled_at', DateTime(timezone=True), nullable=False),
    Column('duration_minutes', Integer, nullable=False, default=30),
    Column('status', String(50), nullable=False, default='scheduled'),
    Column('notes', Text, nullable=True),
    Column('created_at', DateTime(timezone=True), default=_utcnow, nullable=False),
    Index('idx_appointments_company_scheduled', 'company_id', 'scheduled_at'),
)
