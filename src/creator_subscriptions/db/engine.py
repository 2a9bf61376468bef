"""
Database engine and session management
"""
import logging
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import config

logger = logging.getLogger(__name__)


def create_database_engine(database_url: str) -> Engine:
    """
    Create the SQLAlchemy engine for ``database_url``

    PostgreSQL gets a small pre-pinged pool; SQLite (dev/test only) runs
    single-connection so in-memory databases survive across sessions.
    """
    if database_url.startswith("postgresql"):
        db_engine = create_engine(
            database_url,
            pool_pre_ping=True,  # Verify connections before using
            pool_size=10,
            max_overflow=10,
            pool_recycle=900,  # Recycle connections after 15 minutes
            pool_timeout=30,
            connect_args={
                "connect_timeout": 10,
                "application_name": "creator_subscriptions",
            },
        )
        logger.info("PostgreSQL engine created")
        return db_engine

    if config.ENV in ["staging", "prod"]:
        raise RuntimeError(f"Unsupported DATABASE_URL for {config.ENV}: {database_url[:30]}...")

    engine_kwargs = {"connect_args": {"check_same_thread": False}}
    if ":memory:" in database_url:
        engine_kwargs["poolclass"] = StaticPool
    db_engine = create_engine(database_url, **engine_kwargs)

    @event.listens_for(db_engine, "connect")
    def _enable_sqlite_foreign_keys(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    logger.info("SQLite engine created (development only)")
    return db_engine


engine = create_database_engine(config.DATABASE_URL)

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """Get database session; commits on success, rolls back on error"""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"Database session error: {e}", exc_info=True)
        raise
    finally:
        db.close()


def init_db(db_engine: Engine = None) -> None:
    """Create tables directly (dev/test); production schemas come from Alembic"""
    from .base import Base
    from . import models  # noqa: F401

    Base.metadata.create_all(bind=db_engine or engine)
    logger.info("Database tables created using create_all")
