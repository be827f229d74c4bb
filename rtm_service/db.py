"""
SQLAlchemy database setup and session management for the connection registry.
"""
import logging
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, Session, declarative_base
from sqlalchemy.pool import StaticPool

from rtm_service.config import settings

logger = logging.getLogger(__name__)

DATABASE_URL = settings.database_url


def _engine_kwargs(database_url: str) -> dict:
    """
    Engine options per backend.
    
    SQLite connections are shared across FastAPI's threadpool workers, and
    in-memory databases must stay on one connection or every session sees an
    empty schema.
    """
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return kwargs
    return {
        "pool_size": 5,
        "max_overflow": 10,
        "pool_pre_ping": True,
        "pool_recycle": 3600,
    }


engine = create_engine(DATABASE_URL, echo=False, **_engine_kwargs(DATABASE_URL))


@event.listens_for(engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    """SQLite ignores ON DELETE CASCADE unless foreign keys are switched on per connection."""
    if not DATABASE_URL.startswith("sqlite"):
        return
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA foreign_keys=ON")
    finally:
        cursor.close()


# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for models
Base = declarative_base()

__all__ = ['engine', 'Base', 'SessionLocal', 'get_db', 'init_db', 'DATABASE_URL']


def get_db() -> Session:
    """
    Generator function to get database session.
    
    Usage as a FastAPI dependency:
        db: Session = Depends(get_db)
    
    Yields:
        Session: SQLAlchemy database session
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """
    Create the connection registry tables if they don't exist.
    """
    # Import models to ensure they're registered with Base
    from rtm_service.models.connection import Connection, Sprint  # noqa: F401
    
    Base.metadata.create_all(bind=engine)
    logger.info("Connection registry tables created or already exist")
