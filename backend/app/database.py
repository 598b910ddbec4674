"""
Database configuration and session management.

This module sets up SQLAlchemy with SQLite and provides
database session management for the application. The database only
holds chat store snapshots; live state is kept in memory.
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session, declarative_base
import logging
from pathlib import Path

from app.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()

# Get the backend directory path (parent of app directory)
BACKEND_DIR = Path(__file__).parent.parent
DATA_DIR = BACKEND_DIR / "data"

# Database file path
DB_FILE = DATA_DIR / "chatchain.db"
DATABASE_URL = settings.database.DATABASE_URL or f"sqlite:///{DB_FILE}"

if not settings.database.DATABASE_URL:
    # Ensure the data directory exists
    DATA_DIR.mkdir(parents=True, exist_ok=True)

# Create SQLAlchemy engine
engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {},
    echo=settings.database.ECHO_SQL,
)

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for all models (using SQLAlchemy 2.0 style)
Base = declarative_base()


def get_db() -> Session:
    """
    Dependency function to get database session.

    Yields:
        Session: Database session that will be automatically closed.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """
    Initialise the database.

    Creates all tables defined in the models if they don't exist.
    This is called on application startup.
    """
    # Import all models here so they are registered with Base
    from app.models import snapshot  # noqa: F401

    Base.metadata.create_all(bind=engine)
    logger.info(f"Database initialised at {DATABASE_URL}")
