"""Database connection and session management."""
from datetime import datetime
import pytz
from sqlalchemy import create_engine
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import sessionmaker
from coinfolio.core.config import get_settings

settings = get_settings()

LOCAL_TZ = pytz.timezone(settings.timezone)


def local_now():
    """Get the current wall-clock time in the configured timezone.

    The tzinfo is dropped so values compare cleanly with what SQLite
    hands back for DateTime columns.

    Returns:
        datetime: Naive current datetime in the configured timezone
    """
    return datetime.now(LOCAL_TZ).replace(tzinfo=None)


def build_engine(database_url: str):
    """Create an engine for the given URL."""
    return create_engine(
        database_url,
        connect_args={"check_same_thread": False} if "sqlite" in database_url else {}
    )


# Create SQLAlchemy engine
engine = build_engine(settings.database_url)

# Create SessionLocal class
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Create Base class for models
Base = declarative_base()


def get_db():
    """Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None):
    """Initialize database tables."""
    # Register mappers on Base.metadata before create_all
    from coinfolio.models import user, database  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
