"""
Implant Warranty - Database Configuration
PostgreSQL connection using SQLAlchemy
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from .config import DATABASE_URL

# Create engine
engine = create_engine(DATABASE_URL, echo=False, pool_pre_ping=True)

# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for ORM models
Base = declarative_base()


def get_db():
    """Dependency for FastAPI - yields database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory():
    """
    Dependency for work that outlives the request (background tasks).
    Each background job opens and closes its own session from this factory.
    """
    return SessionLocal


def init_db():
    """Initialize database - create all tables."""
    Base.metadata.create_all(bind=engine)
