"""
Database engine and session wiring for the Portfolio Tracker backend.

DATABASE_URL selects the backend (PostgreSQL in deployment, SQLite locally).
Route handlers receive a session through the get_db dependency.
"""

import logging
import os

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./portfolio_tracker.db")
SQL_ECHO = os.getenv("SQL_ECHO", "false").lower() in ("1", "true", "yes")

connect_args = {}
if DATABASE_URL.startswith("sqlite"):
    # SQLite connections are shared across FastAPI's worker threads
    connect_args = {"check_same_thread": False}

engine = create_engine(DATABASE_URL, echo=SQL_ECHO, connect_args=connect_args)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Yield a database session for the duration of one request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def is_production_like() -> bool:
    """
    Check if the current environment is production-like (production or staging).

    Tables are only auto-created at startup outside these environments;
    production schemas are managed separately.
    """
    env = os.environ.get("ENVIRONMENT", "development").lower()
    return env in ("production", "staging")
