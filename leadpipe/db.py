# leadpipe/db.py
"""
leadpipe/db.py

Database configuration and session management for the daily operations service.

This module sets up the SQLAlchemy engine, session factory, and declarative base
for ORM models. It also defines a FastAPI dependency (`get_db`) that provides
a scoped database session to request handlers and cron jobs.

Key features:
- Uses PostgreSQL in production (connection string comes from `Settings.database_url`).
- Connection is robust to transient DB restarts (`pool_pre_ping=True`).
- Compatible with SQLAlchemy 2.0 (`future=True`).
- Each cron job commits its own unit of work; the session is shared across jobs
  within one invocation and rolled back between them on failure.
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from .config import get_settings

DATABASE_URL = get_settings().database_url

# SQLite (tests, local dev) is touched from more than one thread by the TestClient
_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

# Robust to brief DB restarts; SQLAlchemy v2-compatible
engine = create_engine(DATABASE_URL, pool_pre_ping=True, future=True, connect_args=_connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)

Base = declarative_base()


# FastAPI dependency
def get_db():
    """
    Provide a SQLAlchemy database session to FastAPI request handlers.

    Usage in a FastAPI route:
        @app.get("/api/cron/daily-tasks")
        def daily_tasks(db: Session = Depends(get_db)):
            ...

    Yields:
        Session: A SQLAlchemy session connected to the configured database.

    Ensures:
        - A session is opened when the request starts.
        - The session is closed automatically when the request ends.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
