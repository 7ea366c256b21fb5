"""
conftest.py
------------
Pytest fixtures for the cron jobs and the FastAPI app.

Goals:
- Provide a fast, isolated test database (SQLite) that does NOT touch the real Postgres.
- Hand jobs a `JobContext` with a fixed clock and fake email / sheets collaborators.
- Override the app's dependencies so API tests use the test Session and fakes.

Why set DATABASE_URL before importing the app?
- `leadpipe.db` builds its engine at import time, and the app's startup hook
  runs `create_all` on that engine. Pointing it at the same temporary SQLite
  file keeps the startup hook away from Postgres.

Fixture scopes:
- `test_engine_dbfile`: session-scoped temp file path; removed at the end.
- `test_engine`: session-scoped SQLAlchemy Engine bound to that file; creates tables once.
- `db_session`: function-scoped Session; cleans all tables between tests.
- `ctx`: function-scoped JobContext (db_session + settings + NOW + fakes).
- `client`: function-scoped TestClient with every collaborator overridden.
"""

import os
import sys
import tempfile
from datetime import datetime
from typing import Dict, List

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

# Ensure project root is on sys.path so `import leadpipe.*` works during pytest collection
ROOT_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

_fd, DB_FILE = tempfile.mkstemp(suffix=".db")
os.close(_fd)
os.environ["DATABASE_URL"] = f"sqlite:///{DB_FILE}"

from leadpipe.config import Settings, get_settings  # noqa: E402
from leadpipe.db import Base, get_db  # noqa: E402
from leadpipe.jobs.base import JobContext  # noqa: E402
from leadpipe.main import app, get_email_sender, get_sheet_source  # noqa: E402
from leadpipe.services.email import SendResult  # noqa: E402

CRON_SECRET = "test-cron-secret"
NOW = datetime(2024, 6, 15, 9, 0, 0)


class FakeEmailSender:
    """Records every message; recipients listed in `failing` get a provider error back."""

    def __init__(self):
        self.sent: List[Dict] = []
        self.failing = set()

    def send(self, from_, to, subject, html, text):
        self.sent.append({"from": from_, "to": list(to), "subject": subject, "html": html, "text": text})
        if any(r in self.failing for r in to):
            return SendResult(error="Recipient rejected")
        return SendResult(id=f"msg_{len(self.sent)}")


class FakeSheetSource:
    """Serves canned rows per spreadsheet id; ids in `broken` raise like an API failure."""

    def __init__(self):
        self.sheets: Dict[str, List[List[str]]] = {}
        self.broken = set()
        self.requests: List[tuple] = []

    def fetch_sheet_data(self, spreadsheet_id, range_expression):
        self.requests.append((spreadsheet_id, range_expression))
        if spreadsheet_id in self.broken:
            raise RuntimeError(f"Requested entity was not found: {spreadsheet_id}")
        return self.sheets.get(spreadsheet_id, [])


@pytest.fixture(scope="session")
def test_engine_dbfile():
    """
    Path of the temporary SQLite **file** shared by the test engine and the app engine.

    Cleanup:
        Attempts to remove the file at the end of the test session.
    """
    yield DB_FILE


@pytest.fixture(scope="session")
def test_engine(test_engine_dbfile):
    """
    Create a SQLAlchemy Engine bound to the temporary SQLite database file.

    - `check_same_thread=False` allows the same connection to be used across threads,
      which the TestClient may do under the hood.
    - `Base.metadata.create_all` creates tables once for the entire test session.
    """
    engine = create_engine(
        f"sqlite:///{test_engine_dbfile}",
        connect_args={"check_same_thread": False},
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    yield engine

    engine.dispose()
    try:
        os.remove(test_engine_dbfile)
    except FileNotFoundError:
        pass


@pytest.fixture(scope="function")
def db_session(test_engine):
    """
    Provide a fresh SQLAlchemy Session for each test function.

    After the test, closes the Session and deletes all rows from all tables in
    reverse dependency order so tests are isolated and order-independent.
    """
    TestingSessionLocal = sessionmaker(bind=test_engine, autocommit=False, autoflush=False)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        for tbl in reversed(Base.metadata.sorted_tables):
            session.execute(tbl.delete())
        session.commit()


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        database_url=f"sqlite:///{DB_FILE}",
        cron_secret=CRON_SECRET,
        email_from="Leadpipe <noreply@example.com>",
        dashboard_url="https://app.example.com/",
    )


@pytest.fixture
def email_sender():
    return FakeEmailSender()


@pytest.fixture
def sheet_source():
    return FakeSheetSource()


@pytest.fixture
def ctx(db_session, settings, email_sender, sheet_source):
    """JobContext pinned to NOW, wired to the test Session and the fakes."""
    return JobContext(
        db=db_session,
        settings=settings,
        now=NOW,
        email_factory=lambda: email_sender,
        sheets_factory=lambda: sheet_source,
    )


@pytest.fixture(scope="function")
def client(db_session, settings, email_sender, sheet_source):
    """
    FastAPI TestClient that uses the test Session, test settings and fakes.

    Usage in tests:
        def test_something(client, db_session):
            # Arrange: write directly with db_session
            # Act: call endpoints with client
            # Assert: verify responses and/or DB state
    """
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_email_sender] = lambda: (lambda: email_sender)
    app.dependency_overrides[get_sheet_source] = lambda: (lambda: sheet_source)
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {CRON_SECRET}"}
