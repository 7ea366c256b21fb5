"""
main.py
FastAPI application entrypoint for the Leadpipe daily operations service.

What this service does
----------------------
- Exposes a cron-triggered endpoint, `GET /api/cron/daily-tasks`, that runs
  the daily maintenance pipeline in a fixed order:
    * subscription_expiry_check  -> expiring / past_due / expired transitions + notices
    * revenue_calculation        -> per-company MRR / ARR snapshot
    * health_scores              -> one health score row per company per day
    * sheets_sync                -> import leads from connected Google Sheets
    * growth_opportunities       -> upsell / churn-risk detection
    * lead_digest                -> batched "new leads" emails
    * disable_expired_timers     -> deactivate pages whose countdown ended
- Exposes one endpoint per job under `/api/cron/...` for manual reruns.
- Every cron endpoint is guarded by `Authorization: Bearer <CRON_SECRET>`.

Design decisions (high level)
-----------------------------
- Tables are created on startup if they don't exist.
- Each job runs inside its own failure boundary (see `jobs/daily.py`); a
  failing job shows up as `status: "error"` in the report, it does not fail
  the request.
- External collaborators (Resend, Google Sheets) are FastAPI dependencies that
  hand out lazy factories, so a run that never sends mail never needs a key.
"""

import logging
import secrets
from typing import Callable, Optional

from fastapi import FastAPI, Depends, Header
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from .config import Settings, get_settings
from .db import Base, engine, get_db
from .jobs.base import EmailSender, Job, JobContext, SheetSource
from .jobs.daily import JOBS_BY_NAME, run_daily_tasks, run_task
from .logging_config import setup_logging
from .models import utcnow
from .schemas import DailyReport
from .services.email import ResendEmailClient
from .services.sheets import GoogleSheetsClient

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Leadpipe Daily Operations",
    description="Cron-driven billing, health, lead import and digest jobs.",
    version="0.1.0",
)

# Single-job endpoints: URL path -> task name
TASK_ROUTES = {
    "subscription-expiry": "subscription_expiry_check",
    "calculate-revenue": "revenue_calculation",
    "calculate-health-scores": "health_scores",
    "sync-sheets": "sheets_sync",
    "growth-opportunities": "growth_opportunities",
    "lead-digest": "lead_digest",
    "disable-expired-timers": "disable_expired_timers",
}


@app.on_event("startup")
def startup_event() -> None:
    """
    App lifecycle hook: run once when the server starts.

    Configures logging from settings and creates tables if they do not exist
    yet. Sample data is generated separately via `db/seed.py`.
    """
    settings = get_settings()
    setup_logging(settings.log_level, settings.structured_logging)
    Base.metadata.create_all(bind=engine)


def get_email_sender(settings: Settings = Depends(get_settings)):
    """Yield a factory for the Resend client; any client it built is closed after the request."""
    clients = []

    def factory() -> EmailSender:
        client = ResendEmailClient(
            settings.resend_api_key.get_secret_value(),
            base_url=settings.resend_base_url,
            timeout=settings.email_timeout,
        )
        clients.append(client)
        return client

    try:
        yield factory
    finally:
        for client in clients:
            client.close()


def get_sheet_source(settings: Settings = Depends(get_settings)) -> Callable[[], SheetSource]:
    """Factory for the Sheets client. Credentials are only parsed when a sync actually runs."""
    def factory() -> SheetSource:
        key = settings.google_service_account_key
        return GoogleSheetsClient(key.get_secret_value() if key else "")
    return factory


def is_authorized(authorization: Optional[str], settings: Settings) -> bool:
    secret = settings.cron_secret.get_secret_value()
    # An unset secret must never match an empty bearer token
    if not secret or not authorization:
        return False
    # str compare_digest rejects non-ASCII input, so compare bytes
    return secrets.compare_digest(authorization.encode("utf-8"), f"Bearer {secret}".encode("utf-8"))


def _unauthorized() -> JSONResponse:
    return JSONResponse(status_code=401, content={"error": "Unauthorized"})


def _run(ctx: JobContext, runner: Callable[[JobContext], dict]):
    try:
        return runner(ctx)
    except Exception as exc:
        ctx.db.rollback()
        logger.exception("Cron run failed")
        return JSONResponse(status_code=500, content={"error": "Internal server error", "message": str(exc)})


def _single(name: str, job: Job) -> Callable[[JobContext], dict]:
    def runner(ctx: JobContext) -> dict:
        return {"timestamp": ctx.now.isoformat() + "Z", "tasksExecuted": [run_task(ctx, name, job)]}
    return runner


@app.get(
    "/api/cron/daily-tasks",
    response_model=DailyReport,
    response_model_exclude_none=True,
    tags=["Cron"],
)
def daily_tasks(
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    email_factory: Callable[[], EmailSender] = Depends(get_email_sender),
    sheets_factory: Callable[[], SheetSource] = Depends(get_sheet_source),
):
    """
    Run every daily job in order and report each outcome.

    Returns:
        DailyReport: { timestamp, tasksExecuted: [{task, status, ...}] }
        401 {"error": "Unauthorized"} when the bearer token does not match.
    """
    if not is_authorized(authorization, settings):
        return _unauthorized()
    ctx = JobContext(db=db, settings=settings, now=utcnow(),
                     email_factory=email_factory, sheets_factory=sheets_factory)
    return _run(ctx, run_daily_tasks)


def _register_task_route(path: str, task: str) -> None:
    job = JOBS_BY_NAME[task]

    def endpoint(
        authorization: Optional[str] = Header(None),
        db: Session = Depends(get_db),
        settings: Settings = Depends(get_settings),
        email_factory: Callable[[], EmailSender] = Depends(get_email_sender),
        sheets_factory: Callable[[], SheetSource] = Depends(get_sheet_source),
    ):
        if not is_authorized(authorization, settings):
            return _unauthorized()
        ctx = JobContext(db=db, settings=settings, now=utcnow(),
                         email_factory=email_factory, sheets_factory=sheets_factory)
        return _run(ctx, _single(task, job))

    endpoint.__name__ = task
    app.add_api_route(
        f"/api/cron/{path}",
        endpoint,
        methods=["GET"],
        response_model=DailyReport,
        response_model_exclude_none=True,
        tags=["Cron"],
        summary=f"Run {task} only",
    )


for _path, _task in TASK_ROUTES.items():
    _register_task_route(_path, _task)


@app.get("/", tags=["Meta"])
def root() -> dict:
    """
    Lightweight service check.
    """
    return {"message": "Leadpipe daily operations", "status": "ok"}
