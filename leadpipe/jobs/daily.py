"""
Daily task orchestrator.

Runs every job in a fixed order and folds their outcomes into one report.
A job that raises is recorded as ``status: "error"`` and the run carries on;
a job may also downgrade its own status (e.g. growth detection reports
``"partial"`` when some companies failed).

Order matters: revenue and health scores are computed after the expiry job
has settled subscription statuses, and growth detection reads the health
scores written earlier in the same run.
"""

import logging
from typing import Any, Dict, List, Tuple

from .base import Job, JobContext
from .expired_timers import run_disable_expired_timers
from .growth import run_growth_opportunities
from .health_scores import run_health_scores
from .lead_digest import run_lead_digest
from .revenue import run_revenue_calculation
from .sheets_sync import run_sheets_sync
from .subscription_expiry import run_subscription_expiry_check

logger = logging.getLogger(__name__)

JOBS: List[Tuple[str, Job]] = [
    ("subscription_expiry_check", run_subscription_expiry_check),
    ("revenue_calculation", run_revenue_calculation),
    ("health_scores", run_health_scores),
    ("sheets_sync", run_sheets_sync),
    ("growth_opportunities", run_growth_opportunities),
    ("lead_digest", run_lead_digest),
    ("disable_expired_timers", run_disable_expired_timers),
]

JOBS_BY_NAME: Dict[str, Job] = dict(JOBS)


def run_task(ctx: JobContext, name: str, job: Job) -> Dict[str, Any]:
    """Run one job, turning any exception into an error entry."""
    logger.info("Starting task %s", name)
    try:
        fields = job(ctx)
    except Exception as exc:
        ctx.db.rollback()
        logger.exception("Task %s failed", name)
        return {"task": name, "status": "error", "error": str(exc)}

    report = {"task": name, "status": "success"}
    report.update(fields)
    logger.info("Finished task %s (%s)", name, report["status"])
    return report


def run_daily_tasks(ctx: JobContext) -> Dict[str, Any]:
    tasks = [run_task(ctx, name, job) for name, job in JOBS]
    return {"timestamp": ctx.now.isoformat() + "Z", "tasksExecuted": tasks}
