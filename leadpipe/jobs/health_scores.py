"""
Daily health score persistence.

Upsert-by-day: the row for a company is looked up with a
[start of UTC day, start of next day) range on `calculated_at`; an existing
row is updated in place, otherwise a new one is inserted. There is no unique
constraint behind this, the range scan is the key.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models import Company, HealthScore
from ..services.health import HealthResult, calculate_health_score
from .base import JobContext

logger = logging.getLogger(__name__)


def day_bounds(now: datetime) -> Tuple[datetime, datetime]:
    start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)


def upsert_daily_score(db: Session, company_id: int, result: HealthResult, now: datetime) -> str:
    """Write today's score for a company. Returns "updated" or "created"."""
    start, end = day_bounds(now)
    existing = db.execute(
        select(HealthScore)
        .where(HealthScore.company_id == company_id)
        .where(HealthScore.calculated_at >= start)
        .where(HealthScore.calculated_at < end)
        .order_by(HealthScore.calculated_at.desc())
    ).scalars().first()

    if existing is not None:
        for key, value in result.as_row().items():
            setattr(existing, key, value)
        existing.calculated_at = now
        action = "updated"
    else:
        db.add(HealthScore(company_id=company_id, calculated_at=now, **result.as_row()))
        action = "created"
    db.commit()
    return action


def run_health_scores(ctx: JobContext) -> Dict[str, Any]:
    db, now = ctx.db, ctx.now
    company_ids = db.execute(
        select(Company.id).where(Company.status == "active").order_by(Company.id)
    ).scalars().all()

    results = []
    errors = []
    for company_id in company_ids:
        try:
            result = calculate_health_score(db, company_id, now)
            action = upsert_daily_score(db, company_id, result, now)
            results.append({"companyId": company_id, "action": action, "score": result.overall_score})
        except Exception as exc:
            db.rollback()
            logger.exception("Health score failed for company=%s", company_id)
            errors.append({"companyId": company_id, "error": str(exc)})

    report: Dict[str, Any] = {"calculated": len(results), "errors": len(errors)}
    if errors:
        report["errorDetails"] = errors
    return report
