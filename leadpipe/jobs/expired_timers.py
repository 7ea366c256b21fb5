"""Deactivate landing pages whose manually set countdown deadline has passed."""

import logging
from typing import Any, Dict

from sqlalchemy import select, update

from ..models import LandingPage
from .base import JobContext

logger = logging.getLogger(__name__)


def run_disable_expired_timers(ctx: JobContext) -> Dict[str, Any]:
    db, now = ctx.db, ctx.now
    # Auto-updating timers roll their own deadline forward; leave them alone
    expired = db.execute(
        select(LandingPage.id, LandingPage.title, LandingPage.timer_deadline)
        .where(LandingPage.timer_enabled.is_(True))
        .where(LandingPage.timer_auto_update.is_(False))
        .where(LandingPage.is_active.is_(True))
        .where(LandingPage.timer_deadline < now)
    ).all()

    if expired:
        db.execute(
            update(LandingPage)
            .where(LandingPage.id.in_([page.id for page in expired]))
            .values(is_active=False)
        )
        db.commit()
        logger.info("Disabled %d landing pages with expired timers", len(expired))

    return {
        "checked": len(expired),
        "disabled": len(expired),
        "landingPages": [
            {"id": page.id, "title": page.title, "deadline": page.timer_deadline.isoformat()}
            for page in expired
        ],
    }
