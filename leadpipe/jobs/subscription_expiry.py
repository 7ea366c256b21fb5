"""
Subscription expiry check.

State machine, evaluated once per run:
    trial|active  --(period end within warning window)-->  notify "expiring"  (once per period end)
    trial|active|past_due --(period end passed, grace still running)--> past_due
    trial|active|past_due --(period end passed, no/elapsed grace)-----> expired + notify "expired"

The two queries use disjoint date predicates (period end in the future vs.
in the past), so a subscription is handled by at most one path per run.
NotificationSentLog keys (subscription, type, period end) make reruns no-ops.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models import Notification, NotificationSentLog, Subscription
from ..schemas import RecordDecodeError, SubscriptionRecord, decode
from .base import JobContext

logger = logging.getLogger(__name__)

EXPIRING = "subscription_expiring"
EXPIRED = "subscription_expired"
SUBSCRIPTION_LINK = "/dashboard/subscription"


def _already_sent(db: Session, sub: SubscriptionRecord, notification_type: str) -> bool:
    return db.execute(
        select(NotificationSentLog.id)
        .where(NotificationSentLog.subscription_id == sub.id)
        .where(NotificationSentLog.notification_type == notification_type)
        .where(NotificationSentLog.period_end == sub.current_period_end)
    ).first() is not None


def notify_once(db: Session, sub: SubscriptionRecord, notification_type: str, title: str, message: str,
                now: datetime) -> bool:
    """Create the notification and its ledger row unless this period was already notified."""
    if _already_sent(db, sub, notification_type):
        return False
    db.add(Notification(
        company_id=sub.company_id,
        title=title,
        message=message,
        type=notification_type,
        link=SUBSCRIPTION_LINK,
        created_at=now,
    ))
    db.add(NotificationSentLog(
        subscription_id=sub.id,
        notification_type=notification_type,
        period_end=sub.current_period_end,
        sent_at=now,
    ))
    db.commit()
    return True


def _expiring_message(sub: SubscriptionRecord, now: datetime) -> str:
    days = max(0, (sub.current_period_end - now).days)
    when = "today" if days == 0 else f"in {days} day{'s' if days != 1 else ''}"
    return (
        f"Your {sub.plan.name} subscription ends {when} "
        f"({sub.current_period_end:%Y-%m-%d}). Renew to keep your landing pages live."
    )


def _decode_or_skip(row: Subscription, counts: Dict[str, int]) -> Optional[SubscriptionRecord]:
    try:
        return decode(SubscriptionRecord, row)
    except RecordDecodeError:
        counts["invalidRecords"] += 1
        logger.exception("Skipping unreadable subscription id=%s", row.id)
        return None


def run_subscription_expiry_check(ctx: JobContext) -> Dict[str, Any]:
    db, now = ctx.db, ctx.now
    window_end = now + timedelta(days=ctx.settings.expiry_warning_days)
    counts = {"expiringNotified": 0, "movedToPastDue": 0, "expired": 0, "notificationErrors": 0,
              "invalidRecords": 0}

    expiring = db.execute(
        select(Subscription)
        .where(Subscription.status.in_(("active", "trial")))
        .where(Subscription.current_period_end > now)
        .where(Subscription.current_period_end <= window_end)
        .order_by(Subscription.current_period_end)
    ).scalars().all()

    for row in expiring:
        sub = _decode_or_skip(row, counts)
        if sub is None:
            continue
        try:
            if notify_once(db, sub, EXPIRING, "Subscription expiring soon", _expiring_message(sub, now), now):
                counts["expiringNotified"] += 1
        except Exception:
            db.rollback()
            counts["notificationErrors"] += 1
            logger.exception("Expiring notification failed for subscription=%s", sub.id)

    lapsed = db.execute(
        select(Subscription)
        .where(Subscription.status.in_(("active", "trial", "past_due")))
        .where(Subscription.current_period_end <= now)
        .order_by(Subscription.current_period_end)
    ).scalars().all()

    for row in lapsed:
        sub = _decode_or_skip(row, counts)
        if sub is None:
            continue
        if sub.grace_period_end is not None and sub.grace_period_end > now:
            if sub.status != "past_due":
                row.status = "past_due"
                db.commit()
                counts["movedToPastDue"] += 1
                logger.info("Subscription %s -> past_due (grace until %s)", sub.id, sub.grace_period_end)
            continue

        row.status = "expired"
        db.commit()
        counts["expired"] += 1
        logger.info("Subscription %s -> expired", sub.id)
        try:
            notify_once(
                db, sub, EXPIRED, "Subscription expired",
                f"Your {sub.plan.name} subscription has expired. Renew to restore access.",
                now,
            )
        except Exception:
            db.rollback()
            counts["notificationErrors"] += 1
            logger.exception("Expired notification failed for subscription=%s", sub.id)

    return counts
