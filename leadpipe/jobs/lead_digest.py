"""
Lead digest dispatcher.

Pending queue rows (`sent = false`, `retry_count < 3`) are grouped by company in
arrival order. Each company gets one digest per recipient address, where the
recipient list comes from the company's oldest queued row. Every attempt is
logged once per (queued row, recipient).

Delivery is best-effort: once a company has been attempted, all of its queued
rows are marked sent, whatever the per-recipient outcome. Rows that reached
the retry ceiling are never picked up again; they are counted and logged so an
alert can be hung on the `exhausted` figure. Rows whose snapshot does not
validate are skipped and reported as `invalid`; each skip costs one retry.
"""

import logging
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

from sqlalchemy import select, func, update

from ..models import Company, LeadNotificationLog, LeadNotificationQueue
from ..schemas import QueuedLeadNotification, RecordDecodeError, decode
from ..services.digest import (
    build_digest_items, digest_subject, format_local_time, render_digest_html, render_digest_text,
)
from ..services.email import PROVIDER
from .base import JobContext

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
FALLBACK_COMPANY_NAME = "Your company"


def _log_attempt(ctx: JobContext, batch: List[QueuedLeadNotification], recipient: str, success: bool,
                 error: Optional[str] = None) -> None:
    ctx.db.add_all([
        LeadNotificationLog(
            notification_queue_id=n.id,
            company_id=n.company_id,
            lead_id=n.lead_id,
            recipient_email=recipient,
            sent_at=ctx.now,
            success=success,
            error_message=error,
            email_provider=PROVIDER,
        )
        for n in batch
    ])
    ctx.db.commit()


def run_lead_digest(ctx: JobContext) -> Dict[str, Any]:
    db, now, settings = ctx.db, ctx.now, ctx.settings

    exhausted = db.execute(
        select(func.count()).select_from(LeadNotificationQueue)
        .where(LeadNotificationQueue.sent.is_(False))
        .where(LeadNotificationQueue.retry_count >= MAX_RETRIES)
    ).scalar() or 0
    if exhausted:
        logger.warning("%d queued lead notifications exhausted their retries and will not be sent", exhausted)

    rows = db.execute(
        select(LeadNotificationQueue)
        .where(LeadNotificationQueue.sent.is_(False))
        .where(LeadNotificationQueue.retry_count < MAX_RETRIES)
        .order_by(LeadNotificationQueue.created_at, LeadNotificationQueue.id)
    ).scalars().all()

    if not rows:
        return {"message": "No pending notifications", "companies": 0, "totalLeads": 0,
                "emailsSent": 0, "emailsFailed": 0, "exhausted": exhausted, "invalid": 0}

    by_company: Dict[int, List[QueuedLeadNotification]] = {}
    invalid_ids: List[int] = []
    for row in rows:
        try:
            notification = decode(QueuedLeadNotification, row)
        except RecordDecodeError:
            logger.exception("Skipping unreadable queued lead notification id=%s", row.id)
            invalid_ids.append(row.id)
            continue
        by_company.setdefault(notification.company_id, []).append(notification)

    if invalid_ids:
        # Unreadable rows burn a retry so they eventually drop out as exhausted
        db.execute(
            update(LeadNotificationQueue)
            .where(LeadNotificationQueue.id.in_(invalid_ids))
            .values(retry_count=LeadNotificationQueue.retry_count + 1)
        )
        db.commit()

    tz = ZoneInfo(settings.digest_timezone)
    generated_at = format_local_time(now, tz)
    dashboard_url = settings.leads_dashboard_url
    sent_count = 0
    failed_count = 0

    for company_id, batch in by_company.items():
        recipients = batch[0].recipient_emails
        if not recipients:
            logger.info("No recipient emails for company=%s, leaving %d rows queued", company_id, len(batch))
            continue

        company_name = db.execute(select(Company.name).where(Company.id == company_id)).scalar()
        company_name = company_name or FALLBACK_COMPANY_NAME
        items = build_digest_items([n.lead_data for n in batch], tz)
        subject = digest_subject(company_name, len(items))
        html = render_digest_html(company_name, items, dashboard_url, generated_at)
        text = render_digest_text(company_name, items, dashboard_url, generated_at)

        for recipient in recipients:
            try:
                result = ctx.email.send(settings.email_from, [recipient], subject, html, text)
                result.raise_for_error()
            except Exception as exc:
                failed_count += 1
                logger.error("Digest to %s failed for company=%s: %s", recipient, company_id, exc)
                _log_attempt(ctx, batch, recipient, success=False, error=str(exc))
                continue
            sent_count += 1
            logger.info("Digest sent to %s for company=%s (%d leads)", recipient, company_id, len(items))
            _log_attempt(ctx, batch, recipient, success=True)

        db.execute(
            update(LeadNotificationQueue)
            .where(LeadNotificationQueue.id.in_([n.id for n in batch]))
            .values(sent=True, sent_at=now)
        )
        db.commit()

    return {
        "message": "Lead digest emails sent",
        "companies": len(by_company),
        "totalLeads": sum(len(batch) for batch in by_company.values()),
        "emailsSent": sent_count,
        "emailsFailed": failed_count,
        "exhausted": exhausted,
        "invalid": len(invalid_ids),
    }
