"""Revenue rollup: one appended MRR/ARR snapshot per company with active subscriptions."""

import logging
from typing import Any, Dict, List

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from ..models import RevenueMetric, Subscription
from ..schemas import SubscriptionRecord, decode
from ..services.revenue import calculate_arr, calculate_mrr, company_mrr, subscription_amount
from .base import JobContext, JobError

logger = logging.getLogger(__name__)


def run_revenue_calculation(ctx: JobContext) -> Dict[str, Any]:
    db = ctx.db
    try:
        rows = db.execute(
            select(Subscription).where(Subscription.status == "active").order_by(Subscription.id)
        ).scalars().all()
    except SQLAlchemyError as exc:
        raise JobError(f"Failed to fetch subscriptions: {exc}") from exc

    by_company: Dict[int, List[SubscriptionRecord]] = {}
    for row in rows:
        sub = decode(SubscriptionRecord, row)
        by_company.setdefault(sub.company_id, []).append(sub)

    metrics = []
    for company_id, subs in by_company.items():
        mrr = company_mrr(
            calculate_mrr(
                subscription_amount(s.billing_cycle, s.plan.price_monthly, s.plan.price_yearly),
                s.billing_cycle,
                s.status,
            )
            for s in subs
        )
        first = subs[0]
        metrics.append(RevenueMetric(
            company_id=company_id,
            mrr=mrr,
            arr=calculate_arr(mrr),
            mrr_growth_rate=None,
            arr_growth_rate=None,
            plan_type=first.plan.name,
            billing_cycle=first.billing_cycle,
            calculated_at=ctx.now,
        ))

    if metrics:
        try:
            db.add_all(metrics)
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise JobError(f"Failed to save revenue metrics: {exc}") from exc

    total_mrr = sum(m.mrr for m in metrics)
    logger.info("Revenue snapshot for %d companies, MRR=%.2f", len(metrics), total_mrr)
    return {
        "companiesProcessed": len(by_company),
        "totalMRR": total_mrr,
        "totalARR": sum(m.arr for m in metrics),
    }
