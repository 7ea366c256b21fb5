# leadpipe/services/growth.py
"""
Growth opportunity detection (upsell / downsell risk).

Signals are derived from monthly usage rollups and the latest health scores:
- usage_limit          >= 90% of a plan limit                 (upsell)
- activity_growth      >= 30% month-over-month lead growth    (upsell)
- low_usage            >= 50% month-over-month lead decline   (downsell risk)
- under_utilization    < 30% of the lead limit for 3 months   (downsell risk)
- health_score_decline latest health score below 60           (downsell risk)

Entry point: `detect_growth_opportunities(db, now)`. It never raises for a
single company; per-company failures are collected in `errors` and flip
`success` to False.
"""

import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models import Company, GrowthOpportunity, HealthScore, Subscription, UsageMetric
from .revenue import calculate_mrr, subscription_amount

logger = logging.getLogger(__name__)

UNLIMITED = -1

PLAN_LIMITS: Dict[str, Dict[str, int]] = {
    "basic":      {"leads": 1000, "users": 3, "landing_pages": 5},
    "pro":        {"leads": 5000, "users": 10, "landing_pages": 20},
    "enterprise": {"leads": UNLIMITED, "users": UNLIMITED, "landing_pages": UNLIMITED},
}
PLAN_HIERARCHY = ["basic", "pro", "enterprise"]
# Simplified list prices used to size the MRR impact of a plan change
PLAN_PRICING: Dict[str, float] = {"basic": 50.0, "pro": 250.0, "enterprise": 1000.0}

UPSELL_SIGNALS = {"usage_limit", "feature_attempt", "activity_growth", "team_expansion"}
DOWNSELL_SIGNALS = {"low_usage", "under_utilization", "health_score_decline"}
SIGNAL_WEIGHTS: Dict[str, int] = {
    "usage_limit": 30,
    "feature_attempt": 25,
    "activity_growth": 20,
    "team_expansion": 15,
    "low_usage": 30,
    "under_utilization": 25,
    "health_score_decline": 20,
}

USAGE_LIMIT_THRESHOLD = 0.9
GROWTH_THRESHOLD = 0.3
DECLINE_THRESHOLD = -0.5
UNDER_UTILIZATION_THRESHOLD = 0.3
UNDER_UTILIZATION_MONTHS = 3
HEALTH_RISK_SCORE = 60


def get_plan_limits(plan_name: str) -> Optional[Dict[str, int]]:
    return PLAN_LIMITS.get(plan_name.lower())


def month_start(d: date, months_back: int = 0) -> date:
    """First day of the month `months_back` months before `d`."""
    index = d.year * 12 + (d.month - 1) - months_back
    return date(index // 12, index % 12 + 1, 1)


def detect_usage_limit_signals(usage: Dict[str, int], limits: Dict[str, int]) -> List[Dict[str, Any]]:
    signals = []
    for resource in ("leads", "users", "landing_pages"):
        limit = limits.get(resource, UNLIMITED)
        if limit <= 0:
            continue
        current = usage.get(resource, 0)
        pct = current / limit * 100
        if pct >= USAGE_LIMIT_THRESHOLD * 100:
            signals.append({
                "type": "usage_limit",
                "resource": resource,
                "current": current,
                "limit": limit,
                "percentage": round(pct),
                "message": f"{resource.replace('_', ' ')} at {round(pct)}% of plan limit ({current}/{limit})",
            })
    return signals


def _lead_change(current: UsageMetric, previous: Optional[UsageMetric]) -> Optional[float]:
    if previous is None or previous.total_leads <= 0:
        return None
    return (current.total_leads - previous.total_leads) / previous.total_leads


def detect_activity_growth_signals(current: UsageMetric, previous: Optional[UsageMetric]) -> List[Dict[str, Any]]:
    rate = _lead_change(current, previous)
    if rate is None or rate < GROWTH_THRESHOLD:
        return []
    return [{
        "type": "activity_growth",
        "metric": "leads",
        "growth_rate": round(rate * 100),
        "previous_value": previous.total_leads,
        "current_value": current.total_leads,
        "message": f"Leads up {round(rate * 100)}% ({previous.total_leads} -> {current.total_leads})",
    }]


def detect_low_usage_signals(current: UsageMetric, previous: Optional[UsageMetric]) -> List[Dict[str, Any]]:
    rate = _lead_change(current, previous)
    if rate is None or rate > DECLINE_THRESHOLD:
        return []
    return [{
        "type": "low_usage",
        "metric": "leads",
        "decline_rate": round(rate * 100),
        "previous_value": previous.total_leads,
        "current_value": current.total_leads,
        "message": f"Leads down {abs(round(rate * 100))}% ({previous.total_leads} -> {current.total_leads})",
    }]


def detect_under_utilization_signals(recent: List[UsageMetric], limits: Dict[str, int]) -> List[Dict[str, Any]]:
    lead_limit = limits.get("leads", UNLIMITED)
    if len(recent) < UNDER_UTILIZATION_MONTHS or lead_limit <= 0:
        return []
    low_months = sum(1 for m in recent if m.total_leads / lead_limit < UNDER_UTILIZATION_THRESHOLD)
    if low_months < UNDER_UTILIZATION_MONTHS:
        return []
    avg = sum(m.total_leads for m in recent) / len(recent)
    pct = avg / lead_limit * 100
    return [{
        "type": "under_utilization",
        "resource": "leads",
        "usage_percentage": round(pct),
        "consecutive_months": low_months,
        "message": f"{low_months} months under {round(pct)}% of the lead limit (avg {round(avg)}/{lead_limit})",
    }]


def detect_health_score_decline_signal(current_score: int, previous_score: Optional[int]) -> Optional[Dict[str, Any]]:
    if current_score >= HEALTH_RISK_SCORE:
        return None
    return {
        "type": "health_score_decline",
        "current_score": current_score,
        "previous_score": previous_score or 0,
        "decline": (previous_score - current_score) if previous_score else 0,
        "message": (
            f"Health score dropped to {current_score} (was {previous_score})"
            if previous_score else f"Health score {current_score} needs attention"
        ),
    }


def calculate_confidence_score(signals: List[Dict[str, Any]]) -> int:
    return min(100, sum(SIGNAL_WEIGHTS.get(s["type"], 0) for s in signals))


def determine_opportunity_type(signals: List[Dict[str, Any]]) -> str:
    up = sum(1 for s in signals if s["type"] in UPSELL_SIGNALS)
    down = sum(1 for s in signals if s["type"] in DOWNSELL_SIGNALS)
    return "upsell" if up > down else "downsell_risk"


def recommend_next_plan(current_plan: str, opportunity_type: str) -> Optional[str]:
    name = current_plan.lower()
    if name not in PLAN_HIERARCHY:
        return None
    step = 1 if opportunity_type == "upsell" else -1
    index = PLAN_HIERARCHY.index(name) + step
    if 0 <= index < len(PLAN_HIERARCHY):
        return PLAN_HIERARCHY[index].capitalize()
    return None


def estimate_mrr_impact(current_plan: str, recommended_plan: Optional[str], current_mrr: float) -> float:
    if not recommended_plan:
        return 0.0
    current = PLAN_PRICING.get(current_plan.lower(), current_mrr)
    target = PLAN_PRICING.get(recommended_plan.lower(), current_mrr)
    return target - current


def detect_signals_for_company(db: Session, company_id: int, plan_name: str, today: date) -> List[Dict[str, Any]]:
    limits = get_plan_limits(plan_name)
    this_month = month_start(today)

    def usage_for(month: date) -> Optional[UsageMetric]:
        return db.execute(
            select(UsageMetric)
            .where(UsageMetric.company_id == company_id)
            .where(UsageMetric.metric_month == month)
        ).scalars().first()

    current = usage_for(this_month)
    if current is None or limits is None:
        return []
    previous = usage_for(month_start(today, 1))

    signals = detect_usage_limit_signals(
        {"leads": current.total_leads, "users": current.total_users, "landing_pages": current.total_landing_pages},
        limits,
    )
    signals += detect_activity_growth_signals(current, previous)
    signals += detect_low_usage_signals(current, previous)

    recent = db.execute(
        select(UsageMetric)
        .where(UsageMetric.company_id == company_id)
        .where(UsageMetric.metric_month >= month_start(today, UNDER_UTILIZATION_MONTHS))
        .order_by(UsageMetric.metric_month.desc())
        .limit(UNDER_UTILIZATION_MONTHS)
    ).scalars().all()
    signals += detect_under_utilization_signals(list(recent), limits)

    scores = db.execute(
        select(HealthScore.overall_score)
        .where(HealthScore.company_id == company_id)
        .order_by(HealthScore.calculated_at.desc())
        .limit(2)
    ).scalars().all()
    if scores:
        decline = detect_health_score_decline_signal(scores[0], scores[1] if len(scores) > 1 else None)
        if decline:
            signals.append(decline)
    return signals


def upsert_opportunity(db: Session, now: datetime, **fields) -> bool:
    """Update the active opportunity of the same type, or insert one. Returns True when inserted."""
    existing = db.execute(
        select(GrowthOpportunity)
        .where(GrowthOpportunity.company_id == fields["company_id"])
        .where(GrowthOpportunity.opportunity_type == fields["opportunity_type"])
        .where(GrowthOpportunity.status == "active")
    ).scalars().first()
    if existing is not None:
        for key, value in fields.items():
            setattr(existing, key, value)
        existing.updated_at = now
        return False
    db.add(GrowthOpportunity(status="active", detected_at=now, **fields))
    return True


def dismiss_existing_opportunities(db: Session, company_id: int, now: datetime) -> int:
    active = db.execute(
        select(GrowthOpportunity)
        .where(GrowthOpportunity.company_id == company_id)
        .where(GrowthOpportunity.status == "active")
    ).scalars().all()
    for opp in active:
        opp.status = "dismissed"
        opp.resolved_at = now
        opp.notes = "Auto-dismissed: signals no longer present"
    return len(active)


def detect_growth_opportunities(db: Session, now: datetime) -> Dict[str, Any]:
    result: Dict[str, Any] = {"success": False, "detected": 0, "updated": 0, "dismissed": 0, "errors": []}

    rows = db.execute(
        select(Company, Subscription)
        .join(Subscription, Subscription.company_id == Company.id)
        .where(Subscription.status == "active")
        .order_by(Company.id, Subscription.id)
    ).all()

    seen = set()
    for company, subscription in rows:
        # First active subscription per company drives the analysis
        company_id = company.id
        if company_id in seen:
            continue
        seen.add(company_id)
        try:
            plan = subscription.plan
            signals = detect_signals_for_company(db, company.id, plan.name, now.date())
            if not signals:
                result["dismissed"] += dismiss_existing_opportunities(db, company.id, now)
                db.commit()
                continue

            opportunity_type = determine_opportunity_type(signals)
            recommended = recommend_next_plan(plan.name, opportunity_type)
            amount = subscription_amount(subscription.billing_cycle, plan.price_monthly, plan.price_yearly)
            impact = estimate_mrr_impact(plan.name, recommended, calculate_mrr(amount, subscription.billing_cycle))

            created = upsert_opportunity(
                db, now,
                company_id=company.id,
                opportunity_type=opportunity_type,
                current_plan=plan.name,
                recommended_plan=recommended,
                signals=signals,
                confidence_score=calculate_confidence_score(signals),
                estimated_additional_mrr=impact if opportunity_type == "upsell" else None,
                potential_lost_mrr=abs(impact) if opportunity_type == "downsell_risk" else None,
            )
            db.commit()
            result["detected" if created else "updated"] += 1
        except Exception as exc:
            db.rollback()
            logger.exception("Growth detection failed for company=%s", company_id)
            result["errors"].append(f"Error processing company {company_id}: {exc}")

    result["success"] = not result["errors"]
    return result
