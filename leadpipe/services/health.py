# leadpipe/services/health.py
"""
Customer health score utilities.

Four sub-scores (0..100) -> weighted overall score (0..100).
Windows:
- Active users & product activity: 30d
- Login frequency: 7d
- Payment: latest subscription status, renewal within 7d

Each sub-score also yields risk factors and recommendations that are stored
next to the score for the customer success team.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from ..models import AuditLog, FeatureUsage, LandingPage, Lead, Subscription, User

WEIGHTS: Dict[str, float] = {
    "engagement":   0.35,
    "productUsage": 0.30,
    "support":      0.20,
    "payment":      0.15,
}

# Lower bound (inclusive) of each status band
HEALTH_THRESHOLDS: Dict[str, int] = {
    "excellent": 80,
    "healthy":   60,
    "at_risk":   40,
}

ACTIVE_DAYS = 30
LOGIN_WINDOW_DAYS = 7
LOGIN_ACTION = "admin.login"

PAYMENT_STATUS_SCORES: Dict[str, int] = {
    "active":   100,
    "trial":    90,
    "past_due": 40,
    "canceled": 0,
    "expired":  0,
}


@dataclass
class ComponentScore:
    score: int
    risk_factors: List[Dict[str, str]] = field(default_factory=list)
    recommendations: List[Dict[str, str]] = field(default_factory=list)

    def risk(self, type_: str, severity: str, description: str, impact: str) -> None:
        self.risk_factors.append(
            {"type": type_, "severity": severity, "description": description, "impact": impact}
        )

    def recommend(self, priority: str, action: str, rationale: str, expected_impact: str) -> None:
        self.recommendations.append(
            {"priority": priority, "action": action, "rationale": rationale, "expected_impact": expected_impact}
        )


@dataclass
class HealthSignals:
    """Raw activity counts for one company, gathered from the store."""
    total_users: int = 0
    active_users_30d: int = 0
    logins_7d: int = 0
    days_since_last_activity: Optional[int] = None
    total_landing_pages: int = 0
    published_landing_pages: int = 0
    total_leads: int = 0
    leads_30d: int = 0
    features_used: int = 0
    subscription_status: Optional[str] = None
    days_until_renewal: Optional[int] = None


@dataclass
class HealthResult:
    overall_score: int
    engagement_score: int
    product_usage_score: int
    support_score: int
    payment_score: int
    health_status: str
    risk_factors: List[Dict[str, str]]
    recommendations: List[Dict[str, str]]

    def as_row(self) -> Dict[str, Any]:
        return dict(self.__dict__)


def score_recency(days_since_last_activity: Optional[int]) -> int:
    """Step function: same day 25, <=1d 20, <=3d 15, <=7d 10, <=14d 5, older or never 0."""
    if days_since_last_activity is None:
        return 0
    for limit, points in ((0, 25), (1, 20), (3, 15), (7, 10), (14, 5)):
        if days_since_last_activity <= limit:
            return points
    return 0


def score_engagement(s: HealthSignals) -> ComponentScore:
    if s.total_users <= 0:
        out = ComponentScore(0)
        out.risk("no_users", "critical", "No users in company", "Cannot assess engagement without users")
        return out

    active_share = s.active_users_30d / s.total_users
    raw = 0.0
    raw += min(40.0, active_share * 100 * 0.4)
    raw += min(35.0, (s.logins_7d / LOGIN_WINDOW_DAYS) * 35)
    raw += score_recency(s.days_since_last_activity)
    out = ComponentScore(round(raw))

    if active_share < 0.2:
        out.risk(
            "low_active_users", "high",
            f"Only {round(active_share * 100)}% of users active in last 30 days",
            "Low user adoption and engagement",
        )
        out.recommend(
            "high", "Conduct user onboarding review and re-engagement campaign",
            "Low percentage of active users indicates poor adoption",
            "Increase active user base by 15-20%",
        )

    idle = s.days_since_last_activity if s.days_since_last_activity is not None else 999
    if idle > 7:
        out.risk(
            "inactive_company", "critical" if idle > 14 else "high",
            f"No activity for {idle} days", "High churn risk",
        )
        out.recommend(
            "high", "Immediate outreach to company admin",
            "Extended inactivity suggests abandonment",
            "Prevent churn through re-engagement",
        )

    if s.logins_7d < 3:
        out.risk(
            "low_login_frequency", "medium",
            f"Only {s.logins_7d} logins in last 7 days", "Low engagement with platform",
        )
    return out


def score_product_usage(s: HealthSignals) -> ComponentScore:
    raw = 0.0
    if s.total_landing_pages > 0:
        raw += min(30.0, s.total_landing_pages * 5)
    if s.published_landing_pages > 0:
        raw += min(10.0, s.published_landing_pages * 2)
    if s.total_leads > 0:
        raw += min(40.0, math.log10(s.total_leads + 1) * 20)
    if s.leads_30d > 0:
        raw += min(10.0, s.leads_30d * 0.5)
    if s.features_used > 0:
        raw += min(10.0, s.features_used * 2)
    out = ComponentScore(round(raw))

    if s.total_landing_pages == 0:
        out.risk("no_landing_pages", "high", "No landing pages created", "Not using core product functionality")
        out.recommend(
            "high", "Schedule onboarding call to help create first landing page",
            "Landing pages are core product value",
            "Activate product usage and demonstrate value",
        )
    elif s.published_landing_pages == 0:
        out.risk(
            "no_active_landing_pages", "medium",
            "Landing pages created but none published", "Not realizing product value",
        )
        out.recommend("medium", "Help publish first landing page", "Created pages but not activated", "Start generating leads")

    if s.total_leads == 0:
        out.risk("no_leads", "high", "No leads generated yet", "No ROI demonstrated")
        out.recommend(
            "high", "Review landing page performance and optimization",
            "No leads = no value realization",
            "Generate first leads and demonstrate ROI",
        )
    elif s.leads_30d == 0:
        out.risk("declining_leads", "medium", "No new leads in last 30 days", "Declining product value")
    return out


def score_support(s: HealthSignals) -> ComponentScore:
    # No ticket signal feeds the score yet; every company gets full marks.
    return ComponentScore(100)


def score_payment(s: HealthSignals) -> ComponentScore:
    if s.subscription_status is None:
        out = ComponentScore(50)
        out.risk("no_subscription", "medium", "No active subscription", "Limited product access")
        return out

    out = ComponentScore(PAYMENT_STATUS_SCORES.get(s.subscription_status, 50))
    if s.subscription_status == "past_due":
        out.risk("payment_past_due", "high", "Payment is past due", "High churn risk")
        out.recommend(
            "high", "Contact customer about payment issue",
            "Past due payments indicate financial issues or dissatisfaction",
            "Resolve payment and retain customer",
        )
    elif s.subscription_status in ("canceled", "expired"):
        out.risk("subscription_canceled", "critical", "Subscription has ended", "Customer churned")

    if s.days_until_renewal is not None and 0 < s.days_until_renewal <= 7:
        out.risk(
            "subscription_expiring", "medium",
            f"Subscription expires in {s.days_until_renewal} days", "Renewal risk",
        )
        out.recommend("medium", "Proactive renewal outreach", "Subscription expiring soon", "Ensure smooth renewal")
    return out


def determine_health_status(overall_score: float) -> str:
    for status, floor in HEALTH_THRESHOLDS.items():
        if overall_score >= floor:
            return status
    return "critical"


def weighted_score(components: Dict[str, float]) -> int:
    total = 0.0
    for name, w in WEIGHTS.items():
        total += w * components.get(name, 0.0)
    return round(total)


def score_signals(signals: HealthSignals) -> HealthResult:
    """Pure scoring step: signals in, full health breakdown out."""
    engagement = score_engagement(signals)
    usage = score_product_usage(signals)
    support = score_support(signals)
    payment = score_payment(signals)
    parts = (engagement, usage, support, payment)

    overall = weighted_score({
        "engagement": engagement.score,
        "productUsage": usage.score,
        "support": support.score,
        "payment": payment.score,
    })
    return HealthResult(
        overall_score=overall,
        engagement_score=engagement.score,
        product_usage_score=usage.score,
        support_score=support.score,
        payment_score=payment.score,
        health_status=determine_health_status(overall),
        risk_factors=[r for p in parts for r in p.risk_factors],
        recommendations=[r for p in parts for r in p.recommendations],
    )


def gather_signals(db: Session, company_id: int, now: datetime) -> HealthSignals:
    """Collect the activity counts `score_signals` needs for one company."""
    d30 = now - timedelta(days=ACTIVE_DAYS)
    d7 = now - timedelta(days=LOGIN_WINDOW_DAYS)

    def count(stmt) -> int:
        return db.execute(stmt).scalar() or 0

    signals = HealthSignals()
    signals.total_users = count(
        select(func.count()).select_from(User).where(User.company_id == company_id)
    )
    signals.active_users_30d = count(
        select(func.count(func.distinct(AuditLog.user_id)))
        .where(AuditLog.company_id == company_id)
        .where(AuditLog.action == LOGIN_ACTION)
        .where(AuditLog.created_at >= d30)
    )
    signals.logins_7d = count(
        select(func.count()).select_from(AuditLog)
        .where(AuditLog.company_id == company_id)
        .where(AuditLog.action == LOGIN_ACTION)
        .where(AuditLog.created_at >= d7)
    )
    last_activity = db.execute(
        select(func.max(AuditLog.created_at)).where(AuditLog.company_id == company_id)
    ).scalar()
    if last_activity is not None:
        signals.days_since_last_activity = max(0, (now - last_activity).days)

    signals.total_landing_pages = count(
        select(func.count()).select_from(LandingPage).where(LandingPage.company_id == company_id)
    )
    signals.published_landing_pages = count(
        select(func.count()).select_from(LandingPage)
        .where(LandingPage.company_id == company_id)
        .where(LandingPage.status == "published")
    )
    signals.total_leads = count(
        select(func.count()).select_from(Lead).where(Lead.company_id == company_id)
    )
    signals.leads_30d = count(
        select(func.count()).select_from(Lead)
        .where(Lead.company_id == company_id)
        .where(Lead.created_at >= d30)
    )
    signals.features_used = count(
        select(func.count()).select_from(FeatureUsage)
        .where(FeatureUsage.company_id == company_id)
        .where(FeatureUsage.usage_count > 0)
    )

    latest = db.execute(
        select(Subscription)
        .where(Subscription.company_id == company_id)
        .order_by(Subscription.created_at.desc(), Subscription.id.desc())
        .limit(1)
    ).scalar_one_or_none()
    if latest is not None:
        signals.subscription_status = latest.status
        signals.days_until_renewal = (latest.current_period_end - now).days
    return signals


def calculate_health_score(db: Session, company_id: int, now: datetime) -> HealthResult:
    return score_signals(gather_signals(db, company_id, now))
