"""
SQLAlchemy ORM models for the daily operations service.

Tenancy and billing:
- Company, User, SubscriptionPlan, Subscription
Notifications:
- Notification (in-app message), NotificationSentLog (per-period dedup ledger)
Metrics:
- RevenueMetric (append-only daily snapshot), HealthScore (one row per company per day)
- AuditLog, FeatureUsage, UsageMetric, GrowthOpportunity (signals read by scorers)
Leads:
- LandingPage, Lead, SheetSyncConfig, SheetSyncLog
- LeadNotificationQueue, LeadNotificationLog (digest email pipeline)

All timestamps are naive UTC.
"""

from datetime import datetime, timezone

from sqlalchemy import (
    Column, Integer, String, Float, DateTime, Date, ForeignKey, JSON, Boolean, Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .db import Base


def utcnow() -> datetime:
    """Current time as naive UTC, the convention used by every DateTime column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ---------------------------------------------------------------------------
# Tenancy & billing
# ---------------------------------------------------------------------------

class Company(Base):
    """Tenant. Only `active` companies are scored."""
    __tablename__ = "companies"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    status = Column(String, nullable=False, default="active")  # active | suspended | closed
    created_at = Column(DateTime, nullable=False, default=utcnow)

    users = relationship("User", back_populates="company", cascade="all, delete-orphan")
    subscriptions = relationship("Subscription", back_populates="company", cascade="all, delete-orphan")


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), index=True, nullable=False)
    email = Column(String, nullable=False)
    last_login_at = Column(DateTime, nullable=True)

    company = relationship("Company", back_populates="users")


class SubscriptionPlan(Base):
    """Catalog entry. A missing yearly price means 12 x monthly."""
    __tablename__ = "subscription_plans"
    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    price_monthly = Column(Float, nullable=False, default=0.0)
    price_yearly = Column(Float, nullable=True)


class Subscription(Base):
    """A company's billing relationship (`company_subscriptions`)."""
    __tablename__ = "company_subscriptions"
    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), index=True, nullable=False)
    plan_id = Column(Integer, ForeignKey("subscription_plans.id"), nullable=False)
    status = Column(String, nullable=False, default="trial")   # trial | active | past_due | expired | canceled
    billing_cycle = Column(String, nullable=False, default="monthly")  # monthly | yearly
    current_period_start = Column(DateTime, nullable=True)
    current_period_end = Column(DateTime, nullable=False)
    grace_period_end = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    company = relationship("Company", back_populates="subscriptions")
    plan = relationship("SubscriptionPlan")


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------

class Notification(Base):
    """In-app message shown to a company's users."""
    __tablename__ = "notifications"
    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), index=True, nullable=False)
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    type = Column(String, nullable=False)
    link = Column(String, nullable=True)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class NotificationSentLog(Base):
    """One row per (subscription, notification type, period end) ever notified."""
    __tablename__ = "notification_sent_log"
    __table_args__ = (
        UniqueConstraint("subscription_id", "notification_type", "period_end", name="uq_notification_sent_once"),
    )
    id = Column(Integer, primary_key=True)
    subscription_id = Column(Integer, ForeignKey("company_subscriptions.id"), index=True, nullable=False)
    notification_type = Column(String, nullable=False)
    period_end = Column(DateTime, nullable=False)
    sent_at = Column(DateTime, nullable=False, default=utcnow)


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------

class RevenueMetric(Base):
    """Point-in-time MRR/ARR snapshot; a new row per company per run."""
    __tablename__ = "revenue_metrics"
    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), index=True, nullable=False)
    mrr = Column(Float, nullable=False)
    arr = Column(Float, nullable=False)
    mrr_growth_rate = Column(Float, nullable=True)
    arr_growth_rate = Column(Float, nullable=True)
    plan_type = Column(String, nullable=True)
    billing_cycle = Column(String, nullable=True)
    calculated_at = Column(DateTime, nullable=False, default=utcnow)


class HealthScore(Base):
    """Daily health snapshot. At most one row per company per UTC day."""
    __tablename__ = "health_scores"
    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), index=True, nullable=False)
    overall_score = Column(Integer, nullable=False)
    engagement_score = Column(Integer, nullable=False)
    product_usage_score = Column(Integer, nullable=False)
    support_score = Column(Integer, nullable=False)
    payment_score = Column(Integer, nullable=False)
    health_status = Column(String, nullable=False)  # critical | at_risk | healthy | excellent
    risk_factors = Column(JSON, nullable=False, default=list)
    recommendations = Column(JSON, nullable=False, default=list)
    calculated_at = Column(DateTime, nullable=False, default=utcnow, index=True)


class AuditLog(Base):
    """User activity trail (logins and admin actions) used for engagement scoring."""
    __tablename__ = "audit_logs"
    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), index=True, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    action = Column(String, nullable=False)  # admin.login | lead.update | ...
    created_at = Column(DateTime, nullable=False, default=utcnow)


class FeatureUsage(Base):
    __tablename__ = "feature_usage"
    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), index=True, nullable=False)
    feature_name = Column(String, nullable=False)
    usage_count = Column(Integer, nullable=False, default=0)


class UsageMetric(Base):
    """Monthly usage rollup; `metric_month` is the first day of the month."""
    __tablename__ = "usage_metrics"
    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), index=True, nullable=False)
    metric_month = Column(Date, nullable=False)
    total_leads = Column(Integer, nullable=False, default=0)
    total_users = Column(Integer, nullable=False, default=0)
    total_landing_pages = Column(Integer, nullable=False, default=0)


class GrowthOpportunity(Base):
    __tablename__ = "growth_opportunities"
    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), index=True, nullable=False)
    opportunity_type = Column(String, nullable=False)  # upsell | downsell_risk
    current_plan = Column(String, nullable=False)
    recommended_plan = Column(String, nullable=True)
    signals = Column(JSON, nullable=False, default=list)
    confidence_score = Column(Integer, nullable=False, default=0)
    estimated_additional_mrr = Column(Float, nullable=True)
    potential_lost_mrr = Column(Float, nullable=True)
    status = Column(String, nullable=False, default="active")  # active | dismissed | won | lost
    detected_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=True)
    resolved_at = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)


# ---------------------------------------------------------------------------
# Landing pages & leads
# ---------------------------------------------------------------------------

class LandingPage(Base):
    __tablename__ = "landing_pages"
    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), index=True, nullable=False)
    title = Column(String, nullable=False)
    status = Column(String, nullable=False, default="draft")  # draft | published
    is_active = Column(Boolean, nullable=False, default=True)
    timer_enabled = Column(Boolean, nullable=False, default=False)
    timer_auto_update = Column(Boolean, nullable=False, default=False)
    timer_deadline = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class Lead(Base):
    """Captured prospect. `phone_hash` is sha256 of the phone's digits."""
    __tablename__ = "leads"
    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), index=True, nullable=False)
    landing_page_id = Column(Integer, ForeignKey("landing_pages.id"), nullable=True)
    name = Column(String, nullable=False)
    phone = Column(String, nullable=False)
    phone_hash = Column(String(64), index=True, nullable=False)
    email = Column(String, nullable=True)
    source = Column(String, nullable=True)
    custom_fields = Column(JSON, nullable=False, default=list)
    status = Column(String, nullable=False, default="new")
    created_at = Column(DateTime, nullable=False, default=utcnow)


class SheetSyncConfig(Base):
    """A company's Google Sheets import integration."""
    __tablename__ = "sheet_sync_configs"
    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), index=True, nullable=False)
    landing_page_id = Column(Integer, ForeignKey("landing_pages.id"), nullable=True)
    spreadsheet_id = Column(String, nullable=False)
    sheet_name = Column(String, nullable=True)
    column_mapping = Column(JSON, nullable=False)
    sync_interval_minutes = Column(Integer, nullable=True, default=60)
    last_synced_at = Column(DateTime, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)


class SheetSyncLog(Base):
    """Audit row per executed sync attempt (skips are not logged)."""
    __tablename__ = "sheet_sync_logs"
    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), index=True, nullable=False)
    spreadsheet_id = Column(String, nullable=False)
    sheet_name = Column(String, nullable=True)
    imported_count = Column(Integer, nullable=False, default=0)
    total_rows = Column(Integer, nullable=True)
    duplicates_skipped = Column(Integer, nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class LeadNotificationQueue(Base):
    """New-lead alert waiting for the next digest email."""
    __tablename__ = "lead_notification_queue"
    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), index=True, nullable=False)
    lead_id = Column(Integer, ForeignKey("leads.id"), nullable=True)
    recipient_emails = Column(JSON, nullable=False, default=list)
    lead_data = Column(JSON, nullable=False, default=dict)
    sent = Column(Boolean, nullable=False, default=False, index=True)
    sent_at = Column(DateTime, nullable=True)
    retry_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class LeadNotificationLog(Base):
    """One row per (queued notification, recipient) delivery attempt."""
    __tablename__ = "lead_notification_logs"
    id = Column(Integer, primary_key=True)
    notification_queue_id = Column(Integer, ForeignKey("lead_notification_queue.id"), index=True, nullable=False)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False)
    lead_id = Column(Integer, ForeignKey("leads.id"), nullable=True)
    recipient_email = Column(String, nullable=False)
    sent_at = Column(DateTime, nullable=False, default=utcnow)
    success = Column(Boolean, nullable=False)
    error_message = Column(Text, nullable=True)
    email_provider = Column(String, nullable=False, default="resend")
