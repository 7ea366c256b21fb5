"""
test_health_scores_job.py
-------------------------
Integration tests for the `health_scores` job against the SQLite test DB.

What these tests verify:
- Signals are gathered from users, audit logs, pages, leads and subscriptions.
- At most one HealthScore row per company per UTC day (update in place).
- A new day produces a new row.
- Non-active companies are not scored.
"""

from dataclasses import replace
from datetime import timedelta

from sqlalchemy import select

from leadpipe.jobs.health_scores import day_bounds, run_health_scores
from leadpipe.models import (
    AuditLog, Company, HealthScore, LandingPage, Lead, Subscription, SubscriptionPlan, User,
)
from leadpipe.services.health import gather_signals
from leadpipe.services.sheets import phone_hash


def _scores(db, company_id):
    return db.execute(
        select(HealthScore).where(HealthScore.company_id == company_id).order_by(HealthScore.calculated_at)
    ).scalars().all()


def test_day_bounds_cover_the_utc_day(ctx):
    start, end = day_bounds(ctx.now)
    assert start == ctx.now.replace(hour=0, minute=0, second=0, microsecond=0)
    assert end - start == timedelta(days=1)


def test_gather_signals_reads_activity_tables(ctx, db_session):
    """
    Scenario:
    - 2 users, one of them logged in twice this week
    - 1 published landing page, 1 lead captured yesterday
    - active subscription renewing in 5 days
    """
    # Arrange
    company = Company(name="Acme")
    plan = SubscriptionPlan(name="Pro", price_monthly=100.0)
    db_session.add_all([company, plan])
    db_session.commit()
    alice = User(company_id=company.id, email="alice@acme.test")
    bob = User(company_id=company.id, email="bob@acme.test")
    page = LandingPage(company_id=company.id, title="Spring promo", status="published")
    db_session.add_all([alice, bob, page])
    db_session.commit()
    for hours in (2, 30):
        db_session.add(AuditLog(company_id=company.id, user_id=alice.id, action="admin.login",
                                created_at=ctx.now - timedelta(hours=hours)))
    db_session.add(Lead(company_id=company.id, landing_page_id=page.id, name="Kim", phone="010-1234-5678",
                        phone_hash=phone_hash("010-1234-5678"), created_at=ctx.now - timedelta(days=1)))
    db_session.add(Subscription(company_id=company.id, plan_id=plan.id, status="active",
                                current_period_end=ctx.now + timedelta(days=5, hours=1)))
    db_session.commit()

    # Act
    signals = gather_signals(db_session, company.id, ctx.now)

    # Assert
    assert signals.total_users == 2
    assert signals.active_users_30d == 1
    assert signals.logins_7d == 2
    assert signals.days_since_last_activity == 0
    assert signals.total_landing_pages == 1
    assert signals.published_landing_pages == 1
    assert signals.total_leads == 1
    assert signals.leads_30d == 1
    assert signals.subscription_status == "active"
    assert signals.days_until_renewal == 5


def test_same_day_rerun_updates_single_row(ctx, db_session):
    """
    Running twice on the same UTC day keeps exactly one row; the second run updates it.
    """
    # Arrange
    company = Company(name="Acme")
    db_session.add(company)
    db_session.commit()

    # Act
    first = run_health_scores(ctx)
    later = replace(ctx, now=ctx.now + timedelta(hours=5))
    second = run_health_scores(later)

    # Assert
    assert first == {"calculated": 1, "errors": 0}
    assert second == {"calculated": 1, "errors": 0}
    rows = _scores(db_session, company.id)
    assert len(rows) == 1
    assert rows[0].calculated_at == later.now
    assert rows[0].health_status == "critical"
    assert any(r["type"] == "no_users" for r in rows[0].risk_factors)


def test_next_day_creates_new_row(ctx, db_session):
    company = Company(name="Acme")
    db_session.add(company)
    db_session.commit()

    run_health_scores(ctx)
    run_health_scores(replace(ctx, now=ctx.now + timedelta(days=1)))

    assert len(_scores(db_session, company.id)) == 2


def test_only_active_companies_are_scored(ctx, db_session):
    active = Company(name="Acme", status="active")
    suspended = Company(name="Dormant", status="suspended")
    db_session.add_all([active, suspended])
    db_session.commit()

    result = run_health_scores(ctx)

    assert result["calculated"] == 1
    assert _scores(db_session, suspended.id) == []
    assert len(_scores(db_session, active.id)) == 1
