"""
test_expired_timers.py
----------------------
The `disable_expired_timers` job deactivates pages whose manual countdown ended.

Pages with auto-updating timers, disabled timers, future deadlines or that are
already inactive must be left alone.
"""

from datetime import timedelta

from leadpipe.jobs.expired_timers import run_disable_expired_timers
from leadpipe.models import Company, LandingPage


def test_only_manual_expired_timers_are_disabled(ctx, db_session):
    # Arrange
    company = Company(name="Acme")
    db_session.add(company)
    db_session.commit()
    past = ctx.now - timedelta(hours=1)

    def page(title, **kwargs):
        p = LandingPage(company_id=company.id, title=title, status="published", **kwargs)
        db_session.add(p)
        return p

    expired = page("Flash sale", timer_enabled=True, timer_deadline=past)
    auto = page("Rolling promo", timer_enabled=True, timer_auto_update=True, timer_deadline=past)
    future = page("Next week", timer_enabled=True, timer_deadline=ctx.now + timedelta(days=7))
    no_timer = page("Evergreen", timer_enabled=False, timer_deadline=past)
    db_session.commit()

    # Act
    result = run_disable_expired_timers(ctx)

    # Assert
    assert result["checked"] == 1
    assert result["disabled"] == 1
    assert result["landingPages"] == [
        {"id": expired.id, "title": "Flash sale", "deadline": past.isoformat()},
    ]
    for p in (expired, auto, future, no_timer):
        db_session.refresh(p)
    assert expired.is_active is False
    assert auto.is_active is True
    assert future.is_active is True
    assert no_timer.is_active is True


def test_second_run_finds_nothing(ctx, db_session):
    company = Company(name="Acme")
    db_session.add(company)
    db_session.commit()
    db_session.add(LandingPage(company_id=company.id, title="Flash sale", timer_enabled=True,
                               timer_deadline=ctx.now - timedelta(minutes=5)))
    db_session.commit()

    run_disable_expired_timers(ctx)
    result = run_disable_expired_timers(ctx)

    assert result == {"checked": 0, "disabled": 0, "landingPages": []}
