"""
test_api_integration.py
-----------------------
Integration tests for the FastAPI application using a temporary SQLite test DB.

What these tests verify (end-to-end-ish):
- Cron endpoints reject missing or wrong bearer tokens with 401 and do no work.
- `GET /api/cron/daily-tasks` returns the report shape with all seven tasks.
- Single-task endpoints run exactly one job through the same envelope.
- An unset CRON_SECRET never authorizes, not even an empty bearer token.
- Non-ASCII tokens or secrets are a plain mismatch (401), never a crash.

Notes:
- The database and app wiring for tests are configured in `tests/conftest.py`.
"""

from datetime import timedelta

import pytest
from pydantic import SecretStr
from sqlalchemy import select

from leadpipe.models import Company, LandingPage, Subscription, SubscriptionPlan, utcnow


def test_root_service_check(client):
    res = client.get("/")
    assert res.status_code == 200
    assert res.json()["status"] == "ok"


@pytest.mark.parametrize("headers", [
    {},
    {"Authorization": "Bearer wrong-secret"},
    {"Authorization": "test-cron-secret"},
])
def test_daily_tasks_requires_bearer_secret(client, db_session, headers):
    """
    Flow:
    1) Arrange: an active subscription that the expiry job would touch.
    2) Act:     call without a valid token.
    3) Assert:  401 {"error": "Unauthorized"} and nothing changed.
    """
    # Arrange
    company = Company(name="Acme")
    plan = SubscriptionPlan(name="Pro", price_monthly=100.0)
    db_session.add_all([company, plan])
    db_session.commit()
    sub = Subscription(company_id=company.id, plan_id=plan.id, status="active",
                       current_period_end=utcnow() - timedelta(days=1))
    db_session.add(sub)
    db_session.commit()

    # Act
    res = client.get("/api/cron/daily-tasks", headers=headers)

    # Assert
    assert res.status_code == 401
    assert res.json() == {"error": "Unauthorized"}
    db_session.refresh(sub)
    assert sub.status == "active"


def test_empty_secret_never_authorizes(client, settings):
    settings.cron_secret = SecretStr("")
    res = client.get("/api/cron/daily-tasks", headers={"Authorization": "Bearer "})
    assert res.status_code == 401


def test_non_ascii_token_is_rejected_not_crashed(client):
    # Header values arrive latin-1 decoded
    res = client.get("/api/cron/daily-tasks", headers={"Authorization": "Bearer café".encode("latin-1")})
    assert res.status_code == 401
    assert res.json() == {"error": "Unauthorized"}


def test_non_ascii_secret_still_rejects_wrong_token(client, settings):
    settings.cron_secret = SecretStr("clé-secrète")
    res = client.get("/api/cron/lead-digest", headers={"Authorization": "Bearer wrong-secret"})
    assert res.status_code == 401


def test_daily_tasks_report_shape(client, db_session, auth_headers):
    """
    A valid token runs every job; each entry carries its task name and status,
    and job-specific fields ride along.
    """
    # Arrange
    company = Company(name="Acme")
    plan = SubscriptionPlan(name="Pro", price_monthly=100.0)
    db_session.add_all([company, plan])
    db_session.commit()
    db_session.add(Subscription(company_id=company.id, plan_id=plan.id, status="active",
                                current_period_end=utcnow() + timedelta(days=20)))
    db_session.commit()

    # Act
    res = client.get("/api/cron/daily-tasks", headers=auth_headers)

    # Assert
    assert res.status_code == 200
    body = res.json()
    assert body["timestamp"].endswith("Z")
    tasks = body["tasksExecuted"]
    assert [t["task"] for t in tasks] == [
        "subscription_expiry_check", "revenue_calculation", "health_scores", "sheets_sync",
        "growth_opportunities", "lead_digest", "disable_expired_timers",
    ]
    assert all(t["status"] == "success" for t in tasks)
    assert all("error" not in t for t in tasks)
    by_name = {t["task"]: t for t in tasks}
    assert by_name["revenue_calculation"]["companiesProcessed"] == 1
    assert by_name["revenue_calculation"]["totalMRR"] == 100.0
    assert by_name["health_scores"]["calculated"] == 1
    assert by_name["sheets_sync"]["synced"] == 0


def test_single_task_endpoint_runs_one_job(client, db_session, auth_headers):
    company = Company(name="Acme")
    db_session.add(company)
    db_session.commit()
    page = LandingPage(company_id=company.id, title="Flash sale", timer_enabled=True,
                       timer_deadline=utcnow() - timedelta(hours=1))
    db_session.add(page)
    db_session.commit()

    res = client.get("/api/cron/disable-expired-timers", headers=auth_headers)

    assert res.status_code == 200
    (task,) = res.json()["tasksExecuted"]
    assert task["task"] == "disable_expired_timers"
    assert task["disabled"] == 1
    assert db_session.execute(select(LandingPage.is_active)).scalar() is False


def test_single_task_endpoint_requires_auth(client):
    assert client.get("/api/cron/lead-digest").status_code == 401
