"""
test_health_unit.py
-------------------
Unit tests for the health scoring utilities in `services.health`.

Goals:
- Validate the recency step function and the per-component caps (0..100).
- Verify the "no evidence" cases (no users, no subscription) score as documented.
- Check the weighted aggregator and the status bands.
- Confirm risk factors / recommendations are attached to the right component.

These tests focus on pure functions (no I/O), so failures indicate logic issues,
not infrastructure problems.
"""

import pytest

from leadpipe.services.health import (
    HealthSignals,
    WEIGHTS,
    determine_health_status,
    score_engagement,
    score_payment,
    score_product_usage,
    score_recency,
    score_signals,
    score_support,
    weighted_score,
)


def _risk_types(component):
    return [r["type"] for r in component.risk_factors]


def test_recency_step_function():
    """
    Recency points drop in steps as the last activity gets older.
    Never active -> 0.
    """
    assert score_recency(None) == 0
    assert score_recency(0) == 25
    assert score_recency(1) == 20
    assert score_recency(2) == 15
    assert score_recency(7) == 10
    assert score_recency(14) == 5
    assert score_recency(15) == 0


def test_engagement_without_users_is_critical_zero():
    """
    A company with no users cannot be assessed: score 0 and a critical risk.
    """
    out = score_engagement(HealthSignals(total_users=0))
    assert out.score == 0
    assert _risk_types(out) == ["no_users"]
    assert out.risk_factors[0]["severity"] == "critical"


def test_engagement_caps_at_100_for_fully_active_company():
    """
    All users active, a login every day of the week, activity today:
    40 (active share cap) + 35 (login cap) + 25 (recency) = 100, no risks.
    """
    out = score_engagement(HealthSignals(total_users=4, active_users_30d=4, logins_7d=7, days_since_last_activity=0))
    assert out.score == 100
    assert out.risk_factors == []


def test_engagement_flags_inactivity_and_rare_logins():
    """
    Half the users active, no logins this week, never any activity:
    only the active-share part scores (50% * 0.4 = 20).
    """
    out = score_engagement(HealthSignals(total_users=4, active_users_30d=2, logins_7d=0))
    assert out.score == 20
    types = _risk_types(out)
    assert "inactive_company" in types
    assert "low_login_frequency" in types
    assert "low_active_users" not in types


def test_product_usage_caps_each_part():
    """
    Every product-usage part hits its cap: 30 + 10 + 40 + 10 + 10 = 100.
    """
    out = score_product_usage(HealthSignals(
        total_landing_pages=10, published_landing_pages=5, total_leads=99, leads_30d=20, features_used=5,
    ))
    assert out.score == 100
    assert out.risk_factors == []


def test_product_usage_empty_company_has_core_risks():
    out = score_product_usage(HealthSignals())
    assert out.score == 0
    assert set(_risk_types(out)) == {"no_landing_pages", "no_leads"}
    assert len(out.recommendations) == 2


def test_unpublished_pages_and_stale_leads_are_medium_risks():
    out = score_product_usage(HealthSignals(total_landing_pages=2, total_leads=5, leads_30d=0))
    assert set(_risk_types(out)) == {"no_active_landing_pages", "declining_leads"}


def test_support_is_full_marks():
    assert score_support(HealthSignals()).score == 100


def test_payment_scores_by_subscription_status():
    """
    Payment score follows the latest subscription status; no subscription is neutral (50).
    """
    assert score_payment(HealthSignals(subscription_status="active")).score == 100
    assert score_payment(HealthSignals(subscription_status="trial")).score == 90
    assert score_payment(HealthSignals(subscription_status="expired")).score == 0

    none = score_payment(HealthSignals())
    assert none.score == 50
    assert _risk_types(none) == ["no_subscription"]

    past_due = score_payment(HealthSignals(subscription_status="past_due"))
    assert past_due.score == 40
    assert _risk_types(past_due) == ["payment_past_due"]


def test_payment_warns_on_upcoming_renewal():
    out = score_payment(HealthSignals(subscription_status="active", days_until_renewal=3))
    assert _risk_types(out) == ["subscription_expiring"]
    assert out.recommendations[0]["action"] == "Proactive renewal outreach"


def test_status_bands():
    assert determine_health_status(100) == "excellent"
    assert determine_health_status(80) == "excellent"
    assert determine_health_status(79) == "healthy"
    assert determine_health_status(60) == "healthy"
    assert determine_health_status(59) == "at_risk"
    assert determine_health_status(40) == "at_risk"
    assert determine_health_status(39) == "critical"


def test_weighted_score_matches_weights():
    """
    Weights sum to 1; all-100 components give 100, and a zero product-usage
    score removes exactly its 30% share.
    """
    assert sum(WEIGHTS.values()) == pytest.approx(1.0)
    full = {"engagement": 100, "productUsage": 100, "support": 100, "payment": 100}
    assert weighted_score(full) == 100
    assert weighted_score({**full, "productUsage": 0}) == 70


def test_score_signals_for_empty_company():
    """
    No users, no pages, no leads, no subscription:
    0*.35 + 0*.30 + 100*.20 + 50*.15 = 27.5 -> 28, status critical.
    Risk factors from every component are merged into one list.
    """
    result = score_signals(HealthSignals())
    assert result.engagement_score == 0
    assert result.product_usage_score == 0
    assert result.support_score == 100
    assert result.payment_score == 50
    assert result.overall_score == 28
    assert result.health_status == "critical"
    types = [r["type"] for r in result.risk_factors]
    assert types[0] == "no_users"
    assert "no_subscription" in types
    assert set(result.as_row()) >= {"overall_score", "health_status", "risk_factors", "recommendations"}
