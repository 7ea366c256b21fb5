# db/seed.py
"""
Populate the development DB with *realistic & correlated* tenant activity so the
daily jobs have something to chew on.

What gets generated:
- Plans (Basic / Pro / Enterprise) and companies with persona-driven activity
  (healthy / at-risk / churn-risk), so health scores spread across the bands
- Users, login audit logs, landing pages (some with countdown timers), leads
- Subscriptions whose period ends are spread around "now": some expiring this
  week, some lapsed inside a grace period, some lapsed for good
- Monthly usage rollups (4 months) that trigger growth signals for some tenants
- Queued lead notifications waiting for the next digest
"""

import argparse
import random
from dataclasses import dataclass
from datetime import date, timedelta
from pathlib import Path
from typing import List, Tuple

# --- Add the project root to sys.path so we can import the models & DB session ---
import sys
ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from leadpipe.db import Base, engine, SessionLocal
from leadpipe.models import (
    AuditLog, Company, FeatureUsage, LandingPage, Lead, LeadNotificationQueue, Subscription,
    SubscriptionPlan, UsageMetric, User, utcnow,
)
from leadpipe.services.growth import PLAN_LIMITS, month_start
from leadpipe.services.sheets import phone_hash

try:
    from faker import Faker
except ImportError:
    raise SystemExit("Install Faker: pip install faker")

fake = Faker()

PLANS = [("Basic", 50.0, 500.0), ("Pro", 250.0, 2500.0), ("Enterprise", 1000.0, None)]
FEATURES = ["ab_testing", "custom_domain", "sheets_sync", "lead_export", "countdown_timer"]
DEVICES = ["pc", "mobile", "tablet"]
USAGE_MONTHS = 4


# ----------------------------
# Persona model
# ----------------------------
@dataclass(frozen=True)
class Persona:
    users:           Tuple[int, int]      # seats
    active_share:    Tuple[float, float]  # share of users logging in within 30d
    logins_30:       Tuple[int, int]      # login events over 30d
    pages:           Tuple[int, int]
    leads_per_month: Tuple[int, int]
    lead_trend:      Tuple[float, float]  # this month vs. last month multiplier
    features:        Tuple[int, int]


PERSONAS = {
    "healthy":    Persona((3, 8), (0.6, 1.0), (25, 60), (3, 8), (300, 900), (1.1, 1.6), (3, 5)),
    "at_risk":    Persona((2, 5), (0.2, 0.5), (5, 15),  (1, 3), (50, 300),  (0.7, 1.1), (1, 3)),
    "churn_risk": Persona((1, 3), (0.0, 0.2), (0, 3),   (0, 1), (0, 40),    (0.2, 0.6), (0, 1)),
}
PERSONA_WEIGHTS = [0.5, 0.3, 0.2]


def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Seed the database with correlated tenant activity.")
    p.add_argument("--companies", type=int, default=30)
    p.add_argument("--reset", action="store_true")
    p.add_argument("--seed", type=int, default=None)
    return p.parse_args()


def reset_db() -> None:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)


def ensure_tables() -> None:
    Base.metadata.create_all(bind=engine)


def _sample_int(lo_hi: Tuple[int, int]) -> int:
    return random.randint(*lo_hi)


def _sample_float(lo_hi: Tuple[float, float]) -> float:
    return random.uniform(*lo_hi)


def _phone() -> str:
    return f"010-{random.randint(1000, 9999)}-{random.randint(1000, 9999)}"


def seed_plans(session) -> List[SubscriptionPlan]:
    plans = [SubscriptionPlan(name=n, price_monthly=m, price_yearly=y) for n, m, y in PLANS]
    session.add_all(plans)
    session.commit()
    return plans


def seed_subscription(session, company: Company, plans: List[SubscriptionPlan], label: str) -> SubscriptionPlan:
    """Spread period ends around now so every expiry path has candidates."""
    now = utcnow()
    plan = random.choices(plans, weights=[0.5, 0.35, 0.15], k=1)[0]
    cycle = random.choices(["monthly", "yearly"], weights=[0.75, 0.25], k=1)[0]
    roll = random.random()
    grace = None
    if roll < 0.15:
        end = now + timedelta(days=random.randint(1, 7))           # expiring this week
    elif roll < 0.25:
        end = now - timedelta(days=random.randint(1, 3))           # lapsed, in grace
        grace = now + timedelta(days=random.randint(1, 5))
    elif roll < 0.30 or label == "churn_risk" and roll < 0.45:
        end = now - timedelta(days=random.randint(1, 20))          # lapsed for good
    else:
        end = now + timedelta(days=random.randint(8, 300))
    status = "trial" if random.random() < 0.1 else "active"
    session.add(Subscription(
        company_id=company.id, plan_id=plan.id, status=status, billing_cycle=cycle,
        current_period_start=end - timedelta(days=365 if cycle == "yearly" else 30),
        current_period_end=end, grace_period_end=grace,
        created_at=company.created_at,
    ))
    return plan


def seed_activity(session, company: Company, persona: Persona) -> None:
    now = utcnow()
    users = [User(company_id=company.id, email=fake.company_email()) for _ in range(_sample_int(persona.users))]
    session.add_all(users)
    session.flush()

    active = users[: max(0, round(len(users) * _sample_float(persona.active_share)))]
    logs = []
    for _ in range(_sample_int(persona.logins_30) if active else 0):
        logs.append(AuditLog(
            company_id=company.id, user_id=random.choice(active).id, action="admin.login",
            created_at=now - timedelta(days=random.randint(0, 29), minutes=random.randint(0, 1439)),
        ))
    session.bulk_save_objects(logs)

    for name in random.sample(FEATURES, k=min(_sample_int(persona.features), len(FEATURES))):
        session.add(FeatureUsage(company_id=company.id, feature_name=name, usage_count=random.randint(1, 200)))


def seed_pages_and_leads(session, company: Company, persona: Persona) -> List[LandingPage]:
    now = utcnow()
    pages = []
    for _ in range(_sample_int(persona.pages)):
        timer = random.random() < 0.3
        pages.append(LandingPage(
            company_id=company.id,
            title=fake.catch_phrase(),
            status=random.choices(["published", "draft"], weights=[0.7, 0.3], k=1)[0],
            timer_enabled=timer,
            timer_auto_update=timer and random.random() < 0.4,
            timer_deadline=now + timedelta(days=random.randint(-5, 10)) if timer else None,
        ))
    session.add_all(pages)
    session.flush()

    leads = []
    for _ in range(_sample_int(persona.leads_per_month) // 4):
        phone = _phone()
        leads.append(Lead(
            company_id=company.id,
            landing_page_id=random.choice(pages).id if pages else None,
            name=fake.name(), phone=phone, phone_hash=phone_hash(phone), email=fake.email(),
            source="landing_page",
            created_at=now - timedelta(days=random.randint(0, 60), minutes=random.randint(0, 1439)),
        ))
    session.add_all(leads)
    session.flush()
    return pages


def seed_usage(session, company: Company, persona: Persona, plan: SubscriptionPlan, pages: int, users: int) -> None:
    """Monthly rollups, oldest first; the last month applies the persona's trend."""
    today = date.today()
    base = _sample_int(persona.leads_per_month)
    limit = PLAN_LIMITS[plan.name.lower()]["leads"]
    for back in range(USAGE_MONTHS - 1, -1, -1):
        leads = base if back > 0 else int(base * _sample_float(persona.lead_trend))
        if limit > 0:
            leads = min(leads, limit)
        session.add(UsageMetric(
            company_id=company.id, metric_month=month_start(today, back),
            total_leads=leads, total_users=users, total_landing_pages=pages,
        ))


def seed_digest_queue(session, company: Company) -> None:
    """A handful of fresh leads waiting for the next digest email."""
    now = utcnow()
    recipients = [fake.company_email() for _ in range(random.randint(1, 2))]
    for _ in range(random.randint(0, 4)):
        created = now - timedelta(minutes=random.randint(5, 600))
        session.add(LeadNotificationQueue(
            company_id=company.id,
            recipient_emails=recipients,
            lead_data={
                "name": fake.name(), "phone": _phone(), "email": fake.email(),
                "landing_page_title": fake.catch_phrase(), "device_type": random.choice(DEVICES),
                "created_at": created.isoformat(),
            },
            created_at=created,
        ))


def main() -> None:
    args = parse_args()
    if args.seed is not None:
        random.seed(args.seed); Faker.seed(args.seed)

    if args.reset:
        print("⚠️  Dropping & recreating tables ..."); reset_db()
    else:
        ensure_tables()

    session = SessionLocal()

    existing = session.query(Company).count()
    if existing > 0 and not args.reset:
        print(f"DB already has {existing} companies; use --reset to reseed.")
        session.close(); return

    plans = seed_plans(session)
    target = max(10, int(args.companies))
    print(f"Creating {target} companies with persona-driven activity...")
    for _ in range(target):
        label = random.choices(list(PERSONAS), weights=PERSONA_WEIGHTS, k=1)[0]
        persona = PERSONAS[label]
        company = Company(name=fake.company(), created_at=fake.date_time_between(start_date="-1y", end_date="-30d"))
        session.add(company)
        session.flush()

        plan = seed_subscription(session, company, plans, label)
        seed_activity(session, company, persona)
        pages = seed_pages_and_leads(session, company, persona)
        seed_usage(session, company, persona, plan, len(pages), session.query(User).filter_by(company_id=company.id).count())
        seed_digest_queue(session, company)
        session.commit()

    print("\n✅ Seed complete")
    print(f"Companies:      {target}")
    print(f"Subscriptions:  {session.query(Subscription).count()}")
    print(f"Users:          {session.query(User).count()}")
    print(f"Login events:   {session.query(AuditLog).count()}")
    print(f"Landing pages:  {session.query(LandingPage).count()}")
    print(f"Leads:          {session.query(Lead).count()}")
    print(f"Queued digests: {session.query(LeadNotificationQueue).count()}")
    session.close()


if __name__ == "__main__":
    main()
