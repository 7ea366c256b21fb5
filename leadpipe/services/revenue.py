# leadpipe/services/revenue.py
"""
Revenue utilities.

MRR normalization:
- monthly   -> amount
- quarterly -> amount / 3
- yearly    -> amount / 12
ARR is always MRR x 12. Only `active` subscriptions count.
"""

from typing import Dict, Iterable, Optional

MONTHS_PER_CYCLE: Dict[str, int] = {
    "monthly": 1,
    "quarterly": 3,
    "yearly": 12,
}


def subscription_amount(billing_cycle: str, price_monthly: float, price_yearly: Optional[float]) -> float:
    """Charge per billing cycle. Yearly plans without a yearly price are billed 12 x monthly."""
    if billing_cycle == "yearly":
        return price_yearly if price_yearly else price_monthly * 12
    return price_monthly


def calculate_mrr(amount: float, billing_cycle: str, status: str = "active") -> float:
    if status != "active":
        return 0.0
    months = MONTHS_PER_CYCLE.get(billing_cycle)
    if months is None:
        return 0.0
    return amount / months


def calculate_arr(mrr: float) -> float:
    return mrr * 12


def company_mrr(contributions: Iterable[float]) -> float:
    return sum(contributions, 0.0)
