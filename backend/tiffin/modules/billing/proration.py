"""Pro-rata credit for the unused part of a subscription period.

Credit is never paid out as cash; it is only deducted from the price of
the next subscription the user buys (upgrade, meal upgrade or renewal).
"""

import calendar
import math
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_FLOOR
from typing import Any

from tiffin.modules.billing.models import PlanDuration

ONE_DAY = timedelta(days=1)


def _ceil_days(delta: timedelta) -> int:
    return math.ceil(delta / ONE_DAY)


def credit_basis(subscription: Any) -> Decimal:
    """Cash the credit is computed from.

    The cash actually paid, capped by the current ``plan_value`` snapshot
    so that a downgraded meal type cannot carry the old, higher value.
    """
    paid = Decimal(subscription.amount_paid or 0)
    plan_value = Decimal(subscription.plan_value or 0)
    if plan_value > 0:
        return min(paid, plan_value)
    return paid


def remaining_days(subscription: Any, now: datetime) -> tuple[int, int]:
    """Return (remaining_days, total_days) of the subscription at ``now``."""
    total_days = max(1, _ceil_days(subscription.end_date - subscription.start_date))
    used_days = max(0, _ceil_days(now - subscription.start_date))
    return max(0, total_days - used_days), total_days


def credit(subscription: Any, now: datetime) -> Decimal:
    """Whole-rupee credit for the days left in the subscription.

    ``floor(basis * remaining_days / total_days)``; zero once ``now`` is on
    or past the end date.
    """
    remaining, total = remaining_days(subscription, now)
    if remaining <= 0:
        return Decimal("0")
    value = credit_basis(subscription) * remaining / total
    return max(value.to_integral_value(rounding=ROUND_FLOOR), Decimal("0"))


def add_months(start: datetime, months: int) -> datetime:
    """Add calendar months, clamping to the last day of a shorter month."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)


def calculate_end_date(start: datetime, duration: str) -> datetime:
    """End of one billing period starting at ``start``."""
    if duration == PlanDuration.YEARLY.value:
        return add_months(start, 12)
    return add_months(start, 1)
