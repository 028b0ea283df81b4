"""Property-based tests for pro-rata credit.

Credit is floor(basis * remaining_days / total_days) where the basis is
the cash paid, capped by the current plan value.
"""

from datetime import datetime, timedelta
from decimal import Decimal
import uuid

from hypothesis import given, settings, strategies as st

from tiffin.modules.billing.proration import (
    add_months,
    calculate_end_date,
    credit,
    credit_basis,
    remaining_days,
)

from conftest import make_plan, make_subscription


START = datetime(2024, 1, 1)

amount_strategy = st.integers(min_value=0, max_value=200000)
period_days_strategy = st.integers(min_value=1, max_value=366)


def subscription_for(amount_paid: int, days: int, plan_value: int = None):
    return make_subscription(
        uuid.uuid4(),
        make_plan(),
        START,
        START + timedelta(days=days),
        amount_paid=str(amount_paid),
        plan_value=str(plan_value if plan_value is not None else amount_paid),
    )


class TestProRataCredit:
    """Property tests for the credit calculation."""

    @given(
        amount_paid=amount_strategy,
        days=period_days_strategy,
        elapsed_hours=st.integers(min_value=0, max_value=400 * 24),
    )
    @settings(max_examples=200)
    def test_credit_bounded_and_whole(self, amount_paid: int, days: int, elapsed_hours: int) -> None:
        """*For any* subscription and moment, credit SHALL be a whole number in [0, paid]."""
        subscription = subscription_for(amount_paid, days)
        now = START + timedelta(hours=elapsed_hours)

        value = credit(subscription, now)

        assert Decimal("0") <= value <= Decimal(amount_paid)
        assert value == value.to_integral_value()

    @given(
        amount_paid=amount_strategy,
        days=period_days_strategy,
        first=st.integers(min_value=0, max_value=400 * 24),
        later=st.integers(min_value=0, max_value=400 * 24),
    )
    @settings(max_examples=200)
    def test_credit_never_grows_over_time(self, amount_paid: int, days: int, first: int, later: int) -> None:
        """*For any* two moments, the later one SHALL not be worth more credit."""
        subscription = subscription_for(amount_paid, days)
        earlier, after = sorted((first, later))

        assert credit(subscription, START + timedelta(hours=after)) <= credit(
            subscription, START + timedelta(hours=earlier)
        )

    @given(amount_paid=amount_strategy, days=period_days_strategy, extra=st.integers(min_value=0, max_value=1000))
    @settings(max_examples=100)
    def test_no_credit_after_end(self, amount_paid: int, days: int, extra: int) -> None:
        """*For any* moment on or after the end date, credit SHALL be zero."""
        subscription = subscription_for(amount_paid, days)
        now = subscription.end_date + timedelta(hours=extra)

        assert credit(subscription, now) == Decimal("0")

    @given(amount_paid=amount_strategy, plan_value=st.integers(min_value=1, max_value=200000))
    @settings(max_examples=100)
    def test_basis_capped_by_plan_value(self, amount_paid: int, plan_value: int) -> None:
        """*For any* paid amount and plan value, the basis SHALL be the smaller one."""
        subscription = subscription_for(amount_paid, 30, plan_value=plan_value)

        assert credit_basis(subscription) == Decimal(min(amount_paid, plan_value))

    def test_zero_plan_value_falls_back_to_paid(self) -> None:
        subscription = subscription_for(450, 30, plan_value=0)

        assert credit_basis(subscription) == Decimal("450")

    def test_half_used_month_is_worth_half(self) -> None:
        """300 paid for 30 days, 15 days used: 150 credit."""
        subscription = subscription_for(300, 30)

        assert remaining_days(subscription, START + timedelta(days=15)) == (15, 30)
        assert credit(subscription, START + timedelta(days=15)) == Decimal("150")

    def test_partial_day_counts_as_used(self) -> None:
        """An hour into the period the first day is already consumed."""
        subscription = subscription_for(300, 30)

        assert remaining_days(subscription, START + timedelta(hours=1)) == (29, 30)
        assert credit(subscription, START + timedelta(hours=1)) == Decimal("290")

    def test_credit_rounds_down(self) -> None:
        subscription = subscription_for(100, 30)

        # 100 * 29 / 30 = 96.66...
        assert credit(subscription, START + timedelta(days=1)) == Decimal("96")


class TestBillingPeriods:
    """Calendar arithmetic for period end dates."""

    def test_monthly_period(self) -> None:
        assert calculate_end_date(datetime(2024, 3, 10, 9, 30), "monthly") == datetime(2024, 4, 10, 9, 30)

    def test_yearly_period(self) -> None:
        assert calculate_end_date(datetime(2024, 3, 10), "yearly") == datetime(2025, 3, 10)

    def test_month_end_clamps(self) -> None:
        assert add_months(datetime(2024, 1, 31), 1) == datetime(2024, 2, 29)
        assert add_months(datetime(2023, 1, 31), 1) == datetime(2023, 2, 28)

    def test_year_rollover(self) -> None:
        assert add_months(datetime(2024, 12, 15), 1) == datetime(2025, 1, 15)

    def test_leap_day_yearly(self) -> None:
        assert calculate_end_date(datetime(2024, 2, 29), "yearly") == datetime(2025, 2, 28)

    @given(
        year=st.integers(min_value=2000, max_value=2100),
        month=st.integers(min_value=1, max_value=12),
        day=st.integers(min_value=1, max_value=28),
        months=st.integers(min_value=0, max_value=24),
    )
    @settings(max_examples=100)
    def test_end_after_start(self, year: int, month: int, day: int, months: int) -> None:
        """*For any* start, adding months SHALL not move backwards."""
        start = datetime(year, month, day)

        assert add_months(start, months) >= start
