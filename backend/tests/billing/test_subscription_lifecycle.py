"""Tests for the subscription lifecycle.

Covers purchase, upgrade with pro-rata credit, free switches, renewal,
cancellation, meal-type changes and expiry against in-memory repositories.
"""

from datetime import datetime, timedelta
from decimal import Decimal
import uuid

import pytest

from tiffin.core.exceptions import GatewayError, NotFoundError, PolicyViolation, ValidationError
from tiffin.modules.billing.models import SubscriptionStatus
from tiffin.modules.billing.service import SubscriptionService, normalize_addresses
from tiffin.modules.order.models import OrderStatus, OrderType

from conftest import (
    FakeOrderRepository,
    FakePlanRepository,
    FakeSubscriptionRepository,
    FakeUserRepository,
    make_plan,
    make_subscription,
)


START = datetime(2024, 1, 1)
HALFWAY = datetime(2024, 1, 16)


def build_service(session, gateway, plans, subscriptions=()):
    service = SubscriptionService(session, gateway)
    service.plan_repo = FakePlanRepository(plans)
    service.subscription_repo = FakeSubscriptionRepository(list(subscriptions))
    service.order_repo = FakeOrderRepository()
    service.user_repo = FakeUserRepository()
    return service


@pytest.fixture
def basic():
    return make_plan("Basic", "300")


@pytest.fixture
def premium():
    return make_plan("Premium", "450")


class TestUpgradeWithCredit:
    """Upgrading credits the unused half of a 300 rupee month."""

    @pytest.mark.asyncio
    async def test_quote_deducts_credit(self, session, gateway, user_id, basic, premium):
        current = make_subscription(user_id, basic, START, datetime(2024, 1, 31))
        service = build_service(session, gateway, [basic, premium], [current])

        quote = await service.quote(user_id, premium.id, "both", HALFWAY)

        assert quote.price == Decimal("450")
        assert quote.credit == Decimal("150")
        assert quote.payable == Decimal("300")
        assert quote.current is current

    @pytest.mark.asyncio
    async def test_init_creates_gateway_order_for_payable(self, session, gateway, user_id, basic, premium):
        current = make_subscription(user_id, basic, START, datetime(2024, 1, 31))
        service = build_service(session, gateway, [basic, premium], [current])

        checkout = await service.init_subscribe(user_id, premium.id, "both", now=HALFWAY)

        assert not checkout.free_switch
        assert checkout.gateway_order.amount == 30000
        assert checkout.gateway_order.receipt.startswith("receipt_order")
        session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_verify_replaces_current_subscription(self, session, gateway, user_id, basic, premium):
        current = make_subscription(user_id, basic, START, datetime(2024, 1, 31))
        service = build_service(session, gateway, [basic, premium], [current])
        checkout = await service.init_upgrade(user_id, premium.id, "both", now=HALFWAY)

        activation = await service.verify_subscribe(
            user_id,
            premium.id,
            "both",
            checkout.gateway_order.id,
            "pay_upgrade",
            "valid",
            require_current=True,
            now=HALFWAY,
        )

        new = activation.subscription
        assert current.status == SubscriptionStatus.UPGRADED.value
        assert new.status == SubscriptionStatus.ACTIVE.value
        assert new.plan_id == premium.id
        assert new.amount_paid == Decimal("300")
        assert new.plan_value == Decimal("450")
        assert new.start_date == HALFWAY
        assert new.end_date == datetime(2024, 2, 16)
        assert new.lunch_address == current.lunch_address
        assert service.user_repo.current[user_id] == new.id
        assert service.order_repo.bulk_updates == [(current.id, OrderStatus.UPGRADED.value)]

        order = service.order_repo.orders[activation.order_id]
        assert order.type == OrderType.SUBSCRIPTION_UPGRADE.value
        assert order.status == OrderStatus.CONFIRMED.value
        assert order.pro_rata_credit == Decimal("150")
        assert order.total_amount == Decimal("300")
        assert order.items[0].name == "Upgrade to Premium Plan (monthly) - Lunch + Dinner"
        session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_downgrade_refused(self, session, gateway, user_id, basic, premium):
        current = make_subscription(user_id, premium, START, datetime(2024, 1, 31), amount_paid="450")
        service = build_service(session, gateway, [basic, premium], [current])

        with pytest.raises(PolicyViolation, match="lower tier"):
            await service.init_subscribe(user_id, basic.id, "both", now=HALFWAY)
        assert gateway.orders == {}

    @pytest.mark.asyncio
    async def test_upgrade_requires_active_subscription(self, session, gateway, user_id, basic, premium):
        service = build_service(session, gateway, [basic, premium])

        with pytest.raises(PolicyViolation):
            await service.init_upgrade(user_id, premium.id, "both", now=HALFWAY)


class TestFreeSwitch:
    """A fully credited selection is applied without a payment."""

    @pytest.mark.asyncio
    async def test_fully_credited_upgrade_activates_without_payment(self, session, gateway, user_id, basic):
        same_price = make_plan("Premium", "300")
        current = make_subscription(user_id, basic, START, datetime(2024, 1, 31))
        service = build_service(session, gateway, [basic, same_price], [current])

        checkout = await service.init_subscribe(user_id, same_price.id, "both", now=START)

        assert checkout.free_switch
        assert checkout.quote.payable == Decimal("0")
        assert gateway.orders == {}
        assert checkout.subscription.amount_paid == Decimal("0")
        assert checkout.subscription.payment_id is None
        assert current.status == SubscriptionStatus.UPGRADED.value
        session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_balance_under_a_rupee_is_charged_the_minimum(self, session, gateway, user_id, basic):
        dearer = make_plan("Premium", "300.99")
        current = make_subscription(user_id, basic, START, datetime(2024, 1, 31))
        service = build_service(session, gateway, [basic, dearer], [current])

        checkout = await service.init_subscribe(user_id, dearer.id, "both", now=START)

        assert checkout.quote.payable == Decimal("0.99")
        assert not checkout.free_switch
        assert checkout.gateway_order.amount == 100
        assert current.status == SubscriptionStatus.ACTIVE.value

        activation = await service.verify_subscribe(
            user_id, dearer.id, "both", checkout.gateway_order.id, "pay_min", "valid", now=START
        )

        assert activation.subscription.amount_paid == Decimal("1.00")
        assert current.status == SubscriptionStatus.UPGRADED.value


class TestPurchase:
    """First subscription without credit."""

    @pytest.mark.asyncio
    async def test_single_meal_purchase_copies_address(self, session, gateway, user_id, basic, address):
        service = build_service(session, gateway, [basic])
        checkout = await service.init_subscribe(user_id, basic.id, "lunch", lunch_address=address, now=START)
        assert checkout.gateway_order.amount == 15000

        activation = await service.verify_subscribe(
            user_id,
            basic.id,
            "lunch",
            checkout.gateway_order.id,
            "pay_new",
            "valid",
            lunch_address=address,
            now=START,
        )

        new = activation.subscription
        assert new.meal_type == "lunch"
        assert new.lunch_address == address
        assert new.dinner_address == address
        assert new.end_date == datetime(2024, 2, 1)
        order = service.order_repo.orders[activation.order_id]
        assert order.type == OrderType.SUBSCRIPTION_PURCHASE.value
        assert order.items[0].name == "Basic Plan (monthly) - Lunch"

    @pytest.mark.asyncio
    async def test_missing_address_rejected_before_payment(self, session, gateway, user_id, basic):
        service = build_service(session, gateway, [basic])

        with pytest.raises(ValidationError, match="address"):
            await service.init_subscribe(user_id, basic.id, "both", now=START)
        assert gateway.orders == {}

    @pytest.mark.asyncio
    async def test_invalid_signature_rejected(self, session, gateway, user_id, basic, address):
        service = build_service(session, gateway, [basic])

        with pytest.raises(GatewayError, match="Invalid payment signature"):
            await service.verify_subscribe(
                user_id, basic.id, "both", "order_x", "pay_x", "forged", lunch_address=address, now=START
            )
        session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_payment_cannot_be_applied_twice(self, session, gateway, user_id, basic, address):
        applied = make_subscription(uuid.uuid4(), basic, START, datetime(2024, 2, 1))
        applied.payment_id = "pay_used"
        service = build_service(session, gateway, [basic], [applied])

        with pytest.raises(PolicyViolation, match="already been applied"):
            await service.verify_subscribe(
                user_id, basic.id, "both", "order_1", "pay_used", "valid", lunch_address=address, now=START
            )

    @pytest.mark.asyncio
    async def test_unreadable_gateway_order_rejected(self, session, gateway, user_id, basic, address):
        service = build_service(session, gateway, [basic])

        with pytest.raises(GatewayError):
            await service.verify_subscribe(
                user_id, basic.id, "both", "order_unknown", "pay_q", "valid", lunch_address=address, now=START
            )
        assert service.subscription_repo.subscriptions == {}
        session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cheap_payment_cannot_activate_dearer_plan(self, session, gateway, user_id, basic, address):
        exotic = make_plan("Exotic", "12000", "yearly")
        service = build_service(session, gateway, [basic, exotic])
        checkout = await service.init_subscribe(user_id, basic.id, "lunch", lunch_address=address, now=START)
        assert checkout.gateway_order.amount == 15000

        with pytest.raises(PolicyViolation, match="does not cover"):
            await service.verify_subscribe(
                user_id,
                exotic.id,
                "both",
                checkout.gateway_order.id,
                "pay_cheap",
                "valid",
                lunch_address=address,
                now=START,
            )
        assert service.subscription_repo.subscriptions == {}
        assert service.user_repo.current == {}
        session.commit.assert_not_awaited()


class TestRenewal:

    @pytest.mark.asyncio
    async def test_renew_expired_subscription_at_full_price(self, session, gateway, user_id, basic):
        expired = make_subscription(
            user_id, basic, START, datetime(2024, 1, 31), status=SubscriptionStatus.EXPIRED.value
        )
        service = build_service(session, gateway, [basic], [expired])

        checkout = await service.init_renew(user_id, expired.id, now=datetime(2024, 2, 5))

        assert checkout.quote.credit == Decimal("0")
        assert checkout.gateway_order.amount == 30000
        assert checkout.gateway_order.receipt.startswith("receipt_renew")

    @pytest.mark.asyncio
    async def test_renew_active_subscription_credits_remaining_days(self, session, gateway, user_id, basic):
        current = make_subscription(user_id, basic, START, datetime(2024, 1, 31))
        service = build_service(session, gateway, [basic], [current])
        checkout = await service.init_renew(user_id, current.id, now=HALFWAY)

        activation = await service.verify_renew(
            user_id, current.id, checkout.gateway_order.id, "pay_renew", "valid", now=HALFWAY
        )

        assert checkout.quote.payable == Decimal("150")
        assert current.status == SubscriptionStatus.UPGRADED.value
        assert activation.subscription.amount_paid == Decimal("150")
        assert activation.subscription.plan_value == Decimal("300")
        assert activation.subscription.lunch_address == current.lunch_address

    @pytest.mark.asyncio
    async def test_cannot_renew_someone_elses_subscription(self, session, gateway, user_id, basic):
        other = make_subscription(uuid.uuid4(), basic, START, datetime(2024, 1, 31))
        service = build_service(session, gateway, [basic], [other])

        with pytest.raises(NotFoundError):
            await service.init_renew(user_id, other.id, now=HALFWAY)

    @pytest.mark.asyncio
    async def test_renewing_old_lower_plan_cannot_replace_active_one(self, session, gateway, user_id, basic):
        exotic = make_plan("Exotic", "1200")
        old = make_subscription(
            user_id, basic, datetime(2023, 12, 1), START, status=SubscriptionStatus.EXPIRED.value
        )
        current = make_subscription(user_id, exotic, START, datetime(2024, 1, 31), amount_paid="1200")
        service = build_service(session, gateway, [basic, exotic], [old, current])

        with pytest.raises(PolicyViolation):
            await service.init_renew(user_id, old.id, now=datetime(2024, 1, 2))
        with pytest.raises(PolicyViolation):
            await service.verify_renew(user_id, old.id, "order_1", "pay_down", "valid", now=datetime(2024, 1, 2))

        assert current.status == SubscriptionStatus.ACTIVE.value
        assert gateway.orders == {}
        session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_renewing_old_row_of_active_plan_allowed(self, session, gateway, user_id, basic):
        old = make_subscription(
            user_id, basic, datetime(2023, 12, 1), START, status=SubscriptionStatus.EXPIRED.value
        )
        current = make_subscription(user_id, basic, START, datetime(2024, 1, 31))
        service = build_service(session, gateway, [basic], [old, current])

        checkout = await service.init_renew(user_id, old.id, now=HALFWAY)

        assert checkout.quote.credit == Decimal("150")
        assert checkout.gateway_order.amount == 15000


class TestCancellation:

    @pytest.mark.asyncio
    async def test_cancel_clears_pointer_and_orders(self, session, gateway, user_id, basic):
        current = make_subscription(user_id, basic, START, datetime(2024, 1, 31))
        service = build_service(session, gateway, [basic], [current])
        service.user_repo.current[user_id] = current.id

        cancelled = await service.cancel(user_id, current.id)

        assert cancelled.status == SubscriptionStatus.CANCELLED.value
        assert service.user_repo.current[user_id] is None
        assert service.order_repo.bulk_updates == [(current.id, OrderStatus.CANCELLED.value)]
        session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_cancel_twice_refused(self, session, gateway, user_id, basic):
        current = make_subscription(user_id, basic, START, datetime(2024, 1, 31))
        service = build_service(session, gateway, [basic], [current])
        await service.cancel(user_id, current.id)

        with pytest.raises(PolicyViolation):
            await service.cancel(user_id, current.id)

    @pytest.mark.asyncio
    async def test_cancel_requires_ownership(self, session, gateway, user_id, basic):
        other = make_subscription(uuid.uuid4(), basic, START, datetime(2024, 1, 31))
        service = build_service(session, gateway, [basic], [other])

        with pytest.raises(NotFoundError):
            await service.cancel(user_id, other.id)

    @pytest.mark.asyncio
    async def test_admin_cannot_reopen_terminal_subscription(self, session, gateway, user_id, basic):
        upgraded = make_subscription(
            user_id, basic, START, datetime(2024, 1, 31), status=SubscriptionStatus.UPGRADED.value
        )
        service = build_service(session, gateway, [basic], [upgraded])

        with pytest.raises(PolicyViolation):
            await service.admin_cancel(upgraded.id)
        assert upgraded.status == SubscriptionStatus.UPGRADED.value


class TestMealTypeChange:

    @pytest.mark.asyncio
    async def test_drop_to_lunch_resnapshots_value(self, session, gateway, user_id, basic):
        current = make_subscription(user_id, basic, START, datetime(2024, 1, 31))
        current.dinner_address = {"street": "4 Park St", "city": "Pune", "zip": "411002"}
        service = build_service(session, gateway, [basic], [current])

        changed = await service.change_meal_type(user_id, "lunch")

        assert changed.meal_type == "lunch"
        assert changed.plan_value == Decimal("150")
        assert changed.dinner_address == changed.lunch_address
        # Credit is now based on the lower value, not the 300 paid
        quote = service.build_quote(basic, "both", changed, HALFWAY)
        assert quote.credit == Decimal("75")

    @pytest.mark.asyncio
    async def test_same_meal_type_refused(self, session, gateway, user_id, basic):
        current = make_subscription(user_id, basic, START, datetime(2024, 1, 31), meal_type="lunch")
        service = build_service(session, gateway, [basic], [current])

        with pytest.raises(PolicyViolation):
            await service.change_meal_type(user_id, "lunch")

    @pytest.mark.asyncio
    async def test_both_meals_needs_payment(self, session, gateway, user_id, basic):
        current = make_subscription(user_id, basic, START, datetime(2024, 1, 31), meal_type="dinner")
        service = build_service(session, gateway, [basic], [current])

        with pytest.raises(PolicyViolation, match="upgrade"):
            await service.change_meal_type(user_id, "both")
        session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_active_subscription(self, session, gateway, user_id, basic):
        service = build_service(session, gateway, [basic])

        with pytest.raises(NotFoundError):
            await service.change_meal_type(user_id, "lunch")


class TestAddresses:

    def test_both_meals_fill_missing_slot(self, address):
        lunch, dinner = normalize_addresses("both", address, None)

        assert lunch == dinner == address

    def test_single_meal_uses_other_slot(self, address):
        lunch, dinner = normalize_addresses("dinner", address, None)

        assert lunch == dinner == address

    def test_no_address_rejected(self):
        with pytest.raises(ValidationError):
            normalize_addresses("both", None, None)

    @pytest.mark.asyncio
    async def test_update_dinner_only(self, session, gateway, user_id, basic):
        current = make_subscription(user_id, basic, START, datetime(2024, 1, 31))
        original_lunch = dict(current.lunch_address)
        service = build_service(session, gateway, [basic], [current])
        new_dinner = {"street": "4 Park St", "city": "Pune", "zip": "411002"}

        updated = await service.update_addresses(user_id, None, new_dinner)

        assert updated.lunch_address == original_lunch
        assert updated.dinner_address == new_dinner


class TestExpiry:

    @pytest.mark.asyncio
    async def test_only_lapsed_subscriptions_expire(self, session, gateway, basic):
        lapsed = make_subscription(uuid.uuid4(), basic, START, datetime(2024, 1, 31))
        running = make_subscription(uuid.uuid4(), basic, datetime(2024, 1, 20), datetime(2024, 2, 20))
        service = build_service(session, gateway, [basic], [lapsed, running])

        expired = await service.expire_lapsed(datetime(2024, 2, 1))

        assert expired == 1
        assert lapsed.status == SubscriptionStatus.EXPIRED.value
        assert running.status == SubscriptionStatus.ACTIVE.value
